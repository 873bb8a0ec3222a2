"""
Merge cake_mq hardware-queue instances into one logical interface.

With cake_mq the report looks like:

    qdisc cake_mq 1: dev eth0 root refcnt 6
    qdisc cake 0: dev eth0 parent 1:1 ... bandwidth 100Mbit diffserv4 ...
    qdisc cake 0: dev eth0 parent 1:2 ... bandwidth 100Mbit diffserv4 ...

Every child carries its own counters and tin table while all of them share
one configuration. The merged record takes identity from the parent,
configuration from the first child, sums counters and reports the worst
delay seen on any queue.
"""
from typing import Dict, List, Tuple

from ..models.metrics import InterfaceSnapshot, QueueTier
from .parsers import TIER_COUNTER_FIELDS, ParsedBlock
from .units import format_bytes, parse_bytes, parse_delay_usec

SUMMED_COUNTERS = ("sent_bytes", "sent_pkts", "dropped", "overlimits", "requeues", "backlog_pkts")
SUMMED_TIER_COUNTERS = tuple(f for f in TIER_COUNTER_FIELDS if f not in ("max_len", "quantum"))
DELAY_FIELDS = ("pk_delay", "av_delay", "sp_delay")

QueueKey = Tuple[str, str]  # (interface, major handle)


def max_delay_string(values: List[str]) -> str:
    """Return the delay string with the largest parsed value ("" if none)"""
    best = 0.0
    best_str = ""
    for value in values:
        usec = parse_delay_usec(value)
        if usec > best or best_str == "":
            best = usec
            best_str = value
    return best_str


def _column(queues: List[List[QueueTier]], index: int) -> List[QueueTier]:
    return [tiers[index] for tiers in queues if index < len(tiers)]


def aggregate_tiers(queues: List[List[QueueTier]]) -> List[QueueTier]:
    """
    Combine the tin tables of several hardware queues position by position

    Names and configuration (thresh, target, interval, quantum) come from the
    first queue; counters are summed, max_len is the maximum and delays are
    the largest value on any queue.
    """
    if not queues or not queues[0]:
        return []

    merged = []
    for index, base in enumerate(queues[0]):
        column = _column(queues, index)
        update = {field: sum(getattr(t, field) for t in column) for field in SUMMED_TIER_COUNTERS}
        update["max_len"] = max(t.max_len for t in column)
        update["backlog"] = format_bytes(sum(parse_bytes(t.backlog) for t in column))
        for field in DELAY_FIELDS:
            update[field] = max_delay_string([getattr(t, field) for t in column])
        merged.append(base.model_copy(update=update, deep=True))
    return merged


def aggregate_queues(parent: InterfaceSnapshot, children: List[InterfaceSnapshot]) -> InterfaceSnapshot:
    """
    Build the logical snapshot for one cake_mq parent

    Returns a new object; neither parent nor children are modified.
    """
    if not children:
        return identity_only(parent)

    first = children[0]
    update = {field: sum(getattr(c, field) for c in children) for field in SUMMED_COUNTERS}
    update.update(
        handle=parent.handle,
        interface=parent.interface,
        raw_header=parent.raw_header,
        updated_at=parent.updated_at,
        backlog_bytes=format_bytes(sum(parse_bytes(c.backlog_bytes) for c in children)),
        memory_used=format_bytes(sum(parse_bytes(c.memory_used) for c in children)),
        tiers=aggregate_tiers([c.tiers for c in children]),
    )
    return first.model_copy(update=update, deep=True)


def identity_only(parent: InterfaceSnapshot) -> InterfaceSnapshot:
    """cake_mq parent with no visible queues: identity fields, nothing else"""
    return InterfaceSnapshot(
        interface=parent.interface,
        handle=parent.handle,
        direction=parent.direction,
        raw_header=parent.raw_header,
        updated_at=parent.updated_at,
    )


def merge_multiqueue(blocks: List[ParsedBlock]) -> List[InterfaceSnapshot]:
    """
    Collapse cake_mq groups and pass everything else through, in report order

    A child whose parent reference does not match any cake_mq block on the
    same interface is emitted unchanged, like an ordinary root cake qdisc.
    """
    parents: Dict[QueueKey, InterfaceSnapshot] = {}
    for block in blocks:
        if block.is_mq_parent:
            key = (block.snapshot.interface, block.snapshot.handle)
            parents.setdefault(key, block.snapshot)

    groups: Dict[QueueKey, List[InterfaceSnapshot]] = {}
    for block in blocks:
        if block.is_mq_parent or not block.parent_major:
            continue
        key = (block.snapshot.interface, block.parent_major)
        if key in parents:
            groups.setdefault(key, []).append(block.snapshot)

    result = []
    emitted = set()
    for block in blocks:
        snapshot = block.snapshot
        if block.is_mq_parent:
            key = (snapshot.interface, snapshot.handle)
            if key in emitted:
                continue
            emitted.add(key)
            result.append(aggregate_queues(parents[key], groups.get(key, [])))
        elif block.parent_major and (snapshot.interface, block.parent_major) in parents:
            continue
        else:
            result.append(snapshot)
    return result

