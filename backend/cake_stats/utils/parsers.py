import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from ..models.metrics import InterfaceSnapshot, QueueTier
from .errors import StatsDecodeError
from .units import parse_uint

BLOCK_PREFIX = "qdisc "
CAKE_MARKER = "qdisc cake "
CAKE_MQ_MARKER = "qdisc cake_mq "

# First words of a tin table header row. "Tin" covers besteffort ("Tin 0")
# and generic multi-tin layouts ("Tin 0" .. "Tin 7").
KNOWN_TIER_WORDS = frozenset({
    "Bulk", "Best", "Voice", "Video",
    "CS1", "CS2", "CS3", "CS4", "CS5", "CS6", "CS7", "BE",
    "Tin",
})

DIFFSERV_MODES = frozenset({"diffserv3", "diffserv4", "diffserv8", "besteffort", "precedence"})

FLOW_MODES = frozenset({
    "flowblind", "srchost", "dsthost", "hosts", "flows",
    "dual-srchost", "dual-dsthost", "triple-isolate", "single",
})

# Header keywords whose value is the following token
HEADER_ARGUMENTS = {
    "bandwidth": "bandwidth",
    "fwmark": "fwmark_mask",
    "rtt": "rtt",
    "overhead": "overhead",
    "mpu": "mpu",
    "memlimit": "memlimit",
}

HEADER_FLAGS = {
    "atm": ("atm_mode", "atm"),
    "ptm": ("atm_mode", "ptm"),
    "noatm": ("atm_mode", ""),
    "raw": ("atm_mode", ""),
    "nat": ("nat_enabled", True),
    "nonat": ("nat_enabled", False),
    "wash": ("wash_enabled", True),
    "nowash": ("wash_enabled", False),
    "autorate-ingress": ("bandwidth", "autorate-ingress"),
    "ingress": ("direction", "ingress"),
}

TIER_STRING_FIELDS = ("thresh", "target", "interval", "pk_delay", "av_delay", "sp_delay", "backlog")
TIER_COUNTER_FIELDS = (
    "pkts", "bytes", "way_inds", "way_miss", "way_cols", "drops", "marks",
    "ack_drop", "sp_flows", "bk_flows", "un_flows", "max_len", "quantum",
)

# Single-line "label: value" fields copied verbatim
_LABELLED_FIELDS = (
    ("capacity estimate:", "capacity_estimate"),
    ("average network hdr offset:", "avg_hdr_offset"),
)

_MIN_MAX_FIELDS = (
    ("min/max network layer size:", ("min_net_size", "max_net_size")),
    ("min/max overhead-adjusted size:", ("min_adj_size", "max_adj_size")),
)


@dataclass
class ParsedBlock:
    """One CAKE qdisc block plus the routing metadata the aggregator needs"""
    snapshot: InterfaceSnapshot
    parent_major: str = ""     # set for plain cake qdiscs attached via "parent X:N"
    is_mq_parent: bool = False


def parse_header(line: str) -> Dict[str, Any]:
    """
    Parse a cake qdisc header line into snapshot fields

    Example input:
    qdisc cake 800d: dev eth1 root refcnt 2 bandwidth 50Mbit diffserv4 dual-srchost nat nowash rtt 100ms atm overhead 48

    Direction defaults to egress and only the "ingress" keyword changes it.
    Attachment ("root" vs "parent 1:2") is ignored because cake_mq sub-queues
    hang off a parent yet still shape egress traffic.
    """
    tokens = line.split()
    if len(tokens) < 5:
        return {}

    fields: Dict[str, Any] = {
        "handle": tokens[2].rstrip(":"),
        "interface": tokens[4],
        "direction": "egress",
    }

    i = 5
    while i < len(tokens):
        token = tokens[i]
        if token in HEADER_ARGUMENTS:
            if i + 1 < len(tokens):
                fields[HEADER_ARGUMENTS[token]] = tokens[i + 1]
                i += 1
        elif token in DIFFSERV_MODES:
            fields["diffserv_mode"] = token
        elif token in FLOW_MODES:
            fields["flow_mode"] = token
        elif token in HEADER_FLAGS:
            name, value = HEADER_FLAGS[token]
            fields[name] = value
        i += 1

    return fields


def header_parent_major(line: str) -> str:
    """
    Major handle of a "parent X:N" reference, e.g. "1" for "parent 1:2".

    Returns "" for root qdiscs.
    """
    match = re.search(r'\bparent ([^:\s]+):', line)
    return match.group(1) if match else ""


def parse_sent_line(line: str) -> Dict[str, int]:
    """
    Parse the traffic totals line

    Example input:
    Sent 453393887 bytes 1599017 pkt (dropped 2515, overlimits 2072988 requeues 0)

    A comma separated segment may hold more than one key/value pair.
    """
    fields: Dict[str, int] = {}
    tokens = line.split()
    if len(tokens) >= 4:
        fields["sent_bytes"] = parse_uint(tokens[1])
        fields["sent_pkts"] = parse_uint(tokens[3])

    counters = {"dropped": "dropped", "overlimits": "overlimits", "requeues": "requeues"}
    match = re.search(r'\(([^)]*)\)', line)
    if match:
        for segment in match.group(1).split(','):
            pairs = segment.split()
            for j in range(0, len(pairs) - 1, 2):
                if pairs[j] in counters:
                    fields[counters[pairs[j]]] = parse_uint(pairs[j + 1])
    return fields


def parse_backlog_line(line: str) -> Dict[str, Any]:
    """Parse "backlog 0b 0p requeues 0" """
    tokens = line.split()
    if len(tokens) < 3:
        return {}
    return {
        "backlog_bytes": tokens[1],
        "backlog_pkts": parse_uint(tokens[2].rstrip("p")),
    }


def parse_memory_line(line: str) -> Dict[str, str]:
    """Parse "memory used: 238656b of 32Mb" """
    parts = line[len("memory used:"):].split()
    if len(parts) < 3:
        return {}
    return {"memory_used": parts[0], "memory_total": parts[2]}


def parse_min_max(line: str) -> Tuple[str, str]:
    """Parse "min/max network layer size:    28 /  1500" into ("28", "1500")"""
    _, sep, rest = line.partition(":")
    if not sep:
        return "", ""
    parts = rest.split("/", 1)
    if len(parts) != 2:
        return "", ""
    return parts[0].strip(), parts[1].strip()


def is_tier_header(first_token: str) -> bool:
    return first_token in KNOWN_TIER_WORDS


def parse_tier_names(words: List[str]) -> List[str]:
    """
    Join compound tin names from a table header row

    ["Bulk", "Best", "Effort", "Video"] -> ["Bulk", "Best Effort", "Video"]
    ["Tin", "0", "Tin", "1"]            -> ["Tin 0", "Tin 1"]
    """
    names = []
    i = 0
    while i < len(words):
        word = words[i]
        if word == "Best" and i + 1 < len(words) and words[i + 1] == "Effort":
            names.append("Best Effort")
            i += 2
        elif word == "Tin" and i + 1 < len(words):
            names.append(f"Tin {words[i + 1]}")
            i += 2
        else:
            names.append(word)
            i += 1
    return names


def assemble_tiers(names: List[str], rows: Mapping[str, List[str]]) -> List[QueueTier]:
    """
    Build one QueueTier per tin name from the column-aligned table rows

    rows maps a field keyword ("thresh", "pkts", ...) to its values left to
    right. A missing row or column yields "" / 0.
    """
    def column(field: str, index: int) -> str:
        values = rows.get(field, [])
        return values[index] if index < len(values) else ""

    tiers = []
    for index, name in enumerate(names):
        values: Dict[str, Any] = {"name": name}
        for field in TIER_STRING_FIELDS:
            values[field] = column(field, index)
        for field in TIER_COUNTER_FIELDS:
            values[field] = parse_uint(column(field, index))
        tiers.append(QueueTier(**values))
    return tiers


def split_blocks(raw: str) -> List[List[str]]:
    """Split tc -s qdisc output into per-qdisc line blocks"""
    blocks: List[List[str]] = []
    current: List[str] = []
    for line in raw.split('\n'):
        if line.startswith(BLOCK_PREFIX) and current:
            blocks.append(current)
            current = []
        current.append(line)
    if current:
        blocks.append(current)
    return blocks


def parse_cake_block(lines: List[str], updated_at: Optional[datetime] = None) -> InterfaceSnapshot:
    """Parse one cake (or cake_mq) block into an InterfaceSnapshot"""
    header = lines[0] if lines else ""
    fields: Dict[str, Any] = {"raw_header": header.strip()}
    fields.update(parse_header(header))
    if updated_at is not None:
        fields["updated_at"] = updated_at

    tier_names: List[str] = []
    tier_rows: Dict[str, List[str]] = {}
    in_table = False

    for line in lines[1:]:
        trimmed = line.strip()
        if not trimmed:
            continue
        tokens = trimmed.split()

        # Table rows come first: the per-tin "backlog" row would otherwise be
        # taken for the global backlog line.
        if in_table and len(tokens) >= 2 and tokens[0][0].islower():
            tier_rows[tokens[0]] = tokens[1:]
        elif trimmed.startswith("Sent "):
            fields.update(parse_sent_line(trimmed))
        elif trimmed.startswith("backlog "):
            fields.update(parse_backlog_line(trimmed))
        elif trimmed.startswith("memory used:"):
            fields.update(parse_memory_line(trimmed))
        elif any(trimmed.startswith(label) for label, _ in _LABELLED_FIELDS):
            for label, name in _LABELLED_FIELDS:
                if trimmed.startswith(label):
                    fields[name] = trimmed[len(label):].strip()
        elif any(trimmed.startswith(label) for label, _ in _MIN_MAX_FIELDS):
            for label, (low, high) in _MIN_MAX_FIELDS:
                if trimmed.startswith(label):
                    fields[low], fields[high] = parse_min_max(trimmed)
        elif is_tier_header(tokens[0]):
            tier_names = parse_tier_names(tokens)
            in_table = True

    if tier_names:
        fields["tiers"] = assemble_tiers(tier_names, tier_rows)

    return InterfaceSnapshot(**fields)


def parse_blocks(raw: Union[str, bytes], updated_at: Optional[datetime] = None) -> List[ParsedBlock]:
    """
    Parse tc -s qdisc text output into CAKE blocks, in report order

    Non-CAKE qdiscs are discarded. The result still holds cake_mq parents and
    their per-queue children separately; see aggregator.merge_multiqueue.
    """
    if isinstance(raw, bytes):
        raw = raw.decode('utf-8', errors='replace')
    updated_at = updated_at or datetime.now(timezone.utc)

    parsed = []
    for lines in split_blocks(raw):
        header = lines[0]
        if CAKE_MQ_MARKER in header:
            parsed.append(ParsedBlock(
                snapshot=parse_cake_block(lines, updated_at),
                is_mq_parent=True,
            ))
        elif CAKE_MARKER in header:
            parsed.append(ParsedBlock(
                snapshot=parse_cake_block(lines, updated_at),
                parent_major=header_parent_major(header),
            ))
    return parsed


def _json_uint(obj: Mapping[str, Any], key: str) -> Optional[int]:
    value = obj.get(key)
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return max(int(value), 0)
    if isinstance(value, str):
        return parse_uint(value)
    return None


def _json_options(options: Mapping[str, Any]) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    bandwidth = _json_uint(options, "bandwidth")
    if bandwidth is not None:
        fields["bandwidth"] = f"{bandwidth}bit"
    if isinstance(options.get("diffserv"), str):
        fields["diffserv_mode"] = options["diffserv"]
    if isinstance(options.get("nat"), bool):
        fields["nat_enabled"] = options["nat"]
    if isinstance(options.get("wash"), bool):
        fields["wash_enabled"] = options["wash"]
    # current iproute2 does not emit "atm", accept it if a later one does
    if isinstance(options.get("atm"), str) and options["atm"]:
        fields["atm_mode"] = options["atm"]
    mpu = _json_uint(options, "mpu")
    if mpu:
        fields["mpu"] = str(mpu)
    overhead = options.get("overhead")
    if isinstance(overhead, (int, float)) and not isinstance(overhead, bool):
        fields["overhead"] = str(int(overhead))
    rtt = _json_uint(options, "rtt")
    if rtt is not None:
        fields["rtt"] = f"{rtt // 1000}ms"
    return fields


def _json_tiers(tins: List[Any]) -> List[QueueTier]:
    tiers = []
    for tin in tins:
        if not isinstance(tin, dict):
            continue
        values: Dict[str, Any] = {}
        thresh = _json_uint(tin, "threshold_rate")
        if thresh is not None:
            values["thresh"] = str(thresh)
        for key, field in (("sent_bytes", "bytes"), ("drops", "drops"),
                           ("max_pkt_len", "max_len"), ("flow_quantum", "quantum")):
            number = _json_uint(tin, key)
            if number is not None:
                values[field] = number
        tiers.append(QueueTier(**values))
    return tiers


def parse_json_stats(raw: Union[str, bytes], updated_at: Optional[datetime] = None) -> List[InterfaceSnapshot]:
    """
    Parse "tc -j -s qdisc" output

    Lower fidelity than the text report: tin names, target/interval, delays
    and most per-tin counters are not present in the JSON form.

    Raises:
        StatsDecodeError: If raw is not a JSON array
    """
    try:
        entries = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise StatsDecodeError(f"Invalid tc JSON output: {e}") from e
    if not isinstance(entries, list):
        raise StatsDecodeError("tc JSON output is not an array")

    updated_at = updated_at or datetime.now(timezone.utc)
    snapshots = []
    for entry in entries:
        if not isinstance(entry, dict) or entry.get("kind") != "cake":
            continue

        fields: Dict[str, Any] = {"updated_at": updated_at}
        if isinstance(entry.get("dev"), str):
            fields["interface"] = entry["dev"]
        if isinstance(entry.get("handle"), str):
            fields["handle"] = entry["handle"].rstrip(":")
        if isinstance(entry.get("options"), dict):
            fields.update(_json_options(entry["options"]))

        for key, field in (("bytes", "sent_bytes"), ("packets", "sent_pkts"), ("drops", "dropped"),
                           ("overlimits", "overlimits"), ("requeues", "requeues")):
            number = _json_uint(entry, key)
            if number is not None:
                fields[field] = number

        memory_used = _json_uint(entry, "memory_used")
        if memory_used is not None:
            fields["memory_used"] = f"{memory_used}b"
        memory_limit = _json_uint(entry, "memory_limit")
        if memory_limit is not None:
            fields["memory_total"] = f"{memory_limit // 1024 // 1024}Mb"
        capacity = _json_uint(entry, "capacity_estimate")
        if capacity is not None:
            fields["capacity_estimate"] = f"{capacity // 1_000_000}Mbit"
        for key, field in (("min_network_size", "min_net_size"), ("max_network_size", "max_net_size"),
                           ("avg_hdr_offset", "avg_hdr_offset")):
            number = _json_uint(entry, key)
            if number is not None:
                fields[field] = str(number)

        if isinstance(entry.get("tins"), list):
            fields["tiers"] = _json_tiers(entry["tins"])

        snapshots.append(InterfaceSnapshot(**fields))

    return snapshots
