import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional

from ..models.metrics import HistorySample, InterfaceSnapshot, QueueTier
from ..utils.units import parse_delay_ms

MIN_CAPACITY = 2


class SharedLock:
    """
    Readers/writer lock: any number of readers or one writer.

    A waiting writer blocks new readers.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def shared(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class RingBuffer:
    """Fixed-size sample buffer; the oldest sample is overwritten once full"""

    def __init__(self, capacity: int):
        self.capacity = capacity
        self._samples: List[Optional[HistorySample]] = [None] * capacity
        self._head = 0   # next write slot
        self._count = 0  # valid entries, at most capacity

    def __len__(self) -> int:
        return self._count

    def push(self, sample: HistorySample):
        self._samples[self._head] = sample
        self._head = (self._head + 1) % self.capacity
        if self._count < self.capacity:
            self._count += 1

    def ordered(self) -> List[HistorySample]:
        """Copy of the valid samples, oldest first"""
        if self._count < self.capacity:
            window = self._samples[:self._count]
        else:
            window = self._samples[self._head:] + self._samples[:self._head]
        return [sample.model_copy() for sample in window]


class IfaceState:
    """Previous counters and sample history for one interface"""

    def __init__(self, capacity: int, snapshot: InterfaceSnapshot, now: float):
        self.prev_tx_bytes = tx_bytes(snapshot)
        self.prev_dropped = snapshot.dropped
        self.prev_time = now
        self.samples = RingBuffer(capacity)


def tx_bytes(snapshot: InterfaceSnapshot) -> int:
    """
    Transmitted bytes used for the throughput rate.

    The top level "Sent" counter when present, otherwise the sum of the
    per-tin byte counters.
    """
    return snapshot.sent_bytes or sum(tier.bytes for tier in snapshot.tiers)


def max_delay_ms(tiers: List[QueueTier], field: str) -> float:
    """Largest delay across tins for pk_delay or av_delay, in milliseconds"""
    return max((parse_delay_ms(getattr(tier, field)) for tier in tiers), default=0.0)


def _rate(current: int, previous: int, elapsed: float) -> float:
    # a lower counter means the qdisc or link was reset
    if current < previous:
        return 0.0
    return (current - previous) / elapsed


class HistoryStore:
    """
    Per-interface rate computation and bounded time series.

    record() is called by the poller only and holds the exclusive lock for
    its whole run; snapshot() may be called from any number of threads.
    """

    def __init__(self, capacity: int = 300, clock: Callable[[], float] = time.time):
        self.capacity = max(capacity, MIN_CAPACITY)
        self._clock = clock
        self._lock = SharedLock()
        self._ifaces: Dict[str, IfaceState] = {}

    def record(self, stats: List[InterfaceSnapshot], interval: float):
        """
        Fill the derived fields of stats in place and append history samples

        Args:
            stats: Snapshots from the current poll
            interval: Nominal poll interval in seconds, used when the
                measured elapsed time is not positive
        """
        now = self._clock()
        with self._lock.exclusive():
            for snapshot in stats:
                state = self._ifaces.get(snapshot.interface)
                if state is None:
                    self._ifaces[snapshot.interface] = IfaceState(self.capacity, snapshot, now)
                    continue

                elapsed = now - state.prev_time
                if elapsed <= 0:
                    elapsed = interval

                current_tx = tx_bytes(snapshot)
                snapshot.tx_bytes_per_s = _rate(current_tx, state.prev_tx_bytes, elapsed)
                snapshot.drops_per_s = _rate(snapshot.dropped, state.prev_dropped, elapsed)
                snapshot.max_av_delay_ms = max_delay_ms(snapshot.tiers, "av_delay")
                snapshot.max_pk_delay_ms = max_delay_ms(snapshot.tiers, "pk_delay")

                state.samples.push(HistorySample(
                    t=int(now),
                    tx=snapshot.tx_bytes_per_s,
                    av=snapshot.max_av_delay_ms,
                    pk=snapshot.max_pk_delay_ms,
                    dr=snapshot.drops_per_s,
                ))
                state.prev_tx_bytes = current_tx
                state.prev_dropped = snapshot.dropped
                state.prev_time = now

            active = {snapshot.interface for snapshot in stats}
            for name in list(self._ifaces):
                if name not in active:
                    del self._ifaces[name]

    def snapshot(self) -> Dict[str, List[HistorySample]]:
        """Ordered (oldest first) samples for every interface that has any"""
        with self._lock.shared():
            return {
                name: state.samples.ordered()
                for name, state in self._ifaces.items()
                if len(state.samples)
            }
