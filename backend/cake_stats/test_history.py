"""
Tests for HistoryStore rate computation and ring buffers.
"""
import threading

import pytest

from cake_stats.models.metrics import HistorySample, InterfaceSnapshot, QueueTier
from cake_stats.services.history import HistoryStore, RingBuffer


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def snap(iface="eth0", sent=0, dropped=0, tiers=None):
    return InterfaceSnapshot(interface=iface, sent_bytes=sent, dropped=dropped, tiers=tiers or [])


def sample(t):
    return HistorySample(t=t, tx=0, av=0, pk=0, dr=0)


def test_first_observation_only_seeds():
    store = HistoryStore(10, clock=FakeClock())
    stats = [snap(sent=1_000_000, tiers=[QueueTier(av_delay="5ms", pk_delay="10ms")])]

    store.record(stats, 1.0)

    assert store.snapshot() == {}
    assert stats[0].tx_bytes_per_s == 0
    assert stats[0].max_av_delay_ms == 0


def test_second_observation_computes_rates():
    clock = FakeClock()
    store = HistoryStore(10, clock=clock)
    store.record([snap(sent=1_000_000, dropped=0)], 1.0)

    clock.advance(2.0)
    stats = [snap(sent=2_000_000, dropped=2, tiers=[
        QueueTier(av_delay="6ms", pk_delay="12ms"),
        QueueTier(av_delay="500us", pk_delay="1s"),
        QueueTier(av_delay="", pk_delay="0"),
    ])]
    store.record(stats, 1.0)

    cs = stats[0]
    assert cs.tx_bytes_per_s == pytest.approx(500_000.0)
    assert cs.drops_per_s == pytest.approx(1.0)
    assert cs.max_av_delay_ms == pytest.approx(6.0)
    assert cs.max_pk_delay_ms == pytest.approx(1000.0)

    history = store.snapshot()["eth0"]
    assert len(history) == 1
    assert history[0].t == int(clock.now)
    assert history[0].tx == cs.tx_bytes_per_s
    assert history[0].av == cs.max_av_delay_ms
    assert history[0].pk == cs.max_pk_delay_ms
    assert history[0].dr == cs.drops_per_s


def test_counter_reset_gives_zero_rate():
    clock = FakeClock()
    store = HistoryStore(10, clock=clock)
    store.record([snap(sent=9_000_000, dropped=100)], 1.0)

    clock.advance(1.0)
    stats = [snap(sent=100, dropped=5)]
    store.record(stats, 1.0)
    assert stats[0].tx_bytes_per_s == 0.0
    assert stats[0].drops_per_s == 0.0

    # the lower values become the new baseline
    clock.advance(1.0)
    stats = [snap(sent=1100, dropped=6)]
    store.record(stats, 1.0)
    assert stats[0].tx_bytes_per_s == pytest.approx(1000.0)
    assert stats[0].drops_per_s == pytest.approx(1.0)


def test_non_positive_elapsed_uses_nominal_interval():
    clock = FakeClock()
    store = HistoryStore(10, clock=clock)
    store.record([snap(sent=0)], 0.5)

    stats = [snap(sent=1000)]
    store.record(stats, 0.5)
    assert stats[0].tx_bytes_per_s == pytest.approx(2000.0)

    clock.advance(-3.0)
    stats = [snap(sent=2000)]
    store.record(stats, 0.5)
    assert stats[0].tx_bytes_per_s == pytest.approx(2000.0)


def test_ring_buffer_keeps_newest_in_order():
    capacity = 5
    clock = FakeClock(1000.0)
    store = HistoryStore(capacity, clock=clock)
    store.record([snap(sent=0)], 1.0)

    for i in range(1, capacity + 3):
        clock.advance(1.0)
        store.record([snap(sent=i * 1000)], 1.0)

    history = store.snapshot()["eth0"]
    assert len(history) == capacity
    assert [s.t for s in history] == [1003, 1004, 1005, 1006, 1007]


def test_ring_buffer_partial_and_wrapped():
    ring = RingBuffer(3)
    assert ring.ordered() == []

    ring.push(sample(1))
    ring.push(sample(2))
    assert [s.t for s in ring.ordered()] == [1, 2]

    for t in (3, 4, 5, 6, 7):
        ring.push(sample(t))
    assert len(ring) == 3
    assert [s.t for s in ring.ordered()] == [5, 6, 7]


def test_capacity_has_a_floor_of_two():
    assert HistoryStore(0).capacity == 2
    assert HistoryStore(1).capacity == 2
    assert HistoryStore(3).capacity == 3


def test_absent_interface_is_pruned():
    clock = FakeClock()
    store = HistoryStore(10, clock=clock)
    store.record([snap("eth0"), snap("eth1")], 1.0)

    clock.advance(1.0)
    store.record([snap("eth0", sent=1000), snap("eth1", sent=1000)], 1.0)
    assert set(store.snapshot()) == {"eth0", "eth1"}

    clock.advance(1.0)
    store.record([snap("eth0", sent=2000)], 1.0)
    assert set(store.snapshot()) == {"eth0"}

    # a returning interface starts over from its first observation
    clock.advance(1.0)
    stats = [snap("eth0", sent=3000), snap("eth1", sent=5000)]
    store.record(stats, 1.0)
    assert stats[1].tx_bytes_per_s == 0
    assert "eth1" not in store.snapshot()


def test_empty_poll_prunes_everything():
    clock = FakeClock()
    store = HistoryStore(10, clock=clock)
    store.record([snap("eth0")], 1.0)
    clock.advance(1.0)
    store.record([snap("eth0", sent=10)], 1.0)

    store.record([], 1.0)
    assert store.snapshot() == {}


def test_snapshot_returns_independent_copies():
    clock = FakeClock()
    store = HistoryStore(10, clock=clock)
    store.record([snap()], 1.0)
    clock.advance(1.0)
    store.record([snap(sent=100)], 1.0)

    first = store.snapshot()
    first["eth0"][0].tx = -1.0
    first["eth0"].clear()

    again = store.snapshot()["eth0"]
    assert len(again) == 1
    assert again[0].tx == pytest.approx(100.0)


def test_concurrent_readers_see_whole_samples():
    clock = FakeClock()
    store = HistoryStore(50, clock=clock)
    store.record([snap()], 1.0)
    errors = []
    done = threading.Event()

    def reader():
        while not done.is_set():
            for samples in store.snapshot().values():
                times = [s.t for s in samples]
                if times != sorted(times) or len(samples) > 50:
                    errors.append(times)

    threads = [threading.Thread(target=reader) for _ in range(4)]
    for thread in threads:
        thread.start()
    try:
        for i in range(1, 200):
            clock.advance(1.0)
            store.record([snap(sent=i * 10)], 1.0)
    finally:
        done.set()
        for thread in threads:
            thread.join()

    assert errors == []
    assert len(store.snapshot()["eth0"]) == 50


def test_tier_bytes_used_without_sent_line():
    clock = FakeClock()
    store = HistoryStore(10, clock=clock)
    store.record([snap(tiers=[QueueTier(bytes=1000), QueueTier(bytes=0)])], 1.0)

    clock.advance(1.0)
    stats = [snap(tiers=[QueueTier(bytes=2500), QueueTier(bytes=500)])]
    store.record(stats, 1.0)

    assert stats[0].tx_bytes_per_s == pytest.approx(2000.0)


def test_sent_line_preferred_over_tier_bytes():
    clock = FakeClock()
    store = HistoryStore(10, clock=clock)
    store.record([snap(sent=1000, tiers=[QueueTier(bytes=50_000)])], 1.0)

    clock.advance(1.0)
    stats = [snap(sent=1500, tiers=[QueueTier(bytes=90_000)])]
    store.record(stats, 1.0)

    assert stats[0].tx_bytes_per_s == pytest.approx(500.0)
