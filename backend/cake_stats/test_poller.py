"""
Tests for StatsCollector and the StatsPoller loop, with tc faked out.
"""
import asyncio
from datetime import timedelta

import pytest

from cake_stats.services.history import HistoryStore
from cake_stats.services.metrics_collector import StatsCollector, probe_json_support
from cake_stats.services.poller import SUBSCRIBER_QUEUE_SIZE, StatsPoller
from cake_stats.tc_samples import DIFFSERV4_REPORT, JSON_REPORT, minimal_cake_report
from cake_stats.utils.errors import TcExecutionError
from cake_stats.utils.tc_exec import TcExecutor


class FakeExecutor(TcExecutor):
    """Answers tc commands from canned output instead of running tc"""

    def __init__(self, text=DIFFSERV4_REPORT, json_output=JSON_REPORT, fail=False):
        super().__init__()
        self.text = text
        self.json_output = json_output
        self.fail = fail
        self.calls = []

    async def exec_command(self, args):
        self.calls.append(list(args))
        if self.fail:
            raise TcExecutionError("tc not found")
        if "-j" in args:
            return 0, self.json_output
        return 0, self.text


def make_poller(executor, use_json=False, capacity=10):
    collector = StatsCollector(executor, use_json=use_json)
    return StatsPoller(collector, HistoryStore(capacity), interval=0.01)


def test_collector_uses_text_report_by_default():
    executor = FakeExecutor()
    stats = asyncio.run(StatsCollector(executor).collect())

    assert [s.interface for s in stats] == ["eth1", "ifb4eth1"]
    assert executor.calls == [["-s", "qdisc"]]


def test_collector_json_path():
    executor = FakeExecutor()
    stats = asyncio.run(StatsCollector(executor, use_json=True).collect())

    assert len(stats) == 1
    assert stats[0].interface == "eth0"
    assert stats[0].handle == "800d"
    assert stats[0].sent_bytes == 123
    assert executor.calls == [["-j", "-s", "qdisc"]]


def test_collector_falls_back_to_text_on_bad_json():
    executor = FakeExecutor(json_output="Option \"-j\" is unknown")
    stats = asyncio.run(StatsCollector(executor, use_json=True).collect())

    assert [s.interface for s in stats] == ["eth1", "ifb4eth1"]
    assert executor.calls == [["-j", "-s", "qdisc"], ["-s", "qdisc"]]


def test_collector_propagates_tc_failure():
    with pytest.raises(TcExecutionError):
        asyncio.run(StatsCollector(FakeExecutor(fail=True)).collect())


def test_json_probe():
    assert asyncio.run(probe_json_support(FakeExecutor())) is True
    assert asyncio.run(probe_json_support(FakeExecutor(json_output="{}"))) is False
    assert asyncio.run(probe_json_support(FakeExecutor(fail=True))) is False


def test_poll_once_records_and_publishes():
    executor = FakeExecutor(text=minimal_cake_report("diffserv4"))
    poller = make_poller(executor)

    async def scenario():
        queue = poller.subscribe()
        assert await poller.poll_once() is True
        executor.text = executor.text.replace("Sent 0 bytes", "Sent 5000 bytes")
        assert await poller.poll_once() is True
        return [queue.get_nowait(), queue.get_nowait()]

    first, second = asyncio.run(scenario())

    assert [s.interface for s in first.interfaces] == ["eth0"]
    assert second.interfaces[0].sent_bytes == 5000
    assert poller.latest[0].tx_bytes_per_s > 0
    assert len(poller.history.snapshot()["eth0"]) == 1
    assert poller.current_response().updated_at == second.updated_at


def test_tc_failure_skips_cycle():
    executor = FakeExecutor()
    poller = make_poller(executor)

    async def scenario():
        await poller.poll_once()
        executor.fail = True
        return await poller.poll_once()

    assert asyncio.run(scenario()) is False
    # previous result is kept
    assert [s.interface for s in poller.latest] == ["eth1", "ifb4eth1"]


def test_unsubscribed_queue_gets_nothing():
    poller = make_poller(FakeExecutor())

    async def scenario():
        queue = poller.subscribe()
        poller.unsubscribe(queue)
        await poller.poll_once()
        return queue

    assert asyncio.run(scenario()).empty()


def test_slow_subscriber_does_not_block_poller():
    poller = make_poller(FakeExecutor())

    async def scenario():
        queue = poller.subscribe()
        for _ in range(SUBSCRIBER_QUEUE_SIZE + 3):
            assert await poller.poll_once() is True
        return queue

    assert asyncio.run(scenario()).qsize() == SUBSCRIBER_QUEUE_SIZE


def test_run_polls_until_stopped():
    executor = FakeExecutor()
    poller = make_poller(executor)

    async def scenario():
        task = poller.start()
        assert poller.start() is task
        await asyncio.sleep(0.05)
        await poller.stop()
        return task

    task = asyncio.run(scenario())
    assert task.cancelled()
    assert len(executor.calls) >= 2
    assert "eth1" in poller.history.snapshot()


def test_stop_without_start():
    poller = make_poller(FakeExecutor())
    asyncio.run(poller.stop())


class FlakyExecutor(FakeExecutor):
    """Raises a non-tc error on the first call, then behaves"""

    async def exec_command(self, args):
        self.calls.append(list(args))
        if len(self.calls) == 1:
            raise ConnectionError("docker daemon went away")
        return 0, self.text


def test_unexpected_error_skips_cycle():
    poller = make_poller(FlakyExecutor())

    assert asyncio.run(poller.poll_once()) is False
    assert poller.last_error == "ConnectionError: docker daemon went away"

    assert asyncio.run(poller.poll_once()) is True
    assert poller.last_error is None
    assert [s.interface for s in poller.latest] == ["eth1", "ifb4eth1"]


def test_run_survives_unexpected_error():
    executor = FlakyExecutor()
    poller = make_poller(executor)

    async def scenario():
        poller.start()
        await asyncio.sleep(0.1)
        alive = poller.running
        await poller.stop()
        return alive

    assert asyncio.run(scenario()) is True
    assert len(executor.calls) > 1
    assert [s.interface for s in poller.latest] == ["eth1", "ifb4eth1"]


def test_stop_does_not_raise_for_failed_task():
    poller = make_poller(FakeExecutor())

    async def boom():
        raise RuntimeError("loop crashed")

    async def scenario():
        poller._task = asyncio.create_task(boom())
        await asyncio.sleep(0)
        await poller.stop()

    asyncio.run(scenario())
    assert poller._task is None


def test_staleness():
    poller = make_poller(FakeExecutor())
    assert poller.is_stale()

    asyncio.run(poller.poll_once())
    assert not poller.is_stale(now=poller.last_success)
    later = poller.last_success + timedelta(seconds=1)
    assert poller.is_stale(now=later)
