import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional, Set

from ..models.metrics import InterfaceSnapshot, StatsResponse
from ..utils.errors import TcExecutionError
from .history import HistoryStore
from .metrics_collector import StatsCollector

logger = logging.getLogger(__name__)

SUBSCRIBER_QUEUE_SIZE = 4


class StatsPoller:
    """
    Periodic tc poll loop.

    The poller is the only writer into the HistoryStore. It keeps the latest
    snapshot list for the API and pushes every new one to SSE subscribers.
    """

    def __init__(self, collector: StatsCollector, history: HistoryStore, interval: float = 1.0):
        self.collector = collector
        self.history = history
        self.interval = interval
        self._latest: List[InterfaceSnapshot] = []
        self._updated_at: Optional[datetime] = None
        self._subscribers: Set[asyncio.Queue] = set()
        self._task: Optional[asyncio.Task] = None
        self.last_error: Optional[str] = None

    @property
    def latest(self) -> List[InterfaceSnapshot]:
        return self._latest

    @property
    def last_success(self) -> Optional[datetime]:
        """Time of the last completed poll, None before the first one"""
        return self._updated_at

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        """True when no poll has completed within three intervals"""
        if self._updated_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        return (now - self._updated_at).total_seconds() > 3 * self.interval

    def current_response(self) -> StatsResponse:
        """Latest statistics wrapped for the API"""
        updated_at = self._updated_at or datetime.now(timezone.utc)
        return StatsResponse(
            interfaces=self._latest,
            updated_at=updated_at.isoformat(timespec="seconds"),
        )

    async def poll_once(self) -> bool:
        """
        Collect, record and publish one set of statistics

        Returns:
            True if a poll completed, False if tc failed and the cycle was skipped
        """
        try:
            stats = await self.collector.collect()
        except TcExecutionError as e:
            logger.warning(f"tc poll failed: {e}")
            self.last_error = str(e)
            return False
        except Exception as e:
            logger.exception("Unexpected error while polling tc")
            self.last_error = f"{type(e).__name__}: {e}"
            return False

        self.history.record(stats, self.interval)
        self._latest = stats
        self._updated_at = datetime.now(timezone.utc)
        self.last_error = None
        self._publish(self.current_response())
        return True

    async def run(self):
        """Poll immediately, then every interval until cancelled"""
        logger.info(f"Polling tc every {self.interval}s")
        try:
            while True:
                await self.poll_once()
                await asyncio.sleep(self.interval)
        except asyncio.CancelledError:
            logger.info("Poller stopped")
            raise

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Poller task failed")
        self._task = None

    def subscribe(self) -> asyncio.Queue:
        """Register an SSE client; each new StatsResponse is put on the queue"""
        queue: asyncio.Queue = asyncio.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)
        self._subscribers.add(queue)
        logger.debug(f"SSE subscriber added ({len(self._subscribers)} total)")
        return queue

    def unsubscribe(self, queue: asyncio.Queue):
        self._subscribers.discard(queue)
        logger.debug(f"SSE subscriber removed ({len(self._subscribers)} total)")

    def _publish(self, response: StatsResponse):
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(response)
            except asyncio.QueueFull:
                # slow client, it will get the next one
                pass
