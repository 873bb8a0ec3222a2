import logging
from datetime import datetime, timezone
from typing import List, Optional, Union

from ..models.metrics import InterfaceSnapshot
from ..utils.aggregator import merge_multiqueue
from ..utils.errors import StatsDecodeError, TcExecutionError
from ..utils.parsers import parse_blocks, parse_json_stats
from ..utils.tc_exec import TcExecutor

logger = logging.getLogger(__name__)


def collect_stats(raw: Union[str, bytes], updated_at: Optional[datetime] = None) -> List[InterfaceSnapshot]:
    """
    Turn raw "tc -s qdisc" output into one snapshot per logical CAKE interface

    cake_mq hardware queues are merged; a report with no CAKE qdiscs gives [].
    """
    updated_at = updated_at or datetime.now(timezone.utc)
    return merge_multiqueue(parse_blocks(raw, updated_at))


async def probe_json_support(executor: TcExecutor) -> bool:
    """Check once whether the tc binary can emit JSON ("tc -j")"""
    try:
        exit_code, output = await executor.exec_command(["-j", "-s", "qdisc"])
    except TcExecutionError as e:
        logger.info(f"tc JSON probe failed: {e}")
        return False
    if exit_code != 0:
        return False
    try:
        parse_json_stats(output)
    except StatsDecodeError:
        return False
    return True


class StatsCollector:
    """Collect CAKE statistics through a TcExecutor"""

    def __init__(self, executor: TcExecutor, use_json: bool = False):
        self.executor = executor
        self.use_json = use_json

    async def collect(self) -> List[InterfaceSnapshot]:
        """
        Run tc and parse its output

        The text report is the default because it carries tin names, delays
        and per-tin counters. With use_json the JSON report is tried first and
        the text report is used if it cannot be decoded.

        Raises:
            TcExecutionError: If tc could not be run
        """
        if self.use_json:
            output = await self.executor.qdisc_stats(as_json=True)
            try:
                return parse_json_stats(output)
            except StatsDecodeError as e:
                logger.warning(f"Falling back to text output: {e}")

        output = await self.executor.qdisc_stats()
        return collect_stats(output)

    def close(self):
        self.executor.close()
