from datetime import datetime, timezone
from pydantic import BaseModel, Field
from typing import Dict, List


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QueueTier(BaseModel):
    """Statistics for a single CAKE tin (priority tier)"""
    name: str = ""

    # Configuration and delay figures keep the unit suffix tc printed
    thresh: str = ""
    target: str = ""
    interval: str = ""
    pk_delay: str = ""
    av_delay: str = ""
    sp_delay: str = ""
    backlog: str = ""

    pkts: int = 0
    bytes: int = 0
    way_inds: int = 0
    way_miss: int = 0
    way_cols: int = 0
    drops: int = 0
    marks: int = 0
    ack_drop: int = 0
    sp_flows: int = 0
    bk_flows: int = 0
    un_flows: int = 0
    max_len: int = 0
    quantum: int = 0


class InterfaceSnapshot(BaseModel):
    """Canonical statistics for one CAKE qdisc (one logical interface)"""
    interface: str = ""
    handle: str = ""
    direction: str = "egress"

    bandwidth: str = ""
    diffserv_mode: str = ""
    rtt: str = ""
    overhead: str = ""
    atm_mode: str = ""  # "atm", "ptm" or "" when no framing compensation
    mpu: str = ""
    nat_enabled: bool = False
    wash_enabled: bool = False
    flow_mode: str = ""
    fwmark_mask: str = ""
    memlimit: str = ""
    raw_header: str = ""

    sent_bytes: int = 0
    sent_pkts: int = 0
    dropped: int = 0
    overlimits: int = 0
    requeues: int = 0

    backlog_bytes: str = ""
    backlog_pkts: int = 0

    memory_used: str = ""
    memory_total: str = ""
    capacity_estimate: str = ""

    min_net_size: str = ""
    max_net_size: str = ""
    min_adj_size: str = ""
    max_adj_size: str = ""
    avg_hdr_offset: str = ""

    tiers: List[QueueTier] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=_utcnow)

    # Filled in by HistoryStore.record, zero until the second observation
    tx_bytes_per_s: float = 0.0
    drops_per_s: float = 0.0
    max_av_delay_ms: float = 0.0
    max_pk_delay_ms: float = 0.0


class HistorySample(BaseModel):
    """One time-series point for a single interface"""
    t: int    # unix timestamp (seconds)
    tx: float  # bytes transmitted per second
    av: float  # max av_delay across tiers (ms)
    pk: float  # max pk_delay across tiers (ms)
    dr: float  # drops per second


class StatsResponse(BaseModel):
    """Current statistics for every CAKE interface"""
    interfaces: List[InterfaceSnapshot]
    updated_at: str


HistoryResponse = Dict[str, List[HistorySample]]
