from fastapi import APIRouter, Depends, Request
from typing import Dict, List

from ..models.metrics import HistorySample, StatsResponse
from ..services.poller import StatsPoller

router = APIRouter()


def get_poller(request: Request) -> StatsPoller:
    """The application's poller, created in main.lifespan"""
    return request.app.state.poller


@router.get("/health")
async def health_check(poller: StatsPoller = Depends(get_poller)):
    """
    Health check endpoint

    Reports "degraded" when the poll loop is not running or no poll has
    completed within three intervals.
    """
    last_success = poller.last_success
    healthy = poller.running and not poller.is_stale()
    return {
        "status": "healthy" if healthy else "degraded",
        "service": "cake-stats",
        "interfaces": len(poller.latest),
        "polling": poller.running,
        "last_poll": last_success.isoformat(timespec="seconds") if last_success else None,
        "last_error": poller.last_error,
    }


@router.get("/stats", response_model=StatsResponse)
async def get_stats(poller: StatsPoller = Depends(get_poller)):
    """Latest statistics for every CAKE interface (non-streaming)"""
    return poller.current_response()


@router.get("/history", response_model=Dict[str, List[HistorySample]])
def get_history(poller: StatsPoller = Depends(get_poller)):
    """
    Rate/delay history per interface, oldest sample first

    Interfaces seen only once so far have no samples and are omitted.
    """
    return poller.history.snapshot()
