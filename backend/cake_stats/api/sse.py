import asyncio
import logging
from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from ..services.poller import StatsPoller
from .routes import get_poller

logger = logging.getLogger(__name__)

sse_router = APIRouter()

RETRY_MS = 2000
# How often to check for a disconnected client while no poll arrives
DISCONNECT_CHECK_SECONDS = 5.0


@sse_router.get("/stats/stream")
async def stream_stats(request: Request, poller: StatsPoller = Depends(get_poller)):
    """
    Server-Sent Events endpoint for real-time statistics

    Sends the current snapshot right away (when there is one), then one
    "stats" event per completed poll.
    """
    queue = poller.subscribe()

    async def event_generator():
        """Generate SSE events with statistics data"""
        try:
            if poller.latest:
                yield {
                    "event": "stats",
                    "retry": RETRY_MS,
                    "data": poller.current_response().model_dump_json(),
                }

            while True:
                if await request.is_disconnected():
                    logger.info("Client disconnected from SSE stream")
                    break
                try:
                    response = await asyncio.wait_for(queue.get(), DISCONNECT_CHECK_SECONDS)
                except asyncio.TimeoutError:
                    continue
                yield {
                    "event": "stats",
                    "retry": RETRY_MS,
                    "data": response.model_dump_json(),
                }
        finally:
            poller.unsubscribe(queue)

    return EventSourceResponse(event_generator())
