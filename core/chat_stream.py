"""
Server-Sent Events for POST /api/chat: step events from the progress queue while the agent task runs,
then one final done (or error) event.
"""

import asyncio
import json
import time
from typing import Any, AsyncIterator, Dict

from loguru import logger

from base.errors import WayfinderError

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # disable nginx buffering
}
HEARTBEAT_INTERVAL_SECONDS = 40.0


def sse_event(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False, default=str)}\n\n"


async def single_event(payload: Dict[str, Any]) -> AsyncIterator[str]:
    yield sse_event(payload)


async def chat_sse_generator(progress_queue: asyncio.Queue, task: asyncio.Task) -> AsyncIterator[str]:
    """
    Yield {type: step, event} until the task finishes and the queue is drained, then {type: done, ...}
    or {type: error, error}. Heartbeat comment every 40s. A client disconnect cancels the task.
    """
    last_yield_time = time.time()
    try:
        while not task.done() or not progress_queue.empty():
            try:
                msg = await asyncio.wait_for(progress_queue.get(), timeout=0.4)
            except asyncio.TimeoutError:
                if time.time() - last_yield_time >= HEARTBEAT_INTERVAL_SECONDS:
                    yield ": heartbeat\n\n"
                    last_yield_time = time.time()
                continue
            if isinstance(msg, dict):
                yield sse_event({"type": "step", "event": msg})
                last_yield_time = time.time()
        try:
            done = task.result()
        except WayfinderError as e:
            logger.error("Chat request failed: {}", e)
            yield sse_event({"type": "error", "error": str(e)[:2000]})
            return
        except Exception as e:
            logger.exception("Chat task failed: {}", e)
            yield sse_event({"type": "error", "error": str(e)[:2000] or "Internal error"})
            return
        yield sse_event({"type": "done", **done})
    finally:
        if not task.done():
            task.cancel()
