"""
Step emitter: pushes progress events to the caller while a request runs. The sink is a callback
(sync or async) or an asyncio.Queue; a failing sink is logged and never breaks the request.
"""

import asyncio
import inspect
from typing import Any, Callable, Dict, Optional, Union

from loguru import logger

from base.base import StepEvent, StepEventType

StepSink = Union[Callable[[Dict[str, Any]], Any], asyncio.Queue]


class StepEmitter:

    def __init__(self, sink: Optional[StepSink] = None):
        self.sink = sink

    async def emit(self, event: StepEvent) -> None:
        if self.sink is None:
            return
        payload = event.to_dict()
        try:
            if isinstance(self.sink, asyncio.Queue):
                self.sink.put_nowait(payload)
            else:
                result = self.sink(payload)
                if inspect.isawaitable(result):
                    await result
        except Exception as e:
            logger.warning("Step event sink failed for {}: {}", payload.get("type"), e)

    async def tool_call(self, name: str, args: Dict[str, Any], step: int, label: str) -> None:
        await self.emit(StepEvent(type=StepEventType.TOOL_CALL.value, name=name, args=args, step=step, label=label))

    async def tool_result(self, name: str, step: int, summary: str) -> None:
        await self.emit(StepEvent(type=StepEventType.TOOL_RESULT.value, name=name, step=step, summary=summary))

    async def retry(self, attempt: int, reason: str) -> None:
        await self.emit(StepEvent(type=StepEventType.RETRY.value, attempt=attempt, reason=reason))

    async def web_search(self, step: int, label: str) -> None:
        await self.emit(StepEvent(type=StepEventType.WEB_SEARCH.value, step=step, label=label))

    async def artifact(self, artifact_data: Dict[str, Any]) -> None:
        await self.emit(StepEvent(type=StepEventType.ARTIFACT.value, artifact_data=artifact_data))
