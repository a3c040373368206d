"""
Step engine: the ReAct loop. Send a message, dispatch every requested call in order, feed the batch
of results back, repeat until the model stops calling tools or the step budget is used up.

States and transitions (transition() is pure):
  AWAITING_MODEL --no calls-------------> DONE
  AWAITING_MODEL --calls, steps < max---> DISPATCHING --> AWAITING_MODEL
  AWAITING_MODEL --calls, steps >= max--> STEP_LIMIT_REACHED --> DONE
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from base.base import FunctionCall
from base.tools import ToolContext
from core.aggregator import ResultAggregator, StepRecord
from core.dispatcher import ToolDispatcher
from core.emitter import StepEmitter
from core.labels import describe_step, label_for_call, summarize_result
from core.log_helpers import _component_log
from llm.model_client import ModelResponse


STEP_LIMIT_REASON = "Step limit reached; this call was not executed."


class StepState(Enum):
    AWAITING_MODEL = "awaiting_model"
    DISPATCHING = "dispatching"
    STEP_LIMIT_REACHED = "step_limit_reached"
    DONE = "done"


def transition(state: StepState, pending_calls: int, steps: int, max_steps: int) -> StepState:
    if state is StepState.AWAITING_MODEL:
        if pending_calls == 0:
            return StepState.DONE
        if steps < max_steps:
            return StepState.DISPATCHING
        return StepState.STEP_LIMIT_REACHED
    if state is StepState.DISPATCHING:
        return StepState.AWAITING_MODEL
    return StepState.DONE


@dataclass
class StepRunResult:
    response: ModelResponse
    steps: int = 0
    successful_calls: int = 0
    visual_records: List[StepRecord] = field(default_factory=list)
    hit_step_limit: bool = False


class StepEngine:
    """One request's loop driver. run() may be called again on the same session (reflexion retries)."""

    def __init__(
        self,
        dispatcher: ToolDispatcher,
        context: ToolContext,
        emitter: Optional[StepEmitter] = None,
        aggregator: Optional[ResultAggregator] = None,
        max_steps: int = 10,
    ):
        self.dispatcher = dispatcher
        self.context = context
        self.emitter = emitter or StepEmitter()
        self.aggregator = aggregator
        self.max_steps = max_steps

    async def run(self, session: Any, message: str, step_offset: int = 0) -> StepRunResult:
        """Start with message (user message or corrective instruction). Step numbers in events start after step_offset."""
        response: ModelResponse = await session.send(message)
        result = StepRunResult(response=response)
        state = StepState.AWAITING_MODEL
        while state is not StepState.DONE:
            if state is StepState.DISPATCHING:
                result.steps += 1
                tool_results = await self._dispatch_round(response.function_calls, step_offset + result.steps, result)
                response = await session.send_tool_results(tool_results)
                result.response = response
            elif state is StepState.STEP_LIMIT_REACHED:
                logger.warning("[react] step limit {} reached; using last model response", self.max_steps)
                result.hit_step_limit = True
                session.decline_tool_calls(response.function_calls, STEP_LIMIT_REASON)
            state = transition(state, len(response.function_calls), result.steps, self.max_steps)
        return result

    async def _dispatch_round(
        self,
        calls: List[FunctionCall],
        step: int,
        result: StepRunResult,
    ) -> List[Tuple[FunctionCall, Dict[str, Any]]]:
        _component_log("react", f"step {step}: executing {', '.join(c.name for c in calls)}")
        tool_results: List[Tuple[FunctionCall, Dict[str, Any]]] = []
        for call in calls:
            await self.emitter.tool_call(call.name, call.arguments, step, describe_step(call.name, call.arguments))
            outcome = await self.dispatcher.dispatch(call, self.context)
            logger.info("[react] {} -> {}", call.name, "SUCCESS" if outcome.ok else f"ERROR: {outcome.error_message}")
            record = StepRecord(
                step_index=step,
                call=call,
                result=outcome,
                human_label=label_for_call(call.name, call.arguments),
            )
            if outcome.ok:
                result.successful_calls += 1
                if outcome.visual_payload is not None:
                    result.visual_records.append(record)
            if self.aggregator is not None:
                artifact = self.aggregator.observe(record)
                if artifact is not None:
                    await self.emitter.artifact(artifact)
            await self.emitter.tool_result(call.name, step, summarize_result(call.name, call.arguments, outcome))
            tool_results.append((call, outcome.to_model_payload()))
        return tool_results
