"""
Reflexion: when an attempt used no tool successfully and its answer looks unsatisfactory, re-run the
step engine on the same session with a corrective instruction, up to max_retries times.
"""

from dataclasses import dataclass
from typing import Any, Optional

from core.aggregator import ResultAggregator
from core.emitter import StepEmitter
from core.log_helpers import _component_log
from core.step_engine import StepEngine, StepRunResult
from llm.model_client import ModelResponse

RETRY_INSTRUCTION = (
    "Please search more thoroughly using the available tools to find a complete answer to the user's original question."
)
RETRY_REASON = "Searching for more information"

MIN_SATISFACTORY_LENGTH = 60
LOW_CONFIDENCE_PHRASES = (
    "i don't know",
    "i couldn't find",
    "i'm unable to",
    "i am unable to",
    "no information",
    "i cannot",
    "i can't",
    "i'm not sure",
    "i am not sure",
    "unfortunately",
    "i don't have access",
    "i was unable",
)


def is_unsatisfactory_response(text: Optional[str]) -> bool:
    """Empty, shorter than 60 chars after trimming, or containing a low-confidence phrase (case-insensitive)."""
    if not text or len(text.strip()) < MIN_SATISFACTORY_LENGTH:
        return True
    lower = text.lower()
    return any(phrase in lower for phrase in LOW_CONFIDENCE_PHRASES)


@dataclass
class ReflexionOutcome:
    response: ModelResponse
    total_steps: int
    successful_calls: int
    retries: int


class ReflexionController:

    def __init__(self, engine: StepEngine, emitter: Optional[StepEmitter] = None, max_retries: int = 2):
        self.engine = engine
        self.emitter = emitter or StepEmitter()
        self.max_retries = max_retries

    def should_retry(self, attempt: StepRunResult) -> bool:
        return attempt.successful_calls == 0 and is_unsatisfactory_response(attempt.response.text)

    async def run(
        self,
        session: Any,
        first: StepRunResult,
        aggregator: Optional[ResultAggregator] = None,
    ) -> ReflexionOutcome:
        """
        Drive retries after the first attempt. Each retry gets a full step budget; step numbers continue
        from the steps already taken. ModelError from a retry propagates.
        """
        latest = first
        total_steps = first.steps
        successful = first.successful_calls
        retries = 0
        while retries < self.max_retries and self.should_retry(latest):
            retries += 1
            _component_log("reflexion", f"retry {retries}/{self.max_retries}: no tools used, answer unsatisfactory")
            await self.emitter.retry(retries, RETRY_REASON)
            latest = await self.engine.run(session, RETRY_INSTRUCTION, step_offset=total_steps)
            total_steps += latest.steps
            successful += latest.successful_calls
            if aggregator is not None:
                aggregator.add_visual_records(latest.visual_records)
        return ReflexionOutcome(
            response=latest.response,
            total_steps=total_steps,
            successful_calls=successful,
            retries=retries,
        )
