"""
Result aggregation for one request: ordered visual-payload merge, artifact selection, citations and
the empty-reply summary fallback.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from base.base import FunctionCall
from base.errors import ModelError
from base.tools import FunctionResult
from core.artifacts import build_artifact
from core.log_helpers import _component_log

SUMMARY_INSTRUCTION = (
    "Please provide a comprehensive answer to the user's question based on the information you just retrieved."
)


@dataclass
class StepRecord:
    """One dispatched call within a request."""

    step_index: int
    call: FunctionCall
    result: FunctionResult
    human_label: str


def merge_visual_payloads(records: Iterable[StepRecord]) -> Optional[Dict[str, Any]]:
    """0 payloads -> None; 1 -> that payload; more -> {type: multi, steps: [{label, map_data}]} in call order."""
    steps = [
        {"label": r.human_label, "map_data": r.result.visual_payload}
        for r in records
        if r.result.ok and r.result.visual_payload is not None
    ]
    if not steps:
        return None
    if len(steps) == 1:
        return steps[0]["map_data"]
    return {"type": "multi", "steps": steps}


class ResultAggregator:

    def __init__(self):
        self.visual_records: List[StepRecord] = []
        self.citations: List[Dict[str, Any]] = []
        self.successful_calls = 0
        self._artifact: Optional[Dict[str, Any]] = None
        self._artifact_explicit = False

    @property
    def artifact(self) -> Optional[Dict[str, Any]]:
        return self._artifact

    def add_visual_records(self, records: Iterable[StepRecord]) -> None:
        self.visual_records.extend(records)

    def visual_payload(self) -> Optional[Dict[str, Any]]:
        return merge_visual_payloads(self.visual_records)

    def observe(self, record: StepRecord) -> Optional[Dict[str, Any]]:
        """
        Track citations and artifacts from one call. Returns the artifact when this call selected one
        (so it can be streamed), else None. A ready-made artifact beats built ones; the first of each kind wins.
        """
        result = record.result
        if not result.ok:
            return None
        self.successful_calls += 1
        if result.citations:
            self.citations.extend(result.citations)
        if result.artifact and not self._artifact_explicit:
            self._artifact = result.artifact
            self._artifact_explicit = True
            return self._artifact
        if result.structured_data is not None and self._artifact is None:
            artifact = build_artifact(record.call.name, result.structured_data)
            if artifact is not None:
                self._artifact = artifact
                return artifact
        return None

    async def ensure_reply_text(self, session: Any, reply_text: str) -> str:
        """Empty reply after at least one successful call: ask the model once for a summary. Failure keeps the empty reply."""
        if reply_text or self.successful_calls == 0:
            return reply_text or ""
        _component_log("aggregator", "empty reply after tool calls; requesting summary")
        try:
            response = await session.send(SUMMARY_INSTRUCTION)
        except ModelError as e:
            logger.error("Summary fallback failed: {}", e)
            return ""
        return response.text or ""
