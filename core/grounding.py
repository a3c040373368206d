"""
Grounding fallback: when no tool was dispatched in any attempt, answer the original message once more
with provider web search instead of function calling. Failure keeps the earlier response.
"""

from typing import Iterable, Optional

from loguru import logger

from base.errors import ModelError
from core.emitter import StepEmitter
from core.log_helpers import _component_log
from llm.model_client import ModelClient, ModelResponse

WEB_SEARCH_TOOL = "web_search"
GROUNDING_SYSTEM_PROMPT = "You are a helpful assistant. Answer questions using information from Google Search."
GROUNDING_LABEL = "Searching the web for current information"


def web_search_enabled(enabled_tools: Optional[Iterable[str]]) -> bool:
    """No enable list = everything enabled."""
    return enabled_tools is None or WEB_SEARCH_TOOL in enabled_tools


class GroundingFallback:

    def __init__(self, model: ModelClient, emitter: Optional[StepEmitter] = None):
        self.model = model
        self.emitter = emitter or StepEmitter()

    @staticmethod
    def should_run(total_steps: int, enabled_tools: Optional[Iterable[str]]) -> bool:
        return total_steps == 0 and web_search_enabled(enabled_tools)

    async def run(self, user_message: str) -> Optional[ModelResponse]:
        """Grounded response, or None when the grounded call failed."""
        _component_log("grounding", "no function calls; trying web-grounded generation")
        await self.emitter.web_search(1, GROUNDING_LABEL)
        try:
            response = await self.model.generate_grounded(user_message, GROUNDING_SYSTEM_PROMPT)
        except ModelError as e:
            logger.error("[grounding] failed, keeping previous response: {}", e)
            return None
        count = len(response.citations or [])
        _component_log("grounding", f"found {count} web sources")
        await self.emitter.tool_result(WEB_SEARCH_TOOL, 1, f"Found {count} web sources")
        return response
