"""
Agent service: owns the tool registry and the collaborators, and runs one orchestration per request:

  context builder -> step engine -> reflexion retries -> grounding fallback (conditional) -> aggregation

run() is transport-agnostic; chat() adds conversation persistence and title generation on top.
"""

import uuid
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from base.base import AgentRunResult, ConversationTurn, KnowledgeDocument, Role, UserLocation
from base.config import Settings
from base.errors import ModelError
from base.history import ConversationStore, InMemoryConversationStore
from base.tools import ToolContext, ToolRegistry
from core.aggregator import ResultAggregator
from core.context_builder import ContextBuilder
from core.dispatcher import ToolDispatcher
from core.emitter import StepEmitter, StepSink
from core.grounding import GroundingFallback
from core.log_helpers import _component_log, _truncate_for_log
from core.reflexion import ReflexionController
from core.step_engine import StepEngine
from llm.model_client import ModelClient

EMPTY_REPLY_WITH_ARTIFACT = "Here is the visualization based on the data retrieved."
EMPTY_REPLY = "I retrieved the information successfully."
DEFAULT_TITLE = "New Chat"


class AgentService:

    def __init__(
        self,
        model: ModelClient,
        registry: ToolRegistry,
        settings: Optional[Settings] = None,
        store: Optional[ConversationStore] = None,
        knowledge_base: Any = None,
        maps: Any = None,
        mailer: Any = None,
        context_builder: Optional[ContextBuilder] = None,
    ):
        self.model = model
        self.registry = registry
        self.settings = settings or Settings()
        self.store = store or InMemoryConversationStore()
        self.knowledge_base = knowledge_base
        self.maps = maps
        self.mailer = mailer
        self.context_builder = context_builder or ContextBuilder(self.settings.max_history_messages())

    async def _ready_documents(self) -> List[KnowledgeDocument]:
        if self.knowledge_base is None:
            return []
        try:
            documents = await self.knowledge_base.list_documents()
        except Exception as e:
            logger.warning("Knowledge base listing failed: {}", e)
            return []
        return [d for d in documents if d.status == "ready"]

    async def run(
        self,
        message: str,
        history: Sequence[ConversationTurn] = (),
        user_location: Optional[UserLocation] = None,
        enabled_tools: Optional[Sequence[str]] = None,
        on_step: Optional[StepSink] = None,
        conversation_id: Optional[str] = None,
    ) -> AgentRunResult:
        """One orchestration. Raises ModelError when the model call itself fails; tool failures never raise."""
        request_id = uuid.uuid4().hex
        emitter = StepEmitter(on_step)
        aggregator = ResultAggregator()
        descriptors = self.registry.list(enabled_tools)
        context = self.context_builder.build(
            history,
            message,
            user_location=user_location,
            documents=await self._ready_documents(),
            external_tools=[d.name for d in descriptors if d.source == "mcp"],
        )
        session = self.model.start_chat(
            context.system_prompt,
            context.history,
            [d.to_openai_function() for d in descriptors],
        )
        tool_context = ToolContext(
            request_id=request_id,
            conversation_id=conversation_id,
            user_location=user_location,
            maps=self.maps,
            mailer=self.mailer,
            knowledge_base=self.knowledge_base,
        )
        dispatcher = ToolDispatcher(self.registry, self.settings.tool_timeout_seconds())
        engine = StepEngine(dispatcher, tool_context, emitter, aggregator, self.settings.max_steps())
        _component_log("agent", f"request {request_id[:8]}: {len(descriptors)} tools, message={_truncate_for_log(message, 200)}")

        first = await engine.run(session, context.user_message)
        aggregator.add_visual_records(first.visual_records)
        outcome = await ReflexionController(engine, emitter, self.settings.max_retries()).run(session, first, aggregator)
        response = outcome.response

        citations = None
        if GroundingFallback.should_run(outcome.total_steps, enabled_tools):
            grounded = await GroundingFallback(self.model, emitter).run(message)
            if grounded is not None:
                response = grounded
                citations = grounded.citations

        reply_text = await aggregator.ensure_reply_text(session, response.text)
        _component_log(
            "agent",
            f"request {request_id[:8]} done: steps={outcome.total_steps} retries={outcome.retries} "
            f"successful_calls={outcome.successful_calls}",
        )
        return AgentRunResult(
            reply_text=reply_text,
            visual_payload=aggregator.visual_payload(),
            citations=citations or aggregator.citations or None,
            artifact=aggregator.artifact,
        )

    async def generate_title(self, first_message: str, first_reply: str) -> Optional[str]:
        """3-5 word title, or None when the model call failed."""
        try:
            title = await self.model.generate_title(first_message, first_reply)
        except ModelError as e:
            logger.error("Error generating title: {}", e)
            return None
        return title or None

    async def chat(
        self,
        message: str,
        conversation_id: Optional[str] = None,
        user_location: Optional[UserLocation] = None,
        enabled_tools: Optional[Sequence[str]] = None,
        on_step: Optional[StepSink] = None,
    ) -> Dict[str, Any]:
        """Run one turn of a stored conversation and return the done payload for the transport."""
        is_new = not conversation_id or not self.store.exists(conversation_id)
        if is_new:
            conversation_id = conversation_id or str(uuid.uuid4())
            self.store.create(conversation_id, DEFAULT_TITLE)
        history = self.store.get_turns(conversation_id)
        self.store.add_turn(conversation_id, ConversationTurn(role=Role.USER.value, text=message))

        result = await self.run(
            message,
            history,
            user_location=user_location,
            enabled_tools=enabled_tools,
            on_step=on_step,
            conversation_id=conversation_id,
        )
        reply = result.reply_text or (EMPTY_REPLY_WITH_ARTIFACT if result.artifact else EMPTY_REPLY)
        self.store.add_turn(conversation_id, ConversationTurn(
            role=Role.ASSISTANT.value,
            text=reply,
            visual_payload=result.visual_payload,
            citations=result.citations,
        ))
        if is_new:
            title = await self.generate_title(message, reply)
            if title:
                self.store.set_title(conversation_id, title)
        return {
            "conversation_id": conversation_id,
            "reply": reply,
            "map_data": result.visual_payload,
            "search_results": result.citations,
            "artifact_data": result.artifact,
            "is_new_conversation": is_new,
        }
