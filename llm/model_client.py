"""
Model client over LiteLLM (acompletion): function-calling chat sessions, web-grounded generation
and title generation. Any failure of the model call itself is raised as ModelError.
"""

import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import litellm
from litellm import acompletion
from loguru import logger

from base.base import FunctionCall
from base.errors import ModelError
from core.log_helpers import _truncate_for_log

# Drop unsupported params per provider (latest LiteLLM: https://github.com/BerriAI/litellm)
litellm.drop_params = True

TITLE_PROMPT = """Generate a very short title (3-5 words max) for a conversation that starts with:
User: {message}
Assistant: {reply}

Return only the title, nothing else."""


def _response_to_dict(obj: Any) -> dict:
    """Serialize LiteLLM response (Pydantic v2 model_dump or to_json)."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump(exclude_none=True)
    if hasattr(obj, "to_json"):
        return json.loads(obj.to_json())
    return dict(obj)


@dataclass
class ModelResponse:
    text: str = ""
    function_calls: List[FunctionCall] = field(default_factory=list)
    citations: Optional[List[Dict[str, Any]]] = None


def _parse_function_calls(message: Dict[str, Any]) -> List[FunctionCall]:
    calls: List[FunctionCall] = []
    for tc in message.get("tool_calls") or []:
        if not isinstance(tc, dict):
            continue
        fn = tc.get("function") or {}
        name = fn.get("name") or ""
        if not name:
            continue
        raw_args = fn.get("arguments")
        arguments: Dict[str, Any] = {}
        argument_error = None
        if isinstance(raw_args, dict):
            arguments = raw_args
        elif raw_args:
            try:
                parsed = json.loads(raw_args)
            except json.JSONDecodeError as e:
                argument_error = f"arguments are not valid JSON ({e.msg})"
            else:
                if isinstance(parsed, dict):
                    arguments = parsed
                else:
                    argument_error = "arguments must be a JSON object"
        calls.append(FunctionCall(
            name=name,
            arguments=arguments,
            id=tc.get("id") or f"call_{uuid.uuid4().hex[:24]}",
            argument_error=argument_error,
        ))
    return calls


def _extract_citations(response: Any, data: Dict[str, Any]) -> Optional[List[Dict[str, Any]]]:
    """Web sources from Gemini grounding metadata or OpenAI url_citation annotations."""
    citations: List[Dict[str, Any]] = []
    metadata = getattr(response, "vertex_ai_grounding_metadata", None) or data.get("vertex_ai_grounding_metadata") or []
    if isinstance(metadata, dict):
        metadata = [metadata]
    for entry in metadata:
        if not isinstance(entry, dict):
            continue
        for chunk in entry.get("groundingChunks") or []:
            web = chunk.get("web") if isinstance(chunk, dict) else None
            if not isinstance(web, dict):
                continue
            citations.append({
                "title": web.get("title") or "",
                "link": web.get("uri") or "",
                "snippet": "",
                "display_link": web.get("domain") or web.get("title") or "",
            })
    if not citations:
        message = ((data.get("choices") or [{}])[0] or {}).get("message") or {}
        for annotation in message.get("annotations") or []:
            cite = annotation.get("url_citation") if isinstance(annotation, dict) else None
            if not isinstance(cite, dict):
                continue
            citations.append({
                "title": cite.get("title") or "",
                "link": cite.get("url") or "",
                "snippet": "",
                "display_link": cite.get("title") or "",
            })
    return citations or None


class ModelClient:
    """One configured model (plus the model used for grounded generation)."""

    def __init__(
        self,
        model: str,
        grounding_model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        num_retries: int = 2,
    ):
        self.model = model
        self.grounding_model = grounding_model or model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.num_retries = num_retries

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        model: Optional[str] = None,
        **extra: Any,
    ) -> Tuple[Any, Dict[str, Any]]:
        """One acompletion call. Returns (raw response, dict form). Raises ModelError."""
        kwargs: Dict[str, Any] = {
            "model": model or self.model,
            "messages": messages,
            "num_retries": self.num_retries,
        }
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        if self.max_tokens:
            kwargs["max_tokens"] = self.max_tokens
        kwargs.update({k: v for k, v in extra.items() if v is not None})
        try:
            response = await acompletion(**kwargs)
        except Exception as e:
            logger.error("Model call failed (model={}): {}", kwargs["model"], e)
            raise ModelError(f"Model call failed: {e}") from e
        data = _response_to_dict(response)
        if not data.get("choices"):
            raise ModelError("Model returned no choices")
        return response, data

    def start_chat(
        self,
        system_prompt: str,
        history: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> "ChatSession":
        return ChatSession(self, system_prompt, history, tools)

    def _grounding_kwargs(self) -> Dict[str, Any]:
        model = self.grounding_model.lower()
        if model.startswith(("gemini/", "vertex_ai/")):
            return {"tools": [{"googleSearch": {}}]}
        return {"web_search_options": {"search_context_size": "medium"}}

    async def generate_grounded(self, prompt: str, system_prompt: str) -> ModelResponse:
        """Single-turn answer with provider web search enabled and no function declarations."""
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": prompt},
        ]
        response, data = await self.complete(messages, model=self.grounding_model, **self._grounding_kwargs())
        message = data["choices"][0].get("message") or {}
        return ModelResponse(
            text=message.get("content") or "",
            citations=_extract_citations(response, data),
        )

    async def generate_title(self, first_message: str, first_reply: str) -> str:
        prompt = TITLE_PROMPT.format(message=first_message, reply=first_reply)
        _, data = await self.complete([{"role": "user", "content": prompt}])
        text = (data["choices"][0].get("message") or {}).get("content") or ""
        return text.strip().strip('"').strip()


class ChatSession:
    """
    Multi-turn function-calling session. Holds the message list (system + history + this request's
    turns); send() appends the user turn, send_tool_results() appends one tool message per call.
    """

    def __init__(
        self,
        client: ModelClient,
        system_prompt: str,
        history: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ):
        self.client = client
        self.tools = tools or None
        self.messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        self.messages.extend(history or [])

    async def send(self, message: str) -> ModelResponse:
        self.messages.append({"role": "user", "content": message})
        return await self._complete()

    async def send_tool_results(self, results: List[Tuple[FunctionCall, Dict[str, Any]]]) -> ModelResponse:
        """Feed one batch of tool outcomes (model-visible payloads) back, in call order."""
        for call, payload in results:
            self.messages.append({
                "role": "tool",
                "tool_call_id": call.id,
                "name": call.name,
                "content": json.dumps(payload, ensure_ascii=False, default=str),
            })
        return await self._complete()

    def decline_tool_calls(self, calls: List[FunctionCall], reason: str) -> None:
        """Answer calls that will not be executed so the transcript stays valid for the next turn."""
        for call in calls:
            self.messages.append({
                "role": "tool",
                "tool_call_id": call.id,
                "name": call.name,
                "content": json.dumps({"error": reason}, ensure_ascii=False),
            })

    async def _complete(self) -> ModelResponse:
        _, data = await self.client.complete(self.messages, tools=self.tools)
        message = data["choices"][0].get("message") or {}
        calls = _parse_function_calls(message)
        text = message.get("content") or ""
        assistant: Dict[str, Any] = {"role": "assistant", "content": (text or None) if calls else text}
        if calls:
            assistant["tool_calls"] = [
                {
                    "id": c.id,
                    "type": "function",
                    "function": {"name": c.name, "arguments": json.dumps(c.arguments, ensure_ascii=False)},
                }
                for c in calls
            ]
        self.messages.append(assistant)
        logger.debug(
            "Model response: calls={} text={}",
            [c.name for c in calls],
            _truncate_for_log(text, 500),
        )
        return ModelResponse(text=text, function_calls=calls)
