"""
Shared fakes for the agent tests: a scripted chat session/model (no network) and a recording step sink.

Run from project root:
  python -m pytest tests -v
"""
from typing import Any, Dict, List, Optional

import pytest

from base.base import FunctionCall
from base.errors import ModelError
from base.tools import ExternalToolProvider, ProviderCallResult, ToolRegistry
from llm.model_client import ModelResponse


def text(reply: str) -> ModelResponse:
    return ModelResponse(text=reply)


def calls(*specs, reply: str = "") -> ModelResponse:
    """calls(("show_map", {"location": "Paris"}), ...) -> a response requesting those calls in order."""
    return ModelResponse(
        text=reply,
        function_calls=[FunctionCall(name=n, arguments=a, id=f"call_{i}") for i, (n, a) in enumerate(specs)],
    )


class ScriptedSession:
    """Returns the scripted responses in order; a ModelError in the script is raised instead."""

    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.sent: List[str] = []
        self.tool_batches: List[List[Any]] = []
        self.declined: List[Any] = []

    def _next(self) -> ModelResponse:
        if not self.responses:
            raise AssertionError("ScriptedSession ran out of responses")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def send(self, message: str) -> ModelResponse:
        self.sent.append(message)
        return self._next()

    async def send_tool_results(self, results) -> ModelResponse:
        self.tool_batches.append(list(results))
        return self._next()

    def decline_tool_calls(self, calls, reason):
        self.declined.extend((c.id, reason) for c in calls)


class ScriptedModel:
    """Stands in for ModelClient: start_chat hands out the scripted session."""

    def __init__(
        self,
        responses: List[Any],
        grounded: Any = None,
        title: Any = "Coffee Near Paris",
    ):
        self.session = ScriptedSession(responses)
        self.grounded = grounded
        self.title = title
        self.grounded_prompts: List[str] = []
        self.chat_args: Optional[Dict[str, Any]] = None

    def start_chat(self, system_prompt, history, tools=None):
        self.chat_args = {"system_prompt": system_prompt, "history": history, "tools": tools}
        return self.session

    async def generate_grounded(self, prompt, system_prompt):
        self.grounded_prompts.append(prompt)
        if isinstance(self.grounded, Exception):
            raise self.grounded
        if self.grounded is None:
            raise ModelError("grounding not scripted")
        return self.grounded

    async def generate_title(self, first_message, first_reply):
        if isinstance(self.title, Exception):
            raise self.title
        return self.title


class FakeProvider(ExternalToolProvider):
    """External provider whose call_tool result (or exception) is preset per raw tool name."""

    def __init__(self, provider_id: str, results: Optional[Dict[str, Any]] = None, tools=None):
        self.provider_id = provider_id
        self.results = results or {}
        self.tools = tools or []
        self.calls: List[Any] = []
        self.closed = False

    async def list_tools(self):
        return list(self.tools)

    async def call_tool(self, name, arguments):
        self.calls.append((name, arguments))
        result = self.results.get(name)
        if isinstance(result, Exception):
            raise result
        if callable(result):
            return await result(arguments)
        return result or ProviderCallResult(content=[{"type": "text", "text": "ok"}])

    async def close(self):
        self.closed = True


class RecordingSink:
    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    def __call__(self, event):
        self.events.append(event)

    def types(self) -> List[str]:
        return [e["type"] for e in self.events]


@pytest.fixture
def registry():
    return ToolRegistry()


@pytest.fixture
def sink():
    return RecordingSink()
