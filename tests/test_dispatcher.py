"""
Tests for core.dispatcher.ToolDispatcher: built-in and external routing, and error-to-Failure conversion.

Run from project root:
  python -m pytest tests/test_dispatcher.py -v
"""
import asyncio
import json

import pytest

from base.base import FunctionCall, ToolDescriptor
from base.errors import ValidationError
from base.tools import Failure, ProviderCallResult, Success, ToolContext, ToolDefinition
from core.dispatcher import ToolDispatcher, validate_arguments
from conftest import FakeProvider


def _register(registry, name, executor, required=("location",)):
    registry.register(ToolDefinition(
        name=name,
        description="test tool",
        parameters={
            "type": "object",
            "properties": {r: {"type": "string"} for r in required},
            "required": list(required),
        },
        execute_async=executor,
    ))


def test_validate_arguments_reports_missing_keys():
    schema = {"required": ["origin", "destination"]}
    validate_arguments(schema, {"origin": "A", "destination": "B"})
    with pytest.raises(ValidationError) as exc:
        validate_arguments(schema, {"origin": "A", "destination": ""})
    assert "destination" in str(exc.value)
    with pytest.raises(ValidationError):
        validate_arguments(schema, ["not", "a", "dict"])


@pytest.mark.asyncio
async def test_unknown_function_is_failure(registry):
    """A name that is neither built-in nor external -> Failure('Unknown function: X')."""
    result = await ToolDispatcher(registry).dispatch(FunctionCall(name="nope"), ToolContext())
    assert isinstance(result, Failure)
    assert result.error_message == "Unknown function: nope"


@pytest.mark.asyncio
async def test_builtin_success_and_string_result(registry):
    """Executor results pass through; a plain string becomes Success(message)."""
    async def show(arguments, context):
        return Success(message=f"map of {arguments['location']}", visual_payload={"type": "map"})

    async def plain(arguments, context):
        return "done"

    _register(registry, "show_map", show)
    _register(registry, "plain", plain)
    dispatcher = ToolDispatcher(registry)
    result = await dispatcher.dispatch(FunctionCall(name="show_map", arguments={"location": "Paris"}), ToolContext())
    assert result.ok and result.message == "map of Paris"
    result = await dispatcher.dispatch(FunctionCall(name="plain", arguments={"location": "x"}), ToolContext())
    assert result.ok and result.message == "done"


@pytest.mark.asyncio
async def test_builtin_exception_becomes_failure(registry):
    """A raising handler is reported as a Failure, never propagated."""
    async def broken(arguments, context):
        raise RuntimeError("database offline")

    _register(registry, "broken", broken)
    result = await ToolDispatcher(registry).dispatch(FunctionCall(name="broken", arguments={"location": "x"}), ToolContext())
    assert isinstance(result, Failure)
    assert "database offline" in result.error_message


@pytest.mark.asyncio
async def test_missing_required_argument_is_failure(registry):
    called = []

    async def show(arguments, context):
        called.append(arguments)
        return Success()

    _register(registry, "show_map", show)
    result = await ToolDispatcher(registry).dispatch(FunctionCall(name="show_map", arguments={}), ToolContext())
    assert isinstance(result, Failure)
    assert "location" in result.error_message
    assert called == []


@pytest.mark.asyncio
async def test_unparseable_arguments_are_failure(registry):
    """FunctionCall.argument_error (bad JSON from the model) short-circuits to a Failure."""
    _register(registry, "show_map", lambda a, c: None)
    call = FunctionCall(name="show_map", arguments={}, argument_error="arguments are not valid JSON")
    result = await ToolDispatcher(registry).dispatch(call, ToolContext())
    assert isinstance(result, Failure)
    assert "not valid JSON" in result.error_message


@pytest.mark.asyncio
async def test_external_call_uses_raw_name(registry):
    """The provider receives the raw (unsanitized) tool name and the arguments."""
    provider = FakeProvider("docs", {"read file": ProviderCallResult(content=[{"type": "text", "text": "contents"}])})
    registry.register_provider("docs", [ToolDescriptor(name="read file", description="Read")], provider)
    result = await ToolDispatcher(registry).dispatch(
        FunctionCall(name="docs__read_file", arguments={"path": "/a"}), ToolContext()
    )
    assert isinstance(result, Success)
    assert result.data == {"result": "contents"}
    assert provider.calls == [("read file", {"path": "/a"})]


@pytest.mark.asyncio
async def test_external_error_result_is_failure(registry):
    provider = FakeProvider("db", {
        "query": ProviderCallResult(is_error=True, content=[{"type": "text", "text": "table missing"}]),
        "empty": ProviderCallResult(is_error=True, content=[]),
    })
    registry.register_provider(
        "db",
        [ToolDescriptor(name="query", description="Q"), ToolDescriptor(name="empty", description="E")],
        provider,
    )
    dispatcher = ToolDispatcher(registry)
    result = await dispatcher.dispatch(FunctionCall(name="db__query"), ToolContext())
    assert result.error_message == "table missing"
    result = await dispatcher.dispatch(FunctionCall(name="db__empty"), ToolContext())
    assert result.error_message == "Unknown MCP tool error"


@pytest.mark.asyncio
async def test_external_exception_is_failure(registry):
    provider = FakeProvider("db", {"query": ConnectionError("pipe closed")})
    registry.register_provider("db", [ToolDescriptor(name="query", description="Q")], provider)
    result = await ToolDispatcher(registry).dispatch(FunctionCall(name="db__query"), ToolContext())
    assert isinstance(result, Failure)
    assert result.error_message == "MCP tool error: pipe closed"


@pytest.mark.asyncio
async def test_external_timeout_is_failure(registry):
    """A provider call exceeding the timeout is reported as a Failure naming the tool."""
    async def slow(arguments):
        await asyncio.sleep(5)

    provider = FakeProvider("slow", {"wait": slow})
    registry.register_provider("slow", [ToolDescriptor(name="wait", description="W")], provider)
    result = await ToolDispatcher(registry, tool_timeout_seconds=0.05).dispatch(FunctionCall(name="slow__wait"), ToolContext())
    assert isinstance(result, Failure)
    assert "timed out" in result.error_message
    assert "slow__wait" in result.error_message


@pytest.mark.asyncio
async def test_disconnected_provider_is_failure(registry):
    """A tool whose provider is gone (but entry still present) fails instead of raising."""
    provider = FakeProvider("db")
    registry.register_provider("db", [ToolDescriptor(name="query", description="Q")], provider)
    registry._providers = {}
    result = await ToolDispatcher(registry).dispatch(FunctionCall(name="db__query"), ToolContext())
    assert isinstance(result, Failure)
    assert "not connected" in result.error_message


@pytest.mark.asyncio
async def test_external_structured_data_extracted_when_requested(registry):
    """needChartData=true: a fenced JSON block becomes structured_data and stays out of the model payload."""
    body = "Sales by month:\n```json\n{\"headers\": [\"Month\", \"Total\"], \"rows\": [[\"Jan\", 10]]}\n```"
    provider = FakeProvider("sales", {"ask": ProviderCallResult(content=[{"type": "text", "text": body}])})
    registry.register_provider("sales", [ToolDescriptor(name="ask", description="Ask")], provider)
    result = await ToolDispatcher(registry).dispatch(
        FunctionCall(name="sales__ask", arguments={"question": "sales", "needChartData": True}), ToolContext()
    )
    assert result.structured_data == {"headers": ["Month", "Total"], "rows": [["Jan", 10]]}
    assert "structured_data" not in json.dumps(result.to_model_payload())
