"""
Tests for core.emitter.StepEmitter sinks and core.log_helpers.

Run from project root:
  python -m pytest tests/test_emitter.py -v
"""
import asyncio

import pytest

from core.emitter import StepEmitter
from core.log_helpers import _truncate_for_log, redact_params_for_log


@pytest.mark.asyncio
async def test_queue_sink_receives_events_in_order():
    queue: asyncio.Queue = asyncio.Queue()
    emitter = StepEmitter(queue)
    await emitter.tool_call("show_map", {"location": "Paris"}, 1, "Map: Paris")
    await emitter.tool_result("show_map", 1, "Showing Paris")
    assert queue.get_nowait() == {
        "type": "tool_call", "name": "show_map", "args": {"location": "Paris"}, "step": 1, "label": "Map: Paris",
    }
    assert queue.get_nowait() == {"type": "tool_result", "name": "show_map", "step": 1, "summary": "Showing Paris"}


@pytest.mark.asyncio
async def test_async_sink_and_artifact_alias():
    received = []

    async def sink(event):
        received.append(event)

    await StepEmitter(sink).artifact({"title": "Sales", "html": "<html></html>"})
    assert received == [{"type": "artifact", "artifactData": {"title": "Sales", "html": "<html></html>"}}]


@pytest.mark.asyncio
async def test_failing_sink_does_not_raise():
    """A sink that raises is logged; the request keeps going."""
    def sink(event):
        raise RuntimeError("client gone")

    await StepEmitter(sink).retry(1, "low confidence")
    await StepEmitter(None).web_search(1, "Searching the web")


def test_log_helpers():
    assert _truncate_for_log("") == ""
    assert _truncate_for_log("abcdef", 3) == "abc\n... (truncated)"
    assert redact_params_for_log({"to": "a@example.org", "api_key": "k", "smtp_password": "p"}) == {
        "to": "a@example.org", "api_key": "***", "smtp_password": "***",
    }
    assert redact_params_for_log(["x"]) == ["x"]
