"""
Tool dispatcher: route one FunctionCall to a built-in handler or an external provider and return a
FunctionResult. Every tool-level error becomes a Failure here; nothing raises across dispatch().
"""

import asyncio
from typing import Any, Dict, Optional

from loguru import logger

from base.base import FunctionCall
from base.errors import (
    ProviderUnavailableError,
    ToolExecutionError,
    ToolTimeoutError,
    ValidationError,
    WayfinderError,
)
from base.tools import ExternalToolEntry, Failure, FunctionResult, Success, ToolContext, ToolRegistry
from core.log_helpers import _component_log, redact_params_for_log
from core.structured_data import extract_structured_data, wants_structured_data


def validate_arguments(schema: Optional[Dict[str, Any]], arguments: Any) -> None:
    """Check arguments against the schema's required list. Raises ValidationError."""
    if not isinstance(arguments, dict):
        raise ValidationError("Arguments must be a JSON object")
    required = (schema or {}).get("required") or []
    missing = [key for key in required if arguments.get(key) is None or arguments.get(key) == ""]
    if missing:
        raise ValidationError(f"Missing required argument(s): {', '.join(missing)}")


class ToolDispatcher:

    def __init__(self, registry: ToolRegistry, tool_timeout_seconds: float = 120.0):
        self.registry = registry
        self.tool_timeout_seconds = tool_timeout_seconds

    async def dispatch(self, call: FunctionCall, context: ToolContext) -> FunctionResult:
        name = call.name or ""
        logger.info("Tool selected: name={} parameters={}", name, redact_params_for_log(call.arguments))
        try:
            if call.argument_error:
                raise ValidationError(f"Invalid arguments for {name}: {call.argument_error}")
            entry = self.registry.get_external(name)
            if entry is not None:
                result = await self._dispatch_external(entry, call.arguments)
            else:
                result = await self._dispatch_builtin(name, call.arguments, context)
        except WayfinderError as e:
            result = Failure(str(e))
        _component_log("tools", f"tool {name}({list(call.arguments.keys()) if isinstance(call.arguments, dict) else '...'}) -> {'ok' if result.ok else 'error'}")
        return result

    async def _dispatch_builtin(self, name: str, arguments: Dict[str, Any], context: ToolContext) -> FunctionResult:
        tool = self.registry.get_builtin(name)
        if tool is None:
            return Failure(f"Unknown function: {name}")
        validate_arguments(tool.parameters, arguments)
        try:
            result = await tool.execute_async(arguments, context)
        except WayfinderError:
            raise
        except Exception as e:
            logger.exception("Tool {} raised: {}", name, e)
            raise ToolExecutionError(str(e) or type(e).__name__) from e
        if isinstance(result, (Success, Failure)):
            return result
        if isinstance(result, str):
            return Success(message=result)
        if result is None:
            return Success()
        raise ToolExecutionError(f"Tool {name} returned unsupported result type {type(result).__name__}")

    async def _dispatch_external(self, entry: ExternalToolEntry, arguments: Dict[str, Any]) -> FunctionResult:
        name = entry.descriptor.name
        provider = self.registry.get_provider(entry.provider_id)
        if provider is None:
            raise ProviderUnavailableError(f'Tool provider "{entry.provider_id}" not connected')
        validate_arguments(entry.descriptor.parameters, arguments)
        timeout = self.tool_timeout_seconds
        try:
            if timeout and timeout > 0:
                async with asyncio.timeout(timeout):
                    raw = await provider.call_tool(entry.raw_name, arguments)
            else:
                raw = await provider.call_tool(entry.raw_name, arguments)
        except TimeoutError:
            logger.warning("External tool {} timed out after {}s", name, timeout)
            raise ToolTimeoutError(f"Tool {name} timed out after {timeout:g}s") from None
        except WayfinderError:
            raise
        except Exception as e:
            logger.error("External tool {} failed: {}", name, e)
            raise ToolExecutionError(f"MCP tool error: {e}") from e
        if raw.is_error:
            return Failure(raw.text() or "Unknown MCP tool error")
        text, structured = extract_structured_data(raw.text(), wants_structured_data(arguments))
        return Success(structured_data=structured, data={"result": text})
