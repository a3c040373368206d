"""
Tool layer for Wayfinder: callable tools (name + schema + executor) and the registry that
merges built-in tools with tools discovered on external providers (MCP servers).

Design goals:
- Add a built-in tool = registry.register(ToolDefinition(name, description, parameters, executor)).
- External tools live in the same namespace as "<provider>__<tool>", sanitized for model function names.
- The registry is owned by the agent service and injected into each request; there is no global instance.
- Writers (provider connect/disconnect) swap immutable snapshots under a lock, so a concurrent
  list() sees either the old or the new set of tools, never a half-updated one.
"""

import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from loguru import logger

from base.base import ToolDescriptor, UserLocation

# Joins provider id and raw tool name for external tools.
NAMESPACE_SEPARATOR = "__"

# Function names accepted by the function-calling APIs we target (OpenAI / Gemini via litellm).
MAX_TOOL_NAME_LENGTH = 64
_INVALID_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")

# Portable JSON Schema subset. Anything else is stripped.
SCHEMA_ALLOWED_KEYS = frozenset({
    "type",
    "description",
    "properties",
    "items",
    "enum",
    "required",
    "minimum",
    "maximum",
    "minItems",
    "maxItems",
    "minLength",
    "maxLength",
})


@dataclass
class Success:
    """Tool completed. structured_data and artifact stay on the server; the rest goes back to the model."""

    message: Optional[str] = None
    visual_payload: Optional[Dict[str, Any]] = None
    structured_data: Optional[Any] = None
    citations: Optional[List[Dict[str, Any]]] = None
    artifact: Optional[Dict[str, Any]] = None  # ready-made {title, html}
    data: Dict[str, Any] = field(default_factory=dict)  # extra model-visible fields (places, steps, distance...)

    ok = True

    def to_model_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": True}
        payload.update(self.data)
        if self.message:
            payload["message"] = self.message
        if self.visual_payload is not None:
            payload["mapData"] = self.visual_payload
        if self.citations:
            payload["citations"] = self.citations
        return payload


@dataclass
class Failure:
    error_message: str

    ok = False

    def to_model_payload(self) -> Dict[str, Any]:
        return {"error": self.error_message}


FunctionResult = Union[Success, Failure]


@dataclass
class ToolContext:
    """Context passed to every tool executor for one request."""

    request_id: Optional[str] = None
    conversation_id: Optional[str] = None
    user_location: Optional[UserLocation] = None
    maps: Any = None  # tools.maps.GoogleMapsClient
    mailer: Any = None  # tools.mailer.SmtpMailer
    knowledge_base: Any = None  # base.knowledge.KnowledgeBase
    extras: Dict[str, Any] = field(default_factory=dict)


# Executor: async (arguments: dict, context: ToolContext) -> FunctionResult (a plain str is wrapped as Success)
ToolExecutor = Callable[[Dict[str, Any], ToolContext], Awaitable[Union[FunctionResult, str]]]


@dataclass
class ToolDefinition:
    """
    One built-in tool: name, description, JSON Schema for parameters, and async executor.
    To add a new tool: create ToolDefinition(...) and registry.register(tool).
    """

    name: str
    description: str
    parameters: Dict[str, Any]
    execute_async: ToolExecutor
    # Optional check that the tool's backing service is configured (surfaced by GET /api/tools).
    is_configured: Optional[Callable[[], bool]] = None

    def to_descriptor(self) -> ToolDescriptor:
        return ToolDescriptor(
            name=self.name,
            description=self.description,
            parameters=normalize_schema(self.parameters),
            source="builtin",
        )


@dataclass
class ProviderCallResult:
    """Raw result of an external provider call: {isError, content: [{type, text}]}."""

    is_error: bool = False
    content: List[Dict[str, Any]] = field(default_factory=list)

    def text(self) -> str:
        parts = [c.get("text") or "" for c in self.content if isinstance(c, dict) and c.get("type") == "text"]
        return "\n".join(p for p in parts if p)


class ExternalToolProvider(ABC):
    """A separately managed source of tools reached through a generic list/call protocol."""

    provider_id: str = ""

    @abstractmethod
    async def list_tools(self) -> List[ToolDescriptor]:
        pass

    @abstractmethod
    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> ProviderCallResult:
        pass

    async def close(self) -> None:
        return None


@dataclass(frozen=True)
class ExternalToolEntry:
    provider_id: str
    raw_name: str
    descriptor: ToolDescriptor


def sanitize_tool_name(name: str) -> str:
    """Restrict to [A-Za-z0-9_-] and at most 64 chars. Idempotent: sanitize(sanitize(x)) == sanitize(x)."""
    cleaned = _INVALID_NAME_CHARS.sub("_", str(name or ""))[:MAX_TOOL_NAME_LENGTH]
    return cleaned or "_"


def namespaced_tool_name(provider_id: str, raw_name: str) -> str:
    return sanitize_tool_name(f"{provider_id}{NAMESPACE_SEPARATOR}{raw_name}")


def split_namespaced_name(name: str) -> Tuple[Optional[str], str]:
    """'server__tool' -> ('server', 'tool'); names without the separator -> (None, name)."""
    if NAMESPACE_SEPARATOR not in (name or ""):
        return None, name
    provider_id, raw = name.split(NAMESPACE_SEPARATOR, 1)
    return provider_id, raw


def normalize_schema(schema: Any, root: bool = True) -> Dict[str, Any]:
    """
    Reduce a JSON Schema to the portable subset the model's function-calling interface accepts.
    Unsupported keys are stripped; the root defaults to type object; nested objects/arrays are
    normalized recursively. required entries naming no declared property are dropped.
    """
    if not isinstance(schema, dict):
        return {"type": "object", "properties": {}} if root else {"type": "string"}
    out: Dict[str, Any] = {}
    for key, value in schema.items():
        if key not in SCHEMA_ALLOWED_KEYS:
            continue
        if key == "properties":
            if isinstance(value, dict):
                out["properties"] = {
                    str(prop): normalize_schema(sub, root=False) for prop, sub in value.items()
                }
        elif key == "items":
            out["items"] = normalize_schema(value, root=False)
        elif key == "required":
            if isinstance(value, (list, tuple)):
                out["required"] = [str(r) for r in value]
        elif key == "enum":
            if isinstance(value, (list, tuple)):
                out["enum"] = list(value)
        elif key == "type":
            # Union types ("string" | "null") are not portable: keep the first non-null entry.
            if isinstance(value, (list, tuple)):
                non_null = [t for t in value if t != "null"]
                value = non_null[0] if non_null else "string"
            out["type"] = value
        else:
            out[key] = value
    if "type" not in out:
        if root or "properties" in out:
            out["type"] = "object"
        elif "items" in out:
            out["type"] = "array"
    if out.get("type") == "object" and "properties" not in out and root:
        out["properties"] = {}
    if "required" in out:
        declared = out.get("properties") or {}
        out["required"] = [r for r in out["required"] if r in declared]
        if not out["required"]:
            del out["required"]
    return out


class ToolRegistry:
    """
    Registry of built-in tools and external provider tools. Core builds the tool list for the
    model from list() and routes calls through is_external()/get_builtin()/get_external().
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._builtin: Mapping[str, ToolDefinition] = MappingProxyType({})
        self._external: Mapping[str, ExternalToolEntry] = MappingProxyType({})
        self._providers: Mapping[str, ExternalToolProvider] = MappingProxyType({})

    def register(self, tool: ToolDefinition) -> None:
        """Register a built-in tool by name. Overwrites if same name."""
        if not tool.name or not tool.description:
            raise ValueError("Tool name and description are required")
        with self._lock:
            builtin = dict(self._builtin)
            builtin[tool.name] = tool
            self._builtin = MappingProxyType(builtin)
        logger.debug("Registered tool: {}", tool.name)

    def unregister(self, name: str) -> bool:
        """Remove a built-in tool by name. Returns True if it was present."""
        with self._lock:
            if name not in self._builtin:
                return False
            builtin = dict(self._builtin)
            del builtin[name]
            self._builtin = MappingProxyType(builtin)
        logger.debug("Unregistered tool: {}", name)
        return True

    def register_provider(
        self,
        provider_id: str,
        tools: Iterable[ToolDescriptor],
        provider: ExternalToolProvider,
    ) -> List[str]:
        """
        Add (or replace) every tool of one external provider. Returns the namespaced names.
        Two raw names that sanitize to the same namespaced name: the last one wins.
        """
        if not provider_id:
            raise ValueError("provider_id is required")
        names: List[str] = []
        with self._lock:
            external = {k: v for k, v in self._external.items() if v.provider_id != provider_id}
            for tool in tools:
                name = namespaced_tool_name(provider_id, tool.name)
                if name in external:
                    logger.warning(
                        "External tool name collision: {} (from {}) overwrites {}",
                        name, tool.name, external[name].raw_name,
                    )
                external[name] = ExternalToolEntry(
                    provider_id=provider_id,
                    raw_name=tool.name,
                    descriptor=ToolDescriptor(
                        name=name,
                        description=tool.description or "",
                        parameters=normalize_schema(tool.parameters),
                        source="mcp",
                    ),
                )
                if name not in names:
                    names.append(name)
            providers = dict(self._providers)
            providers[provider_id] = provider
            self._external = MappingProxyType(external)
            self._providers = MappingProxyType(providers)
        logger.debug("Registered {} tools from provider {}", len(names), provider_id)
        return names

    def unregister_provider(self, provider_id: str) -> int:
        """Remove a provider and all its tools. Returns how many tools were removed."""
        with self._lock:
            external = {k: v for k, v in self._external.items() if v.provider_id != provider_id}
            removed = len(self._external) - len(external)
            providers = dict(self._providers)
            providers.pop(provider_id, None)
            self._external = MappingProxyType(external)
            self._providers = MappingProxyType(providers)
        if removed:
            logger.debug("Unregistered {} tools from provider {}", removed, provider_id)
        return removed

    def is_external(self, name: str) -> bool:
        return name in self._external

    def get_builtin(self, name: str) -> Optional[ToolDefinition]:
        return self._builtin.get(name)

    def get_external(self, name: str) -> Optional[ExternalToolEntry]:
        return self._external.get(name)

    def get_provider(self, provider_id: str) -> Optional[ExternalToolProvider]:
        return self._providers.get(provider_id)

    def provider_ids(self) -> List[str]:
        return list(self._providers.keys())

    def list_builtin(self) -> List[ToolDefinition]:
        return list(self._builtin.values())

    def list(self, enabled_tools: Optional[Iterable[str]] = None) -> List[ToolDescriptor]:
        """Descriptors for every tool (built-in first), optionally filtered by an enable list."""
        builtin = self._builtin
        external = self._external
        descriptors = [t.to_descriptor() for t in builtin.values()]
        descriptors.extend(entry.descriptor for entry in external.values())
        if enabled_tools is not None:
            allowed = set(enabled_tools)
            descriptors = [d for d in descriptors if d.name in allowed]
        return descriptors

    def get_openai_tools(self, enabled_tools: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        """List of tool descriptors for OpenAI-compatible chat API (tools=...)."""
        return [d.to_openai_function() for d in self.list(enabled_tools)]
