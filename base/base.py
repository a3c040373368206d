from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class Role(Enum):
    """Conversation roles as stored by the history provider."""
    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def list(cls):
        """Returns a list of all roles."""
        return list(map(lambda c: c.value, cls))


class ConversationTurn(BaseModel):
    role: str  # user | assistant
    text: str = ""
    visual_payload: Optional[Dict[str, Any]] = None  # map data shown with this turn, if any
    citations: Optional[List[Dict[str, Any]]] = None


class UserLocation(BaseModel):
    """Approximate user location (from IP lookup or config default)."""
    lat: float
    lng: float
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    description: str = ""


class KnowledgeDocument(BaseModel):
    name: str
    chunk_count: int = 0
    status: str = "ready"


class ChatRequest(BaseModel):
    """Body of POST /api/chat."""
    message: str = ""
    conversation_id: Optional[str] = None
    enabled_tools: Optional[List[str]] = None  # None = every tool (and web search) enabled


class AgentRunResult(BaseModel):
    """The single output of one orchestration run, handed to the transport layer."""
    reply_text: str = ""
    visual_payload: Optional[Dict[str, Any]] = None
    citations: Optional[List[Dict[str, Any]]] = None
    artifact: Optional[Dict[str, Any]] = None


@dataclass
class FunctionCall:
    """One tool invocation requested by the model."""

    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    id: str = ""
    # Set when the model's argument JSON could not be parsed; the dispatcher turns it into a Failure.
    argument_error: Optional[str] = None


@dataclass
class ToolDescriptor:
    """What the model sees for a tool: name, description and a normalized JSON Schema."""

    name: str
    description: str
    parameters: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})
    source: str = "builtin"  # builtin | mcp

    def to_openai_function(self) -> Dict[str, Any]:
        """OpenAI-compatible function declaration (litellm translates it per provider)."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class StepEventType(Enum):
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    RETRY = "retry"
    WEB_SEARCH = "web_search"
    ARTIFACT = "artifact"


class StepEvent(BaseModel):
    """Progress record pushed to the caller while a request runs."""
    type: str
    name: Optional[str] = None
    args: Optional[Dict[str, Any]] = None
    step: Optional[int] = None
    label: Optional[str] = None
    summary: Optional[str] = None
    attempt: Optional[int] = None
    reason: Optional[str] = None
    artifact_data: Optional[Dict[str, Any]] = Field(default=None, alias="artifactData")

    model_config = {"populate_by_name": True}

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True, by_alias=True)
