"""
Context builder: system instruction + bounded history window + the new user message.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from base.base import ConversationTurn, KnowledgeDocument, Role, UserLocation
from base.config import DEFAULT_MAX_HISTORY_MESSAGES

BASE_SYSTEM_PROMPT = """You are a helpful assistant with access to Google Maps and a set of tools.
Use the tools to give accurate, current answers about locations, traffic, places and directions,
and explain the results in a conversational tone.

Capabilities:
- Show a map centered on any location
- Show current traffic around a location
- Search for places (hotels, restaurants, attractions, gas stations) with ratings
- Get directions between two places (driving, walking, transit, bicycling)
- Show street view of a location
- Get the user's approximate location
- Send email
- Search the user's knowledge-base documents
- Generate HTML artifacts (charts, tables, dashboards) with Chart.js from {chart_cdn} on a dark background ({background})
{external_capabilities}
Rules:
- When you have numeric data worth visualizing, call generate_artifact.
- External tools that accept needChartData: set needChartData to true whenever the user wants data, lists,
  comparisons, trends or rankings. That data is rendered for the user automatically, so keep your text
  to a short summary and do not repeat the data as a table.
- When asking an external agent a question, make the question complete: the exact data wanted, the level
  of detail, any filters, and that it is meant for grid display.
- For directions or routes, always call get_directions so the route appears on the map, even when the
  destination came from an earlier search.
- For "near me", "nearby" or "closest", use the user's location (call get_user_location if it is not given below).
- Chain tool calls for multi-step requests (e.g. search_places, then get_directions to the top result).
- After every tool call, check whether the user's original question is fully answered. If not, keep calling tools.
- After tool calls, always reply with a non-empty text summary of what was found or done.
- When showing places include ratings, price levels and addresses; for directions include time and distance."""

KB_WITH_DOCUMENTS = """
Knowledge base documents uploaded by the user:
{documents}
For any factual question that may relate to these documents, call search_documents before answering and
cite the document name."""

KB_WITHOUT_DOCUMENTS = """
If the question might be answered by the user's knowledge base, use search_documents and cite the document name."""

USER_LOCATION_CONTEXT = """
The user's approximate location is: {description} (lat: {lat}, lng: {lng}). Use it as the default for
"near me" or "nearby" requests without calling get_user_location."""


def format_visual_payload_context(payload: Optional[Dict[str, Any]]) -> str:
    """One-line text summary of a stored visual payload, appended to the history turn."""
    if not isinstance(payload, dict):
        return ""
    kind = payload.get("type")
    markers = payload.get("markers") if isinstance(payload.get("markers"), list) else []

    def _title(i: int, default: str) -> str:
        if len(markers) > i and isinstance(markers[i], dict) and markers[i].get("title"):
            return str(markers[i]["title"])
        return default

    if kind == "places":
        first = _title(0, "")
        return f"[Map: Showing {len(markers)} places" + (f' including "{first}"' if first else "") + "]"
    if kind == "directions":
        return f'[Map: Directions from "{_title(0, "A")}" to "{_title(1, "B")}"]'
    if kind == "traffic":
        center = payload.get("center")
        if isinstance(center, dict) and "lat" in center and "lng" in center:
            try:
                return f"[Map: Traffic conditions around {float(center['lat']):.2f}, {float(center['lng']):.2f}]"
            except (TypeError, ValueError):
                pass
        return "[Map: Traffic conditions around area]"
    if kind == "streetview":
        return "[Map: Street view]"
    if kind == "map":
        return f"[Map: Showing {_title(0, 'location')}]"
    if kind == "multi":
        parts = []
        for step in payload.get("steps") or []:
            if isinstance(step, dict):
                parts.append(format_visual_payload_context(step.get("map_data") or step.get("mapData")))
        return " ".join(p for p in parts if p)
    return "[Map displayed]"


@dataclass
class ModelContext:
    system_prompt: str
    history: List[Dict[str, Any]] = field(default_factory=list)
    user_message: str = ""


class ContextBuilder:

    def __init__(self, max_history_messages: int = DEFAULT_MAX_HISTORY_MESSAGES, chart_cdn: str = "", background: str = ""):
        self.max_history_messages = max_history_messages
        self.chart_cdn = chart_cdn or "https://cdn.jsdelivr.net/npm/chart.js"
        self.background = background or "#1a1a2e"

    def build_system_prompt(
        self,
        user_location: Optional[UserLocation] = None,
        documents: Sequence[KnowledgeDocument] = (),
        external_tools: Sequence[str] = (),
    ) -> str:
        external = ""
        if external_tools:
            external = "- External tools: " + ", ".join(external_tools) + "\n"
        prompt = BASE_SYSTEM_PROMPT.format(
            chart_cdn=self.chart_cdn,
            background=self.background,
            external_capabilities=external,
        )
        ready = [d for d in documents if d.status == "ready"]
        if ready:
            listing = "\n".join(f"- {d.name} ({d.chunk_count} sections)" for d in ready)
            prompt += "\n" + KB_WITH_DOCUMENTS.format(documents=listing)
        else:
            prompt += "\n" + KB_WITHOUT_DOCUMENTS
        if user_location is not None:
            prompt += "\n" + USER_LOCATION_CONTEXT.format(
                description=user_location.description or "unknown",
                lat=user_location.lat,
                lng=user_location.lng,
            )
        return prompt

    def build_history(self, turns: Sequence[ConversationTurn]) -> List[Dict[str, Any]]:
        """Last max_history_messages turns as chat messages; visual payloads become a text summary line."""
        window = list(turns)[-self.max_history_messages:] if self.max_history_messages > 0 else []
        messages = []
        for turn in window:
            text = turn.text or ""
            summary = format_visual_payload_context(turn.visual_payload)
            if summary:
                text = f"{text}\n{summary}" if text else summary
            role = Role.ASSISTANT.value if turn.role == Role.ASSISTANT.value else Role.USER.value
            messages.append({"role": role, "content": text})
        return messages

    def build(
        self,
        turns: Sequence[ConversationTurn],
        message: str,
        user_location: Optional[UserLocation] = None,
        documents: Sequence[KnowledgeDocument] = (),
        external_tools: Sequence[str] = (),
    ) -> ModelContext:
        return ModelContext(
            system_prompt=self.build_system_prompt(user_location, documents, external_tools),
            history=self.build_history(turns),
            user_message=message,
        )
