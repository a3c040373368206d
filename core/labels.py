"""Human-readable labels for tool calls: progress-event text and visual-payload step labels."""

from typing import Any, Dict, Optional

from base.tools import FunctionResult, split_namespaced_name

SUMMARY_MAX_CHARS = 200


def _arg(args: Optional[Dict[str, Any]], key: str, default: str = "") -> str:
    if not isinstance(args, dict):
        return default
    value = args.get(key)
    return default if value is None or value == "" else str(value)


def describe_step(name: str, args: Optional[Dict[str, Any]]) -> str:
    """Progress text for a tool call ("Searching for "coffee" near Paris")."""
    provider_id, raw = split_namespaced_name(name)
    if provider_id is not None:
        return f"Called {raw} on {provider_id}"
    if name == "show_map":
        return f"Showing map of {_arg(args, 'location')}"
    if name == "show_traffic":
        return f"Showing traffic around {_arg(args, 'location')}"
    if name == "search_places":
        location = _arg(args, "location")
        return f'Searching for "{_arg(args, "query")}"' + (f" near {location}" if location else "")
    if name == "get_directions":
        return f"Getting directions from {_arg(args, 'origin')} to {_arg(args, 'destination')}"
    if name == "show_street_view":
        return f"Showing street view of {_arg(args, 'location')}"
    if name == "get_user_location":
        return "Getting your location"
    if name == "send_email":
        return f"Sending email to {_arg(args, 'to')}"
    if name == "search_documents":
        return f'Searching knowledge base for "{_arg(args, "query")}"'
    if name == "generate_artifact":
        return f"Generating artifact: {_arg(args, 'title')}"
    if name == "web_search":
        return "Searching the web"
    return f"Running {name}"


def label_for_call(name: str, args: Optional[Dict[str, Any]]) -> str:
    """Label of one entry in a multi-step visual payload."""
    if name == "search_places":
        return f"Search: {_arg(args, 'query', 'Places')}"
    if name == "get_directions":
        return f"Directions: {_arg(args, 'origin')} → {_arg(args, 'destination')}"
    if name == "show_map":
        return f"Map: {_arg(args, 'location')}"
    if name == "show_traffic":
        return f"Traffic: {_arg(args, 'location')}"
    if name == "show_street_view":
        return f"Street View: {_arg(args, 'location')}"
    if name == "get_user_location":
        return "Your Location"
    return name


def summarize_result(name: str, args: Optional[Dict[str, Any]], result: FunctionResult) -> str:
    """tool_result summary: the error, else the tool's message/text, else the step description. Max 200 chars."""
    if not result.ok:
        summary = f"Error: {result.error_message}"
    else:
        summary = result.message or result.data.get("result") or describe_step(name, args)
    return str(summary)[:SUMMARY_MAX_CHARS]
