"""
Logging and string helpers for the agent. No dependency on the agent service; safe to import anywhere.
"""
from typing import Any, Dict

from loguru import logger

_silent = False


def set_silent(silent: bool) -> None:
    """Toggle [component] activity logs. Set from core.yml silent: true/false at startup."""
    global _silent
    _silent = bool(silent)


def is_silent() -> bool:
    return _silent


def _component_log(component: str, message: str) -> None:
    """Log component activity when not silent (silent: false in core.yml)."""
    if not _silent:
        logger.info("[{}] {}", component, message)


def _truncate_for_log(s: str, max_len: int = 2000) -> str:
    """Truncate string for logging; append ... if truncated."""
    if not s or len(s) <= max_len:
        return s or ""
    return s[:max_len] + "\n... (truncated)"


_REDACT_KEYS = ("password", "pass", "token", "secret", "api_key", "apikey", "authorization")


def redact_params_for_log(args: Any) -> Any:
    """Copy of tool arguments with secret-looking values masked; non-dicts returned as-is."""
    if not isinstance(args, dict):
        return args
    out: Dict[str, Any] = {}
    for k, v in args.items():
        key = str(k).lower()
        if any(r in key for r in _REDACT_KEYS):
            out[k] = "***"
        elif isinstance(v, str):
            out[k] = _truncate_for_log(v, 200)
        else:
            out[k] = v
    return out
