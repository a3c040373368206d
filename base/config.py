"""
Configuration for Wayfinder: config/core.yml -> CoreMetadata, plus the Settings store the agent
reads its budgets from. Secrets (API keys, SMTP credentials) come from the environment (.env via
python-dotenv in main.py), never from core.yml.
"""

import os
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import yaml
from loguru import logger

DEFAULT_MAX_STEPS = 10
DEFAULT_MAX_RETRIES = 2
DEFAULT_MAX_HISTORY_MESSAGES = 20
DEFAULT_TOOL_TIMEOUT_SECONDS = 120

CONFIG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "config")
DEFAULT_CONFIG_PATH = os.path.join(CONFIG_DIR, "core.yml")


@dataclass
class CoreMetadata:
    name: str = "wayfinder"
    host: str = "0.0.0.0"
    port: int = 9000
    silent: bool = False
    log_to_console: bool = True  # when False, logs go only to log_file
    log_level: str = "INFO"
    log_file: str = "logs/wayfinder.log"
    main_llm: str = "gemini/gemini-2.5-flash"
    grounding_llm: str = ""  # empty = main_llm; must support provider web search (web_search_options)
    completion: Dict[str, Any] = field(default_factory=dict)  # temperature, max_tokens
    agent: Dict[str, Any] = field(default_factory=dict)  # max_steps, max_retries, max_history_messages, tool_timeout_seconds
    default_location: Dict[str, Any] = field(default_factory=dict)  # lat, lng, city, region, country
    maps: Dict[str, Any] = field(default_factory=dict)  # api_key_name, search_radius_meters
    email: Dict[str, Any] = field(default_factory=dict)  # timeout_seconds
    mcp_servers: Dict[str, Dict[str, Any]] = field(default_factory=dict)  # name -> {command,args,env} | {url,headers}
    mcp_connect_timeout_seconds: int = 30

    @staticmethod
    def from_yaml(yaml_file: str) -> 'CoreMetadata':
        """Load CoreMetadata from core.yml. On parse error or invalid content, raises with a clear message."""
        try:
            with open(yaml_file, 'r', encoding='utf-8') as file:
                data = yaml.safe_load(file)
        except FileNotFoundError:
            raise RuntimeError(f"config/core.yml not found at {yaml_file}. Create it or fix the path.") from None
        except Exception as e:
            raise RuntimeError(f"config/core.yml could not be read or parsed: {e}") from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise RuntimeError("config/core.yml is invalid (root must be a YAML object).")

        def _dict(key: str) -> Dict[str, Any]:
            value = data.get(key)
            if value is None:
                return {}
            if not isinstance(value, dict):
                logger.warning("core.yml: {} must be a mapping, got {}; ignoring", key, type(value).__name__)
                return {}
            return value

        servers = {}
        for name, server in _dict('mcp_servers').items():
            if not isinstance(server, dict) or not (server.get('command') or server.get('url')):
                logger.warning("core.yml: mcp_servers.{} needs command or url; skipping", name)
                continue
            servers[str(name)] = server

        return CoreMetadata(
            name=str(data.get('name') or 'wayfinder'),
            host=str(data.get('host') or '0.0.0.0'),
            port=_int_or(data.get('port'), 9000),
            silent=bool(data.get('silent', False)),
            log_to_console=bool(data.get('log_to_console', True)),
            log_level=str(data.get('log_level') or 'INFO').upper(),
            log_file=str(data.get('log_file') or ''),
            main_llm=str(data.get('main_llm') or 'gemini/gemini-2.5-flash'),
            grounding_llm=str(data.get('grounding_llm') or ''),
            completion=_dict('completion'),
            agent=_dict('agent'),
            default_location=_dict('default_location'),
            maps=_dict('maps'),
            email=_dict('email'),
            mcp_servers=servers,
            mcp_connect_timeout_seconds=_int_or(data.get('mcp_connect_timeout_seconds'), 30),
        )


def _int_or(value: Any, default: int) -> int:
    """int(value) when value is an integer (or an integer string); otherwise default. bool is not an integer here."""
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


class Settings:
    """
    Key/value settings store consulted by the agent for its budgets. Seeded from core.yml agent:,
    adjustable at runtime with set(). Non-integer values for the numeric budgets fall back to defaults.
    """

    def __init__(self, values: Optional[Dict[str, Any]] = None):
        self._lock = threading.Lock()
        self._values: Dict[str, Any] = dict(values or {})

    @classmethod
    def from_metadata(cls, meta: CoreMetadata) -> 'Settings':
        return cls(meta.agent)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[key] = value

    def _positive_int(self, key: str, default: int) -> int:
        value = _int_or(self.get(key), default)
        return value if value >= 0 else default

    def max_steps(self) -> int:
        return self._positive_int("max_steps", DEFAULT_MAX_STEPS)

    def max_retries(self) -> int:
        return self._positive_int("max_retries", DEFAULT_MAX_RETRIES)

    def max_history_messages(self) -> int:
        return self._positive_int("max_history_messages", DEFAULT_MAX_HISTORY_MESSAGES)

    def tool_timeout_seconds(self) -> float:
        """Per-call bound for external tools. 0 = no timeout."""
        return float(self._positive_int("tool_timeout_seconds", DEFAULT_TOOL_TIMEOUT_SECONDS))
