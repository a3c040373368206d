import argparse
import asyncio
import os
import sys

from dotenv import load_dotenv
from loguru import logger

from base.config import DEFAULT_CONFIG_PATH, CoreMetadata
from base.logging_setup import setup_logging
from core.log_helpers import set_silent


def load_metadata(config_path: str) -> CoreMetadata:
    load_dotenv()
    meta = CoreMetadata.from_yaml(config_path)
    setup_logging(meta)
    set_silent(meta.silent)
    return meta


def run_doctor(config_path: str):
    """Check config, API keys and MCP server entries; report issues."""
    issues = []
    ok = []
    if not os.path.isfile(config_path):
        print("Issue: core.yml not found at " + config_path)
        return
    try:
        meta = load_metadata(config_path)
    except RuntimeError as e:
        print("Issue:", e)
        return
    ok.append("core.yml loaded")
    ok.append("main_llm: " + meta.main_llm)
    if meta.main_llm.startswith(("gemini/", "vertex_ai/")) and not os.environ.get("GEMINI_API_KEY"):
        issues.append("GEMINI_API_KEY not set for " + meta.main_llm)
    key_name = str((meta.maps or {}).get("api_key_name") or "GOOGLE_MAPS_API_KEY")
    if os.environ.get(key_name):
        ok.append(key_name + " set (map tools enabled)")
    else:
        issues.append(key_name + " not set (map tools will report unconfigured)")
    if all(os.environ.get(k) for k in ("SMTP_HOST", "SMTP_USER", "SMTP_PASS")):
        ok.append("SMTP configured (send_email enabled)")
    else:
        issues.append("SMTP_HOST / SMTP_USER / SMTP_PASS not all set (send_email disabled)")
    for name in meta.mcp_servers:
        ok.append("MCP server configured: " + name)
    print("Doctor report:")
    for s in ok:
        print("  OK:", s)
    for s in issues:
        print("  Issue:", s)
    if not issues:
        print("All checks passed.")


def start(config_path: str):
    meta = load_metadata(config_path)
    from core.core import Core

    core = Core(meta)
    print(f"Starting {meta.name} on http://{meta.host}:{meta.port} ...")
    try:
        asyncio.run(core.run())
    except KeyboardInterrupt:
        core.stop()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Wayfinder: tool-using chat agent with maps, email and MCP tools")
    parser.add_argument(
        "command",
        nargs="?",
        default="start",
        choices=["start", "doctor"],
        help="start (default): run the HTTP server; doctor: check config and credentials",
    )
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="path to core.yml")
    args = parser.parse_args()
    try:
        if args.command == "doctor":
            run_doctor(args.config)
        else:
            start(args.config)
    except Exception as e:
        logger.exception(e)
        sys.exit(1)
