"""Static configuration for chatrelay.

All user-editable settings (accounts, pipeline limits, commands, auto-reply,
logging) live in a single JSON file for quick edits without touching Python.
"""

import json
import os

from dotenv import load_dotenv

from core.config import PipelineConfig

load_dotenv()

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# CHATRELAY_CONFIG points at an alternative config file, e.g. per deployment.
CONFIG_PATH = os.getenv("CHATRELAY_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


def _pipeline_config(raw: dict) -> PipelineConfig:
    defaults = PipelineConfig()
    config = PipelineConfig(
        history_limit=int(raw.get("history_limit", defaults.history_limit)),
        default_session_id=str(raw.get("default_session_id", defaults.default_session_id)),
        relay_max_chars=int(raw.get("relay_max_chars", defaults.relay_max_chars)),
        slt_timezone=str(raw.get("slt_timezone", defaults.slt_timezone)),
    )
    if config.history_limit < 0:
        raise ValueError("pipeline.history_limit must not be negative")
    if config.relay_max_chars <= 0:
        raise ValueError("pipeline.relay_max_chars must be positive")
    return config


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Where to store the SQLite database and how long chat is kept.
_database = _CONFIG.get("database", {})
DB_PATH = resolve_path(_database.get("path", "data/chatrelay.db"))
HISTORY_TTL_DAYS = int(_database.get("ttl_days", 90))

# Pipeline limits shared by the orchestrator and the built-in processors.
PIPELINE = _pipeline_config(_CONFIG.get("pipeline", {}))

# Accounts replayed offline, with their relay avatar and ignored groups.
ACCOUNTS = [entry for entry in _CONFIG.get("accounts", []) if entry.get("account_id")]

# Agent display names used when rewriting agent links in chat text.
DISPLAY_NAMES = _CONFIG.get("display_names", {})

# Local command handler: prefix, who may use it and canned responses.
_commands = _CONFIG.get("commands", {})
COMMAND_PREFIX = _commands.get("prefix", "command=")
COMMAND_ALLOWED_SENDERS = _commands.get("allowed_senders", [])
COMMAND_RESPONSES = _commands.get("responses", {})

# Keyword auto-reply switches.
_auto_reply = _CONFIG.get("auto_reply", {})
AUTO_REPLY_ENABLED = bool(_auto_reply.get("enabled", False))
AUTO_REPLY_REPLIES = _auto_reply.get("replies", {})

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
