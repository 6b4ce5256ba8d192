"""Shared chat formatting helpers.

Keeping formatting here prevents drift between the CLI commands and keeps
chat lines consistent regardless of where they are printed.
"""

from __future__ import annotations

from core.models import ChatMessage
from core.slt_time import format_slt_with_date


def format_session_label(message: ChatMessage) -> str:
    """Return a human-friendly session label."""

    if message.is_direct:
        return f"IM: {message.session_name or message.sender_name}"
    if message.is_group:
        return f"Group: {message.session_name or message.target_id or 'unknown'}"
    if message.region_name:
        return f"Local: {message.region_name}"
    return "Local"


def format_chat_line(message: ChatMessage) -> str:
    """Render one message the way a viewer chat log shows it."""

    stamp = message.slt_date_time or format_slt_with_date(message.timestamp)
    text = message.message or ""
    # "/me" emotes read as actions, without the colon.
    if text.startswith("/me "):
        return f"[{stamp}] {message.sender_name} {text[4:]}"
    if message.channel:
        return f"[{stamp}] ({message.channel}) {message.sender_name}: {text}"
    return f"[{stamp}] {message.sender_name}: {text}"
