"""Application entry point for chatrelay."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Iterable, Iterator, Optional

from art import tprint

import settings
from adapters.broadcast_hub import BroadcastHub
from adapters.chat_formatting import format_chat_line, format_session_label
from adapters.local_services import (
    ConnectionRegistry,
    ConsoleConnection,
    DisplayNameLinkRewriter,
    KeywordAutoReply,
    PrefixCommandHandler,
)
from adapters.sqlite_storage import SQLiteChatStore
from core.models import CHAT_NORMAL, AccountRecord, ChatMessage
from core.pipeline import ChatPipeline, build_pipeline
from core.ports import Collaborators
from core.slt_time import format_slt, format_slt_with_date

NAME = "CHATRELAY"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
REDACTED = "***"


class _RedactingFormatter(logging.Formatter):
    """Masks secrets (tokens, relay avatar keys) in every rendered record."""

    def __init__(self, secrets: Iterable[str]) -> None:
        super().__init__(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
        # Longest first so a secret that contains another is masked whole.
        self._secrets = sorted({secret for secret in secrets if secret}, key=len, reverse=True)

    def format(self, record: logging.LogRecord) -> str:
        rendered = super().format(record)
        for secret in self._secrets:
            rendered = rendered.replace(secret, REDACTED)
        return rendered


def _redaction_values(redact: dict) -> list[str]:
    """Values named by ``redact.env`` (environment variables) plus literal ``redact.values``."""

    if not redact.get("enabled", False):
        return []
    values = [os.getenv(name) for name in redact.get("env", [])]
    values.extend(str(value) for value in redact.get("values", []))
    return [value for value in values if value]


def _file_handler(file_cfg: dict) -> Optional[logging.Handler]:
    if not file_cfg.get("enabled", False):
        return None
    path = settings.resolve_path(file_cfg.get("path", "logs/chatrelay.log"))
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    return RotatingFileHandler(
        path,
        maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
        backupCount=int(file_cfg.get("backup_count", 5)),
        encoding="utf-8",
    )


def _configure_logging(config: Optional[dict] = None) -> list[logging.Handler]:
    """Install console and rotating-file handlers from the ``logging`` section."""

    config = settings.LOGGING if config is None else config
    if not config or not config.get("enabled", False):
        return []

    level = logging.getLevelName(str(config.get("level", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO
    formatter = _RedactingFormatter(_redaction_values(config.get("redact", {})))

    handlers: list[logging.Handler] = []
    if config.get("console", True):
        handlers.append(logging.StreamHandler())
    file_handler = _file_handler(config.get("file", {}))
    if file_handler is not None:
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    if handlers:
        logging.basicConfig(level=level, handlers=handlers, force=True)
    return handlers


def _open_store() -> SQLiteChatStore:
    directory = os.path.dirname(settings.DB_PATH)
    if directory:
        os.makedirs(directory, exist_ok=True)
    store = SQLiteChatStore(settings.DB_PATH, settings.PIPELINE.default_session_id)
    store.init_db()
    return store


def _sync_accounts(store: SQLiteChatStore, registry: ConnectionRegistry) -> None:
    """Mirror configured accounts into the store and give each a connection."""

    for entry in settings.ACCOUNTS:
        account_id = str(entry["account_id"])
        store.upsert_account(
            AccountRecord(
                account_id=account_id,
                display_name=entry.get("display_name", ""),
                avatar_relay_uuid=entry.get("avatar_relay_uuid"),
            )
        )
        for group_id in entry.get("ignored_groups", []):
            store.set_group_ignored(account_id, group_id)
        registry.add(
            account_id,
            ConsoleConnection(agent_id=entry.get("agent_id"), connected=entry.get("connected", True)),
        )


def _parse_timestamp(raw: Any) -> datetime:
    if not raw:
        return datetime.now(timezone.utc)
    moment = datetime.fromisoformat(str(raw))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def _message_from_event(event: Any, default_account: Optional[str]) -> ChatMessage:
    if not isinstance(event, dict):
        raise ValueError(f"expected a JSON object, got {type(event).__name__}")
    account_id = str(event.get("account_id") or default_account or "")
    if not account_id:
        raise ValueError("event has no account_id and no --account was given")

    timestamp = _parse_timestamp(event.get("timestamp"))
    zone = settings.PIPELINE.slt_timezone
    return ChatMessage(
        sender_name=event.get("sender_name", ""),
        message=event.get("message") or "",
        chat_type=event.get("chat_type", CHAT_NORMAL),
        channel=int(event.get("channel", 0)),
        timestamp=timestamp,
        account_id=account_id,
        sender_id=event.get("sender_id"),
        target_id=event.get("target_id"),
        session_id=event.get("session_id"),
        session_name=event.get("session_name"),
        region_name=event.get("region_name"),
        slt_time=format_slt(timestamp, zone),
        slt_date_time=format_slt_with_date(timestamp, zone),
    )


def _read_event_lines(path: str) -> Iterator[tuple[int, str]]:
    with open(path, "r", encoding="utf-8") as handle:
        for line_no, line in enumerate(handle, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            yield line_no, line


@dataclass(frozen=True)
class ReplaySummary:
    processed: int
    skipped: int
    broadcasts: int


class _CountingSubscribers:
    """Subscribe to the hub for every account to count broadcasts."""

    def __init__(self, hub: BroadcastHub) -> None:
        self._hub = hub
        self._queues: dict[str, asyncio.Queue] = {}
        self.received = 0

    def watch(self, account_id: str) -> None:
        if account_id not in self._queues:
            self._queues[account_id] = self._hub.subscribe(account_id)

    def drain(self) -> None:
        for queue in self._queues.values():
            while not queue.empty():
                queue.get_nowait()
                self.received += 1


async def _replay(path: str, account: Optional[str]) -> ReplaySummary:
    logger = logging.getLogger(__name__)

    store = _open_store()
    removed = store.cleanup_old_messages(settings.HISTORY_TTL_DAYS)
    logger.info("History cleanup removed %s messages", removed)
    registry = ConnectionRegistry()
    _sync_accounts(store, registry)
    hub = BroadcastHub()
    subscribers = _CountingSubscribers(hub)

    collaborators = Collaborators(
        connections=registry,
        history=store,
        persistence=store,
        broadcast=hub,
        group_policy=store,
        link_rewriter=DisplayNameLinkRewriter(settings.DISPLAY_NAMES),
        commands=PrefixCommandHandler(
            prefix=settings.COMMAND_PREFIX,
            allowed_senders=settings.COMMAND_ALLOWED_SENDERS,
            responses=settings.COMMAND_RESPONSES,
        ),
        auto_reply=KeywordAutoReply(settings.AUTO_REPLY_ENABLED, settings.AUTO_REPLY_REPLIES),
        accounts=store,
    )
    pipeline: ChatPipeline = build_pipeline(collaborators, settings.PIPELINE)
    logger.info("%s chat processors are registered", len(pipeline.entries()))

    processed = 0
    skipped = 0
    try:
        for line_no, line in _read_event_lines(path):
            try:
                message = _message_from_event(json.loads(line), account)
            except (json.JSONDecodeError, ValueError, TypeError) as exc:
                logger.warning("Skipping malformed event on line %s: %s", line_no, exc)
                skipped += 1
                continue
            subscribers.watch(message.account_id)
            # Messages are replayed one at a time to keep per-account order.
            await pipeline.process(message, message.account_id)
            subscribers.drain()
            processed += 1
    finally:
        pipeline.request_shutdown()

    summary = ReplaySummary(processed=processed, skipped=skipped, broadcasts=subscribers.received)
    logger.info(
        "Replay complete: events=%s, skipped=%s, broadcasts=%s",
        summary.processed,
        summary.skipped,
        summary.broadcasts,
    )
    print(
        f"Processed {summary.processed} events ({summary.skipped} skipped), "
        f"{summary.broadcasts} broadcast to subscribers."
    )
    return summary


def _history(account: str, session: Optional[str], limit: int) -> None:
    store = _open_store()
    session_id = session or settings.PIPELINE.default_session_id
    messages = store.get_recent_history(account, session_id, limit)
    if not messages:
        sessions = store.list_sessions(account)
        print(f"No messages for {account} in session {session_id}.")
        if sessions:
            print("Known sessions: " + ", ".join(sessions))
        return

    print(format_session_label(messages[-1]))
    for message in messages:
        print(format_chat_line(message))


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="chatrelay")
    subparsers = parser.add_subparsers(dest="command")

    replay_parser = subparsers.add_parser("replay", help="Run chat events from a JSON-lines file through the pipeline")
    replay_parser.add_argument("events", help="Path to a .jsonl file, one chat event per line")
    replay_parser.add_argument("--account", help="Account id for events that do not carry one")

    history_parser = subparsers.add_parser("history", help="Print stored chat for an account")
    history_parser.add_argument("account", help="Account id")
    history_parser.add_argument("--session", help="Session id (defaults to local chat)")
    history_parser.add_argument("--limit", type=int, default=50, help="Number of messages to show")

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return

    _print_banner()
    _configure_logging()

    if args.command == "replay":
        try:
            asyncio.run(_replay(args.events, args.account))
        except KeyboardInterrupt:
            logging.getLogger(__name__).info("Replay interrupted")
        return
    if args.command == "history":
        _history(args.account, args.session, args.limit)


if __name__ == "__main__":
    main()
