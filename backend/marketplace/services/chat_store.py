import json
import logging
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional

from marketplace.models import ChatMessage, ContactRequest, Session
from marketplace.services.errors import (
    MarketplaceConflictError,
    MarketplacePermissionError,
    MarketplaceValidationError,
)

logger = logging.getLogger(__name__)

PROVIDER_CHATS_KEY = "providerChats"
USER_CHATS_KEY = "userChats"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class LocalStateStore:
    """Namespaced JSON blobs, the server-side stand-in for browser local storage.

    Each key holds one JSON document and every write replaces it whole, so two
    writers doing read-modify-write on the same key can lose updates.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._lock:
            with self._connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS local_state (
                        key TEXT PRIMARY KEY,
                        value_json TEXT NOT NULL DEFAULT '{}',
                        updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                    )
                    """
                )
                conn.commit()

    def get_item(self, key: str) -> Dict[str, Any]:
        with self._lock:
            with self._connect() as conn:
                row = conn.execute("SELECT value_json FROM local_state WHERE key = ?", (key,)).fetchone()
        return self._safe_json_object(row["value_json"] if row else None)

    def set_item(self, key: str, value: Dict[str, Any]) -> None:
        with self._lock:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO local_state (key, value_json, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(key) DO UPDATE SET
                        value_json = excluded.value_json,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (key, json.dumps(value)),
                )
                conn.commit()

    def _safe_json_object(self, raw_value: Any) -> Dict[str, Any]:
        if raw_value in (None, ""):
            return {}
        if not isinstance(raw_value, str):
            return {}
        try:
            parsed = json.loads(raw_value)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable local state blob")
            return {}
        return parsed if isinstance(parsed, dict) else {}


class ChatStore:
    """Per-request ordered message storage."""

    def append(self, request_id: str, message: ChatMessage) -> None:
        raise NotImplementedError

    def read(self, request_id: str) -> List[ChatMessage]:
        raise NotImplementedError


class LocalChatStore(ChatStore):
    def __init__(self, state: LocalStateStore, namespace: str) -> None:
        self._state = state
        self.namespace = namespace

    def append(self, request_id: str, message: ChatMessage) -> None:
        chats = self._state.get_item(self.namespace)
        thread = chats.get(request_id)
        if not isinstance(thread, list):
            thread = []
        thread.append(message.model_dump())
        chats[request_id] = thread
        self._state.set_item(self.namespace, chats)

    def read(self, request_id: str) -> List[ChatMessage]:
        thread = self._state.get_item(self.namespace).get(request_id)
        if not isinstance(thread, list):
            return []
        messages: List[ChatMessage] = []
        for item in thread:
            if not isinstance(item, dict) or not item.get("text"):
                continue
            try:
                messages.append(ChatMessage.model_validate(item))
            except ValueError:
                continue
        return messages


def _message_time(message: ChatMessage) -> datetime:
    try:
        parsed = datetime.fromisoformat(message.time.replace("Z", "+00:00"))
    except ValueError:
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def merge_messages(messages: Iterable[ChatMessage]) -> List[ChatMessage]:
    """Drop exact (sender, text, time) repeats and order by time, oldest first."""
    seen = set()
    unique: List[ChatMessage] = []
    for message in messages:
        key = (message.sender, message.text, message.time)
        if key in seen:
            continue
        seen.add(key)
        unique.append(message)
    unique.sort(key=_message_time)
    return unique


class ChatLog:
    """Two-sided chat over a pair of stores, one per party.

    Every sent message is written into both stores; reading merges both and
    the request's opening message, so each party sees a single thread.
    """

    def __init__(self, provider_chats: ChatStore, user_chats: ChatStore) -> None:
        self.provider_chats = provider_chats
        self.user_chats = user_chats

    def sender_role(self, session: Session, request: ContactRequest) -> str:
        if session.user_id == request.user_id:
            return "customer"
        if session.user_id == request.provider_id:
            return "provider"
        raise MarketplacePermissionError("Only the customer and provider of a request can use its chat")

    def send(self, *, session: Session, request: ContactRequest, text: str) -> ChatMessage:
        sender = self.sender_role(session, request)
        if request.status != "accepted":
            raise MarketplaceConflictError("Chat is available only after the request is accepted")
        cleaned = (text or "").strip()
        if not cleaned:
            raise MarketplaceValidationError("Message text is required")
        message = ChatMessage(sender=sender, text=cleaned, time=datetime.now(timezone.utc).isoformat())
        self.provider_chats.append(request.id, message)
        self.user_chats.append(request.id, message)
        return message

    def _collect(self, request: ContactRequest) -> List[ChatMessage]:
        collected: List[ChatMessage] = []
        if request.message:
            collected.append(ChatMessage(sender="customer", text=request.message, time=request.created_at))
        collected.extend(self.provider_chats.read(request.id))
        collected.extend(self.user_chats.read(request.id))
        return collected

    def open_conversation(self, request: ContactRequest, session: Optional[Session] = None) -> List[ChatMessage]:
        if session is not None:
            self.sender_role(session, request)
        return merge_messages(self._collect(request))

    def open_customer_thread(self, requests: Iterable[ContactRequest]) -> List[ChatMessage]:
        """All messages a provider exchanged with one customer, across that customer's requests."""
        collected: List[ChatMessage] = []
        for request in requests:
            collected.extend(self._collect(request))
        return merge_messages(collected)


default_db = str(Path(__file__).resolve().parents[2] / "data" / "local_state.sqlite3")
local_state = LocalStateStore(db_path=os.getenv("CHAT_DB_PATH", default_db))
chat_log = ChatLog(
    provider_chats=LocalChatStore(local_state, PROVIDER_CHATS_KEY),
    user_chats=LocalChatStore(local_state, USER_CHATS_KEY),
)
