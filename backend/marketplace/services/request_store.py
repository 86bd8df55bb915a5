import logging
import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional
from uuid import uuid4

from marketplace.models import ContactRequest, Provider, Session
from marketplace.services.errors import (
    MarketplaceConflictError,
    MarketplaceNotFoundError,
    MarketplacePermissionError,
    MarketplaceValidationError,
)

logger = logging.getLogger(__name__)

REQUEST_ACTIVE_STATUSES = {"pending", "accepted"}
REQUEST_TERMINAL_STATUSES = {"accepted", "rejected"}

STATUS_MESSAGES = {
    "pending": "Your request is pending. The provider will review it soon.",
    "accepted": "Great! Your request has been accepted. You can now chat with the provider.",
    "rejected": "Unfortunately, your request was declined. Feel free to browse other service providers.",
}


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class RequestStore:
    """Contact requests and their pending -> accepted/rejected lifecycle.

    The duplicate check in ``create_request`` is check-then-act; a partial
    unique index over active (user, provider) pairs catches the concurrent
    case. Status changes are conditional on the row still being pending.
    """

    db_path: str

    def __post_init__(self) -> None:
        self._lock = Lock()
        path = Path(self.db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = str(path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._lock:
            with self._connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS contact_requests (
                        id TEXT PRIMARY KEY,
                        user_id TEXT NOT NULL,
                        user_name TEXT NOT NULL DEFAULT '',
                        provider_id TEXT NOT NULL,
                        provider_name TEXT NOT NULL DEFAULT '',
                        message TEXT NOT NULL DEFAULT '',
                        status TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE UNIQUE INDEX IF NOT EXISTS uq_contact_requests_active_pair
                    ON contact_requests(user_id, provider_id)
                    WHERE status IN ('pending', 'accepted')
                    """
                )
                conn.execute("CREATE INDEX IF NOT EXISTS idx_requests_provider ON contact_requests(provider_id)")
                conn.execute("CREATE INDEX IF NOT EXISTS idx_requests_user ON contact_requests(user_id)")
                conn.commit()

    def _row_to_request(self, row: sqlite3.Row) -> ContactRequest:
        return ContactRequest(
            id=row["id"],
            user_id=row["user_id"],
            user_name=row["user_name"],
            provider_id=row["provider_id"],
            provider_name=row["provider_name"],
            message=row["message"],
            status=row["status"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def exists_active(self, user_id: str, provider_id: str) -> bool:
        with self._lock:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    SELECT 1 FROM contact_requests
                    WHERE user_id = ? AND provider_id = ? AND status IN ('pending', 'accepted')
                    LIMIT 1
                    """,
                    (user_id, provider_id),
                ).fetchone()
        return row is not None

    def create_request(self, *, customer: Session, provider: Provider, message: str = "") -> ContactRequest:
        if customer.is_provider:
            raise MarketplacePermissionError("Providers cannot send contact requests")
        if customer.user_id == provider.id:
            raise MarketplaceValidationError("You cannot send a request to yourself")
        if self.exists_active(customer.user_id, provider.id):
            raise MarketplaceValidationError("You already have an active request with this provider")

        now = _utc_now()
        request = ContactRequest(
            id=f"req_{uuid4().hex[:10]}",
            user_id=customer.user_id,
            user_name=customer.display_name,
            provider_id=provider.id,
            provider_name=provider.name,
            message=(message or "").strip(),
            status="pending",
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            with self._connect() as conn:
                try:
                    conn.execute(
                        """
                        INSERT INTO contact_requests (
                            id, user_id, user_name, provider_id, provider_name, message, status, created_at, updated_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            request.id,
                            request.user_id,
                            request.user_name,
                            request.provider_id,
                            request.provider_name,
                            request.message,
                            request.status,
                            request.created_at,
                            request.updated_at,
                        ),
                    )
                except sqlite3.IntegrityError as exc:
                    raise MarketplaceConflictError("You already have an active request with this provider") from exc
                conn.commit()
        logger.info("Contact request %s created: %s -> %s", request.id, request.user_id, request.provider_id)
        return request

    def get_request(self, request_id: str) -> Optional[ContactRequest]:
        with self._lock:
            with self._connect() as conn:
                row = conn.execute("SELECT * FROM contact_requests WHERE id = ?", (request_id,)).fetchone()
        return self._row_to_request(row) if row else None

    def list_for_provider(self, provider_id: str, status: Optional[str] = None) -> List[ContactRequest]:
        if status is not None and status not in STATUS_MESSAGES:
            raise MarketplaceValidationError("Invalid status value. Allowed: pending, accepted, rejected")
        query = "SELECT * FROM contact_requests WHERE provider_id = ?"
        params: List[str] = [provider_id]
        if status:
            query += " AND status = ?"
            params.append(status)
        query += " ORDER BY created_at DESC, rowid DESC"
        with self._lock:
            with self._connect() as conn:
                rows = conn.execute(query, tuple(params)).fetchall()
        return [self._row_to_request(row) for row in rows]

    def list_for_user(self, user_id: str) -> List[ContactRequest]:
        with self._lock:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM contact_requests WHERE user_id = ? ORDER BY created_at DESC, rowid DESC",
                    (user_id,),
                ).fetchall()
        return [self._row_to_request(row) for row in rows]

    def status_counts(self, provider_id: str) -> Dict[str, int]:
        counts = {status: 0 for status in STATUS_MESSAGES}
        with self._lock:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT status, COUNT(*) AS c FROM contact_requests WHERE provider_id = ? GROUP BY status",
                    (provider_id,),
                ).fetchall()
        for row in rows:
            counts[str(row["status"])] = int(row["c"])
        return counts

    def accept(self, *, request_id: str, actor: Session) -> ContactRequest:
        return self._transition(request_id=request_id, actor=actor, next_status="accepted")

    def reject(self, *, request_id: str, actor: Session) -> ContactRequest:
        return self._transition(request_id=request_id, actor=actor, next_status="rejected")

    def _transition(self, *, request_id: str, actor: Session, next_status: str) -> ContactRequest:
        with self._lock:
            with self._connect() as conn:
                row = conn.execute("SELECT * FROM contact_requests WHERE id = ?", (request_id,)).fetchone()
                if not row:
                    raise MarketplaceNotFoundError("Request not found")
                if actor.user_id != row["provider_id"]:
                    raise MarketplacePermissionError("Only the addressed provider can update this request")

                updated = conn.execute(
                    """
                    UPDATE contact_requests SET status = ?, updated_at = ?
                    WHERE id = ? AND status = 'pending'
                    """,
                    (next_status, _utc_now(), request_id),
                ).rowcount
                if not updated:
                    current = conn.execute(
                        "SELECT status FROM contact_requests WHERE id = ?",
                        (request_id,),
                    ).fetchone()
                    raise MarketplaceConflictError(f"Request is already {current['status']}")
                conn.commit()
                refreshed = conn.execute("SELECT * FROM contact_requests WHERE id = ?", (request_id,)).fetchone()
        logger.info("Contact request %s %s by %s", request_id, next_status, actor.user_id)
        return self._row_to_request(refreshed)

    def contact_status(self, *, viewer: Optional[Session], provider_id: str) -> str:
        """How much of a provider's profile the viewer may see.

        ``self`` for the provider viewing their own profile, otherwise the
        status of the viewer's most recent request to that provider, or ``none``.
        """
        if viewer is None:
            return "none"
        if viewer.user_id == provider_id:
            return "self"
        with self._lock:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT status FROM contact_requests
                    WHERE user_id = ? AND provider_id = ?
                    ORDER BY created_at DESC, rowid DESC
                    """,
                    (viewer.user_id, provider_id),
                ).fetchall()
        statuses = [str(row["status"]) for row in rows]
        for status in ("accepted", "pending"):
            if status in statuses:
                return status
        return statuses[0] if statuses else "none"


def can_view_contact(contact_status: str) -> bool:
    return contact_status in {"self", "accepted"}


default_db = str(Path(__file__).resolve().parents[2] / "data" / "marketplace.sqlite3")
request_store = RequestStore(db_path=os.getenv("MARKETPLACE_DB_PATH", default_db))
