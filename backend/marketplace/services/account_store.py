import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Optional, Set
from uuid import uuid4

from werkzeug.security import check_password_hash, generate_password_hash

from marketplace.models import Session
from marketplace.services.errors import (
    MarketplaceConflictError,
    MarketplaceValidationError,
)

MIN_PASSWORD_LENGTH = 6
_PASSWORD_HASH_METHOD = "pbkdf2:sha256"


@dataclass
class AccountStore:
    db_path: str

    def __post_init__(self) -> None:
        self._lock = Lock()
        path = Path(self.db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = str(path)
        self._admin_user_ids: Set[str] = {
            value.strip() for value in os.getenv("ADMIN_USER_IDS", "").split(",") if value.strip()
        }
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
                    CREATE TABLE IF NOT EXISTS accounts (
                        user_id TEXT PRIMARY KEY,
                        email TEXT NOT NULL UNIQUE,
                        display_name TEXT NOT NULL,
                        user_type TEXT NOT NULL,
                        password_hash TEXT NOT NULL,
                        created_at TEXT NOT NULL
                    )
                    """
                )
                conn.commit()

    def grant_admin(self, user_id: str) -> None:
        self._admin_user_ids.add(user_id)

    def _row_to_session(self, row: sqlite3.Row) -> Session:
        return Session(
            user_id=row["user_id"],
            display_name=row["display_name"],
            user_type=row["user_type"],
            admin=row["user_id"] in self._admin_user_ids,
        )

    def signup(
        self,
        *,
        email: str,
        display_name: str,
        password: str,
        confirm_password: str,
        user_type: str = "customer",
    ) -> Session:
        normalized_email = email.strip().lower()
        name = display_name.strip()
        if not normalized_email or not name or not password:
            raise MarketplaceValidationError("Please fill in all fields")
        if "@" not in normalized_email:
            raise MarketplaceValidationError("Invalid email address")
        if password != confirm_password:
            raise MarketplaceValidationError("Passwords do not match")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise MarketplaceValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if user_type not in {"customer", "provider"}:
            raise MarketplaceValidationError("Invalid user type. Allowed: customer, provider")

        user_id = f"usr_{uuid4().hex[:12]}"
        with self._lock:
            with self._connect() as conn:
                try:
                    conn.execute(
                        """
                        INSERT INTO accounts (user_id, email, display_name, user_type, password_hash, created_at)
                        VALUES (?, ?, ?, ?, ?, ?)
                        """,
                        (
                            user_id,
                            normalized_email,
                            name,
                            user_type,
                            generate_password_hash(password, method=_PASSWORD_HASH_METHOD),
                            datetime.now(timezone.utc).isoformat(),
                        ),
                    )
                except sqlite3.IntegrityError as exc:
                    raise MarketplaceConflictError("An account with this email already exists") from exc
                conn.commit()
                row = conn.execute("SELECT * FROM accounts WHERE user_id = ?", (user_id,)).fetchone()
        return self._row_to_session(row)

    def authenticate(self, *, email: str, password: str) -> Optional[Session]:
        with self._lock:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT * FROM accounts WHERE email = ?",
                    (email.strip().lower(),),
                ).fetchone()
        if not row or not check_password_hash(row["password_hash"], password):
            return None
        return self._row_to_session(row)

    def get_session(self, user_id: str) -> Optional[Session]:
        with self._lock:
            with self._connect() as conn:
                row = conn.execute("SELECT * FROM accounts WHERE user_id = ?", (user_id,)).fetchone()
        return self._row_to_session(row) if row else None


default_db = str(Path(__file__).resolve().parents[2] / "data" / "marketplace.sqlite3")
account_store = AccountStore(db_path=os.getenv("MARKETPLACE_DB_PATH", default_db))
