import base64
import hashlib
import hmac
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Header, HTTPException, status

from marketplace.models import Session
from marketplace.services.account_store import account_store


def _parse_ttl_hours(raw: Optional[str], default: int = 24) -> int:
    try:
        value = int(raw) if raw else default
    except ValueError:
        return default
    return value if value > 0 else default


TOKEN_TTL_HOURS = _parse_ttl_hours(os.getenv("AUTH_TOKEN_TTL_HOURS"))
_AUTH_SECRET = os.getenv("AUTH_SECRET", "dev-insecure-secret-change-me")


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")


def _b64urldecode(value: str) -> bytes:
    padding = "=" * ((4 - len(value) % 4) % 4)
    return base64.urlsafe_b64decode((value + padding).encode("utf-8"))


def create_access_token(user_id: str) -> tuple[str, str]:
    expiry = datetime.now(timezone.utc) + timedelta(hours=TOKEN_TTL_HOURS)
    payload = f"{user_id}|{int(expiry.timestamp())}".encode("utf-8")
    sig = hmac.new(_AUTH_SECRET.encode("utf-8"), payload, hashlib.sha256).digest()
    return f"{_b64url(payload)}.{_b64url(sig)}", expiry.isoformat()


def verify_access_token(token: str) -> Optional[str]:
    try:
        payload_part, sig_part = token.split(".", 1)
        payload = _b64urldecode(payload_part)
        sent_sig = _b64urldecode(sig_part)
        user_id, expiry_ts = payload.decode("utf-8").split("|", 1)
        expired = datetime.now(timezone.utc).timestamp() > int(expiry_ts)
    except (ValueError, UnicodeDecodeError):
        return None
    expected_sig = hmac.new(_AUTH_SECRET.encode("utf-8"), payload, hashlib.sha256).digest()
    if not hmac.compare_digest(sent_sig, expected_sig) or expired:
        return None
    return user_id


def parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1].strip() or None


def resolve_session(authorization: Optional[str]) -> Optional[Session]:
    token = parse_bearer_token(authorization)
    if not token:
        return None
    user_id = verify_access_token(token)
    if not user_id:
        return None
    return account_store.get_session(user_id)


def optional_session(authorization: Optional[str] = Header(default=None)) -> Optional[Session]:
    return resolve_session(authorization)


def require_session(authorization: Optional[str] = Header(default=None)) -> Session:
    session = resolve_session(authorization)
    if session is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing bearer token")
    return session


def require_admin(authorization: Optional[str] = Header(default=None)) -> Session:
    session = require_session(authorization)
    if not session.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return session
