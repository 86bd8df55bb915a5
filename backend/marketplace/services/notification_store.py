from datetime import datetime, timezone
from threading import Lock
from typing import List, Optional
from uuid import uuid4

from marketplace.models import NotificationRecord


class NotificationStore:
    """In-app notification records; there is no device push delivery."""

    def __init__(self):
        self._lock = Lock()
        self._notifications: List[NotificationRecord] = []

    def create(
        self,
        user_id: str,
        title: str,
        body: str,
        category: str = "system",
        deep_link: Optional[str] = None,
    ) -> NotificationRecord:
        record = NotificationRecord(
            id=f"ntf_{uuid4().hex[:10]}",
            user_id=user_id,
            title=title,
            body=body,
            category=category,  # type: ignore[arg-type]
            read=False,
            created_at=datetime.now(timezone.utc).isoformat(),
            deep_link=deep_link,
        )
        with self._lock:
            self._notifications.insert(0, record)
        return record

    def list_for_user(self, user_id: str, unread_only: bool = False) -> List[NotificationRecord]:
        with self._lock:
            rows = [n for n in self._notifications if n.user_id == user_id]
            if unread_only:
                rows = [n for n in rows if not n.read]
            return rows[:100]

    def mark_read(self, user_id: str, notification_id: str) -> Optional[NotificationRecord]:
        with self._lock:
            for idx, row in enumerate(self._notifications):
                if row.id == notification_id and row.user_id == user_id:
                    updated = row.model_copy(update={"read": True})
                    self._notifications[idx] = updated
                    return updated
        return None

    def mark_all_read(self, user_id: str) -> int:
        changed = 0
        with self._lock:
            for idx, row in enumerate(self._notifications):
                if row.user_id == user_id and not row.read:
                    self._notifications[idx] = row.model_copy(update={"read": True})
                    changed += 1
        return changed

    def notify_request_created(self, *, provider_id: str, customer_name: str, request_id: str) -> NotificationRecord:
        return self.create(
            user_id=provider_id,
            title="New contact request",
            body=f"{customer_name or 'A customer'} wants to see your contact details",
            category="request",
            deep_link=f"request:{request_id}",
        )

    def notify_request_decided(self, *, customer_id: str, provider_name: str, request_id: str, status: str) -> NotificationRecord:
        if status == "accepted":
            body = f"{provider_name} accepted your request. Contact details and chat are now available."
        else:
            body = f"{provider_name} declined your request. Feel free to browse other service providers."
        return self.create(
            user_id=customer_id,
            title=f"Request {status}",
            body=body,
            category="request",
            deep_link=f"request:{request_id}",
        )


notification_store = NotificationStore()
