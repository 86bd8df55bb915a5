from fastapi import APIRouter, Depends, HTTPException, Query

from marketplace.auth import require_session
from marketplace.models import NotificationRecord, Session
from marketplace.services.notification_store import notification_store

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationRecord])
def list_notifications(
    unread_only: bool = Query(default=False),
    session: Session = Depends(require_session),
):
    return notification_store.list_for_user(user_id=session.user_id, unread_only=unread_only)


@router.post("/read-all")
def mark_all_read(session: Session = Depends(require_session)):
    return {"updated": notification_store.mark_all_read(session.user_id)}


@router.post("/{notification_id}/read", response_model=NotificationRecord)
def mark_notification_read(notification_id: str, session: Session = Depends(require_session)):
    updated = notification_store.mark_read(user_id=session.user_id, notification_id=notification_id)
    if not updated:
        raise HTTPException(status_code=404, detail="Notification not found")
    return updated
