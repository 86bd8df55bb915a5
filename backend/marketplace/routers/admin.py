import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from marketplace.auth import require_admin
from marketplace.models import Provider, Session
from marketplace.routers.common import raise_store_http_error
from marketplace.services.directory import search_providers
from marketplace.services.errors import MarketplaceStoreError
from marketplace.services.notification_store import notification_store
from marketplace.services.provider_store import provider_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/providers", response_model=list[Provider])
def list_providers(
    q: Optional[str] = Query(default=None),
    session: Session = Depends(require_admin),
):
    return search_providers(provider_store.list_providers(), q or "")


@router.delete("/providers/{provider_id}")
def delete_provider(provider_id: str, session: Session = Depends(require_admin)):
    try:
        provider_store.delete_profile(provider_id=provider_id, actor=session)
    except MarketplaceStoreError as exc:
        raise_store_http_error(exc)
    # Requests, cards and reviews of the provider are left in place.
    logger.info("Admin %s removed provider listing %s", session.user_id, provider_id)
    notification_store.create(
        user_id=provider_id,
        title="Listing removed",
        body="Your provider profile was removed by an administrator.",
        category="moderation",
    )
    return {"status": "deleted", "provider_id": provider_id}
