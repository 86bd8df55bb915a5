from fastapi import HTTPException

from marketplace.models import Provider
from marketplace.services.errors import (
    MarketplaceConflictError,
    MarketplaceNotFoundError,
    MarketplacePermissionError,
    MarketplaceStoreError,
)


def raise_store_http_error(exc: MarketplaceStoreError) -> None:
    if isinstance(exc, MarketplaceNotFoundError):
        raise HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, MarketplacePermissionError):
        raise HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, MarketplaceConflictError):
        raise HTTPException(status_code=409, detail=str(exc))
    raise HTTPException(status_code=400, detail=str(exc))


def public_provider(provider: Provider) -> Provider:
    return provider.model_copy(update={"contact_info": None})
