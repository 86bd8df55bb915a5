from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from starlette.concurrency import run_in_threadpool

from marketplace.auth import optional_session, require_session
from marketplace.catalog import AVAILABILITY_OPTIONS, CITIES, LIVE_LOCATION_RADIUS_KM, SKILLS
from marketplace.models import (
    Catalog,
    Provider,
    ProviderDashboard,
    ProviderDetails,
    ProviderProfileSaveRequest,
    Review,
    ReviewCreateRequest,
    ServiceCard,
    ServiceCardCreateRequest,
    Session,
)
from marketplace.routers.common import public_provider, raise_store_http_error
from marketplace.services.directory import AdvancedFilter, DirectoryFilter, filter_providers, refine_providers
from marketplace.services.errors import MarketplaceStoreError
from marketplace.services.location import LocationService
from marketplace.services.provider_store import provider_store
from marketplace.services.request_store import can_view_contact, request_store

router = APIRouter(tags=["providers"])


@router.get("/catalog", response_model=Catalog)
def catalog():
    return Catalog(
        skills=SKILLS,
        cities=CITIES,
        availability_options=AVAILABILITY_OPTIONS,
        live_location_radius_km=LIVE_LOCATION_RADIUS_KM,
    )


@router.get("/providers", response_model=list[Provider])
async def list_providers(
    q: Optional[str] = Query(default=None),
    skill: Optional[str] = Query(default=None),
    city: Optional[str] = Query(default=None),
    use_live_location: bool = Query(default=False),
    user_lat: Optional[float] = Query(default=None, ge=-90, le=90),
    user_lng: Optional[float] = Query(default=None, ge=-180, le=180),
    min_price: Optional[float] = Query(default=None, ge=0),
    max_price: Optional[float] = Query(default=None, ge=0),
    min_rating: Optional[float] = Query(default=None, ge=0, le=5),
    availability: List[str] = Query(default=[]),
):
    if min_price is not None and max_price is not None and min_price > max_price:
        raise HTTPException(status_code=400, detail="min_price must not exceed max_price")

    user_coordinates = None
    if use_live_location:
        user_coordinates = await LocationService.from_coordinates(user_lat, user_lng).acquire()
    providers = await run_in_threadpool(provider_store.list_providers, skill=skill or None)
    matched = filter_providers(
        providers,
        DirectoryFilter(
            search_term=q or "",
            skill=skill or "",
            city=city or "",
            use_live_location=use_live_location,
            user_coordinates=user_coordinates,
        ),
    )
    refined = refine_providers(
        matched,
        AdvancedFilter(
            min_price=min_price,
            max_price=max_price,
            min_rating=min_rating,
            availability_tags=tuple(availability),
        ),
    )
    return [public_provider(provider) for provider in refined]


@router.put("/providers/me", response_model=Provider)
def save_my_profile(request: ProviderProfileSaveRequest, session: Session = Depends(require_session)):
    try:
        return provider_store.save_profile(owner=session, update=request)
    except MarketplaceStoreError as exc:
        raise_store_http_error(exc)


@router.delete("/providers/me")
def delete_my_profile(session: Session = Depends(require_session)):
    try:
        provider_store.delete_profile(provider_id=session.user_id, actor=session)
        return {"status": "deleted", "provider_id": session.user_id}
    except MarketplaceStoreError as exc:
        raise_store_http_error(exc)


@router.get("/providers/me/dashboard", response_model=ProviderDashboard)
def my_dashboard(
    status: Optional[str] = Query(default=None),
    session: Session = Depends(require_session),
):
    if not session.is_provider:
        raise HTTPException(status_code=403, detail="Only providers have a dashboard")
    try:
        requests = request_store.list_for_provider(session.user_id, status=status)
    except MarketplaceStoreError as exc:
        raise_store_http_error(exc)
    return ProviderDashboard(
        provider=provider_store.get_provider(session.user_id),
        requests=requests,
        counts=request_store.status_counts(session.user_id),
        cards=provider_store.list_cards(session.user_id),
        profile_views=provider_store.count_profile_views(session.user_id),
    )


@router.post("/providers/me/cards", response_model=ServiceCard)
def create_card(request: ServiceCardCreateRequest, session: Session = Depends(require_session)):
    try:
        return provider_store.create_card(owner=session, request=request)
    except MarketplaceStoreError as exc:
        raise_store_http_error(exc)


@router.delete("/providers/me/cards/{card_id}")
def delete_card(card_id: str, session: Session = Depends(require_session)):
    try:
        provider_store.delete_card(owner=session, card_id=card_id)
        return {"status": "deleted", "card_id": card_id}
    except MarketplaceStoreError as exc:
        raise_store_http_error(exc)


@router.get("/providers/{provider_id}", response_model=ProviderDetails)
def provider_details(provider_id: str, session: Optional[Session] = Depends(optional_session)):
    provider = provider_store.get_provider(provider_id)
    if provider is None:
        raise HTTPException(status_code=404, detail="Provider not found")
    if session is not None and session.user_id != provider_id:
        provider_store.log_profile_view(provider_id, session.user_id)

    contact_status = request_store.contact_status(viewer=session, provider_id=provider_id)
    return ProviderDetails(
        provider=provider if can_view_contact(contact_status) else public_provider(provider),
        cards=provider_store.list_cards(provider_id),
        reviews=provider_store.list_reviews(provider_id),
        contact_status=contact_status,
        chat_enabled=contact_status == "accepted",
    )


@router.get("/providers/{provider_id}/cards", response_model=list[ServiceCard])
def list_cards(provider_id: str):
    return provider_store.list_cards(provider_id)


@router.get("/providers/{provider_id}/reviews", response_model=list[Review])
def list_reviews(provider_id: str):
    return provider_store.list_reviews(provider_id)


@router.post("/providers/{provider_id}/reviews", response_model=Review)
def add_review(provider_id: str, request: ReviewCreateRequest, session: Session = Depends(require_session)):
    try:
        return provider_store.add_review(provider_id=provider_id, author=session, text=request.text)
    except MarketplaceStoreError as exc:
        raise_store_http_error(exc)
