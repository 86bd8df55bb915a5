from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from marketplace.auth import require_session
from marketplace.models import (
    ChatConversation,
    ChatMessage,
    ChatSendRequest,
    ContactRequest,
    ContactRequestCreate,
    CustomerRequestView,
    ProviderRequestQueue,
    Session,
)
from marketplace.routers.common import raise_store_http_error
from marketplace.services.chat_store import chat_log
from marketplace.services.errors import MarketplaceStoreError
from marketplace.services.notification_store import notification_store
from marketplace.services.provider_store import provider_store
from marketplace.services.request_store import STATUS_MESSAGES, request_store

router = APIRouter(prefix="/requests", tags=["requests"])


def _load_request(request_id: str, session: Session) -> ContactRequest:
    request = request_store.get_request(request_id)
    if request is None:
        raise HTTPException(status_code=404, detail="Request not found")
    if session.user_id not in {request.user_id, request.provider_id} and not session.is_admin:
        raise HTTPException(status_code=403, detail="Not a party to this request")
    return request


@router.post("", response_model=ContactRequest)
def create_request(payload: ContactRequestCreate, session: Session = Depends(require_session)):
    provider = provider_store.get_provider(payload.provider_id)
    if provider is None:
        raise HTTPException(status_code=404, detail="Provider not found")
    try:
        request = request_store.create_request(customer=session, provider=provider, message=payload.message)
    except MarketplaceStoreError as exc:
        raise_store_http_error(exc)
    notification_store.notify_request_created(
        provider_id=request.provider_id,
        customer_name=request.user_name,
        request_id=request.id,
    )
    return request


@router.get("/mine", response_model=list[CustomerRequestView])
def my_requests(session: Session = Depends(require_session)):
    views = []
    for request in request_store.list_for_user(session.user_id):
        contact_info = None
        if request.status == "accepted":
            provider = provider_store.get_provider(request.provider_id)
            # Provider may have been deleted since; the request itself stays readable.
            contact_info = provider.contact_info if provider else None
        views.append(
            CustomerRequestView(
                request=request,
                status_message=STATUS_MESSAGES[request.status],
                contact_info=contact_info,
                chat_enabled=request.status == "accepted",
            )
        )
    return views


@router.get("/incoming", response_model=ProviderRequestQueue)
def incoming_requests(
    status: Optional[str] = Query(default=None),
    session: Session = Depends(require_session),
):
    if not session.is_provider:
        raise HTTPException(status_code=403, detail="Only providers receive contact requests")
    try:
        requests = request_store.list_for_provider(session.user_id, status=status)
    except MarketplaceStoreError as exc:
        raise_store_http_error(exc)
    return ProviderRequestQueue(requests=requests, counts=request_store.status_counts(session.user_id))


@router.get("/customers/{user_id}/chat", response_model=ChatConversation)
def customer_thread(user_id: str, session: Session = Depends(require_session)):
    if not session.is_provider:
        raise HTTPException(status_code=403, detail="Only providers can open customer threads")
    requests = [r for r in request_store.list_for_provider(session.user_id) if r.user_id == user_id]
    return ChatConversation(messages=chat_log.open_customer_thread(requests))


@router.get("/{request_id}", response_model=ContactRequest)
def get_request(request_id: str, session: Session = Depends(require_session)):
    return _load_request(request_id, session)


def _decide(request_id: str, session: Session, accept: bool) -> ContactRequest:
    try:
        if accept:
            request = request_store.accept(request_id=request_id, actor=session)
        else:
            request = request_store.reject(request_id=request_id, actor=session)
    except MarketplaceStoreError as exc:
        raise_store_http_error(exc)
    notification_store.notify_request_decided(
        customer_id=request.user_id,
        provider_name=request.provider_name,
        request_id=request.id,
        status=request.status,
    )
    return request


@router.post("/{request_id}/accept", response_model=ContactRequest)
def accept_request(request_id: str, session: Session = Depends(require_session)):
    return _decide(request_id, session, accept=True)


@router.post("/{request_id}/reject", response_model=ContactRequest)
def reject_request(request_id: str, session: Session = Depends(require_session)):
    return _decide(request_id, session, accept=False)


@router.get("/{request_id}/chat", response_model=ChatConversation)
def open_chat(request_id: str, session: Session = Depends(require_session)):
    request = _load_request(request_id, session)
    try:
        messages = chat_log.open_conversation(request, session=session)
    except MarketplaceStoreError as exc:
        raise_store_http_error(exc)
    return ChatConversation(request_id=request.id, messages=messages)


@router.post("/{request_id}/chat", response_model=ChatMessage)
def send_chat(request_id: str, payload: ChatSendRequest, session: Session = Depends(require_session)):
    request = _load_request(request_id, session)
    try:
        message = chat_log.send(session=session, request=request, text=payload.text)
    except MarketplaceStoreError as exc:
        raise_store_http_error(exc)
    recipient = request.provider_id if message.sender == "customer" else request.user_id
    sender_name = request.user_name if message.sender == "customer" else request.provider_name
    notification_store.create(
        user_id=recipient,
        title="New message",
        body=f"{sender_name or 'Someone'}: {message.text[:80]}",
        category="message",
        deep_link=f"chat:{request.id}",
    )
    return message
