import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from marketplace.models import Provider, ProviderLocation, Session
from marketplace.services.errors import (
    MarketplaceConflictError,
    MarketplaceNotFoundError,
    MarketplacePermissionError,
    MarketplaceValidationError,
)
from marketplace.services.request_store import RequestStore, can_view_contact

CUSTOMER = Session(user_id="cust_1", display_name="Hamza", user_type="customer")
OTHER_CUSTOMER = Session(user_id="cust_2", display_name="Zara", user_type="customer")
PROVIDER_SESSION = Session(user_id="prov_1", display_name="Nadia", user_type="provider")
PROVIDER = Provider(
    id="prov_1",
    user_id="prov_1",
    name="Nadia",
    skills=["Chef"],
    location=ProviderLocation(city="Lahore"),
)


@pytest.fixture
def store(tmp_path):
    return RequestStore(db_path=str(tmp_path / "requests.sqlite3"))


def test_new_request_is_pending_and_visible_to_both_sides(store):
    request = store.create_request(customer=CUSTOMER, provider=PROVIDER, message="  Need a dinner chef  ")
    assert request.status == "pending"
    assert request.message == "Need a dinner chef"
    assert request.provider_name == "Nadia"
    assert [r.id for r in store.list_for_user("cust_1")] == [request.id]
    assert [r.id for r in store.list_for_provider("prov_1")] == [request.id]
    assert store.status_counts("prov_1") == {"pending": 1, "accepted": 0, "rejected": 0}


def test_duplicate_active_request_is_rejected(store):
    store.create_request(customer=CUSTOMER, provider=PROVIDER)
    with pytest.raises(MarketplaceValidationError, match="already have an active request"):
        store.create_request(customer=CUSTOMER, provider=PROVIDER)
    assert len(store.list_for_user("cust_1")) == 1


def test_duplicate_blocked_while_accepted(store):
    request = store.create_request(customer=CUSTOMER, provider=PROVIDER)
    store.accept(request_id=request.id, actor=PROVIDER_SESSION)
    with pytest.raises(MarketplaceValidationError):
        store.create_request(customer=CUSTOMER, provider=PROVIDER)


def test_new_request_allowed_after_rejection(store):
    first = store.create_request(customer=CUSTOMER, provider=PROVIDER)
    store.reject(request_id=first.id, actor=PROVIDER_SESSION)
    second = store.create_request(customer=CUSTOMER, provider=PROVIDER)
    assert second.id != first.id
    assert second.status == "pending"


def test_concurrent_duplicate_caught_by_unique_index(store, monkeypatch):
    store.create_request(customer=CUSTOMER, provider=PROVIDER)
    # Simulate losing the race: the pre-check saw nothing active.
    monkeypatch.setattr(store, "exists_active", lambda user_id, provider_id: False)
    with pytest.raises(MarketplaceConflictError):
        store.create_request(customer=CUSTOMER, provider=PROVIDER)
    assert len(store.list_for_user("cust_1")) == 1


def test_providers_cannot_send_requests(store):
    other_provider = Session(user_id="prov_2", display_name="Omar", user_type="provider")
    with pytest.raises(MarketplacePermissionError):
        store.create_request(customer=other_provider, provider=PROVIDER)


def test_request_to_yourself_is_rejected(store):
    admin = Session(user_id="prov_1", display_name="Nadia", user_type="admin")
    with pytest.raises(MarketplaceValidationError):
        store.create_request(customer=admin, provider=PROVIDER)


def test_accept_is_terminal(store):
    request = store.create_request(customer=CUSTOMER, provider=PROVIDER)
    accepted = store.accept(request_id=request.id, actor=PROVIDER_SESSION)
    assert accepted.status == "accepted"
    assert accepted.updated_at >= request.updated_at

    with pytest.raises(MarketplaceConflictError, match="already accepted"):
        store.reject(request_id=request.id, actor=PROVIDER_SESSION)
    assert store.get_request(request.id).status == "accepted"


def test_reject_is_terminal(store):
    request = store.create_request(customer=CUSTOMER, provider=PROVIDER)
    store.reject(request_id=request.id, actor=PROVIDER_SESSION)
    with pytest.raises(MarketplaceConflictError, match="already rejected"):
        store.accept(request_id=request.id, actor=PROVIDER_SESSION)
    assert store.get_request(request.id).status == "rejected"


def test_only_addressed_provider_can_decide(store):
    request = store.create_request(customer=CUSTOMER, provider=PROVIDER)
    with pytest.raises(MarketplacePermissionError):
        store.accept(request_id=request.id, actor=CUSTOMER)
    stranger = Session(user_id="prov_2", display_name="Omar", user_type="provider")
    with pytest.raises(MarketplacePermissionError):
        store.reject(request_id=request.id, actor=stranger)
    assert store.get_request(request.id).status == "pending"


def test_deciding_unknown_request_is_not_found(store):
    with pytest.raises(MarketplaceNotFoundError):
        store.accept(request_id="req_missing", actor=PROVIDER_SESSION)


def test_provider_queue_filters_by_status(store):
    first = store.create_request(customer=CUSTOMER, provider=PROVIDER)
    second = store.create_request(customer=OTHER_CUSTOMER, provider=PROVIDER)
    store.accept(request_id=first.id, actor=PROVIDER_SESSION)

    assert [r.id for r in store.list_for_provider("prov_1", status="pending")] == [second.id]
    assert [r.id for r in store.list_for_provider("prov_1", status="accepted")] == [first.id]
    assert store.list_for_provider("prov_1", status="rejected") == []
    # Newest first.
    assert [r.id for r in store.list_for_provider("prov_1")] == [second.id, first.id]
    with pytest.raises(MarketplaceValidationError):
        store.list_for_provider("prov_1", status="archived")


def test_contact_status_follows_latest_relationship(store):
    assert store.contact_status(viewer=None, provider_id="prov_1") == "none"
    assert store.contact_status(viewer=PROVIDER_SESSION, provider_id="prov_1") == "self"
    assert store.contact_status(viewer=CUSTOMER, provider_id="prov_1") == "none"

    first = store.create_request(customer=CUSTOMER, provider=PROVIDER)
    assert store.contact_status(viewer=CUSTOMER, provider_id="prov_1") == "pending"

    store.reject(request_id=first.id, actor=PROVIDER_SESSION)
    assert store.contact_status(viewer=CUSTOMER, provider_id="prov_1") == "rejected"

    second = store.create_request(customer=CUSTOMER, provider=PROVIDER)
    store.accept(request_id=second.id, actor=PROVIDER_SESSION)
    assert store.contact_status(viewer=CUSTOMER, provider_id="prov_1") == "accepted"
    assert store.contact_status(viewer=OTHER_CUSTOMER, provider_id="prov_1") == "none"


def test_contact_visibility_rule():
    assert can_view_contact("self")
    assert can_view_contact("accepted")
    assert not can_view_contact("pending")
    assert not can_view_contact("rejected")
    assert not can_view_contact("none")
