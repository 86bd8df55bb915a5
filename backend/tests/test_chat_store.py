import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from marketplace.models import ChatMessage, ContactRequest, Session
from marketplace.services.chat_store import (
    PROVIDER_CHATS_KEY,
    USER_CHATS_KEY,
    ChatLog,
    LocalChatStore,
    LocalStateStore,
    merge_messages,
)
from marketplace.services.errors import (
    MarketplaceConflictError,
    MarketplacePermissionError,
    MarketplaceValidationError,
)

CUSTOMER = Session(user_id="cust_1", display_name="Hamza", user_type="customer")
PROVIDER = Session(user_id="prov_1", display_name="Nadia", user_type="provider")
STRANGER = Session(user_id="cust_9", display_name="Eve", user_type="customer")


def _request(request_id="req_1", status="accepted", message="Hello, are you free on Friday?"):
    return ContactRequest(
        id=request_id,
        user_id="cust_1",
        user_name="Hamza",
        provider_id="prov_1",
        provider_name="Nadia",
        message=message,
        status=status,
        created_at="2024-05-01T09:00:00+00:00",
        updated_at="2024-05-01T09:00:00+00:00",
    )


@pytest.fixture
def state(tmp_path):
    return LocalStateStore(db_path=str(tmp_path / "local_state.sqlite3"))


@pytest.fixture
def chat(state):
    return ChatLog(
        provider_chats=LocalChatStore(state, PROVIDER_CHATS_KEY),
        user_chats=LocalChatStore(state, USER_CHATS_KEY),
    )


def test_opening_message_seeds_the_thread(chat):
    messages = chat.open_conversation(_request(), session=CUSTOMER)
    assert [(m.sender, m.text) for m in messages] == [("customer", "Hello, are you free on Friday?")]
    assert messages[0].time == "2024-05-01T09:00:00+00:00"


def test_thread_without_opening_message_starts_empty(chat):
    assert chat.open_conversation(_request(message="")) == []


def test_sent_messages_are_written_to_both_stores_and_read_once(chat, state):
    request = _request()
    chat.send(session=CUSTOMER, request=request, text="Friday works?")
    chat.send(session=PROVIDER, request=request, text="Yes, 6pm.")

    assert len(state.get_item(PROVIDER_CHATS_KEY)[request.id]) == 2
    assert len(state.get_item(USER_CHATS_KEY)[request.id]) == 2

    messages = chat.open_conversation(request, session=PROVIDER)
    assert [(m.sender, m.text) for m in messages] == [
        ("customer", "Hello, are you free on Friday?"),
        ("customer", "Friday works?"),
        ("provider", "Yes, 6pm."),
    ]


def test_messages_only_in_one_store_still_appear(chat, state):
    request = _request(message="")
    LocalChatStore(state, USER_CHATS_KEY).append(
        request.id, ChatMessage(sender="provider", text="Left from another device", time="2024-05-01T10:00:00+00:00")
    )
    messages = chat.open_conversation(request)
    assert [m.text for m in messages] == ["Left from another device"]


def test_merge_orders_by_time_and_drops_exact_repeats():
    early = ChatMessage(sender="customer", text="hi", time="2024-05-01T09:00:00+00:00")
    late = ChatMessage(sender="provider", text="hello", time="2024-05-01T09:05:00Z")
    repeat = ChatMessage(sender="customer", text="hi", time="2024-05-01T09:00:00+00:00")
    same_text_other_time = ChatMessage(sender="customer", text="hi", time="2024-05-01T09:10:00+00:00")

    merged = merge_messages([late, early, repeat, same_text_other_time])
    assert merged == [early, late, same_text_other_time]


def test_unparseable_times_sort_first():
    broken = ChatMessage(sender="customer", text="old", time="yesterday")
    valid = ChatMessage(sender="provider", text="new", time="2024-05-01T09:00:00+00:00")
    assert merge_messages([valid, broken]) == [broken, valid]


def test_chat_requires_accepted_request(chat):
    for status in ("pending", "rejected"):
        with pytest.raises(MarketplaceConflictError):
            chat.send(session=CUSTOMER, request=_request(status=status), text="hi")


def test_only_parties_can_chat(chat):
    with pytest.raises(MarketplacePermissionError):
        chat.send(session=STRANGER, request=_request(), text="hi")
    with pytest.raises(MarketplacePermissionError):
        chat.open_conversation(_request(), session=STRANGER)


def test_blank_messages_are_rejected(chat, state):
    with pytest.raises(MarketplaceValidationError):
        chat.send(session=CUSTOMER, request=_request(), text="   ")
    assert state.get_item(USER_CHATS_KEY) == {}


def test_unreadable_blob_reads_as_empty(chat, state):
    with state._connect() as conn:
        conn.execute(
            "INSERT INTO local_state (key, value_json) VALUES (?, ?)",
            (PROVIDER_CHATS_KEY, "{not json"),
        )
        conn.commit()
    assert state.get_item(PROVIDER_CHATS_KEY) == {}
    # The next write replaces the broken blob.
    chat.send(session=CUSTOMER, request=_request(), text="still works")
    assert len(state.get_item(PROVIDER_CHATS_KEY)["req_1"]) == 1


def test_malformed_entries_are_skipped(state):
    state.set_item(USER_CHATS_KEY, {"req_1": [{"sender": "customer"}, "junk", {"sender": "robot", "text": "x", "time": "t"}]})
    assert LocalChatStore(state, USER_CHATS_KEY).read("req_1") == []


def test_customer_thread_spans_requests(chat):
    first = _request(request_id="req_1", status="rejected", message="First try")
    second = ContactRequest(
        **{**_request(request_id="req_2").model_dump(), "message": "Second try", "created_at": "2024-06-01T09:00:00+00:00"}
    )
    chat.send(session=PROVIDER, request=second, text="Accepted this time")

    thread = chat.open_customer_thread([second, first])
    assert [m.text for m in thread] == ["First try", "Second try", "Accepted this time"]
