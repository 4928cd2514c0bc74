"""Tests for MessageService."""

from uuid import uuid4

import pytest

from app.exceptions import NotFoundError, UnauthorizedError, ValidationError
from app.models.message import Message
from app.services.message_service import MessageService


def test_append_starts_unseen_and_touches_conversation(
    db, clock, setup_conversation, setup_user
):
    clock.advance(minutes=3)
    message = MessageService(db, clock=clock).append(
        setup_conversation.id, setup_user.id, "Bonjour"
    )

    assert message.id is not None
    assert message.content == "Bonjour"
    assert message.sender_id == setup_user.id
    assert message.is_seen is False
    db.refresh(setup_conversation)
    assert setup_conversation.updated_at.replace(tzinfo=None) == clock.now.replace(
        tzinfo=None
    )


@pytest.mark.parametrize("content", ["", "   ", "\n\t"])
def test_append_rejects_blank_content(db, setup_conversation, setup_user, content):
    with pytest.raises(ValidationError):
        MessageService(db).append(setup_conversation.id, setup_user.id, content)
    assert db.query(Message).count() == 0


def test_append_rejects_oversized_content(db, setup_conversation, setup_user):
    with pytest.raises(ValidationError):
        MessageService(db).append(setup_conversation.id, setup_user.id, "x" * 5001)


def test_append_requires_participant(db, setup_conversation, setup_outsider):
    with pytest.raises(ValidationError):
        MessageService(db).append(setup_conversation.id, setup_outsider.id, "Salut")


def test_append_to_unknown_conversation(db, setup_user):
    with pytest.raises(NotFoundError):
        MessageService(db).append(uuid4(), setup_user.id, "Salut")


def test_list_for_is_ordered_and_stable_under_clock_ties(
    db, clock, setup_conversation, setup_user, setup_partner
):
    """Messages appended at the same instant still get strictly increasing times."""
    service = MessageService(db, clock=clock)
    senders = [setup_user, setup_partner, setup_user, setup_partner]
    for i, sender in enumerate(senders):
        service.append(setup_conversation.id, sender.id, f"message {i}")

    listed = service.list_for(setup_conversation.id)

    assert [m.content for m in listed] == [f"message {i}" for i in range(4)]
    times = [m.created_at for m in listed]
    assert all(a < b for a, b in zip(times, times[1:]))
    assert [m.id for m in service.list_for(setup_conversation.id)] == [m.id for m in listed]


def test_list_for_since_returns_strictly_newer(
    db, clock, setup_conversation, setup_user
):
    service = MessageService(db, clock=clock)
    first = service.append(setup_conversation.id, setup_user.id, "un")
    clock.advance(seconds=1)
    second = service.append(setup_conversation.id, setup_user.id, "deux")

    newer = service.list_for(setup_conversation.id, since=first.created_at)

    assert [m.id for m in newer] == [second.id]


def test_mark_seen_only_flips_partner_messages(
    db, setup_conversation, setup_user, setup_partner
):
    service = MessageService(db)
    service.append(setup_conversation.id, setup_partner.id, "Bonjour")
    service.append(setup_conversation.id, setup_partner.id, "Ça va ?")
    own = service.append(setup_conversation.id, setup_user.id, "Oui")

    assert service.mark_seen(setup_conversation.id, setup_user.id) == 2

    for message in service.list_for(setup_conversation.id):
        if message.id == own.id:
            assert message.is_seen is False
        else:
            assert message.is_seen is True
    assert service.unread_count(setup_conversation.id, setup_user.id) == 0
    assert service.unread_count(setup_conversation.id, setup_partner.id) == 1


def test_mark_seen_is_idempotent(db, setup_conversation, setup_user, setup_partner):
    service = MessageService(db)
    service.append(setup_conversation.id, setup_partner.id, "Bonjour")

    assert service.mark_seen(setup_conversation.id, setup_user.id) == 1
    assert service.mark_seen(setup_conversation.id, setup_user.id) == 0


def test_mark_seen_requires_participant(db, setup_conversation, setup_outsider):
    with pytest.raises(UnauthorizedError):
        MessageService(db).mark_seen(setup_conversation.id, setup_outsider.id)


def test_append_with_same_token_returns_stored_message(
    db, setup_conversation, setup_user, setup_partner
):
    service = MessageService(db)
    first = service.append(
        setup_conversation.id, setup_user.id, "Bonjour", client_token="tok-1"
    )
    again = service.append(
        setup_conversation.id, setup_user.id, "Bonjour", client_token="tok-1"
    )
    other_sender = service.append(
        setup_conversation.id, setup_partner.id, "Bonjour", client_token="tok-1"
    )

    assert again.id == first.id
    assert other_sender.id != first.id
    assert db.query(Message).count() == 2


def test_append_or_get_reports_whether_a_row_was_stored(db, setup_conversation, setup_user):
    service = MessageService(db)

    first, created = service.append_or_get(
        setup_conversation.id, setup_user.id, "Bonjour", client_token="tok-1"
    )
    again, created_again = service.append_or_get(
        setup_conversation.id, setup_user.id, "Bonjour", client_token="tok-1"
    )

    assert created is True
    assert created_again is False
    assert again.id == first.id
    assert service.find_by_token(setup_conversation.id, setup_user.id, "tok-1").id == first.id


def test_total_unread_for_user_spans_conversations(
    db,
    setup_user,
    setup_partner,
    setup_outsider,
    setup_conversation,
    setup_outsider_conversation,
):
    service = MessageService(db)
    service.append(setup_conversation.id, setup_partner.id, "un")
    service.append(setup_outsider_conversation.id, setup_outsider.id, "deux")
    service.append(setup_outsider_conversation.id, setup_outsider.id, "trois")
    service.append(setup_outsider_conversation.id, setup_user.id, "réponse")

    assert service.total_unread_for_user(setup_user.id) == 3
    service.mark_seen(setup_outsider_conversation.id, setup_user.id)
    assert service.total_unread_for_user(setup_user.id) == 1


def test_latest_and_delete_all(db, clock, setup_conversation, setup_user):
    service = MessageService(db, clock=clock)
    assert service.latest(setup_conversation.id) is None
    service.append(setup_conversation.id, setup_user.id, "un")
    last = service.append(setup_conversation.id, setup_user.id, "deux")

    assert service.latest(setup_conversation.id).id == last.id
    assert service.delete_all() == 2
    assert service.list_for(setup_conversation.id) == []
