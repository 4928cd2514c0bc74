"""Tests for the client-side MessagingCore."""

import asyncio
from uuid import uuid4

import pytest

from app.constants.messaging import DeliveryStatus
from app.exceptions import (
    InvalidOperation,
    NotFoundError,
    TransientFailure,
    UnauthorizedError,
    ValidationError,
)
from app.models.message import Message
from app.services.message_service import MessageService
from app.services.typing_service import TypingService


@pytest.mark.asyncio
async def test_opening_a_conversation_marks_partner_messages_seen(
    db, core, backend, setup_conversation, setup_partner
):
    MessageService(db).append(setup_conversation.id, setup_partner.id, "Bonjour")
    await core.refresh_conversations()
    assert core.total_unread == 1

    await core.select_conversation(setup_conversation.id)
    await core.flush_background()

    assert [m.content for m in core.state.active_messages] == ["Bonjour"]
    assert backend.calls_named("mark_as_seen") == [(setup_conversation.id,)]
    assert core.total_unread == 0
    assert db.query(Message).one().is_seen is True


@pytest.mark.asyncio
async def test_own_messages_do_not_trigger_mark_seen(
    db, core, backend, setup_conversation, setup_user
):
    MessageService(db).append(setup_conversation.id, setup_user.id, "Bonjour")

    await core.select_conversation(setup_conversation.id)
    await core.flush_background()

    assert backend.calls_named("mark_as_seen") == []


@pytest.mark.asyncio
async def test_selecting_a_foreign_conversation_is_unauthorized(
    core, setup_foreign_conversation
):
    with pytest.raises(UnauthorizedError):
        await core.select_conversation(setup_foreign_conversation.id)
    assert core.state.active_conversation_id is None


@pytest.mark.asyncio
async def test_deep_link(core, setup_conversation, setup_foreign_conversation):
    assert await core.open_deep_link("not-a-uuid") is False
    assert isinstance(core.state.last_error, UnauthorizedError)

    assert await core.open_deep_link(str(uuid4())) is False
    assert await core.open_deep_link(str(setup_foreign_conversation.id)) is False
    assert core.state.active_conversation_id is None

    assert await core.open_deep_link(str(setup_conversation.id)) is True
    assert core.state.active_conversation_id == setup_conversation.id


@pytest.mark.asyncio
async def test_stale_response_is_discarded_after_switch(
    db,
    core,
    backend,
    setup_conversation,
    setup_outsider_conversation,
    setup_partner,
    setup_outsider,
):
    MessageService(db).append(setup_conversation.id, setup_partner.id, "dans c1")
    MessageService(db).append(setup_outsider_conversation.id, setup_outsider.id, "dans c2")
    await core.refresh_conversations()
    await core.select_conversation(setup_conversation.id)

    gate = asyncio.Event()
    backend.gates[setup_conversation.id] = gate
    stale = asyncio.create_task(core.refresh_active_messages())
    await asyncio.sleep(0)

    await core.select_conversation(setup_outsider_conversation.id)
    gate.set()

    assert await stale is False
    assert core.state.active_conversation_id == setup_outsider_conversation.id
    assert [m.content for m in core.state.active_messages] == ["dans c2"]


@pytest.mark.asyncio
async def test_older_response_does_not_undo_a_confirmed_send(core, backend, setup_conversation):
    await core.select_conversation(setup_conversation.id)

    gate = asyncio.Event()
    backend.gates[setup_conversation.id] = gate
    earlier_read = asyncio.create_task(core.refresh_active_messages())
    await asyncio.sleep(0)
    del backend.gates[setup_conversation.id]

    await core.send_message("Bonjour")
    gate.set()

    assert await earlier_read is False
    assert [m.content for m in core.state.active_messages] == ["Bonjour"]
    assert core.state.pending == {}


@pytest.mark.asyncio
async def test_send_is_optimistic_then_reconciled_by_token(
    db, core, backend, setup_conversation
):
    await core.select_conversation(setup_conversation.id)
    seen_states = []
    core.on_change = lambda state: seen_states.append(
        [(m.content, m.status) for m in state.active_messages]
    )

    message = await core.send_message("Bonjour")

    assert ("Bonjour", DeliveryStatus.PENDING) in seen_states[0]
    assert message.status == DeliveryStatus.SENT
    assert message.is_optimistic is False
    assert core.state.pending == {}
    assert [m.content for m in core.state.active_messages] == ["Bonjour"]
    assert core.state.active_messages[0].id == message.id
    assert backend.calls_named("send_message") == [
        (setup_conversation.id, "Bonjour", message.client_token)
    ]
    stored = db.query(Message).one()
    assert stored.client_token == message.client_token
    assert core.state.conversations[0].last_message.content == "Bonjour"


@pytest.mark.asyncio
async def test_failed_send_stays_visible_and_can_be_retried(
    db, core, backend, setup_conversation
):
    await core.select_conversation(setup_conversation.id)
    backend.send_failures.append(TransientFailure("network down"))

    with pytest.raises(TransientFailure):
        await core.send_message("Salut")

    failed = core.state.active_messages[-1]
    assert failed.content == "Salut"
    assert failed.is_optimistic is True
    assert failed.status == DeliveryStatus.FAILED
    assert failed.client_token in core.state.pending
    assert isinstance(core.state.last_error, TransientFailure)
    assert core.state.conversations[0].last_message.content == "Salut"

    # A poll tick keeps the failed entry exactly once
    await core.refresh_active_messages()
    assert [m.content for m in core.state.active_messages] == ["Salut"]

    await core.retry_message(failed.client_token)

    assert failed.status == DeliveryStatus.SENT
    assert core.state.pending == {}
    assert [m.content for m in core.state.active_messages] == ["Salut"]
    tokens = [call[2] for call in backend.calls_named("send_message")]
    assert tokens == [failed.client_token, failed.client_token]
    assert db.query(Message).count() == 1


@pytest.mark.asyncio
async def test_retry_rejects_unknown_or_unfailed_messages(core, backend, setup_conversation):
    with pytest.raises(NotFoundError):
        await core.retry_message("missing")

    await core.select_conversation(setup_conversation.id)
    backend.send_failures.append(TransientFailure("down"))
    with pytest.raises(TransientFailure):
        await core.send_message("Salut")
    token = core.state.active_messages[-1].client_token
    core.state.pending[token].status = DeliveryStatus.PENDING

    with pytest.raises(InvalidOperation):
        await core.retry_message(token)


@pytest.mark.asyncio
async def test_send_requires_open_conversation_and_content(core, setup_conversation):
    with pytest.raises(InvalidOperation):
        await core.send_message("Bonjour")

    await core.select_conversation(setup_conversation.id)
    with pytest.raises(ValidationError):
        await core.send_message("   ")
    assert core.state.active_messages == []


@pytest.mark.asyncio
async def test_typing_is_debounced(db, core, backend, setup_conversation, setup_user):
    await core.select_conversation(setup_conversation.id)

    await core.on_compose_change("B")
    await core.on_compose_change("Bo")
    await core.on_compose_change("Bon")

    assert backend.calls_named("set_typing_status") == [(setup_conversation.id, True)]
    assert TypingService(db).is_typing(setup_conversation.id, setup_user.id) is True

    await asyncio.sleep(0.15)

    assert backend.calls_named("set_typing_status") == [
        (setup_conversation.id, True),
        (setup_conversation.id, False),
    ]
    assert TypingService(db).is_typing(setup_conversation.id, setup_user.id) is False


@pytest.mark.asyncio
async def test_sending_clears_typing(core, backend, setup_conversation):
    await core.select_conversation(setup_conversation.id)
    await core.on_compose_change("Bonjour")
    await core.send_message("Bonjour")

    names = [c[0] for c in backend.calls if c[0] in ("set_typing_status", "send_message")]
    assert names == ["set_typing_status", "set_typing_status", "send_message"]
    assert backend.calls_named("set_typing_status")[-1] == (setup_conversation.id, False)


@pytest.mark.asyncio
async def test_partner_typing_is_exposed(db, core, setup_conversation, setup_partner):
    TypingService(db).set_typing(setup_conversation.id, setup_partner.id, True)

    await core.select_conversation(setup_conversation.id)

    assert core.is_partner_typing() is True


@pytest.mark.asyncio
async def test_start_conversation(core, setup_user, setup_partner):
    conversation_id = await core.start_conversation(setup_partner.id)

    assert core.state.active_conversation_id == conversation_id
    assert core.state.find_conversation(conversation_id) is not None

    with pytest.raises(InvalidOperation):
        await core.start_conversation(setup_user.id)
    assert isinstance(core.state.last_error, InvalidOperation)


@pytest.mark.asyncio
async def test_polling_picks_up_new_messages(db, core, setup_conversation, setup_partner):
    await core.select_conversation(setup_conversation.id)
    MessageService(db).append(setup_conversation.id, setup_partner.id, "Tu es là ?")

    await asyncio.sleep(0.15)

    assert [m.content for m in core.state.active_messages] == ["Tu es là ?"]


@pytest.mark.asyncio
async def test_close_conversation_stops_its_poll(db, core, setup_conversation, setup_partner):
    await core.select_conversation(setup_conversation.id)
    await core.close_conversation()
    MessageService(db).append(setup_conversation.id, setup_partner.id, "Allô")

    await asyncio.sleep(0.15)

    assert core.state.active_conversation_id is None
    assert core.state.active_messages == []


@pytest.mark.asyncio
async def test_session_lifecycle(db, core, backend, setup_conversation, setup_user):
    await core.start()
    await asyncio.sleep(0.12)

    assert core.running is True
    assert backend.calls_named("ping_presence") == [()]
    assert [c.id for c in core.state.conversations] == [setup_conversation.id]

    await core.stop()

    assert core.running is False
    assert backend.calls_named("set_offline") == [()]
    db.refresh(setup_user)
    assert setup_user.is_online is False


@pytest.mark.asyncio
async def test_unexpected_error_does_not_end_the_conversation_poll(
    core, backend, setup_conversation
):
    real_get_conversations = backend.get_conversations
    attempts = []

    async def flaky_get_conversations():
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("unexpected payload")
        return await real_get_conversations()

    backend.get_conversations = flaky_get_conversations
    await core.start()
    await asyncio.sleep(0.12)

    assert core.running is True
    assert len(attempts) > 1
    assert [c.id for c in core.state.conversations] == [setup_conversation.id]
