"""
Client-side messaging orchestrator.

Keeps a MessagingSessionState consistent with the stores behind a
MessagingBackend. Two polling loops run per session: the conversation list
(for as long as the session is live) and the active conversation (at most one,
cancelled and restarted on every switch). Sends are optimistic and reconciled
with the server by client token.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
import uuid
from typing import Any, Awaitable, Callable, List, Optional, Set, Union
from uuid import UUID

from app.client.backend import MessagingBackend
from app.client.state import ChatMessage, MessagingSessionState
from app.config import get_settings
from app.constants.messaging import DeliveryStatus
from app.exceptions import (
    InvalidOperation,
    MessagingError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from app.infra.logging_config import get_logger
from app.schemas.conversation import ConversationSummary, LastMessagePreview
from app.utils.time import utcnow

logger = get_logger("client.core")

ChangeCallback = Callable[[MessagingSessionState], None]


class MessagingCore:
    def __init__(
        self,
        backend: MessagingBackend,
        state: Optional[MessagingSessionState] = None,
        on_change: Optional[ChangeCallback] = None,
        conversation_poll_interval: Optional[float] = None,
        message_poll_interval: Optional[float] = None,
        presence_ping_interval: Optional[float] = None,
        typing_debounce_ms: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self._backend = backend
        self.state = state or MessagingSessionState(user_id=backend.user_id)
        self.on_change = on_change

        self._conversation_poll_interval = (
            conversation_poll_interval
            if conversation_poll_interval is not None
            else settings.conversation_poll_interval_seconds
        )
        self._message_poll_interval = (
            message_poll_interval
            if message_poll_interval is not None
            else settings.message_poll_interval_seconds
        )
        self._presence_ping_interval = (
            presence_ping_interval
            if presence_ping_interval is not None
            else settings.presence_ping_interval_seconds
        )
        debounce_ms = (
            typing_debounce_ms
            if typing_debounce_ms is not None
            else settings.typing_debounce_ms
        )
        self._typing_debounce = debounce_ms / 1000

        self._conversation_task: Optional[asyncio.Task[None]] = None
        self._message_task: Optional[asyncio.Task[None]] = None
        self._typing_timer: Optional[asyncio.Task[None]] = None
        self._background: Set[asyncio.Task[None]] = set()

        # Conversation we last told the store we are typing in, and when.
        self._typing_conversation_id: Optional[UUID] = None
        self._typing_sent_at = 0.0
        self._last_presence_ping: Optional[float] = None
        # Transcript reads are numbered; a response older than the last applied
        # one (or issued before a confirmed send) is dropped.
        self._transcript_seq = 0
        self._transcript_floor = 0

    async def __aenter__(self) -> "MessagingCore":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._conversation_task is not None and not self._conversation_task.done()

    async def start(self) -> None:
        """Begin the conversation-list poll (with presence pings) for this session."""
        if self.running:
            return
        logger.info(f"Starting messaging session for user {self.state.user_id}")
        self._conversation_task = asyncio.create_task(self._run_conversation_poll())

    async def stop(self) -> None:
        """Cancel every loop and timer, then mark the user offline."""
        await _cancel(self._conversation_task)
        self._conversation_task = None
        await self._leave_active_conversation()
        for task in list(self._background):
            await _cancel(task)
        self._background.clear()

        try:
            await self._backend.set_offline()
        except MessagingError as e:
            logger.warning(f"Could not mark user {self.state.user_id} offline: {e.detail}")
        logger.info(f"Stopped messaging session for user {self.state.user_id}")

    async def flush_background(self) -> None:
        """Wait for fire-and-forget work (seen marking, refreshes) to settle."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def total_unread(self) -> int:
        return self.state.total_unread

    def is_partner_typing(self) -> bool:
        return self.state.active_conversation_id is not None and self.state.partner_typing

    async def refresh_conversations(self) -> None:
        """Replace the conversation list wholesale, keeping optimistic previews."""
        conversations = await self._backend.get_conversations()
        self.state.conversations = self._with_pending_previews(conversations)
        self._notify()

    async def refresh_active_messages(self) -> bool:
        """
        Re-read the active conversation's transcript and the partner's typing flag.

        The response is tagged with the conversation and sequence number it was
        issued for. It is discarded if the active conversation changed meanwhile
        or a newer read was already applied. Returns True when the state was
        updated.
        """
        conversation_id = self.state.active_conversation_id
        if conversation_id is None:
            return False
        self._transcript_seq += 1
        seq = self._transcript_seq

        messages = await self._backend.get_conversation_messages(conversation_id)
        typing = await self._backend.get_partner_typing(conversation_id)
        if self.state.active_conversation_id != conversation_id:
            logger.debug(f"Discarding stale messages for conversation {conversation_id}")
            return False
        if seq < self._transcript_floor:
            logger.debug(f"Discarding out-of-order messages for conversation {conversation_id}")
            return False
        self._transcript_floor = seq

        confirmed = [ChatMessage.from_read(m) for m in messages]
        for message in confirmed:
            if message.client_token and message.sender_id == self.state.user_id:
                self.state.pending.pop(message.client_token, None)
        self.state.active_messages = confirmed + self.state.pending_for(conversation_id)
        self.state.partner_typing = typing.is_typing
        self._notify()

        if any(
            m.sender_id != self.state.user_id and not m.is_seen for m in confirmed
        ):
            self._spawn(self._mark_seen(conversation_id), "mark seen")
        return True

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    async def select_conversation(self, conversation_id: UUID) -> None:
        """
        Make conversation_id active: fetch it now and poll it until switched away.

        Raises:
            UnauthorizedError: the conversation does not belong to the user.
        """
        await self._require_own_conversation(conversation_id)
        if conversation_id == self.state.active_conversation_id:
            return

        await self._leave_active_conversation()
        self.state.activate(conversation_id)
        self._notify()

        await self._poll(self.refresh_active_messages, "active conversation")
        if self.state.active_conversation_id == conversation_id and self._message_task is None:
            self._message_task = asyncio.create_task(
                self._run_message_poll(conversation_id)
            )

    async def open_deep_link(self, raw_conversation_id: Union[str, UUID]) -> bool:
        """
        Pre-select a conversation from an external link.

        Untrusted input: invalid or foreign ids are logged, recorded as
        ``last_error`` and ignored. Returns True when the conversation opened.
        """
        try:
            conversation_id = UUID(str(raw_conversation_id))
        except ValueError:
            logger.warning(f"Ignoring malformed conversation link {raw_conversation_id!r}")
            self._fail(UnauthorizedError(f"Invalid conversation id {raw_conversation_id!r}"))
            return False

        try:
            await self.select_conversation(conversation_id)
        except UnauthorizedError as e:
            logger.warning(f"Ignoring conversation link {conversation_id}: {e.detail}")
            self._fail(e)
            return False
        return True

    async def start_conversation(self, partner_id: UUID) -> UUID:
        """Get or create the conversation with partner_id and make it active."""
        try:
            conversation_id = await self._backend.get_or_create_conversation(partner_id)
        except MessagingError as e:
            self._fail(e)
            raise
        await self._poll(self.refresh_conversations, "conversation list")
        await self.select_conversation(conversation_id)
        return conversation_id

    async def close_conversation(self) -> None:
        await self._leave_active_conversation()
        self.state.activate(None)
        self._notify()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def send_message(self, content: str) -> ChatMessage:
        """
        Send content to the active conversation.

        The message is shown immediately as pending. On failure it stays in the
        transcript marked failed (see ``retry_message``) and the error is raised.
        """
        conversation_id = self.state.active_conversation_id
        if conversation_id is None:
            raise InvalidOperation("No conversation is open")
        if not content or not content.strip():
            raise ValidationError("Message content cannot be empty")

        message = ChatMessage(
            conversation_id=conversation_id,
            sender_id=self.state.user_id,
            content=content,
            created_at=utcnow(),
            client_token=uuid.uuid4().hex,
            status=DeliveryStatus.PENDING,
        )
        self.state.pending[message.client_token] = message
        self.state.active_messages.append(message)
        self.state.conversations = self._with_pending_previews(self.state.conversations)
        self._notify()

        await self._stop_typing()
        await self._deliver(message)
        return message

    async def retry_message(self, client_token: str) -> ChatMessage:
        """Resend a failed message; the server deduplicates by token."""
        message = self.state.pending.get(client_token)
        if message is None:
            raise NotFoundError(f"No unsent message with token {client_token}")
        if message.status != DeliveryStatus.FAILED:
            raise InvalidOperation(f"Message {client_token} has not failed")
        await self._deliver(message)
        return message

    async def on_compose_change(self, text: str) -> None:
        """
        Drive the typing signal from the compose box.

        A burst of changes sends ``True`` once, refreshed at most every debounce
        interval; ``False`` is sent once the box has been idle for the debounce
        interval, or immediately when it is cleared.
        """
        conversation_id = self.state.active_conversation_id
        if conversation_id is None:
            return
        if not text:
            await self._stop_typing()
            return

        now = time.monotonic()
        if (
            self._typing_conversation_id != conversation_id
            or now - self._typing_sent_at >= self._typing_debounce
        ):
            self._typing_conversation_id = conversation_id
            self._typing_sent_at = now
            await self._send_typing(conversation_id, True)

        await _cancel(self._typing_timer)
        self._typing_timer = asyncio.create_task(self._typing_timeout())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _deliver(self, message: ChatMessage) -> None:
        message.status = DeliveryStatus.PENDING
        self._notify()
        try:
            stored = await self._backend.send_message(
                message.conversation_id,
                message.content,
                client_token=message.client_token,
            )
        except MessagingError as e:
            message.status = DeliveryStatus.FAILED
            logger.warning(f"Sending message {message.client_token} failed: {e.detail}")
            self._fail(e)
            raise

        message.id = stored.id
        message.created_at = stored.created_at
        message.is_seen = stored.is_seen
        message.status = DeliveryStatus.SENT
        self.state.pending.pop(message.client_token, None)
        self._transcript_floor = self._transcript_seq + 1
        self._notify()

        if self.state.active_conversation_id == message.conversation_id:
            await self._poll(self.refresh_active_messages, "active conversation")
        await self._poll(self.refresh_conversations, "conversation list")

    async def _require_own_conversation(self, conversation_id: UUID) -> None:
        if self.state.find_conversation(conversation_id) is not None:
            return
        try:
            summary = await self._backend.get_conversation(conversation_id)
        except NotFoundError as e:
            raise UnauthorizedError(
                f"Conversation {conversation_id} is not available to this user"
            ) from e
        self.state.conversations.append(summary)

    async def _leave_active_conversation(self) -> None:
        await _cancel(self._message_task)
        self._message_task = None
        await self._stop_typing()

    async def _mark_seen(self, conversation_id: UUID) -> None:
        updated = await self._backend.mark_as_seen(conversation_id)
        logger.debug(f"Marked {updated} messages seen in conversation {conversation_id}")
        await self.refresh_conversations()

    async def _run_conversation_poll(self) -> None:
        while True:
            await self._poll(self._maybe_ping_presence, "presence")
            await self._poll(self.refresh_conversations, "conversation list")
            await asyncio.sleep(self._conversation_poll_interval)

    async def _run_message_poll(self, conversation_id: UUID) -> None:
        while self.state.active_conversation_id == conversation_id:
            await asyncio.sleep(self._message_poll_interval)
            await self._poll(self.refresh_active_messages, "active conversation")

    async def _maybe_ping_presence(self) -> None:
        now = time.monotonic()
        if (
            self._last_presence_ping is not None
            and now - self._last_presence_ping < self._presence_ping_interval
        ):
            return
        self._last_presence_ping = now
        await self._backend.ping_presence()

    async def _typing_timeout(self) -> None:
        await asyncio.sleep(self._typing_debounce)
        self._typing_timer = None
        await self._clear_typing()

    async def _stop_typing(self) -> None:
        await _cancel(self._typing_timer)
        self._typing_timer = None
        await self._clear_typing()

    async def _clear_typing(self) -> None:
        conversation_id = self._typing_conversation_id
        if conversation_id is None:
            return
        self._typing_conversation_id = None
        await self._send_typing(conversation_id, False)

    async def _send_typing(self, conversation_id: UUID, is_typing: bool) -> None:
        try:
            await self._backend.set_typing_status(conversation_id, is_typing)
        except MessagingError as e:
            logger.warning(
                f"Typing signal {is_typing} for conversation {conversation_id} failed: {e.detail}"
            )

    async def _poll(self, fn: Callable[[], Awaitable[Any]], what: str) -> None:
        """Run one poll step; failures are logged and retried on the next tick."""
        try:
            await fn()
        except MessagingError as e:
            logger.warning(f"Refreshing {what} failed: {e.detail}")
        except Exception:
            logger.exception(f"Unexpected error refreshing {what}")

    def _spawn(self, coro: Awaitable[None], what: str) -> None:
        task = asyncio.create_task(self._guarded(coro, what))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _guarded(self, coro: Awaitable[None], what: str) -> None:
        try:
            await coro
        except MessagingError as e:
            logger.warning(f"Background {what} failed: {e.detail}")
        except Exception:
            logger.exception(f"Unexpected error in background {what}")

    def _with_pending_previews(
        self, conversations: List[ConversationSummary]
    ) -> List[ConversationSummary]:
        result = []
        for summary in conversations:
            pending = self.state.pending_for(summary.id)
            latest = pending[-1] if pending else None
            if latest is not None and (
                summary.last_message is None
                or summary.last_message.created_at < latest.created_at
            ):
                summary = summary.model_copy(
                    update={
                        "last_message": LastMessagePreview(
                            content=latest.content,
                            created_at=latest.created_at,
                            sender_id=latest.sender_id,
                            is_seen=False,
                        )
                    }
                )
            result.append(summary)
        result.sort(key=lambda s: s.sort_key, reverse=True)
        return result

    def _fail(self, error: MessagingError) -> None:
        self.state.last_error = error
        self._notify()

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self.state)


async def _cancel(task: Optional[asyncio.Task[Any]]) -> None:
    # A loop that triggers its own replacement exits on its next state check.
    if task is None or task.done() or task is asyncio.current_task():
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
