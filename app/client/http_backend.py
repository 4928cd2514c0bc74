"""httpx implementation of MessagingBackend against the palabre HTTP API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, List, Optional, TypeVar
from uuid import UUID

import httpx

from app.client.backend import MessagingBackend
from app.exceptions import TransientFailure, error_for_status
from app.infra.logging_config import get_logger
from app.schemas.conversation import ConversationSummary, TypingRead
from app.schemas.message import MessageRead

logger = get_logger("client.http")

T = TypeVar("T")

USER_HEADER = "X-User-Id"
DEFAULT_TIMEOUT = 10.0


class HttpMessagingBackend(MessagingBackend):
    def __init__(
        self,
        base_url: str,
        user_id: UUID,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.user_id = user_id
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={USER_HEADER: str(user_id)},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {url} failed: {e}")
            raise TransientFailure(f"{method} {url} failed: {e}") from e

        if resp.status_code >= 400:
            raise error_for_status(resp.status_code, _error_detail(resp))
        return resp

    async def get_or_create_conversation(self, partner_id: UUID) -> UUID:
        resp = await self._request(
            "POST", "/conversations", json={"partner_id": str(partner_id)}
        )
        return _decode(resp, lambda body: UUID(body["conversation_id"]))

    async def get_conversations(self) -> List[ConversationSummary]:
        resp = await self._request("GET", "/conversations")
        return _decode(
            resp, lambda body: [ConversationSummary.model_validate(item) for item in body]
        )

    async def get_conversation(self, conversation_id: UUID) -> ConversationSummary:
        resp = await self._request("GET", f"/conversations/{conversation_id}")
        return _decode(resp, ConversationSummary.model_validate)

    async def get_conversation_messages(
        self, conversation_id: UUID, since: Optional[datetime] = None
    ) -> List[MessageRead]:
        params = {"since": since.isoformat()} if since is not None else None
        resp = await self._request(
            "GET", f"/conversations/{conversation_id}/messages", params=params
        )
        return _decode(
            resp, lambda body: [MessageRead.model_validate(item) for item in body]
        )

    async def send_message(
        self,
        conversation_id: UUID,
        content: str,
        client_token: Optional[str] = None,
    ) -> MessageRead:
        resp = await self._request(
            "POST",
            f"/conversations/{conversation_id}/messages",
            json={"content": content, "client_token": client_token},
        )
        return _decode(resp, MessageRead.model_validate)

    async def mark_as_seen(self, conversation_id: UUID) -> int:
        resp = await self._request("POST", f"/conversations/{conversation_id}/seen")
        return _decode(resp, lambda body: int(body["updated"]))

    async def set_typing_status(self, conversation_id: UUID, is_typing: bool) -> None:
        await self._request(
            "PUT",
            f"/conversations/{conversation_id}/typing",
            json={"is_typing": is_typing},
        )

    async def get_partner_typing(self, conversation_id: UUID) -> TypingRead:
        resp = await self._request("GET", f"/conversations/{conversation_id}/typing")
        return _decode(resp, TypingRead.model_validate)

    async def ping_presence(self) -> None:
        await self._request("POST", "/presence/ping")

    async def set_offline(self) -> None:
        await self._request("POST", "/presence/offline")


def _decode(resp: httpx.Response, parse: Callable[[Any], T]) -> T:
    """Parse a success body; a body that is not what the API returns is transient."""
    try:
        return parse(resp.json())
    except (ValueError, KeyError, TypeError) as e:
        request = resp.request
        logger.warning(f"Malformed response to {request.method} {request.url}: {e}")
        raise TransientFailure(
            f"Malformed response to {request.method} {request.url.path}"
        ) from e


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    detail = body.get("detail") if isinstance(body, dict) else None
    if detail is None:
        return resp.text or resp.reason_phrase
    return detail if isinstance(detail, str) else str(detail)
