"""HTTP client for the chat gateway's request/response calls."""

import logging
from typing import Any
from urllib.parse import urlparse

import httpx

from chatsync.config import settings
from chatsync.core.exceptions import TransportError, TransportUnavailableError
from chatsync.core.telemetry import get_tracer
from chatsync.schemas.transport import merge_dialogs

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)


class GatewayClient:
    """HTTP client for communicating with the chat gateway."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.GATEWAY_API_URL).rstrip("/")
        self.token = settings.GATEWAY_API_TOKEN if token is None else token
        self.timeout = settings.REQUEST_TIMEOUT
        self._transport = transport
        self._reachable = True
        logger.debug(f"GatewayClient initialized: base_url={self.base_url}, auth={'set' if self.token else 'none'}")

    def is_reachable(self) -> bool:
        """Whether the last request reached the gateway."""
        return self._reachable

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        conversation_id: str | None = None,
        **kwargs,
    ) -> Any:
        """Make an HTTP request to the chat gateway.

        Args:
            method: HTTP method
            path: Path below the gateway base URL
            operation: Chat operation name, used for the tracing span
            conversation_id: Conversation the call is about, if any
        """
        url = f"{self.base_url}{path}"
        logger.info(f"Gateway request: {method} {url}")

        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            headers = kwargs.pop("headers", {})
            headers.update(self.get_auth_header() or {})

            with tracer.start_as_current_span(f"chat.gateway.{operation}") as span:
                span.set_attribute("http.method", method)
                span.set_attribute("http.route", path)
                if conversation_id is not None:
                    span.set_attribute("chat.conversation_id", conversation_id)
                try:
                    response = await client.request(method, url, headers=headers, **kwargs)
                except httpx.RequestError as e:
                    self._reachable = False
                    logger.error(f"Gateway connection error: {e}")
                    raise TransportUnavailableError(str(e))

                self._reachable = True
                span.set_attribute("http.status_code", response.status_code)
                logger.info(f"Gateway response: {response.status_code}")

                if response.status_code >= 400:
                    logger.error(f"Gateway error: {response.status_code} - {response.text}")
                    raise TransportError(response.text, status_code=response.status_code)

                if not response.content:
                    return {}
                return response.json()

    async def fetch_unread_status(self, scope_id: str) -> dict[str, Any]:
        """Get unread counters for every conversation of the company."""
        data = await self._request(
            "GET", "/chat/unread", "fetch_unread_status", params={"companyId": scope_id}
        )
        return data if isinstance(data, dict) else {}

    async def fetch_last_messages(self, scope_id: str) -> dict[str, Any]:
        """Get the last message of every conversation, rooms and members merged."""
        data = await self._request(
            "GET", "/chat/dialogs", "fetch_last_messages", params={"companyId": scope_id}
        )
        return merge_dialogs(data)

    async def fetch_messages(
        self,
        key: str,
        conversation_id: str,
        limit: int,
        before_timestamp: int | None = None,
    ) -> list[Any]:
        """Get messages of a conversation, newest first.

        Args:
            key: Routing key, roomId or userId
            conversation_id: Room or peer identifier
            limit: Maximum number of messages
            before_timestamp: Only messages older than this timestamp (ms)
        """
        params: dict[str, Any] = {key: conversation_id, "limit": limit}
        if before_timestamp is not None:
            params["lastTime"] = before_timestamp
        data = await self._request(
            "GET", "/chat/messages", "fetch_messages", conversation_id, params=params
        )
        if isinstance(data, dict):
            data = data.get("messages")
        return data if isinstance(data, list) else []

    async def send_message(self, key: str, conversation_id: str, text: str) -> dict[str, Any]:
        """Send a text message to a room or a user."""
        return await self._request(
            "POST",
            "/chat/messages",
            "send_message",
            conversation_id,
            json={key: conversation_id, "message": text},
        )

    async def mark_read(self, message_ids: list[str]) -> dict[str, Any]:
        """Mark messages as read."""
        return await self._request(
            "POST",
            "/chat/messages/read",
            "mark_read",
            json={"messageIds": message_ids},
        )

    def get_websocket_url(self) -> str:
        """Get WebSocket URL for the real-time event stream."""
        parsed = urlparse(self.base_url)
        ws_scheme = "wss" if parsed.scheme == "https" else "ws"
        return f"{ws_scheme}://{parsed.netloc}{parsed.path}/ws"

    def get_auth_header(self) -> dict[str, str] | None:
        """Get authentication header for gateway requests."""
        if not self.token:
            return None
        return {"Authorization": f"Bearer {self.token}"}
