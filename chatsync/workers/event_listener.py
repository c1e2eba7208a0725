"""WebSocket listener worker for real-time chat gateway events."""

import asyncio
import json
import logging
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from chatsync.config import settings
from chatsync.core.session import SessionContext
from chatsync.core.telemetry import setup_all_instrumentation
from chatsync.schemas.transport import TransportEvent
from chatsync.services import ChatService, GatewayClient, create_cache_store

logger = logging.getLogger(__name__)

MESSAGE_EVENTS = ("message", "message.received", "textMessage")
CONNECTED_EVENTS = ("connected", "room_added", "roomAdded")
DISCONNECTED_EVENTS = ("disconnected", "room_removed")


class EventListener:
    """Feeds the gateway's WebSocket event stream into a chat service."""

    def __init__(self, service: ChatService, client: GatewayClient):
        self.service = service
        self.client = client
        self.websocket = None
        self.reconnect_delay = 1.0  # Initial delay in seconds
        self.max_reconnect_delay = settings.WS_MAX_RECONNECT_DELAY
        self.running = True

    async def connect(self) -> bool:
        """Establish WebSocket connection."""
        ws_url = self.client.get_websocket_url()
        extra_headers = self.client.get_auth_header() or {}

        try:
            self.websocket = await websockets.connect(
                ws_url,
                additional_headers=extra_headers,
                ping_interval=settings.WS_PING_INTERVAL,
                ping_timeout=settings.WS_PING_TIMEOUT,
            )
            self.reconnect_delay = 1.0  # Reset delay on successful connection
            logger.info(f"Connected to chat event stream at {ws_url}")
            return True
        except (OSError, WebSocketException) as e:
            logger.error(f"Failed to connect chat event stream: {e}")
            return False

    def handle_event(self, frame: dict[str, Any]) -> None:
        """Route a decoded event frame to the chat service."""
        event = TransportEvent.from_frame(frame)
        logger.debug(f"Received chat event: {event.event}")

        if event.event in MESSAGE_EVENTS:
            self.service.handle_incoming_message(event.data)

        elif event.event in CONNECTED_EVENTS:
            self.service.handle_connection_changed(True)

        elif event.event in DISCONNECTED_EVENTS:
            self.service.handle_connection_changed(False)

        else:
            logger.debug(f"Unhandled chat event type '{event.event}'")

    async def _backoff(self) -> None:
        await asyncio.sleep(self.reconnect_delay)
        self.reconnect_delay = min(self.reconnect_delay * 2, self.max_reconnect_delay)

    async def listen(self) -> None:
        """Listen for events, reconnecting with exponential backoff."""
        while self.running:
            try:
                if self.websocket is None:
                    if not await self.connect():
                        await self._backoff()
                        continue

                async for raw_frame in self.websocket:
                    try:
                        frame = json.loads(raw_frame)
                    except json.JSONDecodeError:
                        logger.warning(f"Invalid JSON received: {raw_frame[:100]!r}")
                        continue
                    if isinstance(frame, dict):
                        self.handle_event(frame)
                    else:
                        logger.warning(f"Ignoring non-object frame: {str(frame)[:100]}")

                # Server closed the stream cleanly
                self._on_lost()

            except ConnectionClosed as e:
                logger.warning(f"Chat event stream closed: {e}")
                self._on_lost()
                await self._backoff()

            except (OSError, WebSocketException) as e:
                logger.error(f"Chat event stream error: {e}")
                self._on_lost()
                await self._backoff()

    def _on_lost(self) -> None:
        self.websocket = None
        self.service.handle_connection_changed(False)

    async def close(self) -> None:
        """Close the WebSocket connection."""
        self.running = False
        if self.websocket is not None:
            await self.websocket.close()
            self.websocket = None
            logger.info("Closed chat event stream")


async def main() -> None:
    """Main entry point for the chat event listener worker."""
    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    setup_all_instrumentation()

    session = SessionContext(
        user_id=settings.OPERATOR_USER_ID,
        company_id=settings.OPERATOR_COMPANY_ID,
    )
    if settings.CACHE_BACKEND == "sql":
        from chatsync.db import init_db

        await init_db()

    client = GatewayClient()
    service = ChatService(session, client, create_cache_store())
    listener = EventListener(service, client)

    logger.info("Starting chat event listener...")
    await service.load_cached_messages()
    service.request_last_messages()

    try:
        await listener.listen()
    except asyncio.CancelledError:
        logger.info("Shutting down chat event listener...")
    finally:
        await listener.close()
        await service.close()


def run() -> None:
    """Console entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
