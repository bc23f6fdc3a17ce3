"""Stream Coordinator.

Relays an async text source to a transport channel as start/chunk/end/error
events. Chunks are buffered and flushed on a short timer to keep the number
of transport writes low. Each connection has at most one active stream.
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from fastapi import WebSocket
from fastapi.websockets import WebSocketState
from pydantic import BaseModel

from shared.logging import get_logger

logger = get_logger(__name__)


class CancellationToken:
    """Cooperative cancellation flag checked at every yield point."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class StreamEvents(BaseModel):
    """Event names used on the transport."""
    start: str = "stream:start"
    chunk: str = "stream:chunk"
    end: str = "stream:end"
    error: str = "stream:error"


class TransportChannel(ABC):
    """A push channel to one connected client."""

    @property
    @abstractmethod
    def connection_id(self) -> str:
        """Identifier used to enforce one stream per connection."""
        pass

    @abstractmethod
    async def send(self, event: str, payload: dict[str, Any]) -> None:
        """Deliver one event."""
        pass

    @abstractmethod
    def is_alive(self) -> bool:
        """Whether the client is still connected."""
        pass


class WebSocketChannel(TransportChannel):
    """Transport channel over a FastAPI WebSocket."""

    def __init__(self, websocket: WebSocket, connection_id: Optional[str] = None) -> None:
        self.websocket = websocket
        self._connection_id = connection_id or str(uuid.uuid4())

    @property
    def connection_id(self) -> str:
        return self._connection_id

    async def send(self, event: str, payload: dict[str, Any]) -> None:
        await self.websocket.send_json({"event": event, "data": payload})

    def is_alive(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )


class _ChunkBuffer:
    """Accumulates chunks and flushes them after a delay."""

    def __init__(self, flush: Callable[[str], Awaitable[None]], delay: float) -> None:
        self._flush = flush
        self._delay = delay
        self._parts: list[str] = []
        self._timer: Optional[asyncio.Task] = None
        self._firing = False

    def add(self, chunk: str) -> None:
        self._parts.append(chunk)
        if self._timer is None:
            self._timer = asyncio.create_task(self._run_timer())

    async def _run_timer(self) -> None:
        await asyncio.sleep(self._delay)
        self._firing = True
        try:
            await self._drain()
        finally:
            self._firing = False
            self._timer = None
        # Chunks added while draining need their own flush
        if self._parts:
            self._timer = asyncio.create_task(self._run_timer())

    async def _drain(self) -> None:
        if not self._parts:
            return
        text = "".join(self._parts)
        self._parts.clear()
        await self._flush(text)

    async def flush_now(self) -> None:
        """Flush everything buffered, waiting for an in-progress flush first."""
        while self._timer is not None:
            timer = self._timer
            if self._firing:
                await asyncio.wait([timer])
            else:
                timer.cancel()
                await asyncio.wait([timer])
                if self._timer is timer:
                    self._timer = None
        await self._drain()

    def discard(self) -> None:
        """Drop buffered chunks and stop the timer."""
        self._parts.clear()
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None


@dataclass
class _ActiveStream:
    stream_id: str
    token: CancellationToken


class StreamCoordinator:
    """
    Manages live streams to transport channels.

    Starting a stream on a connection cancels the previous stream on that
    connection before the new start event is sent, so an aborted stream
    never emits after its successor began.
    """

    def __init__(self, flush_ms: int = 50, events: Optional[StreamEvents] = None) -> None:
        """
        Initialize the coordinator.

        Args:
            flush_ms: Chunk buffering window in milliseconds
            events: Event names used on the transport
        """
        self.flush_seconds = flush_ms / 1000
        self.events = events or StreamEvents()
        self._active: dict[str, _ActiveStream] = {}

    async def _emit(
        self,
        channel: TransportChannel,
        token: CancellationToken,
        event: str,
        payload: dict[str, Any]
    ) -> None:
        if token.cancelled or not channel.is_alive():
            return
        try:
            await channel.send(event, payload)
        except Exception as e:
            # A failing transport is treated as disconnected
            logger.warning(
                "Stream event not delivered",
                connection_id=channel.connection_id,
                stream_event=event,
                error=str(e)
            )

    async def start_stream(
        self,
        channel: TransportChannel,
        source: AsyncIterator[str],
        end_payload: Optional[dict[str, Any]] = None,
        stream_id: Optional[str] = None,
        token: Optional[CancellationToken] = None
    ) -> str:
        """
        Relay a text source to a channel.

        The source is drained even when the channel is gone, so producers
        with side effects on completion still run them. On cancellation the
        source is closed and nothing more is emitted.

        Args:
            channel: Destination channel
            source: Async iterator of text fragments
            end_payload: Data attached to the end event
            stream_id: Identifier for this stream; generated when omitted
            token: Cancellation token, shared with the producer if given

        Returns:
            The stream id

        Raises:
            Exception: Whatever the source raised, after the error event
        """
        stream_id = stream_id or str(uuid.uuid4())
        connection_id = channel.connection_id

        self.stop_stream(connection_id)
        token = token or CancellationToken()
        active = _ActiveStream(stream_id=stream_id, token=token)
        self._active[connection_id] = active

        async def flush(text: str) -> None:
            await self._emit(channel, token, self.events.chunk, {"stream_id": stream_id, "chunk": text})

        buffer = _ChunkBuffer(flush, self.flush_seconds)

        try:
            logger.debug("Starting stream", stream_id=stream_id, connection_id=connection_id)
            await self._emit(channel, token, self.events.start, {"stream_id": stream_id})

            async for chunk in source:
                if token.cancelled:
                    logger.debug("Stream aborted", stream_id=stream_id)
                    break
                if chunk:
                    buffer.add(chunk)

            if token.cancelled:
                buffer.discard()
                return stream_id

            await buffer.flush_now()
            await self._emit(
                channel, token, self.events.end,
                {"stream_id": stream_id, "payload": end_payload or {}}
            )
            logger.debug("Stream completed", stream_id=stream_id)
            return stream_id

        except Exception as e:
            logger.error("Stream error", stream_id=stream_id, error=str(e))
            await buffer.flush_now()
            await self._emit(channel, token, self.events.error, {"stream_id": stream_id, "error": str(e)})
            raise

        finally:
            buffer.discard()
            aclose = getattr(source, "aclose", None)
            if aclose is not None:
                await aclose()
            if self._active.get(connection_id) is active:
                del self._active[connection_id]

    def stop_stream(self, connection_id: str) -> bool:
        """
        Cancel the active stream of a connection.

        Returns:
            True if a stream was cancelled
        """
        active = self._active.pop(connection_id, None)
        if active is None:
            return False
        logger.debug("Stopping stream", stream_id=active.stream_id, connection_id=connection_id)
        active.token.cancel()
        return True

    def has_active_stream(self, connection_id: str) -> bool:
        return connection_id in self._active

    def active_stream_count(self) -> int:
        return len(self._active)
