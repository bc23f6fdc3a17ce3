"""Tests for the stream coordinator."""

import asyncio

import pytest

from conftest import RecordingChannel
from orchestrator.streaming import CancellationToken, StreamCoordinator, StreamEvents


async def chunks(*parts: str):
    for part in parts:
        yield part


class TestStreamCoordinator:
    """Tests for StreamCoordinator."""

    @pytest.mark.asyncio
    async def test_event_sequence(self):
        """Test start, chunk and end events with the end payload."""
        coordinator = StreamCoordinator(flush_ms=10)
        channel = RecordingChannel()

        stream_id = await coordinator.start_stream(
            channel, chunks("Hello ", "world"), end_payload={"message_id": "m1"}, stream_id="s-1"
        )

        assert stream_id == "s-1"
        assert channel.names()[0] == "stream:start"
        assert channel.names()[-1] == "stream:end"
        assert channel.text() == "Hello world"
        assert channel.events[-1][1] == {"stream_id": "s-1", "payload": {"message_id": "m1"}}
        assert coordinator.active_stream_count() == 0

    @pytest.mark.asyncio
    async def test_chunks_are_coalesced(self):
        """Test that fragments arriving together are sent as one chunk."""
        coordinator = StreamCoordinator(flush_ms=50)
        channel = RecordingChannel()

        await coordinator.start_stream(channel, chunks("a", "b", "c"))

        assert channel.names() == ["stream:start", "stream:chunk", "stream:end"]
        assert channel.text() == "abc"

    @pytest.mark.asyncio
    async def test_slow_source_is_flushed_on_timer(self):
        """Test that buffered text is sent while the source is still running."""
        coordinator = StreamCoordinator(flush_ms=10)
        channel = RecordingChannel()

        async def slow():
            yield "first"
            await asyncio.sleep(0.1)
            yield "second"

        await coordinator.start_stream(channel, slow())

        chunk_events = [p["chunk"] for name, p in channel.events if name == "stream:chunk"]
        assert chunk_events == ["first", "second"]

    @pytest.mark.asyncio
    async def test_new_stream_aborts_previous(self):
        """Test that an aborted stream never emits after its successor starts."""
        coordinator = StreamCoordinator(flush_ms=10)
        channel = RecordingChannel()
        gate = asyncio.Event()
        closed = []

        async def first_source():
            try:
                yield "a1"
                await gate.wait()
                yield "a2"
            finally:
                closed.append("A")

        first = asyncio.create_task(coordinator.start_stream(channel, first_source(), stream_id="A"))
        await asyncio.sleep(0.05)
        assert coordinator.has_active_stream("conn-1")

        await coordinator.start_stream(channel, chunks("b1"), stream_id="B")
        gate.set()
        assert await first == "A"

        b_start = channel.events.index(("stream:start", {"stream_id": "B"}))
        assert all(payload["stream_id"] == "B" for _, payload in channel.events[b_start:])
        assert ("stream:end", {"stream_id": "A", "payload": {}}) not in channel.events
        assert closed == ["A"]
        assert coordinator.active_stream_count() == 0

    @pytest.mark.asyncio
    async def test_stop_stream(self):
        """Test cancelling a stream explicitly."""
        coordinator = StreamCoordinator(flush_ms=10)
        channel = RecordingChannel()
        gate = asyncio.Event()

        async def source():
            yield "x"
            await gate.wait()
            yield "y"

        task = asyncio.create_task(coordinator.start_stream(channel, source()))
        await asyncio.sleep(0.05)

        assert coordinator.stop_stream("conn-1") is True
        assert coordinator.stop_stream("conn-1") is False
        gate.set()
        await task

        assert "stream:end" not in channel.names()
        assert "y" not in channel.text()

    @pytest.mark.asyncio
    async def test_streams_on_other_connections_are_independent(self):
        """Test that each connection has its own stream."""
        coordinator = StreamCoordinator(flush_ms=10)
        one = RecordingChannel("conn-1")
        two = RecordingChannel("conn-2")

        await asyncio.gather(
            coordinator.start_stream(one, chunks("one")),
            coordinator.start_stream(two, chunks("two")),
        )

        assert one.text() == "one"
        assert two.text() == "two"
        assert one.names()[-1] == two.names()[-1] == "stream:end"

    @pytest.mark.asyncio
    async def test_error_flushes_buffer_first(self):
        """Test that text buffered before a failure is delivered."""
        coordinator = StreamCoordinator(flush_ms=1000)
        channel = RecordingChannel()

        async def failing():
            yield "partial"
            raise ValueError("model crashed")

        with pytest.raises(ValueError, match="model crashed"):
            await coordinator.start_stream(channel, failing(), stream_id="s-1")

        assert channel.names() == ["stream:start", "stream:chunk", "stream:error"]
        assert channel.events[-1][1] == {"stream_id": "s-1", "error": "model crashed"}
        assert coordinator.active_stream_count() == 0

    @pytest.mark.asyncio
    async def test_dead_channel_still_drains_source(self):
        """Test that the source runs to completion without a client."""
        coordinator = StreamCoordinator(flush_ms=10)
        channel = RecordingChannel(alive=False)
        consumed = []

        async def source():
            for part in ("a", "b", "c"):
                consumed.append(part)
                yield part

        await coordinator.start_stream(channel, source())

        assert consumed == ["a", "b", "c"]
        assert channel.events == []

    @pytest.mark.asyncio
    async def test_failing_transport_is_not_fatal(self):
        """Test that send errors are logged and the stream completes."""
        coordinator = StreamCoordinator(flush_ms=10)
        channel = RecordingChannel(fail=True)

        stream_id = await coordinator.start_stream(channel, chunks("a", "b"))

        assert stream_id

    @pytest.mark.asyncio
    async def test_shared_token_cancels_stream(self):
        """Test that a caller-provided token stops the stream."""
        coordinator = StreamCoordinator(flush_ms=10)
        channel = RecordingChannel()
        token = CancellationToken()

        async def source():
            yield "before"
            token.cancel()
            yield "after"

        await coordinator.start_stream(channel, source(), token=token)

        assert channel.names() == ["stream:start"]

    @pytest.mark.asyncio
    async def test_custom_event_names(self):
        """Test overriding transport event names."""
        coordinator = StreamCoordinator(
            flush_ms=10,
            events=StreamEvents(start="s", chunk="c", end="e", error="x"),
        )
        channel = RecordingChannel()

        await coordinator.start_stream(channel, chunks("hi"))

        assert channel.names() == ["s", "c", "e"]
