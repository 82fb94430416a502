"""
Tests for EventStream and StreamingManager.
"""

import asyncio
import json

import pytest
from fastapi.responses import StreamingResponse

from a2a_service.a2a.models import TaskState, TaskStatus, TaskStatusUpdateEvent
from a2a_service.errors import A2AError, ErrorCode
from a2a_service.streaming_manager import EventStream, StreamingManager


def status_event(state=TaskState.WORKING, final=False):
    return TaskStatusUpdateEvent(id="t1", status=TaskStatus(state=state), final=final)


class TestEventStream:
    """Queue-backed event stream."""

    @pytest.mark.asyncio
    async def test_send_wraps_events_in_success_envelope(self):
        stream = EventStream(request_id=7, task_id="t1")
        assert stream.send(status_event())
        stream.close()

        events = [event async for event in stream.events()]

        assert events == [
            {"jsonrpc": "2.0", "id": 7, "result": {"id": "t1", "status": {"state": "working"}, "final": False}}
        ]
        assert stream.sent_count == 1

    @pytest.mark.asyncio
    async def test_close_is_idempotent_and_drops_later_sends(self):
        stream = EventStream(request_id=1, task_id="t1")
        stream.send(status_event())
        stream.close()
        stream.close()

        assert stream.closed
        assert stream.send(status_event(TaskState.COMPLETED, True)) is False
        events = [event async for event in stream.events()]
        assert len(events) == 1

    @pytest.mark.asyncio
    async def test_sse_lines_format(self):
        stream = EventStream(request_id="r", task_id="t1")
        stream.send(status_event(TaskState.COMPLETED, True))
        stream.close()

        lines = [line async for line in stream.sse_lines()]

        assert len(lines) == 1
        assert lines[0].startswith("data: ")
        assert lines[0].endswith("\n\n")
        payload = json.loads(lines[0][len("data: "):])
        assert payload["result"]["final"] is True

    @pytest.mark.asyncio
    async def test_consumer_waits_for_producer(self):
        stream = EventStream(request_id=1, task_id="t1")

        async def produce():
            await asyncio.sleep(0)
            stream.send(status_event())
            await asyncio.sleep(0)
            stream.send(status_event(TaskState.COMPLETED, True))
            stream.close()

        producer = asyncio.create_task(produce())
        events = [event async for event in stream.events()]
        await producer

        assert [event["result"]["final"] for event in events] == [False, True]


class TestStreamingManager:
    """Stream registry, producers and shutdown."""

    @pytest.mark.asyncio
    async def test_open_stream_registers(self):
        manager = StreamingManager(max_streams=2)
        stream = await manager.open_stream(1, "t1")

        assert manager.streams[stream.stream_id] is stream
        stats = await manager.get_stream_stats()
        assert stats["open_streams"] == 1
        assert stats["max_streams"] == 2

    @pytest.mark.asyncio
    async def test_capacity_enforced(self):
        manager = StreamingManager(max_streams=1)
        await manager.open_stream(1, "t1")

        with pytest.raises(A2AError) as exc_info:
            await manager.open_stream(2, "t2")
        assert exc_info.value.code == ErrorCode.INTERNAL_ERROR

    @pytest.mark.asyncio
    async def test_finished_producer_releases_stream(self):
        manager = StreamingManager()
        stream = await manager.open_stream(1, "t1")

        async def produce():
            stream.send(status_event(TaskState.COMPLETED, True))

        task = manager.start_producer(stream, produce())
        await task
        await asyncio.sleep(0)

        assert stream.stream_id not in manager.streams
        assert stream.stream_id not in manager.producers
        assert stream.closed

    @pytest.mark.asyncio
    async def test_failed_producer_still_closes_stream(self):
        manager = StreamingManager()
        stream = await manager.open_stream(1, "t1")

        async def produce():
            raise RuntimeError("boom")

        task = manager.start_producer(stream, produce())
        with pytest.raises(RuntimeError):
            await task
        await asyncio.sleep(0)

        assert stream.closed
        assert manager.streams == {}

    @pytest.mark.asyncio
    async def test_close_cancels_running_producers(self):
        manager = StreamingManager()
        stream = await manager.open_stream(1, "t1")
        started = asyncio.Event()

        async def produce():
            started.set()
            await asyncio.sleep(3600)

        task = manager.start_producer(stream, produce())
        await started.wait()

        await manager.close()

        assert task.cancelled()
        assert stream.closed
        assert manager.streams == {}
        assert manager.producers == {}

    @pytest.mark.asyncio
    async def test_unregister_stream_closes_it(self):
        manager = StreamingManager()
        stream = await manager.open_stream(1, "t1")

        await manager.unregister_stream(stream.stream_id)

        assert stream.closed
        assert manager.streams == {}

    @pytest.mark.asyncio
    async def test_sse_response_headers(self):
        manager = StreamingManager()
        stream = await manager.open_stream(1, "t1")

        response = manager.create_sse_response(stream)

        assert isinstance(response, StreamingResponse)
        assert response.media_type == "text/event-stream"
        assert response.headers["cache-control"] == "no-cache"
        stream.close()

    @pytest.mark.asyncio
    async def test_sse_body_drains_stream(self):
        manager = StreamingManager()
        stream = await manager.open_stream(1, "t1")
        stream.send(status_event(TaskState.COMPLETED, True))
        stream.close()

        response = manager.create_sse_response(stream)
        chunks = [chunk async for chunk in response.body_iterator]

        assert len(chunks) == 1
        assert "\"final\": true" in chunks[0]
