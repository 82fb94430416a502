"""
Server-Sent Events streaming for ``tasks/sendSubscribe``.

An ``EventStream`` is the channel between the producer task driving a task
handler and the HTTP response writing SSE frames. Each queued item is a
complete JSON-RPC success envelope. The ``StreamingManager`` owns every open
stream and its producer, enforces the stream limit, and tears everything down
on shutdown.
"""

import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, Optional, Union

from fastapi.responses import StreamingResponse

from .a2a.models import JSONRPCSuccessResponse, serialize_a2a
from .errors import A2AError

logger = logging.getLogger(__name__)

_CLOSED = object()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class EventStream:
    """Queue-backed stream of JSON-RPC envelopes for one subscribe request."""

    def __init__(self, request_id: Union[int, float, str, None], task_id: str, stream_id: Optional[str] = None):
        self.stream_id = stream_id or str(uuid.uuid4())
        self.request_id = request_id
        self.task_id = task_id
        self.created_at = datetime.now(timezone.utc)
        self.sent_count = 0
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: Any) -> bool:
        """Queue ``event`` wrapped in a success envelope; False once the stream is closed."""
        if self._closed:
            logger.debug(
                "Dropping event for closed stream",
                extra={"stream_id": self.stream_id, "task_id": self.task_id},
            )
            return False
        envelope = JSONRPCSuccessResponse(id=self.request_id, result=serialize_a2a(event))
        self._queue.put_nowait(envelope.model_dump(mode="json"))
        self.sent_count += 1
        return True

    def close(self) -> None:
        """Close the stream; calling it again has no effect."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)
        logger.debug(
            "Stream closed",
            extra={"stream_id": self.stream_id, "task_id": self.task_id, "events": self.sent_count},
        )

    async def events(self):
        """Yield queued envelopes until the stream is closed and drained."""
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item

    async def sse_lines(self):
        async for payload in self.events():
            yield f"data: {json.dumps(payload)}\n\n"


class StreamingManager:
    """Registry of open event streams and the producer tasks feeding them."""

    def __init__(self, max_streams: int = 200):
        self.max_streams = max_streams
        self.streams: Dict[str, EventStream] = {}
        self.producers: Dict[str, "asyncio.Task[Any]"] = {}
        self._lock: Optional[asyncio.Lock] = None

    @property
    def lock(self) -> asyncio.Lock:
        """Get or create the asyncio lock guarding the stream registry."""
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def open_stream(self, request_id: Union[int, float, str, None], task_id: str) -> EventStream:
        """Register a new stream, refusing it when the limit is reached."""
        async with self.lock:
            if len(self.streams) >= self.max_streams:
                logger.warning(
                    "Stream limit reached",
                    extra={"task_id": task_id, "max_streams": self.max_streams},
                )
                raise A2AError.internal_error(
                    "Too many concurrent streams", {"max_streams": self.max_streams}
                )
            stream = EventStream(request_id, task_id)
            self.streams[stream.stream_id] = stream

        logger.info(
            "Stream opened",
            extra={"stream_id": stream.stream_id, "task_id": task_id, "request_id": request_id},
        )
        return stream

    def start_producer(self, stream: EventStream, producer: Awaitable[Any]) -> "asyncio.Task[Any]":
        """Run ``producer`` in the background; the stream is released when it finishes."""
        task = asyncio.ensure_future(producer)
        self.producers[stream.stream_id] = task
        task.add_done_callback(lambda finished: self._producer_done(stream, finished))
        return task

    def _producer_done(self, stream: EventStream, task: "asyncio.Task[Any]") -> None:
        self.producers.pop(stream.stream_id, None)
        self.streams.pop(stream.stream_id, None)
        stream.close()
        if task.cancelled():
            logger.info("Stream producer cancelled", extra={"stream_id": stream.stream_id})
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Stream producer failed",
                extra={"stream_id": stream.stream_id, "task_id": stream.task_id, "error": str(error)},
            )

    async def unregister_stream(self, stream_id: str) -> None:
        async with self.lock:
            stream = self.streams.pop(stream_id, None)
        if stream is not None:
            stream.close()

    def create_sse_response(self, stream: EventStream) -> StreamingResponse:
        """Create the ``text/event-stream`` response that drains ``stream``."""

        async def event_generator():
            try:
                async for line in stream.sse_lines():
                    yield line
            finally:
                if not stream.closed:
                    # Client went away; the producer keeps persisting, its events are dropped.
                    logger.info(
                        "SSE client disconnected",
                        extra={"stream_id": stream.stream_id, "task_id": stream.task_id},
                    )
                    stream.close()

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    async def get_stream_stats(self) -> Dict[str, Any]:
        """Get statistics about currently open streams."""
        async with self.lock:
            now = datetime.now(timezone.utc)
            ages = [(now - stream.created_at).total_seconds() for stream in self.streams.values()]
            return {
                "open_streams": len(ages),
                "max_streams": self.max_streams,
                "running_producers": sum(1 for task in self.producers.values() if not task.done()),
                "average_age_seconds": sum(ages) / len(ages) if ages else 0,
                "oldest_stream_seconds": max(ages) if ages else 0,
            }

    async def close(self) -> None:
        """Cancel running producers and close every open stream."""
        producers = list(self.producers.values())
        for task in producers:
            task.cancel()
        if producers:
            await asyncio.gather(*producers, return_exceptions=True)

        async with self.lock:
            stream_count = len(self.streams)
            for stream in self.streams.values():
                stream.close()
            self.streams.clear()
        self.producers.clear()

        logger.info(
            "Closed all streams",
            extra={"stream_count": stream_count, "producer_count": len(producers)},
        )
