from __future__ import annotations

import logging
from typing import AsyncIterator, List

import anyio
from anyio.streams.memory import (
    MemoryObjectReceiveStream,
    MemoryObjectSendStream,
)

from surveyor.app.events.emitter import InspectionEventEmitter
from surveyor.app.events.models import InspectionEvent

logger = logging.getLogger(__name__)


class MemoryQueueEventEmitter(InspectionEventEmitter):
    """
    In-memory async event emitter.

    Properties:
    - single-consumer
    - non-blocking for the submission path (unbounded buffer)
    - deterministic ordering
    - terminates cleanly once closed
    """

    def __init__(self) -> None:
        send, receive = anyio.create_memory_object_stream[InspectionEvent](
            max_buffer_size=float("inf")
        )
        self._send: MemoryObjectSendStream[InspectionEvent] = send
        self._receive: MemoryObjectReceiveStream[InspectionEvent] = receive
        self._closed = False

    async def emit(self, event: InspectionEvent) -> None:
        if self._closed:
            return

        try:
            self._send.send_nowait(event)
        except (anyio.BrokenResourceError, anyio.ClosedResourceError) as exc:
            # Observability must never break a submission
            logger.debug("Dropped %s event: %s", event.event_type.value, exc)

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            await self._send.aclose()

    async def stream(self) -> AsyncIterator[InspectionEvent]:
        """
        Async generator yielding emitted events in order until closed.
        """
        async with self._receive:
            async for event in self._receive:
                yield event

    async def drain(self) -> List[InspectionEvent]:
        """Close the emitter and return every buffered event."""
        await self.close()
        return [event async for event in self.stream()]
