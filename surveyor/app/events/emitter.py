from __future__ import annotations

from typing import Protocol

from surveyor.app.events.models import InspectionEvent


class InspectionEventEmitter(Protocol):
    """
    Interface for broadcasting inspection lifecycle observations.

    Implementations must be:
    - non-blocking (or minimally blocking)
    - fail-safe (emission failures must not break a submission)
    - observational only
    """

    async def emit(self, event: InspectionEvent) -> None:
        ...


class NullEventEmitter:
    """
    A safe no-op emitter.

    Used when nothing is listening, e.g. batch recomputation or tests
    that do not care about events.
    """

    async def emit(self, event: InspectionEvent) -> None:
        return
