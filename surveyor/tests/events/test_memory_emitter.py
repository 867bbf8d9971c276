import pytest

from surveyor.app.events import (
    InspectionEvent,
    InspectionEventType,
    MemoryQueueEventEmitter,
    NullEventEmitter,
)

pytestmark = pytest.mark.anyio


def event(event_type, **details):
    return InspectionEvent(
        structure_id="structure-1",
        event_type=event_type,
        details=details or None,
    )


async def test_events_are_delivered_in_order():
    emitter = MemoryQueueEventEmitter()

    await emitter.emit(event(InspectionEventType.STRUCTURE_CREATED))
    await emitter.emit(event(InspectionEventType.FLOOR_ADDED, floor_number=1))
    await emitter.emit(event(InspectionEventType.UNIT_ADDED))

    events = await emitter.drain()

    assert [e.event_type for e in events] == [
        InspectionEventType.STRUCTURE_CREATED,
        InspectionEventType.FLOOR_ADDED,
        InspectionEventType.UNIT_ADDED,
    ]
    assert events[1].details == {"floor_number": 1}


async def test_emit_after_close_is_dropped():
    emitter = MemoryQueueEventEmitter()
    await emitter.close()

    await emitter.emit(event(InspectionEventType.RATINGS_SUBMITTED))

    assert [e async for e in emitter.stream()] == []


async def test_null_emitter_accepts_anything():
    await NullEventEmitter().emit(event(InspectionEventType.ROLLUP_RECOMPUTED))


async def test_events_are_immutable():
    e = event(InspectionEventType.STRUCTURE_CREATED)

    with pytest.raises(Exception):
        e.structure_id = "other"
