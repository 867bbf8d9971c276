"""
Scoped sequence allocation for identity codes.

Sequence numbers are unique per 10-character location prefix. Two paths
exist:

1. Atomic counter (primary). A SequenceCounter increments a per-prefix
   value atomically, seeded with the highest sequence already in use.
   Concurrent allocations for the same prefix cannot collide.

2. Max-then-increment (next_sequence). Pure and deterministic given a
   consistent snapshot of existing codes, but NOT safe under concurrent
   allocation for the same prefix. Used only when no counter is wired.

The timestamp fallback is used only when existing codes cannot be
looked up at all, and only if configuration allows it. It is not
collision-free.
"""

from __future__ import annotations

import logging
import time
from typing import (
    Awaitable,
    Callable,
    Dict,
    Iterable,
    NamedTuple,
    Optional,
    Protocol,
)

import anyio

from surveyor.app.errors import (
    SequenceExhaustedError,
    SequenceLookupUnavailable,
)
from surveyor.app.identity.codec import (
    CODE_LENGTH,
    LOCATION_PREFIX_LENGTH,
    MAX_SEQUENCE,
)

logger = logging.getLogger(__name__)

# Async capability returning every existing code that shares a prefix
ExistingCodesLookup = Callable[[str], Awaitable[Iterable[str]]]


# ------------------------------------------------------------------
# Pure allocation
# ------------------------------------------------------------------


def max_sequence(location_prefix: str, existing_codes: Iterable[str]) -> int:
    """
    Highest sequence in use for a prefix, or 0 if none.

    Codes with a different prefix or a non-numeric sequence segment are
    ignored.
    """
    highest = 0
    for code in existing_codes:
        if (
            not isinstance(code, str)
            or len(code) != CODE_LENGTH
            or not code.startswith(location_prefix)
        ):
            continue
        segment = code[LOCATION_PREFIX_LENGTH:LOCATION_PREFIX_LENGTH + 5]
        if segment.isdigit():
            highest = max(highest, int(segment))
    return highest


def next_sequence(location_prefix: str, existing_codes: Iterable[str]) -> str:
    """
    Next unused 5-digit sequence for a location prefix.

    Deterministic and idempotent for a given snapshot of existing codes.
    """
    _check_prefix(location_prefix)

    candidate = max_sequence(location_prefix, existing_codes) + 1
    if candidate > MAX_SEQUENCE:
        raise SequenceExhaustedError(
            f"All {MAX_SEQUENCE} sequences are in use for prefix "
            f"{location_prefix}"
        )
    return f"{candidate:05d}"


def fallback_sequence(now_ms: Optional[int] = None) -> str:
    """
    Timestamp-derived sequence for when lookup is unavailable.

    Last five digits of a millisecond timestamp, modulo 99999, plus one.
    NOT collision-free under concurrent use.
    """
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    last_five = int(str(now_ms)[-5:])
    return f"{(last_five % MAX_SEQUENCE) + 1:05d}"


def _check_prefix(location_prefix: str) -> None:
    if len(location_prefix) != LOCATION_PREFIX_LENGTH:
        raise ValueError(
            f"Location prefix must be {LOCATION_PREFIX_LENGTH} characters, "
            f"got {location_prefix!r}"
        )


# ------------------------------------------------------------------
# Atomic counter contract
# ------------------------------------------------------------------


class SequenceCounter(Protocol):
    """
    Per-prefix atomic counter.

    Implementations MUST make increment() atomic per prefix (e.g. a
    sequence row updated with an atomic increment).
    """

    async def increment(self, location_prefix: str, *, at_least: int) -> int:
        """
        Atomically advance the counter for a prefix and return the new
        value. The returned value MUST be greater than `at_least`.
        """
        ...


class InMemorySequenceCounter:
    """
    Process-local SequenceCounter.

    Suitable for tests and single-process deployments only.
    """

    def __init__(self) -> None:
        self._values: Dict[str, int] = {}
        self._lock = anyio.Lock()

    async def increment(self, location_prefix: str, *, at_least: int) -> int:
        async with self._lock:
            value = max(self._values.get(location_prefix, 0), at_least) + 1
            self._values[location_prefix] = value
            return value

    def current(self, location_prefix: str) -> int:
        return self._values.get(location_prefix, 0)


# ------------------------------------------------------------------
# Caller-side allocation
# ------------------------------------------------------------------


class SequenceAllocation(NamedTuple):
    sequence: str
    used_fallback: bool = False


async def allocate_sequence(
    location_prefix: str,
    *,
    lookup: ExistingCodesLookup,
    counter: Optional[SequenceCounter] = None,
    allow_fallback: bool = True,
) -> SequenceAllocation:
    """
    Allocate the next sequence for a prefix.

    The lookup is awaited here, at the caller boundary; the pure
    functions above never perform I/O.
    """
    _check_prefix(location_prefix)

    try:
        existing = list(await lookup(location_prefix))
    except SequenceLookupUnavailable as exc:
        if not allow_fallback:
            raise
        sequence = fallback_sequence()
        logger.warning(
            "Existing-code lookup unavailable for prefix %s (%s); "
            "using timestamp fallback sequence %s",
            location_prefix,
            exc,
            sequence,
        )
        return SequenceAllocation(sequence, used_fallback=True)

    if counter is None:
        return SequenceAllocation(next_sequence(location_prefix, existing))

    value = await counter.increment(
        location_prefix,
        at_least=max_sequence(location_prefix, existing),
    )
    if value > MAX_SEQUENCE:
        raise SequenceExhaustedError(
            f"All {MAX_SEQUENCE} sequences are in use for prefix "
            f"{location_prefix}"
        )

    logger.debug("Allocated sequence %05d for prefix %s", value, location_prefix)
    return SequenceAllocation(f"{value:05d}")
