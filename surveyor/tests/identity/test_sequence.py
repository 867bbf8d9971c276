import anyio
import pytest

from surveyor.app.errors import SequenceExhaustedError, SequenceLookupUnavailable
from surveyor.app.identity.sequence import (
    InMemorySequenceCounter,
    allocate_sequence,
    fallback_sequence,
    max_sequence,
    next_sequence,
)

pytestmark = pytest.mark.anyio

PREFIX = "MH01MUMBAN"


def lookup_of(*codes):
    async def lookup(prefix):
        return [c for c in codes if c.startswith(prefix)]

    return lookup


async def unavailable_lookup(prefix):
    raise SequenceLookupUnavailable("registry offline")


# ---------------------------------------------------------------------
# Pure allocation
# ---------------------------------------------------------------------


async def test_first_sequence_for_a_prefix_is_one():
    assert next_sequence(PREFIX, []) == "00001"


async def test_next_sequence_follows_the_highest_in_use():
    codes = [
        "MH01MUMBAN0000101",
        "MH01MUMBAN0000702",
        "MH01MUMBAX0009901",  # different location
        "garbage",
    ]

    assert max_sequence(PREFIX, codes) == 7
    assert next_sequence(PREFIX, codes) == "00008"


async def test_next_sequence_is_deterministic_for_a_snapshot():
    codes = ["MH01MUMBAN0004201"]

    assert next_sequence(PREFIX, codes) == next_sequence(PREFIX, codes)


async def test_exhausted_prefix_raises():
    with pytest.raises(SequenceExhaustedError):
        next_sequence(PREFIX, ["MH01MUMBAN9999901"])


async def test_prefix_must_be_ten_characters():
    with pytest.raises(ValueError):
        next_sequence("MH01", [])


@pytest.mark.parametrize(
    "now_ms, expected",
    [
        (1700000012345, "12346"),
        (1700000099999, "00001"),
        (1700000000000, "00001"),
        (1700000099998, "99999"),
    ],
)
async def test_fallback_sequence_uses_last_five_timestamp_digits(now_ms, expected):
    assert fallback_sequence(now_ms) == expected


async def test_fallback_sequence_is_always_in_range():
    value = int(fallback_sequence())

    assert 1 <= value <= 99999


# ---------------------------------------------------------------------
# Caller-side allocation
# ---------------------------------------------------------------------


async def test_allocate_without_counter_uses_existing_codes():
    allocation = await allocate_sequence(
        PREFIX, lookup=lookup_of("MH01MUMBAN0000301")
    )

    assert allocation.sequence == "00004"
    assert allocation.used_fallback is False


async def test_counter_is_seeded_from_existing_codes():
    counter = InMemorySequenceCounter()
    lookup = lookup_of("MH01MUMBAN0001001")

    first = await allocate_sequence(PREFIX, lookup=lookup, counter=counter)
    second = await allocate_sequence(PREFIX, lookup=lookup, counter=counter)

    assert (first.sequence, second.sequence) == ("00011", "00012")
    assert counter.current(PREFIX) == 12


async def test_concurrent_allocations_never_collide():
    counter = InMemorySequenceCounter()
    lookup = lookup_of()
    allocated = []

    async def allocate():
        allocation = await allocate_sequence(PREFIX, lookup=lookup, counter=counter)
        allocated.append(allocation.sequence)

    async with anyio.create_task_group() as tg:
        for _ in range(25):
            tg.start_soon(allocate)

    assert len(set(allocated)) == 25
    assert sorted(allocated) == [f"{n:05d}" for n in range(1, 26)]


async def test_counters_are_scoped_per_prefix():
    counter = InMemorySequenceCounter()
    lookup = lookup_of()

    await allocate_sequence(PREFIX, lookup=lookup, counter=counter)
    other = await allocate_sequence("KA05BANGKR", lookup=lookup, counter=counter)

    assert other.sequence == "00001"


async def test_counter_exhaustion_raises():
    with pytest.raises(SequenceExhaustedError):
        await allocate_sequence(
            PREFIX,
            lookup=lookup_of("MH01MUMBAN9999901"),
            counter=InMemorySequenceCounter(),
        )


async def test_unavailable_lookup_uses_fallback_when_allowed():
    allocation = await allocate_sequence(PREFIX, lookup=unavailable_lookup)

    assert allocation.used_fallback is True
    assert len(allocation.sequence) == 5
    assert 1 <= int(allocation.sequence) <= 99999


async def test_unavailable_lookup_raises_when_fallback_disallowed():
    with pytest.raises(SequenceLookupUnavailable):
        await allocate_sequence(
            PREFIX, lookup=unavailable_lookup, allow_fallback=False
        )


async def test_other_lookup_failures_are_not_masked():
    async def broken(prefix):
        raise KeyError(prefix)

    with pytest.raises(KeyError):
        await allocate_sequence(PREFIX, lookup=broken)


async def test_next_sequence_exceeds_every_existing_sequence():
    codes = []
    for _ in range(50):
        sequence = next_sequence(PREFIX, codes)
        assert all(int(sequence) > int(c[10:15]) for c in codes)
        codes.append(f"{PREFIX}{sequence}01")

    assert next_sequence(PREFIX, codes) == "00051"
