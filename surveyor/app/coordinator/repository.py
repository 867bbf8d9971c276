"""
Structure persistence contract.

The core never performs persistence itself. Callers supply a
StructureRepository; the coordinator awaits it at the boundary.

Repositories MUST enforce optimistic versioning on save: a save whose
expected version does not match the stored version is rejected, so a
concurrent submission can never silently overwrite another's rollup.
"""

from __future__ import annotations

from typing import Dict, List, Protocol
from uuid import UUID

import anyio

from surveyor.app.errors import (
    ConcurrentModificationError,
    DuplicateIdentityError,
    StructureNotFoundError,
)
from surveyor.app.schemas.hierarchy import Structure


class StructureRepository(Protocol):
    async def get(self, structure_id: UUID) -> Structure:
        """Load a structure or raise StructureNotFoundError."""
        ...

    async def add(self, structure: Structure) -> Structure:
        ...

    async def save(
        self, structure: Structure, *, expected_version: int
    ) -> Structure:
        """
        Persist a new snapshot and return it with its version advanced.

        Raises ConcurrentModificationError if the stored version is not
        `expected_version`.
        """
        ...

    async def codes_with_prefix(self, location_prefix: str) -> List[str]:
        """
        Every assigned identity code starting with the prefix.

        May raise SequenceLookupUnavailable.
        """
        ...

    async def list_structures(self) -> List[Structure]:
        ...


class InMemoryStructureRepository:
    """
    Process-local repository.

    Suitable for tests and single-process use. Identity codes are
    indexed so duplicates are rejected at save time.
    """

    def __init__(self) -> None:
        self._structures: Dict[UUID, Structure] = {}
        self._codes: Dict[str, UUID] = {}
        self._lock = anyio.Lock()

    async def get(self, structure_id: UUID) -> Structure:
        try:
            return self._structures[structure_id]
        except KeyError:
            raise StructureNotFoundError(
                f"Structure {structure_id} not found"
            ) from None

    async def add(self, structure: Structure) -> Structure:
        async with self._lock:
            if structure.id in self._structures:
                raise ConcurrentModificationError(
                    f"Structure {structure.id} already exists"
                )
            self._structures[structure.id] = structure
            return structure

    async def save(
        self, structure: Structure, *, expected_version: int
    ) -> Structure:
        async with self._lock:
            current = self._structures.get(structure.id)
            if current is None:
                raise StructureNotFoundError(
                    f"Structure {structure.id} not found"
                )
            if current.version != expected_version:
                raise ConcurrentModificationError(
                    f"Structure {structure.id} is at version "
                    f"{current.version}, expected {expected_version}"
                )

            code = structure.identity_code
            if code is not None:
                holder = self._codes.get(code)
                if holder is not None and holder != structure.id:
                    raise DuplicateIdentityError(
                        f"Identity code {code} is already assigned"
                    )
                self._codes[code] = structure.id

            stored = structure.model_copy(
                update={"version": expected_version + 1}
            )
            self._structures[structure.id] = stored
            return stored

    async def codes_with_prefix(self, location_prefix: str) -> List[str]:
        return sorted(c for c in self._codes if c.startswith(location_prefix))

    async def list_structures(self) -> List[Structure]:
        return list(self._structures.values())
