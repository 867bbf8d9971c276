"""
Inspection coordinator.

Caller-side orchestration around the pure core. The coordinator:

- awaits external collaborators (repository, sequence counter)
- serializes read-modify-write per structure
- gates rating submissions through the evidence policy
- walks unit -> floor -> structure recomputation after every change
- emits observational lifecycle events

It MUST NOT:
- compute rollups itself
- interpret ratings beyond the evidence policy
- let event emission influence control flow
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import (
    Any,
    AsyncIterator,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Union,
)
from uuid import UUID

import anyio

from surveyor.app.config import SurveyorConfig
from surveyor.app.coordinator.repository import (
    InMemoryStructureRepository,
    StructureRepository,
)
from surveyor.app.errors import (
    DuplicateIdentityError,
    EvidenceRejectedError,
    IdentityAlreadyAssignedError,
    InvalidFieldError,
)
from surveyor.app.events import (
    InspectionEvent,
    InspectionEventEmitter,
    InspectionEventType,
    NullEventEmitter,
)
from surveyor.app.identity import codec
from surveyor.app.identity.sequence import (
    InMemorySequenceCounter,
    SequenceCounter,
    allocate_sequence,
)
from surveyor.app.rating.aggregation import (
    apply_rating,
    propagate_unit_change,
    refresh_floor,
    refresh_structure,
)
from surveyor.app.rating.evidence import run_submission_checks
from surveyor.app.rating.maintenance import inspection_queue, maintenance_plan
from surveyor.app.schemas.hierarchy import (
    Floor,
    FloorType,
    RateableUnit,
    Structure,
    UnitKind,
)
from surveyor.app.schemas.identity import IdentityFields, StructureType
from surveyor.app.schemas.maintenance import MaintenancePlan
from surveyor.app.schemas.ratings import ComponentRating

logger = logging.getLogger(__name__)


class InspectionCoordinator:
    """
    Orchestrates structure creation, identity assignment and rating
    submission against a StructureRepository.
    """

    def __init__(
        self,
        config: SurveyorConfig,
        repository: StructureRepository,
        sequence_counter: Optional[SequenceCounter] = None,
        emitter: Optional[InspectionEventEmitter] = None,
    ) -> None:
        """
        Direct constructor.

        Intended for tests and explicit wiring. A sequence_counter of
        None selects max-then-increment allocation, which is not safe
        under concurrent identity assignment for the same location.
        """
        self._config = config
        self._repository = repository
        self._sequence_counter = sequence_counter
        self._emitter = emitter or NullEventEmitter()

        self._locks: Dict[UUID, anyio.Lock] = {}
        self._lock_users: Dict[UUID, int] = {}

    # ------------------------------------------------------------------
    # Integration constructor (composition root)
    # ------------------------------------------------------------------

    @classmethod
    def in_memory(
        cls,
        config: Optional[SurveyorConfig] = None,
        emitter: Optional[InspectionEventEmitter] = None,
    ) -> "InspectionCoordinator":
        """Fully wired, process-local coordinator."""
        return cls(
            config=config or SurveyorConfig(),
            repository=InMemoryStructureRepository(),
            sequence_counter=InMemorySequenceCounter(),
            emitter=emitter,
        )

    # ------------------------------------------------------------------
    # Structure lifecycle
    # ------------------------------------------------------------------

    async def create_structure(
        self,
        *,
        type_of_structure: Union[StructureType, str] = StructureType.RESIDENTIAL,
        name: Optional[str] = None,
    ) -> Structure:
        structure_type = codec.TYPE_NAMES[codec.type_code_for(type_of_structure)]
        structure = await self._repository.add(
            Structure(type_of_structure=structure_type, name=name)
        )

        logger.info(
            "Created %s structure %s",
            structure.type_of_structure.value,
            structure.id,
        )
        await self._emit(structure.id, InspectionEventType.STRUCTURE_CREATED)
        return structure

    async def get_structure(self, structure_id: UUID) -> Structure:
        return await self._repository.get(structure_id)

    async def assign_identity(
        self,
        structure_id: UUID,
        fields: Union[IdentityFields, Mapping[str, Any]],
        *,
        zip_code: Optional[str] = None,
    ) -> Structure:
        """
        Mint and attach the structure's identity code.

        Codes are assigned exactly once. The structure type is taken
        from the identity fields.
        """
        if zip_code is None and self._config.REQUIRE_ZIP_CODE:
            raise InvalidFieldError(
                "zip_code", None, "Zip code is required"
            )

        async with self._lock(structure_id):
            structure = await self._repository.get(structure_id)

            if structure.identity is not None:
                raise IdentityAlreadyAssignedError(
                    f"Structure {structure_id} already has identity "
                    f"{structure.identity.code}"
                )

            fields = codec.coerce_fields(fields)
            # Validate every field before touching the sequence counter
            codec.type_code_for(fields.type_of_structure)
            prefix = codec.location_prefix(
                fields.state_code,
                fields.district_code,
                fields.city_name,
                fields.location_code,
            )

            allocation = await allocate_sequence(
                prefix,
                lookup=self._repository.codes_with_prefix,
                counter=self._sequence_counter,
                allow_fallback=self._config.ALLOW_TIMESTAMP_SEQUENCE_FALLBACK,
            )
            identity = codec.generate(
                fields, allocation.sequence, zip_code=zip_code
            )

            if allocation.used_fallback:
                await self._emit(
                    structure_id,
                    InspectionEventType.SEQUENCE_FALLBACK_USED,
                    {"location_prefix": prefix, "sequence": allocation.sequence},
                )

            try:
                saved = await self._repository.save(
                    structure.model_copy(
                        update={
                            "identity": identity,
                            "type_of_structure": codec.TYPE_NAMES[
                                identity.components.type_code
                            ],
                        }
                    ),
                    expected_version=structure.version,
                )
            except DuplicateIdentityError:
                logger.error(
                    "Identity %s collided for structure %s (fallback=%s)",
                    identity.code,
                    structure_id,
                    allocation.used_fallback,
                )
                raise

        logger.info(
            "Assigned identity %s to structure %s",
            identity.formatted_display,
            structure_id,
        )
        await self._emit(
            structure_id,
            InspectionEventType.IDENTITY_ASSIGNED,
            {"code": identity.code},
        )
        return saved

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    async def add_floor(
        self,
        structure_id: UUID,
        *,
        floor_number: int,
        label: Optional[str] = None,
        floor_type: Union[FloorType, str] = FloorType.RESIDENTIAL,
    ) -> Structure:
        async with self._lock(structure_id):
            structure = await self._repository.get(structure_id)

            floor = Floor(
                floor_number=floor_number,
                label=label or f"Floor {floor_number}",
                floor_type=floor_type,
            )
            updated = refresh_structure(
                structure.model_copy(
                    update={"floors": [*structure.floors, floor]}
                )
            )
            saved = await self._repository.save(
                updated, expected_version=structure.version
            )

        await self._emit(
            structure_id,
            InspectionEventType.FLOOR_ADDED,
            {"floor_id": str(floor.id), "floor_number": floor_number},
        )
        return saved

    async def add_unit(
        self,
        structure_id: UUID,
        floor_id: UUID,
        *,
        label: Optional[str] = None,
        kind: Optional[Union[UnitKind, str]] = None,
    ) -> Structure:
        """
        Add a flat (or an industrial block) to a floor.

        Without a label, units are numbered "<floor>-<NN>".
        """
        async with self._lock(structure_id):
            structure = await self._repository.get(structure_id)
            floor = structure.floor(floor_id)

            if kind is None:
                kind = (
                    UnitKind.BLOCK
                    if structure.type_of_structure is StructureType.INDUSTRIAL
                    else UnitKind.FLAT
                )

            unit = RateableUnit(
                label=label
                or f"{floor.floor_number}-{len(floor.units) + 1:02d}",
                kind=kind,
            )
            new_floor = refresh_floor(
                floor.model_copy(update={"units": [*floor.units, unit]}),
                attention_threshold=self._config.ATTENTION_THRESHOLD,
            )
            floors = [
                new_floor if f.id == floor_id else f for f in structure.floors
            ]
            updated = refresh_structure(
                structure.model_copy(update={"floors": floors})
            )
            saved = await self._repository.save(
                updated, expected_version=structure.version
            )

        await self._emit(
            structure_id,
            InspectionEventType.UNIT_ADDED,
            {"floor_id": str(floor_id), "unit_id": str(unit.id)},
        )
        return saved

    # ------------------------------------------------------------------
    # Ratings
    # ------------------------------------------------------------------

    async def submit_ratings(
        self,
        structure_id: UUID,
        floor_id: UUID,
        unit_id: UUID,
        submissions: Iterable[Union[Mapping[str, Any], ComponentRating]],
    ) -> Structure:
        """
        Submit component ratings for one unit.

        The whole submission is rejected if any component violates the
        evidence policy (EvidenceRejectedError carries every violation).
        Accepted ratings replace previous values per component slot,
        then the unit, floor and structure rollups are recomputed in
        that order.
        """
        submissions = list(submissions)

        async with self._lock(structure_id):
            structure = await self._repository.get(structure_id)
            unit = structure.floor(floor_id).unit(unit_id)

            violations = run_submission_checks(
                submissions,
                unit_label=unit.label,
                min_text_length=self._config.EVIDENCE_MIN_TEXT_LENGTH,
                enforce_photo_url_format=self._config.ENFORCE_PHOTO_URL_FORMAT,
            )

            if violations:
                logger.warning(
                    "Rejected %d rating(s) for unit %s of structure %s: "
                    "%d evidence violation(s)",
                    len(submissions),
                    unit.label,
                    structure_id,
                    len(violations),
                )
                await self._emit(
                    structure_id,
                    InspectionEventType.RATINGS_REJECTED,
                    {
                        "unit_id": str(unit_id),
                        "violation_ids": [v.violation_id for v in violations],
                    },
                )
                raise EvidenceRejectedError(violations)

            for submission in submissions:
                rating = (
                    submission
                    if isinstance(submission, ComponentRating)
                    else ComponentRating.from_submission(submission)
                )
                unit = apply_rating(unit, rating)

            updated = propagate_unit_change(
                structure,
                floor_id,
                unit,
                attention_threshold=self._config.ATTENTION_THRESHOLD,
            )
            saved = await self._repository.save(
                updated, expected_version=structure.version
            )

        logger.info(
            "Accepted %d rating(s) for unit %s of structure %s; "
            "structure health %s (%s)",
            len(submissions),
            unit.label,
            structure_id,
            saved.rollup.health_status.value if saved.rollup.health_status else None,
            saved.rollup.combined_score,
        )
        await self._emit(
            structure_id,
            InspectionEventType.RATINGS_SUBMITTED,
            {"unit_id": str(unit_id), "count": len(submissions)},
        )
        await self._emit(
            structure_id,
            InspectionEventType.ROLLUP_RECOMPUTED,
            {"rollup": saved.rollup.model_dump(mode="json")},
        )
        return saved

    # ------------------------------------------------------------------
    # Advisory reads
    # ------------------------------------------------------------------

    async def maintenance_plan(self, structure_id: UUID) -> MaintenancePlan:
        return maintenance_plan(await self._repository.get(structure_id))

    async def structures_requiring_inspection(self) -> List[Structure]:
        return inspection_queue(await self._repository.list_structures())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _lock(self, structure_id: UUID) -> AsyncIterator[None]:
        # Locks live only while some task holds or awaits them
        lock = self._locks.get(structure_id)
        if lock is None:
            lock = self._locks[structure_id] = anyio.Lock()
        self._lock_users[structure_id] = self._lock_users.get(structure_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[structure_id] -= 1
            if not self._lock_users[structure_id]:
                del self._lock_users[structure_id]
                del self._locks[structure_id]

    async def _emit(
        self,
        structure_id: UUID,
        event_type: InspectionEventType,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        try:
            await self._emitter.emit(
                InspectionEvent(
                    structure_id=str(structure_id),
                    event_type=event_type,
                    details=details,
                )
            )
        except Exception as exc:
            # Observability must never break a submission
            logger.warning("Event emission failed for %s: %s", event_type.value, exc)
