import pytest

from surveyor.app.errors import AggregationError, AggregationPrecondition
from surveyor.app.rating.aggregation import (
    apply_rating,
    combined_score,
    propagate_unit_change,
    recompute_all,
    recompute_floor,
    recompute_structure,
    recompute_unit,
    round_score,
)
from surveyor.app.schemas.hierarchy import (
    Floor,
    HealthStatus,
    Priority,
    RateableUnit,
    Structure,
)
from surveyor.app.schemas.ratings import (
    NON_STRUCTURAL_COMPONENTS,
    STRUCTURAL_COMPONENTS,
    ComponentRating,
)
from surveyor.tests.fixtures.structures import (
    floor_of,
    rated_unit,
    rating_payload,
    structure_of,
)


def uniform_unit(label, value):
    return rated_unit(
        label,
        structural=[(c, value) for c in sorted(STRUCTURAL_COMPONENTS)],
        non_structural=[(c, value) for c in sorted(NON_STRUCTURAL_COMPONENTS)],
    )


# ---------------------------------------------------------------------
# Numeric helpers
# ---------------------------------------------------------------------


@pytest.mark.parametrize(
    "value, expected",
    [(2.25, 2.3), (2.75, 2.8), (3.04, 3.0), (4.0, 4.0), (13 / 3, 4.3)],
)
def test_round_score_rounds_halves_up(value, expected):
    assert round_score(value) == expected


def test_combined_score_needs_both_categories():
    assert combined_score(4.0, 2.0) == 3.4
    assert combined_score(4.0, None) is None
    assert combined_score(None, 2.0) is None


# ---------------------------------------------------------------------
# Unit rollups
# ---------------------------------------------------------------------


def test_unit_combined_score_weights_structural_at_seventy_percent():
    unit = rated_unit(structural=[("beams", 4)], non_structural=[("plumbing", 2)])

    assert unit.rollup.structural_avg == 4.0
    assert unit.rollup.non_structural_avg == 2.0
    assert unit.rollup.combined_score == 3.4
    assert unit.rollup.health_status is HealthStatus.FAIR
    assert unit.rollup.priority is Priority.MEDIUM


def test_unit_averages_are_rounded_to_one_decimal():
    unit = rated_unit(
        structural=[("beams", 4), ("columns", 4), ("slab", 5)],
        non_structural=[("plumbing", 3), ("lifts", 4)],
    )

    assert unit.rollup.structural_avg == 4.3
    assert unit.rollup.non_structural_avg == 3.5
    assert unit.rollup.combined_score == 4.1
    assert unit.rollup.health_status is HealthStatus.GOOD


def test_structural_only_unit_is_classified_by_structural_average():
    unit = rated_unit(structural=[("beams", 2), ("columns", 2)])

    assert unit.rollup.combined_score is None
    assert unit.rollup.structural_avg == 2.0
    assert unit.rollup.health_status is HealthStatus.POOR
    assert unit.rollup.priority is Priority.HIGH


def test_non_structural_only_unit_is_unclassified():
    unit = rated_unit(non_structural=[("plumbing", 5)])

    assert unit.rollup.non_structural_avg == 5.0
    assert unit.rollup.combined_score is None
    assert unit.rollup.health_status is None
    assert unit.rollup.priority is None


def test_unrated_unit_has_null_rollup():
    rollup = recompute_unit(RateableUnit(label="1-01"))

    assert rollup.is_empty
    assert rollup.health_status is None


def test_strict_recompute_of_unrated_unit_raises():
    with pytest.raises(AggregationPrecondition):
        recompute_unit(RateableUnit(label="1-01"), strict=True)


def test_new_rating_replaces_the_slot():
    unit = rated_unit(structural=[("beams", 4)])
    unit = apply_rating(
        unit, ComponentRating.from_submission(rating_payload("beams", 2))
    )

    assert list(unit.structural) == ["beams"]
    assert unit.structural["beams"].rating == 2
    assert unit.rollup.structural_avg == 2.0


def test_rating_in_wrong_slot_is_an_invariant_violation():
    plumbing = ComponentRating.from_submission(rating_payload("plumbing", 4))
    unit = RateableUnit(label="1-01", structural={"plumbing": plumbing})

    with pytest.raises(AggregationError):
        recompute_unit(unit)


def test_unknown_component_cannot_be_applied():
    with pytest.raises(AggregationError):
        apply_rating(
            RateableUnit(label="1-01"),
            ComponentRating(component_type="roof", rating=4),
        )


# ---------------------------------------------------------------------
# Floor and structure rollups
# ---------------------------------------------------------------------


def test_best_and_worst_flats_average_to_fair():
    best = uniform_unit("1-01", 5)
    worst = uniform_unit("1-02", 1)

    structure = structure_of(floor_of(best, worst))

    floor = structure.floors[0]
    assert floor.rollup.structural_avg == 3.0
    assert floor.rollup.non_structural_avg == 3.0
    assert floor.rollup.combined_score == 3.0
    assert floor.rollup.health_status is HealthStatus.FAIR
    assert floor.rollup.flats_needing_attention == 1

    assessment = structure.final_health_assessment
    assert assessment.combined_score == 3.0
    assert assessment.health_status is HealthStatus.FAIR
    assert assessment.priority is Priority.MEDIUM
    assert assessment.flats_needing_attention == 1


def test_floor_averages_unit_averages_not_component_ratings():
    many = rated_unit(
        "1-01",
        structural=[("beams", 5), ("columns", 5), ("slab", 5), ("foundation", 5)],
    )
    one = rated_unit("1-02", structural=[("beams", 1)])

    floor = floor_of(many, one)

    assert floor.rollup.structural_avg == 3.0


def test_structure_averages_floor_averages():
    ground = floor_of(
        rated_unit("0-01", structural=[("beams", 5)]),
        rated_unit("0-02", structural=[("beams", 5)]),
        rated_unit("0-03", structural=[("beams", 5)]),
        number=0,
    )
    first = floor_of(rated_unit("1-01", structural=[("beams", 2)]), number=1)

    structure = structure_of(ground, first)

    assert structure.rollup.structural_avg == 3.5


def test_attention_threshold_is_configurable():
    unit = rated_unit(structural=[("beams", 4)], non_structural=[("plumbing", 2)])
    floor = Floor(floor_number=1, label="Floor 1", units=[unit])

    assert recompute_floor(floor).flats_needing_attention == 0
    assert recompute_floor(floor, attention_threshold=4.0).flats_needing_attention == 1


def test_units_without_combined_score_never_need_attention():
    floor = floor_of(rated_unit(structural=[("beams", 1)]))

    assert floor.rollup.health_status is HealthStatus.CRITICAL
    assert floor.rollup.flats_needing_attention == 0


def test_empty_levels_have_null_rollups():
    floor = floor_of()
    structure = structure_of(floor)

    assert floor.rollup.is_empty
    assert structure.rollup.is_empty
    assert structure.rollup.flats_needing_attention == 0


def test_strict_recompute_of_empty_levels_raises():
    with pytest.raises(AggregationPrecondition):
        recompute_floor(Floor(floor_number=1, label="Floor 1"), strict=True)

    with pytest.raises(AggregationPrecondition):
        recompute_structure(Structure(), strict=True)


# ---------------------------------------------------------------------
# Propagation
# ---------------------------------------------------------------------


def test_propagation_recomputes_only_the_affected_floor():
    ground = floor_of(rated_unit("0-01", structural=[("beams", 5)]), number=0)
    first = floor_of(rated_unit("1-01", structural=[("beams", 5)]), number=1)
    structure = structure_of(ground, first)

    target = first.units[0]
    changed = apply_rating(
        target, ComponentRating.from_submission(rating_payload("beams", 1))
    )

    updated = propagate_unit_change(structure, first.id, changed)

    assert updated.floors[0] == structure.floors[0]
    assert updated.floors[1].rollup.structural_avg == 1.0
    assert updated.rollup.structural_avg == 3.0


def test_recompute_is_idempotent():
    structure = structure_of(
        floor_of(uniform_unit("1-01", 4), uniform_unit("1-02", 2)),
        floor_of(uniform_unit("2-01", 3), number=2),
    )

    once = recompute_all(structure)
    twice = recompute_all(once)

    assert once == twice
    assert once.rollup == structure.rollup


def test_recompute_all_repairs_stale_rollups():
    unit = rated_unit(structural=[("beams", 2)])
    stale = Structure(
        floors=[Floor(floor_number=1, label="Floor 1", units=[unit])]
    )

    assert stale.rollup.is_empty
    assert recompute_all(stale).rollup.structural_avg == 2.0


def test_two_floor_structure_of_best_and_worst_flats_is_fair():
    structure = structure_of(
        floor_of(uniform_unit("1-01", 5), number=1),
        floor_of(uniform_unit("2-01", 1), number=2),
    )

    assert structure.rollup.structural_avg == 3.0
    assert structure.rollup.non_structural_avg == 3.0
    assert structure.rollup.combined_score == 3.0
    assert structure.rollup.health_status is HealthStatus.FAIR
    assert structure.rollup.priority is Priority.MEDIUM
