"""Tests for the activity catalog, location registry and movement loops."""

import random

import pytest

from townsfolk.environment import (
    ActivityCatalog,
    ActivityDefinition,
    AmbiguousActivityError,
    DurationMode,
    EnvironmentGrid,
    LocationEntry,
    LocationRegistry,
    MovementPattern,
    UnknownActivityError,
    default_activity_catalog,
    normalize_activity_name,
    pattern_waypoints,
)


def test_resolve_canonical_names_and_aliases():
    catalog = default_activity_catalog()

    assert catalog.resolve("work").name == "work"
    assert catalog.resolve("Lunch").name == "eat"
    assert catalog.resolve("prepare for bed").name == "sleep"
    assert catalog.resolve("Go-To").duration_mode == DurationMode.UNTIL_ARRIVAL
    assert "dinner" in catalog
    assert "juggle" not in catalog
    assert catalog.validate() == {}


def test_unknown_activity_raises():
    with pytest.raises(UnknownActivityError) as excinfo:
        default_activity_catalog().resolve("juggle")
    assert excinfo.value.name == "juggle"


def test_ambiguous_alias_is_reported_not_guessed():
    catalog = ActivityCatalog(
        [
            ActivityDefinition("fish", aliases=("relax",)),
            ActivityDefinition("nap", aliases=("relax",)),
        ]
    )

    with pytest.raises(AmbiguousActivityError) as excinfo:
        catalog.resolve("relax")

    assert excinfo.value.candidates == ["fish", "nap"]
    assert catalog.validate() == {"relax": ["fish", "nap"]}
    assert "relax" not in catalog


def test_alias_shadowing_canonical_name_is_flagged():
    catalog = ActivityCatalog(
        [
            ActivityDefinition("walk"),
            ActivityDefinition("stroll", aliases=("walk",)),
        ]
    )

    assert catalog.resolve("walk").name == "walk"
    assert catalog.validate() == {"walk": ["stroll", "walk"]}


def test_duplicate_registration_is_rejected():
    catalog = ActivityCatalog([ActivityDefinition("work")])
    with pytest.raises(ValueError):
        catalog.register(ActivityDefinition("Work"))


def test_name_normalization():
    assert normalize_activity_name("  Prepare-For  Bed ") == "prepare_for_bed"


def test_location_lookup_by_tags():
    registry = LocationRegistry(
        [
            LocationEntry("cafe", (1, 1), tags=frozenset({"food", "social"}), max_capacity=2),
            LocationEntry("home", (5, 5), tags=frozenset({"home", "rest"})),
        ]
    )

    assert [loc.id for loc in registry.lookup({"food"})] == ["cafe"]
    assert registry.lookup({"food", "rest"}) == []
    assert len(registry.lookup(())) == 2
    assert registry.get("home").max_capacity == 1
    assert registry.get("mill") is None

    with pytest.raises(ValueError):
        registry.add(LocationEntry("cafe", (0, 0)))


def test_location_footprint_tiles():
    plaza = LocationEntry("plaza", (2, 3), width=2, height=2)
    assert list(plaza.tiles()) == [(2, 3), (2, 4), (3, 3), (3, 4)]


def test_movement_patterns():
    grid = EnvironmentGrid(width=9, height=9)
    anchor = (4, 4)

    assert pattern_waypoints(MovementPattern.STATIC, anchor, grid) == []
    assert pattern_waypoints(MovementPattern.PACE, anchor, grid) == [(4, 5), (4, 6), (4, 5), (4, 4)]
    assert len(pattern_waypoints(MovementPattern.CIRCLE, anchor, grid)) == 8
    assert len(pattern_waypoints(MovementPattern.LAPS, anchor, grid)) == 16

    post = LocationEntry("well", (4, 4))
    patrol = pattern_waypoints(MovementPattern.PATROL, anchor, grid, location=post)
    assert patrol[0] == (3, 3)
    assert len(patrol) == 8


def test_wander_stays_in_radius_and_is_seeded():
    grid = EnvironmentGrid(width=20, height=20)
    first = pattern_waypoints(MovementPattern.WANDER, (10, 10), grid, rng=random.Random(7))
    second = pattern_waypoints(MovementPattern.WANDER, (10, 10), grid, rng=random.Random(7))

    assert first == second
    assert len(first) == 6
    assert all(abs(r - 10) <= 3 and abs(c - 10) <= 3 for r, c in first)


def test_ring_skips_walls():
    grid = EnvironmentGrid.from_rows(["...", "...", "##."])
    ring = pattern_waypoints(MovementPattern.CIRCLE, (1, 1), grid)
    assert (2, 0) not in ring and (2, 1) not in ring
    assert ring[0] == (0, 0)
