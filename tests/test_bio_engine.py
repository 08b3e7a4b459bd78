from datetime import timedelta

import pytest

from biostate.core.bio_engine import (
    active_supplements,
    build_biological_state,
    calculate_bio_score,
    calculate_exclusion_zones,
    generate_timeline,
    timing_safety,
    timing_warnings,
    timing_warnings_for,
    track_active_compounds,
)
from biostate.core.models import (
    ExclusionZone,
    Interaction,
    OptimizationOpportunity,
    RatioRule,
    TimingRule,
)


ZINC_COPPER = TimingRule("r1", "zinc", "copper", 4, "Zinc competes with copper for absorption", "medium")


def zone(severity, minutes=60):
    return ExclusionZone("r", "a", "A", "b", "B", None, minutes, "reason", severity)


def active_synergy():
    return OptimizationOpportunity("synergy", ("a", "b"), "t", "d", 1, is_active_synergy=True)


# --- Active compounds ---

def test_one_compound_per_log(catalog, make_log, now):
    logs = [make_log("mag", 60), make_log("mag", 30), make_log("zinc", 10)]
    compounds = track_active_compounds(logs, catalog, now)
    assert [c.supplement_id for c in compounds] == ["zinc", "mag", "mag"]


def test_logs_outside_window_and_unknown_are_skipped(catalog, make_log, now):
    logs = [make_log("mag", 25 * 60), make_log("unknown", 10), make_log("mag", 120)]
    compounds = track_active_compounds(logs, catalog, now)
    assert len(compounds) == 1
    assert compounds[0].concentration_percent == 100.0
    assert compounds[0].phase == "peak"


def test_active_supplements_filters_phase(catalog, make_log, now):
    logs = [make_log("mag", 30), make_log("theanine", 23 * 60)]
    compounds = track_active_compounds(logs, catalog, now)
    assert [c.phase for c in compounds] == ["absorbing", "cleared"]
    assert [c.supplement_id for c in active_supplements(compounds)] == ["mag"]


# --- Timeline ---

def test_timeline_empty_without_logs(catalog, now):
    assert generate_timeline([], catalog, now) == []


def test_timeline_grid_spans_history_and_projection(catalog, make_log, now):
    points = generate_timeline([make_log("mag", 60)], catalog, now)
    assert len(points) == 28 * 4 + 1
    assert points[0].timestamp == now - timedelta(hours=24)
    assert points[-1].timestamp == now + timedelta(hours=4)
    assert points[0].concentrations == {}


def test_timeline_sums_repeat_doses_with_cap(make_profile, make_log, now):
    profiles = {"mag": make_profile("mag", peak_minutes=60)}
    logs = [make_log("mag", 60), make_log("mag", 60)]
    points = generate_timeline(logs, profiles, now)
    at_now = next(p for p in points if p.timestamp == now)
    assert at_now.concentrations["mag"] == 150.0


def test_timeline_bad_interval_uses_default(catalog, make_log, now):
    points = generate_timeline([make_log("mag", 60)], catalog, now, interval_minutes=0)
    assert points[1].minutes_from_start == 15


# --- Exclusion zones ---

def test_zone_while_window_is_open(catalog, make_log, now):
    logs = [make_log("zinc", 60), make_log("copper", 30)]
    zones = calculate_exclusion_zones(logs, catalog, [ZINC_COPPER], now)
    assert len(zones) == 1
    assert zones[0].minutes_remaining == 180
    assert zones[0].ends_at > now
    assert zones[0].target_supplement_name == "Copper"


def test_zone_requires_target_in_window(catalog, make_log, now):
    zones = calculate_exclusion_zones([make_log("zinc", 60)], catalog, [ZINC_COPPER], now)
    assert zones == []


def test_elapsed_zone_is_dropped(catalog, make_log, now):
    logs = [make_log("zinc", 5 * 60), make_log("copper", 30)]
    assert calculate_exclusion_zones(logs, catalog, [ZINC_COPPER], now) == []


def test_zones_sorted_soonest_first(catalog, make_log, now):
    rules = [
        TimingRule("long", "iron", "caffeine", 6, "Coffee polyphenols bind iron", "critical"),
        ZINC_COPPER,
    ]
    logs = [make_log("iron", 30), make_log("caffeine", 20), make_log("zinc", 120), make_log("copper", 10)]
    zones = calculate_exclusion_zones(logs, catalog, rules, now)
    assert [z.rule_id for z in zones] == ["r1", "long"]
    assert timing_safety(zones, "caffeine").rule_id == "long"
    assert timing_safety(zones, "mag") is None


def test_zone_uses_latest_source_log(catalog, make_log, now):
    logs = [make_log("zinc", 200), make_log("zinc", 60), make_log("copper", 30)]
    zones = calculate_exclusion_zones(logs, catalog, [ZINC_COPPER], now)
    assert zones[0].minutes_remaining == 180


# --- Timing warnings ---

def test_timing_warning_for_close_logs(catalog, make_log):
    logs = [make_log("zinc", 180), make_log("copper", 60)]
    warnings = timing_warnings([ZINC_COPPER], logs, catalog)
    assert len(warnings) == 1
    assert warnings[0].actual_hours_apart == 2.0


def test_no_timing_warning_when_far_apart(catalog, make_log):
    logs = [make_log("zinc", 390), make_log("copper", 60)]
    assert timing_warnings([ZINC_COPPER], logs, catalog) == []


def test_timing_warnings_for_new_dose(catalog, make_log, now):
    logs = [make_log("zinc", 100)]
    warnings = timing_warnings_for("copper", now, [ZINC_COPPER], logs, catalog)
    assert [w.actual_hours_apart for w in warnings] == [1.6]


# --- Bio-score ---

def test_empty_state_scores_fifty():
    assert calculate_bio_score([], [zone("critical")], [active_synergy()]) == 50


def test_score_penalties_and_bonus(catalog, make_log, now):
    compounds = track_active_compounds([make_log("mag", 10)], catalog, now)
    assert calculate_bio_score(compounds, [], []) == 100
    assert calculate_bio_score(compounds, [zone("critical"), zone("low")], []) == 35
    assert calculate_bio_score(compounds, [zone("medium")], [active_synergy()] * 2) == 85


def test_score_is_clamped(catalog, make_log, now):
    compounds = track_active_compounds([make_log("mag", 10)], catalog, now)
    assert calculate_bio_score(compounds, [zone("critical")] * 3, []) == 0
    assert calculate_bio_score(compounds, [zone("low")], [active_synergy()] * 10) == 100


# --- Full state ---

def test_build_state_combines_parts(catalog, make_log, now):
    logs = [make_log("zinc", 60, dosage=50), make_log("copper", 30, dosage=2)]
    synergies = [Interaction("s1", "d3", "k2", "synergy", suggestion="K2 directs calcium to bone.")]
    ratio = RatioRule("zn-cu", "zinc", "copper", min_ratio=8, max_ratio=15, optimal_ratio=10)

    state = build_biological_state(logs, catalog, [ZINC_COPPER], synergies, [ratio], now)

    assert len(state.active_compounds) == 2
    assert len(state.exclusion_zones) == 1
    assert state.bio_score == 75
    assert state.optimizations == []
    assert state.calculated_at == now
    assert len(state.ratio_warnings) == 1
    assert state.ratio_warnings[0].current_ratio == pytest.approx(5.25, abs=0.06)
