from datetime import timedelta

import pytest

from biostate.core import service
from biostate.core.models import DosageInput, Interaction, RatioRule, StackItem, TimingRule


@pytest.fixture
def rules_db(seeded_db):
    seeded_db.insert_timing_rule(TimingRule("t1", "zinc", "copper", 4, "Zinc competes with copper", "medium"))
    seeded_db.insert_ratio_rule(RatioRule("r1", "zinc", "copper", min_ratio=8, max_ratio=15, optimal_ratio=10))
    seeded_db.insert_interaction(Interaction("i1", "zinc", "copper", "competition", severity="medium"))
    seeded_db.insert_interaction(Interaction("i2", "d3", "k2", "synergy", suggestion="Pair D3 with K2."))
    return seeded_db


def test_state_for_empty_history(rules_db, now):
    state = service.get_biological_state("u1", now=now)
    assert state.active_compounds == []
    assert state.bio_score == 50
    assert state.optimizations == []


def test_state_reflects_logged_doses(rules_db, now):
    rules_db.insert_log("u1", "zinc", 50, "mg", now - timedelta(hours=1))
    rules_db.insert_log("u1", "copper", 2, "mg", now - timedelta(minutes=30))
    rules_db.insert_log("u1", "d3", 1000, "IU", now - timedelta(minutes=10))
    rules_db.insert_log("u2", "mag", 200, "mg", now - timedelta(minutes=10))

    state = service.get_biological_state("u1", timezone="UTC", now=now)

    assert {c.supplement_id for c in state.active_compounds} == {"zinc", "copper", "d3"}
    assert [z.rule_id for z in state.exclusion_zones] == ["t1"]
    assert [w.rule_id for w in state.ratio_warnings] == ["r1"]
    assert any(o.suggestion_key == "synergy:d3:k2" for o in state.optimizations)


def test_dismissed_suggestion_is_hidden(rules_db, now):
    rules_db.insert_log("u1", "d3", 1000, "IU", now - timedelta(minutes=10))
    state = service.get_biological_state("u1", dismissed_keys=frozenset({"synergy:d3:k2"}), now=now)
    assert state.optimizations == []


def test_active_supplements_and_timeline(rules_db, now):
    rules_db.insert_log("u1", "mag", 200, "mg", now - timedelta(minutes=30))
    active = service.get_active_supplements("u1", now=now)
    assert [c.supplement_id for c in active] == ["mag"]

    points = service.get_timeline_data("u1", interval_minutes=60, window_hours=2, now=now)
    assert points[0].timestamp == now - timedelta(hours=2)
    assert "mag" in points[-1].concentrations


def test_timing_safety_reports_open_zone(rules_db, now):
    rules_db.insert_log("u1", "zinc", 50, "mg", now - timedelta(hours=1))
    rules_db.insert_log("u1", "copper", 2, "mg", now - timedelta(minutes=30))
    zone = service.check_timing_safety("u1", "copper", now=now)
    assert zone is not None
    assert zone.minutes_remaining == 180
    assert service.check_timing_safety("u1", "mag", now=now) is None


def test_log_timing_conflicts(rules_db, now):
    rules_db.insert_log("u1", "zinc", 50, "mg", now - timedelta(hours=1))
    warnings = service.check_log_timing("u1", "copper", now)
    assert [w.actual_hours_apart for w in warnings] == [1.0]
    assert service.check_log_timing("u1", "mag", now) == []


def test_safety_limit_counts_todays_history(rules_db, catalog, now):
    rules_db.insert_log("u1", "zinc", 150, "mg", now - timedelta(hours=1))      # 31.5 mg elemental
    rules_db.insert_log("u2", "zinc", 150, "mg", now - timedelta(hours=1))

    result = service.check_safety_limit("u1", catalog["zinc"], 50, "mg", now=now, timezone="UTC")
    assert result.status == "blocked"
    assert result.current_total == pytest.approx(42.0)

    fresh = service.check_safety_limit("u3", catalog["zinc"], 50, "mg", now=now, timezone="UTC")
    assert fresh.status == "safe"


def test_yesterdays_dose_does_not_count(rules_db, catalog, now):
    rules_db.insert_log("u1", "zinc", 150, "mg", now - timedelta(hours=13))
    result = service.check_safety_limit("u1", catalog["zinc"], 50, "mg", now=now, timezone="UTC")
    assert result.status == "safe"


def test_stack_safety_and_headroom(rules_db, catalog, now):
    rules_db.insert_log("u1", "zinc", 100, "mg", now - timedelta(hours=1))      # 21 mg
    items = [StackItem(catalog["zinc"], 100, "mg")]
    result = service.check_stack_safety("u1", items, now=now, timezone="UTC")
    assert result.status == "blocked"
    assert service.check_stack_safety("u1", [StackItem(catalog["mag"], 100, "mg")],
                                      now=now, timezone="UTC") is None

    rows = service.get_safety_headroom("u1", now=now, timezone="UTC")
    assert [r.category for r in rows] == ["zinc"]
    assert rows[0].current == pytest.approx(21.0)


def test_analyze_interactions(rules_db, now):
    dosages = {
        "zinc": DosageInput("zinc", 50, "mg"),
        "copper": DosageInput("copper", 2, "mg"),
    }
    report = service.analyze_interactions("u1", ["zinc", "copper"], dosages=dosages, now=now)
    assert report.status == "yellow"
    assert [w.id for w in report.warnings] == ["i1"]
    assert [w.rule_id for w in report.ratio_warnings] == ["r1"]
