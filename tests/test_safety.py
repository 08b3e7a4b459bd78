from datetime import datetime, timezone

import pytest

from biostate.core.models import LogEntry, SafetyLimit, StackItem
from biostate.core.reference_data import SAFETY_LIMITS
from biostate.core.safety import (
    check_meal_context,
    check_safety_limit,
    check_stack_meal_context,
    check_stack_safety,
    elemental_total,
    get_date_range,
    safety_headroom,
)


def totals(**by_category):
    """existing_total stub: category -> already logged amount."""
    return lambda limit: by_category.get(limit.category.replace("-", "_"), 0.0)


def no_history(limit):
    raise AssertionError("history must not be consulted")


# --- Windows ---

def test_daily_window_uses_local_midnight(now):
    start, end = get_date_range("daily", now, "Europe/Zurich")
    assert start.isoformat() == "2026-03-10T00:00:00+01:00"
    assert end.date() == start.date()
    assert start <= now <= end


def test_weekly_window_covers_seven_days(now):
    start, end = get_date_range("weekly", now, "UTC")
    assert start == datetime(2026, 3, 4, tzinfo=timezone.utc)
    assert end.date() == now.date()


# --- Totals ---

def test_elemental_total_converts_and_skips(catalog, now):
    logs = [
        LogEntry(1, "zinc", 50, "mg", now),          # 10.5 mg elemental
        LogEntry(2, "zinc", 0.05, "g", now),         # 10.5 mg elemental
        LogEntry(3, "zinc", 5, "ml", now),           # not comparable
        LogEntry(4, "mag", 200, "mg", now),          # other category
    ]
    assert elemental_total(logs, catalog, "zinc", "mg") == pytest.approx(21.0)


# --- Single item ---

def test_research_chemical_is_experimental(catalog):
    result = check_safety_limit(catalog["bpc"], 500, "mcg", SAFETY_LIMITS, no_history)
    assert result.status == "experimental"
    assert result.is_safe


def test_no_category_is_safe(catalog):
    result = check_safety_limit(catalog["theanine"], 200, "mg", SAFETY_LIMITS, no_history)
    assert result.status == "safe"
    assert result.category is None


def test_required_unit_mismatch_blocks_without_history(catalog):
    limits = {"iron": SafetyLimit("iron", 1000, "IU", is_hard_limit=True, required_unit="IU")}
    result = check_safety_limit(catalog["iron"], 1000, "mg", limits, no_history)
    assert result.status == "blocked"
    assert not result.is_safe
    assert "must be logged in IU" in result.message


def test_hard_limit_over_is_blocked(catalog):
    result = check_safety_limit(catalog["zinc"], 50, "mg", SAFETY_LIMITS, totals(zinc=30.0))
    assert result.status == "blocked"
    assert result.is_hard_limit
    assert result.current_total == pytest.approx(40.5)
    assert result.percent_of_limit == 101
    assert "101% of the safe daily limit for Zinc (40mg)" in result.message


def test_soft_limit_over_is_warning(catalog):
    result = check_safety_limit(catalog["mag"], 200, "mg", SAFETY_LIMITS, totals(magnesium=200.0))
    assert result.status == "warning"
    assert not result.is_safe
    assert "recommended daily limit for Magnesium" in result.message


def test_under_limit_is_safe_with_percent(catalog):
    result = check_safety_limit(catalog["zinc"], 50, "mg", SAFETY_LIMITS, totals(zinc=9.5))
    assert result.status == "safe"
    assert result.percent_of_limit == 50


def test_weekly_iu_limit(catalog):
    result = check_safety_limit(catalog["d3"], 5000, "IU", SAFETY_LIMITS, totals(vitamin_d3=68000.0))
    assert result.status == "warning"
    assert "weekly limit for Vitamin D3" in result.message


def test_unconvertible_unit_is_safe(catalog):
    result = check_safety_limit(catalog["mag"], 10, "ml", SAFETY_LIMITS, no_history)
    assert result.status == "safe"


# --- Stack ---

def test_stack_returns_worst_hard_violation(catalog):
    items = [
        StackItem(catalog["mag"], 500, "mg"),       # soft, 143%
        StackItem(catalog["zinc"], 100, "mg"),      # hard, 21 mg
        StackItem(catalog["zinc"], 100, "mg"),      # hard, 42 mg total
    ]
    result = check_stack_safety(items, SAFETY_LIMITS, totals())
    assert result.category == "zinc"
    assert result.status == "blocked"
    assert "This stack would put you at 105%" in result.message


@pytest.mark.parametrize("reverse", [False, True])
def test_stack_soft_violations_highest_percent_wins(catalog, reverse):
    items = [
        StackItem(catalog["mag"], 500, "mg"),        # 143%
        StackItem(catalog["caffeine"], 800, "mg"),   # 200%
    ]
    result = check_stack_safety(items[::-1] if reverse else items, SAFETY_LIMITS, totals())
    assert result.category == "caffeine"
    assert result.status == "warning"
    assert result.percent_of_limit == 200


@pytest.mark.parametrize("reverse", [False, True])
def test_stack_hard_violations_highest_percent_wins(catalog, reverse):
    items = [
        StackItem(catalog["zinc"], 200, "mg"),       # 42 mg elemental, 105%
        StackItem(catalog["iron"], 90, "mg"),        # 200%
    ]
    result = check_stack_safety(items[::-1] if reverse else items, SAFETY_LIMITS, totals())
    assert result.category == "iron"
    assert result.status == "blocked"
    assert result.percent_of_limit == 200


def test_stack_hard_violation_beats_larger_soft_one(catalog):
    items = [
        StackItem(catalog["caffeine"], 800, "mg"),   # soft, 200%
        StackItem(catalog["zinc"], 200, "mg"),       # hard, 105%
    ]
    result = check_stack_safety(items, SAFETY_LIMITS, totals())
    assert result.category == "zinc"
    assert result.percent_of_limit == 105


def test_stack_within_limits_is_none(catalog):
    items = [StackItem(catalog["mag"], 100, "mg"), StackItem(catalog["theanine"], 200, "mg")]
    assert check_stack_safety(items, SAFETY_LIMITS, totals()) is None


def test_stack_required_unit_short_circuits(catalog):
    items = [StackItem(catalog["d3"], 0.1, "mg")]
    result = check_stack_safety(items, SAFETY_LIMITS, no_history)
    assert result.status == "blocked"
    assert result.message == "Vitamin D3 must be logged in IU."


# --- Headroom ---

def test_headroom_skips_unused_and_sorts():
    rows = safety_headroom(SAFETY_LIMITS, totals(magnesium=175.0, zinc=30.0))
    assert [r.category for r in rows] == ["zinc", "magnesium"]
    assert rows[0].percent_used == 75
    assert rows[1].percent_used == 50
    assert rows[0].label == "Zinc"


# --- Meal context ---

def test_fat_soluble_needs_context(catalog):
    check = check_meal_context(catalog["d3"], None)
    assert not check.is_optimal
    assert check.multiplier == 1.0
    assert "fat-soluble" in check.warning


def test_optimal_context_unlocks_multiplier(catalog):
    check = check_meal_context(catalog["d3"], "with_fat")
    assert check.is_optimal
    assert check.multiplier == pytest.approx(1.47)
    assert check.warning is None


def test_rule_found_by_rationale_key(catalog):
    check = check_meal_context(catalog["k2"], "fasted")
    assert not check.is_optimal
    assert check.rule_key == "vitamin-k2"


def test_no_rule_is_optimal(catalog):
    assert check_meal_context(catalog["theanine"], "fasted").is_optimal


def test_stack_meal_context_only_returns_warnings(catalog):
    checks = check_stack_meal_context([catalog["d3"], catalog["mag"], catalog["theanine"]], "fasted")
    assert [c.rule_key for c in checks] == ["vitamin-d3", "magnesium"]
