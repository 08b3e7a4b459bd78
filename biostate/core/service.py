"""
Service entry points: fetch from the database, run the pure engine.

Every function takes an optional aware `now` so callers (and tests) can pin
the clock. Safety windows use `timezone` or the configured TZ.
"""

from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Optional

from biostate.config import (
    RATIO_TOLERANCE,
    STATE_WINDOW_HOURS,
    TIMELINE_INTERVAL_MINUTES,
    TIMELINE_WINDOW_HOURS,
    TIMEZONE,
)
from biostate.core import bio_engine, database, safety
from biostate.core.interactions import analyze_stack
from biostate.core.models import (
    ActiveCompound,
    BiologicalState,
    DosageInput,
    ExclusionZone,
    InteractionReport,
    MealContextCheck,
    SafetyCheckResult,
    SafetyHeadroom,
    SafetyLimit,
    StackItem,
    SupplementProfile,
    TimelinePoint,
    TimingWarning,
)


def _resolve_now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now(dt_timezone.utc)


def existing_total_for(user_id: str, now: datetime, timezone: str) -> safety.ExistingTotal:
    """Closure returning the logged elemental total for a limit's category and period."""
    def total(limit: SafetyLimit) -> float:
        start, end = safety.get_date_range(limit.period, now, timezone)
        logs = database.find_logs(user_id, start, end)
        members = {p.id: p for p in database.find_profiles_by_category(limit.category)}
        return safety.elemental_total(logs, members, limit.category, limit.unit)
    return total


# --- State ---

def get_biological_state(
    user_id: str,
    dismissed_keys: frozenset = frozenset(),
    show_add_suggestions: bool = True,
    user_goals: frozenset = frozenset(),
    timezone: Optional[str] = None,
    now: Optional[datetime] = None,
) -> BiologicalState:
    now = _resolve_now(now)
    logs = database.find_logs(user_id, now - timedelta(hours=STATE_WINDOW_HOURS), now)
    synergies = database.find_synergy_interactions()

    ids = {e.supplement_id for e in logs}
    ids.update(s.source_id for s in synergies)
    ids.update(s.target_id for s in synergies)
    profiles = database.find_supplement_profiles(ids)

    return bio_engine.build_biological_state(
        logs, profiles,
        timing_rules=database.find_timing_rules(),
        synergies=synergies,
        ratio_rules=database.find_ratio_rules(),
        now=now,
        dismissed_keys=frozenset(dismissed_keys),
        show_add_suggestions=show_add_suggestions,
        user_goals=frozenset(user_goals),
        timezone=timezone,
    )


def get_active_supplements(user_id: str, now: Optional[datetime] = None) -> list[ActiveCompound]:
    now = _resolve_now(now)
    logs = database.find_logs(user_id, now - timedelta(hours=STATE_WINDOW_HOURS), now)
    profiles = database.find_supplement_profiles({e.supplement_id for e in logs})
    return bio_engine.active_supplements(bio_engine.track_active_compounds(logs, profiles, now))


def get_timeline_data(
    user_id: str,
    interval_minutes: int = TIMELINE_INTERVAL_MINUTES,
    window_hours: float = TIMELINE_WINDOW_HOURS,
    now: Optional[datetime] = None,
) -> list[TimelinePoint]:
    now = _resolve_now(now)
    logs = database.find_logs(user_id, now - timedelta(hours=window_hours), now)
    profiles = database.find_supplement_profiles({e.supplement_id for e in logs})
    return bio_engine.generate_timeline(logs, profiles, now, interval_minutes, window_hours)


# --- Timing ---

def check_timing_safety(user_id: str, supplement_id: str,
                        now: Optional[datetime] = None) -> Optional[ExclusionZone]:
    """Open exclusion zone that currently blocks `supplement_id`, if any."""
    now = _resolve_now(now)
    logs = database.find_logs(user_id, now - timedelta(hours=STATE_WINDOW_HOURS), now)
    rules = database.find_timing_rules()
    ids = {e.supplement_id for e in logs} | {supplement_id}
    profiles = database.find_supplement_profiles(ids)
    zones = bio_engine.calculate_exclusion_zones(logs, profiles, rules, now)
    return bio_engine.timing_safety(zones, supplement_id)


def check_log_timing(user_id: str, supplement_id: str, logged_at: datetime) -> list[TimingWarning]:
    """Separation conflicts a dose at `logged_at` has with the user's other logs."""
    rules = [
        r for r in database.find_timing_rules()
        if supplement_id in (r.source_supplement_id, r.target_supplement_id)
    ]
    if not rules:
        return []
    reach = timedelta(hours=max(r.min_hours_apart for r in rules))
    logs = [
        e for e in database.find_logs(user_id, logged_at - reach, logged_at + reach)
        if e.supplement_id != supplement_id
    ]
    ids = {r.source_supplement_id for r in rules} | {r.target_supplement_id for r in rules}
    profiles = database.find_supplement_profiles(ids)
    return bio_engine.timing_warnings_for(supplement_id, logged_at, rules, logs, profiles)


# --- Safety ---

def check_safety_limit(
    user_id: str,
    supplement: SupplementProfile,
    dosage: float,
    unit: str,
    now: Optional[datetime] = None,
    timezone: Optional[str] = None,
) -> SafetyCheckResult:
    now = _resolve_now(now)
    return safety.check_safety_limit(
        supplement, dosage, unit,
        database.find_safety_limits(),
        existing_total_for(user_id, now, timezone or TIMEZONE),
    )


def check_stack_safety(
    user_id: str,
    items: list[StackItem],
    now: Optional[datetime] = None,
    timezone: Optional[str] = None,
) -> Optional[SafetyCheckResult]:
    now = _resolve_now(now)
    return safety.check_stack_safety(
        items,
        database.find_safety_limits(),
        existing_total_for(user_id, now, timezone or TIMEZONE),
    )


def get_safety_headroom(user_id: str, now: Optional[datetime] = None,
                        timezone: Optional[str] = None) -> list[SafetyHeadroom]:
    now = _resolve_now(now)
    return safety.safety_headroom(
        database.find_safety_limits(),
        existing_total_for(user_id, now, timezone or TIMEZONE),
    )


def check_meal_context(supplements: list[SupplementProfile],
                       meal_context: Optional[str]) -> list[MealContextCheck]:
    return safety.check_stack_meal_context(supplements, meal_context)


# --- Interactions ---

def analyze_interactions(
    user_id: str,
    supplement_ids: list[str],
    dosages: Optional[dict[str, DosageInput]] = None,
    now: Optional[datetime] = None,
) -> InteractionReport:
    now = _resolve_now(now)
    profiles = database.find_supplement_profiles(supplement_ids)
    logs = database.find_logs(user_id, now - timedelta(hours=STATE_WINDOW_HOURS), now)
    return analyze_stack(
        supplement_ids,
        database.find_interactions(supplement_ids),
        profiles,
        dosages=dosages,
        ratio_rules=database.find_ratio_rules(),
        timing_rules=database.find_timing_rules(),
        logs=logs,
        tolerance=RATIO_TOLERANCE,
    )
