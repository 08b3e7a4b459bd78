"""
Bio-Engine: time-aware state of a user's supplement regimen.

Pipeline for one request:
  logs (24h) + profiles
    -> active compounds   concentration% + phase per log entry
    -> exclusion zones    timing rules whose separation window is still open
    -> optimizations      timing fixes, synergy completions (see optimizer.py)
    -> ratio warnings     elemental ratio rules (see ratios.py)
    -> bio-score          100 - zone penalties + synergy bonus, clamped [0, 100]

Phase (per log entry):
  cleared      concentration < 1%
  absorbing    elapsed < Tmax
  peak         elapsed <= Tmax + 30 min
  eliminating  otherwise

Bio-Score:
  100
  - 50 per critical zone, - 25 per medium zone, - 15 per low zone
  + 5 per active synergy (max + 20)
  no active compounds -> 50 (neutral, empty state is not "perfect")

Timeline:
  fixed grid from now - window to now + 4h; repeated doses of the same
  supplement are summed (Heaviside superposition) and capped at 150%.

All functions here are pure: callers fetch data and pass it in.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from biostate.config import (
    BIO_SCORE_BASE,
    BIO_SCORE_EMPTY,
    RATIO_TOLERANCE,
    STATE_WINDOW_HOURS,
    SYNERGY_BONUS,
    SYNERGY_BONUS_CAP,
    TIMELINE_CAP_PERCENT,
    TIMELINE_INTERVAL_MINUTES,
    TIMELINE_PROJECTION_HOURS,
    TIMELINE_WINDOW_HOURS,
    ZONE_PENALTY,
)
from biostate.core.kinetics import concentration, determine_phase, kinetics_for
from biostate.core.models import (
    ActiveCompound,
    BiologicalState,
    ExclusionZone,
    Interaction,
    LogEntry,
    OptimizationOpportunity,
    RatioRule,
    SupplementProfile,
    TimelinePoint,
    TimingRule,
    TimingWarning,
)
from biostate.core.optimizer import generate_optimizations
from biostate.core.ratios import evaluate_ratio_rules, window_dosages

log = logging.getLogger("bio.engine")


def _minutes_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 60.0


def logs_in_window(logs: list[LogEntry], now: datetime, window_hours: float) -> list[LogEntry]:
    """Logs within [now - window, now], most recent first."""
    start = now - timedelta(hours=window_hours)
    recent = [entry for entry in logs if start <= entry.logged_at <= now]
    recent.sort(key=lambda entry: entry.logged_at, reverse=True)
    return recent


# ── Active compound tracker ──────────────────────────────────────────

def track_active_compounds(
    logs: list[LogEntry],
    profiles: dict[str, SupplementProfile],
    now: datetime,
    window_hours: float = STATE_WINDOW_HOURS,
) -> list[ActiveCompound]:
    """
    One ActiveCompound per log entry in the trailing window (no dedup by
    supplement). Logs without a known profile are skipped.
    """
    compounds = []
    for entry in logs_in_window(logs, now, window_hours):
        profile = profiles.get(entry.supplement_id)
        if profile is None:
            log.debug("Log %s references unknown supplement %s", entry.id, entry.supplement_id)
            continue

        kinetics = kinetics_for(profile)
        elapsed = _minutes_between(entry.logged_at, now)
        level = concentration(elapsed, kinetics, entry.dosage)

        compounds.append(ActiveCompound(
            log_id=entry.id,
            supplement_id=profile.id,
            name=profile.name,
            dosage=entry.dosage,
            unit=entry.unit,
            logged_at=entry.logged_at,
            concentration_percent=round(level, 1),
            phase=determine_phase(elapsed, kinetics.peak_minutes, level),
            peak_minutes=kinetics.peak_minutes,
            half_life_minutes=kinetics.half_life_minutes,
            bioavailability_percent=profile.bioavailability_percent,
        ))
    return compounds


def active_supplements(compounds: list[ActiveCompound]) -> list[ActiveCompound]:
    """Compounds currently absorbing or at peak ("active now")."""
    return [c for c in compounds if c.phase in ("peak", "absorbing")]


# ── Timeline ─────────────────────────────────────────────────────────

def generate_timeline(
    logs: list[LogEntry],
    profiles: dict[str, SupplementProfile],
    now: datetime,
    interval_minutes: int = TIMELINE_INTERVAL_MINUTES,
    window_hours: float = TIMELINE_WINDOW_HOURS,
    projection_hours: float = TIMELINE_PROJECTION_HOURS,
) -> list[TimelinePoint]:
    """
    Concentration grid from now - window_hours to now + projection_hours
    (both ends included). Each point maps supplement id -> summed percent.
    """
    if interval_minutes is None or interval_minutes <= 0:
        interval_minutes = TIMELINE_INTERVAL_MINUTES

    window_logs = [e for e in logs_in_window(logs, now, window_hours) if e.supplement_id in profiles]
    if not window_logs:
        return []
    window_logs.reverse()

    kinetics = {sid: kinetics_for(profiles[sid]) for sid in {e.supplement_id for e in window_logs}}
    start = now - timedelta(hours=window_hours)
    total_minutes = int((window_hours + projection_hours) * 60)

    points = []
    for minute in range(0, total_minutes + 1, interval_minutes):
        t = start + timedelta(minutes=minute)
        levels: dict[str, float] = {}
        for entry in window_logs:
            elapsed = _minutes_between(entry.logged_at, t)
            if elapsed < 0:
                continue
            value = concentration(elapsed, kinetics[entry.supplement_id], entry.dosage)
            summed = levels.get(entry.supplement_id, 0.0) + value
            levels[entry.supplement_id] = min(summed, TIMELINE_CAP_PERCENT)
        points.append(TimelinePoint(minutes_from_start=minute, timestamp=t, concentrations=levels))
    return points


# ── Exclusion zones ──────────────────────────────────────────────────

def calculate_exclusion_zones(
    logs: list[LogEntry],
    profiles: dict[str, SupplementProfile],
    rules: list[TimingRule],
    now: datetime,
    window_hours: float = STATE_WINDOW_HOURS,
) -> list[ExclusionZone]:
    """
    Open separation windows: rule source logged recently, window not yet
    elapsed, and the target also logged in the same window. Soonest first.
    """
    recent = logs_in_window(logs, now, window_hours)
    if not recent:
        return []

    latest_log: dict[str, LogEntry] = {}
    for entry in recent:
        latest_log.setdefault(entry.supplement_id, entry)

    zones = []
    for rule in rules:
        source_log = latest_log.get(rule.source_supplement_id)
        if source_log is None:
            continue
        ends_at = source_log.logged_at + timedelta(hours=rule.min_hours_apart)
        if ends_at <= now:
            continue
        if rule.target_supplement_id not in latest_log:
            continue

        source = profiles.get(rule.source_supplement_id)
        target = profiles.get(rule.target_supplement_id)
        if source is None or target is None:
            log.debug("Timing rule %s references unknown supplement", rule.id)
            continue

        zones.append(ExclusionZone(
            rule_id=rule.id,
            source_supplement_id=source.id,
            source_supplement_name=source.name,
            target_supplement_id=target.id,
            target_supplement_name=target.name,
            ends_at=ends_at,
            minutes_remaining=round(_minutes_between(now, ends_at)),
            reason=rule.reason,
            severity=rule.severity,
            research_url=rule.research_url,
        ))

    zones.sort(key=lambda z: z.minutes_remaining)
    return zones


def timing_safety(zones: list[ExclusionZone], supplement_id: str) -> Optional[ExclusionZone]:
    """The open zone that currently blocks taking `supplement_id`, if any."""
    for zone in zones:
        if zone.target_supplement_id == supplement_id:
            return zone
    return None


# ── Timing warnings (pairwise log separation) ────────────────────────

def _timing_warning(rule: TimingRule, source: SupplementProfile, target: SupplementProfile,
                    hours_apart: float) -> TimingWarning:
    return TimingWarning(
        rule_id=rule.id,
        severity=rule.severity,
        min_hours_apart=rule.min_hours_apart,
        actual_hours_apart=int(hours_apart * 10) / 10,
        reason=rule.reason,
        source_supplement_id=source.id,
        source_name=source.name,
        target_supplement_id=target.id,
        target_name=target.name,
    )


def timing_warnings(
    rules: list[TimingRule],
    logs: list[LogEntry],
    profiles: dict[str, SupplementProfile],
) -> list[TimingWarning]:
    """Every source/target log pair closer than the rule's minimum separation."""
    by_supplement: dict[str, list[datetime]] = {}
    for entry in logs:
        by_supplement.setdefault(entry.supplement_id, []).append(entry.logged_at)

    warnings = []
    for rule in rules:
        source = profiles.get(rule.source_supplement_id)
        target = profiles.get(rule.target_supplement_id)
        if source is None or target is None:
            continue
        for source_at in by_supplement.get(source.id, []):
            for target_at in by_supplement.get(target.id, []):
                hours = abs((target_at - source_at).total_seconds()) / 3600.0
                if hours < rule.min_hours_apart:
                    warnings.append(_timing_warning(rule, source, target, hours))
    return warnings


def timing_warnings_for(
    supplement_id: str,
    logged_at: datetime,
    rules: list[TimingRule],
    logs: list[LogEntry],
    profiles: dict[str, SupplementProfile],
) -> list[TimingWarning]:
    """Conflicts a new dose of `supplement_id` at `logged_at` would create."""
    warnings = []
    for rule in rules:
        if supplement_id not in (rule.source_supplement_id, rule.target_supplement_id):
            continue
        source = profiles.get(rule.source_supplement_id)
        target = profiles.get(rule.target_supplement_id)
        if source is None or target is None:
            continue
        other_id = target.id if source.id == supplement_id else source.id
        for entry in logs:
            if entry.supplement_id != other_id:
                continue
            hours = abs((logged_at - entry.logged_at).total_seconds()) / 3600.0
            if hours < rule.min_hours_apart:
                warnings.append(_timing_warning(rule, source, target, hours))
    return warnings


# ── Bio-Score ────────────────────────────────────────────────────────

def calculate_bio_score(
    compounds: list[ActiveCompound],
    zones: list[ExclusionZone],
    optimizations: list[OptimizationOpportunity],
) -> float:
    if not compounds:
        return BIO_SCORE_EMPTY

    score = BIO_SCORE_BASE
    for zone in zones:
        score -= ZONE_PENALTY.get(zone.severity, ZONE_PENALTY["low"])

    active_synergies = sum(1 for o in optimizations if o.is_active_synergy)
    score += min(active_synergies * SYNERGY_BONUS, SYNERGY_BONUS_CAP)

    return max(0.0, min(100.0, score))


# ── Biological state ─────────────────────────────────────────────────

def build_biological_state(
    logs: list[LogEntry],
    profiles: dict[str, SupplementProfile],
    timing_rules: list[TimingRule],
    synergies: list[Interaction],
    ratio_rules: list[RatioRule],
    now: datetime,
    dismissed_keys: frozenset = frozenset(),
    show_add_suggestions: bool = True,
    user_goals: frozenset = frozenset(),
    timezone: Optional[str] = None,
    window_hours: float = STATE_WINDOW_HOURS,
) -> BiologicalState:
    """Assemble the full state for one user at `now` from pre-fetched data."""
    compounds = track_active_compounds(logs, profiles, now, window_hours)
    zones = calculate_exclusion_zones(logs, profiles, timing_rules, now, window_hours)
    optimizations = generate_optimizations(
        compounds, profiles, synergies,
        dismissed_keys=dismissed_keys,
        show_add_suggestions=show_add_suggestions,
        user_goals=user_goals,
        timezone=timezone,
    )
    dosages = window_dosages(logs_in_window(logs, now, window_hours), profiles)
    ratio_warnings, _gaps = evaluate_ratio_rules(dosages, profiles, ratio_rules, RATIO_TOLERANCE)

    return BiologicalState(
        active_compounds=compounds,
        exclusion_zones=zones,
        optimizations=optimizations,
        bio_score=calculate_bio_score(compounds, zones, optimizations),
        calculated_at=now,
        ratio_warnings=ratio_warnings,
    )
