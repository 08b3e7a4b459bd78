"""
Optimization engine: timing fixes and synergy suggestions.

Built as a pipeline:
  1. generate candidates per rule family (timing, synergy)
  2. filter: dismissed keys, add-suggestion flag, goal intersection
  3. collapse duplicate pairs
  4. sort by priority, highest first

Priorities:
  4  add-suggestion whose candidate carries a hard safety limit
  3  timing fix
  2  add-suggestion (synergy completion)
  1  active synergy acknowledgement (not dismissible)
"""

import logging
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from biostate.core.models import (
    ActiveCompound,
    Interaction,
    OptimizationOpportunity,
    SafetyLimit,
    SupplementProfile,
)
from biostate.core.reference_data import (
    HARD_LIMIT_CAUTIONS,
    SAFETY_LIMITS,
    TIME_LABELS,
    rationale_for,
)

log = logging.getLogger("bio.engine")

PRIORITY_HARD_LIMIT = 4
PRIORITY_TIMING = 3
PRIORITY_ADD = 2
PRIORITY_ACTIVE = 1

FLEXIBLE_TIMES = ("any", "with_meals")

# Accepted local hours per optimal time: [start, end), wrapping past midnight.
# Each window extends its bucket into the neighbouring one.
ACCEPTABLE_HOURS = {
    "morning": (5, 14),
    "afternoon": (10, 19),
    "evening": (15, 23),
    "bedtime": (19, 5),
}


def time_bucket(hour: int) -> str:
    """morning 5-12, afternoon 12-17, evening 17-21, bedtime 21-5."""
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 21:
        return "evening"
    return "bedtime"


def is_acceptable_hour(optimal_time: str, hour: int) -> bool:
    start, end = ACCEPTABLE_HOURS[optimal_time]
    if start < end:
        return start <= hour < end
    return hour >= start or hour < end


def synergy_key(first_id: str, second_id: str) -> str:
    """Dismissal key for a synergy pair, independent of direction."""
    low, high = sorted((first_id, second_id))
    return f"synergy:{low}:{high}"


def hard_limit_caution(profile: SupplementProfile, limits: dict[str, SafetyLimit]) -> Optional[str]:
    category = profile.safety_category
    if not category:
        return None
    limit = limits.get(category)
    if limit is None or not limit.is_hard_limit:
        return None
    return HARD_LIMIT_CAUTIONS.get(category, f"Caution: {profile.name} has a hard safety limit.")


def _is_fixed_time(value: Optional[str]) -> bool:
    return bool(value) and value not in FLEXIBLE_TIMES and value in TIME_LABELS


# ── Timing candidates ────────────────────────────────────────────────

def _timing_candidates(compounds: list[ActiveCompound], profiles: dict[str, SupplementProfile],
                       timezone: Optional[str]) -> list[tuple]:
    if not timezone:
        return []
    try:
        tz = ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        log.warning("Unknown timezone %r, skipping timing suggestions", timezone)
        return []

    candidates = []
    suggested = set()
    for compound in compounds:
        if compound.supplement_id in suggested:
            continue
        profile = profiles.get(compound.supplement_id)
        if profile is None or profile.optimal_time_of_day not in ACCEPTABLE_HOURS:
            continue

        optimal = profile.optimal_time_of_day
        hour = compound.logged_at.astimezone(tz).hour
        if is_acceptable_hour(optimal, hour):
            continue

        suggested.add(profile.id)
        taken = TIME_LABELS[time_bucket(hour)]
        candidates.append((OptimizationOpportunity(
            type="timing",
            supplement_ids=(profile.id,),
            title=f"Take {profile.name} {TIME_LABELS[optimal]}",
            description=f"{profile.name} was taken {taken}; it works best {TIME_LABELS[optimal]}.",
            priority=PRIORITY_TIMING,
            suggestion_key=f"timing:{profile.id}",
            details=rationale_for(profile),
        ), None))
    return candidates


# ── Synergy candidates ───────────────────────────────────────────────

def _pairing_text(interaction: Interaction, present: SupplementProfile,
                  missing: SupplementProfile) -> tuple[str, Optional[str]]:
    """Description (and optional detail) for adding `missing` next to `present`."""
    present_time = present.optimal_time_of_day
    missing_time = missing.optimal_time_of_day

    if _is_fixed_time(present_time) and _is_fixed_time(missing_time) and present_time != missing_time:
        description = (
            f"Take {missing.name} {TIME_LABELS[missing_time]} and keep "
            f"{present.name} {TIME_LABELS[present_time]}; the synergy holds across the day."
        )
        parts = [rationale_for(present), rationale_for(missing), interaction.mechanism]
        details = " ".join(p for p in parts if p) or None
        return description, details

    description = interaction.suggestion or f"{present.name} and {missing.name} have synergistic effects."
    return description, None


def _synergy_candidates(compounds: list[ActiveCompound], profiles: dict[str, SupplementProfile],
                        synergies: list[Interaction], limits: dict[str, SafetyLimit]) -> list[tuple]:
    active_ids = {c.supplement_id for c in compounds}
    candidates = []

    for interaction in synergies:
        if interaction.type != "synergy":
            continue
        source = profiles.get(interaction.source_id)
        target = profiles.get(interaction.target_id)
        if source is None or target is None:
            log.debug("Synergy %s references unknown supplement", interaction.id)
            continue

        has_source = source.id in active_ids
        has_target = target.id in active_ids

        if has_source and has_target:
            candidates.append((OptimizationOpportunity(
                type="synergy",
                supplement_ids=(source.id, target.id),
                title=f"Active synergy: {source.name} + {target.name}",
                description=interaction.suggestion or "You're getting the benefit of this synergy!",
                priority=PRIORITY_ACTIVE,
                is_active_synergy=True,
            ), None))
        elif has_source or has_target:
            present, missing = (source, target) if has_source else (target, source)
            caution = hard_limit_caution(missing, limits)
            description, details = _pairing_text(interaction, present, missing)
            candidates.append((OptimizationOpportunity(
                type="synergy",
                supplement_ids=(source.id, target.id),
                title=f"Enhance {present.name} with {missing.name}",
                description=description,
                priority=PRIORITY_HARD_LIMIT if caution else PRIORITY_ADD,
                suggestion_key=synergy_key(source.id, target.id),
                safety_warning=caution,
                details=details,
            ), missing))
    return candidates


# ── Filters ──────────────────────────────────────────────────────────

def _keep(opportunity: OptimizationOpportunity, candidate: Optional[SupplementProfile],
          dismissed_keys: frozenset, show_add_suggestions: bool, user_goals: frozenset) -> bool:
    if opportunity.suggestion_key and opportunity.suggestion_key in dismissed_keys:
        return False
    if candidate is None:
        return True
    if not show_add_suggestions:
        return False
    if user_goals and not (set(candidate.common_goals) & set(user_goals)):
        return False
    return True


def _dedupe(opportunities: list[OptimizationOpportunity]) -> list[OptimizationOpportunity]:
    seen = set()
    unique = []
    for opportunity in opportunities:
        ident = opportunity.suggestion_key or (opportunity.type, tuple(sorted(opportunity.supplement_ids)))
        if ident in seen:
            continue
        seen.add(ident)
        unique.append(opportunity)
    return unique


def generate_optimizations(
    compounds: list[ActiveCompound],
    profiles: dict[str, SupplementProfile],
    synergies: list[Interaction],
    dismissed_keys: frozenset = frozenset(),
    show_add_suggestions: bool = True,
    user_goals: frozenset = frozenset(),
    timezone: Optional[str] = None,
    limits: Optional[dict[str, SafetyLimit]] = None,
) -> list[OptimizationOpportunity]:
    if not compounds:
        return []
    limits = SAFETY_LIMITS if limits is None else limits

    candidates = (
        _timing_candidates(compounds, profiles, timezone)
        + _synergy_candidates(compounds, profiles, synergies, limits)
    )
    kept = [
        opportunity for opportunity, candidate in candidates
        if _keep(opportunity, candidate, dismissed_keys, show_add_suggestions, user_goals)
    ]
    return sorted(_dedupe(kept), key=lambda o: o.priority, reverse=True)
