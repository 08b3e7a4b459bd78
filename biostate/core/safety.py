"""
Safety limit engine: elemental exposure against category ceilings.

Aggregation:
  daily   = local midnight today .. end of today
  weekly  = local midnight six days ago .. end of today (7 calendar days)

  total(category) = sum over in-window logs of category members of
                    convert(dosage * elemental% / 100, log unit -> limit unit)

Status:
  research chemical            -> experimental (limits bypassed)
  no / unknown category        -> safe
  required_unit mismatch       -> blocked (history is never consulted)
  existing + new > limit       -> blocked (hard) / warning (soft)
  otherwise                    -> safe

`existing_total` callables are supplied by the caller (see service.py) so
this module stays free of I/O.
"""

import logging
from datetime import datetime, time, timedelta
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from biostate.core.models import (
    LogEntry,
    MealContextCheck,
    SafetyCheckResult,
    SafetyHeadroom,
    SafetyLimit,
    StackItem,
    SupplementProfile,
)
from biostate.core.reference_data import (
    HEADROOM_CATEGORIES,
    bioavailability_rule_for,
    category_label,
)
from biostate.core.units import calculate_elemental_dosage, convert_dosage

log = logging.getLogger("bio.safety")

ExistingTotal = Callable[[SafetyLimit], float]


# ── Windows & totals ─────────────────────────────────────────────────

def get_date_range(period: str, now: datetime, timezone: str) -> tuple[datetime, datetime]:
    """Start/end instants of the daily or weekly window in `timezone`."""
    local_now = now.astimezone(ZoneInfo(timezone))
    today = local_now.date()
    tz = local_now.tzinfo
    end = datetime.combine(today, time.max, tzinfo=tz)
    first_day = today - timedelta(days=6) if period == "weekly" else today
    start = datetime.combine(first_day, time.min, tzinfo=tz)
    return start, end


def dose_in_limit_unit(dosage: float, unit: str, elemental_weight_percent: Optional[float],
                       limit_unit: str) -> Optional[float]:
    """Elemental dose in the limit's unit; None when units cannot be compared."""
    elemental = calculate_elemental_dosage(dosage, elemental_weight_percent)
    return convert_dosage(elemental, unit, limit_unit)


def elemental_total(logs: list[LogEntry], profiles: dict[str, SupplementProfile],
                    category: str, target_unit: str) -> float:
    """Sum of elemental dosage for `category` across `logs`, in `target_unit`."""
    total = 0.0
    for entry in logs:
        profile = profiles.get(entry.supplement_id)
        if profile is None or profile.safety_category != category:
            continue
        amount = dose_in_limit_unit(entry.dosage, entry.unit,
                                    profile.elemental_weight_percent, target_unit)
        if amount is None:
            log.debug("Skipping log %s: %s not comparable to %s", entry.id, entry.unit, target_unit)
            continue
        total += amount
    return total


# ── Result builders ──────────────────────────────────────────────────

def _safe(unit: str, category: Optional[str] = None, limit: Optional[SafetyLimit] = None,
          current_total: float = 0.0) -> SafetyCheckResult:
    return SafetyCheckResult(
        status="safe",
        is_safe=True,
        is_hard_limit=False,
        category=category,
        current_total=current_total,
        limit=limit.limit if limit else 0,
        unit=limit.unit if limit else unit,
        percent_of_limit=0,
        source=limit.source if limit else None,
    )


def _required_unit_block(name: str, limit: SafetyLimit, detailed: bool = True) -> SafetyCheckResult:
    message = f"{name} must be logged in {limit.required_unit}."
    if detailed:
        message += f" Please enter the dosage in {limit.required_unit}."
    return SafetyCheckResult(
        status="blocked",
        is_safe=False,
        is_hard_limit=True,
        category=limit.category,
        current_total=0.0,
        limit=limit.limit,
        unit=limit.unit,
        percent_of_limit=0,
        message=message,
        source=limit.source,
    )


def _over_limit_message(subject: str, percent: float, limit: SafetyLimit, with_notes: bool) -> str:
    strength = "safe" if limit.is_hard_limit else "recommended"
    message = (
        f"This {subject} would put you at {round(percent)}% of the {strength} "
        f"{limit.period} limit for {category_label(limit.category)} "
        f"({limit.limit:g}{limit.unit})."
    )
    if with_notes and limit.notes:
        message += f" {limit.notes}"
    return message


# ── Single-item check ────────────────────────────────────────────────

def check_safety_limit(
    supplement: SupplementProfile,
    dosage: float,
    unit: str,
    limits: dict[str, SafetyLimit],
    existing_total: ExistingTotal,
) -> SafetyCheckResult:
    """
    Would logging `dosage` `unit` of `supplement` cross its category ceiling?
    `existing_total(limit)` returns the already-logged elemental total for the
    limit's category and period; it is only called once the dose is comparable.
    """
    if supplement.is_research_chemical:
        return SafetyCheckResult(
            status="experimental",
            is_safe=True,
            is_hard_limit=False,
            category=None,
            current_total=dosage,
            limit=0,
            unit=unit,
            percent_of_limit=0,
            message="Research compound - no established safety limits",
        )

    category = supplement.safety_category
    if not category:
        return _safe(unit)

    limit = limits.get(category)
    if limit is None:
        log.debug("No safety limit configured for category %s", category)
        return _safe(unit, category)

    if limit.required_unit and unit != limit.required_unit:
        return _required_unit_block(supplement.name, limit)

    new_dose = dose_in_limit_unit(max(0.0, dosage), unit, supplement.elemental_weight_percent, limit.unit)
    if new_dose is None:
        return _safe(unit, category, limit)

    total = existing_total(limit) + new_dose
    percent = total / limit.limit * 100 if limit.limit > 0 else 0.0
    if total <= limit.limit:
        return SafetyCheckResult(
            status="safe",
            is_safe=True,
            is_hard_limit=limit.is_hard_limit,
            category=category,
            current_total=total,
            limit=limit.limit,
            unit=limit.unit,
            percent_of_limit=round(percent),
            source=limit.source,
        )

    return SafetyCheckResult(
        status="blocked" if limit.is_hard_limit else "warning",
        is_safe=False,
        is_hard_limit=limit.is_hard_limit,
        category=category,
        current_total=total,
        limit=limit.limit,
        unit=limit.unit,
        percent_of_limit=round(percent),
        message=_over_limit_message("dose", percent, limit, with_notes=True),
        source=limit.source,
    )


# ── Stack check ──────────────────────────────────────────────────────

def check_stack_safety(
    items: list[StackItem],
    limits: dict[str, SafetyLimit],
    existing_total: ExistingTotal,
) -> Optional[SafetyCheckResult]:
    """
    Check several pending doses together. Returns the single worst
    violation (hard before soft, then highest percent) or None.
    """
    stack_totals: dict[str, float] = {}

    for item in items:
        supplement = item.supplement
        if supplement.is_research_chemical or not supplement.safety_category:
            continue
        limit = limits.get(supplement.safety_category)
        if limit is None:
            continue
        if limit.required_unit and item.unit != limit.required_unit:
            return _required_unit_block(supplement.name, limit, detailed=False)

        dose = dose_in_limit_unit(max(0.0, item.dosage), item.unit,
                                  supplement.elemental_weight_percent, limit.unit)
        if dose is not None:
            stack_totals[limit.category] = stack_totals.get(limit.category, 0.0) + dose

    worst: Optional[SafetyCheckResult] = None
    worst_percent = 0.0
    for category, stack_total in stack_totals.items():
        limit = limits[category]
        total = existing_total(limit) + stack_total
        if total <= limit.limit:
            continue
        percent = total / limit.limit * 100 if limit.limit > 0 else 0.0
        candidate = SafetyCheckResult(
            status="blocked" if limit.is_hard_limit else "warning",
            is_safe=False,
            is_hard_limit=limit.is_hard_limit,
            category=category,
            current_total=total,
            limit=limit.limit,
            unit=limit.unit,
            percent_of_limit=round(percent),
            message=_over_limit_message("stack", percent, limit, with_notes=False),
            source=limit.source,
        )
        if (
            worst is None
            or (candidate.is_hard_limit and not worst.is_hard_limit)
            or (candidate.is_hard_limit == worst.is_hard_limit and percent > worst_percent)
        ):
            worst, worst_percent = candidate, percent

    return worst


# ── Headroom ─────────────────────────────────────────────────────────

def safety_headroom(
    limits: dict[str, SafetyLimit],
    existing_total: ExistingTotal,
    categories: tuple = HEADROOM_CATEGORIES,
) -> list[SafetyHeadroom]:
    """Usage per tracked category (only categories with intake), highest first."""
    rows = []
    for category in categories:
        limit = limits.get(category)
        if limit is None:
            continue
        current = existing_total(limit)
        if current == 0:
            continue
        rows.append(SafetyHeadroom(
            category=category,
            label=category_label(category),
            current=round(current, 1),
            limit=limit.limit,
            unit=limit.unit,
            percent_used=round(current / limit.limit * 100) if limit.limit > 0 else 0,
            is_hard_limit=limit.is_hard_limit,
        ))
    rows.sort(key=lambda r: r.percent_used, reverse=True)
    return rows


# ── Meal context ─────────────────────────────────────────────────────

def check_meal_context(supplement: SupplementProfile, meal_context: Optional[str]) -> MealContextCheck:
    """Advisory bioavailability check for the meal context of a dose."""
    key, rule = bioavailability_rule_for(supplement)
    if rule is None:
        return MealContextCheck(is_optimal=True)

    if not meal_context:
        optimal = not rule["required"]
        multiplier = 1.0
    else:
        optimal = meal_context in rule["optimal"]
        multiplier = rule["multiplier"] if optimal else 1.0

    return MealContextCheck(
        is_optimal=optimal,
        multiplier=multiplier,
        warning=None if optimal else rule["warning"],
        mechanism=rule["mechanism"],
        research_url=rule.get("research_url"),
        rule_key=key,
    )


def check_stack_meal_context(supplements: list[SupplementProfile],
                             meal_context: Optional[str]) -> list[MealContextCheck]:
    """Only the suboptimal checks that carry a warning."""
    checks = [check_meal_context(s, meal_context) for s in supplements]
    return [c for c in checks if not c.is_optimal and c.warning]
