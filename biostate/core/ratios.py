"""
Elemental ratio rules (e.g. Zn:Cu 8-15:1).

  ratio = elemental(source) / elemental(target)      both in mg

A rule that cannot be evaluated produces a RatioEvaluationGap instead of a
silent skip, so callers can tell "balanced" apart from "unknown".
"""

import logging
from dataclasses import replace
from typing import Optional

from biostate.core.models import (
    DosageInput,
    LogEntry,
    RatioEvaluationGap,
    RatioRule,
    RatioWarning,
    SupplementProfile,
)
from biostate.core.units import UnitConversionError, normalize_dosage, to_milligrams

log = logging.getLogger("bio.engine")


def window_dosages(logs: list[LogEntry], profiles: dict[str, SupplementProfile]) -> dict[str, DosageInput]:
    """
    Total dose per supplement across `logs`. Same-unit doses are summed in
    that unit; mixed mass units are summed in mg; anything else is dropped.
    """
    grouped: dict[str, list[LogEntry]] = {}
    for entry in logs:
        grouped.setdefault(entry.supplement_id, []).append(entry)

    dosages = {}
    for supplement_id, entries in grouped.items():
        profile = profiles.get(supplement_id)
        units = {e.unit for e in entries}
        if len(units) == 1:
            unit = entries[0].unit
            amount = sum(e.dosage for e in entries)
        else:
            try:
                amount = sum(to_milligrams(e.dosage, e.unit) for e in entries)
            except UnitConversionError:
                log.debug("Mixed units %s for %s, skipping ratio input", sorted(units), supplement_id)
                continue
            unit = "mg"

        dosages[supplement_id] = DosageInput(
            supplement_id=supplement_id,
            amount=amount,
            unit=unit,
            elemental_weight_percent=profile.elemental_weight_percent if profile else None,
            vitamin_type=profile.vitamin_type if profile else None,
        )
    return dosages


def calculate_ratio(source_mg: float, target_mg: float) -> float:
    if target_mg == 0:
        raise UnitConversionError("cannot calculate ratio with zero target dosage")
    return source_mg / target_mg


def check_ratio_compliance(ratio: float, min_ratio: Optional[float],
                           max_ratio: Optional[float]) -> tuple[bool, float]:
    """(compliant, deviation): negative below min, positive above max."""
    if min_ratio is not None and ratio < min_ratio:
        return False, ratio - min_ratio
    if max_ratio is not None and ratio > max_ratio:
        return False, ratio - max_ratio
    return True, 0.0


def apply_ratio_tolerance(rule: RatioRule, tolerance: float) -> RatioRule:
    """Widen the accepted band: min * (1 - t), max * (1 + t)."""
    if not tolerance or tolerance <= 0:
        return rule
    return replace(
        rule,
        min_ratio=rule.min_ratio * (1 - tolerance) if rule.min_ratio is not None else None,
        max_ratio=rule.max_ratio * (1 + tolerance) if rule.max_ratio is not None else None,
    )


def _elemental_mg(dosage: DosageInput, profile: SupplementProfile) -> float:
    pct = dosage.elemental_weight_percent
    if pct is None:
        pct = profile.elemental_weight_percent
    return normalize_dosage(dosage.amount, dosage.unit, pct, dosage.vitamin_type or profile.vitamin_type)


def _default_message(source: SupplementProfile, target: SupplementProfile, ratio: float,
                     rule: RatioRule) -> str:
    if rule.min_ratio is not None and rule.max_ratio is not None:
        band = f"{rule.min_ratio:g}-{rule.max_ratio:g}"
    elif rule.min_ratio is not None:
        band = f">= {rule.min_ratio:g}"
    else:
        band = f"<= {rule.max_ratio:g}"
    return f"{source.name}:{target.name} ratio is {ratio:.1f}:1 (recommended {band}:1)."


def evaluate_ratio_rules(
    dosages: dict[str, DosageInput],
    profiles: dict[str, SupplementProfile],
    rules: list[RatioRule],
    tolerance: float = 0.0,
) -> tuple[list[RatioWarning], list[RatioEvaluationGap]]:
    """
    Check every rule touching a dosed supplement. Rules where neither side
    is dosed are not applicable and produce nothing.
    """
    warnings: list[RatioWarning] = []
    gaps: list[RatioEvaluationGap] = []

    def gap(rule: RatioRule, reason: str):
        log.debug("Ratio rule %s not evaluated: %s", rule.id, reason)
        gaps.append(RatioEvaluationGap(
            rule_id=rule.id,
            source_supplement_id=rule.source_supplement_id,
            target_supplement_id=rule.target_supplement_id,
            reason=reason,
        ))

    for rule in rules:
        source_dose = dosages.get(rule.source_supplement_id)
        target_dose = dosages.get(rule.target_supplement_id)
        if source_dose is None and target_dose is None:
            continue
        if source_dose is None or target_dose is None:
            gap(rule, "missing_dosage")
            continue

        source = profiles.get(rule.source_supplement_id)
        target = profiles.get(rule.target_supplement_id)
        if source is None or target is None:
            gap(rule, "missing_supplement_data")
            continue

        try:
            ratio = calculate_ratio(_elemental_mg(source_dose, source), _elemental_mg(target_dose, target))
        except UnitConversionError:
            gap(rule, "normalization_failed")
            continue

        effective = apply_ratio_tolerance(rule, tolerance)
        compliant, _deviation = check_ratio_compliance(ratio, effective.min_ratio, effective.max_ratio)
        if compliant:
            continue

        warnings.append(RatioWarning(
            rule_id=rule.id,
            severity=rule.severity,
            current_ratio=round(ratio, 1),
            source_supplement_id=source.id,
            source_name=source.name,
            target_supplement_id=target.id,
            target_name=target.name,
            warning_message=rule.warning_message or _default_message(source, target, ratio, rule),
            optimal_ratio=rule.optimal_ratio,
            min_ratio=rule.min_ratio,
            max_ratio=rule.max_ratio,
        ))

    return warnings, gaps
