"""
Stack interaction analysis with a traffic-light status.

  red     any critical warning (interaction or ratio)
  yellow  any medium warning
  green   otherwise

Ratio warnings only ever escalate the status. Synergies are reported
separately and never affect the colour.
"""

import logging
from typing import Optional

from biostate.core.bio_engine import timing_warnings
from biostate.core.models import (
    DosageInput,
    Interaction,
    InteractionReport,
    LogEntry,
    RatioRule,
    SupplementProfile,
    TimingRule,
)
from biostate.core.ratios import evaluate_ratio_rules

log = logging.getLogger("bio.engine")

_STATUS_RANK = {"green": 0, "yellow": 1, "red": 2}


def status_for(severities) -> str:
    severities = set(severities)
    if "critical" in severities:
        return "red"
    if "medium" in severities:
        return "yellow"
    return "green"


def escalate(current: str, candidate: str) -> str:
    return candidate if _STATUS_RANK[candidate] > _STATUS_RANK[current] else current


def interactions_within(supplement_ids, interactions: list[Interaction]) -> list[Interaction]:
    """Interactions whose source and target are both in the set."""
    ids = set(supplement_ids)
    return [i for i in interactions if i.source_id in ids and i.target_id in ids]


def analyze_stack(
    supplement_ids: list[str],
    interactions: list[Interaction],
    profiles: dict[str, SupplementProfile],
    dosages: Optional[dict[str, DosageInput]] = None,
    ratio_rules: Optional[list[RatioRule]] = None,
    timing_rules: Optional[list[TimingRule]] = None,
    logs: Optional[list[LogEntry]] = None,
    tolerance: float = 0.0,
) -> InteractionReport:
    ids = list(dict.fromkeys(supplement_ids))
    relevant = interactions_within(ids, interactions)
    warnings = [i for i in relevant if i.type != "synergy"]
    synergies = [i for i in relevant if i.type == "synergy"]

    status = status_for(w.severity for w in warnings)

    ratio_warnings, ratio_gaps = [], []
    if dosages and ratio_rules:
        in_stack = set(ids)
        applicable = [
            r for r in ratio_rules
            if r.source_supplement_id in in_stack and r.target_supplement_id in in_stack
        ]
        ratio_warnings, ratio_gaps = evaluate_ratio_rules(dosages, profiles, applicable, tolerance)
        status = escalate(status, status_for(w.severity for w in ratio_warnings))

    found_timing = []
    if logs and timing_rules:
        in_stack = set(ids)
        stack_logs = [entry for entry in logs if entry.supplement_id in in_stack]
        found_timing = timing_warnings(timing_rules, stack_logs, profiles)

    log.debug("Stack of %d: %s (%d warnings, %d synergies)", len(ids), status, len(warnings), len(synergies))
    return InteractionReport(
        status=status,
        warnings=warnings,
        synergies=synergies,
        timing_warnings=found_timing,
        ratio_warnings=ratio_warnings,
        ratio_gaps=ratio_gaps,
    )
