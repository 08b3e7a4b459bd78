"""
Domain records shared by the engine, the database layer and the API.

Reference data (profiles, rules, limits) is immutable. Everything below the
"Derived" banner is computed per request and never persisted.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

UNITS = ("mg", "mcg", "g", "IU", "ml")
MEAL_CONTEXTS = ("fasted", "with_meal", "with_fat", "post_meal")


# ── Reference data ───────────────────────────────────────────────────

@dataclass(frozen=True)
class SupplementProfile:
    id: str
    name: str
    peak_minutes: Optional[float] = None
    half_life_minutes: Optional[float] = None
    kinetics_type: str = "first_order"
    vmax: Optional[float] = None
    km: Optional[float] = None
    rda_amount: Optional[float] = None
    elemental_weight_percent: Optional[float] = None
    bioavailability_percent: Optional[float] = None
    safety_category: Optional[str] = None
    optimal_time_of_day: Optional[str] = None
    common_goals: frozenset = frozenset()
    is_research_chemical: bool = False
    timing_rationale_key: Optional[str] = None
    form: Optional[str] = None
    vitamin_type: Optional[str] = None


@dataclass(frozen=True)
class LogEntry:
    id: int
    supplement_id: str
    dosage: float
    unit: str
    logged_at: datetime
    user_id: Optional[str] = None


@dataclass(frozen=True)
class TimingRule:
    id: str
    source_supplement_id: str
    target_supplement_id: str
    min_hours_apart: float
    reason: str
    severity: str = "medium"
    research_url: Optional[str] = None


@dataclass(frozen=True)
class RatioRule:
    id: str
    source_supplement_id: str
    target_supplement_id: str
    min_ratio: Optional[float] = None
    max_ratio: Optional[float] = None
    optimal_ratio: Optional[float] = None
    severity: str = "medium"
    warning_message: str = ""


@dataclass(frozen=True)
class Interaction:
    id: str
    source_id: str
    target_id: str
    type: str
    severity: str = "low"
    mechanism: Optional[str] = None
    suggestion: Optional[str] = None


@dataclass(frozen=True)
class SafetyLimit:
    category: str
    limit: float
    unit: str
    period: str = "daily"
    is_hard_limit: bool = False
    required_unit: Optional[str] = None
    notes: str = ""
    source: str = ""


@dataclass(frozen=True)
class StackItem:
    """One pending dose in a multi-item safety check."""
    supplement: SupplementProfile
    dosage: float
    unit: str


@dataclass(frozen=True)
class DosageInput:
    """A dose used for ratio math (amount in its own unit)."""
    supplement_id: str
    amount: float
    unit: str
    elemental_weight_percent: Optional[float] = None
    vitamin_type: Optional[str] = None


# ── Derived ──────────────────────────────────────────────────────────

@dataclass
class ActiveCompound:
    log_id: int
    supplement_id: str
    name: str
    dosage: float
    unit: str
    logged_at: datetime
    concentration_percent: float
    phase: str
    peak_minutes: float
    half_life_minutes: float
    bioavailability_percent: Optional[float] = None


@dataclass
class ExclusionZone:
    rule_id: str
    source_supplement_id: str
    source_supplement_name: str
    target_supplement_id: str
    target_supplement_name: str
    ends_at: datetime
    minutes_remaining: int
    reason: str
    severity: str
    research_url: Optional[str] = None


@dataclass
class OptimizationOpportunity:
    type: str                       # "timing" | "synergy"
    supplement_ids: tuple
    title: str
    description: str
    priority: int
    suggestion_key: Optional[str] = None
    is_active_synergy: bool = False
    safety_warning: Optional[str] = None
    details: Optional[str] = None


@dataclass
class TimelinePoint:
    minutes_from_start: int
    timestamp: datetime
    concentrations: dict = field(default_factory=dict)


@dataclass
class SafetyCheckResult:
    status: str                     # safe | warning | blocked | experimental
    is_safe: bool
    is_hard_limit: bool
    category: Optional[str]
    current_total: float
    limit: float
    unit: str
    percent_of_limit: int
    message: Optional[str] = None
    source: Optional[str] = None


@dataclass
class SafetyHeadroom:
    category: str
    label: str
    current: float
    limit: float
    unit: str
    percent_used: int
    is_hard_limit: bool


@dataclass
class MealContextCheck:
    is_optimal: bool
    multiplier: float = 1.0
    warning: Optional[str] = None
    mechanism: Optional[str] = None
    research_url: Optional[str] = None
    rule_key: Optional[str] = None


@dataclass
class RatioWarning:
    rule_id: str
    severity: str
    current_ratio: float
    source_supplement_id: str
    source_name: str
    target_supplement_id: str
    target_name: str
    warning_message: str = ""
    optimal_ratio: Optional[float] = None
    min_ratio: Optional[float] = None
    max_ratio: Optional[float] = None


@dataclass
class RatioEvaluationGap:
    rule_id: str
    source_supplement_id: str
    target_supplement_id: str
    reason: str                     # missing_dosage | missing_supplement_data | normalization_failed


@dataclass
class TimingWarning:
    rule_id: str
    severity: str
    min_hours_apart: float
    actual_hours_apart: float
    reason: str
    source_supplement_id: str
    source_name: str
    target_supplement_id: str
    target_name: str


@dataclass
class InteractionReport:
    status: str                     # green | yellow | red
    warnings: list = field(default_factory=list)
    synergies: list = field(default_factory=list)
    timing_warnings: list = field(default_factory=list)
    ratio_warnings: list = field(default_factory=list)
    ratio_gaps: list = field(default_factory=list)


@dataclass
class BiologicalState:
    active_compounds: list
    exclusion_zones: list
    optimizations: list
    bio_score: float
    calculated_at: datetime
    ratio_warnings: list = field(default_factory=list)
