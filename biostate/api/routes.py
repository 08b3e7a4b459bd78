"""
FastAPI API routes for the Biological State Engine.
"""

import logging
from dataclasses import asdict
from datetime import datetime, timezone as dt_timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel, Field, field_validator

from biostate.config import API_KEY, DEFAULT_USER_ID, TIMEZONE
from biostate.core import service
from biostate.core.database import (
    delete_log,
    find_supplement,
    find_supplement_profiles,
    insert_log,
)
from biostate.core.models import MEAL_CONTEXTS, UNITS, DosageInput, StackItem, SupplementProfile

log = logging.getLogger("bio.api")

router = APIRouter(prefix="/api")

UNIT_PATTERN = f"^({'|'.join(UNITS)})$"
MEAL_CONTEXT_PATTERN = f"^({'|'.join(MEAL_CONTEXTS)})$"


# --- Auth ---

def verify_api_key(x_api_key: str = Header(default="")):
    if API_KEY and x_api_key != API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")


def current_user(x_user_id: str = Header(default="")) -> str:
    return x_user_id or DEFAULT_USER_ID


# --- Validation helpers ---

def _validate_timezone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone: {value}")
    return value


def _timezone_query(timezone: Optional[str] = None) -> Optional[str]:
    try:
        return _validate_timezone(timezone)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


def _require_supplement(supplement_id: str) -> SupplementProfile:
    profile = find_supplement(supplement_id)
    if profile is None:
        raise HTTPException(status_code=404, detail=f"Supplement not found: {supplement_id}")
    return profile


def _require_supplements(ids: list[str]) -> dict[str, SupplementProfile]:
    profiles = find_supplement_profiles(ids)
    missing = [i for i in ids if i not in profiles]
    if missing:
        raise HTTPException(status_code=404, detail=f"Supplement not found: {', '.join(missing)}")
    return profiles


# --- Models ---

class LogRequest(BaseModel):
    supplement_id: str
    dosage: float = Field(..., gt=0)
    unit: str = Field(..., pattern=UNIT_PATTERN)
    logged_at: Optional[datetime] = None
    timezone: Optional[str] = None
    force: bool = False

    @field_validator("logged_at")
    @classmethod
    def _aware(cls, v):
        if v is not None and v.utcoffset() is None:
            raise ValueError("logged_at must include a timezone offset")
        return v

    @field_validator("timezone")
    @classmethod
    def _tz(cls, v):
        return _validate_timezone(v)


class SafetyCheckRequest(BaseModel):
    supplement_id: str
    dosage: float = Field(..., gt=0)
    unit: str = Field(..., pattern=UNIT_PATTERN)
    timezone: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def _tz(cls, v):
        return _validate_timezone(v)


class StackItemRequest(BaseModel):
    supplement_id: str
    dosage: float = Field(..., gt=0)
    unit: str = Field(..., pattern=UNIT_PATTERN)


class StackRequest(BaseModel):
    items: list[StackItemRequest] = Field(..., min_length=1)
    timezone: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def _tz(cls, v):
        return _validate_timezone(v)


class MealContextRequest(BaseModel):
    supplement_ids: list[str] = Field(..., min_length=1)
    meal_context: Optional[str] = Field(None, pattern=MEAL_CONTEXT_PATTERN)


class DosageRequest(BaseModel):
    supplement_id: str
    amount: float = Field(..., gt=0)
    unit: str = Field(..., pattern=UNIT_PATTERN)
    elemental_weight_percent: Optional[float] = Field(None, gt=0, le=100)
    vitamin_type: Optional[str] = None


class AnalyzeRequest(BaseModel):
    supplement_ids: list[str] = Field(..., min_length=1)
    dosages: list[DosageRequest] = []


# --- Endpoints ---

@router.get("/status")
def status():
    """Health check endpoint."""
    return {
        "service": "biostate",
        "status": "ok",
        "version": "1.0.0",
        "timestamp": datetime.now(dt_timezone.utc).isoformat(),
        "timezone": TIMEZONE,
    }


@router.get("/state", dependencies=[Depends(verify_api_key)])
def get_state(
    dismissed: list[str] = Query(default=[]),
    goals: list[str] = Query(default=[]),
    show_add_suggestions: bool = True,
    timezone: Optional[str] = Depends(_timezone_query),
    user_id: str = Depends(current_user),
):
    """Full biological state: active compounds, zones, suggestions, bio-score."""
    state = service.get_biological_state(
        user_id,
        dismissed_keys=frozenset(dismissed),
        show_add_suggestions=show_add_suggestions,
        user_goals=frozenset(goals),
        timezone=timezone,
    )
    return asdict(state)


@router.get("/state/active", dependencies=[Depends(verify_api_key)])
def get_active(user_id: str = Depends(current_user)):
    """Compounds currently absorbing or at peak."""
    return [asdict(c) for c in service.get_active_supplements(user_id)]


@router.get("/timeline", dependencies=[Depends(verify_api_key)])
def get_timeline(
    interval: int = Query(default=15, ge=5, le=60),
    window_hours: int = Query(default=24, ge=1, le=72),
    user_id: str = Depends(current_user),
):
    """Concentration curves on a fixed grid (history + 4h projection)."""
    points = service.get_timeline_data(user_id, interval_minutes=interval, window_hours=window_hours)
    return [asdict(p) for p in points]


@router.post("/logs", dependencies=[Depends(verify_api_key)])
def create_log(req: LogRequest, user_id: str = Depends(current_user)):
    """Log a dose. Runs the safety check first; a blocked dose needs `force`."""
    profile = _require_supplement(req.supplement_id)
    logged_at = req.logged_at or datetime.now(dt_timezone.utc)

    result = service.check_safety_limit(
        user_id, profile, req.dosage, req.unit, now=logged_at, timezone=req.timezone,
    )
    if result.status == "blocked" and not req.force:
        log.warning("Blocked log for %s: %s %s%s", user_id, profile.id, req.dosage, req.unit)
        raise HTTPException(status_code=409, detail={"message": result.message, "safety": asdict(result)})

    row_id = insert_log(user_id, profile.id, req.dosage, req.unit, logged_at)
    log.info("Logged %s %s%s for %s (id=%s)", profile.id, req.dosage, req.unit, user_id, row_id)

    warnings = service.check_log_timing(user_id, profile.id, logged_at)
    return {
        "id": row_id,
        "status": "ok",
        "safety": asdict(result),
        "timing_warnings": [asdict(w) for w in warnings],
    }


@router.delete("/logs/{log_id}", dependencies=[Depends(verify_api_key)])
def delete_log_route(log_id: int, user_id: str = Depends(current_user)):
    """Delete a log entry by ID."""
    deleted = delete_log(log_id, user_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Log not found")
    log.info("Deleted log %s for %s", log_id, user_id)
    return {"deleted": log_id, "status": "ok"}


@router.post("/safety/check", dependencies=[Depends(verify_api_key)])
def safety_check(req: SafetyCheckRequest, user_id: str = Depends(current_user)):
    """Would this dose cross its category limit?"""
    profile = _require_supplement(req.supplement_id)
    result = service.check_safety_limit(user_id, profile, req.dosage, req.unit, timezone=req.timezone)
    return asdict(result)


@router.post("/safety/stack", dependencies=[Depends(verify_api_key)])
def safety_stack(req: StackRequest, user_id: str = Depends(current_user)):
    """Worst limit violation for several pending doses, or null."""
    profiles = _require_supplements([i.supplement_id for i in req.items])
    items = [StackItem(profiles[i.supplement_id], i.dosage, i.unit) for i in req.items]
    result = service.check_stack_safety(user_id, items, timezone=req.timezone)
    return {"result": asdict(result) if result else None}


@router.get("/safety/headroom", dependencies=[Depends(verify_api_key)])
def safety_headroom(
    timezone: Optional[str] = Depends(_timezone_query),
    user_id: str = Depends(current_user),
):
    """Per-category usage against limits, highest first."""
    return [asdict(h) for h in service.get_safety_headroom(user_id, timezone=timezone)]


@router.post("/safety/meal-context", dependencies=[Depends(verify_api_key)])
def meal_context(req: MealContextRequest):
    """Advisory absorption warnings for the given meal context."""
    profiles = _require_supplements(req.supplement_ids)
    checks = service.check_meal_context([profiles[i] for i in req.supplement_ids], req.meal_context)
    return {"warnings": [asdict(c) for c in checks]}


@router.get("/timing/{supplement_id}", dependencies=[Depends(verify_api_key)])
def timing_check(supplement_id: str, user_id: str = Depends(current_user)):
    """Is an exclusion window currently open for this supplement?"""
    _require_supplement(supplement_id)
    zone = service.check_timing_safety(user_id, supplement_id)
    return {"safe": zone is None, "zone": asdict(zone) if zone else None}


@router.post("/analyze", dependencies=[Depends(verify_api_key)])
def analyze(req: AnalyzeRequest, user_id: str = Depends(current_user)):
    """Traffic-light interaction report for a candidate stack."""
    _require_supplements(req.supplement_ids)
    dosages = {
        d.supplement_id: DosageInput(
            supplement_id=d.supplement_id,
            amount=d.amount,
            unit=d.unit,
            elemental_weight_percent=d.elemental_weight_percent,
            vitamin_type=d.vitamin_type,
        )
        for d in req.dosages
    }
    report = service.analyze_interactions(user_id, req.supplement_ids, dosages or None)
    return asdict(report)
