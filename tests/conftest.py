from datetime import datetime, timedelta, timezone

import pytest

from biostate.core import database
from biostate.core.models import LogEntry, SupplementProfile


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_profile():
    def _make(id="mag", name=None, **kwargs):
        kwargs.setdefault("peak_minutes", 60)
        kwargs.setdefault("half_life_minutes", 240)
        return SupplementProfile(id=id, name=name or id.replace("-", " ").title(), **kwargs)
    return _make


@pytest.fixture
def make_log(now):
    counter = {"id": 0}

    def _make(supplement_id, minutes_ago=0, dosage=100.0, unit="mg", at=None):
        counter["id"] += 1
        logged_at = at if at is not None else now - timedelta(minutes=minutes_ago)
        return LogEntry(counter["id"], supplement_id, dosage, unit, logged_at, user_id="u1")
    return _make


@pytest.fixture
def catalog():
    """A small supplement catalog covering the interesting categories."""
    profiles = [
        SupplementProfile(
            "zinc", "Zinc Picolinate", peak_minutes=120, half_life_minutes=300,
            elemental_weight_percent=21, safety_category="zinc",
            optimal_time_of_day="bedtime", common_goals=frozenset({"immunity"}),
        ),
        SupplementProfile(
            "copper", "Copper", peak_minutes=120, half_life_minutes=600,
            safety_category="copper", optimal_time_of_day="morning",
            common_goals=frozenset({"immunity"}),
        ),
        SupplementProfile(
            "mag", "Magnesium Glycinate", peak_minutes=120, half_life_minutes=480,
            safety_category="magnesium", optimal_time_of_day="bedtime",
            common_goals=frozenset({"sleep"}),
        ),
        SupplementProfile(
            "d3", "Vitamin D3", peak_minutes=120, half_life_minutes=1200,
            safety_category="vitamin-d3", optimal_time_of_day="morning",
            vitamin_type="D3", common_goals=frozenset({"immunity"}),
        ),
        SupplementProfile(
            "k2", "Vitamin K2", peak_minutes=240, half_life_minutes=4320,
            timing_rationale_key="vitamin-k2", optimal_time_of_day="morning",
            common_goals=frozenset({"bone"}),
        ),
        SupplementProfile(
            "iron", "Iron Bisglycinate", peak_minutes=120, half_life_minutes=360,
            safety_category="iron", optimal_time_of_day="morning",
            common_goals=frozenset({"energy"}),
        ),
        SupplementProfile(
            "caffeine", "Caffeine", peak_minutes=45, half_life_minutes=300,
            safety_category="caffeine", optimal_time_of_day="morning",
            common_goals=frozenset({"focus"}),
        ),
        SupplementProfile(
            "theanine", "L-Theanine", peak_minutes=50, half_life_minutes=70,
            timing_rationale_key="l-theanine", optimal_time_of_day="any",
            common_goals=frozenset({"focus"}),
        ),
        SupplementProfile(
            "bpc", "BPC-157", peak_minutes=30, half_life_minutes=240,
            is_research_chemical=True,
        ),
    ]
    return {p.id: p for p in profiles}


@pytest.fixture
def db(tmp_path, monkeypatch):
    monkeypatch.setattr(database, "DB_PATH", tmp_path / "biostate.db")
    database.close_connection()
    database.init_db()
    yield database
    database.close_connection()


@pytest.fixture
def seeded_db(db, catalog):
    for profile in catalog.values():
        db.upsert_supplement(profile)
    return db
