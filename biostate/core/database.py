"""
SQLite database setup and access layer.
Schema: supplements, logs, timing_rules, ratio_rules, interactions.

Timestamps are stored as UTC ISO-8601 strings with fixed microsecond
precision, so lexical order equals chronological order.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterable, Optional

from biostate.config import DB_PATH
from biostate.core.models import (
    Interaction,
    LogEntry,
    RatioRule,
    SafetyLimit,
    SupplementProfile,
    TimingRule,
)
from biostate.core.reference_data import SAFETY_LIMITS

log = logging.getLogger("bio.db")

_local = threading.local()

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS supplements (
    id                      TEXT    PRIMARY KEY,
    name                    TEXT    NOT NULL,
    peak_minutes            REAL,
    half_life_minutes       REAL,
    kinetics_type           TEXT    DEFAULT 'first_order' CHECK(kinetics_type IN ('first_order','michaelis_menten')),
    vmax                    REAL,
    km                      REAL,
    rda_amount              REAL,
    elemental_weight_percent REAL,
    bioavailability_percent REAL,
    safety_category         TEXT,
    optimal_time_of_day     TEXT    CHECK(optimal_time_of_day IN ('morning','afternoon','evening','bedtime','with_meals','any')),
    common_goals            TEXT    DEFAULT '[]',
    is_research_chemical    INTEGER DEFAULT 0 CHECK(is_research_chemical IN (0, 1)),
    timing_rationale_key    TEXT,
    form                    TEXT,
    vitamin_type            TEXT
);

CREATE INDEX IF NOT EXISTS idx_supplements_category ON supplements(safety_category);

CREATE TABLE IF NOT EXISTS logs (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id         TEXT    NOT NULL,
    supplement_id   TEXT    NOT NULL REFERENCES supplements(id),
    dosage          REAL    NOT NULL CHECK(dosage > 0),
    unit            TEXT    NOT NULL CHECK(unit IN ('mg','mcg','g','IU','ml')),
    logged_at       TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_logs_user_ts ON logs(user_id, logged_at);

CREATE TABLE IF NOT EXISTS timing_rules (
    id                      TEXT    PRIMARY KEY,
    source_supplement_id    TEXT    NOT NULL REFERENCES supplements(id),
    target_supplement_id    TEXT    NOT NULL REFERENCES supplements(id),
    min_hours_apart         REAL    NOT NULL CHECK(min_hours_apart >= 0),
    reason                  TEXT    NOT NULL,
    severity                TEXT    DEFAULT 'medium' CHECK(severity IN ('low','medium','critical')),
    research_url            TEXT
);

CREATE TABLE IF NOT EXISTS ratio_rules (
    id                      TEXT    PRIMARY KEY,
    source_supplement_id    TEXT    NOT NULL REFERENCES supplements(id),
    target_supplement_id    TEXT    NOT NULL REFERENCES supplements(id),
    min_ratio               REAL,
    max_ratio               REAL,
    optimal_ratio           REAL,
    severity                TEXT    DEFAULT 'medium' CHECK(severity IN ('low','medium','critical')),
    warning_message         TEXT    DEFAULT ''
);

CREATE TABLE IF NOT EXISTS interactions (
    id          TEXT    PRIMARY KEY,
    source_id   TEXT    NOT NULL REFERENCES supplements(id),
    target_id   TEXT    NOT NULL REFERENCES supplements(id),
    type        TEXT    NOT NULL CHECK(type IN ('synergy','inhibition','competition')),
    severity    TEXT    DEFAULT 'low' CHECK(severity IN ('low','medium','critical')),
    mechanism   TEXT,
    suggestion  TEXT
);

CREATE INDEX IF NOT EXISTS idx_interactions_type ON interactions(type);
"""


def get_connection() -> sqlite3.Connection:
    """Thread-local SQLite connection with WAL mode, reopened if DB_PATH changes."""
    if getattr(_local, "conn", None) is None or getattr(_local, "path", None) != DB_PATH:
        DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(DB_PATH), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        _local.conn = conn
        _local.path = DB_PATH
    return _local.conn


def close_connection():
    conn = getattr(_local, "conn", None)
    if conn is not None:
        conn.close()
        _local.conn = None


@contextmanager
def db_cursor():
    """Yield a cursor, auto-commit on success, rollback on error."""
    conn = get_connection()
    cur = conn.cursor()
    try:
        yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def init_db():
    """Create tables if they don't exist."""
    with db_cursor() as cur:
        cur.executescript(SCHEMA_SQL)
    log.info("Database initialized at %s", DB_PATH)


# --- Conversion helpers ---

def to_db_timestamp(value: datetime) -> str:
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError("timestamps must be timezone-aware")
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _profile_from_row(row: sqlite3.Row) -> SupplementProfile:
    data = dict(row)
    data["common_goals"] = frozenset(json.loads(data.get("common_goals") or "[]"))
    data["is_research_chemical"] = bool(data.get("is_research_chemical"))
    data["kinetics_type"] = data.get("kinetics_type") or "first_order"
    return SupplementProfile(**data)


def _log_from_row(row: sqlite3.Row) -> LogEntry:
    return LogEntry(
        id=row["id"],
        supplement_id=row["supplement_id"],
        dosage=row["dosage"],
        unit=row["unit"],
        logged_at=from_db_timestamp(row["logged_at"]),
        user_id=row["user_id"],
    )


# --- Supplements ---

def upsert_supplement(profile: SupplementProfile) -> str:
    with db_cursor() as cur:
        cur.execute(
            """INSERT OR REPLACE INTO supplements
               (id, name, peak_minutes, half_life_minutes, kinetics_type, vmax, km,
                rda_amount, elemental_weight_percent, bioavailability_percent,
                safety_category, optimal_time_of_day, common_goals,
                is_research_chemical, timing_rationale_key, form, vitamin_type)
               VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)""",
            (
                profile.id, profile.name, profile.peak_minutes, profile.half_life_minutes,
                profile.kinetics_type, profile.vmax, profile.km, profile.rda_amount,
                profile.elemental_weight_percent, profile.bioavailability_percent,
                profile.safety_category, profile.optimal_time_of_day,
                json.dumps(sorted(profile.common_goals)),
                int(profile.is_research_chemical), profile.timing_rationale_key,
                profile.form, profile.vitamin_type,
            ),
        )
    return profile.id


def find_supplement(supplement_id: str) -> Optional[SupplementProfile]:
    with db_cursor() as cur:
        cur.execute("SELECT * FROM supplements WHERE id=?", (supplement_id,))
        row = cur.fetchone()
        return _profile_from_row(row) if row else None


def find_supplement_profiles(ids: Optional[Iterable[str]] = None) -> dict[str, SupplementProfile]:
    """Profiles keyed by id; all profiles when `ids` is None."""
    with db_cursor() as cur:
        if ids is None:
            cur.execute("SELECT * FROM supplements")
        else:
            ids = list(dict.fromkeys(ids))
            if not ids:
                return {}
            placeholders = ",".join("?" * len(ids))
            cur.execute(f"SELECT * FROM supplements WHERE id IN ({placeholders})", ids)
        return {row["id"]: _profile_from_row(row) for row in cur.fetchall()}


def find_profiles_by_category(category: str) -> list[SupplementProfile]:
    with db_cursor() as cur:
        cur.execute("SELECT * FROM supplements WHERE safety_category=? ORDER BY name", (category,))
        return [_profile_from_row(r) for r in cur.fetchall()]


# --- Logs ---

def insert_log(user_id: str, supplement_id: str, dosage: float, unit: str,
               logged_at: datetime) -> int:
    with db_cursor() as cur:
        cur.execute(
            "INSERT INTO logs (user_id, supplement_id, dosage, unit, logged_at) VALUES (?,?,?,?,?)",
            (user_id, supplement_id, dosage, unit, to_db_timestamp(logged_at)),
        )
        return cur.lastrowid


def find_logs(user_id: str, start: datetime, end: datetime) -> list[LogEntry]:
    """Logs of `user_id` with start <= logged_at <= end, oldest first."""
    with db_cursor() as cur:
        cur.execute(
            "SELECT * FROM logs WHERE user_id=? AND logged_at BETWEEN ? AND ? ORDER BY logged_at",
            (user_id, to_db_timestamp(start), to_db_timestamp(end)),
        )
        return [_log_from_row(r) for r in cur.fetchall()]


def get_log(log_id: int) -> Optional[LogEntry]:
    with db_cursor() as cur:
        cur.execute("SELECT * FROM logs WHERE id=?", (log_id,))
        row = cur.fetchone()
        return _log_from_row(row) if row else None


def delete_log(log_id: int, user_id: Optional[str] = None) -> bool:
    with db_cursor() as cur:
        if user_id is None:
            cur.execute("DELETE FROM logs WHERE id=?", (log_id,))
        else:
            cur.execute("DELETE FROM logs WHERE id=? AND user_id=?", (log_id, user_id))
        return cur.rowcount > 0


# --- Rules ---

def insert_timing_rule(rule: TimingRule) -> str:
    with db_cursor() as cur:
        cur.execute(
            """INSERT OR REPLACE INTO timing_rules
               (id, source_supplement_id, target_supplement_id, min_hours_apart,
                reason, severity, research_url)
               VALUES (?,?,?,?,?,?,?)""",
            (rule.id, rule.source_supplement_id, rule.target_supplement_id,
             rule.min_hours_apart, rule.reason, rule.severity, rule.research_url),
        )
    return rule.id


def find_timing_rules() -> list[TimingRule]:
    with db_cursor() as cur:
        cur.execute("SELECT * FROM timing_rules ORDER BY id")
        return [TimingRule(**dict(r)) for r in cur.fetchall()]


def insert_ratio_rule(rule: RatioRule) -> str:
    with db_cursor() as cur:
        cur.execute(
            """INSERT OR REPLACE INTO ratio_rules
               (id, source_supplement_id, target_supplement_id, min_ratio, max_ratio,
                optimal_ratio, severity, warning_message)
               VALUES (?,?,?,?,?,?,?,?)""",
            (rule.id, rule.source_supplement_id, rule.target_supplement_id,
             rule.min_ratio, rule.max_ratio, rule.optimal_ratio, rule.severity,
             rule.warning_message),
        )
    return rule.id


def find_ratio_rules() -> list[RatioRule]:
    with db_cursor() as cur:
        cur.execute("SELECT * FROM ratio_rules ORDER BY id")
        rules = []
        for row in cur.fetchall():
            data = dict(row)
            data["warning_message"] = data.get("warning_message") or ""
            rules.append(RatioRule(**data))
        return rules


def insert_interaction(interaction: Interaction) -> str:
    with db_cursor() as cur:
        cur.execute(
            """INSERT OR REPLACE INTO interactions
               (id, source_id, target_id, type, severity, mechanism, suggestion)
               VALUES (?,?,?,?,?,?,?)""",
            (interaction.id, interaction.source_id, interaction.target_id,
             interaction.type, interaction.severity, interaction.mechanism,
             interaction.suggestion),
        )
    return interaction.id


def find_synergy_interactions() -> list[Interaction]:
    with db_cursor() as cur:
        cur.execute("SELECT * FROM interactions WHERE type='synergy' ORDER BY id")
        return [Interaction(**dict(r)) for r in cur.fetchall()]


def find_interactions(ids: Iterable[str]) -> list[Interaction]:
    """Interactions touching any of `ids` (either side)."""
    ids = list(dict.fromkeys(ids))
    if not ids:
        return []
    placeholders = ",".join("?" * len(ids))
    with db_cursor() as cur:
        cur.execute(
            f"SELECT * FROM interactions WHERE source_id IN ({placeholders}) "
            f"OR target_id IN ({placeholders}) ORDER BY id",
            ids + ids,
        )
        return [Interaction(**dict(r)) for r in cur.fetchall()]


# --- Safety limits ---

def find_safety_limits() -> dict[str, SafetyLimit]:
    """Category limits. Static table; kept behind the same boundary as the rules."""
    return dict(SAFETY_LIMITS)
