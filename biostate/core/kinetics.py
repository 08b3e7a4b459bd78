"""
Concentration model: percent-of-Cmax curves for a single dose.

Models:
  - First order (default):
      absorption   C(t) = 100 * t / Tmax                   for 0 <= t < Tmax
      elimination  C(t) = 100 * e^(-k * (t - Tmax))         k = ln2 / t1/2
      values below 1% read as 0 (cleared)

  - Michaelis-Menten absorption (saturable transporters):
      remaining    A(t) = Km * W0((A0/Km) * e^((A0 - Vmax*t)/Km))
      absorbed     A0 - A(t), normalized against the amount absorbed at Tmax
      after Tmax the curve switches to first-order elimination anchored at 100

  - RDA dampening (high doses without MM parameters):
      effective = 3*RDA + RDA * ln(1 + (dose - 3*RDA)/RDA)
      C_dampened(t) = C(t) * effective / dose

Lambert W0 is solved with Halley's method (cubic convergence).
Sources:
  - Corless et al., 1996 (On the Lambert W function)
  - Wagner, 1976 / Schnell & Mendoza, 1997 (closed-form Michaelis-Menten)
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Union

from biostate.config import (
    CLEARED_THRESHOLD_PERCENT,
    DAMPENING_RDA_MULTIPLE,
    DEFAULT_HALF_LIFE_MINUTES,
    DEFAULT_PEAK_MINUTES,
    PEAK_WINDOW_MINUTES,
)

log = logging.getLogger("bio.engine")

LAMBERT_TOLERANCE = 1e-12
LAMBERT_MAX_ITER = 50
_NEG_INV_E = -1.0 / math.e
_MAX_EXP = 709.0  # math.exp overflows just above this
_LOG_SPACE_X = 1e100  # Halley terms square w*e^w, which overflows near 1e154


# ── Kinetics parameter records ───────────────────────────────────────

@dataclass(frozen=True)
class FirstOrderKinetics:
    peak_minutes: float
    half_life_minutes: float
    rda_amount: Optional[float] = None


@dataclass(frozen=True)
class MichaelisMentenKinetics:
    peak_minutes: float
    half_life_minutes: float
    vmax: float
    km: float


Kinetics = Union[FirstOrderKinetics, MichaelisMentenKinetics]


def _positive_or(value: Optional[float], default: float) -> float:
    if value is None or not math.isfinite(value) or value <= 0:
        return default
    return float(value)


def _is_positive(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def kinetics_for(profile) -> Kinetics:
    """
    Build the kinetics record for a supplement profile.
    Missing or degenerate Tmax / half-life fall back to the configured
    defaults; MM profiles without usable vmax/km fall back to first order.
    """
    peak = _positive_or(profile.peak_minutes, DEFAULT_PEAK_MINUTES)
    half_life = _positive_or(profile.half_life_minutes, DEFAULT_HALF_LIFE_MINUTES)

    if profile.kinetics_type == "michaelis_menten":
        if _is_positive(profile.vmax) and _is_positive(profile.km):
            return MichaelisMentenKinetics(peak, half_life, float(profile.vmax), float(profile.km))
        log.debug("Profile %s lacks vmax/km, using first-order kinetics", profile.id)

    rda = profile.rda_amount if _is_positive(profile.rda_amount) else None
    return FirstOrderKinetics(peak, half_life, rda)


# ── Lambert W (principal branch) ─────────────────────────────────────

def lambert_w0(x: float) -> Optional[float]:
    """
    Principal branch W0 of the Lambert W function, i.e. w with w*e^w = x.
    Returns None when x < -1/e (no real solution) or x is NaN.
    """
    if math.isnan(x):
        return None
    if x == 0.0:
        return 0.0
    if x == math.e:
        return 1.0
    if x < _NEG_INV_E:
        return None
    if x == _NEG_INV_E:
        return -1.0
    if math.isinf(x):
        return math.inf
    if x > _LOG_SPACE_X:
        return lambert_w0_log(math.log(x))

    if x < 1.0:
        w = x
    elif x < 10.0:
        w = math.log(x)
    else:
        lx = math.log(x)
        llx = math.log(lx)
        w = lx - llx + llx / lx

    for _ in range(LAMBERT_MAX_ITER):
        ew = math.exp(w)
        f = w * ew - x
        if abs(f) < LAMBERT_TOLERANCE * abs(x):
            break
        f1 = ew * (w + 1.0)
        f2 = ew * (w + 2.0)
        denom = 2.0 * f1 * f1 - f * f2
        if denom != 0.0:
            w -= 2.0 * f * f1 / denom
        elif f1 != 0.0:
            w -= f / f1
        else:
            break
    return w


def lambert_w0_log(log_x: float) -> float:
    """
    W0(x) given ln(x), for x too large to iterate on directly (ln x > 1).
    Solves w + ln(w) = ln(x) with Halley's method.
    """
    lx = log_x
    llx = math.log(lx)
    w = lx - llx + llx / lx
    for _ in range(LAMBERT_MAX_ITER):
        g = w + math.log(w) - lx
        if abs(g) < LAMBERT_TOLERANCE * lx:
            break
        g1 = 1.0 + 1.0 / w
        g2 = -1.0 / (w * w)
        denom = 2.0 * g1 * g1 - g * g2
        w -= 2.0 * g * g1 / denom if denom != 0.0 else g / g1
    return w


# ── First order ──────────────────────────────────────────────────────

def _elimination_percent(minutes_past_peak: float, half_life: float) -> float:
    k = math.log(2) / half_life
    value = 100.0 * math.exp(-k * minutes_past_peak)
    return value if value >= CLEARED_THRESHOLD_PERCENT else 0.0


def first_order_percent(minutes: float, peak: float, half_life: float) -> float:
    """Linear ramp to 100 at Tmax, exponential decay afterwards."""
    if minutes <= 0:
        return 0.0
    if minutes < peak:
        return 100.0 * minutes / peak
    if minutes == peak:
        return 100.0
    return _elimination_percent(minutes - peak, half_life)


def dampened_dose(dose: float, rda: float) -> float:
    """Effective dose after logarithmic saturation above 3x RDA."""
    threshold = DAMPENING_RDA_MULTIPLE * rda
    if dose <= threshold:
        return dose
    excess = dose - threshold
    return threshold + rda * math.log(1.0 + excess / rda)


# ── Michaelis-Menten ─────────────────────────────────────────────────

def michaelis_menten_absorbed(minutes: float, dose: float, vmax: float, km: float) -> float:
    """
    Amount absorbed after `minutes` under saturable absorption.
    Always within [0, dose]; a W0 without real solution counts as nothing absorbed.
    """
    if minutes <= 0 or dose <= 0:
        return 0.0
    exponent = (dose - vmax * minutes) / km
    log_x = exponent + math.log(dose / km)
    if log_x > _MAX_EXP:
        # x itself would overflow; stay in log space
        w = lambert_w0_log(log_x)
    else:
        w = lambert_w0((dose / km) * math.exp(exponent))
    if w is None or math.isinf(w):
        return 0.0
    remaining = km * w
    return min(dose, max(0.0, dose - remaining))


def absorption_efficiency(dose: float, km: float) -> float:
    """Fraction of maximal transport rate still available: Km / (Km + dose)."""
    if km <= 0 or dose < 0:
        return 0.0
    if dose == 0:
        return 1.0
    return km / (km + dose)


def _michaelis_menten_percent(minutes: float, kin: MichaelisMentenKinetics, dose: float) -> float:
    if minutes >= kin.peak_minutes:
        if minutes == kin.peak_minutes:
            return 100.0
        return _elimination_percent(minutes - kin.peak_minutes, kin.half_life_minutes)

    at_peak = michaelis_menten_absorbed(kin.peak_minutes, dose, kin.vmax, kin.km)
    if at_peak <= 0:
        return 0.0
    absorbed = michaelis_menten_absorbed(minutes, dose, kin.vmax, kin.km)
    return min(100.0, 100.0 * absorbed / at_peak)


# ── Dispatch ─────────────────────────────────────────────────────────

def concentration(minutes: float, kinetics: Kinetics, dose: Optional[float] = None) -> float:
    """
    Percent of Cmax `minutes` after a dose, clamped to [0, 100].
    `dose` is needed for Michaelis-Menten and RDA dampening; without it the
    plain first-order curve is used.
    """
    if minutes is None or not math.isfinite(minutes) or minutes < 0:
        return 0.0
    has_dose = dose is not None and math.isfinite(dose) and dose > 0

    if isinstance(kinetics, MichaelisMentenKinetics):
        if has_dose:
            value = _michaelis_menten_percent(minutes, kinetics, dose)
        else:
            value = first_order_percent(minutes, kinetics.peak_minutes, kinetics.half_life_minutes)
    else:
        value = first_order_percent(minutes, kinetics.peak_minutes, kinetics.half_life_minutes)
        if has_dose and kinetics.rda_amount:
            value *= dampened_dose(dose, kinetics.rda_amount) / dose

    return max(0.0, min(100.0, value))


def determine_phase(minutes: float, peak_minutes: float, concentration_percent: float) -> str:
    """Pharmacokinetic phase: cleared, absorbing, peak or eliminating."""
    if concentration_percent < CLEARED_THRESHOLD_PERCENT:
        return "cleared"
    if minutes < peak_minutes:
        return "absorbing"
    if minutes <= peak_minutes + PEAK_WINDOW_MINUTES:
        return "peak"
    return "eliminating"
