"""
Dosage unit conversion and elemental-weight math.

Two flavours share this module:
  - Safety conversion (convert_dosage): mass units convert via powers of 1000,
    IU never converts, ml is not convertible. Unconvertible -> None.
  - Ratio normalization (normalize_dosage): everything to elemental mg; IU is
    allowed for fat-soluble vitamins with a known factor. Unconvertible ->
    UnitConversionError.

Example: 50mg Zinc Picolinate at 21% elemental = 10.5mg elemental zinc.
"""

from typing import Optional

_MG_PER_UNIT = {
    "g": 1000.0,
    "mg": 1.0,
    "mcg": 0.001,
}

# mcg per IU (NIH Office of Dietary Supplements)
IU_TO_MCG = {
    "D3": 0.025,    # 40 IU = 1 mcg cholecalciferol
    "A": 0.3,       # 1 IU = 0.3 mcg retinol
    "E": 670.0,     # 1 IU = 0.67 mg d-alpha-tocopherol (natural form)
}

_VITAMIN_ALIASES = {
    "d3": "D3", "vitamin_d3": "D3", "vitamin-d3": "D3",
    "a": "A", "vitamin_a": "A", "vitamin-a": "A",
    "e": "E", "vitamin_e": "E", "vitamin-e": "E",
}


class UnitConversionError(ValueError):
    """A dosage cannot be expressed in the requested unit."""


# ── Safety conversion ────────────────────────────────────────────────

def convert_dosage(dosage: float, from_unit: str, to_unit: str) -> Optional[float]:
    """Convert between mass units. Same unit is identity; IU/ml -> None."""
    if from_unit == to_unit:
        return dosage
    if from_unit not in _MG_PER_UNIT or to_unit not in _MG_PER_UNIT:
        return None
    return dosage * _MG_PER_UNIT[from_unit] / _MG_PER_UNIT[to_unit]


def calculate_elemental_dosage(dosage: float, elemental_weight_percent: Optional[float]) -> float:
    """Elemental share of a compound dose; unset or 0% means pure form."""
    if not elemental_weight_percent:
        return dosage
    return dosage * (elemental_weight_percent / 100.0)


def elemental_in_unit(dosage: float, unit: str, elemental_weight_percent: Optional[float],
                      target_unit: str) -> Optional[float]:
    """Elemental dosage expressed in `target_unit`, or None if not convertible."""
    elemental = calculate_elemental_dosage(dosage, elemental_weight_percent)
    return convert_dosage(elemental, unit, target_unit)


# ── Ratio normalization ──────────────────────────────────────────────

def to_micrograms(amount: float, unit: str) -> float:
    if unit in _MG_PER_UNIT:
        return amount * _MG_PER_UNIT[unit] * 1000.0
    if unit == "IU":
        raise UnitConversionError("IU requires vitamin context for conversion")
    if unit == "ml":
        raise UnitConversionError("ml cannot be converted to mcg without density")
    raise UnitConversionError(f"unknown unit: {unit}")


def to_milligrams(amount: float, unit: str) -> float:
    return to_micrograms(amount, unit) / 1000.0


def vitamin_iu_to_micrograms(amount: float, vitamin_type: str) -> float:
    key = _VITAMIN_ALIASES.get(vitamin_type.lower(), vitamin_type) if vitamin_type else ""
    if key not in IU_TO_MCG:
        raise UnitConversionError(f"unknown vitamin type for IU conversion: {vitamin_type}")
    return amount * IU_TO_MCG[key]


def normalize_dosage(amount: float, unit: str, elemental_weight_percent: Optional[float] = None,
                     vitamin_type: Optional[str] = None) -> float:
    """Convert a dose to elemental milligrams."""
    if unit == "IU":
        if not vitamin_type:
            raise UnitConversionError("vitamin type required for IU conversion")
        amount_mg = vitamin_iu_to_micrograms(amount, vitamin_type) / 1000.0
    else:
        amount_mg = to_milligrams(amount, unit)
    return calculate_elemental_dosage(amount_mg, elemental_weight_percent)
