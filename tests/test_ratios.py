import pytest

from biostate.core.models import DosageInput, RatioRule
from biostate.core.ratios import (
    apply_ratio_tolerance,
    calculate_ratio,
    check_ratio_compliance,
    evaluate_ratio_rules,
    window_dosages,
)
from biostate.core.units import UnitConversionError


ZN_CU = RatioRule("zn-cu", "zinc", "copper", min_ratio=8, max_ratio=15, optimal_ratio=10,
                  warning_message="Zinc to copper ratio is out of balance.")


def dose(supplement_id, amount, unit="mg", **kwargs):
    return DosageInput(supplement_id, amount, unit, **kwargs)


def test_zinc_copper_imbalance_is_flagged(catalog):
    dosages = {"zinc": dose("zinc", 50), "copper": dose("copper", 2)}
    assert calculate_ratio(50 * 0.21, 2) == pytest.approx(5.25)

    warnings, gaps = evaluate_ratio_rules(dosages, catalog, [ZN_CU])
    assert gaps == []
    assert len(warnings) == 1
    assert warnings[0].severity == "medium"
    assert warnings[0].min_ratio == 8
    assert warnings[0].warning_message == "Zinc to copper ratio is out of balance."


def test_balanced_ratio_has_no_warning(catalog):
    dosages = {"zinc": dose("zinc", 100), "copper": dose("copper", 2)}
    warnings, gaps = evaluate_ratio_rules(dosages, catalog, [ZN_CU])
    assert warnings == [] and gaps == []


def test_default_message_when_rule_has_none(catalog):
    rule = RatioRule("zn-cu", "zinc", "copper", min_ratio=8, max_ratio=15)
    dosages = {"zinc": dose("zinc", 50), "copper": dose("copper", 2)}
    [warning], _ = evaluate_ratio_rules(dosages, catalog, [rule])
    assert "recommended 8-15:1" in warning.warning_message


def test_compliance_deviation_sign():
    assert check_ratio_compliance(10, 8, 15) == (True, 0.0)
    compliant, deviation = check_ratio_compliance(5, 8, 15)
    assert not compliant and deviation == pytest.approx(-3)
    compliant, deviation = check_ratio_compliance(20, 8, 15)
    assert not compliant and deviation == pytest.approx(5)
    assert check_ratio_compliance(100, 8, None) == (True, 0.0)


def test_tolerance_widens_bounds():
    rule = RatioRule("r", "a", "b", min_ratio=40, max_ratio=60)
    widened = apply_ratio_tolerance(rule, 0.15)
    assert widened.min_ratio == pytest.approx(34)
    assert widened.max_ratio == pytest.approx(69)
    assert apply_ratio_tolerance(rule, 0.0) is rule


def test_tolerance_can_silence_borderline_ratio(catalog):
    dosages = {"zinc": dose("zinc", 70), "copper": dose("copper", 2)}    # 7.35:1
    warnings, _ = evaluate_ratio_rules(dosages, catalog, [ZN_CU])
    assert len(warnings) == 1
    warnings, _ = evaluate_ratio_rules(dosages, catalog, [ZN_CU], tolerance=0.1)
    assert warnings == []


def test_zero_target_raises():
    with pytest.raises(UnitConversionError):
        calculate_ratio(10, 0)


def test_gaps_are_reported(catalog):
    rules = [
        ZN_CU,
        RatioRule("d3-k2", "d3", "k2", min_ratio=1),
        RatioRule("zn-x", "zinc", "unknown", min_ratio=1),
        RatioRule("mag-iron", "mag", "iron", min_ratio=1),
    ]
    dosages = {
        "zinc": dose("zinc", 50),
        "copper": dose("copper", 5, unit="ml"),
        "unknown": dose("unknown", 5),
    }
    warnings, gaps = evaluate_ratio_rules(dosages, catalog, rules)
    assert warnings == []
    assert {g.rule_id: g.reason for g in gaps} == {
        "zn-cu": "normalization_failed",
        "zn-x": "missing_supplement_data",
    }


def test_one_sided_dose_is_missing_dosage(catalog):
    _, gaps = evaluate_ratio_rules({"zinc": dose("zinc", 50)}, catalog, [ZN_CU])
    assert [g.reason for g in gaps] == ["missing_dosage"]


def test_iu_doses_use_vitamin_type(catalog):
    rule = RatioRule("d3-k2", "d3", "k2", max_ratio=0.1)
    dosages = {"d3": dose("d3", 4000, unit="IU"), "k2": dose("k2", 100, unit="mcg")}
    warnings, gaps = evaluate_ratio_rules(dosages, catalog, [rule])
    # 0.1 mg : 0.1 mg
    assert gaps == []
    assert warnings[0].current_ratio == 1.0


def test_window_dosages_sums_per_supplement(catalog, make_log):
    logs = [
        make_log("zinc", 10, dosage=25),
        make_log("zinc", 20, dosage=25),
        make_log("mag", 10, dosage=0.2, unit="g"),
        make_log("mag", 20, dosage=100),
        make_log("d3", 10, dosage=1000, unit="IU"),
        make_log("d3", 20, dosage=0.025, unit="mg"),
    ]
    dosages = window_dosages(logs, catalog)
    assert dosages["zinc"].amount == 50
    assert dosages["zinc"].unit == "mg"
    assert dosages["zinc"].elemental_weight_percent == 21
    assert dosages["mag"].amount == pytest.approx(300)
    assert "d3" not in dosages
