"""
Static reference tables: category safety limits, bioavailability (meal
context) rules and timing rationales.

Everything here is keyed by capability (safety category or an explicit
rationale key on the profile), never by supplement display name.

Sources:
  - NIH Office of Dietary Supplements, Tolerable Upper Intake Levels
  - Endocrine Society clinical practice guideline (vitamin D)
  - EFSA scientific opinions on tolerable upper intake levels
"""

from typing import Optional

from biostate.core.models import SafetyLimit


# ── Safety limits (per category) ─────────────────────────────────────

SAFETY_LIMITS: dict[str, SafetyLimit] = {
    "magnesium": SafetyLimit(
        "magnesium", 350, "mg", is_hard_limit=False, source="NIH",
        notes="UL applies to supplemental magnesium only (not dietary).",
    ),
    "zinc": SafetyLimit(
        "zinc", 40, "mg", is_hard_limit=True, source="NIH",
        notes="Elemental zinc UL; higher doses deplete copper.",
    ),
    "iron": SafetyLimit(
        "iron", 45, "mg", is_hard_limit=True, source="NIH",
        notes="Elemental iron UL; higher doses cause GI distress.",
    ),
    "copper": SafetyLimit(
        "copper", 10, "mg", is_hard_limit=True, source="NIH",
    ),
    "calcium": SafetyLimit(
        "calcium", 2500, "mg", is_hard_limit=False, source="NIH",
        notes="Includes diet + supplements.",
    ),
    "vitamin-d3": SafetyLimit(
        "vitamin-d3", 70000, "IU", period="weekly", is_hard_limit=False,
        required_unit="IU", source="Endocrine Society",
        notes="Weekly total; 10,000 IU/day is the practical ceiling, NIH UL is 4,000 IU/day.",
    ),
    "vitamin-a": SafetyLimit(
        "vitamin-a", 10000, "IU", is_hard_limit=True, required_unit="IU", source="NIH",
        notes="Preformed retinol is teratogenic at high doses.",
    ),
    "vitamin-c": SafetyLimit(
        "vitamin-c", 2000, "mg", is_hard_limit=False, source="NIH",
    ),
    "vitamin-b6": SafetyLimit(
        "vitamin-b6", 100, "mg", is_hard_limit=False, source="NIH",
        notes="Higher doses can cause neuropathy.",
    ),
    "selenium": SafetyLimit(
        "selenium", 400, "mcg", is_hard_limit=True, source="NIH",
        notes="Toxicity (selenosis) can occur above this.",
    ),
    "iodine": SafetyLimit(
        "iodine", 1100, "mcg", is_hard_limit=False, source="NIH",
    ),
    "potassium": SafetyLimit(
        "potassium", 3500, "mg", is_hard_limit=False, source="NIH",
        notes="From supplements; dietary potassium has higher targets.",
    ),
    "caffeine": SafetyLimit(
        "caffeine", 400, "mg", is_hard_limit=False, source="FDA",
        notes="For healthy adults; lower for pregnancy/caffeine-sensitive.",
    ),
}

# Categories shown in the headroom summary
HEADROOM_CATEGORIES = (
    "magnesium",
    "zinc",
    "iron",
    "copper",
    "calcium",
    "vitamin-d3",
    "vitamin-c",
    "selenium",
)

HARD_LIMIT_CAUTIONS = {
    "iron": "Caution: Only supplement if Ferritin <150ng/mL. Test before use.",
    "vitamin-a": "Caution: High doses are teratogenic. Not recommended during pregnancy.",
    "selenium": "Caution: Narrow therapeutic window. Don't exceed 200mcg/day without testing.",
}


def category_label(category: str) -> str:
    """'vitamin-d3' -> 'Vitamin D3'."""
    return " ".join(part[:1].upper() + part[1:] for part in category.split("-"))


# ── Bioavailability (meal context) rules ─────────────────────────────
#
# required:   warn when no meal context is given at all
# optimal:    meal contexts that unlock the multiplier
#

BIOAVAILABILITY_RULES: dict[str, dict] = {
    # Fat-soluble
    "vitamin-d3": {
        "required": True,
        "optimal": ("with_fat", "with_meal"),
        "multiplier": 1.47,
        "warning": "Vitamin D3 is fat-soluble. Take with a meal containing fat for optimal absorption (+47% bioavailability).",
        "mechanism": "Vitamin D3 requires bile salts and dietary fat for micelle formation and intestinal absorption.",
        "research_url": "https://pubmed.ncbi.nlm.nih.gov/25441954/",
    },
    "vitamin-k2": {
        "required": True,
        "optimal": ("with_fat", "with_meal"),
        "multiplier": 1.8,
        "warning": "Vitamin K2 is fat-soluble. Take with dietary fat for optimal absorption.",
        "mechanism": "K2 (MK-7) absorption is significantly enhanced when consumed with dietary lipids.",
        "research_url": "https://pubmed.ncbi.nlm.nih.gov/22516722/",
    },
    "vitamin-a": {
        "required": True,
        "optimal": ("with_fat", "with_meal"),
        "multiplier": 1.5,
        "warning": "Vitamin A is fat-soluble. Take with dietary fat for proper absorption.",
        "mechanism": "Retinol requires dietary fat for intestinal absorption via chylomicron incorporation.",
    },
    "vitamin-e": {
        "required": True,
        "optimal": ("with_fat", "with_meal"),
        "multiplier": 1.4,
        "warning": "Vitamin E is fat-soluble. Take with a meal containing fat.",
        "mechanism": "Alpha-tocopherol absorption depends on dietary fat and bile salt secretion.",
    },
    "coq10": {
        "required": True,
        "optimal": ("with_fat", "with_meal"),
        "multiplier": 2.0,
        "warning": "CoQ10 is highly lipophilic. Absorption can double when taken with dietary fat.",
        "mechanism": "CoQ10 solubilization in dietary fat significantly enhances intestinal uptake.",
        "research_url": "https://pubmed.ncbi.nlm.nih.gov/22429073/",
    },
    "omega-3": {
        "required": False,
        "optimal": ("with_meal",),
        "multiplier": 1.3,
        "warning": "Fish oil absorbs better with a meal to stimulate bile release.",
        "mechanism": "Dietary fat triggers gallbladder contraction and bile release.",
    },
    "curcumin": {
        "required": True,
        "optimal": ("with_fat", "with_meal"),
        "multiplier": 2.0,
        "warning": "Curcumin is poorly absorbed. Take with fat and black pepper for optimal bioavailability.",
        "mechanism": "Curcumin's lipophilic nature requires fat for absorption; piperine inhibits glucuronidation.",
        "research_url": "https://pubmed.ncbi.nlm.nih.gov/9619120/",
    },
    # Fasted
    "l-tyrosine": {
        "required": True,
        "optimal": ("fasted",),
        "multiplier": 1.5,
        "warning": "L-Tyrosine competes with other amino acids for absorption. Take on empty stomach for best results.",
        "mechanism": "Large neutral amino acid transporter (LAT1) competition reduces uptake when taken with protein.",
    },
    "5-htp": {
        "required": True,
        "optimal": ("fasted",),
        "multiplier": 1.4,
        "warning": "5-HTP is best absorbed on an empty stomach.",
        "mechanism": "Amino acid derivative absorption is optimal without competing nutrients.",
    },
    "iron": {
        "required": True,
        "optimal": ("fasted",),
        "multiplier": 1.8,
        "warning": "Iron absorption is significantly reduced by food, especially calcium and phytates. Take on empty stomach with vitamin C.",
        "mechanism": "Dietary inhibitors (phytates, polyphenols, calcium) form insoluble complexes with iron.",
        "research_url": "https://pubmed.ncbi.nlm.nih.gov/3290310/",
    },
    # Meal timing
    "magnesium": {
        "required": False,
        "optimal": ("with_meal", "post_meal"),
        "multiplier": 1.2,
        "warning": "Magnesium may cause GI upset on empty stomach. Consider taking with food.",
        "mechanism": "Food buffers gastric acidity and slows transit time for better absorption.",
    },
    "zinc": {
        "required": False,
        "optimal": ("with_meal",),
        "multiplier": 1.1,
        "warning": "Zinc can cause nausea on empty stomach. Take with a light meal (avoid high-phytate foods).",
        "mechanism": "Food reduces gastric irritation; phytates reduce absorption.",
    },
    "nac": {
        "required": False,
        "optimal": ("fasted", "post_meal"),
        "multiplier": 1.3,
        "warning": "NAC is best absorbed away from meals (30 min before or 2h after).",
        "mechanism": "Food proteins may bind cysteine and reduce absorption.",
    },
}


# ── Timing rationales ────────────────────────────────────────────────

TIMING_RATIONALES: dict[str, str] = {
    "magnesium": "Magnesium supports GABA activity and muscle relaxation, which suits the wind-down before sleep.",
    "caffeine": "Caffeine blocks adenosine for 5-6 hours; late doses delay sleep onset and reduce deep sleep.",
    "vitamin-d3": "Vitamin D3 taken late may suppress melatonin; morning dosing aligns with the natural light cycle.",
    "iron": "Iron absorbs best on an empty morning stomach, away from calcium, coffee and tea.",
    "zinc": "Zinc at night supports overnight repair and avoids competing with morning iron.",
    "l-theanine": "L-Theanine promotes calm alertness; pairing it with the morning caffeine window smooths the stimulant curve.",
    "melatonin": "Melatonin signals darkness; it works 30-60 minutes before the intended bedtime.",
    "ashwagandha": "Ashwagandha lowers evening cortisol and supports sleep quality.",
    "b-vitamins": "B vitamins feed energy metabolism and can be stimulating late in the day.",
    "vitamin-b6": "B vitamins feed energy metabolism and can be stimulating late in the day.",
    "l-tyrosine": "L-Tyrosine is a dopamine precursor; morning dosing supports focus without disturbing sleep.",
    "glycine": "Glycine lowers core body temperature, which helps sleep onset.",
    "calcium": "Calcium competes with iron and zinc for absorption; a separate evening slot avoids the clash.",
    "vitamin-c": "Vitamin C taken with the morning meal boosts non-heme iron absorption.",
}

TIME_LABELS = {
    "morning": "in the morning",
    "afternoon": "in the afternoon",
    "evening": "in the evening",
    "bedtime": "at bedtime",
    "with_meals": "with meals",
    "any": "at any time",
}


def rationale_for(profile) -> Optional[str]:
    """Timing rationale for a profile: explicit key first, then safety category."""
    for key in (profile.timing_rationale_key, profile.safety_category):
        if key and key in TIMING_RATIONALES:
            return TIMING_RATIONALES[key]
    return None


def bioavailability_rule_for(profile) -> tuple:
    """Meal-context rule for a profile: safety category first, then rationale key."""
    for key in (profile.safety_category, profile.timing_rationale_key):
        if key and key in BIOAVAILABILITY_RULES:
            return key, BIOAVAILABILITY_RULES[key]
    return None, None
