"""
Service for rule-based health scoring of extracted report data.

Each category starts from a fixed base score and loses fixed penalties for
every threshold breach among its markers. A category with no matching lab
values keeps its base score; `markers_evaluated` records how many values
actually contributed.
"""

import logging
import math
import re
from typing import Dict, List, NamedTuple, Optional, Tuple
from vitalis.schemas.analysis import (
    HealthScoreComponent,
    HealthScoreReport,
    HealthTrajectory,
    PopulationPercentile,
    PredictiveHealth,
    RiskProjection,
)
from vitalis.schemas.reports import ExtractedMedicalData, LabValue

logger = logging.getLogger(__name__)


class CategoryConfig(NamedTuple):
    label: str
    weight: int
    base_score: int


class MarkerRule(NamedTuple):
    """Threshold tiers for one marker. The first breached tier applies."""
    label: str
    terms: Tuple[str, ...]
    exclude: Tuple[str, ...]
    tiers: Tuple[Tuple[str, float, int], ...]


CATEGORIES: Dict[str, CategoryConfig] = {
    "cardiovascular": CategoryConfig("Cardiovascular Health", 25, 85),
    "metabolic": CategoryConfig("Metabolic Health", 20, 90),
    "kidney": CategoryConfig("Kidney Function", 15, 90),
    "liver": CategoryConfig("Liver Function", 15, 90),
    "inflammation": CategoryConfig("Inflammation", 10, 85),
    "nutrition": CategoryConfig("Nutritional Status", 10, 85),
    "hormonal": CategoryConfig("Hormonal Balance", 5, 90),
}

MARKER_RULES: Dict[str, List[MarkerRule]] = {
    "cardiovascular": [
        MarkerRule("Total cholesterol", ("cholesterol",), ("ldl", "hdl", "vldl", "non-hdl", "non hdl"),
                   ((">", 240, 15), (">", 200, 8))),
        MarkerRule("LDL cholesterol", ("ldl",), ("vldl",), ((">", 160, 20), (">", 130, 10))),
        MarkerRule("HDL cholesterol", ("hdl",), ("non-hdl", "non hdl"), (("<", 40, 10),)),
        MarkerRule("Triglycerides", ("triglyceride", "triglycerides"), (), ((">", 200, 10), (">", 150, 5))),
    ],
    "metabolic": [
        MarkerRule("Glucose", ("glucose", "blood sugar", "fbs"), (),
                   ((">", 125, 20), (">", 100, 10), ("<", 70, 10))),
        MarkerRule("HbA1c", ("hba1c", "a1c", "glycated", "glycosylated"), (), ((">=", 6.5, 20), (">=", 5.7, 10))),
    ],
    "kidney": [
        MarkerRule("Creatinine", ("creatinine",), ("clearance", "ratio"), ((">", 2.0, 25), (">", 1.3, 15))),
        MarkerRule("Urea / BUN", ("urea", "bun"), ("ratio",), ((">", 20, 8),)),
        MarkerRule("eGFR", ("egfr", "gfr"), (), (("<", 60, 20),)),
    ],
    "liver": [
        MarkerRule("ALT", ("alt", "sgpt"), (), ((">", 56, 12),)),
        MarkerRule("AST", ("ast", "sgot"), (), ((">", 40, 12),)),
        MarkerRule("Bilirubin", ("bilirubin",), ("direct", "indirect"), ((">", 1.2, 10),)),
        MarkerRule("Albumin", ("albumin",), ("ratio", "microalbumin", "globulin"), (("<", 3.5, 8),)),
    ],
    "inflammation": [
        MarkerRule("CRP", ("crp", "c-reactive", "c reactive"), (), ((">", 10, 25), (">", 3, 15))),
        MarkerRule("ESR", ("esr", "sedimentation"), (), ((">", 20, 10),)),
        MarkerRule("WBC", ("wbc", "white blood", "leukocyte"), (), ((">", 11, 10),)),
    ],
    "nutrition": [
        MarkerRule("Vitamin D", ("vitamin d", "vit d", "25-oh"), (), (("<", 20, 25), ("<", 30, 15))),
        MarkerRule("Vitamin B12", ("b12", "cobalamin"), (), (("<", 200, 12),)),
        MarkerRule("Hemoglobin", ("hemoglobin", "haemoglobin", "hgb", "hb"), ("a1c", "glycated", "glycosylated"),
                   (("<", 12, 15),)),
        MarkerRule("Ferritin", ("ferritin",), (), (("<", 15, 10),)),
        MarkerRule("Iron", ("iron",), ("binding", "tibc", "saturation"), (("<", 60, 8),)),
    ],
    "hormonal": [
        MarkerRule("TSH", ("tsh",), (), ((">", 4.0, 15), ("<", 0.4, 15))),
        MarkerRule("Free T4", ("free t4", "ft4"), (), (("<", 0.8, 10), (">", 1.8, 10))),
    ],
}

# (minimum score, status, colour), checked in order
STATUS_BANDS: List[Tuple[int, str, str]] = [
    (85, "excellent", "#10B981"),
    (70, "good", "#3B82F6"),
    (55, "fair", "#F59E0B"),
    (40, "concerning", "#F97316"),
    (0, "critical", "#EF4444"),
]

# Population reference used for the cholesterol percentile
CHOLESTEROL_MEAN = 190.0
CHOLESTEROL_STD = 40.0

BASELINE_LIFESPAN = 78.0
BP_PATTERN = re.compile(r"(\d{2,3})\s*/\s*(\d{2,3})")


def _term_pattern(term: str) -> re.Pattern:
    return re.compile(r"(?<![a-z])" + re.escape(term) + r"(?![a-z])")


def _numeric(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def find_lab_value(labs: List[LabValue], terms: Tuple[str, ...], exclude: Tuple[str, ...] = ()) -> Optional[float]:
    """First numeric value whose parameter name contains one of `terms` and none of `exclude`."""
    for lab in labs:
        name = lab.parameter.lower()
        if any(_term_pattern(term).search(name) for term in exclude):
            continue
        if not any(_term_pattern(term).search(name) for term in terms):
            continue
        value = _numeric(lab.value)
        if value is not None:
            return value
    return None


def _breached(operator: str, value: float, threshold: float) -> bool:
    if operator == ">":
        return value > threshold
    if operator == ">=":
        return value >= threshold
    if operator == "<":
        return value < threshold
    return value <= threshold


def _blood_pressure(data: ExtractedMedicalData) -> Optional[Tuple[int, int]]:
    vitals = data.vital_signs
    if vitals and vitals.blood_pressure:
        return vitals.blood_pressure.systolic, vitals.blood_pressure.diastolic
    for lab in data.lab_values:
        name = lab.parameter.lower()
        if "blood pressure" in name or _term_pattern("bp").search(name):
            match = BP_PATTERN.search(str(lab.value))
            if match:
                return int(match.group(1)), int(match.group(2))
    return None


def score_status(score: float) -> Tuple[str, str]:
    """Status label and display colour for a 0-100 score."""
    for minimum, status, color in STATUS_BANDS:
        if score >= minimum:
            return status, color
    return STATUS_BANDS[-1][1], STATUS_BANDS[-1][2]


def score_category(category: str, data: ExtractedMedicalData) -> HealthScoreComponent:
    config = CATEGORIES[category]
    penalties: List[str] = []
    deduction = 0
    evaluated = 0

    for rule in MARKER_RULES[category]:
        value = find_lab_value(data.lab_values, rule.terms, rule.exclude)
        if value is None:
            continue
        evaluated += 1
        for operator, threshold, penalty in rule.tiers:
            if _breached(operator, value, threshold):
                deduction += penalty
                penalties.append(f"{rule.label} {value:g} ({operator}{threshold:g})")
                break

    if category == "cardiovascular":
        pressure = _blood_pressure(data)
        if pressure:
            evaluated += 1
            systolic, diastolic = pressure
            if systolic >= 140 or diastolic >= 90:
                deduction += 15
                penalties.append(f"Blood pressure {systolic}/{diastolic} (>=140/90)")
            elif systolic >= 130:
                deduction += 8
                penalties.append(f"Blood pressure {systolic}/{diastolic} (systolic >=130)")

    score = max(0, min(100, config.base_score - deduction))
    status, color = score_status(score)
    if penalties:
        impact = "Outside target: " + "; ".join(penalties)
    elif evaluated:
        impact = "All evaluated markers within target"
    else:
        impact = "No markers reported; base score applied"

    return HealthScoreComponent(
        category=category,
        score=score,
        weight=config.weight,
        status=status,
        impact=impact,
        color=color,
        markers_evaluated=evaluated,
    )


def score_categories(data: ExtractedMedicalData) -> List[HealthScoreComponent]:
    return [score_category(category, data) for category in CATEGORIES]


def aggregate_score(components: List[HealthScoreComponent]) -> int:
    """Weighted mean of category scores, clamped to [0, 100]."""
    total_weight = sum(component.weight for component in components)
    if total_weight <= 0:
        return 0
    weighted = sum(component.score * component.weight for component in components) / total_weight
    return int(round(max(0.0, min(100.0, weighted))))


def cholesterol_percentile(value: float) -> float:
    """Population percentile of a total cholesterol value under a normal approximation."""
    z = (value - CHOLESTEROL_MEAN) / (CHOLESTEROL_STD * math.sqrt(2))
    return round(0.5 * (1 + math.erf(z)) * 100, 1)


def population_percentiles(data: ExtractedMedicalData) -> List[PopulationPercentile]:
    cholesterol_rule = MARKER_RULES["cardiovascular"][0]
    value = find_lab_value(data.lab_values, cholesterol_rule.terms, cholesterol_rule.exclude)
    if value is None:
        return []

    percentile = cholesterol_percentile(value)
    if percentile < 25:
        interpretation = "Lower than most adults"
    elif percentile < 75:
        interpretation = "Typical for adults"
    else:
        interpretation = "Higher than most adults"
    return [
        PopulationPercentile(
            parameter="Total Cholesterol",
            value=value,
            percentile=percentile,
            interpretation=interpretation,
        )
    ]


def health_trajectory(score: float, age: Optional[int] = None) -> HealthTrajectory:
    if score >= 80:
        trajectory = "improving"
    elif score >= 60:
        trajectory = "stable"
    else:
        trajectory = "declining"

    projected_lifespan = BASELINE_LIFESPAN + (score - 75) * 0.3
    healthspan = projected_lifespan - 12 + (score - 75) * 0.1
    biological_age = None
    if age is not None:
        biological_age = round(age - (score - 75) * 0.2, 1)

    return HealthTrajectory(
        trajectory=trajectory,
        biological_age=biological_age,
        projected_lifespan=round(projected_lifespan, 1),
        healthspan=round(healthspan, 1),
    )


def risk_projection(category: str, score: float) -> RiskProjection:
    return RiskProjection(
        category=category,
        five_year_risk=round((100 - score) * 0.4, 1),
        ten_year_risk=round((100 - score) * 0.7, 1),
    )


def predict_health(score: float, components: List[HealthScoreComponent], age: Optional[int] = None) -> PredictiveHealth:
    projections = [risk_projection("overall", score)]
    projections.extend(risk_projection(component.category, component.score) for component in components)
    return PredictiveHealth(
        future_risk_projections=projections,
        health_trajectory=health_trajectory(score, age),
    )


def calculate_health_score(data: ExtractedMedicalData, age: Optional[int] = None) -> HealthScoreReport:
    """
    Score extracted report data.

    Args:
        data: Extracted report data
        age: Patient age in years, used for the biological age estimate

    Returns:
        HealthScoreReport with category breakdown, aggregate score,
        cholesterol percentile and predictive projections
    """
    components = score_categories(data)
    overall = aggregate_score(components)
    status, color = score_status(overall)
    evaluated = sum(component.markers_evaluated for component in components)
    logger.info(f"Health score {overall} ({status}) from {evaluated} evaluated markers")

    return HealthScoreReport(
        overall_score=overall,
        status=status,
        color=color,
        components=components,
        population_percentiles=population_percentiles(data),
        predictive_health=predict_health(overall, components, age),
    )
