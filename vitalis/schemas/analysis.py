"""Analysis schemas shared by the AI-generated and rule-based analyzers.

Both variants validate into MedicalAIAnalysis. Input from the AI service is
untrusted, so every field has a default and out-of-vocabulary values are
coerced to that default instead of failing validation.
"""

from enum import Enum
from typing import Any, List, Optional
from pydantic import Field, field_validator, model_validator
from vitalis.schemas.base import CamelModel


class AnalysisSource(str, Enum):
    """Which analyzer produced an analysis."""
    AI_GENERATED = "ai_generated"
    RULE_BASED = "rule_based"


def coerce_choice(value: Any, allowed: tuple, default: str) -> str:
    """Map a loosely formatted label onto one of `allowed`, or return `default`."""
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, str):
        normalized = value.strip().lower().replace(" ", "_").replace("-", "_")
        if normalized in allowed:
            return normalized
    return default


def dict_items(value: Any) -> list:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, (dict, CamelModel))]


def str_items(value: Any) -> list:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


def as_flag(value: Any) -> bool:
    """Read a yes/no value; strings count only when they spell true or yes."""
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes")
    return bool(value)


class AnalysisModel(CamelModel):
    """Base for analysis sections: null fields fall back to their defaults."""

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


class OverallAssessment(AnalysisModel):
    health_score: float = Field(default=75, description="Overall score, 0-100")
    status: str = Field(default="fair", description="excellent, good, fair, concerning or critical")
    summary: str = "Medical report analysis completed"
    key_points: List[str] = Field(default_factory=list)

    @field_validator("health_score", mode="before")
    @classmethod
    def _clamp_score(cls, value: Any) -> float:
        try:
            score = float(value)
        except (TypeError, ValueError):
            return 75.0
        if score != score:  # NaN
            return 75.0
        return max(0.0, min(100.0, score))

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> str:
        return coerce_choice(value, ("excellent", "good", "fair", "concerning", "critical"), "fair")

    @field_validator("key_points", mode="before")
    @classmethod
    def _points(cls, value: Any) -> list:
        return str_items(value)


class KeyFinding(AnalysisModel):
    category: str = "General"
    finding: str = ""
    significance: str = "medium"
    explanation: str = ""
    action_required: bool = False

    @field_validator("significance", mode="before")
    @classmethod
    def _significance(cls, value: Any) -> str:
        return coerce_choice(value, ("low", "medium", "high", "critical"), "medium")

    @field_validator("action_required", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> bool:
        return as_flag(value)


class RiskFactor(AnalysisModel):
    factor: str = ""
    level: str = "moderate"
    description: str = ""
    mitigation: List[str] = Field(default_factory=list)

    @field_validator("level", mode="before")
    @classmethod
    def _level(cls, value: Any) -> str:
        return coerce_choice(value, ("low", "moderate", "high", "very_high"), "moderate")

    @field_validator("mitigation", mode="before")
    @classmethod
    def _mitigation(cls, value: Any) -> list:
        return str_items(value)


class AIRecommendation(AnalysisModel):
    category: str = "lifestyle"
    priority: str = "medium"
    recommendation: str = ""
    rationale: str = ""
    timeline: str = "1-3 months"

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, value: Any) -> str:
        return coerce_choice(value, ("immediate", "short_term", "long_term", "lifestyle", "medical"), "lifestyle")

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, value: Any) -> str:
        return coerce_choice(value, ("low", "medium", "high", "urgent"), "medium")


class DietRecommendation(AnalysisModel):
    type: str = "include"
    food: str = ""
    reason: str = ""
    target_amount: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def _type(cls, value: Any) -> str:
        return coerce_choice(value, ("increase", "decrease", "avoid", "include"), "include")


class ExerciseRecommendation(AnalysisModel):
    type: str = "cardio"
    activity: str = ""
    frequency: str = ""
    duration: str = ""
    intensity: str = ""
    benefit: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def _type(cls, value: Any) -> str:
        return coerce_choice(value, ("cardio", "strength", "flexibility", "balance"), "cardio")


class SleepRecommendation(AnalysisModel):
    target_hours: float = 8
    sleep_hygiene: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)

    @field_validator("sleep_hygiene", "improvements", mode="before")
    @classmethod
    def _items(cls, value: Any) -> list:
        return str_items(value)


class StressRecommendation(AnalysisModel):
    technique: str = ""
    frequency: str = ""
    benefit: str = ""


class SupplementRecommendation(AnalysisModel):
    supplement: str = ""
    dosage: str = ""
    reason: str = ""
    duration: str = ""
    caution: Optional[str] = None


class LifestyleRecommendations(AnalysisModel):
    diet: List[DietRecommendation] = Field(default_factory=list)
    exercise: List[ExerciseRecommendation] = Field(default_factory=list)
    sleep: List[SleepRecommendation] = Field(default_factory=list)
    stress: List[StressRecommendation] = Field(default_factory=list)
    supplements: List[SupplementRecommendation] = Field(default_factory=list)

    @field_validator("diet", "exercise", "sleep", "stress", "supplements", mode="before")
    @classmethod
    def _items(cls, value: Any) -> list:
        return dict_items(value)


class RetestRecommendation(AnalysisModel):
    test: str = ""
    timeframe: str = ""
    reason: str = ""
    priority: str = "medium"

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, value: Any) -> str:
        return coerce_choice(value, ("low", "medium", "high"), "medium")


class FollowUpRecommendations(AnalysisModel):
    urgent_consultation: bool = False
    specialist_referral: List[str] = Field(default_factory=list)
    retesting_schedule: List[RetestRecommendation] = Field(default_factory=list)
    monitoring_params: List[str] = Field(default_factory=list)

    @field_validator("urgent_consultation", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> bool:
        return as_flag(value)

    @field_validator("specialist_referral", "monitoring_params", mode="before")
    @classmethod
    def _strings(cls, value: Any) -> list:
        return str_items(value)

    @field_validator("retesting_schedule", mode="before")
    @classmethod
    def _retests(cls, value: Any) -> list:
        return dict_items(value)


class RedFlag(AnalysisModel):
    finding: str = ""
    severity: str = "warning"
    action: str = ""
    timeframe: str = "Within 1 week"

    @field_validator("severity", mode="before")
    @classmethod
    def _severity(cls, value: Any) -> str:
        return coerce_choice(value, ("warning", "urgent", "critical"), "warning")


class TrendAnalysis(AnalysisModel):
    parameter: str = ""
    trend: str = "stable"
    change_percent: Optional[float] = None
    significance: str = ""

    @field_validator("trend", mode="before")
    @classmethod
    def _trend(cls, value: Any) -> str:
        return coerce_choice(value, ("improving", "stable", "declining", "fluctuating"), "stable")


class HealthScoreComponent(CamelModel):
    """Score for one health category."""

    category: str
    score: float = Field(..., ge=0, le=100)
    weight: float
    status: str
    impact: str
    color: str
    markers_evaluated: int = Field(default=0, description="Lab values that contributed to this score")


class VisualAnalytics(CamelModel):
    health_score_breakdown: List[HealthScoreComponent] = Field(default_factory=list)


class PopulationPercentile(CamelModel):
    parameter: str
    value: float
    percentile: float
    interpretation: str


class ComparativeAnalysis(CamelModel):
    population_percentiles: List[PopulationPercentile] = Field(default_factory=list)


class RiskProjection(CamelModel):
    category: str
    five_year_risk: float
    ten_year_risk: float


class HealthTrajectory(CamelModel):
    trajectory: str = Field(..., description="improving, stable or declining")
    biological_age: Optional[float] = None
    projected_lifespan: float
    healthspan: float


class PredictiveHealth(CamelModel):
    future_risk_projections: List[RiskProjection] = Field(default_factory=list)
    health_trajectory: HealthTrajectory


class HealthScoreReport(CamelModel):
    """Output of the local health scorer."""

    overall_score: int = Field(..., ge=0, le=100)
    status: str
    color: str
    components: List[HealthScoreComponent] = Field(default_factory=list)
    population_percentiles: List[PopulationPercentile] = Field(default_factory=list)
    predictive_health: PredictiveHealth


class MedicalAIAnalysis(AnalysisModel):
    """Analysis of one report, produced by the AI service or the rule-based fallback."""

    source: AnalysisSource
    overall_assessment: OverallAssessment = Field(default_factory=OverallAssessment)
    key_findings: List[KeyFinding] = Field(default_factory=list)
    risk_factors: List[RiskFactor] = Field(default_factory=list)
    recommendations: List[AIRecommendation] = Field(default_factory=list)
    lifestyle: LifestyleRecommendations = Field(default_factory=LifestyleRecommendations)
    follow_up: FollowUpRecommendations = Field(default_factory=FollowUpRecommendations)
    red_flags: List[RedFlag] = Field(default_factory=list)
    trends: List[TrendAnalysis] = Field(default_factory=list)
    visual_analytics: Optional[VisualAnalytics] = None
    comparative_analysis: Optional[ComparativeAnalysis] = None
    predictive_health: Optional[PredictiveHealth] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    disclaimers: List[str] = Field(default_factory=list)

    @field_validator("key_findings", "risk_factors", "recommendations", "red_flags", "trends", mode="before")
    @classmethod
    def _items(cls, value: Any) -> list:
        return dict_items(value)

    @field_validator("overall_assessment", "lifestyle", "follow_up", mode="before")
    @classmethod
    def _section(cls, value: Any) -> Any:
        if isinstance(value, (dict, CamelModel)):
            return value
        return {}

    @field_validator("disclaimers", mode="before")
    @classmethod
    def _disclaimers(cls, value: Any) -> list:
        return str_items(value)
