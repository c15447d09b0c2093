"""Service for turning extracted report data into a patient-facing analysis."""

import logging
import json
from typing import Any, Dict, List, Optional
import httpx
from pydantic import ValidationError
from vitalis.config.settings import Settings, get_settings
from vitalis.schemas.analysis import (
    AIRecommendation,
    AnalysisSource,
    ComparativeAnalysis,
    FollowUpRecommendations,
    HealthScoreReport,
    KeyFinding,
    MedicalAIAnalysis,
    OverallAssessment,
    RedFlag,
    RiskFactor,
    TrendAnalysis,
    VisualAnalytics,
)
from vitalis.schemas.reports import ExtractedMedicalData, LabValue
from vitalis.services.ai_client import complete_json
from vitalis.services.health_scorer import CATEGORIES, calculate_health_score
from vitalis.utils.exceptions import AIServiceError
from vitalis.utils.ranges import parse_range

logger = logging.getLogger(__name__)

AI_CONFIDENCE = 0.92
FALLBACK_CONFIDENCE = 0.75

# Relative change below which a parameter counts as stable
STABLE_CHANGE_PERCENT = 5.0

SYSTEM_PROMPT = (
    "You are a medical AI expert specializing in clinical report analysis and patient care recommendations."
)

# Keys the AI response may not set; they are computed locally
LOCAL_SECTIONS = ("source", "visualAnalytics", "comparativeAnalysis", "predictiveHealth", "confidence", "disclaimers")

DISCLAIMERS = [
    "This AI analysis is for informational purposes only",
    "Not a substitute for professional medical advice",
    "Consult your healthcare provider for medical decisions",
    "Emergency symptoms require immediate medical attention",
    "AI analysis based on provided data only",
]


def get_analysis_prompt(data: ExtractedMedicalData, age: Optional[int] = None, gender: Optional[str] = None) -> str:
    """Generate the analysis prompt with the extracted report data and patient context."""
    report_json = json.dumps(data.model_dump(by_alias=True, exclude_none=True), indent=2)
    age_context = str(age) if age is not None else "Not specified"
    gender_context = gender if gender else "Not specified"

    return f"""
You are a world-class medical AI assistant with expertise in clinical pathology, internal medicine, and preventive healthcare. Analyze this medical report data and provide comprehensive insights.

PATIENT CONTEXT:
- Age: {age_context}
- Gender: {gender_context}

MEDICAL REPORT DATA:
{report_json}

ANALYSIS REQUIREMENTS:
1. Overall Health Assessment (0-100 score)
2. Key Findings with clinical significance
3. Risk Factor Analysis
4. Immediate & Long-term Recommendations
5. Lifestyle Modifications
6. Red Flags requiring urgent attention
7. Follow-up care recommendations

CLINICAL CONTEXT:
- Use evidence-based medicine guidelines
- Consider age, gender, and existing conditions
- Provide actionable, specific recommendations
- Flag any critical values or concerning patterns

IMPORTANT: Return ONLY a valid JSON object with these keys:
- overallAssessment: {{ healthScore, status, summary, keyPoints }}
- keyFindings: [{{ category, finding, significance, explanation, actionRequired }}]
- riskFactors: [{{ factor, level, description, mitigation }}]
- recommendations: [{{ category, priority, recommendation, rationale, timeline }}]
- lifestyle: {{ diet, exercise, sleep, stress, supplements }}
- followUp: {{ urgentConsultation, specialistReferral, retestingSchedule, monitoringParams }}
- redFlags: [{{ finding, severity, action, timeframe }}]

Do not include any explanations, markdown formatting, or additional text. Return ONLY the JSON object.
"""


def _lab_label(lab: LabValue) -> str:
    return f"{lab.parameter}: {lab.value} {lab.unit}".strip()


def _flagged_labs(data: ExtractedMedicalData) -> List[LabValue]:
    return [lab for lab in data.lab_values if lab.flagged or lab.status != "normal"]


def _numeric(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def attach_score_sections(analysis: MedicalAIAnalysis, score_report: HealthScoreReport) -> MedicalAIAnalysis:
    """Attach the locally computed breakdown, percentiles and predictions."""
    analysis.visual_analytics = VisualAnalytics(health_score_breakdown=score_report.components)
    analysis.comparative_analysis = ComparativeAnalysis(population_percentiles=score_report.population_percentiles)
    analysis.predictive_health = score_report.predictive_health
    return analysis


def fallback_analysis(data: ExtractedMedicalData, score_report: Optional[HealthScoreReport] = None) -> MedicalAIAnalysis:
    """
    Build a deterministic rule-based analysis.

    Used whenever the AI service is disabled, unreachable or returns
    something unusable. The health score is the local scorer's aggregate.
    """
    score_report = score_report or calculate_health_score(data)
    flagged = _flagged_labs(data)
    critical = [lab for lab in flagged if lab.status == "critical"]

    key_points = ["Medical report processed", "Consult healthcare provider for detailed analysis"]
    if flagged:
        key_points.append(f"{len(flagged)} lab value(s) outside the reference range")

    key_findings = [
        KeyFinding(
            category="Laboratory",
            finding=_lab_label(lab),
            significance="critical" if lab.status == "critical" else "medium",
            explanation=f"Value is outside the reference range ({lab.normal_range})",
            action_required=lab.status == "critical",
        )
        for lab in flagged
    ]

    risk_factors = [
        RiskFactor(
            factor=CATEGORIES[component.category].label,
            level="high" if component.status == "critical" else "moderate",
            description=component.impact,
            mitigation=["Discuss these results with your healthcare provider"],
        )
        for component in score_report.components
        if component.status in ("concerning", "critical")
    ]

    red_flags = [
        RedFlag(
            finding=_lab_label(lab),
            severity="critical",
            action="Contact your healthcare provider promptly",
            timeframe="Within 24-48 hours",
        )
        for lab in critical
    ]

    analysis = MedicalAIAnalysis(
        source=AnalysisSource.RULE_BASED,
        overall_assessment=OverallAssessment(
            health_score=score_report.overall_score,
            status=score_report.status,
            summary="Basic analysis completed. AI service unavailable.",
            key_points=key_points,
        ),
        key_findings=key_findings,
        risk_factors=risk_factors,
        recommendations=[
            AIRecommendation(
                category="medical",
                priority="high",
                recommendation="Consult with your healthcare provider to discuss these results",
                rationale="Professional medical interpretation recommended",
                timeline="Within 1-2 weeks",
            )
        ],
        follow_up=FollowUpRecommendations(
            urgent_consultation=bool(critical),
            monitoring_params=[lab.parameter for lab in flagged],
        ),
        red_flags=red_flags,
        confidence=FALLBACK_CONFIDENCE,
        disclaimers=list(DISCLAIMERS),
    )
    return attach_score_sections(analysis, score_report)


def _trend_for(parameter: str, values: List[float], normal_range: str) -> TrendAnalysis:
    first, last = values[0], values[-1]
    change_percent = None
    if first != 0:
        change_percent = round((last - first) / abs(first) * 100, 1)

    diffs = [b - a for a, b in zip(values, values[1:])]
    if len(values) > 2 and any(d > 0 for d in diffs) and any(d < 0 for d in diffs):
        return TrendAnalysis(
            parameter=parameter,
            trend="fluctuating",
            change_percent=change_percent,
            significance="Values moved in both directions across reports",
        )

    if change_percent is not None and abs(change_percent) < STABLE_CHANGE_PERCENT:
        return TrendAnalysis(
            parameter=parameter,
            trend="stable",
            change_percent=change_percent,
            significance="No meaningful change between reports",
        )

    bounds = parse_range(normal_range)
    if bounds is None:
        return TrendAnalysis(
            parameter=parameter,
            trend="stable",
            change_percent=change_percent,
            significance="No reference range to judge the direction of change",
        )

    low, high = bounds

    def distance(value: float) -> float:
        if low is not None and value < low:
            return low - value
        if high is not None and value > high:
            return value - high
        return 0.0

    before, after = distance(first), distance(last)
    if after < before:
        trend, significance = "improving", "Moved toward the reference range"
    elif after > before:
        trend, significance = "declining", "Moved away from the reference range"
    else:
        trend, significance = "stable", "Remained within the reference range"
    return TrendAnalysis(parameter=parameter, trend=trend, change_percent=change_percent, significance=significance)


def analyze_trends(reports: List[ExtractedMedicalData]) -> List[TrendAnalysis]:
    """
    Compare lab values across reports given in chronological order.

    A parameter is reported once it has numeric values in at least two
    reports. Direction is judged against the most recent reference range.
    """
    series: Dict[str, List[float]] = {}
    names: Dict[str, str] = {}
    ranges: Dict[str, str] = {}

    for report in reports:
        seen = set()
        for lab in report.lab_values:
            key = lab.parameter.strip().lower()
            value = _numeric(lab.value)
            if value is None or key in seen:
                continue
            seen.add(key)
            series.setdefault(key, []).append(value)
            names.setdefault(key, lab.parameter.strip())
            if parse_range(lab.normal_range) is not None:
                ranges[key] = lab.normal_range

    trends = [
        _trend_for(names[key], values, ranges.get(key, ""))
        for key, values in series.items()
        if len(values) >= 2
    ]
    logger.info(f"Trend analysis over {len(reports)} reports: {len(trends)} parameters compared")
    return trends


class MedicalReportAnalyzer:
    """Produces an analysis from extracted data, via the AI service when available."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        self.transport = transport

    async def analyze(
        self,
        data: ExtractedMedicalData,
        age: Optional[int] = None,
        gender: Optional[str] = None,
    ) -> MedicalAIAnalysis:
        """
        Analyze extracted report data.

        Args:
            data: Extracted report data
            age: Patient age in years
            gender: Patient gender

        Returns:
            MedicalAIAnalysis from the AI service, or the rule-based
            fallback when the service is disabled or fails
        """
        score_report = calculate_health_score(data, age)

        if not self.settings.ai_enabled:
            logger.info("AI analysis disabled; using rule-based analysis")
            return fallback_analysis(data, score_report)

        try:
            raw = await complete_json(
                SYSTEM_PROMPT,
                get_analysis_prompt(data, age, gender),
                settings=self.settings,
                transport=self.transport,
            )
            for key in LOCAL_SECTIONS:
                raw.pop(key, None)
            analysis = MedicalAIAnalysis.model_validate({**raw, "source": AnalysisSource.AI_GENERATED})
        except AIServiceError as e:
            logger.warning(f"AI analysis unavailable, falling back to rule-based analysis: {str(e)}")
            return fallback_analysis(data, score_report)
        except (ValidationError, TypeError) as e:
            logger.error(f"AI response did not match the analysis schema: {str(e)}", exc_info=True)
            return fallback_analysis(data, score_report)

        analysis.confidence = AI_CONFIDENCE
        analysis.disclaimers = list(DISCLAIMERS)
        logger.info(f"AI analysis completed with health score {analysis.overall_assessment.health_score}")
        return attach_score_sections(analysis, score_report)
