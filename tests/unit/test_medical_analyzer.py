import json
import httpx
import pytest
from vitalis.schemas.analysis import FollowUpRecommendations, KeyFinding
from vitalis.schemas.reports import ExtractedMedicalData, LabValue
from vitalis.services.health_scorer import calculate_health_score
from vitalis.services.medical_analyzer import (
    DISCLAIMERS,
    MedicalReportAnalyzer,
    analyze_trends,
    fallback_analysis,
    get_analysis_prompt,
)

AI_ANALYSIS = {
    "overallAssessment": {
        "healthScore": 64,
        "status": "Concerning",
        "summary": "Elevated glucose suggests poor glycemic control.",
        "keyPoints": ["Glucose well above range"],
    },
    "keyFindings": [
        {"category": "Metabolic", "finding": "Glucose 250 mg/dL", "significance": "high",
         "explanation": "Hyperglycemia", "actionRequired": True},
        "not an object",
    ],
    "riskFactors": [{"factor": "Diabetes", "level": "very high", "description": "", "mitigation": ["Diet"]}],
    "recommendations": [{"category": "short-term", "priority": "urgent", "recommendation": "See a doctor"}],
    "lifestyle": {"diet": [{"type": "decrease", "food": "Sugar", "reason": "Glucose"}]},
    "followUp": {"urgentConsultation": True, "retestingSchedule": [{"test": "HbA1c", "timeframe": "3 months"}]},
    "redFlags": [{"finding": "Glucose 250", "severity": "severe", "action": "Call your doctor"}],
    "confidence": 0.1,
}


def ai_transport(content, status_code=200):
    def handler(request):
        return httpx.Response(status_code, json={"choices": [{"message": {"content": content}}]})
    return httpx.MockTransport(handler)


def test_prompt_includes_data_and_context(sample_extracted_data):
    prompt = get_analysis_prompt(sample_extracted_data, age=52, gender="female")
    assert '"parameter": "Glucose"' in prompt
    assert "- Age: 52" in prompt
    assert "- Gender: female" in prompt
    assert "overallAssessment" in prompt


def test_fallback_analysis(sample_extracted_data):
    score_report = calculate_health_score(sample_extracted_data)
    analysis = fallback_analysis(sample_extracted_data, score_report)

    assert analysis.source == "rule_based"
    assert analysis.confidence == 0.75
    assert analysis.overall_assessment.health_score == score_report.overall_score
    assert analysis.overall_assessment.summary == "Basic analysis completed. AI service unavailable."
    assert analysis.overall_assessment.key_points[:2] == [
        "Medical report processed",
        "Consult healthcare provider for detailed analysis",
    ]
    assert analysis.recommendations[0].category == "medical"
    assert analysis.recommendations[0].priority == "high"
    assert analysis.recommendations[0].timeline == "Within 1-2 weeks"
    assert analysis.disclaimers == DISCLAIMERS

    # the critical glucose value becomes a finding and a red flag
    assert analysis.key_findings[0].finding.startswith("Glucose: 250")
    assert analysis.key_findings[0].significance == "critical"
    assert analysis.red_flags[0].severity == "critical"
    assert analysis.follow_up.urgent_consultation is True
    assert analysis.follow_up.monitoring_params == ["Glucose"]


def test_fallback_attaches_score_sections(sample_extracted_data):
    analysis = fallback_analysis(sample_extracted_data)

    assert len(analysis.visual_analytics.health_score_breakdown) == 7
    assert analysis.comparative_analysis.population_percentiles[0].percentile == 50.0
    assert analysis.predictive_health.health_trajectory is not None


def test_fallback_is_deterministic(sample_extracted_data):
    first = fallback_analysis(sample_extracted_data).model_dump()
    second = fallback_analysis(sample_extracted_data).model_dump()
    assert first == second


def test_fallback_without_abnormal_values():
    data = ExtractedMedicalData(lab_values=[LabValue(parameter="Glucose", value=90.0, normal_range="70-100")])
    analysis = fallback_analysis(data)

    assert analysis.key_findings == []
    assert analysis.red_flags == []
    assert analysis.follow_up.urgent_consultation is False


@pytest.mark.asyncio
async def test_analyze_uses_fallback_when_disabled(sample_extracted_data, ai_disabled_settings):
    analyzer = MedicalReportAnalyzer(settings=ai_disabled_settings)
    analysis = await analyzer.analyze(sample_extracted_data)
    assert analysis.source == "rule_based"


@pytest.mark.asyncio
async def test_analyze_with_ai(sample_extracted_data, ai_enabled_settings):
    content = "```json\n" + json.dumps(AI_ANALYSIS) + "\n```"
    analyzer = MedicalReportAnalyzer(settings=ai_enabled_settings, transport=ai_transport(content))

    analysis = await analyzer.analyze(sample_extracted_data, age=52, gender="female")

    assert analysis.source == "ai_generated"
    assert analysis.confidence == 0.92
    assert analysis.disclaimers == DISCLAIMERS
    assert analysis.overall_assessment.health_score == 64
    assert analysis.overall_assessment.status == "concerning"
    assert len(analysis.key_findings) == 1
    assert analysis.risk_factors[0].level == "very_high"
    assert analysis.recommendations[0].category == "short_term"
    assert analysis.recommendations[0].timeline == "1-3 months"
    assert analysis.lifestyle.diet[0].food == "Sugar"
    assert analysis.follow_up.retesting_schedule[0].priority == "medium"
    # unknown severity falls back to the default
    assert analysis.red_flags[0].severity == "warning"
    assert analysis.predictive_health.health_trajectory.biological_age is not None


@pytest.mark.asyncio
async def test_analyze_clamps_ai_score(sample_extracted_data, ai_enabled_settings):
    content = json.dumps({"overallAssessment": {"healthScore": 140}})
    analyzer = MedicalReportAnalyzer(settings=ai_enabled_settings, transport=ai_transport(content))

    analysis = await analyzer.analyze(sample_extracted_data)
    assert analysis.overall_assessment.health_score == 100


@pytest.mark.asyncio
@pytest.mark.parametrize("content, status_code", [
    ("not json at all", 200),
    ("{}", 500),
    ('"just a string"', 200),
])
async def test_analyze_falls_back_on_ai_failure(sample_extracted_data, ai_enabled_settings, content, status_code):
    analyzer = MedicalReportAnalyzer(settings=ai_enabled_settings, transport=ai_transport(content, status_code))

    analysis = await analyzer.analyze(sample_extracted_data)

    assert analysis.source == "rule_based"
    assert analysis.confidence == 0.75
    assert analysis.overall_assessment.health_score == calculate_health_score(sample_extracted_data).overall_score


@pytest.mark.parametrize("value, expected", [
    ("false", False), ("False", False), ("no", False), ("", False),
    ("true", True), (" TRUE ", True), ("yes", True), (True, True), (False, False), (None, False),
])
def test_ai_flags_read_strings_literally(value, expected):
    finding = KeyFinding.model_validate({"finding": "Glucose 250", "actionRequired": value})
    follow_up = FollowUpRecommendations.model_validate({"urgentConsultation": value})
    assert finding.action_required is expected
    assert follow_up.urgent_consultation is expected


@pytest.mark.asyncio
async def test_analyze_with_string_flags(sample_extracted_data, ai_enabled_settings):
    content = json.dumps({
        "keyFindings": [{"finding": "HDL 55 mg/dL", "actionRequired": "false"}],
        "followUp": {"urgentConsultation": "false"},
    })
    analyzer = MedicalReportAnalyzer(settings=ai_enabled_settings, transport=ai_transport(content))

    analysis = await analyzer.analyze(sample_extracted_data)

    assert analysis.source == "ai_generated"
    assert analysis.key_findings[0].action_required is False
    assert analysis.follow_up.urgent_consultation is False


@pytest.mark.asyncio
async def test_analyze_falls_back_on_network_error(sample_extracted_data, ai_enabled_settings):
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    analyzer = MedicalReportAnalyzer(settings=ai_enabled_settings, transport=httpx.MockTransport(handler))
    analysis = await analyzer.analyze(sample_extracted_data)
    assert analysis.source == "rule_based"


class TestTrends:

    @staticmethod
    def report(value, normal_range="70-100", parameter="Glucose"):
        return ExtractedMedicalData(
            lab_values=[LabValue(parameter=parameter, value=value, normal_range=normal_range)]
        )

    def test_improving(self):
        trends = analyze_trends([self.report(150.0), self.report(110.0)])
        assert len(trends) == 1
        assert trends[0].parameter == "Glucose"
        assert trends[0].trend == "improving"
        assert trends[0].change_percent == pytest.approx(-26.7)

    def test_declining(self):
        trends = analyze_trends([self.report(95.0), self.report(140.0)])
        assert trends[0].trend == "declining"

    def test_stable(self):
        trends = analyze_trends([self.report(90.0), self.report(92.0)])
        assert trends[0].trend == "stable"

    def test_fluctuating(self):
        trends = analyze_trends([self.report(90.0), self.report(130.0), self.report(95.0)])
        assert trends[0].trend == "fluctuating"

    def test_needs_two_reports(self):
        reports = [self.report(90.0), self.report(5.0, "0.4-4.0", parameter="TSH")]
        assert analyze_trends(reports) == []

    def test_parameter_names_are_case_insensitive(self):
        trends = analyze_trends([self.report(150.0, parameter="GLUCOSE"), self.report(110.0)])
        assert len(trends) == 1
