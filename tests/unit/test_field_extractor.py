import json
import pytest
from vitalis.schemas.extraction import ParsingMethod
from vitalis.schemas.reports import TestResult as LabTestResult
from vitalis.services.field_extractor import (
    NARRATIVE_CONFIDENCE,
    SCAN_CONFIDENCE_FACTOR,
    blood_pressure_status,
    extract,
    parse_handwritten,
    parse_narrative,
    parse_scan,
    parse_structured,
    parse_tabular,
)


class TestTabular:

    def test_glucose_line(self, sample_glucose_text):
        result = parse_tabular(sample_glucose_text)
        labs = result.extracted_data.lab_values

        assert len(labs) == 1
        glucose = labs[0]
        assert glucose.parameter == "Glucose"
        assert glucose.value == 250.0
        assert glucose.unit == "mg/dL"
        assert glucose.normal_range == "70-100"
        assert glucose.flagged is True
        assert glucose.status == "critical"

        test_result = result.extracted_data.test_results[0]
        assert test_result.category == "metabolic"
        assert test_result.status == "critical"

    def test_loinc_traceability(self, sample_glucose_text):
        result = parse_tabular(sample_glucose_text)
        loinc = [entry for entry in result.traceability if entry.database == "LOINC" and entry.reference == "2345-7"]
        assert loinc

    def test_columnar_table(self, sample_lab_text):
        result = parse_tabular(sample_lab_text)
        names = [lab.parameter for lab in result.extracted_data.lab_values]

        assert names == ["WBC", "RBC", "Hemoglobin", "Hematocrit", "Platelets"]
        wbc = result.extracted_data.lab_values[0]
        assert wbc.normal_range == "4.5-11.0"
        assert wbc.unit == "K/uL"
        assert not any(lab.flagged for lab in result.extracted_data.lab_values)

    def test_pipe_row_with_flag(self):
        result = parse_tabular("| Hemoglobin | 10.5 L | g/dL | 12-15.5 |")
        lab = result.extracted_data.lab_values[0]

        assert lab.parameter == "Hemoglobin"
        assert lab.value == 10.5
        assert lab.unit == "g/dL"
        assert lab.normal_range == "12-15.5"
        assert lab.flagged is True
        assert lab.status == "abnormal"

    def test_vocabulary_range_fallback(self):
        result = parse_tabular("Creatinine: 1.0 mg/dL")
        lab = result.extracted_data.lab_values[0]
        assert lab.normal_range == "0.6-1.3"
        assert lab.flagged is False

    def test_unknown_parameter_without_range(self):
        result = parse_tabular("Widget Index: 12 mg/dL")
        lab = result.extracted_data.lab_values[0]
        assert lab.normal_range == "Reference range not available"
        assert lab.status == "normal"

    def test_metadata_lines_are_not_labs(self):
        result = parse_tabular("Age: 45 years\nDate: 2024-01-15\nGlucose: 95 mg/dL")
        assert [lab.parameter for lab in result.extracted_data.lab_values] == ["Glucose"]
        assert result.extracted_data.report_date == "2024-01-15"

    def test_vitals(self):
        result = parse_tabular("BP: 150/95 mmHg\nPulse: 88 bpm\nGlucose: 95 mg/dL")
        vitals = result.extracted_data.vital_signs

        assert vitals.blood_pressure.systolic == 150
        assert vitals.blood_pressure.diastolic == 95
        assert vitals.blood_pressure.status == "stage_2_hypertension"
        assert vitals.heart_rate == 88
        assert len(result.extracted_data.lab_values) == 1


class TestHandwritten:

    def test_prescription(self, sample_prescription_text):
        result = parse_handwritten(sample_prescription_text)
        data = result.extracted_data

        assert [med.name for med in data.medications] == ["Paracetamol", "Amoxicillin"]
        paracetamol = data.medications[0]
        assert paracetamol.dosage == "500mg"
        assert paracetamol.frequency == "BD"
        assert paracetamol.duration == "5 days"
        assert data.medications[1].frequency == "TDS"
        assert data.medications[1].duration == "7 days"

        assert data.diagnoses == ["Viral fever"]
        assert data.vital_signs.blood_pressure.systolic == 130
        assert result.parsing_method == "handwritten"
        assert result.confidence == 0.75

    def test_medication_mentions(self, sample_prescription_text):
        result = parse_handwritten(sample_prescription_text)
        assert result.medications[0].dose == "500mg"
        assert result.medications[0].source_location.startswith("line ")
        assert result.medications[0].confidence == 0.85

    def test_complaint_finding(self, sample_prescription_text):
        result = parse_handwritten(sample_prescription_text)
        complaints = [finding for finding in result.findings if finding.kind == "complaint"]
        assert complaints[0].text == "complaints of fever and cough"

    def test_lab_value_in_note(self):
        result = parse_handwritten("Sugar 180 mg/dL, unclear writing")
        lab = result.extracted_data.lab_values[0]
        assert lab.value == 180.0
        assert lab.unit == "mg/dL"


class TestNarrative:

    def test_radiology(self, sample_radiology_text):
        result = parse_narrative(sample_radiology_text)

        negations = [finding for finding in result.findings if finding.kind == "negation"]
        assert any("without focal consolidation" in finding.text for finding in negations)
        assert all(finding.polarity == "negative" for finding in negations)
        assert "Normal chest radiograph" in result.extracted_data.diagnoses
        assert result.confidence == NARRATIVE_CONFIDENCE

    def test_negated_positive_mention(self):
        result = parse_narrative("No evidence of fracture.")
        kinds = [finding.kind for finding in result.findings]
        assert "negation" in kinds
        assert "positive_mention" not in kinds

    def test_positive_mention(self):
        result = parse_narrative("CT shows a small nodule in the left lung.")
        positives = [finding for finding in result.findings if finding.kind == "positive_mention"]
        assert positives[0].text == "shows a small nodule in the left lung"
        assert positives[0].polarity == "positive"

    def test_temporal_trend(self):
        result = parse_narrative("Cough improved since last visit. Rash worsened from baseline.")
        scores = [finding.trend_score for finding in result.findings if finding.kind == "temporal"]
        assert scores == [1, -1]

    def test_measurements(self):
        result = parse_narrative("Hemoglobin was 9.8 g/dL.\nEjection fraction was 55 %.")
        labs = result.extracted_data.lab_values
        assert [lab.parameter for lab in labs] == ["Hemoglobin"]
        assert labs[0].normal_range == "12-15.5"
        assert labs[0].flagged is True

        measurements = [finding for finding in result.findings if finding.kind == "measurement"]
        assert measurements[0].measurement.value == 55.0
        assert measurements[0].measurement.unit == "%"

    def test_recommendation_section(self):
        text = "Assessment: Mild anemia\nRecommendations:\n1. Iron rich diet\n2. Repeat CBC in 3 months"
        result = parse_narrative(text)
        assert result.extracted_data.diagnoses == ["Mild anemia"]
        assert result.extracted_data.recommendations == ["Iron rich diet", "Repeat CBC in 3 months"]


class TestStructured:

    def test_lab_results(self, sample_json_report):
        result = parse_structured(sample_json_report)
        data = result.extracted_data

        assert len(data.lab_values) == 2
        glucose = data.lab_values[0]
        assert glucose.parameter == "Glucose"
        assert glucose.value == 250.0
        assert glucose.normal_range == "70-100"
        assert glucose.status == "critical"
        assert glucose.flagged is True

        assert data.medications[0].name == "Metformin"
        assert data.medications[0].dosage == "500mg"
        assert data.diagnoses == ["Type 2 diabetes mellitus"]
        assert data.report_date == "2024-01-15"
        assert result.confidence == 0.96

    def test_test_results_mirror_lab_results(self, sample_json_report):
        test_results = parse_structured(sample_json_report).extracted_data.test_results

        assert all(isinstance(item, LabTestResult) for item in test_results)
        glucose = test_results[0]
        assert glucose.test_name == "Glucose"
        assert glucose.reference_range == "70-100"
        assert glucose.category == "metabolic"

    def test_loinc_location(self, sample_json_report):
        result = parse_structured(sample_json_report)
        entry = next(entry for entry in result.traceability if entry.reference == "2345-7")
        assert entry.source_location == "json:labResults[0]"

    def test_skips_non_object_entries(self):
        result = parse_structured('{"labResults": ["bad", {"name": "Glucose", "value": 90}]}')
        labs = result.extracted_data.lab_values
        assert len(labs) == 1
        assert labs[0].normal_range == "N/A"
        assert labs[0].status == "normal"

    @pytest.mark.parametrize("status", [["high"], {"level": "high"}, 3, "elevated"])
    def test_unusable_status_defaults_to_normal(self, status):
        text = json.dumps({"labResults": [
            {"name": "Glucose", "value": 250, "unit": "mg/dL"},
            {"name": "LDL", "value": 190, "unit": "mg/dL", "status": status},
        ]})
        labs = parse_structured(text).extracted_data.lab_values

        assert [lab.parameter for lab in labs] == ["Glucose", "LDL"]
        assert labs[1].status == "normal"

    @pytest.mark.parametrize("flagged, expected", [(True, True), (False, False), ("false", False), ("true", False), (1, False)])
    def test_flagged_accepts_booleans_only(self, flagged, expected):
        text = json.dumps({"labResults": [{"name": "LDL", "value": 190, "flagged": flagged}]})
        lab = parse_structured(text).extracted_data.lab_values[0]
        assert lab.flagged is expected

    def test_malformed_json_fallback(self):
        text = '{"glucose": "250 mg/dL", "patient": "John", "cholesterol": 180'
        result = parse_structured(text)
        labs = result.extracted_data.lab_values

        assert [lab.parameter for lab in labs] == ["glucose", "cholesterol"]
        assert labs[0].unit == "mg/dL"
        assert result.source_metadata.layout == "semi_structured"


def test_scan_discounts_narrative_confidence(sample_radiology_text):
    result = parse_scan(sample_radiology_text)
    assert result.parsing_method == "scan"
    assert result.confidence == pytest.approx(NARRATIVE_CONFIDENCE * SCAN_CONFIDENCE_FACTOR)


@pytest.mark.parametrize("method", list(ParsingMethod))
def test_empty_input(method):
    result = extract("", method)
    data = result.extracted_data
    assert data.lab_values == []
    assert data.test_results == []
    assert data.medications == []
    assert data.diagnoses == []
    assert result.findings == []
    assert result.parsing_method == method.value


@pytest.mark.parametrize("fixture_name, method", [
    ("sample_lab_text", ParsingMethod.TABULAR),
    ("sample_prescription_text", ParsingMethod.HANDWRITTEN),
    ("sample_radiology_text", ParsingMethod.NARRATIVE),
    ("sample_json_report", ParsingMethod.STRUCTURED),
])
def test_extraction_is_deterministic(request, fixture_name, method):
    text = request.getfixturevalue(fixture_name)
    assert extract(text, method).model_dump() == extract(text, method).model_dump()


@pytest.mark.parametrize("systolic, diastolic, status", [
    (115, 75, "normal"),
    (125, 75, "elevated"),
    (132, 82, "stage_1_hypertension"),
    (145, 92, "stage_2_hypertension"),
])
def test_blood_pressure_status(systolic, diastolic, status):
    assert blood_pressure_status(systolic, diastolic) == status
