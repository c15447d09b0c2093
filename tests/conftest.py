"""
Pytest configuration and shared fixtures for testing.
"""

import json
import pytest
from vitalis.config.settings import Settings, reset_settings
from vitalis.schemas.reports import BloodPressure, ExtractedMedicalData, LabValue, VitalSigns


@pytest.fixture
def sample_glucose_text():
    """Single out-of-range glucose line"""
    return "Glucose: 250 mg/dL (Normal: 70-100)"


@pytest.fixture
def sample_lab_text():
    """Sample lab report text for testing"""
    return """
    Quest Diagnostics Laboratory Report

    Patient: John Doe
    Date: 2024-01-15

    COMPLETE BLOOD COUNT (CBC)

    Test                Result      Reference Range    Flag
    ----------------------------------------------------------------
    WBC                 7.2         4.5-11.0 K/uL
    RBC                 4.8         4.5-5.5 M/uL
    Hemoglobin          14.2        13.5-17.5 g/dL
    Hematocrit          42.1        38.8-50.0 %
    Platelets           245         150-400 K/uL
    """


@pytest.fixture
def sample_radiology_text():
    """Sample radiology report text"""
    return """
    RADIOLOGY REPORT

    Examination: Chest X-Ray PA and Lateral

    CLINICAL INDICATION: Cough

    FINDINGS:
    The lungs are clear without focal consolidation, effusion, or pneumothorax.
    The cardiac silhouette is normal in size and contour.

    IMPRESSION:
    Normal chest radiograph.
    """


@pytest.fixture
def sample_prescription_text():
    """Transcribed handwritten prescription"""
    return """
    Patient complaints of fever and cough
    Tab Paracetamol 500 mg BD x 5 days
    Cap Amoxicillin 250 mg TDS for 7 days
    BP: 130/85
    Handwritten note, some words illegible
    Diagnosis: Viral fever
    """


@pytest.fixture
def sample_json_report():
    """Structured report as JSON text"""
    return json.dumps({
        "labResults": [
            {"name": "Glucose", "value": 250, "unit": "mg/dL", "normalRange": "70-100",
             "status": "critical", "flagged": True},
            {"name": "HDL Cholesterol", "value": 35, "unit": "mg/dL", "normalRange": ">40",
             "status": "abnormal", "flagged": True},
        ],
        "medications": [
            {"name": "Metformin", "dosage": "500mg", "frequency": "BD", "indication": "Diabetes"},
        ],
        "diagnoses": ["Type 2 diabetes mellitus"],
        "reportDate": "2024-01-15",
    })


@pytest.fixture
def sample_extracted_data():
    """Extracted data with a mix of normal and abnormal values"""
    return ExtractedMedicalData(
        lab_values=[
            LabValue(parameter="Glucose", value=250.0, unit="mg/dL", normal_range="70-100",
                     status="critical", flagged=True),
            LabValue(parameter="Total Cholesterol", value=190.0, unit="mg/dL", normal_range="<200"),
            LabValue(parameter="HDL Cholesterol", value=55.0, unit="mg/dL", normal_range=">40"),
        ],
        vital_signs=VitalSigns(blood_pressure=BloodPressure(systolic=118, diastolic=76)),
    )


@pytest.fixture
def ai_disabled_settings():
    return Settings(ai_api_key=None, enable_ai_analysis=False)


@pytest.fixture
def ai_enabled_settings():
    return Settings(ai_api_key="test-key", enable_ai_analysis=True)


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Run every test without an AI key and with fresh settings."""
    monkeypatch.delenv("AI_API_KEY", raising=False)
    monkeypatch.delenv("OPEN_ROUTER_API_KEY", raising=False)
    monkeypatch.setenv("ENABLE_AI_ANALYSIS", "false")
    reset_settings()
    yield
    reset_settings()
