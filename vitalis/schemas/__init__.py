"""This file contains the schemas for the application."""
from vitalis.schemas.reports import (
    LabValue,
    LabStatus,
    TestResult,
    ResultStatus,
    Medication,
    BloodPressure,
    VitalSigns,
    ExtractedMedicalData,
)
from vitalis.schemas.extraction import (
    ParsingMethod,
    Polarity,
    FindingKind,
    FormatAnalysis,
    Measurement,
    Finding,
    TraceabilityEntry,
    MedicationMention,
    SourceMetadata,
    OmniExtractionResult,
)
from vitalis.schemas.analysis import (
    AnalysisSource,
    MedicalAIAnalysis,
    HealthScoreComponent,
    HealthScoreReport,
    TrendAnalysis,
)
from vitalis.schemas.responses import (
    AnalyzeReportResponse,
    AnalyzeTextRequest,
    ErrorResponse,
    ParsingMetadata,
)

__all__ = [
    "LabValue",
    "LabStatus",
    "TestResult",
    "ResultStatus",
    "Medication",
    "BloodPressure",
    "VitalSigns",
    "ExtractedMedicalData",
    "ParsingMethod",
    "Polarity",
    "FindingKind",
    "FormatAnalysis",
    "Measurement",
    "Finding",
    "TraceabilityEntry",
    "MedicationMention",
    "SourceMetadata",
    "OmniExtractionResult",
    "AnalysisSource",
    "MedicalAIAnalysis",
    "HealthScoreComponent",
    "HealthScoreReport",
    "TrendAnalysis",
    "AnalyzeReportResponse",
    "AnalyzeTextRequest",
    "ErrorResponse",
    "ParsingMetadata",
]
