"""Report schemas for extracted medical data."""

from enum import Enum
from typing import List, Optional, Union
from pydantic import Field
from vitalis.schemas.base import CamelModel


class LabStatus(str, Enum):
    """Lab value status against its normal range."""
    NORMAL = "normal"
    ABNORMAL = "abnormal"
    CRITICAL = "critical"


class ResultStatus(str, Enum):
    """Test result status for category-based display."""
    NORMAL = "normal"
    HIGH = "high"
    LOW = "low"
    CRITICAL = "critical"
    BORDERLINE = "borderline"


class LabValue(CamelModel):
    """Single named clinical measurement extracted from a report."""

    parameter: str = Field(..., description="Parameter name as written in the report (e.g., 'Glucose')")
    value: Union[float, str] = Field(..., description="Measured value; text when the report gives no number")
    unit: str = Field(default="", description="Unit of measure (e.g., 'mg/dL')")
    normal_range: str = Field(default="N/A", description="Normal range (e.g., '70-100', '<200')")
    status: LabStatus = Field(default=LabStatus.NORMAL, description="Status against the normal range")
    flagged: bool = Field(default=False, description="Whether the value lies outside the normal range")


class TestResult(CamelModel):
    """Lab value shaped for category-based display."""

    test_name: str = Field(..., description="Test name")
    value: Union[float, str] = Field(..., description="Measured value")
    unit: Optional[str] = Field(default=None, description="Unit of measure")
    reference_range: str = Field(default="N/A", description="Reference range")
    status: ResultStatus = Field(default=ResultStatus.NORMAL, description="Result status")
    category: str = Field(default="general", description="Display category (e.g., 'lipid', 'metabolic')")


class Medication(CamelModel):
    """Medication mentioned in a report."""

    name: str = Field(..., description="Medication name")
    dosage: str = Field(default="", description="Dose with unit (e.g., '500mg')")
    frequency: str = Field(default="", description="How often it is taken (e.g., 'BD', 'once daily')")
    duration: Optional[str] = Field(default=None, description="Course length (e.g., '5 days')")
    indication: Optional[str] = Field(default=None, description="Condition it treats")


class BloodPressure(CamelModel):
    """Blood pressure reading."""

    systolic: int
    diastolic: int
    status: str = Field(default="normal", description="normal, elevated, stage_1_hypertension or stage_2_hypertension")


class VitalSigns(CamelModel):
    """Vital signs found in a report."""

    blood_pressure: Optional[BloodPressure] = None
    heart_rate: Optional[float] = None
    temperature: Optional[float] = None
    weight: Optional[float] = None
    height: Optional[float] = None
    bmi: Optional[float] = None


class ExtractedMedicalData(CamelModel):
    """Structured data pulled out of one report. Lists may contain duplicates."""

    test_results: List[TestResult] = Field(default_factory=list)
    lab_values: List[LabValue] = Field(default_factory=list)
    medications: List[Medication] = Field(default_factory=list)
    diagnoses: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    vital_signs: Optional[VitalSigns] = None
    report_date: Optional[str] = Field(default=None, description="Report date as written")
    doctor_name: Optional[str] = None
    hospital_name: Optional[str] = None

    def is_empty(self) -> bool:
        """True when nothing clinically useful was extracted."""
        return not (self.lab_values or self.test_results or self.diagnoses)
