"""Schemas for the format-dispatching extraction pipeline."""

from enum import Enum
from typing import List, Optional
from pydantic import Field
from vitalis.schemas.base import CamelModel
from vitalis.schemas.reports import ExtractedMedicalData


class ParsingMethod(str, Enum):
    """Extraction strategy selected for a document."""
    STRUCTURED = "structured"
    HANDWRITTEN = "handwritten"
    TABULAR = "tabular"
    NARRATIVE = "narrative"
    SCAN = "scan"


class Polarity(str, Enum):
    """Whether a finding is asserted or negated."""
    POSITIVE = "positive"
    NEGATIVE = "negative"


class FindingKind(str, Enum):
    """Which extraction rule produced a finding."""
    LAB_VALUE = "lab_value"
    MEDICATION = "medication"
    VITAL_SIGN = "vital_sign"
    COMPLAINT = "complaint"
    DIAGNOSIS = "diagnosis"
    NEGATION = "negation"
    POSITIVE_MENTION = "positive_mention"
    TEMPORAL = "temporal"
    MEASUREMENT = "measurement"
    STRUCTURED_FIELD = "structured_field"


class FormatAnalysis(CamelModel):
    """Classifier verdict for one document."""

    document_type: str = Field(..., description="e.g. 'lab_report', 'prescription', 'mixed_format'")
    parsing_method: ParsingMethod
    confidence: float = Field(..., ge=0.0, le=1.0, description="Static confidence of the matching rule")
    reason: str = Field(default="", description="Rule that produced this verdict")


class Measurement(CamelModel):
    value: float
    unit: str = ""
    context: str = ""


class Finding(CamelModel):
    """Raw regex match kept as evidence. `text` is always a literal span of the input."""

    text: str = Field(..., description="Matched source text")
    kind: FindingKind
    polarity: Optional[Polarity] = None
    trend_score: Optional[int] = Field(default=None, description="+1 improved, -1 worsened, 0 stable/other")
    measurement: Optional[Measurement] = None
    source_location: str = Field(default="", description="e.g. 'line 3' or 'json:labResults[0]'")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class TraceabilityEntry(CamelModel):
    """Metadata record attached to an extracted claim."""

    claim: str
    source: str
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    database: str = Field(default="", description="Reference vocabulary the claim was checked against")
    reference: str = Field(default="", description="Code or note within that vocabulary")
    source_location: Optional[str] = None


class MedicationMention(CamelModel):
    """Medication as it appeared in the source, with extraction evidence."""

    name: str
    dose: Optional[str] = None
    context: str = ""
    source_location: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class SourceMetadata(CamelModel):
    layout: str = "unknown"
    quality: str = "unknown"
    language: str = "en"
    medical_specialty: str = "general"
    document_type: str = "general_medical"


class OmniExtractionResult(CamelModel):
    """Extraction output for one document, including the evidence trail."""

    extracted_data: ExtractedMedicalData = Field(default_factory=ExtractedMedicalData)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    parsing_method: ParsingMethod
    source_metadata: SourceMetadata = Field(default_factory=SourceMetadata)
    traceability: List[TraceabilityEntry] = Field(default_factory=list)
    findings: List[Finding] = Field(default_factory=list)
    medications: List[MedicationMention] = Field(default_factory=list)
    validation_score: Optional[float] = Field(default=None, description="Fraction of findings verified against the source")
