"""Request and response schemas for the medical API."""

from typing import List, Optional
from pydantic import Field
from vitalis.schemas.base import CamelModel
from vitalis.schemas.analysis import MedicalAIAnalysis
from vitalis.schemas.extraction import Finding, MedicationMention, SourceMetadata, TraceabilityEntry
from vitalis.schemas.reports import ExtractedMedicalData


class ParsingMetadata(CamelModel):
    """How a document was classified and how well the extraction verified."""

    parsing_method: str
    document_type: str
    confidence: float
    validation_score: Optional[float] = None
    source_metadata: Optional[SourceMetadata] = None
    file_name: Optional[str] = None
    content_type: Optional[str] = None


class AnalyzeTextRequest(CamelModel):
    """Raw report text submitted for analysis."""

    text: str = Field(..., description="Report text")
    filename: Optional[str] = Field(default=None, description="Original file name, used as a classification hint")
    age: Optional[int] = Field(default=None, ge=0, le=130)
    gender: Optional[str] = Field(default=None, max_length=50)


class AnalyzeReportResponse(CamelModel):
    """Upload response. `analysis` is absent when nothing could be extracted."""

    success: bool
    analysis: Optional[MedicalAIAnalysis] = None
    extracted_data: Optional[ExtractedMedicalData] = None
    report_type: Optional[str] = None
    parsing_metadata: Optional[ParsingMetadata] = None
    findings: List[Finding] = Field(default_factory=list)
    traceability: List[TraceabilityEntry] = Field(default_factory=list)
    medications: List[MedicationMention] = Field(default_factory=list)
    message: Optional[str] = None


class ErrorResponse(CamelModel):
    success: bool = False
    error: str
    details: Optional[str] = None
