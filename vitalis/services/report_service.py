"""Service that assembles the full analysis response for one report."""

import logging
from typing import Optional
from vitalis.schemas.responses import AnalyzeReportResponse, ParsingMetadata
from vitalis.services.format_classifier import detect_report_type
from vitalis.services.medical_analyzer import MedicalReportAnalyzer
from vitalis.services.omni_analyzer import parse_any_report

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Medical report analyzed successfully"
PARTIAL_MESSAGE = "No lab values, test results or diagnoses could be extracted from the report"


async def analyze_report_text(
    text: str,
    filename: Optional[str] = None,
    content_type: Optional[str] = None,
    age: Optional[int] = None,
    gender: Optional[str] = None,
    analyzer: Optional[MedicalReportAnalyzer] = None,
) -> AnalyzeReportResponse:
    """
    Run classification, extraction, scoring and analysis over report text.

    When extraction yields no lab values, test results or diagnoses the
    response carries the extracted data without an analysis.
    """
    format_analysis, result = parse_any_report(text, filename, content_type)
    data = result.extracted_data
    report_type = detect_report_type(text)

    parsing_metadata = ParsingMetadata(
        parsing_method=result.parsing_method,
        document_type=format_analysis.document_type,
        confidence=result.confidence,
        validation_score=result.validation_score,
        source_metadata=result.source_metadata,
        file_name=filename,
        content_type=content_type,
    )

    response = AnalyzeReportResponse(
        success=True,
        extracted_data=data,
        report_type=report_type,
        parsing_metadata=parsing_metadata,
        findings=result.findings,
        traceability=result.traceability,
        medications=result.medications,
    )

    if data.is_empty():
        logger.warning(f"Nothing clinically useful extracted from {filename or 'text input'}")
        response.message = PARTIAL_MESSAGE
        return response

    analyzer = analyzer or MedicalReportAnalyzer()
    response.analysis = await analyzer.analyze(data, age, gender)
    response.message = SUCCESS_MESSAGE
    logger.info(f"Report analyzed: type={report_type}, source={response.analysis.source}")
    return response
