"""Medical report API routes."""

import logging
from typing import Optional
from fastapi import APIRouter, status, Form, File, UploadFile
from fastapi.responses import JSONResponse
from vitalis.config.settings import get_settings
from vitalis.schemas.responses import AnalyzeReportResponse, AnalyzeTextRequest, ErrorResponse
from vitalis.services.report_service import analyze_report_text
from vitalis.utils.document_text import extract_document_text, is_allowed_content_type, normalize_content_type
from vitalis.utils.exceptions import DocumentTextError

logger = logging.getLogger(__name__)
router = APIRouter(tags=["medical"])

ANALYSIS_FAILED = "Failed to analyze medical report"


def error_response(status_code: int, error: str, details: Optional[str] = None) -> JSONResponse:
    payload = ErrorResponse(error=error, details=details)
    return JSONResponse(status_code=status_code, content=payload.model_dump(by_alias=True, exclude_none=True))


@router.post(
    "/analyze-report",
    response_model=AnalyzeReportResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
)
async def analyze_report_endpoint(
    file: Optional[UploadFile] = File(None),
    age: Optional[int] = Form(None, ge=0, le=130),
    gender: Optional[str] = Form(None, max_length=50),
    text: Optional[str] = Form(None),
):
    """
    Analyze an uploaded medical report.

    Accepts PDF, plain text, CSV, JSON, RTF and Word documents, plus
    JPEG/PNG/TIFF images. Images have no server-side OCR, so their text must
    be sent in the `text` form field.

    Returns the extracted data, the extraction evidence and an analysis. The
    analysis is omitted when nothing clinically useful could be extracted.
    """
    if file is None:
        return error_response(status.HTTP_400_BAD_REQUEST, "No file provided")

    content_type = normalize_content_type(file.content_type)
    if not is_allowed_content_type(content_type):
        logger.warning(f"Rejected upload {file.filename!r} with content type {content_type!r}")
        return error_response(status.HTTP_400_BAD_REQUEST, "Unsupported file type", f"Content type: {content_type}")

    try:
        logger.info(f"Analyzing uploaded report: {file.filename} ({content_type})")
        content = await file.read()

        max_bytes = get_settings().max_upload_bytes
        if len(content) > max_bytes:
            return error_response(
                status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                "File too large",
                f"Maximum upload size is {max_bytes} bytes",
            )

        try:
            document_text = extract_document_text(content, content_type, file.filename)
        except DocumentTextError as e:
            logger.warning(f"Could not read {file.filename!r}: {str(e)}")
            document_text = ""

        if not document_text.strip() and text:
            document_text = text
        if not document_text.strip():
            return error_response(status.HTTP_400_BAD_REQUEST, "Unable to extract text from the uploaded file")

        return await analyze_report_text(document_text, file.filename, content_type, age, gender)

    except Exception as e:
        logger.error(f"Unexpected error in analyze_report_endpoint: {str(e)}", exc_info=True)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, ANALYSIS_FAILED, str(e))


@router.post(
    "/analyze-text",
    response_model=AnalyzeReportResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
)
async def analyze_text_endpoint(request: AnalyzeTextRequest):
    """Analyze raw report text through the same pipeline as uploads."""
    if not request.text.strip():
        return error_response(status.HTTP_400_BAD_REQUEST, "No report text provided")

    try:
        logger.info(f"Analyzing report text ({len(request.text)} characters)")
        return await analyze_report_text(request.text, request.filename, None, request.age, request.gender)
    except Exception as e:
        logger.error(f"Unexpected error in analyze_text_endpoint: {str(e)}", exc_info=True)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, ANALYSIS_FAILED, str(e))
