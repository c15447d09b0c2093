"""Service for choosing a parsing strategy for an uploaded medical document."""

import logging
import re
from typing import List, Optional, Tuple
from vitalis.schemas.extraction import FormatAnalysis, ParsingMethod

logger = logging.getLogger(__name__)

IMAGE_CONTENT_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/tiff"}
JSON_CONTENT_TYPES = {"application/json", "text/json"}

# Ordered filename rules: (keywords, document type, parsing method, confidence)
FILE_RULES: List[Tuple[Tuple[str, ...], str, ParsingMethod, float]] = [
    (("apollo", "diagnostic"), "apollo_diagnostics", ParsingMethod.TABULAR, 0.95),
    (("prescription", "rx"), "prescription", ParsingMethod.HANDWRITTEN, 0.90),
    (("lab", "pathology"), "lab_report", ParsingMethod.TABULAR, 0.92),
    (("ecg", "echo"), "cardiac_report", ParsingMethod.NARRATIVE, 0.88),
]

STRUCTURED_PATTERN = re.compile(r'\{|\[|".*":\s*".*"')
HANDWRITTEN_PATTERN = re.compile(r"unclear|illegible|handwritten", re.IGNORECASE)
TABULAR_PATTERNS = [
    re.compile(r"\|\s*\w+\s*\|\s*[\d.]+\s*\|"),
    re.compile(r"\w+\s*:\s*[\d.]+\s*mg/dL"),
    re.compile(r"\(\s*normal\s*:", re.IGNORECASE),
]
NARRATIVE_PATTERN = re.compile(r"impression:|assessment:|recommendation:", re.IGNORECASE)

# Ordered report-type rules; short tokens are matched as whole words
REPORT_TYPE_RULES: List[Tuple[str, re.Pattern]] = [
    ("lipid_panel", re.compile(r"cholesterol|\bldl\b|\bhdl\b|triglycerides", re.IGNORECASE)),
    ("diabetes_panel", re.compile(r"glucose|hba1c|diabetes", re.IGNORECASE)),
    ("thyroid_function", re.compile(r"\btsh\b|thyroid|\bt3\b|\bt4\b", re.IGNORECASE)),
    ("blood_test", re.compile(r"hemoglobin|haemoglobin|hematocrit|\bwbc\b|\brbc\b", re.IGNORECASE)),
    ("cardiac_markers", re.compile(r"\becg\b|\bekg\b|cardiac|heart", re.IGNORECASE)),
    ("liver_function", re.compile(r"liver|\bast\b|\balt\b|bilirubin", re.IGNORECASE)),
    ("kidney_function", re.compile(r"creatinine|urea|kidney|\bbun\b", re.IGNORECASE)),
]


def classify_file(filename: Optional[str], content_type: Optional[str] = None) -> FormatAnalysis:
    """Pick a parsing strategy from the file name and MIME type. First matching rule wins."""
    name = (filename or "").lower()

    for keywords, document_type, method, confidence in FILE_RULES:
        for keyword in keywords:
            if keyword in name:
                return FormatAnalysis(
                    document_type=document_type,
                    parsing_method=method,
                    confidence=confidence,
                    reason=f"filename contains '{keyword}'",
                )

    if (content_type or "").lower() in IMAGE_CONTENT_TYPES:
        return FormatAnalysis(
            document_type="scanned_document",
            parsing_method=ParsingMethod.SCAN,
            confidence=0.85,
            reason=f"image upload ({content_type})",
        )

    return FormatAnalysis(
        document_type="general_medical",
        parsing_method=ParsingMethod.NARRATIVE,
        confidence=0.80,
        reason="no filename or MIME rule matched",
    )


def classify_text(text: str) -> FormatAnalysis:
    """Pick a parsing strategy from the document text. First matching rule wins."""
    text = text or ""

    if STRUCTURED_PATTERN.search(text):
        return FormatAnalysis(
            document_type="structured_data",
            parsing_method=ParsingMethod.STRUCTURED,
            confidence=0.90,
            reason="structured data markers",
        )
    if HANDWRITTEN_PATTERN.search(text):
        return FormatAnalysis(
            document_type="handwritten_notes",
            parsing_method=ParsingMethod.HANDWRITTEN,
            confidence=0.80,
            reason="handwriting indicators",
        )
    if any(pattern.search(text) for pattern in TABULAR_PATTERNS):
        return FormatAnalysis(
            document_type="tabular_lab_data",
            parsing_method=ParsingMethod.TABULAR,
            confidence=0.90,
            reason="tabular lab rows",
        )
    if NARRATIVE_PATTERN.search(text):
        return FormatAnalysis(
            document_type="clinical_narrative",
            parsing_method=ParsingMethod.NARRATIVE,
            confidence=0.85,
            reason="narrative section headings",
        )

    return FormatAnalysis(
        document_type="mixed_format",
        parsing_method=ParsingMethod.NARRATIVE,
        confidence=0.60,
        reason="no text rule matched",
    )


def looks_like_json(text: str, content_type: Optional[str] = None) -> bool:
    if (content_type or "").lower() in JSON_CONTENT_TYPES:
        return True
    stripped = (text or "").lstrip()
    return stripped.startswith("{") or stripped.startswith("[")


def classify_document(
    text: str,
    filename: Optional[str] = None,
    content_type: Optional[str] = None,
) -> FormatAnalysis:
    """
    Choose a parsing strategy for an uploaded document.

    JSON payloads always go to the structured parser. Otherwise an informative
    filename or an image MIME type decides, and the text rules are used for
    everything else. Never fails.
    """
    if looks_like_json(text, content_type):
        analysis = classify_text(text)
        if analysis.parsing_method == ParsingMethod.STRUCTURED:
            logger.debug("Classified JSON payload as structured")
            return analysis

    if filename or content_type:
        file_analysis = classify_file(filename, content_type)
        if file_analysis.document_type != "general_medical":
            logger.info(
                f"Classified {filename!r} by file rules: {file_analysis.document_type} "
                f"-> {file_analysis.parsing_method}"
            )
            return file_analysis

    analysis = classify_text(text)
    logger.info(f"Classified by text rules: {analysis.document_type} -> {analysis.parsing_method}")
    return analysis


def detect_report_type(text: str) -> str:
    """Map report text to a report type such as 'lipid_panel'. Defaults to 'general_checkup'."""
    for report_type, pattern in REPORT_TYPE_RULES:
        if pattern.search(text or ""):
            return report_type
    return "general_checkup"
