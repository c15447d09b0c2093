"""Text extraction for uploaded report documents."""

import io
import logging
import re
import zipfile
from typing import Optional
import docx
import fitz
from docx.opc.exceptions import PackageNotFoundError
from vitalis.utils.exceptions import DocumentTextError

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    "application/pdf",
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/tiff",
    "text/plain",
    "text/csv",
    "application/json",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/rtf",
    "text/rtf",
}

DOCX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

_RTF_CONTROL = re.compile(r"\\[a-zA-Z]+-?\d* ?|\\'[0-9a-fA-F]{2}|[{}]")
_RTF_DESTINATION = re.compile(r"\{\\\*[^{}]*\}|\{\\(?:fonttbl|colortbl|stylesheet|info)[^{}]*(?:\{[^{}]*\}[^{}]*)*\}")
_RTF_BREAK = re.compile(r"\\(?:par|line)(?![a-zA-Z])")


def normalize_content_type(content_type: Optional[str]) -> str:
    """Lower-cased MIME type without parameters."""
    return (content_type or "").split(";")[0].strip().lower()


def is_allowed_content_type(content_type: Optional[str]) -> bool:
    return normalize_content_type(content_type) in ALLOWED_CONTENT_TYPES


def decode_text(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return content.decode("latin-1")


def extract_pdf_text(pdf_bytes: bytes) -> str:
    """Concatenate the text layer of every page using PyMuPDF."""
    try:
        pdf_document = fitz.open(stream=pdf_bytes, filetype="pdf")
    except Exception as e:
        logger.error(f"Error opening PDF: {str(e)}", exc_info=True)
        raise DocumentTextError(f"Failed to open PDF: {str(e)}") from e

    try:
        logger.info(f"Extracting text from {len(pdf_document)} page(s)")
        pages = [pdf_document[page_num].get_text() for page_num in range(len(pdf_document))]
    finally:
        pdf_document.close()
    return "\n".join(pages)


def strip_rtf(rtf_text: str) -> str:
    """Drop RTF groups and control words, keeping the plain text."""
    text = _RTF_DESTINATION.sub("", rtf_text)
    text = _RTF_BREAK.sub("\n", text)
    return _RTF_CONTROL.sub("", text)


def extract_docx_text(docx_bytes: bytes) -> str:
    """Paragraph text followed by table rows, one per line."""
    try:
        document = docx.Document(io.BytesIO(docx_bytes))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
        raise DocumentTextError(f"Failed to read Word document: {str(e)}") from e

    lines = [paragraph.text for paragraph in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            lines.append(" | ".join(cell.text.strip() for cell in row.cells))
    return "\n".join(lines)


def extract_document_text(content: bytes, content_type: Optional[str], filename: Optional[str] = None) -> str:
    """
    Read the text of an uploaded document.

    Args:
        content: Raw file bytes
        content_type: MIME type of the upload
        filename: Original file name, used when the MIME type is generic

    Returns:
        Extracted text. Images and legacy Word files return an empty string
        since there is no server-side OCR or .doc reader.

    Raises:
        DocumentTextError: If a PDF or .docx cannot be opened
    """
    content_type = normalize_content_type(content_type)
    name = (filename or "").lower()

    if content_type == "application/pdf" or name.endswith(".pdf"):
        return extract_pdf_text(content)
    if content_type.startswith("image/"):
        logger.info("Image upload has no text layer")
        return ""
    if content_type == DOCX_CONTENT_TYPE or name.endswith(".docx"):
        return extract_docx_text(content)
    if content_type == "application/msword":
        logger.warning(f"Legacy Word document {filename!r} cannot be read")
        return ""
    if content_type in ("application/rtf", "text/rtf") or name.endswith(".rtf"):
        return strip_rtf(decode_text(content))
    return decode_text(content)
