"""
Text extraction for uploaded tender documents.
One path per source type; PDF pages are separated by ``[PAGE n]`` markers so
evidence candidates can report the page they came from.
"""
import io
import logging
import re

import docx
import pypdf

logger = logging.getLogger("tenderflow.extraction")

MAX_EXTRACTED_CHARS = 250_000
TRUNCATED_MARKER = "\n\n[TRUNCATED]"
PAGE_MARKER_RE = re.compile(r"\[PAGE \d+\]")

MOCK_EXTRACTED_TEXT = """\
TenderFlow Test Tender v1

SECTION 1 - Submission
MUST: Submit the tender on or before 2026-02-01 12:00 CET.
MUST: Include a signed cover letter.
SHOULD: Provide a single PDF in addition to editable source.

SECTION 2 - Scope
MUST: Provide delivery to Graz, Austria.
MUST: Include 12 months warranty minimum.
SHOULD: Provide implementation plan and timeline.

SECTION 3 - Commercial
MUST: Quote in EUR, fixed price.
INFO: Payment terms preferred Net 30.

SECTION 4 - Compliance & Security
MUST: GDPR compliance is required for any personal data.
MUST: Provide ISO 27001 certification evidence with the tender.

SECTION 5 - Risks / Notes
Risk: Tight timeline and strict submission format.
Risk: Missing warranty detail may disqualify the bid.
"""


class ExtractionError(RuntimeError):
    pass


def has_text(text: str | None) -> bool:
    """True when ``text`` holds more than page markers and whitespace."""
    return bool(PAGE_MARKER_RE.sub("", text or "").strip())


def _clamp(text: str) -> str:
    if len(text) <= MAX_EXTRACTED_CHARS:
        return text
    return text[:MAX_EXTRACTED_CHARS] + TRUNCATED_MARKER


def extract_pdf(data: bytes) -> str:
    try:
        reader = pypdf.PdfReader(io.BytesIO(data))
        pages = []
        for number, page in enumerate(reader.pages, start=1):
            pages.append(f"[PAGE {number}]\n{(page.extract_text() or '').strip()}")
    except Exception as exc:
        # pypdf raises stream, parse and value errors for damaged files
        raise ExtractionError(f"Unreadable PDF: {exc}") from exc
    return "\n\n".join(pages)


def extract_docx(data: bytes) -> str:
    try:
        document = docx.Document(io.BytesIO(data))
    except Exception as exc:
        # python-docx surfaces zip, xml and package errors with different types
        raise ExtractionError(f"Unreadable DOCX: {exc}") from exc

    lines = [p.text.strip() for p in document.paragraphs if p.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                lines.append(" | ".join(cells))
    return "\n".join(lines)


def extract_txt(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


EXTRACTORS = {
    "pdf": extract_pdf,
    "docx": extract_docx,
    "txt": extract_txt,
}


def extract_text(data: bytes, source_type: str) -> str:
    """Extract plain text from document bytes. Raises ``ExtractionError``."""
    extractor = EXTRACTORS.get(source_type)
    if extractor is None:
        raise ExtractionError(f"Unsupported source type: {source_type}")
    text = extractor(data).strip()
    logger.debug("Extracted %d chars from %s document", len(text), source_type)
    return _clamp(text)
