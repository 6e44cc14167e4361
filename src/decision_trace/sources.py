"""Text sources: raw document text or a reference to an uploaded document."""

import io
import mimetypes
from pathlib import Path
from typing import Optional, Union

import pdfplumber
import structlog
from pydantic import BaseModel

from decision_trace.errors import DecisionTraceError

logger = structlog.get_logger(__name__)

TEXT_SUFFIXES = {".txt", ".md", ".markdown", ".text", ".csv", ".json", ".eml"}


class SourceError(DecisionTraceError):
    """Error reading a source document."""

    pass


class DocumentRef(BaseModel):
    """Handle to a raw document uploaded to the reasoning service."""

    uri: str
    mime_type: str
    filename: str


class TextSource(BaseModel):
    """What the first stage gets to see of the document."""

    raw_text: Optional[str] = None
    document_ref: Optional[DocumentRef] = None
    path: Optional[Path] = None
    mime_type: Optional[str] = None


def guess_mime_type(path: Path) -> str:
    if path.suffix.lower() == ".pdf":
        return "application/pdf"
    mime_type, _ = mimetypes.guess_type(path.name)
    return mime_type or "text/plain"


def extract_pdf_text(source: Union[str, Path, bytes]) -> str:
    """Extract text from a PDF, pages separated by blank lines.

    Args:
        source: Path to a PDF file, or the PDF content itself.

    Raises:
        SourceError: If the PDF cannot be read.
    """
    target = io.BytesIO(source) if isinstance(source, bytes) else source
    try:
        with pdfplumber.open(target) as pdf:
            pages = [(page.extract_text() or "").strip() for page in pdf.pages]
    except Exception as e:
        logger.error("pdf_extraction_failed", error=str(e))
        raise SourceError(f"Failed to extract PDF: {e}") from e

    logger.info("pdf_extracted", pages=len(pages), chars=sum(len(p) for p in pages))
    return "\n\n".join(p for p in pages if p)


def load_text_source(path: Union[str, Path]) -> TextSource:
    """Read a document into a TextSource.

    Plain-text formats are read directly and PDFs are run through
    pdfplumber.

    Raises:
        SourceError: If the file is missing, unsupported or empty.
    """
    path = Path(path)
    if not path.exists():
        raise SourceError(f"Document not found: {path}")

    mime_type = guess_mime_type(path)
    if mime_type == "application/pdf":
        text = extract_pdf_text(path)
    elif path.suffix.lower() in TEXT_SUFFIXES or mime_type.startswith("text/"):
        text = path.read_text(encoding="utf-8", errors="replace")
    else:
        raise SourceError(f"Unsupported document type: {path.suffix or mime_type}")

    if not text.strip():
        raise SourceError(f"No text could be extracted from {path}")

    return TextSource(raw_text=text, path=path, mime_type=mime_type)
