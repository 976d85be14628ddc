"""Document loading: turn a downloaded file into plain text."""

from __future__ import annotations
import logging
from pathlib import Path
from typing import Union

import pdfplumber
import PyPDF2
from PyPDF2.errors import PyPdfError

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".pdf", ".txt")


class DocumentLoadError(Exception):
    """Raised when a document cannot be read or yields no text"""
    pass


class DocumentLoader:
    """Loads PDF (pdfplumber, falling back to PyPDF2) and plain-text files."""

    def load(self, path: Union[str, Path]) -> str:
        file_path = Path(path)
        if not file_path.exists():
            raise DocumentLoadError(f"File not found: {file_path}")

        suffix = file_path.suffix.lower()
        if suffix == ".pdf":
            text = self._extract_pdf_text(file_path)
        elif suffix == ".txt":
            text = file_path.read_text(encoding="utf-8", errors="replace")
        else:
            raise DocumentLoadError(f"Unsupported file type: {file_path.suffix}")

        if not text.strip():
            raise DocumentLoadError(f"No text content extracted from {file_path.name}")
        return text

    def _extract_pdf_text(self, file_path: Path) -> str:
        """Extract text from PDF file"""
        text = ""
        try:
            with pdfplumber.open(file_path) as pdf:
                for page in pdf.pages:
                    page_text = page.extract_text()
                    if page_text:
                        text += page_text + "\n"
        except Exception as e:
            logger.warning("pdfplumber failed on %s (%s); trying PyPDF2", file_path.name, e)

        if not text.strip():
            try:
                with open(file_path, "rb") as fh:
                    reader = PyPDF2.PdfReader(fh)
                    for page in reader.pages:
                        text += (page.extract_text() or "") + "\n"
            except PyPdfError as e:
                raise DocumentLoadError(f"PDF extraction failed: {e}") from e

        logger.debug("Extracted %d characters from %s", len(text), file_path.name)
        return text.strip()


def is_supported_document(key: str, extensions=(".pdf",)) -> bool:
    """True when ``key`` ends with one of the recognised document extensions."""
    return key.lower().endswith(tuple(e.lower() for e in extensions))
