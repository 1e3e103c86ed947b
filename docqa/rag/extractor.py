"""Text extraction from PDF, DOCX and plain-text documents."""
import re
from pathlib import Path
from typing import List, Union

import docx
import pdfplumber
import structlog

from docqa.errors import ExtractionFailed, UnsupportedFormat

logger = structlog.get_logger()

SUPPORTED_EXTENSIONS = (".pdf", ".docx", ".txt")


def clean_text(text: str) -> str:
    """Normalise line endings and collapse redundant whitespace."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


class DocumentTextExtractor:
    """Extracts cleaned text from supported document formats."""

    def extract_text(self, path: Union[str, Path], filename: str = None) -> str:
        """Extract text from a document.

        Args:
            path: Location of the file on disk
            filename: Display name used to pick the format (defaults to the path's name)

        Returns:
            Cleaned document text

        Raises:
            UnsupportedFormat: If the extension is not supported
            ExtractionFailed: If the file cannot be read or parsed
        """
        path = Path(path)
        filename = filename or path.name
        extension = Path(filename).suffix.lower()

        if extension == ".doc":
            raise UnsupportedFormat(
                filename,
                extension,
                hint="DOC files are not supported. Please convert to DOCX format.",
            )

        readers = {
            ".pdf": self._read_pdf,
            ".docx": self._read_docx,
            ".txt": self._read_txt,
        }
        reader = readers.get(extension)
        if reader is None:
            raise UnsupportedFormat(filename, extension)

        try:
            text = reader(path)
        except Exception as e:
            logger.error(
                "text_extraction_failed",
                filename=filename,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ExtractionFailed(filename, str(e)) from e

        text = clean_text(text)
        logger.debug("text_extracted", filename=filename, characters=len(text))
        return text

    def _read_pdf(self, path: Path) -> str:
        parts: List[str] = []
        with pdfplumber.open(str(path)) as pdf:
            for page in pdf.pages:
                page_text = page.extract_text() or ""
                if page_text:
                    parts.append(page_text)
        return "\n".join(parts)

    def _read_docx(self, path: Path) -> str:
        document = docx.Document(str(path))
        return "\n".join(paragraph.text for paragraph in document.paragraphs)

    def _read_txt(self, path: Path) -> str:
        return path.read_text(encoding="utf-8")
