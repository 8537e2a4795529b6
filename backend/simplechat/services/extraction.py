"""Text extraction from uploaded attachments, for inclusion in LLM context."""

import logging
from pathlib import Path

from pypdf import PdfReader

from simplechat.core.sandbox import SandboxError, resolve_upload_path
from simplechat.models.conversation import Attachment

logger = logging.getLogger(__name__)

TEXT_MIME_TYPES = {"text/plain", "text/markdown", "text/csv"}
TEXT_SUFFIXES = (".txt", ".md", ".csv")
PDF_MIME_TYPE = "application/pdf"


def _is_text(attachment: Attachment) -> bool:
    return attachment.file_type in TEXT_MIME_TYPES or attachment.file_name.lower().endswith(TEXT_SUFFIXES)


def _is_pdf(attachment: Attachment) -> bool:
    return attachment.file_type == PDF_MIME_TYPE or attachment.file_name.lower().endswith(".pdf")


def _extract_pdf_text(path: Path) -> str:
    # The file handle (and the reader's hold on it) is released on exit, success or not
    with path.open("rb") as fh:
        reader = PdfReader(fh)
        parts = []
        for page in reader.pages:
            page_text = page.extract_text()
            if page_text:
                parts.append(page_text)
    return "\n\n".join(parts)


class AttachmentExtractor:
    """Reads attachment content from the upload directory.

    Missing files yield None, unreadable ones a placeholder. Only a sandbox
    violation is raised (SandboxError).
    """

    def __init__(self, upload_dir: Path):
        self.upload_dir = upload_dir

    def check_access(self, attachment: Attachment) -> Path:
        """Raise SandboxError unless the reference resolves inside the upload directory."""
        return resolve_upload_path(attachment.file_path, self.upload_dir)

    def extract(self, attachment: Attachment) -> str | None:
        try:
            path = resolve_upload_path(attachment.file_path, self.upload_dir)

            if not path.exists():
                logger.warning(f"File not found: '{path}'")
                return None

            logger.debug(f"Extracting content from '{attachment.file_name}' ({attachment.file_type})")

            if _is_text(attachment):
                return path.read_text(encoding="utf-8")
            if _is_pdf(attachment):
                return _extract_pdf_text(path)
            return f"[Binary file: {attachment.file_name}]"
        except SandboxError:
            raise
        except Exception as e:
            logger.error(f"Failed to extract content from '{attachment.file_name}': {e}")
            return f"[Could not read file: {attachment.file_name}]"
