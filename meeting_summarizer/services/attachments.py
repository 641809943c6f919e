"""
Plain-text extraction from meeting attachments.

Attachments are supplementary context: anything oversized, unsupported or
broken is skipped and logged, never raised.
"""
import asyncio
import io
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import docx
import httpx
import pdfplumber

from meeting_summarizer.config import Settings
from meeting_summarizer.exceptions import AttachmentError
from meeting_summarizer.logging_config import get_logger
from meeting_summarizer.monitoring import attachments_skipped_total
from meeting_summarizer.services.media import content_length
from meeting_summarizer.utils import truncate_text

logger = get_logger(__name__)

TEXT_EXTENSIONS = {".txt", ".md", ".csv", ".log"}


@dataclass
class AttachmentText:
    filename: str
    snippet: str


class AttachmentTooLarge(AttachmentError):
    pass


def detect_kind(filename: str, content_type: str) -> Optional[str]:
    """Map a file to ``pdf``, ``docx`` or ``text``; None when unsupported."""
    ext = Path(filename).suffix.lower()
    content_type = (content_type or "").lower()
    if "pdf" in content_type or ext == ".pdf":
        return "pdf"
    if "wordprocessingml" in content_type or ext == ".docx":
        return "docx"
    if content_type.startswith("text/") or ext in TEXT_EXTENSIONS:
        return "text"
    return None


def _pdf_text(data: bytes) -> str:
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        return "\n".join(page.extract_text() or "" for page in pdf.pages)


def _docx_text(data: bytes) -> str:
    document = docx.Document(io.BytesIO(data))
    return "\n".join(p.text for p in document.paragraphs)


async def extract_text(kind: str, data: bytes) -> str:
    """Extract plain text; document parsers run in a thread."""
    if kind == "pdf":
        return await asyncio.to_thread(_pdf_text, data)
    if kind == "docx":
        return await asyncio.to_thread(_docx_text, data)
    return data.decode("utf-8", errors="replace")


class AttachmentExtractor:
    """Downloads attachments with bounded size and returns truncated text snippets."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        max_bytes: int = 2 * 1024 * 1024,
        max_chars: int = 4000,
        max_total_chars: int = 12000,
        timeout: float = 20.0,
    ):
        self._http = http_client
        self.max_bytes = max_bytes
        self.max_chars = max_chars
        self.max_total_chars = max_total_chars
        self.timeout = timeout

    @classmethod
    def from_settings(cls, http_client: httpx.AsyncClient, settings: Settings) -> "AttachmentExtractor":
        return cls(
            http_client,
            max_bytes=settings.max_attachment_bytes,
            max_chars=settings.max_attachment_chars,
            max_total_chars=settings.max_total_attachment_chars,
            timeout=settings.attachment_timeout_seconds,
        )

    async def _download(self, url: str) -> tuple:
        async with self._http.stream("GET", url, timeout=self.timeout, follow_redirects=True) as response:
            response.raise_for_status()
            size = content_length(response)
            if size is not None and size > self.max_bytes:
                raise AttachmentTooLarge(f"{size} bytes reported")

            buffer = bytearray()
            async for chunk in response.aiter_bytes():
                buffer.extend(chunk)
                if len(buffer) > self.max_bytes:
                    raise AttachmentTooLarge(f"more than {self.max_bytes} bytes received")
            return bytes(buffer), response.headers.get("content-type", "")

    async def extract_all(self, attachments: List[Dict[str, str]]) -> List[AttachmentText]:
        """
        Extract text from each attachment in order.

        Args:
            attachments: ``{"filename": ..., "url": ...}`` entries

        Returns:
            Snippets for every attachment that yielded text, until the
            aggregate character ceiling is reached
        """
        results = []
        total_chars = 0

        for attachment in attachments or []:
            if not isinstance(attachment, dict):
                logger.warning("attachment_entry_invalid", entry_type=type(attachment).__name__)
                continue
            url = attachment.get("url")
            if not url:
                continue
            if total_chars >= self.max_total_chars:
                logger.info("attachment_total_limit_reached", total_chars=total_chars)
                break

            filename = attachment.get("filename") or "attachment"
            try:
                data, content_type = await self._download(url)
                kind = detect_kind(filename, content_type)
                if kind is None:
                    attachments_skipped_total.labels(reason="unsupported").inc()
                    logger.info("attachment_skipped_unsupported", filename=filename, content_type=content_type)
                    continue

                text = await extract_text(kind, data)
                if not text.strip():
                    attachments_skipped_total.labels(reason="empty").inc()
                    continue

                snippet = truncate_text(text, self.max_chars)
                total_chars += len(snippet)
                results.append(AttachmentText(filename=filename, snippet=snippet))
            except AttachmentTooLarge as e:
                attachments_skipped_total.labels(reason="too_large").inc()
                logger.info("attachment_skipped_too_large", filename=filename, detail=str(e))
            except Exception as e:
                attachments_skipped_total.labels(reason="error").inc()
                logger.warning("attachment_extraction_failed", filename=filename, url=url, error=str(e))

        return results
