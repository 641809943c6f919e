"""
Bounded downloads of meeting recordings.
"""
import os
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional
from urllib.parse import urlparse

import httpx

from meeting_summarizer.exceptions import APIError, ResourceLimitError
from meeting_summarizer.logging_config import get_logger

logger = get_logger(__name__)


def content_length(response: httpx.Response) -> Optional[int]:
    """Reported body size, or None when absent or unparseable."""
    value = response.headers.get("content-length")
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _check_size(size: Optional[int], limit: int, url: str) -> None:
    if size is not None and size > limit:
        raise ResourceLimitError(
            f"Video is {size} bytes, larger than the {limit} byte transcription limit: {url}",
            size=size,
            limit=limit,
        )


@asynccontextmanager
async def downloaded_video(
    http_client: httpx.AsyncClient,
    url: str,
    max_bytes: int,
    timeout: float = 60.0,
    temp_dir: Optional[Path] = None,
) -> AsyncIterator[Path]:
    """
    Download a recording to a temporary file and remove it on exit.

    The reported Content-Length is checked before anything is written, and the
    download is aborted as soon as the received bytes pass ``max_bytes``.

    Args:
        http_client: Shared httpx client
        url: Recording URL
        max_bytes: Size ceiling
        timeout: Request timeout in seconds
        temp_dir: Directory for the temporary file (system default if None)

    Yields:
        Path of the downloaded file

    Raises:
        ResourceLimitError: The recording is larger than ``max_bytes``
        APIError: The recording host answered with an error status
    """
    path: Optional[Path] = None
    suffix = Path(urlparse(url).path).suffix or ".mp4"
    try:
        async with http_client.stream("GET", url, timeout=timeout, follow_redirects=True) as response:
            if response.is_error:
                raise APIError(
                    f"Video download failed: {response.status_code}",
                    status_code=response.status_code,
                    platform="video",
                )
            _check_size(content_length(response), max_bytes, url)

            fd, name = tempfile.mkstemp(prefix="meeting-", suffix=suffix, dir=temp_dir)
            path = Path(name)
            received = 0
            with os.fdopen(fd, "wb") as fh:
                async for chunk in response.aiter_bytes():
                    received += len(chunk)
                    _check_size(received, max_bytes, url)
                    fh.write(chunk)

        logger.info("video_downloaded", bytes=received, path=str(path))
        yield path
    finally:
        if path is not None:
            path.unlink(missing_ok=True)
            logger.debug("video_temp_file_removed", path=str(path))


async def probe_video_size(
    http_client: httpx.AsyncClient,
    url: str,
    max_bytes: int,
    timeout: float = 20.0,
) -> Optional[int]:
    """
    Check the reported size of a remote recording without downloading it.

    Hosts that refuse HEAD or omit Content-Length are let through; the
    provider fetches the file itself.

    Raises:
        ResourceLimitError: The reported size is larger than ``max_bytes``
    """
    try:
        response = await http_client.head(url, timeout=timeout, follow_redirects=True)
    except httpx.HTTPError as e:
        logger.warning("video_size_probe_failed", url=url, error=str(e))
        return None
    if response.is_error:
        logger.warning("video_size_probe_rejected", url=url, status_code=response.status_code)
        return None
    size = content_length(response)
    _check_size(size, max_bytes, url)
    return size
