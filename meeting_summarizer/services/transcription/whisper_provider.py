"""
Whisper-style provider: uploads the recording to an OpenAI-compatible
``/audio/transcriptions`` endpoint and reads the verbose JSON result.
"""
import math
from pathlib import Path
from typing import Optional

import httpx

from meeting_summarizer.exceptions import RateLimitError, TranscriptionAPIError
from meeting_summarizer.logging_config import get_logger
from meeting_summarizer.rate_limiters import RateLimiters
from meeting_summarizer.services.transcription.base import (
    TranscriptionProvider,
    TranscriptionResult,
    TranscriptSegment,
)
from meeting_summarizer.utils import RetryPolicy, parse_retry_after

logger = get_logger(__name__)


class WhisperProvider(TranscriptionProvider):
    name = "openai-whisper"
    source_mode = "file"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        model: str = "whisper-1",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 120.0,
        retry_policy: Optional[RetryPolicy] = None,
        rate_limiters: Optional[RateLimiters] = None,
    ):
        self._http = http_client
        self._api_key = api_key
        self.model = model
        self._url = base_url.rstrip("/") + "/audio/transcriptions"
        self._timeout = timeout
        self._retry_policy = retry_policy or RetryPolicy()
        self._rate_limiters = rate_limiters

    async def transcribe(self, source: str, language_hint: str) -> TranscriptionResult:
        return await self._retry_policy.call(self._transcribe_once, Path(source), language_hint)

    async def _transcribe_once(self, path: Path, language_hint: str) -> TranscriptionResult:
        if self._rate_limiters:
            await self._rate_limiters.acquire_transcription_limit()

        with path.open("rb") as fh:
            response = await self._http.post(
                self._url,
                headers={"Authorization": f"Bearer {self._api_key}"},
                data={"model": self.model, "response_format": "verbose_json", "language": language_hint},
                files={"file": (path.name, fh, "application/octet-stream")},
                timeout=self._timeout,
            )

        if response.status_code == 429:
            raise RateLimitError("Whisper rate limited", retry_after=parse_retry_after(response), platform="whisper")
        if response.is_error:
            raise TranscriptionAPIError(
                f"Whisper transcription failed: {response.status_code} - {response.text[:500]}",
                status_code=response.status_code,
                platform="whisper",
            )

        data = response.json()
        segments = []
        for s in data.get("segments") or []:
            avg_logprob = s.get("avg_logprob")
            segments.append(TranscriptSegment(
                start=float(s.get("start") or 0.0),
                end=float(s.get("end") or 0.0),
                text=(s.get("text") or "").strip(),
                speaker=s.get("speaker"),
                confidence=math.exp(avg_logprob) if avg_logprob is not None else None,
            ))

        language = data.get("language")
        # verbose_json reports a language name ("vietnamese"), not a code
        if not language or len(language) != 2:
            language = language_hint

        logger.info("whisper_transcription_received", segments=len(segments), duration=data.get("duration"))
        return TranscriptionResult(
            text=(data.get("text") or "").strip(),
            segments=segments,
            duration=data.get("duration"),
            language=language,
        )
