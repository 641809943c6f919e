"""
Diarization-capable provider: submits the recording URL to Deepgram and
returns speaker-labelled utterances.
"""
from typing import Optional

import httpx

from meeting_summarizer.exceptions import RateLimitError, TranscriptionAPIError, TranscriptionError
from meeting_summarizer.logging_config import get_logger
from meeting_summarizer.rate_limiters import RateLimiters
from meeting_summarizer.services.transcription.base import (
    TranscriptionProvider,
    TranscriptionResult,
    TranscriptSegment,
)
from meeting_summarizer.utils import RetryPolicy, parse_retry_after, safe_dict_get

logger = get_logger(__name__)


def _speaker(value) -> Optional[str]:
    return str(value) if value is not None else None


class DeepgramProvider(TranscriptionProvider):
    name = "deepgram"
    source_mode = "url"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        model: str = "nova-2",
        base_url: str = "https://api.deepgram.com/v1",
        timeout: float = 120.0,
        retry_policy: Optional[RetryPolicy] = None,
        rate_limiters: Optional[RateLimiters] = None,
    ):
        self._http = http_client
        self._api_key = api_key
        self.model = model
        self._url = base_url.rstrip("/") + "/listen"
        self._timeout = timeout
        self._retry_policy = retry_policy or RetryPolicy()
        self._rate_limiters = rate_limiters

    async def transcribe(self, source: str, language_hint: str) -> TranscriptionResult:
        data = await self._retry_policy.call(self._submit, source, language_hint)
        return self._parse(data, language_hint)

    async def _submit(self, url: str, language_hint: str) -> dict:
        if self._rate_limiters:
            await self._rate_limiters.acquire_transcription_limit()

        response = await self._http.post(
            self._url,
            headers={"Authorization": f"Token {self._api_key}", "Content-Type": "application/json"},
            params={
                "model": self.model,
                "smart_format": True,
                "punctuate": True,
                "diarize": True,
                "paragraphs": True,
                "utterances": True,
                "language": language_hint,
            },
            json={"url": url},
            timeout=self._timeout,
        )
        if response.status_code == 429:
            raise RateLimitError("Deepgram rate limited", retry_after=parse_retry_after(response), platform="deepgram")
        if response.is_error:
            raise TranscriptionAPIError(
                f"Deepgram transcription failed: {response.status_code} - {response.text[:500]}",
                status_code=response.status_code,
                platform="deepgram",
            )
        return response.json()

    def _parse(self, data: dict, language_hint: str) -> TranscriptionResult:
        alternative = safe_dict_get(data, "results", "channels", 0, "alternatives", 0, default={}) or {}
        text = safe_dict_get(alternative, "paragraphs", "transcript") or alternative.get("transcript") or ""

        utterances = safe_dict_get(data, "results", "utterances", default=[]) or []
        if utterances:
            segments = [
                TranscriptSegment(
                    start=u.get("start", 0.0),
                    end=u.get("end", 0.0),
                    text=u.get("transcript", ""),
                    speaker=_speaker(u.get("speaker")),
                    confidence=u.get("confidence"),
                )
                for u in utterances
            ]
        else:
            segments = [
                TranscriptSegment(
                    start=w.get("start", 0.0),
                    end=w.get("end", 0.0),
                    text=w.get("word", ""),
                    speaker=_speaker(w.get("speaker")),
                    confidence=w.get("confidence"),
                )
                for w in alternative.get("words") or []
            ]

        if not text.strip():
            raise TranscriptionError("Deepgram returned empty transcript. Check audio URL or permissions.")

        logger.info("deepgram_transcription_received", segments=len(segments))
        return TranscriptionResult(
            text=text.strip(),
            segments=segments,
            duration=safe_dict_get(data, "metadata", "duration"),
            language=language_hint,
        )
