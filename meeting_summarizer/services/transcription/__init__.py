"""
Transcription providers and the factory that picks one at startup.
"""
from typing import Optional

import httpx

from meeting_summarizer.config import Settings, TranscriptionProviderKind
from meeting_summarizer.exceptions import ConfigurationError
from meeting_summarizer.rate_limiters import RateLimiters
from meeting_summarizer.services.transcription.base import (
    TranscriptionProvider,
    TranscriptionResult,
    TranscriptSegment,
)
from meeting_summarizer.services.transcription.deepgram_provider import DeepgramProvider
from meeting_summarizer.services.transcription.null_provider import NullTranscriptionProvider
from meeting_summarizer.services.transcription.whisper_provider import WhisperProvider
from meeting_summarizer.utils import RetryPolicy


def build_transcription_provider(
    settings: Settings,
    http_client: httpx.AsyncClient,
    rate_limiters: Optional[RateLimiters] = None,
    retry_policy: Optional[RetryPolicy] = None,
) -> TranscriptionProvider:
    """
    Create the configured provider.

    Raises:
        ConfigurationError: The selected provider is missing its credentials
    """
    kind = settings.transcription_provider
    retry_policy = retry_policy or RetryPolicy.from_settings(settings)

    if kind == TranscriptionProviderKind.NONE:
        return NullTranscriptionProvider()

    if kind == TranscriptionProviderKind.DEEPGRAM:
        if not settings.is_deepgram_configured:
            raise ConfigurationError("DEEPGRAM_API_KEY is required for Deepgram transcription.")
        return DeepgramProvider(
            http_client,
            api_key=settings.deepgram_api_key,
            model=settings.deepgram_model,
            base_url=settings.deepgram_base_url,
            timeout=settings.transcription_timeout_seconds,
            retry_policy=retry_policy,
            rate_limiters=rate_limiters,
        )

    if not settings.openai_api_key:
        raise ConfigurationError(
            "OPENAI_API_KEY is required for transcription "
            "(set TRANSCRIPTION_PROVIDER=none or deepgram to skip OpenAI)."
        )
    return WhisperProvider(
        http_client,
        api_key=settings.openai_api_key,
        model=settings.whisper_model,
        timeout=settings.transcription_timeout_seconds,
        retry_policy=retry_policy,
        rate_limiters=rate_limiters,
    )


__all__ = [
    'TranscriptionProvider',
    'TranscriptionResult',
    'TranscriptSegment',
    'NullTranscriptionProvider',
    'WhisperProvider',
    'DeepgramProvider',
    'build_transcription_provider',
]
