"""
Rate limiting configuration for provider API calls.
"""
from aiolimiter import AsyncLimiter

from meeting_summarizer.config import Settings


class RateLimiters:
    """Centralized rate limiters for external providers."""

    def __init__(self, llm_per_minute: int = 10, transcription_per_minute: int = 10):
        """Initialize rate limiters for the LLM and transcription services."""
        self.llm_limiter = AsyncLimiter(max_rate=llm_per_minute, time_period=60)
        self.transcription_limiter = AsyncLimiter(max_rate=transcription_per_minute, time_period=60)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateLimiters":
        return cls(
            llm_per_minute=settings.llm_rate_limit,
            transcription_per_minute=settings.transcription_rate_limit,
        )

    async def acquire_llm_limit(self):
        """Acquire rate limit slot for the chat completion API."""
        async with self.llm_limiter:
            pass

    async def acquire_transcription_limit(self):
        """Acquire rate limit slot for the transcription API."""
        async with self.transcription_limiter:
            pass
