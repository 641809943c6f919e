"""
Custom exceptions for the summarization pipeline.
"""
from typing import Optional


class SummarizerError(Exception):
    """Base exception for pipeline errors."""
    pass


class PreconditionError(SummarizerError):
    """Job inputs make the run impossible (missing meeting, no video and no transcript)."""
    pass


class ResourceLimitError(SummarizerError):
    """An input exceeds a configured size ceiling."""
    def __init__(self, message: str, size: Optional[int] = None, limit: Optional[int] = None):
        self.size = size
        self.limit = limit
        super().__init__(message)


class DatabaseError(SummarizerError):
    """Database operation errors."""
    pass


class ConfigurationError(SummarizerError):
    """Configuration or environment variable errors."""
    pass


class APIError(SummarizerError):
    """Base class for external provider errors."""
    def __init__(self, message: str, status_code: int = None, platform: str = None):
        self.status_code = status_code
        self.platform = platform
        super().__init__(message)


class RateLimitError(APIError):
    """Provider rate limit exceeded."""
    def __init__(self, message: str, retry_after: float = None, platform: str = None):
        self.retry_after = retry_after
        super().__init__(message, status_code=429, platform=platform)


class LLMAPIError(APIError):
    """Chat completion provider errors."""
    def __init__(self, message: str, status_code: int = None):
        super().__init__(message, status_code=status_code, platform="llm")


class TranscriptionAPIError(APIError):
    """Speech-to-text provider errors."""
    def __init__(self, message: str, status_code: int = None, platform: str = "transcription"):
        super().__init__(message, status_code=status_code, platform=platform)


class TranscriptionError(SummarizerError):
    """Transcription produced no usable result."""
    pass


class AttachmentError(SummarizerError):
    """A single attachment could not be downloaded or parsed."""
    pass
