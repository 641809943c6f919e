"""
Utility functions for the summarization worker.
"""
import asyncio
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from meeting_summarizer.config import Settings
from meeting_summarizer.exceptions import (
    APIError,
    ConfigurationError,
    PreconditionError,
    RateLimitError,
    ResourceLimitError,
    SummarizerError,
)
from meeting_summarizer.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar('T')

_CONNECTION_MESSAGE = re.compile(r"connection|timeout|timed out|reset|refused|unreachable", re.IGNORECASE)


def is_retryable_error(error: BaseException) -> bool:
    """
    Decide whether an error is a transient connection-class failure.

    Args:
        error: The raised exception

    Returns:
        True for connection resets/timeouts/refusals, unreachable hosts and rate limiting
    """
    if isinstance(error, RateLimitError):
        return True
    if isinstance(error, APIError):
        return error.status_code == 429
    if isinstance(error, SummarizerError):
        return False
    if isinstance(error, httpx.UnsupportedProtocol):
        return False
    if isinstance(error, (httpx.TransportError, ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True
    return bool(_CONNECTION_MESSAGE.search(str(error)))


def is_fatal_error(error: BaseException) -> bool:
    """
    Decide whether the queue must fail a job without another attempt.

    Precondition, resource-limit and configuration failures cannot be fixed by
    retrying, nor can permanent provider errors (4xx other than 429).
    """
    if isinstance(error, (PreconditionError, ResourceLimitError, ConfigurationError)):
        return True
    if isinstance(error, APIError) and error.status_code is not None:
        return 400 <= error.status_code < 500 and error.status_code != 429
    return False


def parse_retry_after(response: httpx.Response) -> Optional[float]:
    """Read a numeric Retry-After header, if the provider sent one."""
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "external_call_retry",
        attempt=retry_state.attempt_number,
        wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        error=str(error),
        error_type=type(error).__name__,
    )


@dataclass
class RetryPolicy:
    """
    Exponential backoff for one external call.

    Waits 1s, 2s, 4s ... capped at ``max_wait`` and only retries
    connection-class errors; anything else propagates on the first attempt.
    """

    max_attempts: int = 3
    backoff_base: float = 2.0
    max_wait: float = 10.0
    sleep: Optional[Callable[[float], Awaitable[None]]] = None

    @classmethod
    def from_settings(
        cls,
        config: Settings,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_retries,
            backoff_base=config.retry_backoff_base,
            max_wait=config.retry_max_wait,
            sleep=sleep,
        )

    def retrying(self) -> AsyncRetrying:
        kwargs = dict(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=self.max_wait, exp_base=self.backoff_base),
            retry=retry_if_exception(is_retryable_error),
            before_sleep=_log_retry,
            reraise=True,
        )
        if self.sleep is not None:
            kwargs["sleep"] = self.sleep
        return AsyncRetrying(**kwargs)

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run ``func`` under this policy and return its result."""
        return await self.retrying()(func, *args, **kwargs)


def format_duration(seconds: float) -> str:
    """
    Format duration in seconds to human-readable string.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string like "2m 30s"
    """
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes}m {secs}s"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h {minutes}m"


TRUNCATION_MARKER = "\n...[truncated]"


def truncate_text(text: str, max_chars: int, marker: str = TRUNCATION_MARKER) -> str:
    """Cut text to ``max_chars`` and append a truncation marker when cut."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + marker


def safe_dict_get(d: dict, *keys: Any, default: Any = None) -> Any:
    """
    Safely get nested dictionary values.

    Args:
        d: Dictionary to search
        *keys: Keys (or list indexes) to traverse
        default: Default value if key not found

    Returns:
        Value or default
    """
    for key in keys:
        try:
            d = d[key]
        except (KeyError, IndexError, TypeError, AttributeError):
            return default
    return d
