"""
Client for OpenAI-compatible chat completion APIs (OpenAI, OpenRouter).
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

import httpx

from meeting_summarizer.config import Settings
from meeting_summarizer.exceptions import ConfigurationError, LLMAPIError, RateLimitError
from meeting_summarizer.logging_config import get_logger
from meeting_summarizer.rate_limiters import RateLimiters
from meeting_summarizer.utils import parse_retry_after, safe_dict_get

logger = get_logger(__name__)


@dataclass
class ChatCompletion:
    """Text and usage returned by one completion call."""
    content: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    finish_reason: Optional[str] = None

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class TextGenerationClient(ABC):
    """Capability: produce one completion for a list of chat messages."""

    model: str
    provider_name: str = "llm"

    @abstractmethod
    async def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: float,
        max_tokens: int,
        json_mode: bool = True,
    ) -> ChatCompletion:
        raise NotImplementedError


class ChatCompletionClient(TextGenerationClient):
    """Calls ``POST {base_url}/chat/completions``."""

    provider_name = "openai-compatible"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        model: str,
        base_url: str = "https://api.openai.com/v1",
        extra_headers: Optional[Dict[str, str]] = None,
        timeout: float = 120.0,
        rate_limiters: Optional[RateLimiters] = None,
    ):
        """Initialize the client around a shared httpx client."""
        self._http = http_client
        self._api_key = api_key
        self.model = model
        self._url = base_url.rstrip("/") + "/chat/completions"
        self._extra_headers = extra_headers or {}
        self._timeout = timeout
        self._rate_limiters = rate_limiters

    @classmethod
    def from_settings(
        cls,
        http_client: httpx.AsyncClient,
        settings: Settings,
        rate_limiters: Optional[RateLimiters] = None,
    ) -> "ChatCompletionClient":
        if not settings.is_llm_configured:
            raise ConfigurationError("OPENAI_API_KEY or OPENROUTER_API_KEY is required for summary generation")
        return cls(
            http_client,
            api_key=settings.llm_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            extra_headers=settings.llm_extra_headers,
            timeout=settings.llm_timeout_seconds,
            rate_limiters=rate_limiters,
        )

    async def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: float,
        max_tokens: int,
        json_mode: bool = True,
    ) -> ChatCompletion:
        """
        Request one completion.

        Raises:
            RateLimitError: Provider answered 429
            LLMAPIError: Any other non-2xx answer or an empty choice list
            httpx.TransportError: Connection-level failures, left for the retry policy
        """
        if self._rate_limiters:
            await self._rate_limiters.acquire_llm_limit()

        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            **self._extra_headers,
        }
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        response = await self._http.post(self._url, headers=headers, json=payload, timeout=self._timeout)

        if response.status_code == 429:
            raise RateLimitError(
                "Chat completion rate limited",
                retry_after=parse_retry_after(response),
                platform="llm",
            )
        if response.is_error:
            raise LLMAPIError(
                f"Chat completion failed: {response.status_code} - {response.text[:500]}",
                status_code=response.status_code,
            )

        data = response.json()
        choice = safe_dict_get(data, "choices", 0)
        if not isinstance(choice, dict):
            raise LLMAPIError("Chat completion response contained no choices", status_code=response.status_code)

        completion = ChatCompletion(
            content=safe_dict_get(choice, "message", "content", default="") or "",
            model=data.get("model") or self.model,
            prompt_tokens=safe_dict_get(data, "usage", "prompt_tokens", default=0) or 0,
            completion_tokens=safe_dict_get(data, "usage", "completion_tokens", default=0) or 0,
            finish_reason=choice.get("finish_reason"),
        )
        logger.info(
            "chat_completion_received",
            model=completion.model,
            prompt_tokens=completion.prompt_tokens,
            completion_tokens=completion.completion_tokens,
            finish_reason=completion.finish_reason,
        )
        return completion
