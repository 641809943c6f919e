"""
Summarization stage: one LLM call under a fixed output contract.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional

from meeting_summarizer.logging_config import get_logger
from meeting_summarizer.monitoring import llm_tokens_total, summary_parse_outcomes_total
from meeting_summarizer.services.llm_client import ChatCompletion, TextGenerationClient
from meeting_summarizer.services.summary_validator import ParseOutcome, parse_summary_json
from meeting_summarizer.utils import RetryPolicy

logger = get_logger(__name__)

PROMPT_VERSION = "v1"

SYSTEM_PROMPT = """You are a meeting analysis expert. Analyze the meeting transcript and create a structured JSON summary.
Output MUST be valid JSON with exactly these keys:
{
  "overview": "string - main topic and conclusion",
  "sections": [{"title": "string", "content": "string"}],
  "actionItems": [{"title": "string", "dueDate": "YYYY-MM-DD or null", "priority": "high|medium|low"}],
  "decisions": ["string of decision"],
  "risks": ["string of risk"]
}
Output ONLY the JSON object, no additional text.
Language: write all content in the language spoken in the meeting (ISO 639-1 code "{language}"); keep JSON keys in English."""


@dataclass
class SummarizationResult:
    completion: ChatCompletion
    parsed: ParseOutcome
    attempts: int


class SummarizationService:
    """Sends the merged context to the LLM and parses what comes back."""

    def __init__(
        self,
        client: TextGenerationClient,
        temperature: float = 0.3,
        max_tokens: int = 3000,
        retry_policy: Optional[RetryPolicy] = None,
        default_language: str = "vi",
    ):
        self.client = client
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.retry_policy = retry_policy or RetryPolicy()
        self.default_language = default_language

    def build_messages(self, context: str, language: Optional[str] = None) -> List[Dict[str, str]]:
        system = SYSTEM_PROMPT.replace("{language}", language or self.default_language)
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": context},
        ]

    @property
    def generation_details(self) -> Dict[str, object]:
        return {
            "provider": self.client.provider_name,
            "promptVersion": PROMPT_VERSION,
            "model": self.client.model,
            "temperature": self.temperature,
        }

    async def summarize(self, context: str, language: Optional[str] = None) -> SummarizationResult:
        """
        Generate a summary for the merged context.

        Connection-class failures are retried by the retry policy; any other
        error propagates on the first attempt.

        Args:
            context: Merged meeting document
            language: Spoken language of the meeting

        Returns:
            The completion, its parse outcome and the number of attempts made
        """
        messages = self.build_messages(context, language)
        attempts = 0

        async def _call() -> ChatCompletion:
            nonlocal attempts
            attempts += 1
            return await self.client.complete(
                messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                json_mode=True,
            )

        logger.info(
            "llm_request",
            model=self.client.model,
            context_chars=len(context),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        completion = await self.retry_policy.call(_call)

        llm_tokens_total.labels(kind="prompt").inc(completion.prompt_tokens)
        llm_tokens_total.labels(kind="completion").inc(completion.completion_tokens)

        parsed = parse_summary_json(completion.content)
        summary_parse_outcomes_total.labels(outcome=parsed.outcome).inc()
        logger.info(
            "llm_response",
            response_chars=len(completion.content),
            parse_outcome=parsed.outcome,
            attempts=attempts,
        )
        return SummarizationResult(completion=completion, parsed=parsed, attempts=attempts)
