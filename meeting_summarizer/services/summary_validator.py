"""
Parsing and normalization of model output into the canonical summary shape.

Parsing is attempted in a fixed order: the whole response as JSON, then the
substring between the first ``{`` and the last ``}``, then an empty structure.
Nothing in this module raises on malformed input.
"""
import json
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional, Union

from meeting_summarizer.logging_config import get_logger
from meeting_summarizer.schemas import (
    ActionItemDraft,
    DecisionItem,
    FormattedSummary,
    QualityBlock,
    RiskItem,
    SummaryContent,
    SummarySection,
)

logger = get_logger(__name__)

PRIORITIES = ("high", "medium", "low")
DEFAULT_TRANSCRIPT_CONFIDENCE = 0.9


@dataclass(frozen=True)
class ParsedSummary:
    """The response was a JSON object as-is."""
    content: SummaryContent
    outcome: str = field(default="parsed", init=False)


@dataclass(frozen=True)
class RepairedSummary:
    """A JSON object was recovered from surrounding text."""
    content: SummaryContent
    outcome: str = field(default="repaired", init=False)


@dataclass(frozen=True)
class EmptyFallback:
    """Nothing usable was found; the summary is empty but valid."""
    content: SummaryContent = field(default_factory=SummaryContent)
    outcome: str = field(default="fallback", init=False)


ParseOutcome = Union[ParsedSummary, RepairedSummary, EmptyFallback]


def _load_object(text: str) -> Optional[dict]:
    try:
        value = json.loads(text)
    except (TypeError, ValueError, RecursionError):
        # Nesting deeper than the interpreter stack counts as unparseable
        return None
    return value if isinstance(value, dict) else None


def parse_summary_json(raw: Optional[str]) -> ParseOutcome:
    """
    Turn a raw model response into a summary, degrading instead of failing.

    Args:
        raw: Text returned by the chat completion

    Returns:
        ParsedSummary, RepairedSummary or EmptyFallback
    """
    if not raw or not raw.strip():
        logger.warning("summary_response_empty")
        return EmptyFallback()

    data = _load_object(raw)
    if data is not None:
        return ParsedSummary(normalize_summary(data))

    start = raw.find("{")
    end = raw.rfind("}")
    if start != -1 and end > start:
        data = _load_object(raw[start:end + 1])
        if data is not None:
            logger.info("summary_json_recovered", discarded_chars=len(raw) - (end + 1 - start))
            return RepairedSummary(normalize_summary(data))

    logger.warning("summary_json_unparseable", response_length=len(raw))
    return EmptyFallback()


def _as_text(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, (str, int, float)):
        return str(value).strip()
    return ""


def _as_list(data: dict, *keys: str) -> list:
    for key in keys:
        value = data.get(key)
        if isinstance(value, list):
            return value
    return []


def _normalize_level(value: Any) -> str:
    level = _as_text(value).lower()
    return level if level in PRIORITIES else "medium"


def _parse_due_date(value: Any) -> Optional[date]:
    text = _as_text(value)
    if not text or text.lower() == "null":
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def normalize_summary(data: dict) -> SummaryContent:
    """
    Coerce a decoded JSON object into ``SummaryContent``.

    Missing or mistyped fields become empty values; string decisions and risks
    become objects with only a title; unknown priorities become ``medium``.
    """
    sections = [
        SummarySection(title=_as_text(s.get("title")), content=_as_text(s.get("content")))
        for s in _as_list(data, "sections")
        if isinstance(s, dict)
    ]

    action_items = []
    for item in _as_list(data, "actionItems", "action_items"):
        if not isinstance(item, dict):
            continue
        title = _as_text(item.get("title"))
        if not title:
            continue
        action_items.append(ActionItemDraft(
            title=title,
            due_date=_parse_due_date(item.get("dueDate", item.get("due_date"))),
            priority=_normalize_level(item.get("priority")),
        ))

    decisions = []
    for decision in _as_list(data, "decisions"):
        if isinstance(decision, dict):
            title = _as_text(decision.get("title"))
            context = _as_text(decision.get("context"))
        else:
            title, context = _as_text(decision), ""
        if title:
            decisions.append(DecisionItem(title=title, context=context))

    risks = []
    for risk in _as_list(data, "risks"):
        if isinstance(risk, dict):
            title = _as_text(risk.get("title"))
            description = _as_text(risk.get("description"))
            severity = _normalize_level(risk.get("severity"))
        else:
            title, description, severity = _as_text(risk), "", "medium"
        if title:
            risks.append(RiskItem(title=title, description=description, severity=severity))

    content = SummaryContent(
        overview=_as_text(data.get("overview")),
        sections=sections,
        action_items=action_items,
        decisions=decisions,
        risks=risks,
    )
    logger.debug(
        "summary_normalized",
        overview_length=len(content.overview),
        sections=len(sections),
        action_items=len(action_items),
        decisions=len(decisions),
        risks=len(risks),
    )
    return content


def compute_quality_score(content: SummaryContent) -> int:
    score = 85
    score -= 5 if len(content.sections) > 5 else 0
    score += 10 if content.action_items else 0
    score += 5 if content.decisions else 0
    return min(100, score)


def format_summary(
    outcome: ParseOutcome,
    transcript_confidence: Optional[float] = None,
    token_used: Optional[int] = None,
    generated_at: Optional[datetime] = None,
) -> FormattedSummary:
    """
    Attach the quality block to parsed content.

    Args:
        outcome: Result of ``parse_summary_json``
        transcript_confidence: Mean segment confidence of the source transcript
        token_used: Total tokens spent on the completion
        generated_at: Generation timestamp (now if None)
    """
    content = outcome.content
    confidence = DEFAULT_TRANSCRIPT_CONFIDENCE if transcript_confidence is None else transcript_confidence
    quality = QualityBlock(
        transcript_confidence=round(min(max(confidence, 0.0), 1.0), 4),
        summary_score=compute_quality_score(content),
        token_used=token_used,
        generated_at=generated_at or datetime.utcnow(),
    )
    return FormattedSummary(content=content, quality=quality)
