"""
Chat history loading for the merged context.
"""
from typing import Dict, List

import httpx

from meeting_summarizer.logging_config import get_logger
from meeting_summarizer.models import MeetingRecord

logger = get_logger(__name__)


def _messages(raw) -> List[Dict[str, str]]:
    if not isinstance(raw, list):
        return []
    return [
        {"from": str(m.get("from") or "unknown"), "message": str(m.get("message") or "")}
        for m in raw
        if isinstance(m, dict) and m.get("message")
    ]


async def load_chat_history(
    http_client: httpx.AsyncClient,
    meeting: MeetingRecord,
    limit: int = 50,
    timeout: float = 20.0,
) -> List[Dict[str, str]]:
    """
    Return the most recent chat messages of a meeting.

    Inline messages win; otherwise the chat-history URL is fetched as a JSON
    array. A failed download degrades to an empty history.
    """
    messages = _messages(meeting.chat_history)
    if not messages and meeting.chat_history_link:
        try:
            response = await http_client.get(meeting.chat_history_link, timeout=timeout, follow_redirects=True)
            response.raise_for_status()
            messages = _messages(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("chat_history_unavailable", url=meeting.chat_history_link, error=str(e))
            messages = []
    return messages[-limit:]
