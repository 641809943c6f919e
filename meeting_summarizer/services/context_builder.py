"""
Builds the single prompt document sent to the LLM.
"""
from typing import Dict, List, Optional

from meeting_summarizer.models import MeetingRecord
from meeting_summarizer.services.attachments import AttachmentText
from meeting_summarizer.utils import TRUNCATION_MARKER, truncate_text

NO_TRANSCRIPT = "(no transcript)"

TASK_LINES = [
    "[TASK]",
    "Create a structured JSON meeting summary with the following parts:",
    "1. Overview (main topic, conclusion)",
    "2. Sections (detailed discussion points)",
    "3. Action Items (work to be done)",
    "4. Decisions (decisions that were made)",
    "5. Risks (risks that were identified)",
]


def _duration_minutes(meeting: MeetingRecord) -> Optional[int]:
    if meeting.start_time and meeting.end_time:
        return round((meeting.end_time - meeting.start_time).total_seconds() / 60)
    return None


def build_meeting_context(
    meeting: MeetingRecord,
    transcript_text: Optional[str],
    chat_history: List[Dict[str, str]],
    attachment_texts: List[AttachmentText],
    max_chars: int = 60000,
    chat_limit: int = 50,
) -> str:
    """
    Merge meeting metadata, transcript, chat and attachments into one document.

    Missing inputs degrade to placeholders or omitted sections. When the
    result would exceed ``max_chars``, the transcript is cut to fit.

    Args:
        meeting: Meeting being summarized
        transcript_text: Transcript text, if any
        chat_history: Chat messages (``from``/``message``), oldest first
        attachment_texts: Extracted attachment snippets
        max_chars: Ceiling for the whole document
        chat_limit: Most recent chat messages kept

    Returns:
        The merged context
    """
    header = ["[MEETING INFO]", f"Title: {meeting.title or 'Untitled meeting'}"]
    if meeting.start_time:
        header.append(f"Date: {meeting.start_time.strftime('%Y-%m-%d %H:%M')}")
    header.append(f"Participants: {meeting.participant_count or 0}")
    minutes = _duration_minutes(meeting)
    if minutes is not None:
        header.append(f"Duration: {minutes} minutes")
    header.append("")

    tail = []
    if chat_history:
        tail.append("[CHAT HISTORY]")
        tail.extend(f"{m['from']}: {m['message']}" for m in chat_history[-chat_limit:])
        tail.append("")

    filenames = [
        a.get("filename") for a in (meeting.attachments or []) if isinstance(a, dict) and a.get("filename")
    ]
    if filenames:
        tail.append("[ATTACHMENTS]")
        tail.extend(f"- {name}" for name in filenames)
        tail.append("")

    if attachment_texts:
        tail.append("[ATTACHMENT CONTENT]")
        for doc in attachment_texts:
            tail.append(f"--- {doc.filename} ---")
            tail.append(doc.snippet)
            tail.append("")

    tail.extend(TASK_LINES)

    transcript = (transcript_text or "").strip() or NO_TRANSCRIPT
    fixed = "\n".join(header + ["[TRANSCRIPT]", "", ""] + tail)
    room = max_chars - len(fixed)
    if len(transcript) > room:
        # The marker counts against the ceiling too
        cut = room - len(TRUNCATION_MARKER)
        transcript = truncate_text(transcript, cut) if cut > 0 else NO_TRANSCRIPT

    return "\n".join(header + ["[TRANSCRIPT]", transcript, ""] + tail)
