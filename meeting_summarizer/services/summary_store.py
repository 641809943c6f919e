"""
Versioned persistence of summaries and their action items.
"""
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from meeting_summarizer.db import get_db_session
from meeting_summarizer.exceptions import DatabaseError
from meeting_summarizer.logging_config import get_logger
from meeting_summarizer.models import ActionItem, MeetingRecord, Summary
from meeting_summarizer.schemas import FormattedSummary

logger = get_logger(__name__)


@dataclass
class SavedSummary:
    summary_id: str
    version: int
    action_item_ids: List[str] = field(default_factory=list)


class SummaryStore:
    """
    Writes new summary versions.

    Each save computes ``max(version) + 1`` for the meeting, clears the
    previous latest flag and inserts the new latest row in one transaction,
    so readers never see zero or two latest versions.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self._session_factory = session_factory

    async def save(
        self,
        meeting: MeetingRecord,
        transcript_id: Optional[str],
        formatted: FormattedSummary,
        reason: str,
        generation_details: Dict[str, object],
    ) -> SavedSummary:
        """
        Persist a new latest summary, then its action items.

        Raises:
            DatabaseError: A concurrent writer took the same version number
        """
        content = formatted.content
        try:
            async with get_db_session(self._session_factory) as session:
                current = await session.scalar(
                    select(func.max(Summary.version)).where(Summary.meeting_id == meeting.id)
                )
                version = (current or 0) + 1

                await session.execute(
                    update(Summary)
                    .where(Summary.meeting_id == meeting.id, Summary.is_latest.is_(True))
                    .values(is_latest=False)
                )
                summary = Summary(
                    meeting_id=meeting.id,
                    transcript_id=transcript_id,
                    version=version,
                    is_latest=True,
                    reason=reason,
                    overview=content.overview,
                    sections=[s.model_dump() for s in content.sections],
                    action_items=[],
                    decisions=[d.model_dump() for d in content.decisions],
                    risks=[r.model_dump() for r in content.risks],
                    quality=formatted.quality.model_dump(mode="json"),
                    generation_details=dict(generation_details),
                )
                session.add(summary)
                await session.flush()
                summary_id = summary.id
        except IntegrityError as e:
            raise DatabaseError(f"Concurrent summary write for meeting {meeting.id}: {e.orig}") from e

        logger.info("summary_saved", summary_id=summary_id, version=version, reason=reason)

        action_item_ids = []
        if content.action_items:
            async with get_db_session(self._session_factory) as session:
                items = [
                    ActionItem(
                        summary_id=summary_id,
                        meeting_id=meeting.id,
                        project_id=meeting.project_id,
                        name=draft.title,
                        description=draft.title,
                        due_date=datetime.combine(draft.due_date, time()) if draft.due_date else None,
                        priority=draft.priority,
                        source_type="ai_extracted",
                    )
                    for draft in content.action_items
                ]
                session.add_all(items)
                await session.flush()
                action_item_ids = [item.id for item in items]
                await session.execute(
                    update(Summary).where(Summary.id == summary_id).values(action_items=action_item_ids)
                )
            logger.info("action_items_created", summary_id=summary_id, count=len(action_item_ids))

        return SavedSummary(summary_id=summary_id, version=version, action_item_ids=action_item_ids)

    async def get_latest(self, meeting_id: str) -> Optional[Summary]:
        async with get_db_session(self._session_factory) as session:
            result = await session.execute(
                select(Summary).where(Summary.meeting_id == meeting_id, Summary.is_latest.is_(True))
            )
            return result.scalar_one_or_none()
