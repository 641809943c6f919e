"""
Reads and status updates of the meeting aggregate.
"""
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import async_sessionmaker

from meeting_summarizer.db import get_db_session
from meeting_summarizer.logging_config import get_logger
from meeting_summarizer.models import MeetingRecord

logger = get_logger(__name__)


class MeetingStore:
    """The pipeline's view of meetings: it only ever writes the processing fields."""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self._session_factory = session_factory

    async def get(self, meeting_id: str) -> Optional[MeetingRecord]:
        async with get_db_session(self._session_factory) as session:
            return await session.get(MeetingRecord, meeting_id)

    async def _set(self, meeting_id: str, **values) -> None:
        async with get_db_session(self._session_factory) as session:
            await session.execute(
                update(MeetingRecord).where(MeetingRecord.id == meeting_id).values(**values)
            )
        logger.debug("meeting_updated", meeting_id=meeting_id, fields=sorted(values))

    async def mark_processing(self, meeting_id: str, job_id: Optional[str]) -> None:
        await self._set(meeting_id, processing_status="processing", last_job_id=job_id)

    async def mark_failed(self, meeting_id: str) -> None:
        await self._set(meeting_id, processing_status="failed")

    async def mark_completed(self, meeting_id: str, summary_id: str, transcript_id: Optional[str]) -> None:
        """Point the meeting at its new latest summary and record the version."""
        async with get_db_session(self._session_factory) as session:
            meeting = await session.get(MeetingRecord, meeting_id, with_for_update=True)
            if meeting is None:
                return
            meeting.summary_id = summary_id
            meeting.summary_versions = [*(meeting.summary_versions or []), summary_id]
            if transcript_id:
                meeting.transcript_id = transcript_id
            meeting.processing_status = "completed"
