"""
Transcription stage: reuse the meeting's completed transcript or produce one.
"""
from datetime import datetime
from pathlib import Path
from typing import Optional

import httpx
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from meeting_summarizer.config import Settings
from meeting_summarizer.db import get_db_session
from meeting_summarizer.exceptions import PreconditionError, TranscriptionError
from meeting_summarizer.logging_config import get_logger
from meeting_summarizer.models import MeetingRecord, Transcript
from meeting_summarizer.monitoring import transcriptions_total
from meeting_summarizer.services.media import downloaded_video, probe_video_size
from meeting_summarizer.services.transcription import TranscriptionProvider, TranscriptionResult

logger = get_logger(__name__)


class TranscriptionService:
    """Owns the meeting's transcript: lookup, production and persistence."""

    def __init__(
        self,
        provider: TranscriptionProvider,
        http_client: httpx.AsyncClient,
        session_factory: Optional[async_sessionmaker] = None,
        language: str = "vi",
        max_bytes: int = 25 * 1024 * 1024,
        download_timeout: float = 60.0,
        temp_dir: Optional[Path] = None,
    ):
        self.provider = provider
        self._http = http_client
        self._session_factory = session_factory
        self.language = language
        self.max_bytes = max_bytes
        self.download_timeout = download_timeout
        self.temp_dir = temp_dir

    @classmethod
    def from_settings(
        cls,
        provider: TranscriptionProvider,
        http_client: httpx.AsyncClient,
        settings: Settings,
        session_factory: Optional[async_sessionmaker] = None,
    ) -> "TranscriptionService":
        return cls(
            provider,
            http_client,
            session_factory=session_factory,
            language=settings.transcribe_language,
            max_bytes=settings.max_transcribe_bytes,
            download_timeout=settings.video_download_timeout_seconds,
            temp_dir=settings.temp_dir,
        )

    async def find_completed(self, session: AsyncSession, meeting: MeetingRecord) -> Optional[Transcript]:
        """Return the meeting's usable transcript, if it has one."""
        if meeting.transcript_id:
            transcript = await session.get(Transcript, meeting.transcript_id)
            if transcript is not None and transcript.status == "completed":
                return transcript

        result = await session.execute(
            select(Transcript)
            .where(Transcript.meeting_id == meeting.id, Transcript.status == "completed")
            .order_by(Transcript.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def ensure_transcript(self, meeting: MeetingRecord) -> Transcript:
        """
        Return a completed transcript for the meeting, transcribing only if needed.

        Raises:
            PreconditionError: No completed transcript and no video to transcribe
        """
        async with get_db_session(self._session_factory) as session:
            existing = await self.find_completed(session, meeting)

        if existing is not None:
            logger.info("transcript_reused", transcript_id=existing.id)
            return existing

        if not meeting.video_link:
            raise PreconditionError(f"Meeting {meeting.id} has no transcript and no video to transcribe")

        return await self.transcribe_meeting(meeting)

    async def transcribe_meeting(self, meeting: MeetingRecord, language: Optional[str] = None) -> Transcript:
        """
        Run the configured provider over the meeting video and persist the result.

        A failure is persisted as a ``failed`` transcript before it is re-raised.
        """
        language = language or self.language
        provider = self.provider

        if provider.skips_transcription:
            logger.info("transcription_skipped", provider=provider.name)
            transcriptions_total.labels(provider=provider.name, status="skipped").inc()
            return await self._save(meeting, TranscriptionResult(text="", language=language), status="skipped")

        logger.info("transcription_started", provider=provider.name, language=language)
        try:
            if provider.source_mode == "file":
                async with downloaded_video(
                    self._http,
                    meeting.video_link,
                    max_bytes=self.max_bytes,
                    timeout=self.download_timeout,
                    temp_dir=self.temp_dir,
                ) as path:
                    result = await provider.transcribe(str(path), language)
            else:
                await probe_video_size(self._http, meeting.video_link, self.max_bytes, timeout=self.download_timeout)
                result = await provider.transcribe(meeting.video_link, language)

            if not result.text.strip():
                raise TranscriptionError(f"{provider.name} returned an empty transcript")
        except Exception as e:
            transcriptions_total.labels(provider=provider.name, status="failed").inc()
            logger.error("transcription_failed", provider=provider.name, error=str(e), error_type=type(e).__name__)
            await self._save_failed(meeting, language, str(e))
            raise

        transcriptions_total.labels(provider=provider.name, status="completed").inc()
        transcript = await self._save(meeting, result, status="completed")
        logger.info(
            "transcription_completed",
            transcript_id=transcript.id,
            segments=len(result.segments),
            duration=result.duration,
        )
        return transcript

    async def _save(self, meeting: MeetingRecord, result: TranscriptionResult, status: str) -> Transcript:
        transcript = Transcript(
            meeting_id=meeting.id,
            audio_url=meeting.video_link or "",
            duration=result.duration,
            raw_text=result.text,
            cleaned_text=result.text.strip(),
            segments=[s.to_dict() for s in result.segments],
            provider=self.provider.name,
            language=result.language or self.language,
            status=status,
            processed_at=datetime.utcnow(),
        )
        async with get_db_session(self._session_factory) as session:
            session.add(transcript)
            await session.flush()
            await session.execute(
                update(MeetingRecord)
                .where(MeetingRecord.id == meeting.id)
                .values(transcript_id=transcript.id)
            )
        meeting.transcript_id = transcript.id
        return transcript

    async def _save_failed(self, meeting: MeetingRecord, language: str, error: str) -> None:
        async with get_db_session(self._session_factory) as session:
            session.add(Transcript(
                meeting_id=meeting.id,
                audio_url=meeting.video_link or "",
                provider=self.provider.name,
                language=language,
                status="failed",
                error=error,
                processed_at=datetime.utcnow(),
            ))
