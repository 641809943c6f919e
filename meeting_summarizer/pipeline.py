"""
Pipeline orchestrator for one summarization job.

Stages run strictly in order: retrieve, merge, summarize, format, save,
complete. Any error moves the job to the error state, marks the meeting
failed and is re-raised so the queue can decide whether to try again.
A retried job starts over from retrieve; a completed transcript is reused.
"""
import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional

import httpx
from sqlalchemy.ext.asyncio import async_sessionmaker

from meeting_summarizer.exceptions import PreconditionError
from meeting_summarizer.logging_config import get_logger
from meeting_summarizer.monitoring import pipeline_stage_duration, record_error
from meeting_summarizer.schemas import JobPayload, JobResult, ProgressEvent
from meeting_summarizer.services.attachments import AttachmentExtractor
from meeting_summarizer.services.chat_history import load_chat_history
from meeting_summarizer.services.context_builder import build_meeting_context
from meeting_summarizer.services.meeting_store import MeetingStore
from meeting_summarizer.services.processing_log import ProcessingLogWriter, estimate_cost
from meeting_summarizer.services.summarization import SummarizationService
from meeting_summarizer.services.summary_store import SummaryStore
from meeting_summarizer.services.summary_validator import format_summary
from meeting_summarizer.services.transcription_stage import TranscriptionService
from meeting_summarizer.utils import format_duration

logger = get_logger(__name__)

ProgressCallback = Callable[[ProgressEvent], Awaitable[None]]

PROGRESS: Dict[str, tuple] = {
    "retrieve": (10, "Fetching data..."),
    "merge": (30, "Preparing context..."),
    "summarize": (50, "Analyzing with AI..."),
    "format": (75, "Validating output..."),
    "save": (90, "Saving to database..."),
    "complete": (100, "Complete!"),
}


@dataclass
class PipelineJob:
    """One dequeued job: queue id, payload and which attempt this is (1-based)."""
    job_id: str
    payload: JobPayload
    attempt: int = 1

    @property
    def reason(self) -> str:
        if self.payload.regenerate:
            return "regenerated_by_pm"
        if self.attempt > 1:
            return "retry"
        return "initial"


class SummaryPipeline:
    """Drives a job through every stage and records what happened."""

    def __init__(
        self,
        meetings: MeetingStore,
        transcription: TranscriptionService,
        attachments: AttachmentExtractor,
        summarizer: SummarizationService,
        summaries: SummaryStore,
        http_client: httpx.AsyncClient,
        session_factory: Optional[async_sessionmaker] = None,
        chat_history_limit: int = 50,
        max_context_chars: int = 60000,
        input_token_price: Optional[float] = None,
        output_token_price: Optional[float] = None,
    ):
        self.meetings = meetings
        self.transcription = transcription
        self.attachments = attachments
        self.summarizer = summarizer
        self.summaries = summaries
        self._http = http_client
        self._session_factory = session_factory
        self.chat_history_limit = chat_history_limit
        self.max_context_chars = max_context_chars
        self.input_token_price = input_token_price
        self.output_token_price = output_token_price

    async def _enter(self, stage: str, progress: Optional[ProgressCallback]) -> tuple:
        percentage, message = PROGRESS[stage]
        logger.info("pipeline_stage", stage=stage, percentage=percentage)
        if progress is not None:
            await progress(ProgressEvent(stage=stage, percentage=percentage, message=message))
        return time.monotonic(), datetime.utcnow()

    async def _finish(
        self,
        log: ProcessingLogWriter,
        stage: str,
        started: tuple,
        **kwargs,
    ) -> None:
        clock, started_at = started
        pipeline_stage_duration.labels(stage=stage).observe(time.monotonic() - clock)
        await log.record(stage, "completed", start_time=started_at, **kwargs)

    async def run(self, job: PipelineJob, progress: Optional[ProgressCallback] = None) -> JobResult:
        """
        Execute the full pipeline for one job.

        Args:
            job: The dequeued job
            progress: Receives a ProgressEvent at every stage transition

        Returns:
            JobResult of the saved summary

        Raises:
            PreconditionError: Meeting missing, or nothing to transcribe
            Exception: Whatever a stage raised, after the failure was recorded
        """
        meeting_id = job.payload.meeting_id
        log = ProcessingLogWriter(
            meeting_id,
            job.job_id,
            retry_count=job.attempt - 1,
            session_factory=self._session_factory,
        )
        job_started_at = datetime.utcnow()
        stage = "retrieve"

        try:
            # RETRIEVE
            started = await self._enter("retrieve", progress)
            meeting = await self.meetings.get(meeting_id)
            if meeting is None:
                raise PreconditionError(f"Meeting {meeting_id} not found")
            await self.meetings.mark_processing(meeting_id, job.job_id)

            transcript = await self.transcription.ensure_transcript(meeting)
            chat_history = await load_chat_history(self._http, meeting, limit=self.chat_history_limit)
            attachment_texts = await self.attachments.extract_all(meeting.attachments or [])
            await self._finish(log, "retrieve", started, details={
                "transcriptId": transcript.id,
                "transcriptStatus": transcript.status,
                "transcriptLength": len(transcript.text),
                "chatHistoryLength": len(chat_history),
                "attachmentsCount": len(meeting.attachments or []),
                "attachmentsWithText": len(attachment_texts),
            })

            # MERGE
            stage = "merge"
            started = await self._enter("merge", progress)
            context = build_meeting_context(
                meeting,
                transcript.text,
                chat_history,
                attachment_texts,
                max_chars=self.max_context_chars,
                chat_limit=self.chat_history_limit,
            )
            await self._finish(log, "merge", started, details={"contextLength": len(context)})

            # SUMMARIZE
            stage = "summarize"
            started = await self._enter("summarize", progress)
            result = await self.summarizer.summarize(context, language=transcript.language)
            completion = result.completion
            await self._finish(
                log, "summarize", started,
                input_tokens=completion.prompt_tokens,
                output_tokens=completion.completion_tokens,
                cost_estimate=estimate_cost(
                    completion.prompt_tokens,
                    completion.completion_tokens,
                    self.input_token_price,
                    self.output_token_price,
                ),
                details={
                    "model": completion.model,
                    "finishReason": completion.finish_reason,
                    "attempts": result.attempts,
                },
            )

            # FORMAT
            stage = "format"
            started = await self._enter("format", progress)
            formatted = format_summary(
                result.parsed,
                transcript_confidence=transcript.mean_confidence,
                token_used=completion.total_tokens,
            )
            await self._finish(log, "format", started, details={
                "parseOutcome": result.parsed.outcome,
                "actionItemsCount": len(formatted.content.action_items),
                "sectionsCount": len(formatted.content.sections),
                "qualityScore": formatted.quality.summary_score,
            })

            # SAVE
            stage = "save"
            started = await self._enter("save", progress)
            saved = await self.summaries.save(
                meeting,
                transcript.id,
                formatted,
                reason=job.reason,
                generation_details=self.summarizer.generation_details,
            )
            await self.meetings.mark_completed(meeting_id, saved.summary_id, transcript.id)
            await self._finish(log, "save", started, details={
                "summaryId": saved.summary_id,
                "version": saved.version,
            })

            # COMPLETE
            stage = "complete"
            await log.record(
                "complete", "completed",
                start_time=job_started_at,
                input_tokens=completion.prompt_tokens,
                output_tokens=completion.completion_tokens,
                details={
                    "summaryVersion": saved.version,
                    "actionItemsCreated": len(saved.action_item_ids),
                },
            )
            await self._enter("complete", progress)
        except (Exception, asyncio.CancelledError) as e:
            # A job timeout arrives as cancellation and still ends in the error state
            await self._record_failure(log, meeting_id, stage, job_started_at, e)
            raise

        logger.info(
            "pipeline_completed",
            summary_id=saved.summary_id,
            version=saved.version,
            action_items=len(saved.action_item_ids),
            elapsed=format_duration((datetime.utcnow() - job_started_at).total_seconds()),
        )
        return JobResult(
            success=True,
            summary_id=saved.summary_id,
            version=saved.version,
            action_items_created=len(saved.action_item_ids),
        )

    async def _record_failure(
        self,
        log: ProcessingLogWriter,
        meeting_id: str,
        stage: str,
        job_started_at: datetime,
        error: BaseException,
    ) -> None:
        record_error(type(error).__name__, stage)
        logger.error("pipeline_failed", stage=stage, error=str(error), error_type=type(error).__name__)
        try:
            await self.meetings.mark_failed(meeting_id)
            await log.record("error", "failed", start_time=job_started_at, error=error, details={"stage": stage})
        except Exception:
            # The stage error is what the queue needs to see
            logger.exception("pipeline_failure_not_recorded", stage=stage)
