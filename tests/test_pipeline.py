"""
Tests for the pipeline orchestrator.
"""
import asyncio
import json

import pytest
from sqlalchemy import select

from meeting_summarizer.exceptions import LLMAPIError, PreconditionError
from meeting_summarizer.models import ActionItem, MeetingRecord, ProcessingLog, Summary, Transcript
from meeting_summarizer.pipeline import PipelineJob
from meeting_summarizer.schemas import JobPayload
from tests.conftest import VIDEO_URL, FakeLLMClient, FakeTranscriptionProvider

STAGES = ["retrieve", "merge", "summarize", "format", "save", "complete"]

LLM_RESPONSE = json.dumps({
    "overview": "Team agreed to ship on Friday.",
    "sections": [{"title": "Release", "content": "Ship it Friday."}],
    "actionItems": [{"title": "Ship release", "dueDate": "2026-03-13", "priority": "high"}],
    "decisions": ["Ship on Friday"],
    "risks": [],
})


def job(meeting_id: str = "M1", regenerate: bool = False, attempt: int = 1, job_id: str = "job-1") -> PipelineJob:
    return PipelineJob(job_id=job_id, payload=JobPayload(meeting_id=meeting_id, regenerate=regenerate), attempt=attempt)


async def fetch_all(session_factory, model, *criteria):
    async with session_factory() as session:
        return (await session.execute(select(model).where(*criteria))).scalars().all()


@pytest.fixture
def video_head(mock_http):
    return mock_http.head(VIDEO_URL).respond(200, headers={"Content-Length": "4096"})


@pytest.mark.unit
class TestSummaryPipeline:
    """Test the stage sequence, persistence and failure handling."""

    @pytest.mark.asyncio
    async def test_end_to_end(self, make_pipeline, session_factory, sample_meeting, video_head):
        llm = FakeLLMClient(responses=[LLM_RESPONSE])
        provider = FakeTranscriptionProvider()
        pipeline = make_pipeline(llm, provider)
        events = []

        async def progress(event):
            events.append(event)

        result = await pipeline.run(job(), progress=progress)

        assert result.success is True
        assert result.version == 1
        assert result.action_items_created == 1
        assert [e.stage for e in events] == STAGES
        assert [e.percentage for e in events] == [10, 30, 50, 75, 90, 100]

        async with session_factory() as session:
            meeting = await session.get(MeetingRecord, "M1")
        assert meeting.processing_status == "completed"
        assert meeting.summary_id == result.summary_id
        assert meeting.summary_versions == [result.summary_id]
        assert meeting.last_job_id == "job-1"

        items = await fetch_all(session_factory, ActionItem)
        assert len(items) == 1
        assert items[0].priority == "high"
        assert items[0].source_type == "ai_extracted"

        summary = (await fetch_all(session_factory, Summary))[0]
        assert summary.action_items == [items[0].id]
        assert summary.is_latest is True
        assert summary.reason == "initial"
        assert summary.transcript_id == meeting.transcript_id
        assert summary.quality["transcript_confidence"] == 0.8

        user_message = llm.calls[0][1]["content"]
        assert "alice: ship it Friday" in user_message
        assert "We agreed to ship it on Friday." in user_message

        logs = await fetch_all(session_factory, ProcessingLog, ProcessingLog.job_id == "job-1")
        assert sorted(log.stage for log in logs) == sorted(STAGES)
        assert all(log.status == "completed" for log in logs)
        summarize_log = next(log for log in logs if log.stage == "summarize")
        assert summarize_log.input_tokens == 120
        assert summarize_log.output_tokens == 80

    @pytest.mark.asyncio
    async def test_missing_risks_still_completes(self, make_pipeline, session_factory, sample_meeting, video_head):
        response = json.dumps({"overview": "Short sync", "sections": [], "actionItems": [], "decisions": []})
        pipeline = make_pipeline(FakeLLMClient(responses=[response]), FakeTranscriptionProvider())

        result = await pipeline.run(job())

        summary = (await fetch_all(session_factory, Summary, Summary.id == result.summary_id))[0]
        assert summary.risks == []
        assert summary.overview == "Short sync"

    @pytest.mark.asyncio
    async def test_non_json_response_still_completes(self, make_pipeline, session_factory, sample_meeting, video_head):
        pipeline = make_pipeline(FakeLLMClient(responses=["The meeting was fine."]), FakeTranscriptionProvider())

        result = await pipeline.run(job())

        summary = (await fetch_all(session_factory, Summary, Summary.id == result.summary_id))[0]
        assert summary.overview == ""
        assert summary.sections == []
        assert summary.action_items == []
        assert summary.decisions == []
        assert summary.risks == []
        assert result.action_items_created == 0

        format_log = (await fetch_all(session_factory, ProcessingLog, ProcessingLog.stage == "format"))[0]
        assert format_log.details["parseOutcome"] == "fallback"

    @pytest.mark.asyncio
    async def test_regeneration_reuses_transcript(self, make_pipeline, session_factory, sample_meeting, video_head):
        provider = FakeTranscriptionProvider()
        pipeline = make_pipeline(FakeLLMClient(responses=[LLM_RESPONSE]), provider)

        first = await pipeline.run(job(job_id="job-1"))
        second = await pipeline.run(job(regenerate=True, job_id="job-2"))

        assert provider.calls == [VIDEO_URL]
        assert len(await fetch_all(session_factory, Transcript)) == 1

        rows = await fetch_all(session_factory, Summary)
        by_id = {r.id: r for r in rows}
        assert by_id[first.summary_id].is_latest is False
        assert by_id[second.summary_id].is_latest is True
        assert by_id[second.summary_id].version == 2
        assert by_id[second.summary_id].reason == "regenerated_by_pm"

        async with session_factory() as session:
            meeting = await session.get(MeetingRecord, "M1")
        assert meeting.summary_versions == [first.summary_id, second.summary_id]
        assert meeting.summary_id == second.summary_id

    @pytest.mark.asyncio
    async def test_queue_retry_reason(self, make_pipeline, session_factory, sample_meeting, video_head):
        pipeline = make_pipeline(FakeLLMClient(responses=[LLM_RESPONSE]), FakeTranscriptionProvider())

        result = await pipeline.run(job(attempt=2))

        summary = (await fetch_all(session_factory, Summary, Summary.id == result.summary_id))[0]
        assert summary.reason == "retry"
        logs = await fetch_all(session_factory, ProcessingLog)
        assert {log.retry_count for log in logs} == {1}

    @pytest.mark.asyncio
    async def test_no_video_fails_without_summary(self, make_pipeline, session_factory, sample_meeting):
        async with session_factory() as session:
            meeting = await session.get(MeetingRecord, "M1")
            meeting.video_link = None
            await session.commit()
        llm = FakeLLMClient(responses=[LLM_RESPONSE])
        pipeline = make_pipeline(llm, FakeTranscriptionProvider())
        events = []

        async def progress(event):
            events.append(event)

        with pytest.raises(PreconditionError):
            await pipeline.run(job(), progress=progress)

        async with session_factory() as session:
            meeting = await session.get(MeetingRecord, "M1")
        assert meeting.processing_status == "failed"
        assert llm.calls == []
        assert await fetch_all(session_factory, Summary) == []
        assert [e.stage for e in events] == ["retrieve"]

        error_log = (await fetch_all(session_factory, ProcessingLog, ProcessingLog.stage == "error"))[0]
        assert error_log.status == "failed"
        assert "no transcript and no video" in error_log.error
        assert "PreconditionError" in error_log.error_stack
        assert error_log.details == {"stage": "retrieve"}

    @pytest.mark.asyncio
    async def test_unknown_meeting(self, make_pipeline, session_factory):
        pipeline = make_pipeline(FakeLLMClient(responses=["{}"]), FakeTranscriptionProvider())

        with pytest.raises(PreconditionError):
            await pipeline.run(job(meeting_id="missing"))

        error_logs = await fetch_all(session_factory, ProcessingLog, ProcessingLog.stage == "error")
        assert len(error_logs) == 1

    @pytest.mark.asyncio
    async def test_llm_auth_failure_marks_meeting_failed(
        self, make_pipeline, session_factory, sample_meeting, video_head
    ):
        llm = FakeLLMClient(responses=[LLMAPIError("Unauthorized", status_code=401)])
        pipeline = make_pipeline(llm, FakeTranscriptionProvider())

        with pytest.raises(LLMAPIError):
            await pipeline.run(job())

        assert len(llm.calls) == 1
        async with session_factory() as session:
            meeting = await session.get(MeetingRecord, "M1")
        assert meeting.processing_status == "failed"
        assert meeting.transcript_id is not None
        error_log = (await fetch_all(session_factory, ProcessingLog, ProcessingLog.stage == "error"))[0]
        assert error_log.details == {"stage": "summarize"}

    @pytest.mark.asyncio
    async def test_cancelled_job_records_error(self, make_pipeline, session_factory, sample_meeting, video_head):
        started = asyncio.Event()

        class StalledLLMClient(FakeLLMClient):
            async def complete(self, messages, temperature, max_tokens, json_mode=True):
                started.set()
                await asyncio.Event().wait()

        pipeline = make_pipeline(StalledLLMClient(responses=[LLM_RESPONSE]), FakeTranscriptionProvider())
        task = asyncio.create_task(pipeline.run(job()))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        async with session_factory() as session:
            meeting = await session.get(MeetingRecord, "M1")
        assert meeting.processing_status == "failed"
        error_logs = await fetch_all(session_factory, ProcessingLog, ProcessingLog.stage == "error")
        assert len(error_logs) == 1
        assert error_logs[0].status == "failed"
        assert error_logs[0].details == {"stage": "summarize"}
        assert error_logs[0].error == "CancelledError"
        assert "CancelledError" in error_logs[0].error_stack
        assert await fetch_all(session_factory, Summary) == []
