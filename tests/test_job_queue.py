"""
Tests for the arq-backed job queue wrapper.
"""
import json
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from arq.jobs import JobStatus
from redis.exceptions import ConnectionError as RedisConnectionError

from meeting_summarizer.job_queue import TASK_NAME, SummaryJobQueue, progress_key
from meeting_summarizer.services.summary_store import SummaryStore
from tests.test_summary_store import DETAILS, formatted

ENQUEUED_AT = datetime(2026, 3, 6, 9, 0)


def job_def(job_id: str, meeting_id: str, job_try: int = 1):
    return SimpleNamespace(
        job_id=job_id,
        args=({"meetingId": meeting_id, "regenerate": False, "options": {}},),
        job_try=job_try,
        enqueue_time=ENQUEUED_AT,
    )


def async_iter(items):
    async def _gen(*args, **kwargs):
        for item in items:
            yield item
    return _gen


def make_redis(queued=(), in_progress=(), results=(), progress=None):
    redis = MagicMock()
    redis.enqueue_job = AsyncMock(return_value=SimpleNamespace(job_id="job-1"))
    redis.queued_jobs = AsyncMock(return_value=list(queued))
    redis.all_job_results = AsyncMock(return_value=list(results))
    redis.scan_iter = async_iter(list(in_progress))
    redis.get = AsyncMock(return_value=json.dumps(progress) if progress else None)
    redis.ping = AsyncMock(return_value=True)
    return redis


def fake_job_class(status, info=None, result=None):
    """Stand-in for arq.jobs.Job returning canned status/info/result."""
    instance = MagicMock()
    instance.status = AsyncMock(return_value=status)
    instance.info = AsyncMock(return_value=info)
    instance.result_info = AsyncMock(return_value=result)
    return MagicMock(return_value=instance)


@pytest.mark.unit
class TestSummaryJobQueue:
    """Test enqueueing and job state mapping."""

    @pytest.mark.asyncio
    async def test_enqueue(self):
        redis = make_redis()
        queue = SummaryJobQueue(redis)

        job_id = await queue.enqueue("M1", regenerate=True, options={"source": "manual"})

        assert job_id == "job-1"
        redis.enqueue_job.assert_awaited_once_with(
            TASK_NAME,
            {"meetingId": "M1", "regenerate": True, "options": {"source": "manual"}},
            _queue_name="summarize",
        )

    @pytest.mark.asyncio
    async def test_get_job_unknown(self):
        with patch("meeting_summarizer.job_queue.Job", fake_job_class(JobStatus.not_found)):
            assert await SummaryJobQueue(make_redis()).get_job("nope") is None

    @pytest.mark.asyncio
    async def test_get_job_active_with_progress(self):
        progress = {"stage": "summarize", "percentage": 50, "message": "Analyzing with AI..."}
        redis = make_redis(progress=progress)

        with patch("meeting_summarizer.job_queue.Job", fake_job_class(JobStatus.in_progress, info=job_def("job-1", "M1"))):
            state = await SummaryJobQueue(redis).get_job("job-1")

        assert state.state == "active"
        assert state.meeting_id == "M1"
        assert state.progress == progress
        redis.get.assert_awaited_with(progress_key("job-1"))

    @pytest.mark.asyncio
    async def test_get_job_deferred_is_waiting(self):
        with patch("meeting_summarizer.job_queue.Job", fake_job_class(JobStatus.deferred, info=job_def("job-1", "M1", 2))):
            state = await SummaryJobQueue(make_redis()).get_job("job-1")

        assert state.state == "waiting"
        assert state.attempts == 2

    @pytest.mark.asyncio
    async def test_get_job_completed_and_failed(self):
        done = SimpleNamespace(success=True, result={"success": True, "summaryId": "S1", "version": 1})
        with patch("meeting_summarizer.job_queue.Job", fake_job_class(JobStatus.complete, job_def("job-1", "M1"), done)):
            state = await SummaryJobQueue(make_redis()).get_job("job-1")
        assert state.state == "completed"
        assert state.result["summaryId"] == "S1"

        failed = SimpleNamespace(success=False, result=RuntimeError("Meeting M1 not found"))
        with patch("meeting_summarizer.job_queue.Job", fake_job_class(JobStatus.complete, job_def("job-2", "M1"), failed)):
            state = await SummaryJobQueue(make_redis()).get_job("job-2")
        assert state.state == "failed"
        assert state.error == "Meeting M1 not found"

    @pytest.mark.asyncio
    async def test_list_jobs(self):
        result = SimpleNamespace(
            job_id="job-3",
            args=({"meetingId": "M3"},),
            job_try=3,
            enqueue_time=ENQUEUED_AT,
            queue_name="summarize",
            success=False,
            result=TimeoutError("job timed out"),
        )
        other_queue = SimpleNamespace(**{**vars(result), "job_id": "job-x", "queue_name": "emails"})
        redis = make_redis(
            queued=[job_def("job-1", "M1")],
            in_progress=[b"arq:in-progress:job-2"],
            results=[result, other_queue],
        )

        with patch("meeting_summarizer.job_queue.Job", fake_job_class(JobStatus.in_progress, info=job_def("job-2", "M2"))):
            jobs = await SummaryJobQueue(redis).list_jobs(("waiting", "active", "failed"))

        assert [(j.job_id, j.state, j.meeting_id) for j in jobs] == [
            ("job-1", "waiting", "M1"),
            ("job-2", "active", "M2"),
            ("job-3", "failed", "M3"),
        ]
        assert jobs[2].error == "job timed out"

    @pytest.mark.asyncio
    async def test_list_jobs_rejects_unknown_state(self):
        with pytest.raises(ValueError):
            await SummaryJobQueue(make_redis()).list_jobs(("stuck",))

    @pytest.mark.asyncio
    async def test_find_active_job(self):
        redis = make_redis(queued=[job_def("job-1", "M1"), job_def("job-5", "M5")])

        with patch("meeting_summarizer.job_queue.Job", fake_job_class(JobStatus.in_progress)):
            queue = SummaryJobQueue(redis)
            found = await queue.find_active_job("M5")
            missing = await queue.find_active_job("M9")

        assert found.job_id == "job-5"
        assert missing is None

    @pytest.mark.asyncio
    async def test_is_ready(self):
        redis = make_redis()
        assert await SummaryJobQueue(redis).is_ready() is True

        redis.ping = AsyncMock(side_effect=RedisConnectionError("Connection refused"))
        assert await SummaryJobQueue(redis).is_ready() is False


@pytest.mark.unit
class TestSummaryStatus:

    @pytest.mark.asyncio
    async def test_in_flight_job(self):
        redis = make_redis(queued=[job_def("job-1", "M1")])

        status = await SummaryJobQueue(redis).summary_status("M1")

        assert status["status"] == "processing"
        assert status["jobId"] == "job-1"
        assert status["progress"] == {"stage": "processing", "percentage": 0}

    @pytest.mark.asyncio
    async def test_latest_summary(self, session_factory, sample_meeting):
        saved = await SummaryStore(session_factory).save(
            sample_meeting, None, formatted(), reason="initial", generation_details=DETAILS
        )

        status = await SummaryJobQueue(make_redis()).summary_status("M1", session_factory=session_factory)

        assert status == {
            "status": "completed",
            "result": {"summaryId": saved.summary_id, "version": 1},
            "error": None,
        }

    @pytest.mark.asyncio
    async def test_nothing_yet(self, session_factory):
        status = await SummaryJobQueue(make_redis()).summary_status("M1", session_factory=session_factory)

        assert status == {"status": "pending", "progress": None, "error": None}

    @pytest.mark.asyncio
    async def test_specific_job(self):
        failed = SimpleNamespace(success=False, result=RuntimeError("Unauthorized"))
        with patch("meeting_summarizer.job_queue.Job", fake_job_class(JobStatus.complete, job_def("job-1", "M1"), failed)):
            status = await SummaryJobQueue(make_redis()).summary_status("M1", job_id="job-1")

        assert status == {"jobId": "job-1", "status": "failed", "error": "Unauthorized"}

        with patch("meeting_summarizer.job_queue.Job", fake_job_class(JobStatus.not_found)):
            assert await SummaryJobQueue(make_redis()).summary_status("M1", job_id="gone") is None
