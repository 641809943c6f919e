"""
Summarization job queue on top of arq.

arq deduplicates by job id only. Callers that must not double-enqueue a
meeting check ``find_active_job`` first; a lost race only costs a wasted
run because every completed run stores a new summary version.
"""
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from arq.constants import in_progress_key_prefix
from arq.jobs import Job, JobStatus
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import async_sessionmaker

from meeting_summarizer.config import Settings
from meeting_summarizer.logging_config import get_logger
from meeting_summarizer.schemas import JobOptions, JobPayload
from meeting_summarizer.services.summary_store import SummaryStore

logger = get_logger(__name__)

TASK_NAME = "summarize_meeting"
PROGRESS_KEY_PREFIX = "summary:progress:"
JOB_STATES = ("waiting", "active", "completed", "failed")

_STATUS_MAP = {
    JobStatus.deferred: "waiting",
    JobStatus.queued: "waiting",
    JobStatus.in_progress: "active",
}


def progress_key(job_id: str) -> str:
    return f"{PROGRESS_KEY_PREFIX}{job_id}"


def _meeting_id(args: Iterable[Any]) -> Optional[str]:
    for arg in args or ():
        if isinstance(arg, dict):
            return arg.get("meetingId") or arg.get("meeting_id")
    return None


@dataclass
class JobState:
    """Queue-side view of one job."""
    job_id: str
    state: str
    meeting_id: Optional[str] = None
    attempts: int = 0
    enqueued_at: Optional[datetime] = None
    progress: Optional[Dict[str, Any]] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class SummaryJobQueue:
    """Enqueue and inspect summarization jobs."""

    def __init__(self, redis: ArqRedis, queue_name: str = "summarize"):
        self.redis = redis
        self.queue_name = queue_name

    async def is_ready(self) -> bool:
        """Whether the queue backend is reachable; callers answer 503 when it is not."""
        try:
            return bool(await self.redis.ping())
        except (RedisError, OSError) as e:
            logger.warning("queue_unreachable", error=str(e))
            return False

    async def enqueue(
        self,
        meeting_id: str,
        regenerate: bool = False,
        options: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Add a summarization job.

        Returns:
            The new job id
        """
        payload = JobPayload(meeting_id=meeting_id, regenerate=regenerate, options=JobOptions(**(options or {})))
        job = await self.redis.enqueue_job(
            TASK_NAME,
            payload.model_dump(by_alias=True, exclude_none=True),
            _queue_name=self.queue_name,
        )
        logger.info("summary_job_enqueued", job_id=job.job_id, meeting_id=meeting_id, regenerate=regenerate)
        return job.job_id

    async def _progress(self, job_id: str) -> Optional[Dict[str, Any]]:
        raw = await self.redis.get(progress_key(job_id))
        return json.loads(raw) if raw else None

    async def get_job(self, job_id: str) -> Optional[JobState]:
        """Current state of a job, or None when the queue does not know it."""
        job = Job(job_id, self.redis, _queue_name=self.queue_name)
        status = await job.status()
        if status == JobStatus.not_found:
            return None

        info = await job.info()
        state = JobState(
            job_id=job_id,
            state=_STATUS_MAP.get(status, "completed"),
            meeting_id=_meeting_id(info.args) if info else None,
            attempts=(info.job_try or 0) if info else 0,
            enqueued_at=info.enqueue_time if info else None,
            progress=await self._progress(job_id),
        )
        if status == JobStatus.complete:
            result = await job.result_info()
            if result is not None and result.success:
                state.result = result.result
            else:
                state.state = "failed"
                state.error = str(result.result) if result is not None else None
        return state

    async def _active_jobs(self) -> List[JobState]:
        jobs = []
        async for key in self.redis.scan_iter(match=f"{in_progress_key_prefix}*"):
            key = key.decode() if isinstance(key, bytes) else key
            job_id = key[len(in_progress_key_prefix):]
            info = await Job(job_id, self.redis, _queue_name=self.queue_name).info()
            if info is None:
                continue
            jobs.append(JobState(
                job_id=job_id,
                state="active",
                meeting_id=_meeting_id(info.args),
                attempts=info.job_try or 0,
                enqueued_at=info.enqueue_time,
                progress=await self._progress(job_id),
            ))
        return jobs

    async def list_jobs(self, states: Iterable[str] = ("waiting", "active")) -> List[JobState]:
        """
        List jobs in the requested states.

        Args:
            states: Any of ``waiting``, ``active``, ``completed``, ``failed``
        """
        states = set(states)
        unknown = states - set(JOB_STATES)
        if unknown:
            raise ValueError(f"Unknown job states: {sorted(unknown)}")

        jobs: List[JobState] = []
        if "waiting" in states:
            for job_def in await self.redis.queued_jobs(queue_name=self.queue_name):
                jobs.append(JobState(
                    job_id=job_def.job_id,
                    state="waiting",
                    meeting_id=_meeting_id(job_def.args),
                    attempts=job_def.job_try or 0,
                    enqueued_at=job_def.enqueue_time,
                ))
        if "active" in states:
            jobs.extend(await self._active_jobs())
        if states & {"completed", "failed"}:
            for result in await self.redis.all_job_results():
                if result.queue_name != self.queue_name:
                    continue
                state = "completed" if result.success else "failed"
                if state not in states:
                    continue
                jobs.append(JobState(
                    job_id=result.job_id,
                    state=state,
                    meeting_id=_meeting_id(result.args),
                    attempts=result.job_try or 0,
                    enqueued_at=result.enqueue_time,
                    result=result.result if result.success else None,
                    error=None if result.success else str(result.result),
                ))
        return jobs

    async def find_active_job(self, meeting_id: str) -> Optional[JobState]:
        """The waiting or active job for a meeting, if any."""
        for job in await self.list_jobs(("active", "waiting")):
            if job.meeting_id == meeting_id:
                return job
        return None

    async def summary_status(
        self,
        meeting_id: str,
        job_id: Optional[str] = None,
        session_factory: Optional[async_sessionmaker] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Report ``pending``, ``processing``, ``completed`` or ``failed`` for a meeting.

        A specific job is looked up when ``job_id`` is given (None if unknown);
        otherwise an in-flight job wins over the latest stored summary.
        """
        if job_id:
            job = await self.get_job(job_id)
            if job is None:
                return None
            if job.state == "completed":
                result = job.result or {}
                return {
                    "jobId": job_id,
                    "status": "completed",
                    "progress": {"stage": "complete", "percentage": 100},
                    "result": {"summaryId": result.get("summaryId"), "version": result.get("version")},
                    "error": None,
                }
            if job.state == "failed":
                return {"jobId": job_id, "status": "failed", "error": job.error}
            return {"jobId": job_id, "status": "processing", "progress": job.progress or {}, "error": None}

        current = await self.find_active_job(meeting_id)
        if current is not None:
            return {
                "jobId": current.job_id,
                "status": "processing",
                "progress": current.progress or {"stage": "processing", "percentage": 0},
                "error": None,
            }

        latest = await SummaryStore(session_factory).get_latest(meeting_id)
        if latest is not None:
            return {
                "status": "completed",
                "result": {"summaryId": latest.id, "version": latest.version},
                "error": None,
            }
        return {"status": "pending", "progress": None, "error": None}


async def connect_queue(settings: Settings) -> SummaryJobQueue:
    """Open a Redis pool for enqueueing and inspecting jobs."""
    redis = await create_pool(RedisSettings.from_dsn(settings.redis_url), default_queue_name=settings.queue_name)
    return SummaryJobQueue(redis, queue_name=settings.queue_name)
