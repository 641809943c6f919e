"""
arq worker for meeting summarization jobs.

Run with ``python -m meeting_summarizer.worker`` (or ``arq
meeting_summarizer.worker.WorkerSettings``).
"""
import asyncio
import json
from typing import Any, Dict, Optional

import httpx
from arq import Retry
from arq.connections import RedisSettings
from arq.worker import func, run_worker
from prometheus_client import start_http_server
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import async_sessionmaker

from meeting_summarizer.config import Settings, settings
from meeting_summarizer.db import engine
from meeting_summarizer.job_queue import TASK_NAME, progress_key
from meeting_summarizer.logging_config import get_logger, job_log_context, setup_logging
from meeting_summarizer.monitoring import summary_jobs_total
from meeting_summarizer.pipeline import PipelineJob, SummaryPipeline
from meeting_summarizer.rate_limiters import RateLimiters
from meeting_summarizer.schemas import JobPayload, ProgressEvent
from meeting_summarizer.services.attachments import AttachmentExtractor
from meeting_summarizer.services.llm_client import ChatCompletionClient
from meeting_summarizer.services.meeting_store import MeetingStore
from meeting_summarizer.services.summarization import SummarizationService
from meeting_summarizer.services.summary_store import SummaryStore
from meeting_summarizer.services.transcription import build_transcription_provider
from meeting_summarizer.services.transcription_stage import TranscriptionService
from meeting_summarizer.utils import RetryPolicy, is_fatal_error

logger = get_logger(__name__)


def build_pipeline(
    config: Settings,
    http_client: httpx.AsyncClient,
    session_factory: Optional[async_sessionmaker] = None,
) -> SummaryPipeline:
    """Wire the pipeline and its clients from configuration."""
    rate_limiters = RateLimiters.from_settings(config)
    retry_policy = RetryPolicy.from_settings(config)
    provider = build_transcription_provider(config, http_client, rate_limiters, retry_policy)
    llm_client = ChatCompletionClient.from_settings(http_client, config, rate_limiters)

    return SummaryPipeline(
        meetings=MeetingStore(session_factory),
        transcription=TranscriptionService.from_settings(provider, http_client, config, session_factory),
        attachments=AttachmentExtractor.from_settings(http_client, config),
        summarizer=SummarizationService(
            llm_client,
            temperature=config.llm_temperature,
            max_tokens=config.llm_max_tokens,
            retry_policy=retry_policy,
            default_language=config.transcribe_language,
        ),
        summaries=SummaryStore(session_factory),
        http_client=http_client,
        session_factory=session_factory,
        chat_history_limit=config.chat_history_limit,
        max_context_chars=config.max_context_chars,
        input_token_price=config.llm_input_token_price,
        output_token_price=config.llm_output_token_price,
    )


async def publish_event(redis, channel: str, event: Dict[str, Any]) -> None:
    """Broadcast a final job event; listeners are optional."""
    try:
        await redis.publish(channel, json.dumps(event, default=str))
    except RedisError as e:
        logger.warning("job_event_not_published", event=event.get("event"), error=str(e))


def retry_delay(config: Settings, attempt: int) -> float:
    """Queue-level backoff before the next attempt: base, 2x base, 4x base ..."""
    return config.job_backoff_delay * 2 ** (attempt - 1)


async def summarize_meeting(ctx: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Process one summarization job.

    Transient failures are handed back to arq as ``Retry`` with exponential
    defer; fatal failures and the last attempt fail the job.
    """
    config: Settings = ctx["settings"]
    pipeline: SummaryPipeline = ctx["pipeline"]
    redis = ctx["redis"]
    job_id = ctx["job_id"]
    attempt = ctx.get("job_try") or 1
    job_payload = JobPayload.model_validate(payload)
    meeting_id = job_payload.meeting_id

    async def report_progress(event: ProgressEvent) -> None:
        try:
            await redis.set(progress_key(job_id), event.model_dump_json(), ex=config.progress_ttl_seconds)
        except RedisError as e:
            logger.warning("progress_not_stored", stage=event.stage, error=str(e))

    with job_log_context(job_id, meeting_id, attempt):
        logger.info("summary_job_started", regenerate=job_payload.regenerate)
        try:
            result = await pipeline.run(PipelineJob(job_id, job_payload, attempt), progress=report_progress)
        except asyncio.CancelledError:
            logger.error("summary_job_cancelled")
            summary_jobs_total.labels(status="cancelled").inc()
            raise
        except Exception as e:
            if not is_fatal_error(e) and attempt < config.job_max_attempts:
                defer = retry_delay(config, attempt)
                summary_jobs_total.labels(status="retried").inc()
                logger.warning("summary_job_retry", defer_seconds=defer, error=str(e), error_type=type(e).__name__)
                raise Retry(defer=defer) from e

            summary_jobs_total.labels(status="failed").inc()
            logger.error("summary_job_failed", error=str(e), error_type=type(e).__name__, fatal=is_fatal_error(e))
            await publish_event(redis, config.events_channel, {
                "event": "failed",
                "jobId": job_id,
                "meetingId": meeting_id,
                "error": str(e),
            })
            raise

        summary_jobs_total.labels(status="completed").inc()
        data = result.model_dump(by_alias=True)
        await publish_event(redis, config.events_channel, {
            "event": "completed",
            "jobId": job_id,
            "meetingId": meeting_id,
            **data,
        })
        logger.info("summary_job_completed", summary_id=result.summary_id, version=result.version)
        return data


async def startup(ctx: Dict[str, Any]) -> None:
    setup_logging(settings.debug, json_logs=settings.json_logs)
    http_client = httpx.AsyncClient()
    ctx["settings"] = settings
    ctx["http_client"] = http_client
    ctx["pipeline"] = build_pipeline(settings, http_client)
    if settings.metrics_port:
        start_http_server(settings.metrics_port)
        logger.info("metrics_server_started", port=settings.metrics_port)
    logger.info(
        "worker_started",
        queue=settings.queue_name,
        max_jobs=settings.max_jobs,
        transcription_provider=settings.transcription_provider.value,
    )


async def shutdown(ctx: Dict[str, Any]) -> None:
    http_client = ctx.get("http_client")
    if http_client is not None:
        await http_client.aclose()
    await engine.dispose()
    logger.info("worker_stopped")


class WorkerSettings:
    functions = [
        func(
            summarize_meeting,
            name=TASK_NAME,
            timeout=settings.job_timeout_seconds,
            max_tries=settings.job_max_attempts,
        )
    ]
    on_startup = startup
    on_shutdown = shutdown
    queue_name = settings.queue_name
    max_jobs = settings.max_jobs
    keep_result = settings.keep_result_seconds
    redis_settings = RedisSettings.from_dsn(settings.redis_url)


def main():
    run_worker(WorkerSettings)


if __name__ == "__main__":
    main()
