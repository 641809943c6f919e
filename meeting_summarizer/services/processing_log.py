"""
Append-only processing log writer.
"""
import traceback
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from meeting_summarizer.db import get_db_session
from meeting_summarizer.logging_config import get_logger
from meeting_summarizer.models import ProcessingLog

logger = get_logger(__name__)


def estimate_cost(
    input_tokens: Optional[int],
    output_tokens: Optional[int],
    input_price: Optional[float],
    output_price: Optional[float],
) -> Optional[float]:
    """USD estimate from per-1K-token prices; None when prices are not configured."""
    if input_price is None or output_price is None:
        return None
    return round(((input_tokens or 0) * input_price + (output_tokens or 0) * output_price) / 1000, 6)


class ProcessingLogWriter:
    """Inserts one ProcessingLog row per observed stage transition of a job."""

    def __init__(
        self,
        meeting_id: str,
        job_id: str,
        retry_count: int = 0,
        session_factory: Optional[async_sessionmaker] = None,
    ):
        self.meeting_id = meeting_id
        self.job_id = job_id
        self.retry_count = retry_count
        self._session_factory = session_factory

    async def record(
        self,
        stage: str,
        status: str,
        start_time: Optional[datetime] = None,
        details: Optional[Dict[str, Any]] = None,
        error: Optional[BaseException] = None,
        input_tokens: Optional[int] = None,
        output_tokens: Optional[int] = None,
        cost_estimate: Optional[float] = None,
    ) -> ProcessingLog:
        end_time = datetime.utcnow()
        entry = ProcessingLog(
            meeting_id=self.meeting_id,
            job_id=self.job_id,
            stage=stage,
            status=status,
            start_time=start_time,
            end_time=end_time,
            duration_ms=int((end_time - start_time).total_seconds() * 1000) if start_time else None,
            retry_count=self.retry_count,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_estimate=cost_estimate,
            details=details or {},
        )
        if error is not None:
            entry.error = str(error) or type(error).__name__
            entry.error_stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))

        async with get_db_session(self._session_factory) as session:
            session.add(entry)
        return entry
