"""
Processing log model.
"""
from sqlalchemy import JSON, Column, DateTime, Float, Integer, String, Text

from meeting_summarizer.models.base import Base, new_id, utcnow


class ProcessingLog(Base):
    """Append-only record of one observed stage transition of a job."""

    __tablename__ = 'processing_logs'

    id = Column(String(64), primary_key=True, default=new_id)
    meeting_id = Column(String(64), nullable=False, index=True)
    job_id = Column(String(64), nullable=False, index=True)
    stage = Column(String(20), nullable=False)  # retrieve, merge, summarize, format, save, error, complete
    status = Column(String(20), nullable=False)  # started, processing, completed, failed
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    error = Column(Text, nullable=True)
    error_stack = Column(Text, nullable=True)
    retry_count = Column(Integer, default=0)
    input_tokens = Column(Integer, nullable=True)
    output_tokens = Column(Integer, nullable=True)
    cost_estimate = Column(Float, nullable=True)
    details = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    def __repr__(self):
        return f"<ProcessingLog(job_id='{self.job_id}', stage='{self.stage}', status='{self.status}')>"
