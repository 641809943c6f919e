"""
Meeting aggregate read and updated by the pipeline.
"""
from sqlalchemy import JSON, Column, DateTime, Integer, String, Text

from meeting_summarizer.models.base import Base, new_id, utcnow


class MeetingRecord(Base):
    """A recorded meeting; owned by the host application, status fields owned by the pipeline."""

    __tablename__ = 'meetings'

    id = Column(String(64), primary_key=True, default=new_id)
    project_id = Column(String(64), nullable=True, index=True)
    title = Column(String(500), nullable=True)
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    participant_count = Column(Integer, default=0)
    video_link = Column(Text, nullable=True)
    chat_history_link = Column(Text, nullable=True)
    chat_history = Column(JSON, nullable=False, default=list)  # [{"from": ..., "message": ...}]
    attachments = Column(JSON, nullable=False, default=list)  # [{"filename": ..., "url": ...}]

    processing_status = Column(String(20), nullable=False, default='idle')  # idle, processing, completed, failed
    last_job_id = Column(String(64), nullable=True)
    transcript_id = Column(String(64), nullable=True)
    summary_id = Column(String(64), nullable=True)
    summary_versions = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<MeetingRecord(id='{self.id}', processing_status='{self.processing_status}')>"
