"""
Versioned summary and derived action item models.
"""
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)

from meeting_summarizer.models.base import Base, new_id, utcnow


class Summary(Base):
    """One generated version of a meeting summary."""

    __tablename__ = 'summaries'
    __table_args__ = (
        UniqueConstraint('meeting_id', 'version', name='uq_summaries_meeting_version'),
        # At most one latest row per meeting
        Index(
            'uq_summaries_meeting_latest',
            'meeting_id',
            unique=True,
            postgresql_where=text('is_latest'),
            sqlite_where=text('is_latest = 1'),
        ),
    )

    id = Column(String(64), primary_key=True, default=new_id)
    meeting_id = Column(String(64), nullable=False, index=True)
    transcript_id = Column(String(64), nullable=True)
    version = Column(Integer, nullable=False)
    is_latest = Column(Boolean, nullable=False, default=True)
    reason = Column(String(30), nullable=False, default='initial')  # initial, regenerated_by_pm, retry

    overview = Column(Text, nullable=False, default='')
    sections = Column(JSON, nullable=False, default=list)  # [{title, content}]
    action_items = Column(JSON, nullable=False, default=list)  # ActionItem ids
    decisions = Column(JSON, nullable=False, default=list)  # [{title, context}]
    risks = Column(JSON, nullable=False, default=list)  # [{title, description, severity}]
    quality = Column(JSON, nullable=False, default=dict)
    generation_details = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Summary(id='{self.id}', meeting_id='{self.meeting_id}', version={self.version}, is_latest={self.is_latest})>"


class ActionItem(Base):
    """A follow-up task extracted from a summary."""

    __tablename__ = 'action_items'

    id = Column(String(64), primary_key=True, default=new_id)
    summary_id = Column(String(64), nullable=False, index=True)
    meeting_id = Column(String(64), nullable=False, index=True)
    project_id = Column(String(64), nullable=True)
    name = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    due_date = Column(DateTime, nullable=True, index=True)
    priority = Column(String(10), nullable=False, default='medium')  # high, medium, low
    status = Column(String(20), nullable=False, default='pending')  # pending, in_progress, completed, cancelled
    source_type = Column(String(20), nullable=False, default='ai_extracted')  # ai_extracted, manual_added
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<ActionItem(id='{self.id}', name='{self.name}', priority='{self.priority}')>"
