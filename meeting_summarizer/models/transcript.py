"""
Transcript model: persisted speech-to-text output for a meeting recording.
"""
from sqlalchemy import JSON, Column, DateTime, Float, String, Text

from meeting_summarizer.models.base import Base, new_id, utcnow


class Transcript(Base):
    """One transcription attempt; only a ``completed`` row is reused as pipeline input."""

    __tablename__ = 'transcripts'

    id = Column(String(64), primary_key=True, default=new_id)
    meeting_id = Column(String(64), nullable=False, index=True)
    audio_url = Column(Text, nullable=False)
    duration = Column(Float, nullable=True)  # seconds
    raw_text = Column(Text, nullable=True)
    cleaned_text = Column(Text, nullable=True)
    segments = Column(JSON, nullable=False, default=list)  # [{start, end, speaker, text, confidence}]
    provider = Column(String(50), nullable=False)
    language = Column(String(8), nullable=True)
    status = Column(String(20), nullable=False, default='pending')  # pending, processing, completed, failed, skipped
    error = Column(Text, nullable=True)
    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    @property
    def text(self) -> str:
        return self.cleaned_text or self.raw_text or ""

    @property
    def mean_confidence(self):
        scores = [s.get("confidence") for s in (self.segments or []) if s.get("confidence") is not None]
        if not scores:
            return None
        return sum(scores) / len(scores)

    def __repr__(self):
        return f"<Transcript(id='{self.id}', meeting_id='{self.meeting_id}', status='{self.status}')>"
