"""
Database models package.
Import all models here for easy access and table creation.
"""
from meeting_summarizer.models.base import Base
from meeting_summarizer.models.meeting import MeetingRecord
from meeting_summarizer.models.transcript import Transcript
from meeting_summarizer.models.summary import ActionItem, Summary
from meeting_summarizer.models.processing import ProcessingLog

__all__ = [
    'Base',
    'MeetingRecord',
    'Transcript',
    'Summary',
    'ActionItem',
    'ProcessingLog'
]
