"""
Pytest configuration and fixtures.
"""
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import httpx
import pytest
import respx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from meeting_summarizer.config import Settings, TranscriptionProviderKind
from meeting_summarizer.models import Base, MeetingRecord
from meeting_summarizer.pipeline import SummaryPipeline
from meeting_summarizer.services.attachments import AttachmentExtractor
from meeting_summarizer.services.llm_client import ChatCompletion, TextGenerationClient
from meeting_summarizer.services.meeting_store import MeetingStore
from meeting_summarizer.services.summarization import SummarizationService
from meeting_summarizer.services.summary_store import SummaryStore
from meeting_summarizer.services.transcription import (
    TranscriptionProvider,
    TranscriptionResult,
    TranscriptSegment,
)
from meeting_summarizer.services.transcription_stage import TranscriptionService
from meeting_summarizer.utils import RetryPolicy

VIDEO_URL = "https://media.example.com/recordings/m1.mp4"


# ============================================
# TEST CONFIGURATION
# ============================================

@pytest.fixture
def test_settings(tmp_path):
    """Create test settings."""
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'settings.db'}",
        openai_api_key="test-openai-key",
        transcription_provider=TranscriptionProviderKind.WHISPER,
        temp_dir=tmp_path,
        debug=True,
    )


# ============================================
# DATABASE FIXTURES
# ============================================

@pytest.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a test database engine backed by a temporary SQLite file."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine):
    """Session factory injected into stores and stages."""
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def sample_meeting(session_factory):
    """Meeting M1: a video, one chat message, no transcript yet."""
    start = datetime(2026, 3, 6, 9, 0)
    meeting = MeetingRecord(
        id="M1",
        project_id="P1",
        title="Release planning",
        start_time=start,
        end_time=start + timedelta(minutes=45),
        participant_count=4,
        video_link=VIDEO_URL,
        chat_history=[{"from": "alice", "message": "ship it Friday"}],
        attachments=[],
    )
    async with session_factory() as session:
        session.add(meeting)
        await session.commit()
    return meeting


# ============================================
# HTTP MOCKING
# ============================================

@pytest.fixture
def mock_http():
    """respx router that intercepts every httpx request made during the test."""
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest.fixture
async def http_client(mock_http):
    async with httpx.AsyncClient() as client:
        yield client


# ============================================
# FAKE PROVIDERS
# ============================================

class FakeLLMClient(TextGenerationClient):
    """Returns queued responses (or raises queued exceptions) in order."""

    provider_name = "fake-llm"

    def __init__(self, responses: Optional[List] = None, model: str = "fake-model"):
        self.model = model
        self.responses = list(responses or [])
        self.calls: List[List[Dict[str, str]]] = []

    async def complete(self, messages, temperature, max_tokens, json_mode=True) -> ChatCompletion:
        self.calls.append(messages)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, BaseException):
            raise response
        return ChatCompletion(
            content=response,
            model=self.model,
            prompt_tokens=120,
            completion_tokens=80,
            finish_reason="stop",
        )


class FakeTranscriptionProvider(TranscriptionProvider):
    """URL-mode provider that records every call."""

    name = "fake-stt"
    source_mode = "url"

    def __init__(self, text: str = "We agreed to ship it on Friday.", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.calls: List[str] = []

    async def transcribe(self, source: str, language_hint: str) -> TranscriptionResult:
        self.calls.append(source)
        if self.error is not None:
            raise self.error
        return TranscriptionResult(
            text=self.text,
            segments=[TranscriptSegment(start=0.0, end=4.2, text=self.text, speaker="0", confidence=0.8)],
            duration=4.2,
            language=language_hint,
        )


@pytest.fixture
def fake_llm():
    return FakeLLMClient(responses=["{}"])


@pytest.fixture
def fake_provider():
    return FakeTranscriptionProvider()


@pytest.fixture
def sleep_recorder():
    """Stand-in for asyncio.sleep that records requested delays."""
    delays: List[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays
    return _sleep


@pytest.fixture
def make_pipeline(session_factory, http_client, sleep_recorder):
    """Build a pipeline around the given fakes."""
    def _make(llm: TextGenerationClient, provider: TranscriptionProvider) -> SummaryPipeline:
        return SummaryPipeline(
            meetings=MeetingStore(session_factory),
            transcription=TranscriptionService(provider, http_client, session_factory=session_factory),
            attachments=AttachmentExtractor(http_client),
            summarizer=SummarizationService(llm, retry_policy=RetryPolicy(sleep=sleep_recorder)),
            summaries=SummaryStore(session_factory),
            http_client=http_client,
            session_factory=session_factory,
        )
    return _make
