"""
Transcription provider contract.
"""
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class TranscriptSegment:
    start: float
    end: float
    text: str
    speaker: Optional[str] = None
    confidence: Optional[float] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class TranscriptionResult:
    text: str
    segments: List[TranscriptSegment] = field(default_factory=list)
    duration: Optional[float] = None
    language: Optional[str] = None


class TranscriptionProvider(ABC):
    """
    Speech-to-text backend.

    ``source_mode`` tells the stage what ``transcribe`` expects:
    ``"file"`` for a local path, ``"url"`` for the remote recording URL,
    ``"none"`` when the provider never looks at the audio.
    """

    name: str = "unknown"
    source_mode: str = "file"
    skips_transcription: bool = False

    @abstractmethod
    async def transcribe(self, source: str, language_hint: str) -> TranscriptionResult:
        raise NotImplementedError
