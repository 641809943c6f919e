"""
Provider used when transcription is administratively disabled.
"""
from meeting_summarizer.services.transcription.base import TranscriptionProvider, TranscriptionResult


class NullTranscriptionProvider(TranscriptionProvider):
    name = "none"
    source_mode = "none"
    skips_transcription = True

    async def transcribe(self, source: str, language_hint: str) -> TranscriptionResult:
        return TranscriptionResult(text="", segments=[], duration=None, language=language_hint)
