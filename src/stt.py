import asyncio
import io
import logging
import os
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class TranscriptionError(Exception):
    pass


class ElevenLabsSTT:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model_id: Optional[str] = None,
        language_code: str = "eng",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else os.environ.get("ELEVENLABS_API_KEY", "")
        self.model_id = model_id or os.environ.get("ELEVENLABS_STT_MODEL", "scribe_v1")
        self.language_code = language_code
        self.url = os.environ.get("ELEVENLABS_STT_URL", "https://api.elevenlabs.io/v1/speech-to-text")
        self.transport = transport

    async def transcribe(self, audio: bytes, filename: str = "audio.mp3", content_type: str = "audio/mpeg") -> str:
        """Send an audio file to the speech-to-text API and return the text."""
        files = {"file": (filename, audio, content_type)}
        data = {
            "model_id": self.model_id,
            "language_code": self.language_code,
            "tag_audio_events": "true",
        }
        try:
            async with httpx.AsyncClient(timeout=120.0, transport=self.transport) as client:
                response = await client.post(
                    self.url,
                    headers={"xi-api-key": self.api_key},
                    data=data,
                    files=files,
                )
        except httpx.HTTPError as e:
            raise TranscriptionError(f"Failed to call STT service: {e}") from e

        if response.is_error:
            logger.error(f"ElevenLabs STT API error {response.status_code}: {response.text}")
            raise TranscriptionError(f"Error from STT service: {response.text}")
        try:
            text = response.json().get("text", "")
        except ValueError as e:
            raise TranscriptionError("Failed to parse STT response") from e
        logger.info(f"Transcribed text: {text}")
        return str(text or "").strip()


class FasterWhisperSTT:
    def __init__(self, model_size="base.en", device="cpu", compute_type="int8"):
        self.model_size = model_size
        self.device = device
        self.compute_type = compute_type
        self._model = None

    @property
    def model(self):
        """Lazy-load the Whisper model."""
        if self._model is None:
            from faster_whisper import WhisperModel
            logger.info(f"Loading Whisper model: {self.model_size}...")
            self._model = WhisperModel(self.model_size, device=self.device, compute_type=self.compute_type)
            logger.info("Whisper model loaded.")
        return self._model

    async def transcribe(self, audio: bytes, filename: str = "audio.wav", content_type: str = "audio/wav") -> str:
        """Transcribe an encoded audio file locally."""
        if not audio:
            return ""
        try:
            return await asyncio.to_thread(self._transcribe_blocking, audio)
        except Exception as e:
            raise TranscriptionError(f"Local transcription failed: {e}") from e

    def _transcribe_blocking(self, audio: bytes) -> str:
        segments, info = self.model.transcribe(io.BytesIO(audio), beam_size=5)
        return " ".join([segment.text for segment in segments]).strip()


def create_stt(provider: Optional[str] = None):
    provider = (provider or os.environ.get("STT_PROVIDER", "elevenlabs")).lower()
    if provider == "whisper":
        return FasterWhisperSTT(model_size=os.environ.get("WHISPER_MODEL", "base.en"))
    if provider == "elevenlabs":
        return ElevenLabsSTT()
    raise ValueError(f"Unknown STT provider: {provider}")
