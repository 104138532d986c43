import asyncio
import io
import logging
import os
import subprocess
import wave
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class SynthesisError(Exception):
    pass


class ElevenLabsTTS:
    extension = "mp3"

    def __init__(
        self,
        api_key: Optional[str] = None,
        voice_id: Optional[str] = None,
        model_id: Optional[str] = None,
        output_format: str = "mp3_44100_128",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else os.environ.get("ELEVENLABS_API_KEY", "")
        self.voice_id = voice_id or os.environ.get("ELEVENLABS_VOICE_ID", "21m00Tcm4TlvDq8ikWAM")
        self.model_id = model_id or os.environ.get("ELEVENLABS_TTS_MODEL", "eleven_multilingual_v2")
        self.output_format = output_format
        self.base_url = os.environ.get("ELEVENLABS_TTS_URL", "https://api.elevenlabs.io/v1/text-to-speech")
        self.transport = transport

    async def synthesize(self, text: str) -> bytes:
        try:
            async with httpx.AsyncClient(timeout=120.0, transport=self.transport) as client:
                response = await client.post(
                    f"{self.base_url}/{self.voice_id}",
                    params={"output_format": self.output_format},
                    headers={"xi-api-key": self.api_key, "Content-Type": "application/json"},
                    json={"text": text, "model_id": self.model_id},
                )
        except httpx.HTTPError as e:
            raise SynthesisError(f"Failed to call TTS service: {e}") from e

        if response.is_error:
            logger.error(f"ElevenLabs TTS API error {response.status_code}: {response.text}")
            raise SynthesisError(f"Error from TTS service: {response.text}")
        return response.content


class PiperTTS:
    extension = "wav"

    def __init__(self, piper_path, model_path, speed=1.0, sample_rate=22050):
        self.piper_path = piper_path
        self.model_path = model_path
        self.speed = speed
        self.sample_rate = sample_rate

    async def synthesize(self, text: str) -> bytes:
        """Synthesize speech with the local Piper binary into a WAV file."""
        return await asyncio.to_thread(self._synthesize_blocking, text)

    def _synthesize_blocking(self, text: str) -> bytes:
        cmd = [
            self.piper_path,
            "--model", self.model_path,
            "--output_raw",
            "--length_scale", str(1.0 / self.speed),
        ]
        try:
            result = subprocess.run(
                cmd,
                input=text.encode("utf-8"),
                capture_output=True,
                check=True,
            )
        except (OSError, subprocess.CalledProcessError) as e:
            raise SynthesisError(f"Piper failed: {e}") from e

        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wav:
            wav.setnchannels(1)
            wav.setsampwidth(2)
            wav.setframerate(self.sample_rate)
            wav.writeframes(result.stdout)
        return buffer.getvalue()


def create_tts(provider: Optional[str] = None):
    provider = (provider or os.environ.get("TTS_PROVIDER", "elevenlabs")).lower()
    if provider == "piper":
        return PiperTTS(
            os.environ.get("PIPER_BIN", "./piper-bin/piper/piper"),
            os.environ.get("PIPER_MODEL", "piper-data/en_US-lessac-medium.onnx"),
        )
    if provider == "elevenlabs":
        return ElevenLabsTTS()
    raise ValueError(f"Unknown TTS provider: {provider}")
