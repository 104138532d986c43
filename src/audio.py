"""Microphone capture with a live frequency analyser.

A recording session owns the input stream for its whole lifetime. The stream
is closed on every exit path (stop, release, failed start), so the device is
never left open after a session ends.
"""

import io
import logging
import mimetypes
import threading
import wave
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

import numpy as np

logger = logging.getLogger(__name__)

PERMISSION_DENIED_MESSAGE = (
    "Microphone permission was denied. Please allow microphone access to record audio."
)
NO_DEVICE_MESSAGE = "No microphone found. Please connect a microphone and try again."


class CaptureError(Exception):
    """Microphone could not be opened."""

    def __init__(self, message: str, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.user_message = user_message or f"Failed to access microphone: {message}"


class MicrophonePermissionError(CaptureError):
    def __init__(self, message: str = "permission denied") -> None:
        super().__init__(message, PERMISSION_DENIED_MESSAGE)


class MicrophoneNotFoundError(CaptureError):
    def __init__(self, message: str = "no input device") -> None:
        super().__init__(message, NO_DEVICE_MESSAGE)


class RecordingInProgressError(RuntimeError):
    """A recording session is already active."""


@dataclass(frozen=True)
class AudioBlob:
    """Encoded audio ready to upload."""
    name: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: str) -> "AudioBlob":
        file_path = Path(path)
        content_type, _ = mimetypes.guess_type(file_path.name)
        return cls(
            name=file_path.name,
            content_type=content_type or "application/octet-stream",
            data=file_path.read_bytes(),
        )


class FrequencyAnalyser:
    """
    Frequency-domain view of the most recent samples.

    Follows the browser AnalyserNode model: Blackman window, magnitude
    normalised by the transform size, exponential smoothing against the
    previous frame, then decibels mapped linearly onto 0..255.
    """

    def __init__(
        self,
        fft_size: int = 256,
        smoothing: float = 0.8,
        min_decibels: float = -100.0,
        max_decibels: float = -30.0,
    ):
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise ValueError("fft_size must be a power of two >= 32")
        if not 0.0 <= smoothing <= 1.0:
            raise ValueError("smoothing must be within [0, 1]")
        self.fft_size = fft_size
        self.smoothing = smoothing
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels

        n = np.arange(fft_size)
        self._window = (
            0.42
            - 0.5 * np.cos(2 * np.pi * n / fft_size)
            + 0.08 * np.cos(4 * np.pi * n / fft_size)
        )
        self._samples = np.zeros(fft_size, dtype=np.float32)
        self._previous = np.zeros(self.frequency_bin_count, dtype=np.float64)
        self._lock = threading.Lock()

    @property
    def frequency_bin_count(self) -> int:
        return self.fft_size // 2

    def push(self, samples: np.ndarray) -> None:
        """Feed mono float samples; only the last fft_size are kept."""
        samples = np.asarray(samples, dtype=np.float32).reshape(-1)
        if samples.size == 0:
            return
        with self._lock:
            if samples.size >= self.fft_size:
                self._samples = samples[-self.fft_size:].copy()
            else:
                self._samples = np.concatenate([self._samples[samples.size:], samples])

    def byte_frequency_data(self) -> np.ndarray:
        with self._lock:
            frame = self._samples.copy()
        spectrum = np.fft.rfft(frame * self._window)[: self.frequency_bin_count]
        magnitude = np.abs(spectrum) / self.fft_size
        smoothed = self.smoothing * self._previous + (1.0 - self.smoothing) * magnitude
        self._previous = smoothed

        with np.errstate(divide="ignore"):
            decibels = 20.0 * np.log10(smoothed)
        scale = 255.0 / (self.max_decibels - self.min_decibels)
        scaled = np.nan_to_num((decibels - self.min_decibels) * scale, neginf=0.0)
        return np.clip(np.floor(scaled), 0, 255).astype(np.uint8)


def _default_stream_factory(sample_rate: int, channels: int, callback):
    try:
        import sounddevice as sd
    except OSError as e:
        raise CaptureError(f"Audio backend unavailable: {e}") from e

    try:
        sd.query_devices(kind="input")
    except (ValueError, sd.PortAudioError) as e:
        raise MicrophoneNotFoundError(str(e)) from e
    return sd.InputStream(
        samplerate=sample_rate,
        channels=channels,
        dtype="float32",
        callback=callback,
    )


class RecordingSession:
    """One microphone recording: stream handle, analyser and captured chunks."""

    def __init__(self, sample_rate: int, channels: int, max_duration: float, analyser: FrequencyAnalyser):
        self.sample_rate = sample_rate
        self.channels = channels
        self.analyser = analyser
        self.stream = None
        self.max_frames = int(max_duration * sample_rate)
        self.frames_recorded = 0
        self.truncated = False
        self._chunks: List[np.ndarray] = []
        self._lock = threading.Lock()

    def on_audio(self, indata, frames, time_info, status) -> None:
        """Stream callback, runs on the audio thread."""
        if status:
            logger.debug(f"Input stream status: {status}")
        chunk = np.array(indata, dtype=np.float32, copy=True)
        if chunk.ndim == 1:
            chunk = chunk.reshape(-1, 1)
        self.analyser.push(chunk.mean(axis=1))

        with self._lock:
            remaining = self.max_frames - self.frames_recorded
            if len(chunk) > remaining and not self.truncated:
                logger.warning("Maximum recording length reached; dropping further audio")
                self.truncated = True
            if remaining <= 0:
                return
            chunk = chunk[:remaining]
            self._chunks.append(chunk)
            self.frames_recorded += len(chunk)

    @property
    def duration(self) -> float:
        return self.frames_recorded / self.sample_rate

    def to_wav(self) -> bytes:
        with self._lock:
            chunks = list(self._chunks)
        if chunks:
            audio = np.concatenate(chunks, axis=0)
        else:
            audio = np.zeros((0, self.channels), dtype=np.float32)
        pcm = (np.clip(audio, -1.0, 1.0) * 32767).astype("<i2")

        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wav:
            wav.setnchannels(self.channels)
            wav.setsampwidth(2)
            wav.setframerate(self.sample_rate)
            wav.writeframes(pcm.tobytes())
        return buffer.getvalue()


class AudioCapture:
    """
    Records from the default microphone into an AudioBlob.

    Usage:
        capture = AudioCapture()
        capture.on_complete(lambda blob: print(blob.name, blob.size))
        session = capture.start()
        ...  # session.analyser feeds the visualizer
        blob = capture.stop()
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        stream_factory: Optional[Callable] = None,
        max_duration: float = 120.0,
        fft_size: int = 256,
        smoothing: float = 0.8,
    ):
        self.sample_rate = sample_rate
        self.channels = channels
        self.max_duration = max_duration
        self.fft_size = fft_size
        self.smoothing = smoothing
        self._stream_factory = stream_factory or _default_stream_factory
        self._session: Optional[RecordingSession] = None
        self._listeners: List[Callable[[AudioBlob], None]] = []

    @property
    def session(self) -> Optional[RecordingSession]:
        return self._session

    @property
    def is_recording(self) -> bool:
        return self._session is not None

    def on_complete(self, listener: Callable[[AudioBlob], None]) -> None:
        """Subscribe to the "recording complete" event."""
        self._listeners.append(listener)

    def start(self) -> RecordingSession:
        if self._session is not None:
            raise RecordingInProgressError("A recording session is already active")

        session = RecordingSession(
            self.sample_rate,
            self.channels,
            self.max_duration,
            FrequencyAnalyser(fft_size=self.fft_size, smoothing=self.smoothing),
        )
        try:
            session.stream = self._stream_factory(self.sample_rate, self.channels, session.on_audio)
            session.stream.start()
        except CaptureError:
            self._close_stream(session)
            raise
        except PermissionError as e:
            self._close_stream(session)
            raise MicrophonePermissionError(str(e)) from e
        except Exception as e:
            self._close_stream(session)
            raise self._classify(e) from e

        self._session = session
        logger.info(f"Recording started: {self.sample_rate}Hz, {self.channels} channel(s)")
        return session

    def stop(self) -> AudioBlob:
        """Stop the active session, release the device and emit the blob."""
        session = self._session
        if session is None:
            raise RuntimeError("No recording in progress")
        self._session = None
        self._halt_stream(session)

        blob = AudioBlob(name="recording.wav", content_type="audio/wav", data=session.to_wav())
        logger.info(f"Recording stopped: {session.duration:.1f}s, {blob.size} bytes")
        for listener in list(self._listeners):
            listener(blob)
        return blob

    def release(self) -> None:
        """Teardown path: drop any active session without producing a blob."""
        session = self._session
        if session is None:
            return
        self._session = None
        self._halt_stream(session)
        logger.info("Recording session released")

    @classmethod
    def _halt_stream(cls, session: RecordingSession) -> None:
        """Stop and close the stream. A failing stop still closes the device."""
        try:
            session.stream.stop()
        except Exception as e:
            logger.warning(f"Input stream did not stop cleanly: {e}")
        finally:
            cls._close_stream(session)

    @staticmethod
    def _close_stream(session: RecordingSession) -> None:
        if session.stream is not None:
            session.stream.close()

    @staticmethod
    def _classify(error: Exception) -> CaptureError:
        text = str(error).lower()
        if any(token in text for token in ("permission", "not allowed", "denied")):
            return MicrophonePermissionError(str(error))
        if any(token in text for token in ("no input device", "device unavailable", "invalid device", "device -1")):
            return MicrophoneNotFoundError(str(error))
        return CaptureError(str(error))
