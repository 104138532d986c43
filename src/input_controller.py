"""Input mode state machine: typed text, microphone recording, or a held file."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from audio import AudioBlob, AudioCapture, RecordingInProgressError

logger = logging.getLogger(__name__)


class InputMode(Enum):
    TEXT = "text"
    RECORDING = "recording"
    UPLOADING = "uploading"


@dataclass(frozen=True)
class Submission:
    text: str
    file: Optional[AudioBlob] = None


class InputController:
    """
    Owns the input mode and produces at most one Submission per submit().

    Transitions:
        text      --record-->     recording
        recording --stop-->       uploading  (on the capture's completion event)
        text      --choose_file-> uploading
        text|uploading --submit-> text
    """

    def __init__(self, capture: AudioCapture, is_busy: Callable[[], bool] = lambda: False):
        self.capture = capture
        self.is_busy = is_busy
        self.mode = InputMode.TEXT
        self.text = ""
        self.held_file: Optional[AudioBlob] = None
        capture.on_complete(self._on_recording_complete)

    @property
    def analyser(self):
        session = self.capture.session
        return session.analyser if session else None

    @property
    def can_submit(self) -> bool:
        if self.mode is InputMode.RECORDING or self.is_busy():
            return False
        return bool(self.text) or self.held_file is not None

    def set_text(self, text: str) -> None:
        if self.mode is not InputMode.TEXT:
            raise RuntimeError(f"Cannot edit text while {self.mode.value}")
        self.text = text

    def record(self) -> None:
        if self.mode is InputMode.RECORDING:
            raise RecordingInProgressError("Already recording")
        if self.mode is not InputMode.TEXT:
            raise RuntimeError(f"Cannot record while {self.mode.value}")
        if self.is_busy():
            raise RuntimeError("Cannot record while a submission is outstanding")
        # CaptureError propagates with the mode unchanged.
        self.capture.start()
        self.mode = InputMode.RECORDING

    def stop(self) -> Optional[AudioBlob]:
        if self.mode is not InputMode.RECORDING:
            return None
        try:
            return self.capture.stop()
        except Exception:
            if not self.capture.is_recording:
                self._reset()
            raise

    def choose_file(self, blob: AudioBlob) -> None:
        if self.mode is InputMode.RECORDING:
            raise RecordingInProgressError("Cannot attach a file while recording")
        if self.is_busy():
            raise RuntimeError("Cannot attach a file while a submission is outstanding")
        self._hold(blob)

    def submit(self) -> Optional[Submission]:
        if not self.can_submit:
            return None
        if self.mode is InputMode.UPLOADING and self.held_file is not None:
            submission = Submission(self.text, self.held_file)
        else:
            submission = Submission(self.text)
        self._reset()
        return submission

    def close(self) -> None:
        """Teardown: release the microphone if a session is still open."""
        if self.capture.is_recording:
            self.capture.release()
        self._reset()

    def _on_recording_complete(self, blob: AudioBlob) -> None:
        self._hold(blob)

    def _hold(self, blob: AudioBlob) -> None:
        self.held_file = blob
        self.text = blob.name
        self.mode = InputMode.UPLOADING
        logger.info(f"Holding {blob.name} ({blob.size} bytes) for upload")

    def _reset(self) -> None:
        self.text = ""
        self.held_file = None
        self.mode = InputMode.TEXT
