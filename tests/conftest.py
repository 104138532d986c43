import json
import sys
from pathlib import Path
from typing import Callable, List, Optional

import httpx
import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))


class FakeStream:
    """Stands in for sounddevice.InputStream."""

    def __init__(self, callback: Callable) -> None:
        self.callback = callback
        self.started = False
        self.stopped = False
        self.closed = False

    @property
    def active(self) -> bool:
        return self.started and not self.stopped and not self.closed

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def close(self) -> None:
        self.closed = True

    def feed(self, samples: np.ndarray) -> None:
        samples = np.asarray(samples, dtype=np.float32).reshape(-1, 1)
        self.callback(samples, len(samples), None, None)


class StuckStream(FakeStream):
    """A stream whose stop() fails, as PortAudio can on a lost device."""

    def stop(self) -> None:
        raise RuntimeError("PortAudio error: stream is not running")


class FakeStreamFactory:
    """Records every stream it opens; can be told to fail on open."""

    def __init__(self, error: Optional[Exception] = None, stream_class: type = FakeStream) -> None:
        self.error = error
        self.stream_class = stream_class
        self.streams: List[FakeStream] = []

    def __call__(self, sample_rate: int, channels: int, callback: Callable) -> FakeStream:
        if self.error is not None:
            raise self.error
        stream = self.stream_class(callback)
        self.streams.append(stream)
        return stream

    @property
    def last(self) -> FakeStream:
        return self.streams[-1]


@pytest.fixture
def stream_factory():
    return FakeStreamFactory()


def sine_wave(frequency: float = 440.0, duration: float = 0.1, sample_rate: int = 16000) -> np.ndarray:
    t = np.arange(int(duration * sample_rate)) / sample_rate
    return (0.5 * np.sin(2 * np.pi * frequency * t)).astype(np.float32)


def gemini_transport(reply: str = "A blockchain is a shared ledger.", tokens: Optional[int] = 42, status: int = 200):
    """MockTransport answering Gemini generateContent calls; captured requests in .requests."""
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if status != 200:
            return httpx.Response(status, text="quota exceeded")
        body = {"candidates": [{"content": {"role": "model", "parts": [{"text": reply}]}}]}
        if tokens is not None:
            body["usageMetadata"] = {"totalTokenCount": tokens}
        return httpx.Response(200, json=body)

    transport = httpx.MockTransport(handler)
    transport.requests = requests
    return transport


def request_json(request: httpx.Request) -> dict:
    return json.loads(request.content.decode("utf-8"))
