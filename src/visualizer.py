"""Amplitude-bar visualizer driven by a live frequency analyser."""

import asyncio
import logging
from typing import Callable, List, Optional, Sequence

logger = logging.getLogger(__name__)

NUM_BARS = 32
BAR_GLYPHS = " ▁▂▃▄▅▆▇█"


def compute_bar_heights(
    frequency_data: Sequence[float],
    num_bars: int = NUM_BARS,
    max_value: float = 255.0,
) -> List[float]:
    """Average equal bands of the spectrum into bars scaled to 0..100."""
    values = list(frequency_data)
    samples_per_bar = len(values) // num_bars
    if samples_per_bar == 0:
        return [0.0] * num_bars

    bars = []
    for i in range(num_bars):
        band = values[i * samples_per_bar:(i + 1) * samples_per_bar]
        average = sum(float(v) for v in band) / samples_per_bar
        height = average / max_value * 100.0
        bars.append(min(max(height, 0.0), 100.0))
    return bars


def render_bars(bars: Sequence[float]) -> str:
    top = len(BAR_GLYPHS) - 1
    return "".join(BAR_GLYPHS[round(min(max(b, 0.0), 100.0) / 100.0 * top)] for b in bars)


class Visualizer:
    """
    Recomputes bar heights once per frame while an analyser is attached.

    Frames are scheduled on the running asyncio loop; detach() cancels the
    pending frame so nothing runs after the analyser is gone.
    """

    def __init__(
        self,
        on_frame: Optional[Callable[[List[float]], None]] = None,
        fps: float = 60.0,
        num_bars: int = NUM_BARS,
    ):
        self.on_frame = on_frame
        self.frame_interval = 1.0 / fps
        self.num_bars = num_bars
        self.last_frame: List[float] = [0.0] * num_bars
        self._analyser = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def attach(self, analyser) -> None:
        self.detach()
        if analyser is None:
            return
        self._analyser = analyser
        self._task = asyncio.get_running_loop().create_task(self._run())

    def detach(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self._analyser = None

    def tick(self) -> List[float]:
        """Compute a single frame from the attached analyser."""
        if self._analyser is None:
            return self.last_frame
        data = self._analyser.byte_frequency_data()
        self.last_frame = compute_bar_heights(data, self.num_bars)
        if self.on_frame:
            self.on_frame(self.last_frame)
        return self.last_frame

    async def _run(self) -> None:
        while self._analyser is not None:
            self.tick()
            await asyncio.sleep(self.frame_interval)
