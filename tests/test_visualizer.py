import asyncio

import numpy as np
import pytest

from audio import FrequencyAnalyser
from conftest import sine_wave
from visualizer import NUM_BARS, Visualizer, compute_bar_heights, render_bars


def test_bar_heights_are_bounded():
    bars = compute_bar_heights(np.full(128, 255, dtype=np.uint8))
    assert len(bars) == NUM_BARS
    assert all(b == 100.0 for b in bars)

    bars = compute_bar_heights(np.zeros(128, dtype=np.uint8))
    assert all(b == 0.0 for b in bars)


def test_bar_heights_average_each_band():
    data = [0, 0, 0, 0] * 16 + [255, 255, 255, 255] * 16
    bars = compute_bar_heights(data)
    assert bars[:16] == [0.0] * 16
    assert bars[16:] == [100.0] * 16


def test_bar_heights_clamp_out_of_range_values():
    bars = compute_bar_heights([300] * 64 + [-20] * 64)
    assert max(bars) == 100.0
    assert min(bars) == 0.0


def test_short_input_gives_flat_bars():
    assert compute_bar_heights([255] * 10) == [0.0] * NUM_BARS


def test_render_bars():
    assert render_bars([0.0, 100.0]) == " █"


def test_tick_without_analyser_is_idle():
    visualizer = Visualizer()
    assert visualizer.tick() == [0.0] * NUM_BARS
    assert not visualizer.is_running


def test_attach_none_stays_idle():
    async def scenario():
        visualizer = Visualizer()
        visualizer.attach(None)
        return visualizer.is_running

    assert asyncio.run(scenario()) is False


def test_frames_follow_analyser_and_stop_on_detach():
    frames = []

    async def scenario():
        analyser = FrequencyAnalyser()
        analyser.push(sine_wave(frequency=1000.0))
        visualizer = Visualizer(on_frame=frames.append, fps=200)
        visualizer.attach(analyser)
        assert visualizer.is_running
        await asyncio.sleep(0.05)
        task = visualizer._task
        visualizer.detach()
        await asyncio.sleep(0)
        count = len(frames)
        await asyncio.sleep(0.05)
        return task, count

    task, count = asyncio.run(scenario())
    assert task.cancelled()
    assert count > 0
    assert len(frames) == count
    for frame in frames:
        assert len(frame) == NUM_BARS
        assert all(0.0 <= b <= 100.0 for b in frame)
    assert max(frames[-1]) > 0


def test_attach_requires_running_loop():
    with pytest.raises(RuntimeError):
        Visualizer().attach(FrequencyAnalyser())
