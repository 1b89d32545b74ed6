"""Tests for the frame loop."""

import numpy as np
import pytest

from evframe.errors import SliceRangeError, StoreError, StoreUnavailableError
from evframe.h5_reader import H5EventReader
from evframe.providers import PolarsEventProvider
from evframe.representations import EventFrame, StackedHistogram
from evframe.scheduler import FrameLoopStats, generate_frames


def _provider(t, seed=0, size=16):
    rng = np.random.default_rng(seed)
    n = len(t)
    return PolarsEventProvider.from_arrays(
        x=rng.integers(0, size, n),
        y=rng.integers(0, size, n),
        p=rng.integers(0, 2, n),
        t=np.asarray(t),
    )


class FlakyProvider:
    """Wraps a provider; the listed slice calls raise."""

    def __init__(self, inner, fail_calls=(), error=StoreError):
        self.inner = inner
        self.fail_calls = set(fail_calls)
        self.error = error
        self.calls = 0

    def sanitized_timestamps(self):
        return self.inner.sanitized_timestamps()

    def geometry(self):
        return self.inner.geometry()

    def close(self):
        self.inner.close()

    def slice(self, idx_start, idx_end):
        self.calls += 1
        if self.calls in self.fail_calls:
            raise self.error(f"simulated failure on call {self.calls}")
        return self.inner.slice(idx_start, idx_end)


def test_end_to_end_scenario(scenario_h5):
    """One window covering [100, 350] reproduces the reference frame."""
    with H5EventReader(scenario_h5) as reader:
        rep = EventFrame(20, 20)
        frames = list(generate_frames(reader, rep, delta_t=250, duration_t=250))

    assert [f.index for f in frames] == [0, 1]
    last = frames[-1]
    assert (last.t_start, last.t_end) == (100, 350)
    assert (last.idx_start, last.idx_end) == (0, 4)
    assert np.all(last.data[:, 10, 10] == 127)
    assert np.all(last.data[:, 5, 5] == 255)
    assert np.count_nonzero(last.data != 127) == 3


def test_empty_windows_are_skipped_but_consume_indices():
    provider = _provider([0, 10, 20, 500, 510])
    stats = FrameLoopStats()
    frames = list(
        generate_frames(provider, EventFrame(16, 16), delta_t=100, duration_t=50, stats=stats)
    )
    # Windows end at 0, 100, ..., 500; only 0 and 500 contain events
    assert [f.index for f in frames] == [0, 5]
    assert stats.emitted == 2
    assert stats.empty == 4
    assert stats.steps == 6


def test_frames_are_in_increasing_time_order():
    t = np.sort(np.random.default_rng(2).integers(0, 10_000, 2000))
    frames = list(generate_frames(_provider(t), EventFrame(16, 16), delta_t=300, duration_t=600))
    indices = [f.index for f in frames]
    assert indices == sorted(indices)
    assert len(set(indices)) == len(indices)
    assert all(a.t_end < b.t_end for a, b in zip(frames, frames[1:]))


def test_parallel_build_matches_sequential():
    t = np.sort(np.random.default_rng(4).integers(0, 50_000, 20_000))
    provider = _provider(t, seed=4)
    rep = StackedHistogram(bins=3, height=16, width=16, fastmode=False)

    sequential = list(generate_frames(provider, rep, delta_t=1000, duration_t=2500))
    parallel = list(generate_frames(provider, rep, delta_t=1000, duration_t=2500, num_workers=4))

    assert [f.index for f in parallel] == [f.index for f in sequential]
    for a, b in zip(sequential, parallel):
        np.testing.assert_array_equal(a.data, b.data)


def test_failed_slice_skips_only_that_window():
    provider = FlakyProvider(_provider([0, 100, 200, 300]), fail_calls={2})
    stats = FrameLoopStats()
    frames = list(
        generate_frames(provider, EventFrame(16, 16), delta_t=100, duration_t=0, stats=stats)
    )
    assert [f.index for f in frames] == [0, 2, 3]
    assert stats.failed == 1
    assert stats.failed_steps == [1]


def test_failed_slice_is_retried():
    provider = FlakyProvider(_provider([0, 100, 200]), fail_calls={2}, error=SliceRangeError)
    frames = list(
        generate_frames(provider, EventFrame(16, 16), delta_t=100, duration_t=0, max_retries=1)
    )
    assert [f.index for f in frames] == [0, 1, 2]


def test_unavailable_store_aborts_run():
    provider = FlakyProvider(_provider([0, 100, 200]), fail_calls={2}, error=StoreUnavailableError)
    frames = generate_frames(provider, EventFrame(16, 16), delta_t=100, duration_t=0, max_retries=3)
    assert next(frames).index == 0
    with pytest.raises(StoreUnavailableError):
        next(frames)


def test_unreadable_h5_window_is_skipped(scenario_h5, failing_h5_reads):
    """A corrupt chunk under one window skips that window only."""
    failing_h5_reads("x", 2)
    stats = FrameLoopStats()
    with H5EventReader(scenario_h5) as reader:
        frames = list(
            generate_frames(reader, EventFrame(20, 20), delta_t=100, duration_t=0, stats=stats)
        )
    assert [f.index for f in frames] == [0]
    assert stats.empty == 1
    assert stats.failed == 1
    assert stats.failed_steps == [2]


def test_empty_stream_yields_nothing():
    provider = _provider([])
    assert list(generate_frames(provider, EventFrame(4, 4), delta_t=10, duration_t=10)) == []


def test_frame_shapes_follow_representation():
    provider = _provider(np.arange(0, 1000, 7), size=32)
    rep = StackedHistogram(bins=4, height=32, width=32, downsample=True)
    frames = list(generate_frames(provider, rep, delta_t=250, duration_t=250))
    assert frames
    assert all(f.data.shape == (8, 16, 16) for f in frames)
    assert all(f.num_events > 0 for f in frames)
