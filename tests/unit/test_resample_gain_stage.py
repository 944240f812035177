"""Unit tests for the resample and gain stage."""

import numpy as np
import pytest

from conftest import make_sine
from micscribe.audio.channel import BoundedChannel
from micscribe.audio.resampler import (
    ResampleGainStage,
    StreamingResampler,
    apply_gain,
    classify_levels,
    mix_to_mono,
    resample_audio,
)
from micscribe.errors import FrameProcessingError
from micscribe.models.audio import GainConfig
from micscribe.services.diagnostics import SessionDiagnostics


def run_stage(frames, target_rate=16000, gain_config=None, resampler=None):
    input_channel = BoundedChannel("capture", 100)
    persist = BoundedChannel("persist", 100)
    recognition = BoundedChannel("recognition", 100)
    diagnostics = SessionDiagnostics()
    stage = ResampleGainStage(
        input_channel, persist, recognition,
        target_rate=target_rate,
        gain_config=gain_config or GainConfig(),
        resampler=resampler,
        diagnostics=diagnostics,
        pop_timeout=0.01,
    )
    for frame in frames:
        input_channel.push(frame)
    input_channel.close()
    stage.start("resample-test")
    assert stage.join(5.0)
    return stage, persist, recognition, diagnostics


def drain(channel):
    items = []
    while True:
        item = channel.pop(timeout=0)
        if item is None:
            return items
        items.append(item)


@pytest.mark.unit
class TestResampleHelpers:

    def test_identity_when_rates_match(self):
        samples = np.linspace(-0.5, 0.5, 100, dtype=np.float32)
        assert resample_audio(samples, 16000, 16000) is samples

    def test_downsample_length(self):
        samples = np.zeros(4800, dtype=np.float32)
        assert len(resample_audio(samples, 48000, 16000)) == 1600

    def test_upsample_length(self):
        samples = np.zeros(800, dtype=np.float32)
        assert len(resample_audio(samples, 8000, 16000)) == 1600

    def test_invalid_rate_raises(self):
        with pytest.raises(FrameProcessingError):
            resample_audio(np.zeros(10, dtype=np.float32), 0, 16000)

    def test_streaming_matches_whole_signal(self):
        signal = make_sine(96000, sample_rate=48000, amplitude=0.3)
        resampler = StreamingResampler()

        pieces = [resampler(signal[i:i + 1024], 48000, 16000)
                  for i in range(0, len(signal), 1024)]
        pieces.append(resampler.flush())
        streamed = np.concatenate(pieces)

        assert len(streamed) == 32000
        np.testing.assert_allclose(streamed, resample_audio(signal, 48000, 16000), atol=1e-5)

    def test_streaming_length_tracks_input(self):
        resampler = StreamingResampler()
        total = 0
        for _ in range(200):
            total += len(resampler(np.zeros(1024, dtype=np.float32), 44100, 16000))
        total += len(resampler.flush())

        # ceil(200 * 1024 * 160 / 441)
        assert total == 74304

    def test_streaming_identity_and_reset(self):
        resampler = StreamingResampler()
        samples = np.linspace(-0.5, 0.5, 100, dtype=np.float32)
        assert resampler(samples, 16000, 16000) is samples
        assert len(resampler.flush()) == 0

        first = resampler(np.ones(3000, dtype=np.float32), 48000, 16000)
        first = np.concatenate([first, resampler.flush()])
        second = resampler(np.ones(3000, dtype=np.float32), 48000, 16000)
        second = np.concatenate([second, resampler.flush()])
        np.testing.assert_array_equal(first, second)

    def test_streaming_invalid_rate_raises(self):
        with pytest.raises(FrameProcessingError):
            StreamingResampler()(np.zeros(10, dtype=np.float32), 48000, 0)

    def test_mix_to_mono_averages_channels(self):
        interleaved = np.array([0.2, 0.4, -0.6, -0.2], dtype=np.float32)
        mono = mix_to_mono(interleaved, 2)
        np.testing.assert_allclose(mono, [0.3, -0.4], rtol=1e-6)

    def test_apply_gain_clamps(self):
        gained = apply_gain(np.array([0.4, -0.8, 0.1], dtype=np.float32), 2.0)
        np.testing.assert_allclose(gained, [0.8, -1.0, 0.2], rtol=1e-6)

    def test_clip_boundary_is_inclusive(self):
        samples = np.array([1.0, 0.989, 0.99, -0.99], dtype=np.float32)
        clipped, _ = classify_levels(samples, GainConfig(clip_threshold=0.99))
        assert clipped == 3

    def test_quiet_boundary(self):
        samples = np.array([0.0, 0.005, -0.005, 0.02, -0.5], dtype=np.float32)
        _, quiet = classify_levels(samples, GainConfig(quiet_threshold=0.01))
        assert quiet == 3


@pytest.mark.unit
class TestResampleGainStage:

    def test_identity_round_trip(self, frame_factory):
        samples = np.linspace(-0.5, 0.5, 1600).astype(np.float32)
        stage, persist, recognition, _ = run_stage([frame_factory(samples)])

        persisted = drain(persist)
        recognized = drain(recognition)
        assert len(persisted) == 1
        np.testing.assert_array_equal(persisted[0].samples, samples)
        assert recognized[0] is persisted[0]

    def test_outputs_are_closed_after_input_drains(self, frame_factory):
        _, persist, recognition, _ = run_stage([frame_factory(np.zeros(160))])
        assert persist.closed
        assert recognition.closed

    def test_sequence_numbers_and_rate(self, frame_factory):
        frames = [frame_factory(np.zeros(4800), sample_rate=48000) for _ in range(3)]
        _, persist, _, _ = run_stage(frames)

        output = drain(persist)
        # The filter delay comes out as one tail frame after the input drains
        assert [f.sequence_number for f in output] == [0, 1, 2, 3]
        assert all(f.sample_rate == 16000 and f.channels == 1 for f in output)
        assert sum(len(f.samples) for f in output) == 4800

    def test_uneven_frames_keep_total_length(self, frame_factory):
        frames = [frame_factory(np.zeros(1024), sample_rate=48000) for _ in range(50)]
        _, persist, recognition, diagnostics = run_stage(frames)

        output = drain(persist)
        # ceil(50 * 1024 / 3)
        assert sum(len(f.samples) for f in output) == 17067
        assert len(drain(recognition)) == len(output)
        assert diagnostics.snapshot()["total_samples"] == 17067

    def test_uneven_frames_match_whole_signal(self, frame_factory):
        signal = make_sine(96000, sample_rate=48000, amplitude=0.3)
        frames = [frame_factory(signal[i:i + 1024], sample_rate=48000)
                  for i in range(0, len(signal), 1024)]
        _, persist, _, _ = run_stage(frames)

        streamed = np.concatenate([f.samples for f in drain(persist)])
        np.testing.assert_allclose(streamed, resample_audio(signal, 48000, 16000), atol=1e-5)

    def test_no_tail_after_abort(self, frame_factory):
        input_channel = BoundedChannel("capture", 10)
        persist = BoundedChannel("persist", 10)
        recognition = BoundedChannel("recognition", 10)
        stage = ResampleGainStage(input_channel, persist, recognition, 16000, GainConfig(),
                                  pop_timeout=0.01)
        input_channel.push(frame_factory(np.zeros(1024), sample_rate=48000))
        stage.abort_event.set()
        stage.start("resample-abort-tail")

        assert stage.join(2.0)
        assert drain(persist) == []

    def test_multichannel_frames_are_averaged(self, frame_factory):
        interleaved = np.tile(np.array([0.2, 0.6], dtype=np.float32), 800)
        _, persist, _, _ = run_stage([frame_factory(interleaved, channels=2)])

        output = drain(persist)[0]
        assert len(output.samples) == 800
        np.testing.assert_allclose(output.samples, 0.4, rtol=1e-6)

    def test_gain_and_level_counts(self, frame_factory):
        samples = np.array([0.6, 0.001, -0.7, 0.3], dtype=np.float32)
        _, persist, _, diagnostics = run_stage(
            [frame_factory(samples)], gain_config=GainConfig(gain=2.0))

        output = drain(persist)[0]
        np.testing.assert_allclose(output.samples, [1.0, 0.002, -1.0, 0.6], rtol=1e-6)
        stats = diagnostics.snapshot()
        assert stats["total_samples"] == 4
        assert stats["clipped_samples"] == 2
        assert stats["quiet_samples"] == 1

    def test_resampler_failure_drops_frame_and_continues(self, frame_factory):
        frames = [frame_factory(np.full(160, 0.1)) for _ in range(3)]

        def flaky(samples, src, dst):
            if flaky.calls == 1:
                flaky.calls += 1
                raise FrameProcessingError("bad frame")
            flaky.calls += 1
            return samples
        flaky.calls = 0

        stage, persist, recognition, diagnostics = run_stage(frames, resampler=flaky)

        assert stage.error is None
        assert [f.sequence_number for f in drain(persist)] == [0, 2]
        assert [f.sequence_number for f in drain(recognition)] == [0, 2]
        assert diagnostics.snapshot()["dropped_frames"] == 1

    def test_abort_stops_consuming(self, frame_factory):
        input_channel = BoundedChannel("capture", 10)
        persist = BoundedChannel("persist", 10)
        recognition = BoundedChannel("recognition", 10)
        stage = ResampleGainStage(input_channel, persist, recognition, 16000, GainConfig(),
                                  pop_timeout=0.01)
        stage.abort_event.set()
        stage.start("resample-abort")

        assert stage.join(2.0)
        assert persist.closed and recognition.closed
