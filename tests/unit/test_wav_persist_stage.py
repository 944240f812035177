"""Unit tests for WavPersistStage."""

import wave
from pathlib import Path
from unittest.mock import Mock

import numpy as np
import pytest
from pubsub import pub

from micscribe.audio.channel import BoundedChannel
from micscribe.audio.wav_writer import WavPersistStage, float_to_pcm16
from micscribe.errors import SetupError
from micscribe.models.events import EventKind
from micscribe.services.diagnostics import SessionDiagnostics
from micscribe.services.event_publisher import PipelineEventPublisher


@pytest.mark.unit
class TestWavPersistStage:
    """Test cases for streaming WAV persistence."""

    def test_float_to_pcm16(self):
        pcm = np.frombuffer(float_to_pcm16(np.array([0.0, 1.0, -1.0, 2.0], dtype=np.float32)),
                            dtype="<i2")
        assert list(pcm) == [0, 32767, -32767, 32767]

    def test_buffered_frames_are_all_written_on_close(self, temp_data_dir, frame_factory):
        path = Path(temp_data_dir) / "session.wav"
        channel = BoundedChannel("persist", 10)
        diagnostics = SessionDiagnostics()
        stage = WavPersistStage(channel, path, 16000, diagnostics=diagnostics, pop_timeout=0.01)
        stage.open()

        # Five frames buffered before the worker even starts, then stop
        for _ in range(5):
            channel.push(frame_factory(np.full(1600, 0.25)))
        channel.close()
        stage.start("persist-test")
        assert stage.join(5.0)

        assert stage.frames_written == 5
        assert diagnostics.snapshot()["frames_written"] == 5
        with wave.open(str(path), 'rb') as wf:
            assert wf.getnchannels() == 1
            assert wf.getsampwidth() == 2
            assert wf.getframerate() == 16000
            assert wf.getnframes() == 5 * 1600
            data = np.frombuffer(wf.readframes(wf.getnframes()), dtype="<i2")
        assert int(data[0]) == int(0.25 * 32767)

    def test_open_failure_is_setup_error(self, temp_data_dir):
        blocker = Path(temp_data_dir) / "not_a_dir"
        blocker.write_text("file")
        stage = WavPersistStage(BoundedChannel("persist", 1), blocker / "session.wav", 16000)

        with pytest.raises(SetupError):
            stage.open()

    def test_write_failure_keeps_draining(self, temp_data_dir, frame_factory):
        path = Path(temp_data_dir) / "session.wav"
        channel = BoundedChannel("persist", 10)
        diagnostics = SessionDiagnostics()
        events = []

        def listener(event):
            events.append(event)

        topic = "test.persist.events"
        pub.subscribe(listener, topic)
        try:
            stage = WavPersistStage(channel, path, 16000, diagnostics=diagnostics,
                                    publisher=PipelineEventPublisher("s1", topic),
                                    pop_timeout=0.01)
            stage.open()
            real_file = stage.wav_file
            failing = Mock(wraps=real_file)
            failing.writeframes.side_effect = OSError("disk full")
            stage.wav_file = failing

            for _ in range(4):
                channel.push(frame_factory(np.zeros(160)))
            channel.close()
            stage.start("persist-fail")
            assert stage.join(5.0)
        finally:
            pub.unsubscribe(listener, topic)
            real_file.close()

        assert stage.error is None
        assert stage.failed
        assert stage.frames_written == 0
        assert failing.writeframes.call_count == 1
        assert channel.is_drained
        assert "disk full" in diagnostics.snapshot()["persistence_error"]
        assert [e.kind for e in events] == [EventKind.PERSISTENCE_FAILED]
        assert events[0].session_id == "s1"

    def test_run_without_open_fails(self, temp_data_dir):
        stage = WavPersistStage(BoundedChannel("persist", 1), Path(temp_data_dir) / "x.wav", 16000)
        stage.start("persist-unopened")
        assert stage.join(2.0)
        assert stage.error is not None
