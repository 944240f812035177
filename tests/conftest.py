"""Pytest configuration and fixtures for micscribe tests."""

import pytest
import tempfile
import logging
import threading
import wave
from pathlib import Path
from typing import Iterable, List, Optional
import numpy as np

from micscribe.audio.capture import CaptureSource, CaptureStream
from micscribe.config import AppConfig
from micscribe.errors import SetupError
from micscribe.models.audio import AudioFrame
from micscribe.transcription.base import AbstractTranscriptionBackend


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without hardware or models")
    config.addinivalue_line("markers", "integration: full pipeline tests with fake devices")
    config.addinivalue_line("markers", "hardware: requires a real microphone")
    config.addinivalue_line("markers", "slow: takes more than a few seconds")


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


def make_sine(num_samples: int, sample_rate: int = 16000, freq: float = 440.0,
              amplitude: float = 0.5) -> np.ndarray:
    t = np.arange(num_samples) / sample_rate
    return (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.float32)


@pytest.fixture
def frame_factory():
    """Build AudioFrames with increasing sequence numbers."""
    counter = {"next": 0}

    def build(samples, channels: int = 1, sample_rate: int = 16000) -> AudioFrame:
        frame = AudioFrame(
            samples=np.asarray(samples, dtype=np.float32),
            sequence_number=counter["next"],
            channels=channels,
            sample_rate=sample_rate,
        )
        counter["next"] += 1
        return frame

    return build


class FakeCaptureStream(CaptureStream):
    """Yields scripted frames, then blocks like a live device until closed."""

    def __init__(self, frames: Iterable[AudioFrame], fail_after: Optional[Exception] = None):
        self.frames = list(frames)
        self.fail_after = fail_after
        self.closed = threading.Event()
        self.all_delivered = threading.Event()
        self.iterated = False

    def __iter__(self):
        self.iterated = True
        for frame in self.frames:
            if self.closed.is_set():
                return
            yield frame
        self.all_delivered.set()
        if self.fail_after is not None:
            raise self.fail_after
        self.closed.wait()

    def close(self) -> None:
        self.closed.set()


class FakeCaptureSource(CaptureSource):
    """Capture source handing out a FakeCaptureStream over scripted frames."""

    def __init__(self, frames: Iterable[AudioFrame] = (), fail_on_open: bool = False,
                 fail_after: Optional[Exception] = None):
        self.frames = list(frames)
        self.fail_on_open = fail_on_open
        self.fail_after = fail_after
        self.streams: List[FakeCaptureStream] = []
        self.open_calls = []

    def open(self, sample_rate_hint: int, channels_hint: int) -> CaptureStream:
        self.open_calls.append((sample_rate_hint, channels_hint))
        if self.fail_on_open:
            raise SetupError("No such input device")
        stream = FakeCaptureStream(self.frames, self.fail_after)
        self.streams.append(stream)
        return stream


class FakeBackend(AbstractTranscriptionBackend):
    """Backend returning canned text; chunks listed in ``fail_on`` raise."""

    name = "fake"

    def __init__(self, text: str = "hello", fail_on: Iterable[int] = (),
                 initialize_ok: bool = True, sample_rate: int = 16000):
        super().__init__(sample_rate=sample_rate)
        self.text = text
        self.fail_on = set(fail_on)
        self.initialize_ok = initialize_ok
        self.calls: List[int] = []
        self.lock = threading.Lock()

    def initialize(self) -> bool:
        self.is_initialized = self.initialize_ok
        return self.initialize_ok

    def transcribe(self, samples: np.ndarray) -> str:
        with self.lock:
            call_index = len(self.calls)
            self.calls.append(len(samples))
        if call_index in self.fail_on:
            raise RuntimeError(f"inference failed on call {call_index}")
        return f"{self.text} {call_index}"


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def app_config_factory(temp_data_dir):
    """Build a validated AppConfig writing into the temporary directory."""
    def build(**overrides) -> AppConfig:
        data = {
            "audio": {
                "sample_rate": 16000,
                "device_sample_rate": 16000,
                "device_channels": 1,
                "frames_per_buffer": 1600,
            },
            "pipeline": {
                "pop_timeout_seconds": 0.02,
                "startup_timeout_seconds": 2.0,
                "shutdown_timeout_seconds": 10.0,
                "abort_timeout_seconds": 2.0,
            },
            "transcription": {
                "realtime_engine": "faster-whisper",
                "chunk_duration_seconds": 1.0,
            },
            "storage": {"output_directory": str(Path(temp_data_dir) / "recordings")},
            "logging": {"file_path": str(Path(temp_data_dir) / "logs" / "test.log")},
        }
        for section, values in overrides.items():
            data.setdefault(section, {}).update(values)
        return AppConfig.model_validate(data)

    return build


@pytest.fixture
def sample_audio_file(temp_data_dir):
    """Create a 2-second 16 kHz mono WAV file for testing."""
    file_path = Path(temp_data_dir) / "test_audio.wav"
    samples = make_sine(32000)

    with wave.open(str(file_path), 'wb') as wf:
        wf.setnchannels(1)  # Mono
        wf.setsampwidth(2)  # 16-bit
        wf.setframerate(16000)  # 16kHz
        wf.writeframes((samples * 32767).astype("<i2").tobytes())

    return file_path
