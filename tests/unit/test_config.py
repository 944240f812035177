"""Unit tests for configuration loading and validation."""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from micscribe.config import (
    AppConfig,
    AudioSettings,
    MicscribeConfig,
    RealtimeEngine,
    TranscriptionSettings,
    load_settings,
)


def write_config(directory, data) -> Path:
    path = Path(directory) / "micscribe.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


@pytest.mark.unit
class TestSettingsValidation:

    def test_defaults(self):
        audio = AudioSettings()
        assert audio.sample_rate == 16000
        assert audio.gain == 1.0
        assert audio.clip_threshold == 0.99
        assert audio.quiet_threshold == 0.01

    @pytest.mark.parametrize("rate", [7999, 48001])
    def test_sample_rate_out_of_range(self, rate):
        with pytest.raises(ValidationError, match="sample_rate"):
            AudioSettings(sample_rate=rate)

    @pytest.mark.parametrize("gain", [0.0, -1.0, 10.5])
    def test_gain_out_of_range(self, gain):
        with pytest.raises(ValidationError, match="gain"):
            AudioSettings(gain=gain)

    def test_gain_upper_bound_is_inclusive(self):
        assert AudioSettings(gain=10.0).gain == 10.0

    def test_vosk_requires_model_path(self):
        with pytest.raises(ValidationError, match="vosk_model_path must be set"):
            TranscriptionSettings(realtime_engine="vosk")

    def test_vosk_rejects_empty_model_path(self):
        with pytest.raises(ValidationError, match="must not be empty"):
            TranscriptionSettings(realtime_engine="vosk", vosk_model_path="  ")

    def test_missing_vosk_model_only_warns(self, caplog, temp_data_dir):
        missing = str(Path(temp_data_dir) / "no-model")
        settings = TranscriptionSettings(realtime_engine="vosk", vosk_model_path=missing)
        assert settings.vosk_model_path == missing
        assert "does not exist" in caplog.text

    def test_whisper_needs_no_vosk_path(self):
        settings = TranscriptionSettings(realtime_engine="faster-whisper")
        assert settings.realtime_engine == RealtimeEngine.FASTER_WHISPER

    def test_whisper_requires_16k(self):
        with pytest.raises(ValidationError, match="16000"):
            AppConfig(audio={"sample_rate": 8000},
                      transcription={"realtime_engine": "faster-whisper"})

    def test_unknown_keys_rejected(self):
        with pytest.raises(ValidationError):
            AudioSettings(sample_rte=16000)

    def test_settings_are_immutable(self):
        audio = AudioSettings()
        with pytest.raises(ValidationError):
            audio.gain = 2.0


@pytest.mark.unit
class TestMicscribeConfig:

    def test_missing_file(self, temp_data_dir):
        with pytest.raises(FileNotFoundError):
            MicscribeConfig(str(Path(temp_data_dir) / "absent.yaml"))

    def test_empty_file(self, temp_data_dir):
        path = Path(temp_data_dir) / "empty.yaml"
        path.write_text("", encoding="utf-8")
        with pytest.raises(ValueError, match="empty"):
            MicscribeConfig(str(path))

    def test_invalid_yaml(self, temp_data_dir):
        path = Path(temp_data_dir) / "broken.yaml"
        path.write_text("audio: [unclosed", encoding="utf-8")
        with pytest.raises(ValueError, match="Invalid YAML"):
            MicscribeConfig(str(path))

    def test_relative_paths_resolve_against_config_dir(self, temp_data_dir):
        path = write_config(temp_data_dir, {
            "transcription": {"realtime_engine": "vosk", "vosk_model_path": "models/vosk"},
            "storage": {"output_directory": "out"},
            "logging": {"file_path": "logs/app.log"},
        })
        config = MicscribeConfig(str(path))

        assert config.get("storage.output_directory") == str(Path(temp_data_dir) / "out")
        assert config.get("logging.file_path") == str(Path(temp_data_dir) / "logs/app.log")
        assert config.get("transcription.vosk_model_path") == str(Path(temp_data_dir) / "models/vosk")

    def test_whisper_size_names_stay_unresolved(self, temp_data_dir):
        path = write_config(temp_data_dir, {
            "transcription": {"realtime_engine": "faster-whisper",
                              "whisper_realtime_model": "tiny.en"},
        })
        assert MicscribeConfig(str(path)).get("transcription.whisper_realtime_model") == "tiny.en"

    def test_get_and_set(self, temp_data_dir):
        path = write_config(temp_data_dir, {"transcription": {"realtime_engine": "faster-whisper"}})
        config = MicscribeConfig(str(path))

        assert config.get("audio.gain", 1.5) == 1.5
        config.set("audio.gain", 2.5)
        assert config.get("audio.gain") == 2.5
        assert config.to_settings().audio.gain == 2.5

    def test_load_settings_validates(self, temp_data_dir):
        path = write_config(temp_data_dir, {
            "audio": {"gain": 20},
            "transcription": {"realtime_engine": "faster-whisper"},
        })
        with pytest.raises(ValueError, match="Invalid configuration"):
            load_settings(str(path))

    def test_load_settings(self, temp_data_dir):
        path = write_config(temp_data_dir, {
            "audio": {"gain": 2.0, "device_sample_rate": 44100},
            "transcription": {"realtime_engine": "faster-whisper", "chunk_duration_seconds": 2.5},
        })
        settings = load_settings(str(path))

        assert settings.audio.gain == 2.0
        assert settings.audio.device_sample_rate == 44100
        assert settings.transcription.chunk_duration_seconds == 2.5
        assert settings.pipeline.shutdown_timeout_seconds == 60.0
