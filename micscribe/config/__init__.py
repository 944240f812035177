"""YAML configuration loader and validated settings for micscribe."""

import os
import yaml
from enum import Enum
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)


class RealtimeEngine(str, Enum):
    """Real-time recognition engines, selected once per session."""
    VOSK = "vosk"
    FASTER_WHISPER = "faster-whisper"


class _Settings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class AudioSettings(_Settings):
    sample_rate: int = 16000
    gain: float = 1.0
    clip_threshold: float = Field(0.99, gt=0.0, le=1.0)
    quiet_threshold: float = Field(0.01, gt=0.0, le=1.0)
    device_index: Optional[int] = None
    device_sample_rate: int = 48000
    device_channels: int = Field(1, ge=1)
    frames_per_buffer: int = Field(1024, ge=1)

    @field_validator("sample_rate")
    @classmethod
    def _check_sample_rate(cls, value: int) -> int:
        if value < 8000 or value > 48000:
            raise ValueError("sample_rate must be between 8000 and 48000 Hz")
        return value

    @field_validator("gain")
    @classmethod
    def _check_gain(cls, value: float) -> float:
        if value <= 0.0 or value > 10.0:
            raise ValueError("gain must be between 0.0 and 10.0 (recommended: 1.0-5.0)")
        return value


class PipelineSettings(_Settings):
    capture_buffer_seconds: float = Field(10.0, gt=0)
    persist_buffer_seconds: float = Field(10.0, gt=0)
    recognition_buffer_seconds: float = Field(30.0, gt=0)
    result_buffer_size: int = Field(256, ge=1)
    pop_timeout_seconds: float = Field(0.1, gt=0)
    startup_timeout_seconds: float = Field(5.0, gt=0)
    shutdown_timeout_seconds: float = Field(60.0, gt=0)
    abort_timeout_seconds: float = Field(2.0, gt=0)


class TranscriptionSettings(_Settings):
    realtime_engine: RealtimeEngine = RealtimeEngine.VOSK
    chunk_duration_seconds: float = Field(3.0, gt=0)
    language: str = "en"
    vosk_model_path: Optional[str] = None
    whisper_realtime_model: str = "tiny.en"
    enable_accurate_recognition: bool = False
    whisper_model_path_accurate: str = "small.en"
    whisper_device: str = "auto"
    whisper_compute_type: str = "default"

    @model_validator(mode="after")
    def _check_engine_models(self) -> "TranscriptionSettings":
        if self.realtime_engine == RealtimeEngine.VOSK:
            if self.vosk_model_path is None:
                raise ValueError('vosk_model_path must be set when realtime_engine = "vosk"')
            if not self.vosk_model_path.strip():
                raise ValueError('vosk_model_path must not be empty when realtime_engine = "vosk"')
            if not Path(self.vosk_model_path).exists():
                logger.warning(f"Vosk model path does not exist: {self.vosk_model_path}")
        elif not self.whisper_realtime_model.strip():
            raise ValueError('whisper_realtime_model must be set when realtime_engine = "faster-whisper"')

        if self.enable_accurate_recognition and not self.whisper_model_path_accurate.strip():
            raise ValueError("whisper_model_path_accurate must be set when accurate recognition is enabled")
        return self


class StorageSettings(_Settings):
    output_directory: str = "./recordings"


class LoggingSettings(_Settings):
    level: str = "INFO"
    file_path: str = "logs/micscribe.log"
    console_output: bool = True


class AppConfig(_Settings):
    """Immutable application configuration, read-only for a session's lifetime."""
    audio: AudioSettings = AudioSettings()
    pipeline: PipelineSettings = PipelineSettings()
    transcription: TranscriptionSettings
    storage: StorageSettings = StorageSettings()
    logging: LoggingSettings = LoggingSettings()

    @model_validator(mode="after")
    def _check_whisper_rate(self) -> "AppConfig":
        uses_whisper = (self.transcription.realtime_engine == RealtimeEngine.FASTER_WHISPER
                        or self.transcription.enable_accurate_recognition)
        if uses_whisper and self.audio.sample_rate != 16000:
            raise ValueError("Whisper models require audio.sample_rate = 16000")
        return self


class MicscribeConfig:
    """micscribe configuration loader."""

    def __init__(self, config_path: str):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file
        """
        self.config_file = Path(config_path)

        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")

        if not config:
            raise ValueError("Configuration file is empty")
        if not isinstance(config, dict):
            raise ValueError("Configuration file must contain a mapping")

        self._resolve_paths(config)
        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        for section, key in [('storage', 'output_directory'),
                             ('logging', 'file_path'),
                             ('transcription', 'vosk_model_path')]:
            value = (config.get(section) or {}).get(key)
            if value and not os.path.isabs(value):
                config[section][key] = str(config_dir / value)

        # Whisper accepts either a size name or a model directory
        transcription = config.get('transcription') or {}
        for key in ('whisper_realtime_model', 'whisper_model_path_accurate'):
            value = transcription.get(key)
            if value and not os.path.isabs(value) and (config_dir / value).exists():
                transcription[key] = str(config_dir / value)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'audio.sample_rate').

        Args:
            key_path: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'audio.gain')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        # Navigate to the parent dictionary
        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def to_settings(self) -> AppConfig:
        """Validate the loaded values into an immutable AppConfig.

        Raises:
            ValueError: if the configuration is invalid
        """
        try:
            return AppConfig.model_validate(self.config)
        except ValidationError as e:
            raise ValueError(f"Invalid configuration in {self.config_file}: {e}") from e


def load_settings(config_path: str) -> AppConfig:
    """Load and validate a YAML configuration file."""
    return MicscribeConfig(config_path).to_settings()


__all__ = [
    "AppConfig",
    "AudioSettings",
    "LoggingSettings",
    "MicscribeConfig",
    "PipelineSettings",
    "RealtimeEngine",
    "StorageSettings",
    "TranscriptionSettings",
    "load_settings",
]
