"""Audio capture and processing module."""

from .channel import BoundedChannel
from .stage import PipelineStage
from .capture import CaptureSource, CaptureStream, CaptureStage, PyAudioCaptureSource
from .resampler import ResampleGainStage, StreamingResampler, resample_audio
from .wav_writer import WavPersistStage

__all__ = [
    'BoundedChannel',
    'PipelineStage',
    'CaptureSource',
    'CaptureStream',
    'CaptureStage',
    'PyAudioCaptureSource',
    'ResampleGainStage',
    'StreamingResampler',
    'resample_audio',
    'WavPersistStage',
]
