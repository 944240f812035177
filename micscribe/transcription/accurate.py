"""Post-recording accurate transcription of a finished WAV file."""

import logging
import time
import wave
from pathlib import Path
from typing import Optional

import numpy as np

from ..errors import PostProcessingError
from .base import AbstractTranscriptionBackend

logger = logging.getLogger(__name__)

ACCURATE_SUFFIX = "_accurate.txt"


def load_wav_samples(wav_path: Path) -> np.ndarray:
    """Read a 16-bit PCM WAV file as mono float32 samples.

    Raises:
        PostProcessingError: if the file cannot be read or is not 16-bit PCM
    """
    try:
        with wave.open(str(wav_path), 'rb') as wf:
            channels = wf.getnchannels()
            sample_width = wf.getsampwidth()
            raw = wf.readframes(wf.getnframes())
    except (OSError, EOFError, wave.Error) as e:
        raise PostProcessingError(f"Cannot read WAV file {wav_path}: {e}") from e

    if sample_width != 2:
        raise PostProcessingError(f"{wav_path} is {sample_width * 8}-bit; only 16-bit PCM is supported")

    samples = np.frombuffer(raw, dtype="<i2").astype(np.float32) / 32767.0
    if channels > 1:
        usable = len(samples) - len(samples) % channels
        samples = samples[:usable].reshape(-1, channels).mean(axis=1)
    return samples.astype(np.float32, copy=False)


def accurate_transcript_path(wav_path: Path, output_directory: Path) -> Path:
    return Path(output_directory) / f"{Path(wav_path).stem}{ACCURATE_SUFFIX}"


def run_accurate_transcription(wav_path: Path,
                               backend: AbstractTranscriptionBackend,
                               output_directory: Optional[Path] = None) -> Path:
    """Transcribe a whole WAV file once and save the text next to the other outputs.

    Args:
        wav_path: Finished 16-bit PCM WAV file at the backend's sample rate
        backend: Accurate backend; initialized here if needed
        output_directory: Where to write the transcript (defaults to the WAV's directory)

    Returns:
        Path of the written transcript

    Raises:
        PostProcessingError: on any failure
    """
    wav_path = Path(wav_path)
    output_directory = Path(output_directory) if output_directory else wav_path.parent

    if not backend.is_initialized:
        try:
            initialized = backend.initialize()
        except Exception as e:
            raise PostProcessingError(f"Accurate model failed to load: {e}") from e
        if not initialized:
            raise PostProcessingError("Accurate model failed to load")

    logger.info(f"Loading audio from: {wav_path}")
    samples = load_wav_samples(wav_path)
    logger.info(f"Loaded {len(samples)} samples")

    start_time = time.time()
    try:
        text = backend.transcribe(samples)
    except Exception as e:
        raise PostProcessingError(f"Accurate transcription of {wav_path} failed: {e}") from e
    logger.info(f"Accurate transcription took {time.time() - start_time:.1f}s")

    output_path = accurate_transcript_path(wav_path, output_directory)
    try:
        output_directory.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(text.strip() + "\n")
    except OSError as e:
        raise PostProcessingError(f"Cannot write {output_path}: {e}") from e

    logger.info(f"Accurate transcription saved to: {output_path}")
    return output_path
