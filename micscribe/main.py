"""Main application entry point for micscribe."""

import logging
import queue
import signal
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from .audio.capture import PyAudioCaptureSource, list_input_devices
from .config import LoggingSettings, MicscribeConfig
from .errors import PostProcessingError, SetupError
from .services.recording_session import RecordingSession
from .storage.file_manager import FileManager
from .transcription.accurate import run_accurate_transcription
from .transcription.factory import create_accurate_backend, create_realtime_backend
from .ui.keyboard_input import QUIT_KEYS, START_KEYS, STOP_KEYS, create_input_handler
from .ui.transcription_screen import TranscriptionScreen, build_devices_table

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "micscribe.yaml"

console = Console()


def setup_logging(settings: LoggingSettings, level: Optional[str] = None) -> None:
    """Set up logging from the logging section of the configuration."""
    level = (level or settings.level).upper()
    log_file_path = Path(settings.file_path)
    log_file_path.parent.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    ))
    handlers.append(file_handler)

    if settings.console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("micscribe starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def _load_config(config_path: str, device: Optional[int] = None):
    try:
        config = MicscribeConfig(config_path)
        if device is not None:
            config.set('audio.device_index', device)
        return config.to_settings()
    except (FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e))


def _raise_keyboard_interrupt(signum, frame):
    raise KeyboardInterrupt()


class Recorder:
    """Interactive controller: keys start and stop sessions, one at a time."""

    def __init__(self, session: RecordingSession, screen: TranscriptionScreen):
        self.session = session
        self.screen = screen
        self.commands: "queue.Queue[str]" = queue.Queue()
        self.input_handler = create_input_handler(self.on_key)

    def on_key(self, key: str) -> bool:
        self.commands.put(key)
        return key not in QUIT_KEYS

    def run(self, duration: Optional[float] = None) -> None:
        """Run until the user quits, or record once for ``duration`` seconds."""
        if duration is not None:
            self.start_recording()
            if self.session.is_recording:
                self.session.wait_for_stop_request(duration)
                self.stop_recording()
            return

        self.screen.show_help()
        self.input_handler.start()
        try:
            while True:
                if self.session.is_recording and self.session.stop_requested.is_set():
                    self.stop_recording()
                try:
                    key = self.commands.get(timeout=0.2)
                except queue.Empty:
                    continue

                if key in QUIT_KEYS:
                    if self.session.is_recording:
                        self.stop_recording()
                    break
                if key in START_KEYS and not self.session.is_recording:
                    self.start_recording()
                elif key in STOP_KEYS and self.session.is_recording:
                    self.stop_recording()
        finally:
            self.input_handler.stop()

    def start_recording(self) -> None:
        try:
            session_id = self.session.start()
        except SetupError as e:
            console.print(f"❌ Could not start recording: {e}", style="bold red")
            return
        self.screen.show_recording_started(session_id)

    def stop_recording(self) -> None:
        console.print("⏹️  Stopping, finishing pending audio...", style="yellow")
        report = self.session.stop()
        self.screen.show_report(report)


@click.group()
@click.version_option(package_name="micscribe")
def cli() -> None:
    """micscribe - record the microphone to WAV with live transcription."""


@cli.command()
@click.option("--config", "config_path", default=DEFAULT_CONFIG_PATH, show_default=True,
              type=click.Path(dir_okay=False), help="Path to configuration YAML file")
@click.option("--device", type=int, default=None, help="Input device index (see 'micscribe devices')")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"],
                                               case_sensitive=False),
              default=None, help="Override the configured logging level")
@click.option("--duration", type=float, default=None,
              help="Record once for this many seconds, then stop and exit")
def record(config_path: str, device: Optional[int], log_level: Optional[str],
           duration: Optional[float]) -> None:
    """Record sessions interactively."""
    settings = _load_config(config_path, device)
    setup_logging(settings.logging, log_level)

    realtime_backend = create_realtime_backend(settings)
    accurate_backend = (create_accurate_backend(settings)
                        if settings.transcription.enable_accurate_recognition else None)
    session = RecordingSession(
        settings,
        PyAudioCaptureSource(settings.audio.device_index, settings.audio.frames_per_buffer),
        realtime_backend,
        accurate_backend,
    )
    screen = TranscriptionScreen(console)
    screen.attach()

    signal.signal(signal.SIGTERM, _raise_keyboard_interrupt)
    try:
        Recorder(session, screen).run(duration)
    except KeyboardInterrupt:
        console.print("\n🛑 Interrupted, shutting down", style="bold yellow")
        report = session.shutdown()
        if report is not None:
            screen.show_report(report)
    finally:
        screen.detach()
        realtime_backend.cleanup()
        if accurate_backend is not None:
            accurate_backend.cleanup()
    console.print("👋 Goodbye!", style="bold blue")


@cli.command()
@click.argument("wav_file")
@click.option("--config", "config_path", default=DEFAULT_CONFIG_PATH, show_default=True,
              type=click.Path(dir_okay=False), help="Path to configuration YAML file")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"],
                                               case_sensitive=False),
              default=None, help="Override the configured logging level")
def accurate(wav_file: str, config_path: str, log_level: Optional[str]) -> None:
    """Run accurate transcription on an existing WAV_FILE."""
    settings = _load_config(config_path)
    setup_logging(settings.logging, log_level)

    file_manager = FileManager(settings.storage.output_directory)
    wav_path = file_manager.resolve_wav_path(wav_file)
    if wav_path is None:
        raise click.ClickException(f"WAV file not found: {wav_file}")

    console.print(f"🎯 Transcribing {wav_path} with {settings.transcription.whisper_model_path_accurate}")
    backend = create_accurate_backend(settings)
    try:
        output_path = run_accurate_transcription(wav_path, backend, wav_path.parent)
    except PostProcessingError as e:
        raise click.ClickException(str(e))
    finally:
        backend.cleanup()
    console.print(f"✅ Saved {output_path}", style="bold green")


@cli.command()
def devices() -> None:
    """List audio input devices."""
    try:
        found = list_input_devices()
    except Exception as e:
        raise click.ClickException(f"Cannot query audio devices: {e}")
    if not found:
        console.print("No input devices found", style="yellow")
        return
    console.print(build_devices_table(found))


def main() -> None:
    """Main entry point for micscribe."""
    cli()


if __name__ == "__main__":
    main()
