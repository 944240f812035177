"""Terminal output for live transcription and end-of-session diagnostics."""

import logging
from typing import Dict, List, Optional

from pubsub import pub
from rich.console import Console
from rich.table import Table
from rich.text import Text

from ..models.events import EventKind, PipelineEvent
from ..models.session import SessionReport
from ..models.transcription import TranscriptionResult
from ..services.event_publisher import DEFAULT_EVENT_TOPIC
from ..transcription.publisher import REALTIME_TOPIC

logger = logging.getLogger(__name__)

# Events worth showing to the user while recording; the rest only go to the log
VISIBLE_EVENTS = {
    EventKind.STAGE_FAILED,
    EventKind.PERSISTENCE_FAILED,
    EventKind.POST_PROCESSING_FAILED,
}

HELP_TEXT = "Press ENTER to start recording, ESC or 's' to stop, 'q' to quit"


class TranscriptionScreen:
    """Prints recognized chunks as they arrive and summarizes finished sessions."""

    def __init__(self, console: Optional[Console] = None,
                 transcription_topic: str = REALTIME_TOPIC,
                 event_topic: str = DEFAULT_EVENT_TOPIC):
        self.console = console or Console()
        self.transcription_topic = transcription_topic
        self.event_topic = event_topic
        self.overflow_warned = False
        self.attached = False

    def attach(self) -> None:
        """Subscribe to the result and event topics."""
        if self.attached:
            return
        pub.subscribe(self.on_transcription, self.transcription_topic)
        pub.subscribe(self.on_event, self.event_topic)
        self.attached = True
        logger.debug(f"TranscriptionScreen subscribed to {self.transcription_topic} and {self.event_topic}")

    def detach(self) -> None:
        if not self.attached:
            return
        pub.unsubscribe(self.on_transcription, self.transcription_topic)
        pub.unsubscribe(self.on_event, self.event_topic)
        self.attached = False

    def on_transcription(self, result: TranscriptionResult) -> None:
        timestamp = result.timestamp.strftime('%H:%M:%S')
        if result.failed:
            self.console.print(f"[{timestamp}] ⚠️  chunk {result.sequence_number} not recognized",
                               style="yellow")
        elif result.text:
            line = Text.assemble((f"[{timestamp}] ", "dim"), (result.text, "white"))
            self.console.print(line)

    def on_event(self, event: PipelineEvent) -> None:
        if event.kind == EventKind.STREAM_OVERFLOW and not self.overflow_warned:
            self.overflow_warned = True
            self.console.print(f"⚠️  Audio is being dropped: {event.message}", style="bold yellow")
        elif event.kind in VISIBLE_EVENTS:
            self.console.print(f"❌ {event.stage}: {event.message}", style="bold red")

    def show_help(self) -> None:
        self.console.print("🎙️  micscribe ready", style="bold green")
        self.console.print(HELP_TEXT, style="yellow")

    def show_recording_started(self, session_id: str) -> None:
        self.overflow_warned = False
        self.console.print(f"🔴 Recording session {session_id}", style="bold red")

    def show_report(self, report: SessionReport) -> None:
        self.console.print(build_report_table(report))
        if report.stage_error:
            self.console.print(f"❌ Pipeline error: {report.stage_error}", style="bold red")
        if report.persistence_failed:
            self.console.print(f"❌ WAV file incomplete: {report.persistence_error}", style="bold red")
        if report.post_processing_error:
            self.console.print(f"⚠️  Accurate transcription: {report.post_processing_error}",
                               style="yellow")


def build_report_table(report: SessionReport) -> Table:
    """Diagnostics of one session as a two-column table."""
    table = Table(title=f"📊 Session {report.session_id}", show_header=True,
                  header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")

    total = report.total_samples
    table.add_row("Duration", f"{report.duration_seconds:.1f}s")
    table.add_row("Frames written", str(report.frames_written))
    table.add_row("Clipped samples", _with_percentage(report.clipped_samples, total))
    table.add_row("Quiet samples", _with_percentage(report.quiet_samples, total))
    table.add_row("Dropped frames", str(report.dropped_frames))
    table.add_row("Chunks recognized", f"{report.chunks_dispatched - report.failed_chunks}"
                                       f"/{report.chunks_dispatched}")
    for name, count in sorted(report.overflow_counts.items()):
        table.add_row(f"Overflow ({name})", str(count))
    if report.wav_path:
        table.add_row("Audio", str(report.wav_path))
    if report.realtime_transcript_path:
        table.add_row("Real-time transcript", str(report.realtime_transcript_path))
    if report.accurate_transcript_path:
        table.add_row("Accurate transcript", str(report.accurate_transcript_path))
    return table


def build_devices_table(devices: List[Dict[str, object]]) -> Table:
    table = Table(title="🎤 Input devices", show_header=True, header_style="bold magenta")
    table.add_column("Index", style="cyan", justify="right")
    table.add_column("Name", style="white")
    table.add_column("Channels", justify="right")
    table.add_column("Default rate", justify="right")
    for device in devices:
        table.add_row(str(device["index"]), str(device["name"]),
                      str(device["channels"]), f"{device['sample_rate']} Hz")
    return table


def _with_percentage(count: int, total: int) -> str:
    if total <= 0:
        return str(count)
    return f"{count} ({100.0 * count / total:.1f}%)"
