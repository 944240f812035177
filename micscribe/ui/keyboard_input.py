"""Cross-platform keyboard input handling for the recorder controls."""

import sys
import threading
import time
from typing import Optional, Callable
import logging

logger = logging.getLogger(__name__)

START_KEYS = {"\r", "\n"}
STOP_KEYS = {"\x1b", "s"}
QUIT_KEYS = {"q", "\x03"}


class KeyboardInputHandler:
    """Reads single keypresses from a terminal on a background thread."""

    def __init__(self, callback: Callable[[str], bool]):
        """Initialize keyboard handler.

        Args:
            callback: Function that takes a key and returns True to continue, False to quit
        """
        self.callback = callback
        self.running = False
        self.thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the keyboard input handler."""
        if self.running:
            return

        self.running = True
        self.thread = threading.Thread(target=self._input_loop, name="keyboard-input", daemon=True)
        self.thread.start()
        logger.info("Keyboard input handler started")

    def stop(self) -> None:
        """Stop the keyboard input handler."""
        self.running = False
        if self.thread and self.thread is not threading.current_thread():
            self.thread.join(timeout=1.0)
        logger.info("Keyboard input handler stopped")

    def _input_loop(self) -> None:
        logger.info("Starting keyboard input loop")
        while self.running:
            try:
                key = self._get_key()
            except Exception as e:
                logger.error(f"Error in input loop: {e}")
                break
            if key:
                logger.debug(f"Key detected: {key!r}")
                if not self.callback(key):
                    logger.info("Callback returned False, breaking input loop")
                    break
            # Small delay to prevent busy waiting
            time.sleep(0.05)
        self.running = False
        logger.info("Keyboard input loop ended")

    def _get_key(self) -> Optional[str]:
        if sys.platform == "win32":
            return self._get_key_windows()
        return self._get_key_unix()

    def _get_key_windows(self) -> Optional[str]:
        import msvcrt
        if msvcrt.kbhit():
            return msvcrt.getch().decode('utf-8', errors='ignore').lower()
        return None

    def _get_key_unix(self) -> Optional[str]:
        import select
        import termios
        import tty

        # Raw mode only while reading, so log output stays readable
        if select.select([sys.stdin], [], [], 0.1)[0]:
            old_settings = termios.tcgetattr(sys.stdin)
            try:
                tty.setraw(sys.stdin.fileno())
                key = sys.stdin.read(1)
            finally:
                termios.tcsetattr(sys.stdin, termios.TCSADRAIN, old_settings)
            return key.lower()
        return None


class SimpleInputHandler:
    """Line-based fallback for stdin that is not a terminal."""

    def __init__(self, callback: Callable[[str], bool]):
        self.callback = callback
        self.running = False
        self.thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self.running:
            return

        self.running = True
        self.thread = threading.Thread(target=self._input_loop, name="line-input", daemon=True)
        self.thread.start()
        logger.info("Simple input handler started")

    def stop(self) -> None:
        self.running = False
        logger.info("Simple input handler stopped")

    def _input_loop(self) -> None:
        while self.running:
            try:
                line = sys.stdin.readline()
            except Exception as e:
                logger.error(f"Simple input error: {e}")
                break
            if not line:
                # EOF behaves like quit
                self.callback("q")
                break
            key = line.strip().lower()[:1] or "\n"
            if not self.callback(key):
                break
        self.running = False


def create_input_handler(callback: Callable[[str], bool]):
    """Create the best available input handler for the current stdin.

    Args:
        callback: Function that takes a key and returns True to continue, False to quit
    """
    if sys.stdin.isatty():
        return KeyboardInputHandler(callback)
    logger.info("stdin is not a terminal, using line-based input")
    return SimpleInputHandler(callback)
