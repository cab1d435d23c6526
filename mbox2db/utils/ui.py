"""
UI utilities for the CLI.
Provides the progress spinner shown while a mailbox is converted.
"""

import sys
import time
import threading
import itertools

from .colors import Colors


class Spinner:
    """
    Displays a loading spinner in the terminal.

    The message can be changed while spinning with update(). When stdout
    is not a TTY every update is printed as a plain line instead.
    """
    FRAMES = ['⠋', '⠙', '⠹', '⠸', '⠼', '⠴', '⠦', '⠧', '⠇', '⠏']

    def __init__(self, message: str = "Loading", delay: float = 0.1, persist: bool = True, stream=None):
        self.spinner = itertools.cycle(self.FRAMES)
        self.message = message
        self.delay = delay
        self.persist = persist
        self.stream = stream if stream is not None else sys.stdout
        self.busy = False
        self.thread = None
        self._lock = threading.Lock()

    def _is_tty(self) -> bool:
        isatty = getattr(self.stream, "isatty", None)
        return bool(isatty and isatty())

    def _spin(self):
        while self.busy:
            with self._lock:
                # \r moves cursor to start of line, \033[K clears the line
                frame = Colors.colorize(next(self.spinner), Colors.CYAN)
                self.stream.write(f"\r{frame} {self.message}   \033[K")
                self.stream.flush()
            time.sleep(self.delay)

    def update(self, message: str):
        """Replace the spinner message"""
        with self._lock:
            self.message = message
        if not self.busy:
            self.stream.write(f"{message}\n")
            self.stream.flush()

    def println(self, text: str):
        """Print a line above the spinner without garbling it"""
        with self._lock:
            prefix = "\r\033[K" if self.busy else ""
            self.stream.write(f"{prefix}{text}\n")
            self.stream.flush()

    def __enter__(self):
        if self._is_tty():
            self.busy = True
            self.thread = threading.Thread(target=self._spin, daemon=True)
            self.thread.start()
        else:
            self.stream.write(f"{self.message}...\n")
            self.stream.flush()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if not self.busy:
            return

        self.busy = False
        if self.thread:
            self.thread.join()
        final_message = ""
        if exc_type is not None:
            # Failure always persists
            final_message = f"{Colors.RED}✘{Colors.RESET} {self.message}\n"
        elif self.persist:
            # Success only persists if requested
            final_message = f"{Colors.GREEN}✔{Colors.RESET} {self.message}\n"
        self.stream.write(f"\r\033[K{final_message}")
        self.stream.flush()
