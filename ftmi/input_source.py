"""Line-oriented input for confirmations and continuous mode."""

import logging
import os
import queue
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import IO


logger = logging.getLogger(__name__)


class InputEvent(Enum):
    """Non-line results of waiting for input."""

    TIMEOUT = "timeout"
    EOF = "eof"


class InputSource(ABC):
    """A source of input lines with a single blocking read."""

    @abstractmethod
    def next_line(self, timeout: float | None = None) -> str | InputEvent:
        """Wait for the next line.

        Args:
            timeout: Seconds to wait. None waits until a line arrives or input ends.

        Returns:
            The line without its trailing newline, InputEvent.TIMEOUT if nothing arrived
            in time, or InputEvent.EOF once the input has ended.
        """


class StreamInputSource(InputSource):
    """Reads lines from a text or binary stream.

    A daemon thread moves lines from the stream into a queue so reads can time out.
    The thread does nothing else; all handling happens in the caller.
    """

    def __init__(self, stream: IO[str] | IO[bytes]) -> None:
        self.stream = stream
        self._lines: queue.Queue[str | None] = queue.Queue()
        self._exhausted = False
        self._pump = threading.Thread(target=self._read_stream, name="ftmi-input", daemon=True)
        self._pump.start()

    def _read_stream(self) -> None:
        try:
            for line in self.stream:
                if isinstance(line, bytes):
                    line = line.decode("utf-8", errors="replace")
                self._lines.put(line.rstrip("\r\n"))
        except (OSError, ValueError) as e:
            logger.debug("Input stream closed: %s", e)
        finally:
            self._lines.put(None)

    def next_line(self, timeout: float | None = None) -> str | InputEvent:
        if self._exhausted:
            return InputEvent.EOF
        try:
            line = self._lines.get(timeout=timeout)
        except queue.Empty:
            return InputEvent.TIMEOUT
        if line is None:
            self._exhausted = True
            return InputEvent.EOF
        return line


def open_terminal() -> IO[bytes] | None:
    """Open the controlling terminal for reading, or return None if there is none.

    The handle is unbuffered so it can be closed while a reader thread is blocked on it.
    """
    device = "CONIN$" if os.name == "nt" else "/dev/tty"
    try:
        return open(device, "rb", buffering=0)
    except OSError as e:
        logger.debug("No controlling terminal available: %s", e)
        return None


class DebouncedBatcher:
    """Groups input lines that arrive in quick succession into batches.

    A batch starts with the first non-blank line and is flushed once no new line
    has arrived for `window` seconds, or when the input ends.
    """

    def __init__(self, source: InputSource, window: float) -> None:
        self.source = source
        self.window = window
        self.exhausted = False

    def next_batch(self) -> list[str] | None:
        """Block until a batch is ready.

        Returns:
            The lines of the batch in arrival order, or None once the input has ended
            and nothing is pending.
        """
        if self.exhausted:
            return None

        batch: list[str] = []
        while not batch:
            line = self.source.next_line()
            if line is InputEvent.EOF:
                self.exhausted = True
                return None
            if isinstance(line, str) and line.strip():
                batch.append(line)

        while True:
            line = self.source.next_line(timeout=self.window)
            if line is InputEvent.TIMEOUT:
                return batch
            if line is InputEvent.EOF:
                self.exhausted = True
                return batch
            if line.strip():
                batch.append(line)
