"""Terminal status indicator shown while waiting for a response.

One background thread per shell session draws a braille spinner while
the indicator is shown. The foreground and the thread share exactly two
flags, ``stopped`` and ``suppressed``, guarded by one lock. Drawing is
not atomic with respect to the foreground: at worst one extra glyph
appears after suppress().
"""

from __future__ import annotations

import logging
import sys
import threading
import time
from typing import Any, TextIO

from murmur.accumulators import Flow

logger = logging.getLogger(__name__)

FRAMES = ("⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏")

# Cursor left by two columns: back over "<glyph><space>"
_BACK = "\x1b[2D"


class Spinner:
    """Background spinner, also usable as an accumulator.

    Starts suppressed. show() at the beginning of a turn, suppress() when
    output arrives or the turn ends. As an accumulator, any value
    suppresses it. Use as a context manager so the thread is always
    joined.
    """

    def __init__(self, output: TextIO | None = None, interval: float = 0.05) -> None:
        self.output = output if output is not None else sys.stdout
        self.interval = interval
        self._lock = threading.Lock()
        self._stopped = False
        self._suppressed = True
        self._drawn = False
        self._thread: threading.Thread | None = None

    def __enter__(self) -> Spinner:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="murmur-spinner", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the thread and wait for it. Idempotent."""
        with self._lock:
            self._stopped = True
        self.suppress()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def show(self) -> None:
        with self._lock:
            self._suppressed = False

    def suppress(self) -> None:
        with self._lock:
            if self._suppressed:
                return
            self._suppressed = True
            drawn, self._drawn = self._drawn, False
        if drawn:
            # Step back so the next write covers the glyph
            self._write(_BACK)

    @property
    def suppressed(self) -> bool:
        with self._lock:
            return self._suppressed

    def accumulate(self, value: Any) -> Flow:
        self.suppress()
        return Flow.CONTINUE

    def _write(self, text: str) -> None:
        try:
            self.output.write(text)
            self.output.flush()
        except (OSError, ValueError):
            # Terminal gone or stream closed; nothing useful to draw on
            logger.debug("spinner write failed", exc_info=True)

    def _run(self) -> None:
        frame = 0
        while True:
            time.sleep(self.interval)
            with self._lock:
                if self._stopped:
                    return
                if self._suppressed:
                    continue
                back = _BACK if self._drawn else ""
                self._drawn = True
            self._write(f"{back}{FRAMES[frame % len(FRAMES)]} ")
            frame += 1
