"""Transcript log and replay loading.

The log is newline-delimited JSON: optionally one JSON array with the
argv of the invoking command, then one ChatMessage per line. Each line is
flushed and fsynced before the call returns, so a crash never loses a
line that was reported written.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Sequence
from pathlib import Path
from typing import TextIO

from pydantic import ValidationError

from murmur.api.schemas import ChatMessage

logger = logging.getLogger(__name__)


class TranscriptLog:
    """Append-only NDJSON writer. Use as a context manager."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self._file: TextIO | None = None

    def __enter__(self) -> TranscriptLog:
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self) -> None:
        if self._file is None:
            self._file = self.path.open("a", encoding="utf-8")

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def write_args(self, argv: Sequence[str]) -> None:
        """Record the invoking command line."""
        self._write_line(json.dumps(list(argv), ensure_ascii=False))

    def append(self, message: ChatMessage) -> None:
        self._write_line(message.model_dump_json(exclude_none=True))

    def _write_line(self, line: str) -> None:
        if self._file is None:
            raise ValueError(f"transcript log {self.path} is not open")
        self._file.write(line + "\n")
        self._file.flush()
        os.fsync(self._file.fileno())


def load_transcript(path: str | os.PathLike[str]) -> list[ChatMessage]:
    """Load the messages of a transcript log, in order.

    Blank lines, the argv header and any line that is not a message are
    skipped. Raises OSError when the file cannot be read.
    """
    messages: list[ChatMessage] = []
    with open(path, encoding="utf-8", errors="replace") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                messages.append(ChatMessage.model_validate_json(line))
            except ValidationError:
                logger.debug("%s:%d: not a message, skipped", path, lineno)
    return messages
