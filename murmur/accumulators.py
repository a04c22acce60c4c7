"""Accumulators: consumers of response values.

Anything with an ``accumulate(value)`` method is an accumulator. It may
return Flow.STOP to end the response early; returning Flow.CONTINUE or
None keeps it going. Sinks are composed at the call site with Fanout,
which is itself an accumulator, so the engine never knows how many sinks
are listening.
"""

from __future__ import annotations

import copy
import json
import logging
from enum import Enum
from typing import Any, Protocol, TextIO, runtime_checkable

from pydantic import ValidationError

from murmur.api.schemas import ChatResponse
from murmur.errors import ProtocolViolation

logger = logging.getLogger(__name__)


class Flow(Enum):
    CONTINUE = "continue"
    STOP = "stop"


@runtime_checkable
class Accumulator(Protocol):
    def accumulate(self, value: Any) -> Flow | None: ...


class Fanout:
    """Deliver every value to each member, in declared order.

    Each member gets its own deep copy. The group stops when any member
    asks to stop, but only after every member has seen that value.
    """

    def __init__(self, *members: Accumulator) -> None:
        self.members = members

    def accumulate(self, value: Any) -> Flow:
        flow = Flow.CONTINUE
        for member in self.members:
            if member.accumulate(copy.deepcopy(value)) is Flow.STOP:
                flow = Flow.STOP
        return flow

    def __repr__(self) -> str:
        return f"Fanout{self.members!r}"


class FieldWriter:
    """Write one string field of each value to ``output`` as it arrives."""

    def __init__(self, output: TextIO, field: str) -> None:
        self.output = output
        self.field = field

    def accumulate(self, value: Any) -> Flow:
        if isinstance(value, dict):
            text = value.get(self.field)
            if isinstance(text, str):
                self.output.write(text)
                self.output.flush()
        return Flow.CONTINUE


class JsonWriter:
    """Write each value as one JSON document per line."""

    def __init__(self, output: TextIO, pretty: bool = False) -> None:
        self.output = output
        self.pretty = pretty

    @classmethod
    def pretty_printer(cls, output: TextIO) -> JsonWriter:
        return cls(output, pretty=True)

    def accumulate(self, value: Any) -> Flow:
        if self.pretty:
            text = json.dumps(value, indent=2, ensure_ascii=False)
        else:
            text = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
        self.output.write(text + "\n")
        self.output.flush()
        return Flow.CONTINUE


class Collector:
    """Append each value, untouched, to a caller-owned list."""

    def __init__(self, values: list[Any] | None = None) -> None:
        self.values: list[Any] = values if values is not None else []

    def accumulate(self, value: Any) -> Flow:
        self.values.append(value)
        return Flow.CONTINUE


class ChatPrinter:
    """Render streamed chat fragments to a terminal.

    Leading whitespace-only content is swallowed until the first fragment
    with visible text; some models open with a blank warm-up fragment.
    A fragment that is not a chat response ends the stream: the value is
    logged and kept on ``violation``.
    """

    def __init__(self, output: TextIO) -> None:
        self.output = output
        self.violation: ProtocolViolation | None = None
        self._seen_text = False

    @property
    def started(self) -> bool:
        """True once any content has been written."""
        return self._seen_text

    def accumulate(self, value: Any) -> Flow:
        try:
            fragment = ChatResponse.model_validate(value)
        except ValidationError as e:
            logger.error("could not parse chat fragment %r: %s", value, e)
            self.violation = ProtocolViolation(f"malformed chat fragment: {value!r}", value)
            return Flow.STOP

        content = fragment.message.content
        if self._seen_text or content.strip():
            self._seen_text = True
            self.output.write(content)
            self.output.flush()
        return Flow.CONTINUE
