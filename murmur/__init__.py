"""murmur -- command-line client for an Ollama-compatible model service.

Public API:
    Request, Endpoint  - request descriptors, one per HTTP exchange
    accumulate         - run a request, feed response values to an accumulator
    Flow, Fanout       - accumulator protocol and fan-out composition
    Settings           - configuration (re-exported from murmur.config)
"""

from murmur.accumulators import (
    Accumulator,
    ChatPrinter,
    Collector,
    Fanout,
    FieldWriter,
    Flow,
    JsonWriter,
)
from murmur.api.request import Endpoint, Request
from murmur.api.stream import FragmentDecoder, accumulate
from murmur.config import Settings
from murmur.errors import (
    DecodeError,
    MurmurError,
    ProtocolViolation,
    ServiceError,
    TransportError,
)

__version__ = "0.1.0"

__all__ = [
    "Accumulator",
    "ChatPrinter",
    "Collector",
    "DecodeError",
    "Endpoint",
    "Fanout",
    "FieldWriter",
    "Flow",
    "FragmentDecoder",
    "JsonWriter",
    "MurmurError",
    "ProtocolViolation",
    "Request",
    "ServiceError",
    "Settings",
    "TransportError",
    "accumulate",
]
