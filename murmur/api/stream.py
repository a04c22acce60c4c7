"""Response accumulation engine.

Turns one HTTP response body into a sequence of JSON values and hands
them, one at a time, to an accumulator.

Non-streaming endpoints return one JSON document. Streaming endpoints
return newline-delimited JSON, and the network may cut the body anywhere:
inside a value, inside a string literal, inside a multi-byte character.
FragmentDecoder buffers raw bytes and only decodes the complete UTF-8
prefix, so chunking never changes what the accumulator sees.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Iterator
from typing import Any

import httpx
from pydantic import ValidationError

from murmur.accumulators import Accumulator, Flow
from murmur.api.request import Request, open_stream
from murmur.api.schemas import ErrorResponse
from murmur.errors import DecodeError, ServiceError, TransportError

logger = logging.getLogger(__name__)

# JSON insignificant whitespace, all single-byte in UTF-8
_WHITESPACE = " \t\n\r"


def _error_message(value: Any) -> str | None:
    """Return the message of a service error object, else None."""
    if not isinstance(value, dict) or "error" not in value:
        return None
    try:
        return ErrorResponse.model_validate(value).error
    except ValidationError:
        return None


def _is_bare_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class FragmentDecoder:
    """Incremental decoder for a stream of concatenated JSON values.

    feed() appends a chunk and returns an iterator over the values that
    became complete; it must be consumed for the values to be removed
    from the buffer. An error object raises ServiceError in place of
    being yielded. finish() flushes what is left at end of stream.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._json = json.JSONDecoder()

    @property
    def pending(self) -> bytes:
        """Bytes received but not yet consumed as a value."""
        return bytes(self._buffer)

    def feed(self, chunk: bytes) -> Iterator[Any]:
        if chunk:
            self._buffer += chunk
        return self._drain(final=False)

    def finish(self) -> Iterator[Any]:
        yield from self._drain(final=True)
        if self._buffer.strip():
            logger.warning(
                "Discarding %d bytes of incomplete response data: %r",
                len(self._buffer),
                bytes(self._buffer[:80]),
            )
        self._buffer.clear()

    def _decoded_prefix(self) -> str:
        try:
            return self._buffer.decode("utf-8")
        except UnicodeDecodeError as e:
            if e.reason == "unexpected end of data":
                # Multi-byte character cut at the chunk boundary
                return self._buffer[: e.start].decode("utf-8")
            raise DecodeError(f"response is not valid UTF-8: {e}") from e

    def _drain(self, final: bool) -> Iterator[Any]:
        while True:
            text = self._decoded_prefix()
            start = len(text) - len(text.lstrip(_WHITESPACE))
            if start == len(text):
                del self._buffer[:start]
                return
            try:
                value, end = self._json.raw_decode(text, start)
            except json.JSONDecodeError:
                return  # incomplete, wait for more bytes
            if not final and end == len(text) and _is_bare_number(value):
                return  # "12" may still become "123"
            del self._buffer[: len(text[:end].encode("utf-8"))]
            message = _error_message(value)
            if message is not None:
                raise ServiceError(message)
            yield value


def _stops(acc: Accumulator, value: Any) -> bool:
    return acc.accumulate(value) is Flow.STOP


async def _accumulate_stream(chunks: AsyncIterator[bytes], acc: Accumulator) -> int:
    decoder = FragmentDecoder()
    delivered = 0
    async for chunk in chunks:
        for value in decoder.feed(chunk):
            delivered += 1
            if _stops(acc, value):
                logger.debug("Accumulator stopped the stream after %d values", delivered)
                return delivered
    for value in decoder.finish():
        delivered += 1
        if _stops(acc, value):
            break
    return delivered


async def _accumulate_single(chunks: AsyncIterator[bytes], acc: Accumulator) -> int:
    body = bytearray()
    async for chunk in chunks:
        body += chunk
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"response is not valid UTF-8: {e}") from e
    try:
        value = json.loads(text.strip())
    except json.JSONDecodeError as e:
        raise DecodeError(f"response is not valid JSON: {e}") from e
    acc.accumulate(value)
    return 1


async def accumulate(
    request: Request,
    acc: Accumulator,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float | None = None,
) -> None:
    """Execute ``request`` and deliver each response value to ``acc``.

    Raises:
        ServiceError: non-200 status, or an error object in the stream.
        DecodeError: the body is not UTF-8/JSON where a value is expected.
        TransportError: the HTTP exchange failed or the URL is invalid.

    An accumulator returning Flow.STOP ends the call normally.
    """
    try:
        async with open_stream(request, client, timeout) as response:
            if response.status_code != 200:
                body = await response.aread()
                raise ServiceError(
                    body.decode("utf-8", errors="replace").strip(),
                    status_code=response.status_code,
                )
            if request.streams:
                delivered = await _accumulate_stream(response.aiter_bytes(), acc)
            else:
                delivered = await _accumulate_single(response.aiter_bytes(), acc)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise TransportError(f"{request.method} {request.url} failed: {e}") from e
    logger.debug("%s delivered %d values", request.endpoint.value, delivered)
