"""Request descriptors and the HTTP transport.

A Request names an endpoint, carries its serialized payload and says
whether the response is a newline-delimited stream. Each endpoint has a
classmethod constructor that serializes the matching record from
murmur.api.schemas. One Request maps to exactly one HTTP exchange.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import httpx
from pydantic import BaseModel

from murmur.api.schemas import (
    ChatRequest,
    CreateRequest,
    EmbedRequest,
    GenerateRequest,
    PullRequest,
    ShowRequest,
)

if TYPE_CHECKING:
    from murmur.accumulators import Accumulator

logger = logging.getLogger(__name__)


class Endpoint(str, Enum):
    """Service endpoints, valued by their path segment under /api/."""

    PULL = "pull"
    CREATE = "create"
    GENERATE = "generate"
    EMBED = "embed"
    CHAT = "chat"
    SHOW = "show"
    LIST = "tags"  # the service calls the model listing "tags"

    @property
    def method(self) -> str:
        return "GET" if self is Endpoint.LIST else "POST"


def _encode(record: BaseModel) -> bytes:
    return record.model_dump_json(exclude_none=True).encode("utf-8")


@dataclass(frozen=True)
class Request:
    """One call against the service."""

    base_url: str
    endpoint: Endpoint
    payload: bytes
    streams: bool

    @property
    def url(self) -> str:
        return f"{self.base_url}/api/{self.endpoint.value}"

    @property
    def method(self) -> str:
        return self.endpoint.method

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def pull(cls, base_url: str, pull: PullRequest) -> Request:
        return cls(base_url, Endpoint.PULL, _encode(pull), streams=True)

    @classmethod
    def create(cls, base_url: str, create: CreateRequest) -> Request:
        return cls(base_url, Endpoint.CREATE, _encode(create), streams=True)

    @classmethod
    def generate(cls, base_url: str, generate: GenerateRequest) -> Request:
        return cls(base_url, Endpoint.GENERATE, _encode(generate), streams=True)

    @classmethod
    def embed(
        cls,
        base_url: str,
        embed: EmbedRequest,
        inputs: Iterable[str] | None = None,
    ) -> Request:
        """Embed request. ``inputs``, when given, replaces ``embed.input``."""
        if inputs is not None:
            embed = embed.model_copy(update={"input": [str(i) for i in inputs]})
        return cls(base_url, Endpoint.EMBED, _encode(embed), streams=False)

    @classmethod
    def chat(cls, base_url: str, chat: ChatRequest) -> Request:
        return cls(base_url, Endpoint.CHAT, _encode(chat), streams=True)

    @classmethod
    def show(cls, base_url: str, show: ShowRequest) -> Request:
        return cls(base_url, Endpoint.SHOW, _encode(show), streams=False)

    @classmethod
    def list_models(cls, base_url: str) -> Request:
        return cls(base_url, Endpoint.LIST, b"", streams=False)

    async def accumulate(
        self,
        acc: Accumulator,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        """Run this request and feed every response value to ``acc``."""
        from murmur.api.stream import accumulate

        await accumulate(self, acc, client=client, timeout=timeout)


@asynccontextmanager
async def open_stream(
    request: Request,
    client: httpx.AsyncClient | None = None,
    timeout: float | None = None,
) -> AsyncIterator[httpx.Response]:
    """Issue the HTTP call for ``request`` and yield the unread response.

    Uses ``client`` when given, otherwise a throwaway AsyncClient scoped to
    this call. The body is left for the caller to iterate. httpx errors
    propagate unchanged.
    """
    headers = {"accept": "application/json"}
    content: bytes | None = None
    if request.method == "POST":
        headers["content-type"] = "application/json"
        content = request.payload

    logger.debug("%s %s (streams=%s)", request.method, request.url, request.streams)

    async with AsyncExitStack() as stack:
        if client is None:
            client = await stack.enter_async_context(httpx.AsyncClient(timeout=timeout))
        response = await stack.enter_async_context(
            client.stream(request.method, request.url, content=content, headers=headers)
        )
        logger.debug("%s %s -> %d", request.method, request.url, response.status_code)
        yield response
