"""Pydantic records for service requests and responses.

Optional fields are left out of the serialized payload when unset, so
the service applies its own defaults.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel

RoleType = Literal["system", "user", "assistant", "tool"]


class ErrorResponse(BaseModel):
    """An error object returned by the service."""

    error: str


class PullRequest(BaseModel):
    """Download a model from the registry."""

    model: str
    insecure: bool | None = None
    stream: bool | None = None


class CreateRequest(BaseModel):
    """Create a model from a modelfile."""

    name: str
    modelfile: str
    stream: bool | None = None
    quantize: str | None = None


class GenerateRequest(BaseModel):
    """Single prompt completion."""

    model: str = "mistral-nemo"
    prompt: str = ""
    suffix: str = ""
    images: list[str] | None = None  # base64
    format: str | None = None  # "json" when set
    system: str | None = None
    template: str | None = None
    stream: bool | None = None
    raw: bool | None = None
    keep_alive: str | None = None
    options: dict[str, Any] | None = None


class EmbedRequest(BaseModel):
    model: str = "mistral-nemo"
    input: list[str] = []
    truncate: bool | None = None
    keep_alive: str | None = None


class ShowRequest(BaseModel):
    model: str


class ChatMessage(BaseModel):
    """One role-tagged message of a conversation."""

    role: RoleType
    content: str
    images: list[str] | None = None
    tool_calls: list[dict[str, Any]] | None = None


class ChatRequest(BaseModel):
    model: str
    messages: list[ChatMessage]
    tools: list[dict[str, Any]] | None = None
    format: str | None = None
    stream: bool | None = None
    keep_alive: str | None = None
    options: dict[str, Any] | None = None


class ChatResponse(BaseModel):
    """One streamed chat fragment."""

    created_at: str
    message: ChatMessage
    done: bool
