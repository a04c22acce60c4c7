"""Conversation state: the ordered transcript of a chat session."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from murmur.api.schemas import ChatMessage, ChatRequest


def _fragment_text(fragment: Any) -> str | None:
    """Text carried by one response fragment.

    Chat fragments carry ``message.content``; generate fragments carry
    ``response``. Anything else carries nothing.
    """
    if not isinstance(fragment, dict):
        return None
    message = fragment.get("message")
    if isinstance(message, dict) and isinstance(message.get("content"), str):
        return message["content"]
    if isinstance(fragment.get("response"), str):
        return fragment["response"]
    return None


class Conversation:
    """An append-only list of role-tagged messages.

    Only push() and truncate() change it. Roles are expected to alternate
    but nothing here enforces that.
    """

    def __init__(self, messages: Iterable[ChatMessage] = ()) -> None:
        self._messages: list[ChatMessage] = list(messages)

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def push(self, message: ChatMessage) -> None:
        self._messages.append(message)

    def truncate(self, n: int) -> None:
        """Keep at most the first ``n`` messages."""
        del self._messages[max(n, 0):]

    def fold_assistant_response(self, fragments: Iterable[Any]) -> ChatMessage | None:
        """Fold streamed fragments into one assistant message.

        Concatenates the text of every fragment in arrival order. The
        message is pushed and returned only when the text is non-empty, so
        an errored or tool-call-only turn leaves no empty assistant line.
        """
        content = "".join(
            text for text in (_fragment_text(f) for f in fragments) if text is not None
        )
        if not content:
            return None
        message = ChatMessage(role="assistant", content=content)
        self.push(message)
        return message

    def to_request(self, model: str, **options: Any) -> ChatRequest:
        """Snapshot the transcript as a streaming chat request for ``model``.

        ``options`` sets the optional ChatRequest fields (tools, format,
        keep_alive, options).
        """
        return ChatRequest(
            model=model,
            messages=[m.model_copy() for m in self._messages],
            stream=True,
            **options,
        )
