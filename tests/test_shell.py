"""Tests for the interactive chat shell.

The line editor is replaced by a scripted reader and the service by
httpx.MockTransport, so each test drives a whole session.
"""

from __future__ import annotations

import asyncio
import io
import json
import os
import re
import signal
import sys

import httpx
import pytest

from conftest import BASE_URL, chat_fragment, chunked_response, ndjson
from murmur.api.schemas import ChatMessage
from murmur.conversation import Conversation, Shell, ShellOptions, TranscriptLog
from murmur.conversation.spinner import FRAMES

ARGV = ["murmur", "chat", "--model", "test-model"]

_SPINNER_ARTIFACTS = re.compile("[" + "".join(FRAMES) + "] |\x1b\\[2D")

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class ScriptedReader:
    """Line reader that replays lines, raising exception entries, then EOF."""

    def __init__(self, *lines) -> None:
        self.lines = list(lines)
        self.prompts: list[str] = []

    async def prompt_async(self, message: str) -> str:
        self.prompts.append(message)
        if not self.lines:
            raise EOFError
        item = self.lines.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


def _visible(text: str) -> str:
    return _SPINNER_ARTIFACTS.sub("", text)


def _reply(*parts: str) -> httpx.Response:
    fragments = [chat_fragment(p) for p in parts] + [chat_fragment("", done=True)]
    return chunked_response([ndjson(*fragments)])


def _log_lines(path) -> list:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def _shell(client, reader, *, conversation=None, **options) -> tuple[Shell, io.StringIO, io.StringIO]:
    out = io.StringIO()
    err = io.StringIO()
    shell = Shell(
        BASE_URL,
        ShellOptions(model="test-model", **options),
        conversation,
        client=client,
        reader=reader,
        output=out,
        errors=err,
        argv=ARGV,
        spinner_interval=0.01,
    )
    return shell, out, err


# ---------------------------------------------------------------------------
# TestTurn
# ---------------------------------------------------------------------------


class TestTurn:
    """One chat turn end to end."""

    @pytest.mark.asyncio
    async def test_reply_printed_and_logged(self, mock_client, tmp_path):
        log = tmp_path / "chat.jsonl"
        seen_in_log = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen_in_log.extend(_log_lines(log))
            return _reply("4", "2")

        shell, out, err = _shell(mock_client(handler), ScriptedReader("what is 6*7?"), log=str(log))
        await shell.run()

        # The user line was on disk before the request went out
        assert seen_in_log == [ARGV, {"role": "user", "content": "what is 6*7?"}]
        assert _log_lines(log) == [
            ARGV,
            {"role": "user", "content": "what is 6*7?"},
            {"role": "assistant", "content": "42"},
        ]
        assert "42\n" in _visible(out.getvalue())
        assert err.getvalue() == ""
        assert [m.role for m in shell.conversation.messages] == ["user", "assistant"]

    @pytest.mark.asyncio
    async def test_request_carries_whole_transcript(self, mock_client):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return _reply("ok")

        shell, _, _ = _shell(mock_client(handler), ScriptedReader("one", "two"))
        await shell.run()

        assert len(bodies) == 2
        assert bodies[0]["model"] == "test-model"
        assert bodies[0]["stream"] is True
        assert [m["content"] for m in bodies[1]["messages"]] == ["one", "ok", "two"]

    @pytest.mark.asyncio
    async def test_service_error_reported_and_session_continues(self, mock_client):
        responses = [
            chunked_response([b"boom"], status_code=500),
            _reply("fine"),
        ]

        shell, out, err = _shell(
            mock_client(lambda request: responses.pop(0)), ScriptedReader("first", "second")
        )
        await shell.run()

        assert "could not chat: HTTP 500: boom" in err.getvalue()
        assert "fine" in _visible(out.getvalue())
        assert [(m.role, m.content) for m in shell.conversation.messages] == [
            ("user", "first"),
            ("user", "second"),
            ("assistant", "fine"),
        ]

    @pytest.mark.asyncio
    async def test_malformed_fragment_reported(self, mock_client, tmp_path):
        """A non-chat fragment is reported and never becomes an assistant message."""
        log = tmp_path / "chat.jsonl"
        shell, _, err = _shell(
            mock_client(lambda r: chunked_response([ndjson({"response": "not chat"})])),
            ScriptedReader("hi"),
            log=str(log),
        )
        await shell.run()
        assert "could not chat: malformed chat fragment" in err.getvalue()
        assert [m.role for m in shell.conversation.messages] == ["user"]
        assert _log_lines(log) == [ARGV, {"role": "user", "content": "hi"}]

    @pytest.mark.asyncio
    @pytest.mark.skipif(sys.platform == "win32", reason="loop signal handlers are POSIX only")
    async def test_ctrl_c_during_reply_returns_to_prompt(self, mock_client, tmp_path):
        """SIGINT while streaming abandons the turn and the session reads on."""
        log = tmp_path / "chat.jsonl"
        previous_handler = signal.getsignal(signal.SIGINT)

        async def interrupted_body():
            yield ndjson(chat_fragment("partial"))
            os.kill(os.getpid(), signal.SIGINT)
            await asyncio.sleep(5)
            yield ndjson(chat_fragment(" never", done=True))

        responses = [httpx.Response(200, content=interrupted_body()), _reply("ok")]
        reader = ScriptedReader("first", "second")
        shell, out, err = _shell(mock_client(lambda r: responses.pop(0)), reader, log=str(log))
        await shell.run()

        assert reader.lines == []
        assert "interrupted" in err.getvalue()
        assert "never" not in out.getvalue()
        assert [(m.role, m.content) for m in shell.conversation.messages] == [
            ("user", "first"),
            ("user", "second"),
            ("assistant", "ok"),
        ]
        assert _log_lines(log)[1:] == [
            {"role": "user", "content": "first"},
            {"role": "user", "content": "second"},
            {"role": "assistant", "content": "ok"},
        ]
        assert signal.getsignal(signal.SIGINT) == previous_handler

    @pytest.mark.asyncio
    async def test_outside_cancellation_propagates(self, mock_client):
        """Cancelling the session task is not mistaken for Ctrl-C."""

        async def slow_body():
            await asyncio.sleep(5)
            yield ndjson(chat_fragment("late", done=True))

        shell, _, err = _shell(
            mock_client(lambda r: httpx.Response(200, content=slow_body())), ScriptedReader("hi")
        )
        task = asyncio.ensure_future(shell.run())
        await asyncio.sleep(0.1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert "interrupted" not in err.getvalue()

    @pytest.mark.asyncio
    async def test_turn_before_run_raises(self):
        shell = Shell(BASE_URL, ShellOptions(model="m"), argv=ARGV)
        with pytest.raises(RuntimeError):
            await shell.turn("hi")


# ---------------------------------------------------------------------------
# TestLoop
# ---------------------------------------------------------------------------


class TestLoop:
    """Input handling around turns."""

    @pytest.mark.asyncio
    async def test_exit_command_ends_session(self, mock_client):
        handler_calls = []

        def handler(request):
            handler_calls.append(request)
            return _reply("x")

        reader = ScriptedReader("/exit", "never sent")
        shell, _, _ = _shell(mock_client(handler), reader)
        await shell.run()
        assert handler_calls == []
        assert reader.lines == ["never sent"]

    @pytest.mark.asyncio
    async def test_blank_lines_ignored(self, mock_client):
        shell, _, _ = _shell(mock_client(lambda r: _reply("x")), ScriptedReader("", "   "))
        await shell.run()
        assert len(shell.conversation) == 0

    @pytest.mark.asyncio
    async def test_keyboard_interrupt_discards_line(self, mock_client):
        shell, _, _ = _shell(mock_client(lambda r: _reply("ok")), ScriptedReader(KeyboardInterrupt(), "hi"))
        await shell.run()
        assert [m.content for m in shell.conversation.messages] == ["hi", "ok"]

    @pytest.mark.asyncio
    async def test_unknown_command_reported(self, mock_client):
        shell, _, err = _shell(mock_client(lambda r: _reply("x")), ScriptedReader("/frobnicate"))
        await shell.run()
        assert "unknown command: /frobnicate" in err.getvalue()
        assert len(shell.conversation) == 0

    @pytest.mark.asyncio
    async def test_help_lists_commands(self, mock_client):
        shell, out, _ = _shell(mock_client(lambda r: _reply("x")), ScriptedReader("/help"))
        await shell.run()
        assert "/exit" in out.getvalue()

    @pytest.mark.asyncio
    async def test_prompt_string_used(self, mock_client):
        reader = ScriptedReader()
        shell, _, _ = _shell(mock_client(lambda r: _reply("x")), reader, ps1="> ")
        await shell.run()
        assert reader.prompts == ["> "]


# ---------------------------------------------------------------------------
# TestLogging
# ---------------------------------------------------------------------------


class TestLogging:
    """Transcript log behaviour inside the shell."""

    @pytest.mark.asyncio
    async def test_log_write_failure_reported(self, mock_client, tmp_path, monkeypatch):
        def failing_append(self, message):
            raise OSError("disk full")

        monkeypatch.setattr(TranscriptLog, "append", failing_append)
        shell, out, err = _shell(
            mock_client(lambda r: _reply("still works")),
            ScriptedReader("hi"),
            log=str(tmp_path / "chat.jsonl"),
        )
        await shell.run()
        assert "could not write log: disk full" in err.getvalue()
        assert "still works" in _visible(out.getvalue())
        assert len(shell.conversation) == 2

    @pytest.mark.asyncio
    async def test_no_log_without_option(self, mock_client, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        shell, _, _ = _shell(mock_client(lambda r: _reply("x")), ScriptedReader("hi"))
        await shell.run()
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_system_prompt_seeded_and_logged(self, mock_client, tmp_path):
        log = tmp_path / "chat.jsonl"
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return _reply("ok")

        shell, _, _ = _shell(mock_client(handler), ScriptedReader("hi"), system="be brief", log=str(log))
        await shell.run()

        assert bodies[0]["messages"][0] == {"role": "system", "content": "be brief"}
        assert _log_lines(log)[1] == {"role": "system", "content": "be brief"}

    @pytest.mark.asyncio
    async def test_load_continues_transcript(self, mock_client, tmp_path):
        previous = tmp_path / "previous.jsonl"
        with TranscriptLog(previous) as old:
            old.write_args(["murmur", "chat"])
            old.append(ChatMessage(role="system", content="be brief"))
            old.append(ChatMessage(role="user", content="hi"))
            old.append(ChatMessage(role="assistant", content="hello"))
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return _reply("again")

        shell, _, _ = _shell(
            mock_client(handler),
            ScriptedReader("more"),
            conversation=Conversation(),
            system="be brief",
            load=str(previous),
        )
        await shell.run()

        roles = [m["role"] for m in bodies[0]["messages"]]
        assert roles == ["system", "user", "assistant", "user"]
