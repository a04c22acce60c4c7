"""Interactive chat shell.

Reads a line, runs one chat turn, repeats. Each turn is a fixed
sequence:

1. push the user message and append it to the log
2. send the whole transcript as a chat request
3. stream fragments through spinner, collector and printer
4. fold the collected fragments into an assistant message
5. append the assistant message to the log

Step 1's log write happens before the request goes out and step 5's after
the stream is fully drained, so the log never holds an assistant message
without the user message that prompted it. Ctrl-C during step 3
abandons the turn, folds nothing and returns to the prompt.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from collections.abc import Coroutine, Sequence
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import Any, Protocol, TextIO

import httpx

from murmur.accumulators import ChatPrinter, Collector, Fanout
from murmur.api.request import Request
from murmur.api.schemas import ChatMessage
from murmur.api.stream import accumulate
from murmur.conversation.conversation import Conversation
from murmur.conversation.history import make_history
from murmur.conversation.spinner import Spinner
from murmur.conversation.transcript import TranscriptLog, load_transcript
from murmur.errors import MurmurError

logger = logging.getLogger(__name__)

COMMAND_PREFIX = "/"

COMMANDS: dict[str, str] = {
    "/exit": "end the session",
    "/help": "list shell commands",
}


class LineReader(Protocol):
    """What the shell needs from a line editor (prompt_toolkit's PromptSession)."""

    async def prompt_async(self, message: str) -> str: ...


@dataclass
class ShellOptions:
    """Options of one chat session. File names are already expanded."""

    model: str
    system: str | None = None
    log: str | None = None
    histfile: str | None = None
    history_ignore_dups: bool = False
    history_ignore_space: bool = False
    ps1: str = "murmur> "
    load: str | None = None


class Shell:
    """One interactive chat session against ``base_url``."""

    def __init__(
        self,
        base_url: str,
        options: ShellOptions,
        conversation: Conversation | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        reader: LineReader | None = None,
        output: TextIO | None = None,
        errors: TextIO | None = None,
        argv: Sequence[str] | None = None,
        spinner_interval: float = 0.05,
        timeout: float | None = None,
    ) -> None:
        self.base_url = base_url
        self.options = options
        self.conversation = conversation if conversation is not None else Conversation()
        self.output = output if output is not None else sys.stdout
        self.errors = errors if errors is not None else sys.stderr
        self.argv = list(argv) if argv is not None else list(sys.argv)
        self.spinner_interval = spinner_interval
        self.timeout = timeout
        self._client = client
        self._reader = reader

        # Session-scoped, set by run()
        self._http: httpx.AsyncClient | None = None
        self._spinner: Spinner | None = None
        self._log: TranscriptLog | None = None

    async def run(self) -> None:
        """Run until end of input or /exit.

        The spinner thread, the log file and the HTTP client are released
        on every exit path.
        """
        if self.options.load:
            for message in load_transcript(self.options.load):
                self.conversation.push(message)
            logger.info("Loaded %d messages from %s", len(self.conversation), self.options.load)

        async with AsyncExitStack() as stack:
            self._spinner = stack.enter_context(Spinner(self.output, self.spinner_interval))
            if self.options.log:
                self._log = stack.enter_context(TranscriptLog(self.options.log))
                self._log.write_args(self.argv)
            if self._client is not None:
                self._http = self._client
            else:
                self._http = await stack.enter_async_context(httpx.AsyncClient(timeout=self.timeout))
            reader = self._reader or self._make_reader()

            try:
                self._seed_system_prompt()
                while True:
                    try:
                        line = await reader.prompt_async(self.options.ps1)
                    except KeyboardInterrupt:
                        continue
                    except EOFError:
                        return
                    except OSError as e:
                        self._report(f"could not read line: {e}")
                        continue
                    if not await self.handle_line(line):
                        return
            finally:
                self._http = None
                self._spinner = None
                self._log = None

    def _make_reader(self) -> LineReader:
        from prompt_toolkit import PromptSession

        history = make_history(
            self.options.histfile,
            ignore_dups=self.options.history_ignore_dups,
            ignore_space=self.options.history_ignore_space,
        )
        return PromptSession(history=history)

    def _seed_system_prompt(self) -> None:
        if not self.options.system:
            return
        messages = self.conversation.messages
        if messages and messages[0].role == "system":
            return
        if messages:
            logger.warning("Transcript already started; system prompt appended after %d messages", len(messages))
        message = ChatMessage(role="system", content=self.options.system)
        self.conversation.push(message)
        self._record(message)

    async def handle_line(self, line: str) -> bool:
        """Dispatch one input line. Returns False to end the session."""
        stripped = line.strip()
        if not stripped:
            return True
        if stripped.startswith(COMMAND_PREFIX):
            return self.command(stripped)
        await self.turn(line)
        return True

    def command(self, line: str) -> bool:
        name = line.split()[0]
        if name == "/exit":
            return False
        if name == "/help":
            for cmd, help_text in COMMANDS.items():
                print(f"{cmd:<8} {help_text}", file=self.output)
        else:
            self._report(f"unknown command: {line}")
        return True

    async def turn(self, line: str) -> ChatMessage | None:
        """Run one chat turn. Returns the assistant message, if any."""
        if self._spinner is None or self._http is None:
            raise RuntimeError("shell is not running -- call run() first")

        user = ChatMessage(role="user", content=line)
        self.conversation.push(user)
        self._record(user)

        try:
            request = Request.chat(self.base_url, self.conversation.to_request(self.options.model))
        except ValueError as e:
            self._report(f"could not chat: {e}")
            return None

        collector = Collector()
        printer = ChatPrinter(self.output)
        error: MurmurError | None = None
        completed = True
        self._spinner.show()
        try:
            completed = await self._interruptible(
                accumulate(request, Fanout(self._spinner, collector, printer), client=self._http)
            )
        except MurmurError as e:
            error = e
        finally:
            self._spinner.suppress()

        if (error is None and completed) or printer.started:
            self.output.write("\n")
            self.output.flush()
        if not completed:
            # Partial replies are dropped; the user message stays unanswered
            self._report("interrupted")
            return None
        if error is None and printer.violation is not None:
            self._report(f"could not chat: {printer.violation}")
            return None
        if error is not None:
            self._report(f"could not chat: {error}")

        # Stream fully drained: fold, then log
        reply = self.conversation.fold_assistant_response(collector.values)
        if reply is not None:
            self._record(reply)
        return reply

    async def _interruptible(self, coro: Coroutine[Any, Any, None]) -> bool:
        """Await ``coro`` with Ctrl-C cancelling it instead of the session.

        Returns False when SIGINT cancelled it. Any other cancellation
        propagates.
        """
        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(coro)
        interrupted = False

        def on_interrupt() -> None:
            nonlocal interrupted
            interrupted = True
            task.cancel()

        previous = signal.getsignal(signal.SIGINT)
        try:
            loop.add_signal_handler(signal.SIGINT, on_interrupt)
            installed = True
        except (NotImplementedError, RuntimeError, ValueError):
            # No signal handlers on this platform or off the main thread
            logger.debug("SIGINT handler not installed", exc_info=True)
            installed = False

        try:
            await task
        except asyncio.CancelledError:
            if not interrupted:
                raise
            logger.info("Turn interrupted")
            return False
        finally:
            if installed:
                loop.remove_signal_handler(signal.SIGINT)
                if previous is not None:
                    signal.signal(signal.SIGINT, previous)
        return True

    def _record(self, message: ChatMessage) -> None:
        if self._log is None:
            return
        try:
            self._log.append(message)
        except OSError as e:
            logger.error("Failed to write %s message to %s: %s", message.role, self._log.path, e)
            self._report(f"could not write log: {e}")

    def _report(self, text: str) -> None:
        print(text, file=self.errors, flush=True)
