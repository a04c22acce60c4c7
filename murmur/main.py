"""murmur command-line entry point.

Usage:
    murmur [--url URL] <command> [options]

Commands:
    debug                               show resolved options
    pull --model M                      download a model
    create --name N --modelfile TEXT    create a model
    list | models                       list local models
    show MODEL                          show model details
    generate --model M --prompt P       one-shot completion
    embed --model M INPUT...            embed inputs
    chat --model M                      interactive chat shell
    replay FILE                         print a chat transcript

Environment:
    OLLAMA_HOST         service URL (default http://localhost:11434)
    MURMUR_LOG          default chat log file name
    MURMUR_HISTFILE     default chat history file name

    Both file names accept %s (seconds since the epoch), %m (model name)
    and %% (a literal '%'). --log and --histfile take precedence.

Only chat logs or keeps history; the other commands are meant for
scripts and makefiles.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from typing import TextIO

from murmur.accumulators import FieldWriter, JsonWriter
from murmur.api.request import Request
from murmur.api.schemas import (
    CreateRequest,
    EmbedRequest,
    GenerateRequest,
    PullRequest,
    ShowRequest,
)
from murmur.api.stream import accumulate
from murmur.config import Settings
from murmur.conversation import Conversation, Shell, ShellOptions, load_transcript
from murmur.errors import MurmurError
from murmur.utils import expand_file_template

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130  # 128 + SIGINT


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="murmur",
        description="Command-line client for an Ollama-compatible model service.",
    )
    parser.add_argument("--url", help="URL of the service (overrides OLLAMA_HOST)")
    sub = parser.add_subparsers(dest="command", required=True, metavar="<command>")

    sub.add_parser("debug", help="show resolved options")

    p = sub.add_parser("pull", help="download a model")
    p.add_argument("--model", default=settings.model)
    p.add_argument("--insecure", action="store_true", default=None)

    p = sub.add_parser("create", help="create a model from a modelfile")
    p.add_argument("--name", required=True, help="name of the model to create")
    p.add_argument("--modelfile", required=True, help="contents of the modelfile")
    p.add_argument("--quantize", help="quantization to apply")

    sub.add_parser("list", aliases=["models"], help="list local models")

    p = sub.add_parser("show", help="show model details")
    p.add_argument("model")

    p = sub.add_parser("generate", help="one-shot completion")
    p.add_argument("--model", default=settings.model)
    p.add_argument("--prompt", help="prompt text (read from stdin when omitted)")
    p.add_argument("--suffix", default="")
    p.add_argument("--system")
    p.add_argument("--template")
    p.add_argument("--format", help='response format, e.g. "json"')
    p.add_argument("--raw", action="store_true", default=None)
    p.add_argument("--keep-alive", help="how long to keep the model loaded")
    p.add_argument("--json", action="store_true", help="print raw response fragments")

    p = sub.add_parser("embed", help="embed inputs")
    p.add_argument("--model", default=settings.model)
    p.add_argument("--truncate", action="store_true", default=None)
    p.add_argument("--keep-alive")
    p.add_argument("inputs", nargs="+")

    p = sub.add_parser("chat", help="interactive chat shell")
    p.add_argument("--model", default=settings.model)
    p.add_argument("--system", help="system prompt")
    p.add_argument("--log", help="file to append the NDJSON transcript to")
    p.add_argument("--histfile", help="line-editing history file")
    p.add_argument("--history-ignore-dups", action="store_true")
    p.add_argument("--history-ignore-space", action="store_true")
    p.add_argument("--ps1", default=settings.ps1, help="prompt string")
    p.add_argument("--load", help="transcript to continue from")

    p = sub.add_parser("replay", help="print a chat transcript")
    p.add_argument("file")
    p.add_argument("--json", action="store_true", help="print NDJSON instead of text")

    return parser


def chat_options(args: argparse.Namespace, settings: Settings, now: float | None = None) -> ShellOptions:
    """Resolve chat options, expanding log/history file templates once."""
    return ShellOptions(
        model=args.model,
        system=args.system,
        log=expand_file_template(args.log or settings.log, args.model, now),
        histfile=expand_file_template(args.histfile or settings.histfile, args.model, now),
        history_ignore_dups=args.history_ignore_dups,
        history_ignore_space=args.history_ignore_space,
        ps1=args.ps1,
        load=args.load,
    )


def replay(path: str, output: TextIO, as_json: bool = False) -> int:
    """Print the messages of a transcript. Returns how many were printed."""
    messages = load_transcript(path)
    for message in messages:
        if as_json:
            output.write(message.model_dump_json(exclude_none=True) + "\n")
        else:
            output.write(f"{message.role}: {message.content}\n")
    output.flush()
    return len(messages)


async def run_command(
    args: argparse.Namespace,
    settings: Settings,
    argv: Sequence[str],
    output: TextIO | None = None,
) -> None:
    """Execute one parsed command."""
    out = output if output is not None else sys.stdout
    base_url = settings.base_url(args.url)
    timeout = settings.request_timeout

    if args.command == "debug":
        print(f"url: {base_url}", file=out)
        print(f"args: {vars(args)}", file=out)
        print(f"settings: {settings.model_dump()}", file=out)
    elif args.command == "pull":
        request = Request.pull(base_url, PullRequest(model=args.model, insecure=args.insecure))
        await accumulate(request, JsonWriter(out), timeout=timeout)
    elif args.command == "create":
        request = Request.create(
            base_url,
            CreateRequest(name=args.name, modelfile=args.modelfile, quantize=args.quantize),
        )
        await accumulate(request, JsonWriter(out), timeout=timeout)
    elif args.command in ("list", "models"):
        await accumulate(Request.list_models(base_url), JsonWriter.pretty_printer(out), timeout=timeout)
    elif args.command == "show":
        request = Request.show(base_url, ShowRequest(model=args.model))
        await accumulate(request, JsonWriter.pretty_printer(out), timeout=timeout)
    elif args.command == "generate":
        prompt = args.prompt if args.prompt is not None else sys.stdin.read()
        generate = GenerateRequest(
            model=args.model,
            prompt=prompt,
            suffix=args.suffix,
            system=args.system,
            template=args.template,
            format=args.format,
            raw=args.raw,
            keep_alive=args.keep_alive,
        )
        if args.json:
            await accumulate(Request.generate(base_url, generate), JsonWriter(out), timeout=timeout)
        else:
            await accumulate(Request.generate(base_url, generate), FieldWriter(out, "response"), timeout=timeout)
            out.write("\n")
    elif args.command == "embed":
        embed = EmbedRequest(model=args.model, truncate=args.truncate, keep_alive=args.keep_alive)
        request = Request.embed(base_url, embed, args.inputs)
        await accumulate(request, JsonWriter.pretty_printer(out), timeout=timeout)
    elif args.command == "chat":
        shell = Shell(
            base_url,
            chat_options(args, settings),
            Conversation(),
            argv=argv,
            spinner_interval=settings.spinner_interval,
            timeout=timeout,
        )
        await shell.run()
    elif args.command == "replay":
        replay(args.file, out, as_json=args.json)
    else:  # pragma: no cover - argparse rejects unknown commands
        raise ValueError(f"unknown command: {args.command}")


def main(argv: Sequence[str] | None = None) -> int:
    """Parse arguments, run the command, return the exit status."""
    argv = list(sys.argv[1:] if argv is None else argv)
    settings = Settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    args = build_parser(settings).parse_args(argv)
    try:
        asyncio.run(run_command(args, settings, ["murmur", *argv]))
    except (MurmurError, OSError) as e:
        logger.debug("%s failed", args.command, exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        print(file=sys.stderr)
        return EXIT_INTERRUPTED
    return EXIT_OK


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
