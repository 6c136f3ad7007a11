"""CLI entrypoint for ollama-stream."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
from importlib import metadata
from pathlib import Path
import sys
from typing import Any

from .config import ensure_config_dir, load_config
from .events import Event
from .exceptions import OllamaChatError
from .logging_utils import configure_logging
from .message import MessageState
from .session import ChatSession

STREAMED_STATES = (MessageState.STREAMING, MessageState.COMPLETE)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ollama-stream",
        description="Stream chat replies from a local Ollama server",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )
    parser.add_argument("--config", type=Path, help="Path to config.toml")
    parser.add_argument("--endpoint", help="Override the configured API endpoint")
    parser.add_argument("--model", help="Override the configured model")

    commands = parser.add_subparsers(dest="command")
    chat = commands.add_parser("chat", help="Send one prompt and stream the reply")
    chat.add_argument("prompt", nargs="+")
    commands.add_parser("models", help="List installed models")
    pull = commands.add_parser("pull", help="Download a model")
    pull.add_argument("name")
    delete = commands.add_parser("delete", help="Delete a model")
    delete.add_argument("name")
    return parser


def _version() -> str:
    try:
        return metadata.version("ollama-stream")
    except metadata.PackageNotFoundError:
        return "0.0.0"


async def _run_chat(session: ChatSession, prompt: str) -> int:
    if not await session.start(monitor=False):
        print(
            f"Unable to reach Ollama at {session.endpoint.base_url}.", file=sys.stderr
        )
        return 1

    conversation = session.conversation
    printed = 0

    def _echo(event: Event) -> None:
        nonlocal printed
        message = event.data["message"]
        if message.is_assistant and message.state in STREAMED_STATES:
            sys.stdout.write(message.content[printed:])
            sys.stdout.flush()
            printed = len(message.content)

    conversation.subscribe("message.updated", _echo)
    if not await conversation.send(prompt):
        print(conversation.error or "Message was not sent.", file=sys.stderr)
        return 1
    reply = conversation.active_message
    await conversation.wait()
    sys.stdout.write("\n")

    if reply is not None and reply.is_failed:
        print(f"Error: {reply.error_detail}", file=sys.stderr)
        return 1
    return 0


async def _run_models(session: ChatSession) -> int:
    for tag in await session.registry.list_models():
        size = f"  {tag.size_label}" if tag.size_label else ""
        print(f"{tag.name}{size}")
    return 0


async def _run_pull(session: ChatSession, name: str) -> int:
    async for status in session.registry.pull(name):
        percent = status.progress_percent
        suffix = f" {percent:.1f}%" if percent is not None else ""
        print(f"{status.status}{suffix}")
    return 0


async def _run_delete(session: ChatSession, name: str) -> int:
    await session.registry.delete(name)
    print(f"Deleted {name}")
    return 0


async def _dispatch(args: argparse.Namespace, config: dict[str, Any]) -> int:
    async with ChatSession.from_config(config) as session:
        if args.command == "chat":
            return await _run_chat(session, " ".join(args.prompt))
        if args.command == "models":
            return await _run_models(session)
        if args.command == "pull":
            return await _run_pull(session, args.name)
        return await _run_delete(session, args.name)


def main(argv: Sequence[str] | None = None) -> int:
    """Load configuration, set up logging, and run one command."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.version:
        print(f"ollama-stream {_version()}")
        return 0
    if args.command is None:
        parser.print_help()
        return 2

    if args.config is None:
        ensure_config_dir()
    config = load_config(args.config)
    if args.endpoint:
        config["ollama"]["endpoint"] = args.endpoint
    if args.model:
        config["ollama"]["model"] = args.model
    configure_logging(config["logging"])

    try:
        return asyncio.run(_dispatch(args, config))
    except OllamaChatError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
