"""Command line entry point.

Usage examples:
  python -m storyauthor models
  python -m storyauthor complete --stream "Write the opening line of a fable."
  python -m storyauthor complete --no-stream --temperature 0.7 "Name the dragon."
  python -m storyauthor cache-size
  python -m storyauthor clear-cache
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from storyauthor.config import Settings
from storyauthor.errors import StoryAuthorError
from storyauthor.logging_config import configure_logging
from storyauthor.models import CompletionRequest, Message
from storyauthor.state import AppState, open_app_state


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="storyauthor", description="Story author completion client")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("models", help="List models offered by the configured endpoint")

    complete = sub.add_parser("complete", help="Send one prompt and print the completion")
    complete.add_argument("prompt")
    complete.add_argument("--system", default=None, help="Optional system message")
    complete.add_argument("--model", default=None)
    complete.add_argument("--temperature", type=float, default=None)
    complete.add_argument(
        "--stream",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Stream the completion (default: provider.stream setting)",
    )

    sub.add_parser("cache-size", help="Print the number of cached completions")
    sub.add_parser("clear-cache", help="Remove all cached completions")
    return parser.parse_args(argv)


def _build_request(args: argparse.Namespace, settings: Settings) -> CompletionRequest:
    messages = []
    if args.system:
        messages.append(Message(role="system", content=args.system))
    messages.append(Message(role="user", content=args.prompt))
    temperature = args.temperature if args.temperature is not None else settings.provider.temperature
    stream = args.stream if args.stream is not None else settings.provider.stream
    return CompletionRequest(
        messages=messages,
        model=args.model or settings.provider.model,
        temperature=temperature,
        stream=stream,
    )


def _print_chunk(chunk: str) -> None:
    sys.stdout.write(chunk)
    sys.stdout.flush()


async def _complete(state: AppState, args: argparse.Namespace) -> int:
    request = _build_request(args, state.settings)
    if request.stream:
        result = await state.client.stream_complete(request, on_chunk=_print_chunk)
        if result.ok:
            sys.stdout.write("\n")
    else:
        result = await state.client.complete(request)
        if result.ok:
            print(result.text)

    if result.error is not None:
        print(f"{result.status}: {result.error.message}", file=sys.stderr)
        return 1
    return 0


async def run(args: argparse.Namespace) -> int:
    settings = Settings()
    configure_logging(settings.logging)

    async with open_app_state(settings) as state:
        if args.command == "models":
            try:
                models = await state.client.list_models()
            except StoryAuthorError as exc:
                print(f"{exc.code}: {exc.message}", file=sys.stderr)
                return 1
            for model_id in models:
                print(model_id)
            return 0
        if args.command == "complete":
            return await _complete(state, args)
        if args.command == "cache-size":
            print(state.client.cache_size())
            return 0
        if args.command == "clear-cache":
            await state.client.clear_cache()
            return 0
    return 2


def main(argv: list[str] | None = None) -> None:
    sys.exit(asyncio.run(run(parse_args(argv))))


if __name__ == "__main__":
    main()
