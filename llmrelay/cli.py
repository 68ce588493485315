"""
Command-line chat client.

    llmrelay chat "What is the capital of France?"
    llmrelay chat --stream --history chat.json "And of Italy?"
    llmrelay chat --tools "Summarize https://example.com"
    llmrelay image "A lighthouse at dusk"
    llmrelay test
"""
import argparse
import asyncio
import logging
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

import httpx
from rich.logging import RichHandler

from .client import ChatClient, DEFAULT_MAX_TOOL_ITERATIONS
from .config import ConfigStore, config_from_env
from .conversation import ConversationStore
from .errors import LLMRelayError
from .rich_llm_printer import RichPrinter, RichStreamPrinter, console
from .types import ProviderConfig
from .web_tools import WebToolExecutor


def _load_config(args: argparse.Namespace) -> ProviderConfig:
    if args.config and Path(args.config).exists():
        return ConfigStore(args.config).current
    return config_from_env(args.env_file)


async def _chat(args: argparse.Namespace, config: ProviderConfig) -> int:
    history = ConversationStore(args.history)
    history.append("user", args.prompt)
    printer = RichPrinter()

    async with ChatClient() as client:
        if args.tools:
            executor = WebToolExecutor(client)
            try:
                result = await client.chat_with_tools(
                    history.history(), config, executor, max_iterations=args.max_iterations
                )
            finally:
                await executor.aclose()
            printer.print_chat(result, provider=config.provider)
        elif args.stream:
            streaming = replace(config, enable_streaming=True)
            with RichStreamPrinter(provider=config.provider) as stream_printer:
                result = await client.send_chat_message(
                    history.history(), streaming, on_chunk=stream_printer.on_chunk
                )
        else:
            result = await client.send_chat_message(history.history(), config)
            printer.print_chat(result, provider=config.provider)

    history.append("assistant", result["text"])
    return 0


async def _image(args: argparse.Namespace, config: ProviderConfig) -> int:
    async with ChatClient() as client:
        images = await client.generate_image(args.prompt, config)
    for index, image in enumerate(images, start=1):
        url = image.get("url", "")
        console.print(f"[bold]Image {index}:[/bold] {url[:80]}{'...' if len(url) > 80 else ''}")
    return 0


async def _test(args: argparse.Namespace, config: ProviderConfig) -> int:
    async with ChatClient() as client:
        await client.test_connection(config)
    console.print(f"[bold green]Connection OK[/bold green] ({config.provider} {config.model})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="llmrelay", description="Chat with LLM provider APIs.")
    parser.add_argument("--config", help="JSON configuration file saved by ConfigStore")
    parser.add_argument("--env-file", default=".env", help="dotenv file with LLMRELAY_* variables")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    chat = sub.add_parser("chat", help="send a message")
    chat.add_argument("prompt")
    chat.add_argument("--history", help="JSON file holding the conversation")
    chat.add_argument("--stream", action="store_true", help="stream the response")
    chat.add_argument("--tools", action="store_true", help="let the model use web tools")
    chat.add_argument("--max-iterations", type=int, default=DEFAULT_MAX_TOOL_ITERATIONS)
    chat.set_defaults(handler=_chat)

    image = sub.add_parser("image", help="generate an image")
    image.add_argument("prompt")
    image.set_defaults(handler=_image)

    test = sub.add_parser("test", help="test the connection")
    test.set_defaults(handler=_test)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    try:
        config = _load_config(args)
        return asyncio.run(args.handler(args, config))
    except LLMRelayError as exc:
        RichPrinter().print_error(exc.message)
        return 1
    except (ValueError, httpx.HTTPError) as exc:
        RichPrinter().print_error(str(exc))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
