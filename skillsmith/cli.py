"""CLI entry point: skillsmith --port 8080 --data-dir ~/.skillsmith."""

import argparse
import asyncio
import logging
import os
import signal

import aiohttp
from dotenv import load_dotenv

from .log import configure_logging

# Load .env early so env vars (SKILLSMITH_TOKEN, etc.) are available for arg defaults
load_dotenv()

logger = logging.getLogger("skillsmith")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="skillsmith",
        description="Turn OpenAPI specs into chat skills for a language model",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("SKILLSMITH_PORT", "8080")),
        help="HTTP port (default: 8080)",
    )
    parser.add_argument(
        "--host",
        default=os.environ.get("SKILLSMITH_HOST", "0.0.0.0"),
        help="Bind address (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--token",
        default=os.environ.get("SKILLSMITH_TOKEN", ""),
        help="Bearer auth token (default: none)",
    )
    parser.add_argument(
        "--config",
        default=os.environ.get("SKILLSMITH_CONFIG", ""),
        help="Path to a JSON config file (default: <data-dir>/config.json)",
    )
    parser.add_argument(
        "--data-dir",
        default=os.environ.get("SKILLSMITH_DATA_DIR", ""),
        help="Where skills and conversations are stored (default: ~/.skillsmith)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> None:
    from .config import load_settings
    from .model import OpenAIModelClient
    from .orchestrator import ChatOrchestrator
    from .registry import SkillRegistry
    from .server import SkillServer
    from .sessions import ConversationStore
    from .store import FileStore

    settings = load_settings(args.config or None, data_dir=args.data_dir or None)
    store = FileStore(settings.data_dir)
    logger.info("Data directory: %s", store.root)

    model = OpenAIModelClient(settings.model, settings.api_key, settings.api_base)
    http = aiohttp.ClientSession()
    orchestrator = ChatOrchestrator(
        SkillRegistry(store),
        ConversationStore(store, max_messages=settings.max_messages),
        model,
        http=http,
        max_history_chars=settings.max_history_chars,
        max_model_tokens=settings.max_model_tokens,
    )
    server = SkillServer(
        orchestrator,
        host=args.host,
        port=args.port,
        token=args.token or None,
    )

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _signal_handler():
        logger.info("Received shutdown signal")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    await server.start()
    logger.info(
        "skillsmith ready  model=%s  port=%s  auth=%s",
        settings.model,
        args.port,
        "on" if args.token else "off",
    )

    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down...")
        await server.stop()
        await http.close()
        await model.close()


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)

    if args.version:
        from importlib.metadata import version as pkg_version
        try:
            v = pkg_version("skillsmith")
        except Exception:
            v = "dev"
        print(f"skillsmith {v}")
        return

    configure_logging(args.verbose)
    asyncio.run(_run(args))


if __name__ == "__main__":
    main()
