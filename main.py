"""
main.py — Single entry point.

Serves /api/chat on CHAT_HOST:CHAT_PORT in one asyncio loop until
SIGINT / SIGTERM, then drains the aiohttp runner.
"""
import asyncio
import logging
import signal
import sys
from pathlib import Path

import config
from chat_server import start_server
from providers import manager

logger = logging.getLogger(__name__)

# Chatty third-party loggers; one line per upstream call is noise.
_QUIET_LOGGERS = ("httpx", "httpcore", "aiohttp.access", "google_genai", "anthropic", "openai")


def configure_logging() -> None:
    """Log to stdout and to DATA_DIR/server.log, so one volume mount keeps the history."""
    data_dir = Path(config.DATA_DIR)
    data_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        level=logging.INFO,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(str(data_dir / "server.log"), encoding="utf-8"),
        ],
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


async def run() -> None:
    if not manager.credential_for():
        logger.warning(
            "No API key for provider '%s'; /api/chat will answer 503", config.CHAT_PROVIDER
        )

    runner = await start_server()
    shutdown = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown.set)
        except (NotImplementedError, RuntimeError):
            # add_signal_handler is unavailable on Windows event loops
            logger.debug("Signal %s not installable; relying on KeyboardInterrupt", sig.name)

    logger.info("✅ Chat API is up. Press Ctrl+C to stop.")
    try:
        await shutdown.wait()
    finally:
        logger.info("Shutting down…")
        await runner.cleanup()
        logger.info("Chat API stopped.")


def main() -> None:
    configure_logging()
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted.")


if __name__ == "__main__":
    main()
