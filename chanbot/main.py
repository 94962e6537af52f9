"""Main entry point for chanbot.

Initializes logging in two phases (defaults then config-driven),
creates the ChanBot with the memo and help commands, and runs the
async event loop with graceful shutdown on SIGTERM/SIGINT.

Key functions:
    build_bot: Create a ChanBot with every feature registered.
    main: Async entry point.
    run: Synchronous wrapper used by the ``chanbot`` console script.
"""

import asyncio
import signal

import structlog

from . import __version__
from .logging_config import setup_logging


async def build_bot(config):
    """Create the bot, open the memo database and register all handlers."""
    from .bot import ChanBot
    from .commands import CoreCommands
    from .memo import MemoCommands, MemoDatabase

    bot = ChanBot(config)

    memo_db = MemoDatabase(config.database_path)
    await memo_db.initialize()
    memo_commands = MemoCommands(memo_db)

    for command in CoreCommands(bot.registry).get_commands():
        bot.add_command(command)
    for command in memo_commands.get_commands():
        bot.add_command(command)
    bot.add_msg_handler(memo_commands.send_memos)

    return bot, memo_db


async def main():
    """Main async entry point."""
    setup_logging()
    logger = structlog.get_logger("chanbot")
    logger.info("chanbot_starting", version=__version__)

    from .config import get_config

    config = get_config()
    config.validate()

    setup_logging(config)

    bot, memo_db = await build_bot(config)

    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def handle_shutdown(sig):
        logger.info("shutdown_signal_received", signal=sig.name)
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, handle_shutdown, sig)
        except NotImplementedError:
            # Windows: add_signal_handler not supported
            if sig == signal.SIGINT:
                signal.signal(
                    signal.SIGINT,
                    lambda s, f: handle_shutdown(signal.SIGINT),
                )

    bot_task = asyncio.create_task(bot.run())
    stop_task = asyncio.create_task(shutdown_event.wait())
    try:
        done, _ = await asyncio.wait(
            {bot_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if bot_task in done:
            # Connection closed by the server, or connect failed
            bot_task.result()
    except Exception as e:
        logger.error("bot_error", error=str(e))
        raise
    finally:
        stop_task.cancel()
        await bot.stop()
        if not bot_task.done():
            bot_task.cancel()
            try:
                await bot_task
            except asyncio.CancelledError:
                pass
        await memo_db.close()
        logger.info("chanbot_stopped")


def run():
    """Synchronous entry point for the ``chanbot`` console script."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
