"""Entrypoint: builds the alert manager and the operator bot, then polls.

The collection hub embeds ``build_manager()`` and feeds it snapshots and
status changes; the bot only exposes operator commands on top of it.
"""

from __future__ import annotations

import logging

from telegram import BotCommand
from telegram.ext import Application, CommandHandler

from . import config
from .background import ensure_started, shutdown
from .commands import COMMANDS
from .handlers import dispatch
from .logger import setup_logging
from .manager import AlertManager
from .models.bot_state import BOT_STATE_KEY, BotState
from .store import MemoryStore

logger = logging.getLogger(__name__)


def build_manager(store: MemoryStore | None = None) -> AlertManager:
    if store is None:
        store = MemoryStore(config.STATE_FILE)
        store.load_state()
    return AlertManager(store)


def build_application(manager: AlertManager | None = None) -> Application:
    if config.TOKEN is None:
        raise RuntimeError("BOT_TOKEN environment variable is not set")

    app = (
        Application.builder()
        .token(config.TOKEN)
        .post_init(_post_init)
        .post_shutdown(shutdown)
        .build()
    )

    state = app.bot_data.setdefault(BOT_STATE_KEY, BotState())
    state.manager = manager or build_manager()

    for spec in COMMANDS:
        fn = getattr(dispatch, spec.handler)
        triggers = [spec.name, *spec.aliases]
        app.add_handler(CommandHandler(triggers, fn))

    return app


async def register_bot_commands(app: Application) -> None:
    """Register bot commands for Telegram autocomplete."""
    try:
        bot_commands = [BotCommand(spec.name, spec.description) for spec in COMMANDS]
        await app.bot.set_my_commands(bot_commands)
        logger.info("Registered %d commands for autocomplete", len(bot_commands))
    except Exception as e:
        logger.warning("Failed to register bot commands: %s", e)


async def _post_init(app: Application) -> None:
    try:
        ensure_started(app)
    except Exception as e:
        logger.warning("Failed to start background tasks: %s", e)
    await register_bot_commands(app)


def run() -> None:
    setup_logging()
    logger.info("Starting fleet_alerts")
    app = build_application()
    # keep the stop_signals None so container shutdown behaves normally
    app.run_polling(stop_signals=None)


if __name__ == "__main__":
    run()
