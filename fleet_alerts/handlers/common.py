"""Handler plumbing shared by every command: operator checks, the TOTP unlock
required before rules change, and per-chat rate limiting."""

from __future__ import annotations

import functools
import logging
import time
from typing import TYPE_CHECKING, Awaitable, Callable

from telegram.error import TelegramError

from .. import config
from ..models.bot_state import BOT_STATE_KEY, BotState

if TYPE_CHECKING:
    from telegram import Update
    from telegram.ext import ContextTypes

    from ..manager import AlertManager

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[object]]


def get_state(app) -> BotState:
    return app.bot_data.setdefault(BOT_STATE_KEY, BotState())


async def get_manager(
    update: "Update", context: "ContextTypes.DEFAULT_TYPE"
) -> "AlertManager | None":
    manager = get_state(context.application).manager
    if manager is None:
        await update.message.reply_text("⚠️ Alert manager is not running.")
    return manager


def _sender(update: "Update") -> tuple[int | None, int | None]:
    chat = getattr(update, "effective_chat", None)
    user = getattr(update, "effective_user", None)
    return getattr(chat, "id", None), getattr(user, "id", None)


def allowed(update: "Update") -> bool:
    """Operators talk to the bot in private: the chat must be a listed id and,
    when the sender is known, the sender's own chat."""
    chat_id, user_id = _sender(update)
    if chat_id is None or chat_id not in config.ALLOWED:
        return False
    return user_id is None or user_id == chat_id


async def _refuse(update: "Update", text: str) -> bool:
    chat = getattr(update, "effective_chat", None)
    if chat is not None:
        await chat.send_message(text)
    return False


async def guard(update: "Update", context: "ContextTypes.DEFAULT_TYPE") -> bool:
    return allowed(update) or await _refuse(update, "⛔ Not authorized")


async def guard_sensitive(
    update: "Update", context: "ContextTypes.DEFAULT_TYPE"
) -> bool:
    """guard() plus an unexpired /auth unlock."""
    if not await guard(update, context):
        return False
    if not config.BOT_AUTH_TOTP_SECRET:
        return await _refuse(
            update, "⛔ Rule changes are disabled: BOT_AUTH_TOTP_SECRET is not set."
        )
    _, user_id = _sender(update)
    if user_id is not None and get_state(context.application).auth.is_active(user_id):
        return True
    return await _refuse(
        update, "🔒 Unlock rule changes first: /auth <code> (valid for 24 hours)."
    )


def rate_limit(func: Handler, name: str | None = None) -> Handler:
    """Allow one command per chat every RATE_LIMIT_S and record each run."""
    command = name or func.__name__.removeprefix("cmd_")

    @functools.wraps(func)
    async def wrapper(
        update: "Update", context: "ContextTypes.DEFAULT_TYPE", *args, **kwargs
    ):
        state = get_state(context.application)
        chat_id, _ = _sender(update)
        now = time.monotonic()
        last = state.last_command_at.get(chat_id)
        if last is not None and now - last < config.RATE_LIMIT_S:
            state.stats_for(command).rate_limited += 1
            message = getattr(update, "effective_message", None)
            if message is not None:
                wait_s = config.RATE_LIMIT_S - (now - last)
                notice = f"⏱ Slow down: try again in {wait_s:.1f}s"
                try:
                    await message.reply_text(notice)
                except TelegramError as e:
                    logger.debug("Rate limit notice for /%s not sent: %s", command, e)
            return None

        state.last_command_at[chat_id] = now
        started = time.perf_counter()
        try:
            result = await func(update, context, *args, **kwargs)
        except Exception as exc:
            state.record_run(command, time.perf_counter() - started, exc)
            raise
        state.record_run(command, time.perf_counter() - started)
        return result

    return wrapper
