"""Info commands: help with a live engine summary, the TOTP unlock and stats."""

from __future__ import annotations

import html
import logging

import pyotp
from telegram.constants import ParseMode

from .. import config, view
from ..background import ensure_started
from ..commands import COMMANDS, GROUP_ORDER
from .common import get_state, guard

logger = logging.getLogger(__name__)


def _render_help() -> str:
    groups: dict[str, list[str]] = {group: [] for group in GROUP_ORDER}
    for spec in COMMANDS:
        marker = " 🔒" if spec.sensitive else ""
        groups[spec.group].append(f"{spec.usage} – {spec.description}{marker}")
    sections = ["\n".join([group, *lines]) for group, lines in groups.items() if lines]
    return "\n\n".join(["Fleet alert commands (🔒 needs /auth):", *sections])


def _engine_status(manager) -> str:
    if manager is None:
        return "⚠️ Alert manager is not running."
    rules = manager.store.find_rules()
    return view.render_engine_status(
        running=manager.status.running,
        rules=len(rules),
        triggered=sum(1 for rule in rules if rule.triggered),
        pending=manager.pending_status_alert_count(),
        queued=manager.dispatcher.queue.qsize(),
        dropped=manager.dispatcher.dropped,
    )


async def cmd_start(update, context) -> None:
    if not await guard(update, context):
        return
    ensure_started(context.application)
    state = get_state(context.application)
    text = f"{_engine_status(state.manager)}\n\n{html.escape(_render_help())}"
    await update.message.reply_text(text, parse_mode=ParseMode.HTML)


async def cmd_help(update, context) -> None:
    if not await guard(update, context):
        return
    await update.message.reply_text(_render_help())


def _verify_code(code: str) -> bool:
    return pyotp.TOTP(config.BOT_AUTH_TOTP_SECRET).verify(code, valid_window=1)


async def cmd_auth(update, context) -> None:
    if not await guard(update, context):
        return
    reply = update.message.reply_text
    if not config.BOT_AUTH_TOTP_SECRET:
        await reply("⛔ BOT_AUTH_TOTP_SECRET is not set; rule changes stay locked.")
        return
    code = "".join(context.args or []).replace("-", "").replace(" ", "")
    if not code:
        await reply("Usage: /auth <code>")
        return
    try:
        valid = code.isdigit() and _verify_code(code)
    except ValueError:
        logger.exception("TOTP check failed")
        await reply("❌ Auth error: BOT_AUTH_TOTP_SECRET is not valid base32.")
        return
    user_id = update.effective_user.id
    if not valid:
        logger.warning("Rejected auth code from user %s", user_id)
        await reply("❌ Invalid auth code.")
        return
    auth = get_state(context.application).auth
    auth.grant(user_id)
    await reply(f"🔓 Rule changes unlocked for {auth.ttl_s / 3600:g} hours.")


async def cmd_logout(update, context) -> None:
    if not await guard(update, context):
        return
    revoked = get_state(context.application).auth.revoke(update.effective_user.id)
    await update.message.reply_text(
        "🔒 Rule changes locked." if revoked else "Rule changes were not unlocked."
    )


async def cmd_metrics(update, context) -> None:
    if not await guard(update, context):
        return
    state = get_state(context.application)
    parts = [_engine_status(state.manager)]
    if state.manager is not None:
        dispatcher = state.manager.dispatcher
        parts.append(
            view.render_channel_metrics(dispatcher.metrics, dispatcher.dropped)
        )
    parts.append(view.render_command_stats(state.commands))
    for part in view.chunk("\n\n".join(parts)):
        await update.message.reply_text(part, parse_mode=ParseMode.HTML)
