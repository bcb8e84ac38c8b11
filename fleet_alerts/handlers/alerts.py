from __future__ import annotations

import html
import logging

from telegram.constants import ParseMode

from .. import view
from ..errors import AlertError
from ..metrics import MetricKind
from .common import get_manager, guard, guard_sensitive

logger = logging.getLogger(__name__)

_METRIC_NAMES = ", ".join(kind.value for kind in MetricKind)


def _split_systems(arg: str) -> list[str]:
    return [s.strip() for s in arg.split(",") if s.strip()]


def _parse_options(tokens: list[str]) -> dict[str, str]:
    """``key=value`` tokens; a bare token becomes a flag set to ``"1"``."""
    options: dict[str, str] = {}
    for token in tokens:
        key, sep, value = token.partition("=")
        options[key.strip().lower()] = value.strip() if sep else "1"
    return options


def _system_names(manager, system_ids) -> dict[str, str]:
    names: dict[str, str] = {}
    for system_id in set(system_ids):
        system = manager.store.get_system(system_id)
        if system is not None:
            names[system_id] = system.name
    return names


async def _send_html(update, msg: str) -> None:
    for part in view.chunk(msg):
        await update.message.reply_text(part, parse_mode=ParseMode.HTML)


async def cmd_alerts(update, context) -> None:
    if not await guard(update, context):
        return
    if not context.args:
        await update.message.reply_text("Usage: /alerts <user> [system]")
        return
    manager = await get_manager(update, context)
    if manager is None:
        return
    user = context.args[0]
    system = context.args[1] if len(context.args) > 1 else None
    rules = manager.store.find_rules(user=user, system=system)
    names = _system_names(manager, (r.system for r in rules))
    await _send_html(update, view.render_alert_rules(rules, names))


async def cmd_alertset(update, context) -> None:
    if not await guard_sensitive(update, context):
        return
    args = context.args or []
    if len(args) < 5:
        await update.message.reply_text(
            "Usage: /alertset <user> <metric> <threshold> <minutes> "
            "<system[,system]> [fs=<name>] [repeat=<min>] [max=<n>] [keep]\n"
            f"Metrics: {_METRIC_NAMES}"
        )
        return
    manager = await get_manager(update, context)
    if manager is None:
        return
    user, metric, threshold_raw, minutes_raw, systems_raw = args[:5]
    options = _parse_options(args[5:])
    try:
        threshold = float(threshold_raw)
        minutes = int(minutes_raw)
        repeat = int(options["repeat"]) if "repeat" in options else None
        max_repeats = int(options["max"]) if "max" in options else None
    except ValueError:
        await update.message.reply_text("❌ Threshold and minutes must be numbers.")
        return
    if minutes < 1 or minutes > 60:
        await update.message.reply_text("❌ Minutes must be between 1 and 60.")
        return
    try:
        written = await manager.upsert_user_alerts(
            user,
            name=metric,
            value=threshold,
            min=minutes,
            systems=_split_systems(systems_raw),
            overwrite="keep" not in options,
            repeat_interval=repeat,
            max_repeats=max_repeats,
            filesystem=options.get("fs", ""),
        )
    except AlertError as e:
        await update.message.reply_text(f"❌ {e}")
        return
    await update.message.reply_text(f"✅ Saved {written} alert rule(s).")


async def cmd_alertdel(update, context) -> None:
    if not await guard_sensitive(update, context):
        return
    args = context.args or []
    if len(args) < 3:
        await update.message.reply_text(
            "Usage: /alertdel <user> <metric> <system[,system]> [fs=<name>]"
        )
        return
    manager = await get_manager(update, context)
    if manager is None:
        return
    options = _parse_options(args[3:])
    try:
        deleted = await manager.delete_user_alerts(
            args[0],
            name=args[1],
            systems=_split_systems(args[2]),
            filesystem=options.get("fs", ""),
        )
    except AlertError as e:
        await update.message.reply_text(f"❌ {e}")
        return
    await update.message.reply_text(f"🗑 Deleted {deleted} alert rule(s).")


async def cmd_history(update, context) -> None:
    if not await guard(update, context):
        return
    if not context.args:
        await update.message.reply_text("Usage: /history <user> [limit]")
        return
    manager = await get_manager(update, context)
    if manager is None:
        return
    limit = 20
    if len(context.args) > 1:
        try:
            limit = max(1, min(100, int(context.args[1])))
        except ValueError:
            await update.message.reply_text("❌ Limit must be a number.")
            return
    entries = manager.store.list_history(context.args[0], limit)
    names = _system_names(manager, (e.system for e in entries))
    await _send_html(update, view.render_history(entries, names))


async def cmd_pending(update, context) -> None:
    if not await guard(update, context):
        return
    manager = await get_manager(update, context)
    if manager is None:
        return
    await _send_html(update, view.render_pending(manager.status.pending_entries()))


async def cmd_flushpending(update, context) -> None:
    if not await guard_sensitive(update, context):
        return
    manager = await get_manager(update, context)
    if manager is None:
        return
    try:
        fired = await manager.flush_pending_status_alerts()
    except RuntimeError as e:
        logger.warning("flushpending failed: %s", e)
        await update.message.reply_text(f"❌ {html.escape(str(e))}")
        return
    await update.message.reply_text(f"✅ Fired {len(fired)} pending status alert(s).")


async def cmd_forceexpire(update, context) -> None:
    if not await guard_sensitive(update, context):
        return
    manager = await get_manager(update, context)
    if manager is None:
        return
    try:
        expired = await manager.force_expire_pending_status_alerts()
    except RuntimeError as e:
        logger.warning("forceexpire failed: %s", e)
        await update.message.reply_text(f"❌ {html.escape(str(e))}")
        return
    await update.message.reply_text(
        f"⏩ Expired {expired} pending status alert(s); "
        "they fire on the next scan or /flushpending."
    )
