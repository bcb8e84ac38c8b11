from __future__ import annotations

import html
import logging

from telegram.constants import ParseMode

from .. import view
from ..channels import channel_name
from .common import get_manager, guard, guard_sensitive

logger = logging.getLogger(__name__)


async def cmd_testnotify(update, context) -> None:
    if not await guard_sensitive(update, context):
        return
    if not context.args:
        await update.message.reply_text("Usage: /testnotify <url>")
        return
    manager = await get_manager(update, context)
    if manager is None:
        return
    url = context.args[0].strip()
    error = await manager.send_test_notification(url)
    channel = html.escape(channel_name(url))
    if error:
        await update.message.reply_text(
            f"❌ Test alert via {view.code(channel)} failed: {html.escape(error)}",
            parse_mode=ParseMode.HTML,
        )
        return
    await update.message.reply_text(
        f"✅ Test alert sent via {view.code(channel)}.", parse_mode=ParseMode.HTML
    )


async def cmd_channels(update, context) -> None:
    if not await guard(update, context):
        return
    manager = await get_manager(update, context)
    if manager is None:
        return
    dispatcher = manager.dispatcher
    msg = view.render_channel_metrics(dispatcher.metrics, dispatcher.dropped)
    await update.message.reply_text(msg, parse_mode=ParseMode.HTML)
