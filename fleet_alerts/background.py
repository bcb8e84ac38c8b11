"""Background jobs (started once per Application)."""

from __future__ import annotations

import asyncio
import logging

from telegram.ext import Application

from .models.bot_state import BOT_STATE_KEY, BotState

logger = logging.getLogger(__name__)

_TASK_ALERT_MANAGER = "alert_manager"


def _get_state(app: Application) -> BotState:
    return app.bot_data.setdefault(BOT_STATE_KEY, BotState())


def ensure_started(app: Application) -> None:
    """Start the alert manager's loops once; later calls are no-ops."""
    state = _get_state(app)
    if state.manager is None:
        logger.warning("No alert manager configured; background loops not started")
        return
    task = state.tasks.get(_TASK_ALERT_MANAGER)
    if isinstance(task, asyncio.Task):
        if not task.done() or (not task.cancelled() and task.exception() is None):
            return
    state.tasks[_TASK_ALERT_MANAGER] = asyncio.create_task(
        state.manager.start(), name="alert-manager-start"
    )


async def shutdown(app: Application) -> None:
    state = _get_state(app)
    task = state.tasks.pop(_TASK_ALERT_MANAGER, None)
    if isinstance(task, asyncio.Task) and not task.done():
        await asyncio.gather(task, return_exceptions=True)
    if state.manager is not None:
        await state.manager.stop()
