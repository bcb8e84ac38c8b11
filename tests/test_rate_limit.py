import pytest
from conftest import DummyContext, DummyUpdate, add_rule

from fleet_alerts import config
from fleet_alerts.handlers import common, meta
from fleet_alerts.handlers.common import get_state
from fleet_alerts.models.bot_state import BOT_STATE_KEY, BotState


def _counting_handler(calls: list[int]):
    async def cmd_alerts(update, context) -> None:
        calls.append(update.effective_chat.id)

    return cmd_alerts


@pytest.mark.asyncio
async def test_second_command_in_same_chat_is_throttled(monkeypatch) -> None:
    monkeypatch.setattr(config, "RATE_LIMIT_S", 100.0)
    calls: list[int] = []
    wrapped = common.rate_limit(_counting_handler(calls))
    context = DummyContext()
    second = DummyUpdate(5, 5)

    await wrapped(DummyUpdate(5, 5), context)
    await wrapped(second, context)

    assert calls == [5]
    assert second.message.replies[0].startswith("⏱ Slow down: try again in")
    stats = get_state(context.application).commands["alerts"]
    assert (stats.runs, stats.rate_limited) == (1, 1)


@pytest.mark.asyncio
async def test_chats_are_throttled_independently(monkeypatch) -> None:
    monkeypatch.setattr(config, "RATE_LIMIT_S", 100.0)
    calls: list[int] = []
    wrapped = common.rate_limit(_counting_handler(calls), name="alerts")
    context = DummyContext()

    await wrapped(DummyUpdate(5, 5), context)
    await wrapped(DummyUpdate(6, 6), context)

    assert calls == [5, 6]


@pytest.mark.asyncio
async def test_failed_command_is_recorded(monkeypatch) -> None:
    monkeypatch.setattr(config, "RATE_LIMIT_S", 0.0)

    async def handler(update, context) -> None:
        raise ValueError("bad threshold")

    wrapped = common.rate_limit(handler, name="alertset")
    context = DummyContext()

    with pytest.raises(ValueError):
        await wrapped(DummyUpdate(5, 5), context)

    stats = get_state(context.application).commands["alertset"]
    assert (stats.runs, stats.failures) == (1, 1)
    assert stats.last_error == "ValueError: bad threshold"
    assert stats.last_run is not None


@pytest.mark.asyncio
async def test_metrics_reports_engine_channels_and_commands(
    monkeypatch, manager, store
) -> None:
    monkeypatch.setattr(config, "ALLOWED", {5})
    add_rule(store, name="CPU", value=80, min=5, triggered=True)
    add_rule(store, name="Memory", value=80, min=5)
    manager.dispatcher.metrics_for("ntfy").sent += 3
    context = DummyContext()
    state = BotState(manager=manager)
    state.record_run("alerts", 0.02)
    context.application.bot_data[BOT_STATE_KEY] = state
    update = DummyUpdate(5, 5)

    await meta.cmd_metrics(update, context)

    [text] = update.message.replies
    assert "🔴 stopped" in text
    assert "Rules: 2 (1 triggered)" in text
    assert "<code>ntfy</code> ok 3 err 0" in text
    assert "<code>/alerts</code> 1 run(s), 0 failed" in text
