import asyncio

import pytest
from conftest import T0, USER, add_rule

from fleet_alerts.bulk import RuleLocks, RuleService
from fleet_alerts.errors import AlertPermissionError, InvalidRequestError
from fleet_alerts.history import HistoryRecorder
from fleet_alerts.models.alerts import AlertHistoryEntry


@pytest.fixture
def service(store, clock) -> RuleService:
    return RuleService(store, HistoryRecorder(store), clock)


@pytest.mark.asyncio
async def test_upsert_is_idempotent_without_overwrite(service, store) -> None:
    request = dict(name="CPU", value=80, min=5, systems=["sys1", "sys2"])

    assert await service.upsert_user_alerts(USER, **request) == 2
    assert await service.upsert_user_alerts(USER, **request) == 0
    assert len(store.find_rules(user=USER)) == 2


@pytest.mark.asyncio
async def test_upsert_overwrite_updates_in_place(service, store) -> None:
    await service.upsert_user_alerts(
        USER, name="CPU", value=80, min=5, systems=["sys1"]
    )
    [before] = store.find_rules(user=USER)

    written = await service.upsert_user_alerts(
        USER,
        name="cpu",
        value=90,
        min=10,
        systems=["sys1"],
        overwrite=True,
        repeat_interval=15,
        max_repeats=2,
    )

    [after] = store.find_rules(user=USER)
    assert written == 1
    assert after.id == before.id
    assert after.name == "CPU"
    assert (after.value, after.min) == (90.0, 10)
    assert (after.repeat_interval, after.max_repeats) == (15, 2)


@pytest.mark.asyncio
async def test_filesystem_rules_are_distinct(service, store) -> None:
    await service.upsert_user_alerts(
        USER, name="Disk", value=80, min=5, systems=["sys1"]
    )
    await service.upsert_user_alerts(
        USER, name="Disk", value=90, min=5, systems=["sys1"], filesystem="data"
    )

    assert sorted(r.filesystem for r in store.find_rules(user=USER)) == ["", "data"]


@pytest.mark.asyncio
async def test_unauthorized_system_rejects_whole_batch(service, store) -> None:
    with pytest.raises(AlertPermissionError):
        await service.upsert_user_alerts(
            USER, name="CPU", value=80, min=5, systems=["sys1", "other"]
        )

    assert store.find_rules(user=USER) == []


@pytest.mark.asyncio
async def test_unknown_system_is_rejected(service) -> None:
    with pytest.raises(AlertPermissionError):
        await service.delete_user_alerts(USER, name="CPU", systems=["ghost"])


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "request_args",
    [
        dict(name="Bogus", value=1, min=1, systems=["sys1"]),
        dict(name="CPU", value=1, min=1, systems=[]),
    ],
)
async def test_invalid_requests(service, request_args) -> None:
    with pytest.raises(InvalidRequestError):
        await service.upsert_user_alerts(USER, **request_args)


@pytest.mark.asyncio
async def test_delete_counts_only_existing_rules(service, store) -> None:
    add_rule(store, name="CPU", value=80)

    deleted = await service.delete_user_alerts(
        USER, name="CPU", systems=["sys1", "sys2"]
    )

    assert deleted == 1
    assert store.find_rules(user=USER) == []


@pytest.mark.asyncio
async def test_delete_triggered_rule_solves_history(service, store, clock) -> None:
    rule = add_rule(store, name="CPU", value=80, triggered=True)
    store.create_history(
        AlertHistoryEntry(
            alert_id=rule.id,
            user=USER,
            system="sys1",
            name="CPU",
            value=95.0,
            created=T0,
        )
    )
    clock.advance(minutes=3)

    await service.delete_user_alerts(USER, name="CPU", systems=["sys1"])

    [entry] = store.list_history()
    assert not entry.is_active
    assert entry.solved == clock.now


@pytest.mark.asyncio
async def test_overlapping_overwrites_apply_one_batch_whole(service, store) -> None:
    first = service.upsert_user_alerts(
        USER, name="CPU", value=80, min=5, systems=["sys1", "sys2"], overwrite=True
    )
    second = service.upsert_user_alerts(
        USER, name="CPU", value=90, min=10, systems=["sys2", "sys1"], overwrite=True
    )

    assert await asyncio.gather(first, second) == [2, 2]

    rules = store.find_rules(user=USER)
    assert len(rules) == 2
    assert len({(r.value, r.min) for r in rules}) == 1
    assert (rules[0].value, rules[0].min) in {(80.0, 5), (90.0, 10)}
    assert len(service.locks) == 0


@pytest.mark.asyncio
async def test_rule_locks_serialize_shared_keys() -> None:
    locks = RuleLocks()
    cpu = (USER, "sys1", "CPU", "")
    memory = (USER, "sys1", "Memory", "")
    release = asyncio.Event()
    order: list[str] = []

    async def long_batch() -> None:
        async with locks.hold([cpu, memory]):
            order.append("long")
            await release.wait()
            order.append("long done")

    async def short_batch() -> None:
        async with locks.hold([memory]):
            order.append("short")

    long_task = asyncio.create_task(long_batch())
    await asyncio.sleep(0)
    short_task = asyncio.create_task(short_batch())
    await asyncio.sleep(0)

    assert order == ["long"]
    assert len(locks) == 2

    release.set()
    await asyncio.gather(long_task, short_task)

    assert order == ["long", "long done", "short"]
    assert len(locks) == 0
