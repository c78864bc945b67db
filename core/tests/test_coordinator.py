import asyncio

import pytest

from core.sync.coordinator import PollingCoordinator


class FakeSource:
    """Fetcher scriptable : valeurs, erreurs et latences par clé."""

    def __init__(self, values=None):
        self.values = dict(values or {})
        self.calls = []
        self.gates = {}
        self.errors = {}

    async def __call__(self, key):
        self.calls.append(key)
        gate = self.gates.get(key)
        if gate is not None:
            await gate.wait()
        if key in self.errors:
            raise self.errors[key]
        value = self.values[key]
        return value() if callable(value) else value


async def _settle():
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_subscribe_fetches_immediately_and_on_interval():
    source = FakeSource({("sms", "unread-count"): 3})
    coordinator = PollingCoordinator(source)
    sub = coordinator.subscribe(("sms", "unread-count"), interval_ms=20)
    await asyncio.sleep(0.07)
    assert coordinator.get(("sms", "unread-count")) == 3
    assert len(source.calls) >= 2
    await coordinator.close()
    assert sub.cancelled


@pytest.mark.asyncio
async def test_refresh_replaces_value():
    source = FakeSource({("referrals", "pending"): [1, 2]})
    coordinator = PollingCoordinator(source)
    await coordinator.refresh(("referrals", "pending"))
    source.values[("referrals", "pending")] = [3]
    await coordinator.refresh(("referrals", "pending"))
    assert coordinator.get(("referrals", "pending")) == [3]


@pytest.mark.asyncio
async def test_older_fetch_never_overwrites_newer():
    key = ("sms", "unread-count")
    source = FakeSource({key: 1})
    coordinator = PollingCoordinator(source)

    slow_gate = asyncio.Event()
    source.gates[key] = slow_gate
    slow = asyncio.create_task(coordinator.refresh(key))
    await _settle()

    # Requête plus récente, répondue d'abord
    source.gates.pop(key)
    source.values[key] = 5
    await coordinator.refresh(key)
    assert coordinator.get(key) == 5

    source.values[key] = 1
    slow_gate.set()
    await slow
    assert coordinator.get(key) == 5


@pytest.mark.asyncio
async def test_cancelled_subscription_discards_in_flight_result():
    key = ("clients", "new")
    source = FakeSource({key: 7})
    gate = asyncio.Event()
    source.gates[key] = gate
    coordinator = PollingCoordinator(source)

    sub = coordinator.subscribe(key, interval_ms=10)
    await _settle()
    sub.cancel()
    gate.set()
    await sub.wait_closed()

    assert coordinator.get(key) is None
    assert len(source.calls) == 1


@pytest.mark.asyncio
async def test_fetch_failure_keeps_last_value():
    key = ("sms", "unread-count")
    source = FakeSource({key: 4})
    coordinator = PollingCoordinator(source)
    await coordinator.refresh(key)

    source.errors[key] = RuntimeError("réseau")
    entry = await coordinator.refresh(key)
    assert entry.data == 4
    assert isinstance(entry.error, RuntimeError)

    source.errors.clear()
    entry = await coordinator.refresh(key)
    assert entry.error is None


@pytest.mark.asyncio
async def test_invalidate_refetches_subscribed_and_marks_others_stale():
    source = FakeSource({
        ("sms", "unread-count"): 1,
        ("sms", "conversation", 7): {"unread": 1},
        ("referrals", "new"): 2,
    })
    coordinator = PollingCoordinator(source)
    sub = coordinator.subscribe(("sms", "unread-count"), interval_ms=60_000)
    await coordinator.refresh(("sms", "conversation", 7))
    await coordinator.refresh(("referrals", "new"))
    await _settle()

    source.values[("sms", "unread-count")] = 0
    keys = await coordinator.invalidate(("sms",))

    assert set(keys) == {("sms", "unread-count"), ("sms", "conversation", 7)}
    assert coordinator.get(("sms", "unread-count")) == 0
    assert coordinator.entry(("sms", "conversation", 7)).stale is True
    assert coordinator.entry(("referrals", "new")).stale is False
    sub.cancel()
    await sub.wait_closed()


@pytest.mark.asyncio
async def test_mutation_success_invalidates():
    key = ("sms", "unread-count")
    source = FakeSource({key: 2})
    coordinator = PollingCoordinator(source)
    sub = coordinator.subscribe(key, interval_ms=60_000)
    await _settle()

    async def write():
        source.values[key] = 1
        return "ok"

    result = await coordinator.mutate(write, invalidates=[key], optimistic={key: lambda n: n - 1})
    assert result == "ok"
    assert coordinator.get(key) == 1
    sub.cancel()
    await sub.wait_closed()


@pytest.mark.asyncio
async def test_mutation_failure_rolls_back_optimistic_value():
    key = ("referrals", "pending-count")
    source = FakeSource({key: 3})
    coordinator = PollingCoordinator(source)
    await coordinator.refresh(key)

    seen = []

    async def write():
        seen.append(coordinator.get(key))
        raise ValueError("refus")

    with pytest.raises(ValueError):
        await coordinator.mutate(write, invalidates=[key], optimistic={key: lambda n: n - 1})
    assert seen == [2]
    assert coordinator.get(key) == 3


@pytest.mark.asyncio
async def test_mutation_without_effect_replaces_optimistic_value_with_source():
    key = ("referrals", "pending-count")
    source = FakeSource({key: 1})
    coordinator = PollingCoordinator(source)
    await coordinator.refresh(key)

    async def noop():
        return "unchanged"

    await coordinator.mutate(noop, invalidates=[("referrals",)], optimistic={key: lambda n: n - 1})
    entry = coordinator.entry(key)
    assert entry.data == 1
    assert entry.stale is False


@pytest.mark.asyncio
async def test_mutation_success_restores_snapshot_when_refetch_fails():
    key = ("sms", "unread-count")
    source = FakeSource({key: 4})
    coordinator = PollingCoordinator(source)
    await coordinator.refresh(key)

    async def write():
        source.errors[key] = RuntimeError("réseau")
        return "ok"

    await coordinator.mutate(write, invalidates=[key], optimistic={key: lambda n: n - 2})
    entry = coordinator.entry(key)
    assert entry.data == 4
    assert entry.stale is True


@pytest.mark.asyncio
async def test_subscribe_rejects_non_positive_interval():
    coordinator = PollingCoordinator(FakeSource())
    with pytest.raises(ValueError):
        coordinator.subscribe(("sms", "unread-count"), interval_ms=0)
