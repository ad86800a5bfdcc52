"""Tests for the per-entity lock registry."""

import asyncio
import uuid

import pytest

from studio_ledger.locks import CLASS, SUBSCRIPTION, EntityLockRegistry


@pytest.fixture
def registry() -> EntityLockRegistry:
    return EntityLockRegistry()


class TestEntityLocks:
    async def test_holds_and_releases(self, registry: EntityLockRegistry):
        class_id = uuid.uuid4()
        async with registry.hold(classes=[class_id]):
            assert registry.is_locked(CLASS, class_id)
        assert not registry.is_locked(CLASS, class_id)

    async def test_same_entity_is_serialised(self, registry: EntityLockRegistry):
        subscription_id = uuid.uuid4()
        events: list[str] = []

        async def worker(name: str) -> None:
            async with registry.hold(subscriptions=[subscription_id]):
                events.append(f"{name}-in")
                await asyncio.sleep(0.01)
                events.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert events in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])

    async def test_different_entities_do_not_block(self, registry: EntityLockRegistry):
        first, second = uuid.uuid4(), uuid.uuid4()
        async with registry.hold(subscriptions=[first]):
            await asyncio.wait_for(self._enter_in_other_task(registry, second), timeout=1)

    @staticmethod
    async def _enter_in_other_task(registry: EntityLockRegistry, subscription_id: uuid.UUID) -> None:
        async def enter() -> None:
            async with registry.hold(subscriptions=[subscription_id]):
                pass

        await asyncio.create_task(enter())

    async def test_class_lock_after_subscription_lock_is_refused(self, registry: EntityLockRegistry):
        async with registry.hold(subscriptions=[uuid.uuid4()]):
            with pytest.raises(RuntimeError, match="Lock order violation"):
                async with registry.hold(classes=[uuid.uuid4()]):
                    pass

    async def test_subscription_lock_inside_class_lock_is_allowed(self, registry: EntityLockRegistry):
        class_id, subscription_id = uuid.uuid4(), uuid.uuid4()
        async with registry.hold(classes=[class_id]):
            async with registry.hold(subscriptions=[subscription_id]):
                assert registry.is_locked(CLASS, class_id)
                assert registry.is_locked(SUBSCRIPTION, subscription_id)

    async def test_reentry_is_refused(self, registry: EntityLockRegistry):
        class_id = uuid.uuid4()
        async with registry.hold(classes=[class_id]):
            with pytest.raises(RuntimeError, match="already held"):
                async with registry.hold(classes=[class_id]):
                    pass
