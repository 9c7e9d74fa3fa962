"""Tests for checkout expiry and capacity in the registry."""

import pytest

from app.engine.errors import RegistryFullError
from app.engine.registry import CheckoutRegistry
from app.models.enums import CoordinatorPhase


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class TestExpiry:
    @pytest.mark.asyncio
    async def test_unread_checkout_expires(self, ledger, policy, clock):
        registry = CheckoutRegistry(ledger, policy, ttl_s=60, clock=clock)
        old_id, _ = await registry.create()

        clock.now += 61
        new_id, _ = await registry.create()

        assert registry.get(old_id) is None
        assert registry.get(new_id) is not None
        assert len(registry) == 1
        await registry.aclose()

    @pytest.mark.asyncio
    async def test_reading_a_checkout_keeps_it(self, ledger, policy, clock):
        registry = CheckoutRegistry(ledger, policy, ttl_s=60, clock=clock)
        checkout_id, _ = await registry.create()

        clock.now += 40
        assert registry.get(checkout_id) is not None
        clock.now += 40

        assert await registry.cleanup_expired() == 0
        assert registry.get(checkout_id) is not None
        await registry.aclose()

    @pytest.mark.asyncio
    async def test_abandoned_payment_is_closed(self, ledger, policy, clock, buyer):
        registry = CheckoutRegistry(ledger, policy, ttl_s=60, clock=clock)
        checkout_id, coordinator = await registry.create()
        await coordinator.submit(buyer, 199)
        session = coordinator.session
        assert coordinator.phase is CoordinatorPhase.AWAITING_PAYMENT

        clock.now += 61
        assert await registry.cleanup_expired() == 1

        assert registry.get(checkout_id) is None
        assert not session.is_open
        await registry.aclose()


class TestCapacity:
    @pytest.mark.asyncio
    async def test_oldest_settled_checkout_makes_room(self, ledger, policy, clock):
        registry = CheckoutRegistry(ledger, policy, max_checkouts=2, clock=clock)
        first_id, _ = await registry.create()
        clock.now += 1
        second_id, _ = await registry.create()
        clock.now += 1

        third_id, _ = await registry.create()

        assert len(registry) == 2
        assert registry.get(first_id) is None
        assert registry.get(second_id) is not None
        assert registry.get(third_id) is not None
        await registry.aclose()

    @pytest.mark.asyncio
    async def test_full_of_payments_in_progress(self, ledger, policy, clock, buyer):
        registry = CheckoutRegistry(ledger, policy, max_checkouts=2, clock=clock)
        for _ in range(2):
            _, coordinator = await registry.create()
            await coordinator.submit(buyer, 199)

        with pytest.raises(RegistryFullError):
            await registry.create()
        assert len(registry) == 2
        await registry.aclose()
