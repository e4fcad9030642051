"""Tests for the reservation pool manager."""

import re

import pytest

from app.orchestrator.reservation import ReservationPoolManager, new_workspace_id
from app.schemas.workspace import StateID


@pytest.fixture
def pool(registry, settings):
    return ReservationPoolManager(registry, settings)


class TestReservationPool:
    """Exactly one unclaimed workspace is kept around."""

    @pytest.mark.asyncio
    async def test_empty_pool_creates_spare(self, pool, registry):
        created = await pool.ensure_reservation()

        assert created is not None
        assert created.status == StateID.RESERVING
        assert created.owner_id is None
        assert registry.list_by_status([StateID.RESERVING]) == [registry.get(created.id)]

    @pytest.mark.asyncio
    async def test_in_flight_reservation_counts(self, pool, make_workspace):
        make_workspace(status=StateID.RESERVING)
        assert await pool.ensure_reservation() is None

    @pytest.mark.asyncio
    async def test_reserved_spare_counts(self, pool, make_workspace):
        make_workspace(status=StateID.RESERVED)
        assert await pool.ensure_reservation() is None

    @pytest.mark.asyncio
    async def test_claimed_workspace_does_not_count(self, pool, registry, make_workspace):
        make_workspace(status=StateID.RESERVED)
        registry.claim_reserved("user-1", "acme")

        created = await pool.ensure_reservation()

        assert created is not None

    @pytest.mark.asyncio
    async def test_failed_spare_is_replaced(self, pool, make_workspace):
        make_workspace(status=StateID.FAILED)
        assert await pool.ensure_reservation() is not None

    @pytest.mark.asyncio
    async def test_repeated_calls_create_one(self, pool, registry):
        await pool.ensure_reservation()
        await pool.ensure_reservation()
        assert len(registry.list_by_status([StateID.RESERVING, StateID.RESERVED])) == 1

    @pytest.mark.asyncio
    async def test_surplus_spares_are_kept(self, pool, registry, make_workspace):
        make_workspace(status=StateID.RESERVED)
        make_workspace(status=StateID.RESERVED)

        assert await pool.ensure_reservation() is None
        assert len(registry.list_by_status([StateID.RESERVED])) == 2

    @pytest.mark.asyncio
    async def test_spare_uses_default_size_and_tier(self, registry, settings):
        settings.default_workspace_size = "md"
        settings.default_workspace_tier = "FREE"
        created = await ReservationPoolManager(registry, settings).ensure_reservation()
        assert created.size.value == "md"
        assert created.tier.value == "FREE"


def test_workspace_ids_are_dns_safe():
    ids = {new_workspace_id() for _ in range(50)}
    assert len(ids) == 50
    assert all(re.fullmatch(r"ws-[0-9a-f]{16}", i) for i in ids)
