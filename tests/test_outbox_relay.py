import asyncio
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock
from uuid import uuid4

from tortoise import timezone

from cafe_inventory.consumers.outbox_relay import OutboxRelay
from cafe_inventory.events.outbox_utility import create_outbox_event
from cafe_inventory.models.outbox import OutboxEvent


async def inventory_event(**payload):
    return await create_outbox_event(
        aggregate_type="ingredient",
        aggregate_id=uuid4(),
        event_type="inventory-updated",
        payload=payload or {"new_stock": 10},
    )


class TestOutboxRelay:

    @pytest.mark.asyncio
    async def test_relay_publishes_oldest_first(self, db):
        publisher = AsyncMock()
        relay = OutboxRelay(publisher=publisher, batch_size=10)
        first = await inventory_event(seq=1)
        second = await inventory_event(seq=2)
        await OutboxEvent.filter(id=first.id).update(created_at=timezone.now() - timedelta(minutes=5))

        assert await relay.relay_pending() == 2

        relayed = [call.args[0].payload["seq"] for call in publisher.await_args_list]
        assert relayed == [1, 2]
        assert await OutboxEvent.filter(published=False).count() == 0
        await second.refresh_from_db()
        assert second.published

    @pytest.mark.asyncio
    async def test_published_events_are_not_relayed_twice(self, db):
        publisher = AsyncMock()
        relay = OutboxRelay(publisher=publisher)
        await inventory_event()

        await relay.relay_pending()
        assert await relay.relay_pending() == 0
        publisher.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_publish_counts_attempts_until_exhausted(self, db):
        publisher = AsyncMock(side_effect=ConnectionError("socket relay unavailable"))
        relay = OutboxRelay(publisher=publisher, max_attempts=2)
        event = await inventory_event()

        assert await relay.relay_pending() == 0
        assert await relay.relay_pending() == 0
        assert await relay.relay_pending() == 0

        await event.refresh_from_db()
        assert event.attempts == 2
        assert not event.published
        assert publisher.await_count == 2

    @pytest.mark.asyncio
    async def test_purge_removes_only_old_published(self, db):
        relay = OutboxRelay(publisher=AsyncMock(), retention_days=2)
        old_published = await inventory_event()
        old_unpublished = await inventory_event()
        await inventory_event()
        await OutboxEvent.filter(id=old_published.id).update(published=True)
        await OutboxEvent.filter(id__in=[old_published.id, old_unpublished.id]).update(
            created_at=timezone.now() - timedelta(days=5)
        )

        assert await relay.purge_published() == 1
        assert await OutboxEvent.all().count() == 2
        assert await OutboxEvent.filter(id=old_unpublished.id).exists()

    @pytest.mark.asyncio
    async def test_loop_relays_and_stops(self, db):
        publisher = AsyncMock()
        relay = OutboxRelay(publisher=publisher, poll_interval=0.01)
        event = await inventory_event()

        relay.start()
        for _ in range(100):
            if publisher.await_count:
                break
            await asyncio.sleep(0.01)
        await relay.stop()

        await event.refresh_from_db()
        assert event.published
        assert relay._task is None
