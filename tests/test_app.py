"""Tests for ApplicationContext wiring."""

from datetime import date, datetime

import pytest

from tripseries.app import ApplicationContext
from tripseries.data.resilience import RetryingOccurrenceRepository
from tripseries.domain.models import Occurrence, OccurrenceFilter, RecurrencePattern
from tripseries.domain.settings import AppSettings
from tripseries.services.clock import FixedClock
from tripseries.state.persistence import SettingsStore


@pytest.fixture
def settings_store(tmp_path):
    store = SettingsStore(tmp_path / "settings.json")
    settings = AppSettings()
    settings.recurrence.pacing_seconds = 0
    settings.recurrence.lookahead_days = 3
    store.save(settings)
    return store


@pytest.fixture
async def ctx(tmp_path, settings_store):
    context = ApplicationContext(
        db_path=tmp_path / "trips.db",
        settings_store=settings_store,
        clock=FixedClock(datetime(2024, 3, 1, 8, 0)),
    )
    await context.initialize()
    yield context
    await context.close()


class TestApplicationContext:
    """Tests for ApplicationContext."""

    async def test_initialize_builds_services(self, ctx):
        assert isinstance(ctx.repository, RetryingOccurrenceRepository)
        assert ctx.generator is not None
        assert ctx.extender is not None
        assert ctx.mutator is not None
        assert ctx.health is not None

    async def test_startup_extends_with_configured_lookahead(self, ctx):
        parent = await ctx.repository.create(Occurrence(
            scheduled_at=datetime(2024, 3, 1, 9, 0),
            is_recurring=True,
            recurrence_pattern=RecurrencePattern.DAILY,
            recurrence_end_date=date(2024, 3, 31),
        ))

        results = await ctx.on_startup()

        assert results[parent.id].created == 2  # 03-02 and 03-03, horizon 03-04 08:00
        children = await ctx.repository.find(OccurrenceFilter(parent_id=parent.id))
        assert len(children) == 2

    async def test_startup_extension_can_be_disabled(self, ctx):
        ctx.settings.recurrence.extend_on_startup = False

        assert await ctx.on_startup() == {}

    async def test_close_is_idempotent(self, ctx):
        await ctx.close()
        await ctx.close()
        assert ctx.repository is None
