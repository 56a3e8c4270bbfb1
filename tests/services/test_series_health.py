"""Tests for SeriesHealthService."""

from datetime import date, datetime
from uuid import uuid4

import pytest

from tripseries.domain.models import Occurrence, RecurrencePattern
from tripseries.services.generator import SeriesGenerator
from tripseries.services.series_health import SeriesHealthService


@pytest.fixture
def service(repo):
    return SeriesHealthService(repo)


class TestSeriesHealthReport:
    """Tests for the series consistency report."""

    async def test_empty_store_is_healthy(self, service):
        report = await service.report()

        assert report.total == 0
        assert report.is_healthy

    async def test_counts(self, repo, service, make_seed, make_trip):
        await SeriesGenerator(repo, pacing_seconds=0).create_series(make_seed())
        await repo.create(make_trip())

        report = await service.report()

        assert (report.total, report.parents, report.children, report.standalone) == (4, 1, 2, 1)
        assert report.is_healthy
        assert "Child trips: 2" in report.summary_lines()

    async def test_orphaned_child(self, repo, service):
        orphan = await repo.create(Occurrence(
            scheduled_at=datetime(2024, 3, 2, 9, 0), parent_id=uuid4(),
        ))

        report = await service.report()

        assert report.orphaned == (orphan.id,)
        assert not report.is_healthy

    async def test_domain_key_mismatch(self, repo, service, make_seed):
        created = await SeriesGenerator(repo, pacing_seconds=0).create_series(make_seed())
        stranger = await repo.create(Occurrence(
            scheduled_at=datetime(2024, 3, 2, 12, 0),
            parent_id=created.parent_id,
            domain_key="LH900",
        ))

        report = await service.report()

        assert report.key_mismatches == (stranger.id,)

    async def test_childless_parent(self, repo, service):
        parent = await repo.create(Occurrence(
            scheduled_at=datetime(2024, 3, 1, 9, 0),
            is_recurring=True,
            recurrence_pattern=RecurrencePattern.WEEKLY,
            recurrence_end_date=date(2024, 4, 1),
        ))

        report = await service.report()

        assert report.childless_parents == (parent.id,)
        assert report.is_healthy

    async def test_middle_deletion_is_reported_as_gap(self, repo, service, make_seed):
        created = await SeriesGenerator(repo, pacing_seconds=0).create_series(
            make_seed(end_date=date(2024, 3, 5))
        )
        middle = next(
            t for t in await repo.find() if t.scheduled_at == datetime(2024, 3, 3, 9, 0)
        )
        await repo.delete(middle.id)

        report = await service.report()

        assert len(report.gaps) == 1
        assert report.gaps[0].parent_id == created.parent_id
        assert report.gaps[0].missing == (datetime(2024, 3, 3, 9, 0),)
        assert any("2024-03-03" in line for line in report.summary_lines())
