"""Application context and dependency injection.

The ApplicationContext wires the occurrence store, clock and series services
together from settings and hands them to the host (the CLI in ``main.py``).
"""

import logging
from datetime import timedelta
from pathlib import Path
from typing import Optional
from uuid import UUID

from tripseries.data.factory import create_repository
from tripseries.data.repository import OccurrenceRepository
from tripseries.domain.models import ExtensionResult
from tripseries.domain.settings import AppSettings
from tripseries.services.clock import Clock, SystemClock
from tripseries.services.extender import WindowExtender
from tripseries.services.generator import SeriesGenerator
from tripseries.services.lifecycle import LifecycleMutator
from tripseries.services.series_health import SeriesHealthService
from tripseries.state.persistence import SettingsStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the application."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


class ApplicationContext:
    """Application context providing dependency injection.

    Example:
        >>> ctx = ApplicationContext(db_path=Path("trips.db"))
        >>> await ctx.initialize()
        >>> await ctx.on_startup()
        >>> created = await ctx.generator.create_series(seed)
        >>> await ctx.close()
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        settings_store: Optional[SettingsStore] = None,
        clock: Optional[Clock] = None,
    ):
        """Initialize application context.

        Args:
            db_path: Optional path to database file. Defaults to the path in
                     settings, then "tripseries.db" in current directory.
            settings_store: Settings store to load from. Defaults to
                            ~/.tripseries_settings.json
            clock: Time source. Defaults to the system clock.
        """
        # Settings
        self.settings_store = settings_store or SettingsStore()
        self.settings: AppSettings = self.settings_store.load()

        self._db_path = db_path or self.settings.storage.db_path or Path("tripseries.db")
        self.clock: Clock = clock or SystemClock()

        # Repository and services (initialized in initialize())
        self.repository: Optional[OccurrenceRepository] = None
        self.generator: Optional[SeriesGenerator] = None
        self.extender: Optional[WindowExtender] = None
        self.mutator: Optional[LifecycleMutator] = None
        self.health: Optional[SeriesHealthService] = None

    @property
    def db_path(self) -> Path:
        return self._db_path

    async def initialize(self) -> None:
        """Open the occurrence store and build the services.

        Must be called before using the context.
        """
        self.repository = await create_repository(
            self.settings.storage.backend,
            self._db_path,
            retry=self.settings.retry,
        )

        recurrence = self.settings.recurrence
        self.generator = SeriesGenerator(
            self.repository,
            pacing_seconds=recurrence.pacing_seconds,
            max_iterations=recurrence.max_iterations,
        )
        self.extender = WindowExtender(
            self.repository,
            self.clock,
            default_lookahead=timedelta(days=recurrence.lookahead_days),
            pacing_seconds=recurrence.pacing_seconds,
            max_iterations=recurrence.max_iterations,
        )
        self.mutator = LifecycleMutator(self.repository, self.clock)
        self.health = SeriesHealthService(
            self.repository, max_iterations=recurrence.max_iterations
        )

    async def on_startup(self) -> dict[UUID, ExtensionResult]:
        """Top up every active series when the application starts.

        Returns:
            Per-parent extension results, empty when startup extension is
            disabled in settings
        """
        if not self.settings.recurrence.extend_on_startup:
            logger.info("Startup extension disabled in settings")
            return {}
        results = await self.extender.extend_all()
        created = sum(r.created for r in results.values())
        logger.info(f"Startup extension created {created} trips")
        return results

    def save_settings(self) -> None:
        """Save current settings to disk."""
        self.settings_store.save(self.settings)

    async def close(self) -> None:
        """Close resources (database connection)."""
        if self.repository is not None:
            await self.repository.close()
            self.repository = None
