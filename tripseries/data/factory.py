"""Factory for creating repository instances."""

import logging
from pathlib import Path
from typing import Optional

from tripseries.data.repository import OccurrenceRepository
from tripseries.data.resilience import RetryingOccurrenceRepository
from tripseries.data.sqlite_repo import SQLiteOccurrenceRepository
from tripseries.domain.settings import RetrySettings

logger = logging.getLogger(__name__)


async def create_repository(
    backend: str,
    file_path: Optional[Path] = None,
    retry: Optional[RetrySettings] = None,
) -> OccurrenceRepository:
    """Factory function to create the occurrence repository.

    Args:
        backend: Backend type (currently only "sqlite")
        file_path: Path to database file (required for sqlite)
        retry: Retry settings. When enabled, the repository is wrapped so
               transient failures are retried before counting as failed.

    Returns:
        Connected OccurrenceRepository

    Raises:
        ValueError: If backend is unknown or required params missing
        IncompatibleDatabaseError: If database file is not a trip store

    Example:
        >>> repo = await create_repository("sqlite", Path("tripseries.db"))
        >>> parents = await repo.find(OccurrenceFilter(is_recurring=True))
    """
    if backend != "sqlite":
        raise ValueError(f"Unknown backend: {backend}")

    if not file_path:
        raise ValueError("file_path required for sqlite backend")

    repo = SQLiteOccurrenceRepository(file_path)
    await repo.connect()
    logger.info(f"Opened occurrence store at {file_path}")

    if retry is None or not retry.enabled:
        return repo

    return RetryingOccurrenceRepository(
        repo,
        max_retries=retry.max_retries,
        initial_delay=retry.initial_delay_seconds,
        max_delay=retry.max_delay_seconds,
    )
