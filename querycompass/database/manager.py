"""Target database registry: one pooled connector per database id."""

from __future__ import annotations

import asyncio
import logging

from querycompass.config import DatabaseSettings, get_settings
from querycompass.connectors.base import BaseConnector
from querycompass.connectors.postgres import PostgresConnector

logger = logging.getLogger(__name__)


class UnknownDatabaseError(KeyError):
    """Raised when a database id is not registered."""

    def __init__(self, database_id: str) -> None:
        self.database_id = database_id
        super().__init__(database_id)

    def __str__(self) -> str:
        return f"Database pool for '{self.database_id}' not found."


class DatabasePoolManager:
    """
    Manage connectors for the configured target databases.

    Pools are created lazily on first use and shared by every request
    that targets the same database id.
    """

    def __init__(
        self,
        settings: DatabaseSettings | None = None,
        connectors: dict[str, BaseConnector] | None = None,
    ) -> None:
        self._settings = settings or get_settings().database
        self._connectors: dict[str, BaseConnector] = dict(connectors or {})
        self._lock = asyncio.Lock()

    def database_ids(self) -> list[str]:
        """Registered database ids, sorted."""
        return sorted(set(self._settings.targets) | set(self._connectors))

    def __contains__(self, database_id: object) -> bool:
        return database_id in self._connectors or database_id in self._settings.targets

    async def get_connector(self, database_id: str) -> BaseConnector:
        """
        Return the connected connector for a database id.

        Raises:
            UnknownDatabaseError: If the id is not registered
        """
        connector = self._connectors.get(database_id)
        if connector is None:
            async with self._lock:
                connector = self._connectors.get(database_id)
                if connector is None:
                    dsn = self._settings.targets.get(database_id)
                    if dsn is None:
                        raise UnknownDatabaseError(database_id)
                    connector = PostgresConnector(
                        dsn,
                        min_pool_size=self._settings.pool_min_size,
                        max_pool_size=self._settings.pool_max_size,
                        timeout=self._settings.statement_timeout,
                    )
                    self._connectors[database_id] = connector
                    logger.info(f"Registered pool for database '{database_id}'")

        if not connector.is_connected:
            await connector.connect()
        return connector

    async def close(self) -> None:
        """Close every open pool."""
        for database_id, connector in list(self._connectors.items()):
            try:
                await connector.close()
            except Exception as exc:
                logger.warning(f"Failed to close pool for '{database_id}': {exc}")
        self._connectors.clear()
