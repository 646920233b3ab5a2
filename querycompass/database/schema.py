"""Schema Provider: textual table/column descriptions for prompts."""

from __future__ import annotations

import logging

from querycompass.connectors.base import TableInfo
from querycompass.database.manager import DatabasePoolManager

logger = logging.getLogger(__name__)


def format_schema(tables: list[TableInfo]) -> str:
    """One line per table: ``Table "customers" has columns: id, email.``"""
    lines = [
        f'Table "{table.table_name}" has columns: '
        f"{', '.join(column.name for column in table.columns)}."
        for table in tables
    ]
    return "\n".join(lines)


class SchemaProvider:
    """Describe a target database's public schema. Introspects on every call."""

    def __init__(self, manager: DatabasePoolManager) -> None:
        self.manager = manager

    async def get_schema(self, database_id: str) -> str:
        """
        Raises:
            UnknownDatabaseError: If the id is not registered
            SchemaError: If introspection fails
        """
        connector = await self.manager.get_connector(database_id)
        tables = await connector.get_schema("public")
        logger.debug(
            f"Fetched schema for {database_id}",
            extra={"database_id": database_id, "tables": len(tables)},
        )
        return format_schema(tables)
