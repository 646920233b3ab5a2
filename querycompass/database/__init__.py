"""Target database registry and schema provider."""

from querycompass.database.manager import DatabasePoolManager, UnknownDatabaseError
from querycompass.database.schema import SchemaProvider, format_schema

__all__ = ["DatabasePoolManager", "SchemaProvider", "UnknownDatabaseError", "format_schema"]
