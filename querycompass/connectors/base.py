"""
Base Database Connector

Abstract base class for target-database connectors. Provides a consistent
async interface for connecting to, querying, and introspecting databases.

All connectors must implement:
- connect(): Establish connection with connection pooling
- execute(): Run one statement with scoped connection acquisition
- get_schema(): Introspect tables and columns
- close(): Clean up connections and pools
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


# ============================================================================
# Data Models
# ============================================================================


class ColumnInfo(BaseModel):
    """Information about a database column."""

    name: str = Field(..., description="Column name")
    data_type: str = Field(..., description="Column data type")


class TableInfo(BaseModel):
    """Information about a database table."""

    schema_name: str = Field(..., alias="schema", description="Schema name")
    table_name: str = Field(..., description="Table name")
    columns: list[ColumnInfo] = Field(..., description="Columns in ordinal order")

    model_config = ConfigDict(populate_by_name=True)


class QueryResult(BaseModel):
    """
    Result of one executed statement.

    For reads, rows holds the full result set and row_count its length.
    For modifications, rows is usually empty and row_count is the number
    of affected rows reported in the command tag.
    """

    rows: list[dict[str, Any]] = Field(default_factory=list, description="Result rows")
    row_count: int = Field(..., description="Rows returned or affected")
    columns: list[str] = Field(default_factory=list, description="Column names")
    command: str = Field(default="", description="Command tag, e.g. SELECT, DELETE")
    execution_time_ms: float = Field(default=0.0, description="Execution time in ms")


class ConnectorError(Exception):
    """Base exception for connector errors."""

    pass


class ConnectionError(ConnectorError):
    """Error establishing or managing database connection."""

    pass


class QueryError(ConnectorError):
    """Error executing a statement."""

    pass


class SchemaError(ConnectorError):
    """Error introspecting database schema."""

    pass


# ============================================================================
# Base Connector
# ============================================================================


class BaseConnector(ABC):
    """
    Abstract base class for target-database connectors.

    Usage:
        connector = PostgresConnector("postgresql://user:pw@localhost/sales")
        await connector.connect()

        result = await connector.execute("SELECT * FROM customers")
        print(f"{result.command}: {result.row_count} rows")

        await connector.close()
    """

    def __init__(
        self,
        dsn: str,
        min_pool_size: int = 1,
        max_pool_size: int = 5,
        timeout: int = 30,
    ):
        """
        Initialize connector.

        Args:
            dsn: Connection URL
            min_pool_size: Minimum pooled connections
            max_pool_size: Maximum pooled connections
            timeout: Statement timeout in seconds
        """
        self.dsn = dsn
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.timeout = timeout

        self._pool = None
        self._connected = False

        logger.info(f"Initialized {self.__class__.__name__}")

    @property
    def is_connected(self) -> bool:
        return self._connected

    @abstractmethod
    async def connect(self) -> None:
        """
        Establish database connection and create connection pool.

        Idempotent.

        Raises:
            ConnectionError: If connection fails
        """
        pass

    @abstractmethod
    async def execute(
        self,
        query: str,
        params: list[Any] | None = None,
        timeout: int | None = None,
        readonly: bool = False,
    ) -> QueryResult:
        """
        Execute a single SQL statement.

        Raises:
            QueryError: If execution fails
            ConnectionError: If not connected
        """
        pass

    @abstractmethod
    async def get_schema(self, schema_name: str | None = None) -> list[TableInfo]:
        """
        Introspect tables and columns.

        Raises:
            SchemaError: If introspection fails
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        pass

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
