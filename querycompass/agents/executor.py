"""
SQLExecutorAgent: run a verified statement behind the RBAC gate.

Modification statements are refused for anyone but admins. Classification
combines a fast word-boundary pattern with sqlparse's leading-keyword
type; either one flagging a write is enough. Non-admin statements also
run in a read-only transaction on the server.

Read results never leave this module unbounded: the caller receives the
column list, a sha256 of the full row set, and the first
``sample_row_limit`` rows.
"""

import hashlib
import json
import logging
import re
from typing import Any

import sqlparse
from pydantic_core import to_jsonable_python

from querycompass.agents.base import BaseAgent
from querycompass.config import get_settings
from querycompass.connectors.base import ConnectorError, QueryResult
from querycompass.constants import PERMISSION_DENIED_TEXT
from querycompass.database.manager import DatabasePoolManager, UnknownDatabaseError
from querycompass.models import (
    ExecutionMetadata,
    ExecutionResult,
    PermissionDeniedError,
    SQLExecutorInput,
    SQLExecutorOutput,
    ValidationError,
)

logger = logging.getLogger(__name__)

MODIFICATION_PATTERN = re.compile(r"\b(insert|update|delete|drop|alter|truncate)\b", re.IGNORECASE)

MODIFICATION_COMMANDS = frozenset(
    {
        "INSERT",
        "UPDATE",
        "DELETE",
        "DROP",
        "ALTER",
        "TRUNCATE",
        "CREATE",
        "REPLACE",
        "MERGE",
        "GRANT",
        "REVOKE",
        "COPY",
    }
)

EXECUTION_FAILED_ERROR = "Failed to execute query."


def leading_keywords(sql: str) -> list[str]:
    """Statement type of each statement in ``sql``, comments stripped."""
    cleaned = sqlparse.format(sql, strip_comments=True).strip()
    keywords = []
    for statement in sqlparse.parse(cleaned):
        statement_type = statement.get_type()
        if statement_type == "UNKNOWN":
            first = statement.token_first(skip_cm=True, skip_ws=True)
            statement_type = first.normalized.upper() if first is not None else ""
        if statement_type:
            keywords.append(statement_type)
    return keywords


def is_modification(sql: str) -> bool:
    """True when the pattern or any leading keyword marks ``sql`` as a write."""
    if MODIFICATION_PATTERN.search(sql):
        return True
    return any(keyword in MODIFICATION_COMMANDS for keyword in leading_keywords(sql))


def hash_rows(rows: list[dict[str, Any]]) -> str:
    """sha256 of the JSON encoding of the full row set."""
    encoded = json.dumps(rows, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


class SQLExecutorAgent(BaseAgent):
    """Execute statements against a target database."""

    def __init__(self, pool_manager: DatabasePoolManager, sample_row_limit: int | None = None):
        super().__init__(name="SQLExecutorAgent", max_retries=0)
        self.pool_manager = pool_manager
        self.sample_row_limit = (
            sample_row_limit
            if sample_row_limit is not None
            else get_settings().pipeline.sample_row_limit
        )

    async def execute(self, input: SQLExecutorInput) -> SQLExecutorOutput:
        """
        Raises:
            ValidationError: If there is no statement to run
            PermissionDeniedError: If a non-admin submits a modification
        """
        if not input.sql.strip():
            raise ValidationError(self.name, "No statement to execute")

        modification = is_modification(input.sql)
        if modification and not input.user.is_admin:
            logger.warning(
                f"[{self.name}] Denied modification statement",
                extra={"user_id": input.user.user_id, "role": input.user.role.value},
            )
            raise PermissionDeniedError(
                self.name,
                PERMISSION_DENIED_TEXT,
                context={"user_id": input.user.user_id, "role": input.user.role.value},
            )

        try:
            connector = await self.pool_manager.get_connector(input.database_id)
            result = await connector.execute(input.sql, readonly=not input.user.is_admin)
        except (UnknownDatabaseError, ConnectorError) as exc:
            logger.warning(
                f"[{self.name}] Execution failed",
                extra={"database_id": input.database_id, "error_type": type(exc).__name__},
            )
            execution = ExecutionResult(error=EXECUTION_FAILED_ERROR, details=str(exc))
            return SQLExecutorOutput(success=False, execution=execution, metadata=self._metadata)

        if modification or result.command in MODIFICATION_COMMANDS:
            execution = self._modification_result(result)
        else:
            execution = self._read_result(result)
        return SQLExecutorOutput(success=True, execution=execution, metadata=self._metadata)

    def _modification_result(self, result: QueryResult) -> ExecutionResult:
        logger.info(
            f"[{self.name}] {result.command} affected {result.row_count} row(s)",
            extra={"operation": result.command, "row_count": result.row_count},
        )
        return ExecutionResult(
            is_modification=True,
            execution_metadata=ExecutionMetadata(
                row_count=result.row_count,
                operation=result.command or None,
            ),
        )

    def _read_result(self, result: QueryResult) -> ExecutionResult:
        rows = to_jsonable_python(result.rows, fallback=str)
        result_hash = hash_rows(rows)
        logger.info(
            f"[{self.name}] Read {result.row_count} row(s)",
            extra={"row_count": result.row_count, "result_hash": result_hash},
        )
        return ExecutionResult(
            is_modification=False,
            execution_metadata=ExecutionMetadata(
                row_count=result.row_count,
                columns=result.columns,
                result_hash=result_hash,
            ),
            sample=rows[: self.sample_row_limit],
        )
