"""Unit tests for SQLExecutorAgent and statement classification."""

from datetime import date
from decimal import Decimal

import pytest

from querycompass.agents.executor import (
    EXECUTION_FAILED_ERROR,
    SQLExecutorAgent,
    hash_rows,
    is_modification,
    leading_keywords,
)
from querycompass.connectors.base import QueryError, QueryResult
from querycompass.constants import Role
from querycompass.database.manager import DatabasePoolManager
from querycompass.models import CurrentUser, PermissionDeniedError, SQLExecutorInput, ValidationError

USER = CurrentUser(user_id="u-1", username="ursula", role=Role.USER)
ADMIN = CurrentUser(user_id="a-1", username="ada", role=Role.ADMIN)
VIEWER = CurrentUser(user_id="v-1", username="victor", role=Role.VIEWER)


class TestStatementClassification:
    @pytest.mark.parametrize(
        "sql",
        [
            "DELETE FROM orders",
            "delete from orders",
            "UPDATE customers SET state = 'CA'",
            "INSERT INTO orders VALUES (1)",
            "DROP TABLE orders",
            "ALTER TABLE orders ADD COLUMN x int",
            "TRUNCATE orders",
            "CREATE TABLE t (id int)",
            "GRANT SELECT ON orders TO public",
            "/* harmless */ DELETE FROM orders",
            "SELECT 1; DROP TABLE orders",
        ],
    )
    def test_modifications(self, sql):
        assert is_modification(sql) is True

    @pytest.mark.parametrize(
        "sql",
        [
            "SELECT * FROM customers",
            "select count(*) from orders where amount > 10",
            "WITH recent AS (SELECT * FROM orders) SELECT * FROM recent",
            "SELECT updated_at FROM orders",
        ],
    )
    def test_reads(self, sql):
        assert is_modification(sql) is False

    def test_pattern_is_advisory_on_words(self):
        # Column names that are whole keywords still trip the pattern.
        assert is_modification("SELECT delete FROM flags") is True

    def test_leading_keywords_ignore_comments(self):
        assert leading_keywords("-- remove rows\nDELETE FROM orders") == ["DELETE"]


class TestHashRows:
    def test_stable_for_equal_rows(self):
        rows = [{"id": 1, "email": "ada@example.com"}]
        assert hash_rows(rows) == hash_rows([{"id": 1, "email": "ada@example.com"}])

    def test_differs_for_different_rows(self):
        assert hash_rows([{"id": 1}]) != hash_rows([{"id": 2}])

    def test_is_sha256_hex(self):
        assert len(hash_rows([])) == 64


class TestSQLExecutorAgent:
    @pytest.fixture
    def executor(self, mock_connector):
        manager = DatabasePoolManager(connectors={"sales_db": mock_connector})
        return SQLExecutorAgent(manager, sample_row_limit=2)

    @pytest.mark.asyncio
    async def test_read_result_is_bounded_and_hashed(self, executor, mock_connector, sales_customers):
        mock_connector.execute.return_value = QueryResult(
            rows=sales_customers,
            row_count=4,
            columns=["id", "first_name", "last_name", "email", "state"],
            command="SELECT",
        )

        output = await executor(SQLExecutorInput(sql="SELECT * FROM customers", database_id="sales_db", user=USER))

        execution = output.execution
        assert execution.is_modification is False
        assert execution.execution_metadata.row_count == 4
        assert execution.execution_metadata.columns == ["id", "first_name", "last_name", "email", "state"]
        assert execution.execution_metadata.result_hash == hash_rows(sales_customers)
        assert execution.sample == sales_customers[:2]

    @pytest.mark.asyncio
    async def test_non_admin_runs_read_only(self, executor, mock_connector):
        mock_connector.execute.return_value = QueryResult(rows=[], row_count=0, command="SELECT")

        await executor(SQLExecutorInput(sql="SELECT 1", database_id="sales_db", user=VIEWER))

        mock_connector.execute.assert_awaited_once_with("SELECT 1", readonly=True)

    @pytest.mark.asyncio
    async def test_read_values_become_json_compatible(self, executor, mock_connector):
        mock_connector.execute.return_value = QueryResult(
            rows=[{"total": Decimal("10.50"), "day": date(2024, 1, 2)}],
            row_count=1,
            columns=["total", "day"],
            command="SELECT",
        )

        output = await executor(SQLExecutorInput(sql="SELECT 1", database_id="sales_db", user=USER))

        row = output.execution.sample[0]
        assert row["day"] == "2024-01-02"
        assert isinstance(row["total"], str | float)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("user", [USER, VIEWER])
    async def test_non_admin_modification_is_denied(self, executor, mock_connector, user):
        with pytest.raises(PermissionDeniedError) as exc_info:
            await executor(SQLExecutorInput(sql="DELETE FROM orders", database_id="sales_db", user=user))

        assert exc_info.value.recoverable is False
        assert exc_info.value.context["role"] == user.role.value
        mock_connector.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_admin_modification_reports_affected_rows(self, executor, mock_connector):
        mock_connector.execute.return_value = QueryResult(rows=[], row_count=3, command="DELETE")

        output = await executor(
            SQLExecutorInput(sql="DELETE FROM orders WHERE id < 4", database_id="sales_db", user=ADMIN)
        )

        execution = output.execution
        assert execution.is_modification is True
        assert execution.execution_metadata.row_count == 3
        assert execution.execution_metadata.operation == "DELETE"
        assert execution.execution_metadata.columns is None
        assert execution.sample is None
        mock_connector.execute.assert_awaited_once_with("DELETE FROM orders WHERE id < 4", readonly=False)

    @pytest.mark.asyncio
    async def test_command_tag_marks_modification(self, executor, mock_connector):
        mock_connector.execute.return_value = QueryResult(rows=[], row_count=1, command="MERGE")

        output = await executor(SQLExecutorInput(sql="MERGE INTO t USING s ON true", database_id="sales_db", user=ADMIN))

        assert output.execution.is_modification is True

    @pytest.mark.asyncio
    async def test_query_error_is_a_tagged_failure(self, executor, mock_connector):
        mock_connector.execute.side_effect = QueryError('relation "custmers" does not exist')

        output = await executor(SQLExecutorInput(sql="SELECT * FROM custmers", database_id="sales_db", user=USER))

        assert output.success is False
        assert output.execution.failed is True
        assert output.execution.error == EXECUTION_FAILED_ERROR
        assert "custmers" in output.execution.details

    @pytest.mark.asyncio
    async def test_unknown_database_is_a_tagged_failure(self, executor):
        output = await executor(SQLExecutorInput(sql="SELECT 1", database_id="missing_db", user=USER))

        assert output.execution.failed is True
        assert "missing_db" in output.execution.details

    @pytest.mark.asyncio
    async def test_empty_statement_is_rejected(self, executor, mock_connector):
        with pytest.raises(ValidationError) as exc_info:
            await executor(SQLExecutorInput(sql="   ", database_id="sales_db", user=ADMIN))

        assert exc_info.value.recoverable is False
        mock_connector.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_zero_sample_limit_is_respected(self, mock_connector, sales_customers):
        mock_connector.execute.return_value = QueryResult(
            rows=sales_customers, row_count=4, columns=["id", "email"], command="SELECT"
        )
        executor = SQLExecutorAgent(
            DatabasePoolManager(connectors={"sales_db": mock_connector}), sample_row_limit=0
        )

        output = await executor(SQLExecutorInput(sql="SELECT * FROM customers", database_id="sales_db", user=USER))

        assert executor.sample_row_limit == 0
        assert output.execution.sample == []
        assert output.execution.execution_metadata.row_count == 4
