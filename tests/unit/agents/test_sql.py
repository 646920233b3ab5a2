"""Unit tests for SQLGeneratorAgent and QueryRefinerAgent."""

import pytest

from querycompass.agents.refiner import QueryRefinerAgent
from querycompass.agents.sql import SQLGeneratorAgent
from querycompass.database.manager import UnknownDatabaseError
from querycompass.models import (
    DatabaseError,
    QueryRefinerInput,
    SQLGenerationError,
    SQLGeneratorInput,
)


class TestSQLGeneratorAgent:
    @pytest.fixture
    def generator(self, mock_schema_provider, mock_llm_provider):
        return SQLGeneratorAgent(mock_schema_provider, llm_provider=mock_llm_provider)

    @pytest.mark.asyncio
    async def test_generates_statement_without_fencing(self, generator, mock_llm_provider):
        mock_llm_provider.set_response("```sql\nSELECT * FROM customers;\n```")

        output = await generator(SQLGeneratorInput(query="show all customers", database_id="sales_db"))

        assert output.sql == "SELECT * FROM customers;"
        assert output.success is True

    @pytest.mark.asyncio
    async def test_schema_is_fetched_for_every_call(
        self, generator, mock_schema_provider, mock_llm_provider
    ):
        mock_llm_provider.set_response("SELECT 1")
        request = SQLGeneratorInput(query="show all customers", database_id="sales_db")

        await generator(request)
        await generator(request)

        assert mock_schema_provider.get_schema.await_count == 2
        mock_schema_provider.get_schema.assert_awaited_with("sales_db")
        assert 'Table "customers"' in mock_llm_provider.prompts[0]

    @pytest.mark.asyncio
    async def test_empty_completion_raises(self, generator, mock_llm_provider):
        mock_llm_provider.set_response("```sql\n```")

        with pytest.raises(SQLGenerationError):
            await generator(SQLGeneratorInput(query="show all customers", database_id="sales_db"))

    @pytest.mark.asyncio
    async def test_unknown_database_raises_database_error(
        self, generator, mock_schema_provider, mock_llm_provider
    ):
        mock_schema_provider.get_schema.side_effect = UnknownDatabaseError("missing_db")

        with pytest.raises(DatabaseError, match="missing_db"):
            await generator(SQLGeneratorInput(query="show all customers", database_id="missing_db"))

        mock_llm_provider.complete.assert_not_awaited()


class TestQueryRefinerAgent:
    @pytest.fixture
    def refiner(self, mock_schema_provider, mock_llm_provider):
        return QueryRefinerAgent(mock_schema_provider, llm_provider=mock_llm_provider)

    @pytest.fixture
    def refine_request(self):
        return QueryRefinerInput(
            query="only those in CA",
            database_id="sales_db",
            previous_sql="SELECT * FROM customers",
        )

    @pytest.mark.asyncio
    async def test_modified_statement(self, refiner, mock_llm_provider, refine_request):
        mock_llm_provider.set_response(
            '{"modified_sql": "SELECT * FROM customers WHERE state = \'CA\'", '
            '"explanation": "Added a filter on state.", "was_modified": true}'
        )

        output = await refiner(refine_request)

        assert output.refinement.was_modified is True
        assert output.refinement.sql == "SELECT * FROM customers WHERE state = 'CA'"
        assert output.refinement.explanation == "Added a filter on state."
        assert output.parse_failed is False
        assert "SELECT * FROM customers" in mock_llm_provider.prompts[0]

    @pytest.mark.asyncio
    async def test_not_modified(self, refiner, mock_llm_provider, refine_request):
        mock_llm_provider.set_response(
            '{"modified_sql": "", "explanation": "Needs a different table.", "was_modified": false}'
        )

        output = await refiner(refine_request)

        assert output.refinement.was_modified is False
        assert output.refinement.sql is None
        assert output.success is False

    @pytest.mark.asyncio
    async def test_modified_without_statement_is_not_modified(
        self, refiner, mock_llm_provider, refine_request
    ):
        mock_llm_provider.set_response('{"modified_sql": "", "explanation": "x", "was_modified": true}')

        output = await refiner(refine_request)

        assert output.refinement.was_modified is False

    @pytest.mark.asyncio
    async def test_string_flag_is_not_modified(self, refiner, mock_llm_provider, refine_request):
        mock_llm_provider.set_response(
            '{"modified_sql": "SELECT 1", "explanation": "x", "was_modified": "yes"}'
        )

        output = await refiner(refine_request)

        assert output.refinement.was_modified is False

    @pytest.mark.asyncio
    async def test_parse_failure_requests_regeneration(
        self, refiner, mock_llm_provider, refine_request
    ):
        mock_llm_provider.set_response("I would add a WHERE clause.")

        output = await refiner(refine_request)

        assert output.parse_failed is True
        assert output.refinement.was_modified is False
        assert output.refinement.explanation == "Could not refine query. Will regenerate from scratch."
