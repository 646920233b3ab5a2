"""Unit tests for schema text formatting."""

import pytest

from querycompass.connectors.base import ColumnInfo, TableInfo
from querycompass.database import DatabasePoolManager, SchemaProvider, UnknownDatabaseError
from querycompass.database.schema import format_schema


def _table(name, *columns):
    return TableInfo(
        schema="public",
        table_name=name,
        columns=[ColumnInfo(name=column, data_type="text") for column in columns],
    )


def test_format_schema_one_line_per_table():
    text = format_schema([_table("customers", "id", "email"), _table("orders", "id", "amount")])

    assert text == (
        'Table "customers" has columns: id, email.\n'
        'Table "orders" has columns: id, amount.'
    )


def test_format_schema_empty():
    assert format_schema([]) == ""


@pytest.mark.asyncio
async def test_provider_introspects_public_schema(mock_connector):
    mock_connector.get_schema.return_value = [_table("customers", "id", "state")]
    provider = SchemaProvider(DatabasePoolManager(connectors={"sales_db": mock_connector}))

    text = await provider.get_schema("sales_db")

    assert text == 'Table "customers" has columns: id, state.'
    mock_connector.get_schema.assert_awaited_once_with("public")


@pytest.mark.asyncio
async def test_provider_unknown_database(mock_connector):
    provider = SchemaProvider(DatabasePoolManager(connectors={"sales_db": mock_connector}))

    with pytest.raises(UnknownDatabaseError):
        await provider.get_schema("missing_db")
