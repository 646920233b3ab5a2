"""
SQLGeneratorAgent: natural language to a complete SQL statement.

The schema is fetched fresh on every call. The agent makes no safety
judgment of its own; every statement it produces goes to the verifier.
"""

import logging

from querycompass.agents.base import BaseAgent, format_history
from querycompass.agents.parsing import strip_code_fence
from querycompass.config import get_settings
from querycompass.connectors.base import ConnectorError
from querycompass.database.manager import UnknownDatabaseError
from querycompass.database.schema import SchemaProvider
from querycompass.llm.factory import LLMProviderFactory
from querycompass.models import (
    DatabaseError,
    SQLGenerationError,
    SQLGeneratorInput,
    SQLGeneratorOutput,
)
from querycompass.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)


async def load_schema(agent_name: str, schema_provider: SchemaProvider, database_id: str) -> str:
    """Fetch a schema description, mapping lookup faults to DatabaseError."""
    try:
        return await schema_provider.get_schema(database_id)
    except (UnknownDatabaseError, ConnectorError) as exc:
        raise DatabaseError(
            agent_name,
            f"Could not fetch database schema: {exc}",
            context={"database_id": database_id},
        ) from exc


class SQLGeneratorAgent(BaseAgent):
    """Generate a full statement from (utterance, schema, history)."""

    def __init__(self, schema_provider: SchemaProvider, llm_provider=None):
        super().__init__(name="SQLGeneratorAgent")
        if llm_provider is None:
            llm_provider = LLMProviderFactory.create_agent_provider("sql", get_settings().llm)
        self.llm = llm_provider
        self.schema_provider = schema_provider
        self.prompts = PromptLoader()

    async def execute(self, input: SQLGeneratorInput) -> SQLGeneratorOutput:
        """
        Raises:
            DatabaseError: If the schema cannot be fetched
            LLMError: If the completion call fails
            SQLGenerationError: If the completion holds no statement
        """
        schema = await load_schema(self.name, self.schema_provider, input.database_id)
        prompt = self.prompts.render(
            "agents/sql_generator.md",
            prompt=input.query,
            schema=schema,
            history=format_history(input.conversation_history),
        )
        response = await self._complete(prompt)

        sql = strip_code_fence(response, "sql")
        if not sql:
            raise SQLGenerationError(self.name, "Completion contained no SQL statement")

        logger.debug(f"[{self.name}] Generated SQL: {sql}")
        return SQLGeneratorOutput(success=True, sql=sql, metadata=self._metadata)
