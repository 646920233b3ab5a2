"""
QueryRefinerAgent: patch the previous statement in place.

The refiner only reports whether a patch was possible. Falling back to
full generation is the pipeline's decision; a malformed completion is
reported the same way as "cannot patch".
"""

import logging

from querycompass.agents.base import BaseAgent, format_history
from querycompass.agents.parsing import parse_json_object, strip_code_fence
from querycompass.agents.sql import load_schema
from querycompass.config import get_settings
from querycompass.database.schema import SchemaProvider
from querycompass.llm.factory import LLMProviderFactory
from querycompass.models import QueryRefinerInput, QueryRefinerOutput, RefinementResult
from querycompass.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)

_PARSE_FAILURE_EXPLANATION = "Could not refine query. Will regenerate from scratch."


class QueryRefinerAgent(BaseAgent):
    """Refine (utterance, previous SQL, schema, history) into a RefinementResult."""

    def __init__(self, schema_provider: SchemaProvider, llm_provider=None):
        super().__init__(name="QueryRefinerAgent")
        if llm_provider is None:
            llm_provider = LLMProviderFactory.create_agent_provider("sql", get_settings().llm)
        self.llm = llm_provider
        self.schema_provider = schema_provider
        self.prompts = PromptLoader()

    async def execute(self, input: QueryRefinerInput) -> QueryRefinerOutput:
        schema = await load_schema(self.name, self.schema_provider, input.database_id)
        prompt = self.prompts.render(
            "agents/query_refiner.md",
            prompt=input.query,
            previous_sql=input.previous_sql,
            schema=schema,
            history=format_history(input.conversation_history),
        )
        response = await self._complete(prompt)

        refinement, parse_failed = self._parse_refinement(response)
        logger.info(
            f"[{self.name}] {'Modified' if refinement.was_modified else 'Regenerate needed'}",
            extra={"was_modified": refinement.was_modified, "parse_failed": parse_failed},
        )
        return QueryRefinerOutput(
            success=refinement.was_modified,
            refinement=refinement,
            parse_failed=parse_failed,
            metadata=self._metadata,
        )

    def _parse_refinement(self, content: str) -> tuple[RefinementResult, bool]:
        result = parse_json_object(content)
        if not result.ok:
            logger.warning(f"[{self.name}] Malformed refinement: {result.error}")
            return RefinementResult(explanation=_PARSE_FAILURE_EXPLANATION), True

        payload = result.value
        sql = payload.get("modified_sql")
        sql = strip_code_fence(sql, "sql") if isinstance(sql, str) else ""
        explanation = payload.get("explanation")
        explanation = explanation if isinstance(explanation, str) else ""

        # A claimed modification without a statement cannot be used.
        was_modified = payload.get("was_modified") is True and bool(sql)
        return (
            RefinementResult(
                sql=sql if was_modified else None,
                explanation=explanation,
                was_modified=was_modified,
            ),
            False,
        )
