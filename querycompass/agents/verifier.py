"""
SQLVerifierAgent: the safety gate in front of the executor.

Returns {is_safe, reasoning, corrected_sql?}. The verdict fails closed:
a completion that does not decode, or decodes without an explicit
boolean is_safe, is treated as unsafe.
"""

import logging

from querycompass.agents.base import BaseAgent, format_history
from querycompass.agents.parsing import parse_json_object, strip_code_fence
from querycompass.agents.sql import load_schema
from querycompass.config import get_settings
from querycompass.database.schema import SchemaProvider
from querycompass.llm.factory import LLMProviderFactory
from querycompass.models import SQLVerifierInput, SQLVerifierOutput, VerificationResult
from querycompass.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)

MALFORMED_VERDICT_REASONING = "Verifier returned a malformed response."


class SQLVerifierAgent(BaseAgent):
    """Judge whether a candidate statement is safe to run."""

    def __init__(self, schema_provider: SchemaProvider, llm_provider=None):
        super().__init__(name="SQLVerifierAgent")
        if llm_provider is None:
            llm_provider = LLMProviderFactory.create_agent_provider("verifier", get_settings().llm)
        self.llm = llm_provider
        self.schema_provider = schema_provider
        self.prompts = PromptLoader()

    async def execute(self, input: SQLVerifierInput) -> SQLVerifierOutput:
        schema = await load_schema(self.name, self.schema_provider, input.database_id)
        prompt = self.prompts.render(
            "agents/sql_verifier.md",
            prompt=input.query,
            sql=input.candidate_sql,
            schema=schema,
            history=format_history(input.conversation_history),
        )
        response = await self._complete(prompt, temperature=0.0)

        verification, parse_failed = self._parse_verdict(response)
        logger.info(
            f"[{self.name}] Verdict: {'safe' if verification.is_safe else 'unsafe'}",
            extra={
                "is_safe": verification.is_safe,
                "corrected": verification.corrected_sql is not None,
                "parse_failed": parse_failed,
            },
        )
        return SQLVerifierOutput(
            success=not parse_failed,
            verification=verification,
            parse_failed=parse_failed,
            metadata=self._metadata,
        )

    def _parse_verdict(self, content: str) -> tuple[VerificationResult, bool]:
        result = parse_json_object(content)
        if not result.ok or not isinstance(result.value.get("is_safe"), bool):
            logger.warning(f"[{self.name}] Malformed verdict: {result.error or 'is_safe missing'}")
            return VerificationResult(is_safe=False, reasoning=MALFORMED_VERDICT_REASONING), True

        payload = result.value
        reasoning = payload.get("reasoning")
        corrected = payload.get("corrected_sql")
        corrected = strip_code_fence(corrected, "sql") if isinstance(corrected, str) else None
        return (
            VerificationResult(
                is_safe=payload["is_safe"],
                reasoning=reasoning if isinstance(reasoning, str) else "",
                corrected_sql=corrected or None,
            ),
            False,
        )
