"""
VisualizationAgent: choose a chart and write a summary for a read result.

Before the sample is sent to the completion provider, values of sensitive
columns are replaced by placeholder tokens such as ``{{EMAIL}}``. After
the package comes back, tokens in the summary are rehydrated from the
first row of the unmasked sample. Masking protects the outbound prompt;
the user-facing summary shows the real value.
"""

import json
import logging
import re
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from querycompass.agents.base import BaseAgent, format_history
from querycompass.agents.parsing import parse_json_object
from querycompass.config import get_settings
from querycompass.llm.factory import LLMProviderFactory
from querycompass.models import VisualizationInput, VisualizationOutput, VisualizationPackage
from querycompass.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{[A-Z_]+\}\}")

NO_RESULTS_PACKAGE = VisualizationPackage(
    type="scalar",
    vis_spec={"title": "No Results"},
    summary="The query returned no results.",
)
FALLBACK_PACKAGE = VisualizationPackage(
    type="table",
    vis_spec={"title": "Query Results"},
    summary="Could not automatically determine the best visualization.",
)


def placeholder_for(column: str) -> str:
    return "{{" + column.upper() + "}}"


def mask_sample(
    sample: list[dict[str, Any]], sensitive_columns: list[str]
) -> list[dict[str, Any]]:
    """Copy of ``sample`` with sensitive column values replaced by placeholders."""
    sensitive = {column.lower() for column in sensitive_columns}
    return [
        {
            key: placeholder_for(key) if key.lower() in sensitive else value
            for key, value in row.items()
        }
        for row in sample
    ]


def rehydrate_summary(summary: str, first_row: dict[str, Any]) -> str:
    """Replace placeholder tokens with values from the unmasked first row."""
    values = {key.lower(): value for key, value in first_row.items()}

    def replace(match: re.Match) -> str:
        column = match.group(0)[2:-2].lower()
        if column in values and values[column] is not None:
            return str(values[column])
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(replace, summary)


class VisualizationAgent(BaseAgent):
    """Compose a VisualizationPackage from execution metadata and a sample."""

    def __init__(
        self,
        llm_provider=None,
        sensitive_columns: list[str] | None = None,
        rehydrate: bool | None = None,
    ):
        super().__init__(name="VisualizationAgent")
        settings = get_settings()
        if llm_provider is None:
            llm_provider = LLMProviderFactory.create_agent_provider(
                "visualization", settings.llm, model_type="mini"
            )
        self.llm = llm_provider
        self.sensitive_columns = (
            sensitive_columns
            if sensitive_columns is not None
            else settings.pipeline.sensitive_columns
        )
        self.rehydrate = rehydrate if rehydrate is not None else settings.pipeline.rehydrate_summary
        self.prompts = PromptLoader()

    async def execute(self, input: VisualizationInput) -> VisualizationOutput:
        if not input.sample:
            return VisualizationOutput(
                success=True,
                vis_package=NO_RESULTS_PACKAGE.model_copy(deep=True),
                metadata=self._metadata,
            )

        masked = mask_sample(input.sample, self.sensitive_columns)
        prompt = self.prompts.render(
            "agents/visualization.md",
            prompt=input.query,
            sql=input.sql,
            history=format_history(input.conversation_history),
            columns=", ".join(input.execution_metadata.columns or []),
            row_count=input.execution_metadata.row_count,
            sample=json.dumps(masked, indent=2, ensure_ascii=False, default=str),
        )
        response = await self._complete(prompt)

        package = self._parse_package(response)
        if package is None:
            return VisualizationOutput(
                success=False,
                vis_package=FALLBACK_PACKAGE.model_copy(deep=True),
                parse_failed=True,
                metadata=self._metadata,
            )

        if self.rehydrate and package.summary:
            package.summary = rehydrate_summary(package.summary, input.sample[0])

        logger.info(f"[{self.name}] Chose {package.type} visualization")
        return VisualizationOutput(success=True, vis_package=package, metadata=self._metadata)

    def _parse_package(self, content: str) -> VisualizationPackage | None:
        result = parse_json_object(content)
        if not result.ok:
            logger.warning(f"[{self.name}] Malformed package: {result.error}")
            return None
        try:
            return VisualizationPackage.model_validate(result.value)
        except PydanticValidationError as exc:
            logger.warning(f"[{self.name}] Invalid package: {exc.error_count()} error(s)")
            return None
