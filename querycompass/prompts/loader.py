"""Prompt loading and rendering utilities."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateNotFound


@dataclass(frozen=True)
class PromptEntry:
    """Loaded prompt content and its front matter."""

    content: str
    metadata: dict[str, Any]


def _split_front_matter(source: str) -> tuple[dict[str, Any], str]:
    if source.startswith("---"):
        parts = source.split("---", 2)
        if len(parts) == 3:
            return yaml.safe_load(parts[1]) or {}, parts[2].lstrip()
    return {}, source


class FrontMatterLoader(FileSystemLoader):
    """Jinja2 loader that strips YAML front matter."""

    def get_source(self, environment: Environment, template: str):  # type: ignore[override]
        source, filename, uptodate = super().get_source(environment, template)
        return _split_front_matter(source)[1], filename, uptodate


class PromptLoader:
    """
    Load and render the markdown prompt templates under ``prompts/``.

    Templates may start with YAML front matter (name, version, expected
    output format); it is exposed through get_metadata() and never sent
    to the model.
    """

    def __init__(self, prompts_dir: str = "prompts") -> None:
        root = Path(__file__).resolve().parents[2]
        path = Path(prompts_dir)
        self.prompts_dir = path if path.is_absolute() else root / path
        self.cache: dict[str, PromptEntry] = {}
        self._env = Environment(
            loader=FrontMatterLoader(str(self.prompts_dir)),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )

    def load(self, prompt_path: str) -> str:
        """Return the raw template body (front matter removed)."""
        return self._entry(prompt_path).content

    def render(self, prompt_path: str, **variables: Any) -> str:
        """
        Render a template with Jinja2.

        Example:
            prompt = loader.render(
                "agents/sql_generator.md",
                prompt="show all customers",
                schema=schema_text,
                history="User: hi",
            )
        """
        try:
            template = self._env.get_template(prompt_path)
        except TemplateNotFound as exc:
            raise FileNotFoundError(f"Prompt not found: {prompt_path}") from exc
        return template.render(**variables)

    def get_metadata(self, prompt_path: str) -> dict[str, Any]:
        return self._entry(prompt_path).metadata

    def _entry(self, prompt_path: str) -> PromptEntry:
        if prompt_path not in self.cache:
            file_path = self.prompts_dir / prompt_path
            if not file_path.exists():
                raise FileNotFoundError(f"Prompt not found: {file_path}")
            metadata, content = _split_front_matter(file_path.read_text(encoding="utf-8"))
            self.cache[prompt_path] = PromptEntry(content=content, metadata=metadata)
        return self.cache[prompt_path]
