import pytest

from querycompass.prompts.loader import PromptLoader


def test_prompt_loader_strips_front_matter():
    loader = PromptLoader()
    content = loader.load("agents/router.md")
    assert not content.startswith("---")
    assert "{{ prompt }}" in content


def test_prompt_loader_exposes_front_matter():
    loader = PromptLoader()
    metadata = loader.get_metadata("agents/sql_verifier.md")
    assert metadata


def test_prompt_loader_renders_template():
    loader = PromptLoader()
    rendered = loader.render(
        "agents/sql_generator.md",
        prompt="show all customers",
        schema='Table "customers" has columns: id, email.',
        history="",
    )
    assert "show all customers" in rendered
    assert 'Table "customers"' in rendered
    assert "(no previous messages)" in rendered


def test_prompt_loader_requires_every_variable():
    loader = PromptLoader()
    with pytest.raises(Exception):
        loader.render("agents/sql_generator.md", prompt="show all customers")


def test_prompt_loader_missing_template():
    loader = PromptLoader()
    with pytest.raises(FileNotFoundError):
        loader.render("agents/does_not_exist.md")
