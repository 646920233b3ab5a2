"""Unit tests for completion output parsing."""

from querycompass.agents.parsing import parse_json_object, strip_code_fence


class TestStripCodeFence:
    def test_removes_sql_fence(self):
        assert strip_code_fence("```sql\nSELECT * FROM customers;\n```", "sql") == (
            "SELECT * FROM customers;"
        )

    def test_removes_bare_fence(self):
        assert strip_code_fence("```\nSELECT 1\n```", "sql") == "SELECT 1"

    def test_removes_unfenced_language_tag(self):
        assert strip_code_fence("sql\nSELECT 1", "sql") == "SELECT 1"

    def test_keeps_words_that_start_with_the_tag(self):
        assert strip_code_fence("sqlite_master", "sql") == "sqlite_master"

    def test_fence_after_prose(self):
        text = "Here you go:\n```sql\nSELECT id FROM orders\n```\nEnjoy."
        assert strip_code_fence(text, "sql") == "SELECT id FROM orders"

    def test_none_is_empty(self):
        assert strip_code_fence(None, "sql") == ""


class TestParseJsonObject:
    def test_plain_object(self):
        result = parse_json_object('{"tool": "database_query"}')

        assert result.ok
        assert result.value == {"tool": "database_query"}

    def test_fenced_object(self):
        result = parse_json_object('```json\n{"is_safe": true}\n```')

        assert result.ok
        assert result.value["is_safe"] is True

    def test_object_embedded_in_prose(self):
        result = parse_json_object('Sure! {"tool": "general_conversation"} Hope that helps.')

        assert result.ok
        assert result.value["tool"] == "general_conversation"

    def test_not_json(self):
        result = parse_json_object("I think this is a database question.")

        assert not result.ok
        assert result.value == {}
        assert result.error

    def test_array_is_rejected(self):
        result = parse_json_object('["database_query"]')

        assert not result.ok
        assert "object" in result.error

    def test_empty(self):
        assert not parse_json_object("").ok
