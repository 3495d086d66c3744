"""
Tests for JSON extraction from model output.
"""
import pytest

from debt_agent.utils.json_extractor import JSONExtractionError, extract_json


class TestExtractJSON:
    """Test recovery of JSON objects from messy content."""

    def test_plain_object(self):
        assert extract_json('{"intent": "dispute", "confidence": 0.8}') == {
            "intent": "dispute",
            "confidence": 0.8,
        }

    def test_markdown_fence(self):
        content = '```json\n{"intent": "question"}\n```'
        assert extract_json(content) == {"intent": "question"}

    def test_prose_around_object(self):
        content = 'Here is the classification:\n{"intent": "acknowledgment", "summary": "ok {fine}"}\nHope it helps.'
        assert extract_json(content) == {"intent": "acknowledgment", "summary": "ok {fine}"}

    def test_trailing_comma(self):
        assert extract_json('{"intent": "unknown", "tags": ["a", "b",],}') == {
            "intent": "unknown",
            "tags": ["a", "b"],
        }

    def test_byte_order_mark(self):
        assert extract_json('\ufeff{"intent": "dispute"}') == {"intent": "dispute"}

    @pytest.mark.parametrize("content", ["", "   ", "no json here", "[1, 2, 3]", '{"broken": '])
    def test_failures_raise(self, content):
        with pytest.raises(JSONExtractionError) as exc_info:
            extract_json(content)
        assert exc_info.value.raw_content == content
        assert exc_info.value.attempts

    def test_extraction_error_is_value_error(self):
        with pytest.raises(ValueError):
            extract_json("nothing")
