"""Tests for Pass 1 parsing and the content analyzer."""

import json
from unittest.mock import MagicMock

import pytest

from jsonld_engine.analyzer import AnalysisResult, ContentAnalyzer, clean_json_response, parse_analysis
from jsonld_engine.errors import AnalysisParseError
from jsonld_engine.extractor import ContentExtractor
from jsonld_engine.prompt_builder import SchemaPromptBuilder

ANALYSIS = {
    "page_type": "Service",
    "page_summary": "Roof repair services in Springfield",
    "services": [{"name": "Roof repair"}, {"name": "Gutter cleaning"}],
    "testimonials": [{"quote": "Great job", "author": "Jane"}],
    "faqs": [],
    "item_counts": {"services_found": 2, "testimonials_found": 1},
}


class TestCleanJson:
    def test_code_fence(self):
        assert clean_json_response('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_surrounding_prose(self):
        assert clean_json_response('Here you go: {"a": 1} Hope that helps!') == '{"a": 1}'


class TestParseAnalysis:
    def test_valid(self):
        result = parse_analysis(json.dumps(ANALYSIS))
        assert result.page_type == "Service"
        assert [s["name"] for s in result.services] == ["Roof repair", "Gutter cleaning"]
        assert result.warnings == []

    def test_positions_filled_in_order(self):
        """Items without a position get their list index, starting at 1."""
        result = parse_analysis(json.dumps(ANALYSIS))
        assert [s["position"] for s in result.services] == [1, 2]

    def test_not_json(self):
        with pytest.raises(AnalysisParseError, match="Failed to parse content analysis result."):
            parse_analysis("I could not analyze this page.")

    def test_missing_page_type(self):
        with pytest.raises(AnalysisParseError, match="Invalid content analysis structure."):
            parse_analysis('{"services": []}')

    def test_count_mismatch_is_a_warning(self):
        """Self-reported counts that disagree with the lists do not fail parsing."""
        data = dict(ANALYSIS, item_counts={"services_found": 5, "faqs_found": "many"})
        result = parse_analysis(json.dumps(data))
        assert len(result.warnings) == 2
        assert "services_found reports 5 but 2 services" in result.warnings[0]

    def test_non_dict_items_dropped(self):
        data = dict(ANALYSIS, services=["Roof repair", {"name": "Gutters"}])
        result = parse_analysis(json.dumps(data))
        assert result.services == [{"name": "Gutters", "position": 2}]


class TestToDict:
    def test_empty_sections_dropped(self):
        result = AnalysisResult.from_dict(ANALYSIS)
        data = result.to_dict()
        assert "faqs" not in data
        assert "events" not in data
        assert data["page_type"] == "Service"
        assert data["testimonials"][0]["position"] == 1


class TestContentAnalyzer:
    def _analyzer(self, store):
        return ContentAnalyzer(SchemaPromptBuilder(store, ContentExtractor(store)))

    def test_analyze_uses_provider(self, store, make_post, settings):
        post = make_post()
        provider = MagicMock()
        provider.get_slug.return_value = "deepseek"
        provider.get_name.return_value = "DeepSeek"
        provider.max_content_chars.return_value = 50000
        provider.analyze.return_value = json.dumps(ANALYSIS)

        result = self._analyzer(store).analyze(post, provider, settings)
        assert result.page_type == "Service"
        payload = provider.analyze.call_args.args[0]
        assert payload["page"]["content"] == "A" * 60
        provider.max_content_chars.assert_called_once_with("deepseek-chat")

    def test_analyze_streams_when_asked(self, store, make_post, settings):
        post = make_post()
        provider = MagicMock()
        provider.get_slug.return_value = "deepseek"
        provider.max_content_chars.return_value = 50000
        provider.stream.return_value = json.dumps(ANALYSIS)
        events = []

        self._analyzer(store).analyze(post, provider, settings, on_event=events.append)
        provider.analyze.assert_not_called()
        assert provider.stream.call_args.args[3] == "pass1"

    def test_override_content(self, store, make_post, settings):
        post = make_post()
        provider = MagicMock()
        provider.get_slug.return_value = "deepseek"
        provider.max_content_chars.return_value = 50000
        provider.analyze.return_value = json.dumps(ANALYSIS)

        self._analyzer(store).analyze(post, provider, settings, override_content="<p>Live page text</p>")
        payload = provider.analyze.call_args.args[0]
        assert payload["page"]["content"] == "Live page text"
