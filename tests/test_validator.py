"""Tests for JSON-LD extraction and validation."""

import json

from jsonld_engine.validator import (
    MAX_SIZE,
    extract_json,
    get_schema_type,
    is_valid_json,
    pretty_print,
    strip_html,
    unresolved_references,
    validate,
)


class TestExtract:
    def test_noisy_fenced_reply(self):
        """Prose and a code fence around the JSON are discarded."""
        raw = 'Sure! Here is the schema:\n```json\n{"@context": "https://schema.org", "@type": "WebPage"}\n```\nLet me know.'
        result = validate(raw)
        assert result.valid is True
        assert result.schema == '{"@context":"https://schema.org","@type":"WebPage"}'
        assert result.schema_type == "WebPage"

    def test_bare_object_in_prose(self):
        assert extract_json('The answer is {"a": 1} ok') == '{"a": 1}'

    def test_nothing_found(self):
        assert extract_json("no json here") == ""

    def test_script_tags_removed(self):
        raw = '<script>track()</script>{"@context": "https://schema.org", "@type": "Thing"}'
        assert strip_html(raw) == '{"@context": "https://schema.org", "@type": "Thing"}'

    def test_json_ld_script_unwrapped(self):
        """A reply wrapped in a JSON-LD script tag keeps its payload."""
        raw = '<script type="application/ld+json">{"@context":"https://schema.org","@type":"WebPage"}</script>'
        result = validate(raw)
        assert result.valid is True
        assert result.schema == '{"@context":"https://schema.org","@type":"WebPage"}'
        assert result.schema_type == "WebPage"

    def test_json_ld_script_kept_other_scripts_dropped(self):
        raw = (
            '<script>var a = {"b": 1};</script>\n'
            '<script type="application/ld+json">\n{"@context": "https://schema.org", "@type": "Service"}\n</script>'
        )
        assert validate(raw).schema_type == "Service"


class TestValidate:
    def test_empty(self):
        result = validate("")
        assert result.valid is False
        assert result.error == "Empty or no valid JSON found in response."

    def test_not_json(self):
        assert validate("not json").error == "Empty or no valid JSON found in response."

    def test_missing_context(self):
        assert validate('{"@type": "WebPage"}').error == "Schema must include @context."

    def test_graph_must_be_array(self):
        result = validate('{"@context": "https://schema.org", "@graph": {"@type": "WebPage"}}')
        assert result.error == "@graph must be an array."

    def test_too_large(self):
        big = json.dumps({"@context": "https://schema.org", "description": "x" * MAX_SIZE})
        result = validate(big)
        assert result.valid is False
        assert result.error == "Schema exceeds maximum size of 50 KB."

    def test_array_of_nodes(self):
        raw = '[{"@context": "https://schema.org", "@type": "Organization"}, {"@type": "WebSite"}]'
        result = validate(raw)
        assert result.valid is True
        assert result.schema_type == "Organization"

    def test_unicode_and_slashes_kept(self):
        result = validate('{"@context": "https://schema.org", "@type": "Place", "name": "Café / Bar"}')
        assert '"name":"Café / Bar"' in result.schema

    def test_unresolved_reference_is_a_warning(self):
        raw = json.dumps({
            "@context": "https://schema.org",
            "@graph": [
                {"@type": "WebPage", "@id": "https://acme.test/#page", "publisher": {"@id": "https://acme.test/#org"}},
            ],
        })
        result = validate(raw)
        assert result.valid is True
        assert result.warnings == ["@id reference https://acme.test/#org does not match any node in the document"]

    def test_unexpected_context_warning(self):
        result = validate('{"@context": "https://example.org", "@type": "Thing"}')
        assert result.valid is True
        assert result.warnings == ["Unexpected @context: https://example.org"]


class TestSchemaType:
    def test_graph_first_typed_node(self):
        assert get_schema_type({"@graph": [{"name": "x"}, {"@type": ["LocalBusiness", "Roofer"]}]}) == "LocalBusiness"

    def test_graph_without_types(self):
        assert get_schema_type({"@graph": [{"name": "x"}]}) == "@graph"

    def test_references(self):
        doc = {"@graph": [{"@id": "#a", "@type": "Thing", "knows": {"@id": "#a"}}]}
        assert unresolved_references(doc) == []


class TestHelpers:
    def test_is_valid_json(self):
        assert is_valid_json('{"a": 1}') is True
        assert is_valid_json("{broken") is False
        assert is_valid_json("") is False

    def test_pretty_print(self):
        assert pretty_print('{"a":1}') == '{\n    "a": 1\n}'
        assert pretty_print("oops") == "oops"
