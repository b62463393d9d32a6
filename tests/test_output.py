"""Tests for schema rendering and SEO plugin conflict detection."""

import pytest

from jsonld_engine.cache import SCHEMA_KEY, TYPE_HINT_KEY
from jsonld_engine.output import ConflictDetector, SchemaRenderer

SCHEMA = '{"@context":"https://schema.org","@type":"WebPage"}'
TAG = f'<script type="application/ld+json">{SCHEMA}</script>'


@pytest.fixture
def post_with_schema(make_post, store):
    post = make_post()
    store.update_post_meta(post.id, SCHEMA_KEY, SCHEMA)
    return post


class TestConflictDetector:
    def test_nothing_detected(self):
        detector = ConflictDetector()
        assert detector.get_detected_plugin() is None
        assert detector.is_seo_schema_active() is False

    def test_priority_order(self):
        """Yoast wins over RankMath when both are active."""
        detector = ConflictDetector({"rankmath": True, "yoast": True})
        assert detector.get_detected_plugin() == "Yoast SEO"

    def test_schema_disabled(self):
        detector = ConflictDetector({"yoast": {"active": True, "schema_enabled": False}})
        assert detector.get_detected_plugin() == "Yoast SEO"
        assert detector.is_seo_schema_active() is False

    def test_should_output_without_skip(self, settings):
        detector = ConflictDetector({"seopress": True})
        assert detector.should_output(1, settings) == (True, "")

    def test_skipped_when_plugin_schema_active(self, settings):
        settings["skip_if_schema_exists"] = True
        detector = ConflictDetector({"aioseo": True})
        assert detector.should_output(1, settings) == (False, "Skipped - All in One SEO schema is active")

    def test_override_allows_output(self, settings):
        settings["skip_if_schema_exists"] = True
        detector = ConflictDetector({"yoast": True}, output_overrides={"yoast": lambda post_id: post_id == 7})
        assert detector.should_output(7, settings) == (True, "")
        assert detector.should_output(8, settings)[0] is False

    def test_admin_notice(self, settings):
        detector = ConflictDetector({"rankmath": True})
        assert detector.get_admin_notice(settings) == (
            'RankMath detected with schema output enabled. Enable "Skip if schema exists" '
            "in settings to prevent duplicate schema."
        )
        settings["skip_if_schema_exists"] = True
        assert detector.get_admin_notice(settings) is None

    def test_debug_comment_escaped(self):
        assert ConflictDetector.get_debug_comment("a <b>") == "<!-- AI JSON-LD: a &lt;b&gt; -->"


class TestRenderer:
    def test_head_output(self, store, post_with_schema, settings):
        assert SchemaRenderer(store).render_head(post_with_schema.id, settings) == TAG

    def test_head_disabled_for_after_content(self, store, post_with_schema, settings):
        settings["output_location"] = "after_content"
        renderer = SchemaRenderer(store)
        assert renderer.render_head(post_with_schema.id, settings) == ""
        assert renderer.render_after_content(post_with_schema.id, "<p>Body</p>", settings) == "<p>Body</p>\n" + TAG

    def test_after_content_untouched_in_head_mode(self, store, post_with_schema, settings):
        assert SchemaRenderer(store).render_after_content(post_with_schema.id, "<p>Body</p>", settings) == "<p>Body</p>"

    def test_post_type_not_enabled(self, store, make_post, settings):
        post = make_post(post_type="post")
        store.update_post_meta(post.id, SCHEMA_KEY, SCHEMA)
        assert SchemaRenderer(store).render_head(post.id, settings) == ""

    def test_no_schema(self, store, make_post, settings):
        post = make_post()
        assert SchemaRenderer(store).render_head(post.id, settings) == ""

    def test_invalid_json(self, store, make_post, settings):
        post = make_post()
        store.update_post_meta(post.id, SCHEMA_KEY, "{broken")
        renderer = SchemaRenderer(store)
        assert renderer.render_head(post.id, settings) == ""
        settings["debug_logging"] = True
        assert renderer.render_head(post.id, settings) == "<!-- AI JSON-LD: Invalid JSON in stored schema -->"

    def test_conflict_debug_comment(self, store, post_with_schema, settings):
        settings.update({"skip_if_schema_exists": True, "debug_logging": True, "seo_plugins": {"yoast": True}})
        assert SchemaRenderer(store).render_head(post_with_schema.id, settings) == (
            "<!-- AI JSON-LD: Skipped - Yoast SEO schema is active -->"
        )

    def test_output_filter(self, store, post_with_schema, settings):
        renderer = SchemaRenderer(store, output_filter=lambda post_id: False)
        assert renderer.render_head(post_with_schema.id, settings) == ""

    def test_schema_accessors(self, store, post_with_schema):
        store.update_post_meta(post_with_schema.id, TYPE_HINT_KEY, "Service")
        renderer = SchemaRenderer(store)
        assert renderer.has_schema(post_with_schema.id) is True
        assert renderer.get_schema(post_with_schema.id) == SCHEMA
        renderer.delete_schema(post_with_schema.id)
        assert renderer.has_schema(post_with_schema.id) is False
        assert renderer.get_schema(post_with_schema.id) is None
        assert store.get_post_meta(post_with_schema.id, TYPE_HINT_KEY) == "Service"
