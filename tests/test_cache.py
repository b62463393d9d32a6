"""Tests for the cache gate: hashing, freshness and stored fields."""

import pytest

from jsonld_engine.cache import (
    ERROR_KEY,
    ERROR_KIND_KEY,
    STATUS_KEY,
    TYPE_HINT_KEY,
    CacheGate,
)
from jsonld_engine.extractor import ContentExtractor
from jsonld_engine.store import Post


@pytest.fixture
def cache(store, clock):
    return CacheGate(store, ContentExtractor(store), clock=clock)


class TestHash:
    def test_stable(self, cache, make_post, settings):
        post = make_post()
        assert cache.generate_hash(post, settings) == cache.generate_hash(post, settings)
        assert len(cache.generate_hash(post, settings)) == 64

    @pytest.mark.parametrize("field, value", [
        ("content", "<p>" + "B" * 60 + "</p>"),
        ("title", "Gutter Cleaning"),
        ("excerpt", "New excerpt"),
        ("modified", "2026-02-02 12:00:00"),
    ])
    def test_post_fields_change_hash(self, cache, make_post, settings, field, value):
        post = make_post()
        before = cache.generate_hash(post, settings)
        changed = Post(**{**post.__dict__, field: value})
        assert cache.generate_hash(changed, settings) != before

    @pytest.mark.parametrize("key, value", [
        ("provider", "openai"),
        ("deepseek_model", "deepseek-reasoner"),
        ("settings_version", "2.0"),
    ])
    def test_settings_change_hash(self, cache, make_post, settings, key, value):
        post = make_post()
        before = cache.generate_hash(post, settings)
        settings[key] = value
        assert cache.generate_hash(post, settings) != before

    def test_type_hint_changes_hash(self, cache, make_post, settings, store):
        post = make_post()
        before = cache.generate_hash(post, settings)
        store.update_post_meta(post.id, TYPE_HINT_KEY, "Service")
        assert cache.generate_hash(post, settings) != before

    def test_unrelated_settings_do_not(self, cache, make_post, settings):
        post = make_post()
        before = cache.generate_hash(post, settings)
        settings["output_location"] = "after_content"
        settings["business_name"] = "Acme"
        assert cache.generate_hash(post, settings) == before


class TestShouldRegenerate:
    def test_no_schema(self, cache, make_post, settings):
        assert cache.should_regenerate(make_post(), settings) is True

    def test_current_schema(self, cache, make_post, settings):
        post = make_post()
        cache.save_schema(post, '{"@context":"https://schema.org"}', "WebPage", cache.generate_hash(post, settings))
        assert cache.should_regenerate(post, settings) is False
        assert cache.should_regenerate(post, settings, force=True) is True

    def test_stale_schema(self, cache, make_post, settings, store):
        post = make_post()
        cache.save_schema(post, "{}", "WebPage", cache.generate_hash(post, settings))
        post.title = "Renamed"
        store.save_post(post)
        assert cache.should_regenerate(post, settings) is True


class TestStoredFields:
    def test_save_schema_clears_error(self, cache, make_post, settings, store, clock):
        post = make_post()
        cache.save_error(post.id, "boom", "transport")
        cache.save_schema(post, "{}", "WebPage", "abc")
        status = cache.get_cache_status(post, settings)
        assert status.status == "ok"
        assert status.error == ""
        assert status.generated_at == int(clock())
        assert store.get_post_meta(post.id, ERROR_KIND_KEY) == ""

    def test_error_keeps_last_good_schema(self, cache, make_post, store):
        post = make_post()
        cache.save_schema(post, '{"a":1}', "Thing", "abc")
        cache.save_error(post.id, "Pass 2 failed: timeout", "transport")
        assert cache.get_schema(post.id) == '{"a":1}'
        assert store.get_post_meta(post.id, STATUS_KEY) == "error"
        assert store.get_post_meta(post.id, ERROR_KEY) == "Pass 2 failed: timeout"

    def test_clear_keeps_type_hint(self, cache, make_post, store):
        post = make_post()
        store.update_post_meta(post.id, TYPE_HINT_KEY, "FAQPage")
        cache.save_schema(post, "{}", "FAQPage", "abc")
        cache.clear(post.id)
        assert cache.get_schema(post.id) == ""
        assert store.get_post_meta(post.id, TYPE_HINT_KEY) == "FAQPage"
