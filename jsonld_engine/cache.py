"""Cache Gate — decides whether a post needs a fresh schema and owns the stored fields."""

from __future__ import annotations

import hashlib
import json
import logging
import time
from dataclasses import dataclass

from jsonld_engine.extractor import ContentExtractor
from jsonld_engine.settings import get_model
from jsonld_engine.store import Post, SiteStore

log = logging.getLogger(__name__)

SCHEMA_KEY = "_wp_ai_schema_schema"
HASH_KEY = "_wp_ai_schema_schema_hash"
GENERATED_KEY = "_wp_ai_schema_schema_last_generated"
STATUS_KEY = "_wp_ai_schema_schema_status"
ERROR_KEY = "_wp_ai_schema_schema_error"
ERROR_KIND_KEY = "_wp_ai_schema_schema_error_kind"
DETECTED_TYPE_KEY = "_wp_ai_schema_detected_type"
TYPE_HINT_KEY = "_wp_ai_schema_type_hint"
ANALYSIS_KEY = "_wp_ai_schema_analysis"
GENERATION_MODE_KEY = "_wp_ai_schema_generation_mode"

STATUS_OK = "ok"
STATUS_ERROR = "error"

# Everything clear() removes. The type hint is an editor choice and stays.
CACHE_KEYS = (
    SCHEMA_KEY,
    HASH_KEY,
    GENERATED_KEY,
    STATUS_KEY,
    ERROR_KEY,
    ERROR_KIND_KEY,
    DETECTED_TYPE_KEY,
    ANALYSIS_KEY,
    GENERATION_MODE_KEY,
)


@dataclass
class CacheStatus:
    has_schema: bool
    is_current: bool
    generated_at: int = 0
    status: str = ""
    error: str = ""


class CacheGate:
    def __init__(self, store: SiteStore, extractor: ContentExtractor, clock=time.time):
        self.store = store
        self.extractor = extractor
        self.clock = clock

    def generate_hash(self, post: Post, settings: dict) -> str:
        """SHA-256 over every input that should invalidate a stored schema."""
        provider = settings.get("provider", "deepseek")
        type_hint = self.store.get_post_meta(post.id, TYPE_HINT_KEY) or "auto"
        hash_input = json.dumps(
            {
                "content": self.extractor.get_best_content(post).content,
                "builder_meta": self.extractor.builder_fingerprint(post),
                "title": post.title,
                "excerpt": post.excerpt,
                "modified": post.modified,
                "settings_version": settings.get("settings_version", "1.0"),
                "provider": provider,
                "model": get_model(settings),
                "type_hint": type_hint,
            },
            ensure_ascii=False,
        )
        return hashlib.sha256(hash_input.encode("utf-8")).hexdigest()

    def get_schema(self, post_id: int) -> str:
        return self.store.get_post_meta(post_id, SCHEMA_KEY) or ""

    def should_regenerate(self, post: Post, settings: dict, force: bool = False) -> bool:
        if force:
            return True
        if not self.get_schema(post.id):
            return True
        stored_hash = self.store.get_post_meta(post.id, HASH_KEY)
        return stored_hash != self.generate_hash(post, settings)

    def get_cache_status(self, post: Post, settings: dict) -> CacheStatus:
        has_schema = bool(self.get_schema(post.id))
        stored_hash = self.store.get_post_meta(post.id, HASH_KEY)
        is_current = bool(has_schema and stored_hash and stored_hash == self.generate_hash(post, settings))
        generated = self.store.get_post_meta(post.id, GENERATED_KEY)
        return CacheStatus(
            has_schema=has_schema,
            is_current=is_current,
            generated_at=int(generated) if generated else 0,
            status=self.store.get_post_meta(post.id, STATUS_KEY) or "",
            error=self.store.get_post_meta(post.id, ERROR_KEY) or "",
        )

    def save_schema(self, post: Post, schema: str, schema_type: str, content_hash: str):
        self.store.update_post_meta(post.id, SCHEMA_KEY, schema)
        self.store.update_post_meta(post.id, HASH_KEY, content_hash)
        self.store.update_post_meta(post.id, GENERATED_KEY, int(self.clock()))
        self.store.update_post_meta(post.id, STATUS_KEY, STATUS_OK)
        self.store.update_post_meta(post.id, DETECTED_TYPE_KEY, schema_type)
        self.store.delete_post_meta(post.id, ERROR_KEY)
        self.store.delete_post_meta(post.id, ERROR_KIND_KEY)
        log.info(f"Saved {schema_type or 'untyped'} schema for post #{post.id} ({len(schema)} bytes)")

    def save_error(self, post_id: int, message: str, kind: str = "error"):
        """Record a failure. The last good schema keeps serving."""
        self.store.update_post_meta(post_id, STATUS_KEY, STATUS_ERROR)
        self.store.update_post_meta(post_id, ERROR_KEY, message)
        self.store.update_post_meta(post_id, ERROR_KIND_KEY, kind)

    def clear(self, post_id: int):
        for key in CACHE_KEYS:
            self.store.delete_post_meta(post_id, key)
        log.info(f"Cleared cached schema for post #{post_id}")
