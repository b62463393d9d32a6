"""Schema output — turns the cached schema into the ``<script>`` tag served with a page."""

from __future__ import annotations

import html
import logging

from jsonld_engine import validator
from jsonld_engine.cache import CACHE_KEYS, SCHEMA_KEY
from jsonld_engine.store import SiteStore

log = logging.getLogger(__name__)

# slug -> display name, in detection priority order
SEO_PLUGINS = {
    "yoast": "Yoast SEO",
    "rankmath": "RankMath",
    "aioseo": "All in One SEO",
    "seopress": "SEOPress",
}


class ConflictDetector:
    """Detects SEO plugins that print their own JSON-LD.

    ``plugins`` maps a slug from :data:`SEO_PLUGINS` to either a bool (plugin
    active, schema assumed on) or ``{"active": bool, "schema_enabled": bool}``.
    It defaults to the ``seo_plugins`` setting.
    """

    def __init__(self, plugins: dict | None = None, output_overrides: dict | None = None):
        self.plugins = plugins or {}
        # slug -> callable(post_id) -> bool, allows output alongside that plugin
        self.output_overrides = output_overrides or {}

    @classmethod
    def from_settings(cls, settings: dict) -> "ConflictDetector":
        return cls(settings.get("seo_plugins") or {})

    def _flags(self, slug: str) -> tuple[bool, bool]:
        value = self.plugins.get(slug)
        if isinstance(value, dict):
            active = bool(value.get("active"))
            return active, active and bool(value.get("schema_enabled", True))
        return bool(value), bool(value)

    def has_plugin(self, slug: str) -> bool:
        return self._flags(slug)[0]

    def _detected_slug(self) -> str | None:
        for slug in SEO_PLUGINS:
            if self.has_plugin(slug):
                return slug
        return None

    def get_detected_plugin(self) -> str | None:
        slug = self._detected_slug()
        return SEO_PLUGINS[slug] if slug else None

    def is_seo_schema_active(self) -> bool:
        """Schema state of the first detected plugin only."""
        slug = self._detected_slug()
        return self._flags(slug)[1] if slug else False

    def should_output(self, post_id: int, settings: dict) -> tuple[bool, str]:
        if not settings.get("skip_if_schema_exists"):
            return True, ""
        if not self.is_seo_schema_active():
            return True, ""

        override = self.output_overrides.get(self._detected_slug())
        if override is not None and override(post_id):
            return True, ""
        return False, f"Skipped - {self.get_detected_plugin()} schema is active"

    def get_admin_notice(self, settings: dict) -> str | None:
        plugin = self.get_detected_plugin()
        if not plugin:
            return None
        if self.is_seo_schema_active() and not settings.get("skip_if_schema_exists"):
            return (
                f"{plugin} detected with schema output enabled. "
                'Enable "Skip if schema exists" in settings to prevent duplicate schema.'
            )
        return None

    @staticmethod
    def get_debug_comment(reason: str) -> str:
        return f"<!-- AI JSON-LD: {html.escape(reason, quote=False)} -->"


class SchemaRenderer:
    def __init__(self, store: SiteStore, conflict_detector: ConflictDetector | None = None, output_filter=None):
        self.store = store
        self.conflict_detector = conflict_detector
        # callable(post_id) -> bool; False suppresses output
        self.output_filter = output_filter

    def _detector(self, settings: dict) -> ConflictDetector:
        return self.conflict_detector or ConflictDetector.from_settings(settings)

    def get_schema_output(self, post_id: int, settings: dict) -> str:
        post = self.store.get_post(post_id)
        if post is None:
            return ""
        if post.post_type not in (settings.get("enabled_post_types") or ["page"]):
            return ""

        debug = bool(settings.get("debug_logging"))
        detector = self._detector(settings)
        allowed, reason = detector.should_output(post_id, settings)
        if not allowed:
            return detector.get_debug_comment(reason) if debug else ""

        schema = self.get_schema(post_id)
        if not schema:
            return ""
        if not validator.is_valid_json(schema):
            log.warning(f"Stored schema for post #{post_id} is not valid JSON")
            return detector.get_debug_comment("Invalid JSON in stored schema") if debug else ""

        if self.output_filter is not None and not self.output_filter(post_id):
            return detector.get_debug_comment("Output disabled by filter") if debug else ""

        return f'<script type="application/ld+json">{schema}</script>'

    def render_head(self, post_id: int, settings: dict) -> str:
        if settings.get("output_location", "head") != "head":
            return ""
        return self.get_schema_output(post_id, settings)

    def render_after_content(self, post_id: int, content: str, settings: dict) -> str:
        if settings.get("output_location") != "after_content":
            return content
        output = self.get_schema_output(post_id, settings)
        if output:
            content += "\n" + output
        return content

    def has_schema(self, post_id: int) -> bool:
        return bool(self.get_schema(post_id))

    def get_schema(self, post_id: int) -> str | None:
        return self.store.get_post_meta(post_id, SCHEMA_KEY) or None

    def delete_schema(self, post_id: int):
        for key in CACHE_KEYS:
            self.store.delete_post_meta(post_id, key)
