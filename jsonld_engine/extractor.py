"""Content Extractor — picks the richest raw content available for a post.

Candidates are the stored body, the rendered body (shortcodes expanded),
page-builder data and, on request, the live published page.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import time
from dataclasses import dataclass

import requests
from bs4 import BeautifulSoup

from jsonld_engine.store import Post, SiteStore
from jsonld_engine.structure import to_plain_text

log = logging.getLogger(__name__)

MIN_CONTENT_LENGTH = 50
FETCH_TIMEOUT = 30
FETCH_USER_AGENT = "WP AI Schema Content Fetcher"

# Matches WordPress shortcode tags such as [vc_row ...] or [/vc_row]
_SHORTCODE_RE = re.compile(r"\[/?[a-z_\-]+(?:\s[^\]]*?)?\]", re.IGNORECASE)
# Strings in builder data that are never readable page text
_TECHNICAL_VALUE_RE = re.compile(r"^(https?://|#|data:|javascript:)", re.IGNORECASE)
_CONTENT_CONTAINER_RE = re.compile(r"content|main|primary|entry", re.IGNORECASE)
_WIDGET_CONTAINER_RE = re.compile(r"brxe-|elementor-widget-", re.IGNORECASE)


@dataclass
class ContentUnit:
    content: str
    source: str  # stored | rendered | builder:<name> | frontend-fetch
    plain_length: int = 0


@dataclass
class FetchResult:
    success: bool
    content: str = ""
    error: str = ""
    status_code: int | None = None


def strip_shortcodes(content: str) -> str:
    """Drop shortcode tags, keep whatever they wrap."""
    return _SHORTCODE_RE.sub("", content or "")


def flatten_to_text(value) -> str:
    """Join every readable string nested anywhere in ``value`` with spaces."""
    texts: list[str] = []

    def walk(node):
        if isinstance(node, dict):
            for child in node.values():
                walk(child)
        elif isinstance(node, (list, tuple)):
            for child in node:
                walk(child)
        elif isinstance(node, str) and node.strip() and not _TECHNICAL_VALUE_RE.match(node):
            texts.append(node)

    walk(value)
    return " ".join(texts)


def _decode_json(value):
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return None
    return value


# --- page builders ---

class BuilderExtractor:
    """One page builder: how to spot it and how to read its stored text."""

    name = ""
    label = ""
    # Meta keys holding the builder's own data; hashed for cache invalidation
    data_keys: tuple[str, ...] = ()

    def detect(self, post: Post, store: SiteStore) -> bool:
        raise NotImplementedError

    def extract(self, post: Post, store: SiteStore, render) -> str:
        raise NotImplementedError

    def data_blob(self, post: Post, store: SiteStore) -> str:
        parts = []
        for key in self.data_keys:
            value = store.get_post_meta(post.id, key, "")
            if value:
                parts.append(value if isinstance(value, str) else json.dumps(value, sort_keys=True))
        return "\n".join(parts)


class ElementorExtractor(BuilderExtractor):
    name = "elementor"
    label = "Elementor"
    data_keys = ("_elementor_data",)

    TEXT_FIELDS = (
        "title", "editor", "description", "text", "content",
        "heading", "sub_heading", "title_text", "description_text",
        "button_text", "link_text", "testimonial_content",
        "testimonial_name", "testimonial_job", "alert_title",
        "alert_description", "tab_title", "tab_content",
        "accordion_title", "accordion_content", "item_description",
        "field_label", "placeholder", "price", "period",
    )
    REPEATER_FIELDS = ("tabs", "items", "slides", "social_icon_list", "icon_list", "faq_list")

    def detect(self, post, store):
        return store.get_post_meta(post.id, "_elementor_edit_mode", "") == "builder"

    def extract(self, post, store, render):
        data = _decode_json(store.get_post_meta(post.id, "_elementor_data", ""))
        if not isinstance(data, list):
            return ""
        return self._walk(data)

    def _walk(self, elements: list) -> str:
        parts = []
        for element in elements:
            if not isinstance(element, dict):
                continue
            settings = element.get("settings")
            if isinstance(settings, dict):
                parts.extend(self._fields(settings))
                for repeater in self.REPEATER_FIELDS:
                    items = settings.get(repeater)
                    if not isinstance(items, list):
                        continue
                    for item in items:
                        if isinstance(item, dict):
                            parts.extend(self._fields(item))
            children = element.get("elements")
            if isinstance(children, list):
                parts.append(self._walk(children))
        return "\n\n".join(p for p in parts if p)

    def _fields(self, settings: dict) -> list[str]:
        return [settings[f] for f in self.TEXT_FIELDS if isinstance(settings.get(f), str)]


class BricksExtractor(BuilderExtractor):
    name = "bricks"
    label = "Bricks Builder"
    data_keys = ("_bricks_page_content_2",)

    TEXT_FIELDS = (
        "text", "title", "subtitle", "content", "description",
        "heading", "tag", "label", "button", "link_text",
        "author", "quote", "cite", "name", "job", "company",
        "price", "currency", "period", "features",
    )

    def detect(self, post, store):
        return bool(store.get_post_meta(post.id, "_bricks_page_content_2", ""))

    def extract(self, post, store, render):
        data = _decode_json(store.get_post_meta(post.id, "_bricks_page_content_2", ""))
        if not data:
            data = _decode_json(store.get_post_meta(post.id, "_bricks_page_content", ""))
        if not isinstance(data, list):
            return ""

        # Bricks stores a flat element list with parent references
        parts = []
        for element in data:
            settings = element.get("settings") if isinstance(element, dict) else None
            if not isinstance(settings, dict):
                continue
            for field in self.TEXT_FIELDS:
                value = settings.get(field)
                if isinstance(value, str):
                    parts.append(value)
                elif isinstance(value, (list, dict)):
                    parts.append(flatten_to_text(value))
            items = settings.get("items")
            for item in items if isinstance(items, list) else []:
                if isinstance(item, dict):
                    parts.append(flatten_to_text(item))
        return "\n\n".join(p for p in parts if p)


class BeaverExtractor(BuilderExtractor):
    name = "beaver"
    label = "Beaver Builder"
    data_keys = ("_fl_builder_data",)

    TEXT_FIELDS = (
        "text", "heading", "content", "description", "title",
        "btn_text", "link_text", "testimonial", "name", "company",
    )

    def detect(self, post, store):
        return bool(store.get_post_meta(post.id, "_fl_builder_enabled", ""))

    def extract(self, post, store, render):
        data = _decode_json(store.get_post_meta(post.id, "_fl_builder_data", ""))
        if isinstance(data, dict):
            nodes = list(data.values())
        elif isinstance(data, list):
            nodes = data
        else:
            nodes = []
        if not nodes:
            return ""
        parts = []
        for node in nodes:
            settings = node.get("settings") if isinstance(node, dict) else None
            if isinstance(settings, dict):
                parts.extend(settings[f] for f in self.TEXT_FIELDS if isinstance(settings.get(f), str))
        return "\n\n".join(p for p in parts if p)


class DiviExtractor(BuilderExtractor):
    """Divi stores shortcodes in the body, so the rendered body is its text."""

    name = "divi"
    label = "Divi Builder"

    def detect(self, post, store):
        return store.get_post_meta(post.id, "_et_pb_use_builder", "") == "on"

    def extract(self, post, store, render):
        return render(post.content)


class WPBakeryExtractor(BuilderExtractor):
    name = "wpbakery"
    label = "WPBakery"

    def detect(self, post, store):
        return "[vc_row" in (post.content or "")

    def extract(self, post, store, render):
        return render(post.content)


class OxygenExtractor(BuilderExtractor):
    name = "oxygen"
    label = "Oxygen Builder"
    data_keys = ("ct_builder_shortcodes",)

    def detect(self, post, store):
        return bool(store.get_post_meta(post.id, "ct_builder_shortcodes", ""))

    def extract(self, post, store, render):
        return render(store.get_post_meta(post.id, "ct_builder_shortcodes", "") or "")


class BrizyExtractor(BuilderExtractor):
    name = "brizy"
    label = "Brizy"
    data_keys = ("brizy_post_compiled_html", "brizy_post_editor_data")

    def detect(self, post, store):
        return bool(store.get_post_meta(post.id, "brizy_post_uid", ""))

    def extract(self, post, store, render):
        compiled = store.get_post_meta(post.id, "brizy_post_compiled_html", "")
        if compiled:
            return compiled
        editor_data = _decode_json(store.get_post_meta(post.id, "brizy_post_editor_data", ""))
        if isinstance(editor_data, (dict, list)):
            return flatten_to_text(editor_data)
        return ""


DEFAULT_BUILDERS = (
    ElementorExtractor,
    BricksExtractor,
    BeaverExtractor,
    DiviExtractor,
    WPBakeryExtractor,
    OxygenExtractor,
    BrizyExtractor,
)


# --- extractor ---

class ContentExtractor:
    """Reads post content from every available source and keeps the richest."""

    def __init__(self, store: SiteStore, builders=None, renderer=None, session=None):
        self.store = store
        self.builders: list[BuilderExtractor] = (
            list(builders) if builders is not None else [cls() for cls in DEFAULT_BUILDERS]
        )
        self.render = renderer or strip_shortcodes
        self.session = session or requests.Session()

    def register_builder(self, builder: BuilderExtractor, index: int | None = None):
        """Add a builder; ``index`` sets its detection priority (default: last)."""
        if index is None:
            self.builders.append(builder)
        else:
            self.builders.insert(index, builder)

    def detect_page_builder(self, post: Post) -> BuilderExtractor | None:
        for builder in self.builders:
            if builder.detect(post, self.store):
                return builder
        return None

    def get_builder_label(self, post: Post) -> str:
        builder = self.detect_page_builder(post)
        return builder.label if builder else "None detected"

    def get_rendered_content(self, post: Post) -> str:
        return self.render(post.content or "")

    def get_page_builder_content(self, post: Post) -> str:
        builder = self.detect_page_builder(post)
        if builder is None:
            return ""
        return builder.extract(post, self.store, self.render) or ""

    def builder_fingerprint(self, post: Post) -> str:
        """md5 of the active builder's stored data, "" when there is none."""
        builder = self.detect_page_builder(post)
        blob = builder.data_blob(post, self.store) if builder else ""
        return hashlib.md5(blob.encode("utf-8")).hexdigest() if blob else ""

    def _candidates(self, post: Post) -> list[ContentUnit]:
        candidates = [
            ContentUnit(post.content or "", "stored"),
            ContentUnit(self.get_rendered_content(post), "rendered"),
        ]
        builder = self.detect_page_builder(post)
        if builder is not None:
            candidates.append(
                ContentUnit(builder.extract(post, self.store, self.render) or "", f"builder:{builder.name}")
            )
        for unit in candidates:
            unit.plain_length = len(to_plain_text(unit.content))
        return candidates

    def get_best_content(self, post: Post, fetch_frontend: bool = False) -> ContentUnit:
        """Longest candidate by plain-text length; earlier sources win ties."""
        candidates = self._candidates(post)

        if fetch_frontend:
            fetched = self.fetch_frontend_content(post)
            if fetched.success:
                unit = ContentUnit(fetched.content, "frontend-fetch")
                unit.plain_length = len(to_plain_text(unit.content))
                candidates.append(unit)
            else:
                log.warning(f"Frontend fetch failed for post #{post.id}: {fetched.error}")

        best = candidates[0]
        for unit in candidates[1:]:
            if unit.plain_length > best.plain_length:
                best = unit

        log.debug(
            f"Content source for post #{post.id}: {best.source} ({best.plain_length} chars). "
            + ", ".join(f"{u.source}: {u.plain_length}" for u in candidates)
        )
        return best

    def is_content_empty(self, post: Post) -> bool:
        if len(to_plain_text(post.content)) >= MIN_CONTENT_LENGTH:
            return False
        builder_content = self.get_page_builder_content(post)
        return len(to_plain_text(builder_content)) < MIN_CONTENT_LENGTH

    def fetch_frontend_content(self, post: Post) -> FetchResult:
        """GET the published page and return its main content region."""
        url = self.store.get_permalink(post.id)
        if not url:
            return FetchResult(False, error="Could not get post URL.")

        try:
            start = time.time()
            resp = self.session.get(
                url, timeout=FETCH_TIMEOUT, headers={"User-Agent": FETCH_USER_AGENT}
            )
            elapsed = time.time() - start
        except requests.exceptions.RequestException as e:
            return FetchResult(False, error=f"Could not fetch page: {e}")

        log.info(
            f"GET {url} -> {resp.status_code}",
            extra={
                "endpoint": url,
                "method": "GET",
                "status_code": resp.status_code,
                "response_time": round(elapsed, 3),
            },
        )
        if resp.status_code != 200:
            return FetchResult(
                False, error=f"HTTP {resp.status_code} error fetching page.", status_code=resp.status_code
            )
        return FetchResult(True, content=extract_main_content(resp.text), status_code=200)

    def get_content_info(self, post: Post) -> dict:
        builder = self.detect_page_builder(post)
        candidates = {unit.source.split(":")[0]: unit.plain_length for unit in self._candidates(post)}
        best = self.get_best_content(post)
        return {
            "has_content": not self.is_content_empty(post),
            "builder": builder.name if builder else None,
            "builder_label": builder.label if builder else "None detected",
            "standard_length": candidates.get("stored", 0),
            "rendered_length": candidates.get("rendered", 0),
            "builder_length": candidates.get("builder", 0),
            "best_source": best.source,
            "can_fetch_frontend": post.status == "publish",
        }


def _has_container_marker(tag, pattern) -> bool:
    classes = tag.get("class") or []
    return bool(pattern.search(tag.get("id") or "")) or any(pattern.search(c) for c in classes)


def extract_main_content(html: str) -> str:
    """Inner HTML of the most likely main content region of a full page."""
    soup = BeautifulSoup(html, "html.parser")

    region = (
        soup.find("main")
        or soup.find("article")
        or soup.find(lambda t: t.name == "div" and _has_container_marker(t, _CONTENT_CONTAINER_RE))
        or soup.find(lambda t: t.name == "div" and _has_container_marker(t, _WIDGET_CONTAINER_RE))
    )
    if region is not None:
        return region.decode_contents()

    for tag in soup.find_all(["header", "footer", "nav", "aside", "script", "style"]):
        if not tag.decomposed:
            tag.decompose()
    body = soup.find("body")
    return body.decode_contents() if body is not None else str(soup)
