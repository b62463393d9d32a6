"""Schema Prompt Builder — assembles generation payloads and renders LLM messages.

Payloads are plain dicts shaped like the JSON the model sees. Messages are
rendered from ``prompts/*.md`` system prompts and ``templates/*.txt`` Jinja2
user-message templates.
"""

from __future__ import annotations

import json
import logging
import os

from jinja2 import Environment, FileSystemLoader

from jsonld_engine.cache import TYPE_HINT_KEY
from jsonld_engine.extractor import ContentExtractor
from jsonld_engine.reference import SchemaReference
from jsonld_engine.settings import validate_type_hint
from jsonld_engine.store import Post, SiteStore
from jsonld_engine.structure import count_markers, to_structured_text
from jsonld_engine.truncator import DEFAULT_MAX_CHARS, TruncationResult, truncate, truncation_indicator

log = logging.getLogger(__name__)

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DEFAULT_PROMPTS_DIR = os.path.join(PROJECT_ROOT, "prompts")
DEFAULT_TEMPLATES_DIR = os.path.join(PROJECT_ROOT, "templates")

DAY_CODES = {
    "monday": "Mo",
    "tuesday": "Tu",
    "wednesday": "We",
    "thursday": "Th",
    "friday": "Fr",
    "saturday": "Sa",
    "sunday": "Su",
}

# (analysis key, label) pairs listed under "ITEMS TO INCLUDE IN SCHEMA"
_FOUND_ITEM_LABELS = (
    ("testimonials", "testimonials (MUST create Review for each)"),
    ("services", "services"),
    ("faqs", "FAQ items"),
    ("team_members", "team members"),
    ("products", "products"),
)


def pretty_json(value) -> str:
    return json.dumps(value, indent=4, ensure_ascii=False)


def prune_empty(value):
    """Recursively drop None, False, empty strings and empty containers.

    Numbers are kept, zero included.
    """
    if isinstance(value, dict):
        pruned = {k: prune_empty(v) for k, v in value.items()}
        return {k: v for k, v in pruned.items() if not _is_empty(v)}
    if isinstance(value, list):
        pruned = [prune_empty(v) for v in value]
        return [v for v in pruned if not _is_empty(v)]
    return value


def _is_empty(value) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, (str, list, dict)):
        return len(value) == 0
    return False


def build_business_data(settings: dict) -> dict | None:
    """Verified business profile from settings, or None when nothing is set."""
    locations_setting = settings.get("business_locations") or []
    has_data = any(
        settings.get(key) for key in ("business_name", "business_email", "business_phone")
    ) or bool(locations_setting)
    if not has_data:
        return None

    business = {
        "name": settings.get("business_name", ""),
        "description": settings.get("business_description", ""),
        "logo": settings.get("business_logo", ""),
        "email": settings.get("business_email", ""),
        "phone": settings.get("business_phone", ""),
        "foundingDate": settings.get("business_founding_date", ""),
    }

    social_links = settings.get("business_social_links") or {}
    if isinstance(social_links, dict):
        same_as = [url for url in social_links.values() if url]
    else:
        same_as = [url for url in social_links if url]
    if same_as:
        business["sameAs"] = same_as

    locations = [_location_data(loc) for loc in locations_setting if isinstance(loc, dict)]
    locations = [loc for loc in locations if loc]
    if locations:
        business["locations"] = locations

    return prune_empty(business)


def _location_data(location: dict) -> dict:
    data = {
        "name": location.get("name", ""),
        "address": {
            "streetAddress": location.get("street", ""),
            "addressLocality": location.get("city", ""),
            "addressRegion": location.get("state", ""),
            "postalCode": location.get("postal_code", ""),
            "addressCountry": location.get("country", ""),
        },
        "telephone": location.get("phone", ""),
        "email": location.get("email", ""),
    }
    hours = location.get("hours") or {}
    opening_hours = {
        DAY_CODES[day]: time_range
        for day, time_range in hours.items()
        if time_range and day in DAY_CODES
    }
    if opening_hours:
        data["openingHours"] = opening_hours
    return prune_empty(data)


def analysis_business_data(settings: dict) -> dict | None:
    """The smaller business block sent with Pass 1."""
    if not any(settings.get(key) for key in ("business_name", "business_email", "business_phone")):
        return None
    return {
        "name": settings.get("business_name", ""),
        "description": settings.get("business_description", ""),
        "email": settings.get("business_email", ""),
        "phone": settings.get("business_phone", ""),
    }


def found_items(analysis: dict) -> list[str]:
    items = []
    for key, label in _FOUND_ITEM_LABELS:
        entries = analysis.get(key)
        if entries:
            items.append(f"{len(entries)} {label}")
    return items


class PromptRenderer:
    """Turns payloads into chat messages."""

    ANALYSIS_SYSTEM_PROMPT = "analysis-system-prompt.md"
    SCHEMA_SYSTEM_PROMPT = "schema-system-prompt.md"
    FROM_ANALYSIS_SYSTEM_PROMPT = "schema-from-analysis-system-prompt.md"

    def __init__(self, prompts_dir=DEFAULT_PROMPTS_DIR, templates_dir=DEFAULT_TEMPLATES_DIR):
        self.prompts_dir = prompts_dir
        self.env = Environment(
            loader=FileSystemLoader(templates_dir),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["pretty_json"] = pretty_json
        self._prompts: dict[str, str] = {}

    def system_prompt(self, name: str) -> str:
        if name not in self._prompts:
            path = os.path.join(self.prompts_dir, name)
            with open(path) as f:
                content = f.read().strip()
            log.debug(f"Loaded system prompt from {path} ({len(content)} chars)")
            self._prompts[name] = content
        return self._prompts[name]

    def analysis_messages(self, payload: dict) -> list[dict]:
        page = payload.get("page", {})
        content = page.get("content", "")
        user = self.env.get_template("analysis-user-prompt.txt").render(
            page=page,
            site=payload.get("site", {}),
            business=payload.get("businessData"),
            type_hint=payload.get("typeHint", "auto"),
            markers=count_markers(content),
            truncation_note=truncation_indicator(len(content), page.get("originalLength", 0)),
        )
        return [
            {"role": "system", "content": self.system_prompt(self.ANALYSIS_SYSTEM_PROMPT)},
            {"role": "user", "content": user},
        ]

    def schema_messages(self, payload: dict) -> list[dict]:
        """Pass 2 messages; picks the from-analysis prompts when the payload carries an analysis."""
        if payload.get("isFromAnalysis"):
            system = self.system_prompt(self.FROM_ANALYSIS_SYSTEM_PROMPT)
            analysis = payload.get("analyzedContent") or {}
            user = self.env.get_template("schema-from-analysis-user-prompt.txt").render(
                page=payload.get("page", {}),
                site=payload.get("site", {}),
                business=payload.get("business"),
                analysis=analysis,
                type_hint=payload.get("typeHint", "auto"),
                found_items=found_items(analysis),
            )
        else:
            system = self.system_prompt(self.SCHEMA_SYSTEM_PROMPT)
            reference = payload.get("schemaReference") or ""
            if reference:
                system += (
                    "\n\nSCHEMA.ORG REFERENCE:\nUse the following schema types and properties:\n\n"
                    + reference
                )
            page = payload.get("page", {})
            user = self.env.get_template("schema-user-prompt.txt").render(
                page=page,
                site=payload.get("site", {}),
                business=payload.get("business"),
                type_hint=payload.get("typeHint", "auto"),
                truncation_note=truncation_indicator(
                    len(page.get("content", "")), page.get("originalLength", 0)
                ),
            )
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]


class SchemaPromptBuilder:
    """Builds Pass 1 and Pass 2 payloads for a post."""

    def __init__(self, store: SiteStore, extractor: ContentExtractor, reference: SchemaReference | None = None):
        self.store = store
        self.extractor = extractor
        self._reference = reference

    @property
    def reference(self) -> SchemaReference:
        if self._reference is None:
            self._reference = SchemaReference()
        return self._reference

    def get_type_hint(self, post_id: int) -> str:
        return validate_type_hint(self.store.get_post_meta(post_id, TYPE_HINT_KEY) or "auto")

    def process_content(self, raw: str, max_chars: int = DEFAULT_MAX_CHARS) -> TruncationResult:
        """Structure-preserving text for ``raw`` markup, cut to ``max_chars``."""
        result = truncate(to_structured_text(raw), max_chars)
        if result.truncated:
            log.info(f"Content truncated from {result.original_length} to {result.truncated_length} chars")
        return result

    def build_site_data(self) -> dict:
        return self.store.site_info()

    def build_page_data(self, post: Post, max_chars: int = DEFAULT_MAX_CHARS, content: str | None = None) -> dict:
        """Page block with processed content.

        ``content`` is the frontend markup when the caller already fetched it;
        otherwise the best stored source is used and nothing is fetched here.
        """
        raw = content if content else self.extractor.get_best_content(post).content
        processed = self.process_content(raw, max_chars)
        page = self.build_page_data_minimal(post)
        page.update({
            "content": processed.content,
            "contentTruncated": processed.truncated,
            "originalLength": processed.original_length,
            "categories": list(post.categories),
            "tags": list(post.tags),
        })
        return page

    def build_page_data_minimal(self, post: Post) -> dict:
        image = post.featured_image or {}
        featured_image = None
        if image.get("url"):
            featured_image = {
                "url": image.get("url"),
                "alt": image.get("alt") or None,
                "width": image.get("width"),
                "height": image.get("height"),
            }
        return {
            "title": post.title,
            "url": self.store.get_permalink(post.id),
            "pageType": post.post_type,
            "excerpt": post.excerpt or None,
            "author": post.author,
            "datePublished": post.date,
            "dateModified": post.modified,
            "featuredImage": featured_image,
        }

    def build_payload(self, post: Post, settings: dict, max_chars: int = DEFAULT_MAX_CHARS,
                      content: str | None = None) -> dict:
        """Single-pass payload: structured page content plus a schema.org reference."""
        type_hint = self.get_type_hint(post.id)
        page = self.build_page_data(post, max_chars, content)
        return {
            "page": prune_empty(page),
            "site": prune_empty(self.build_site_data()),
            "business": build_business_data(settings),
            "typeHint": type_hint,
            "schemaReference": self.reference.for_type_hint(type_hint),
        }

    def build_payload_from_analysis(self, post: Post, analysis: dict, settings: dict) -> dict:
        """Pass 2 payload. The system prompt already defines the schema types, so no reference."""
        return {
            "page": prune_empty(self.build_page_data_minimal(post)),
            "site": prune_empty(self.build_site_data()),
            "business": build_business_data(settings),
            "analyzedContent": analysis,
            "typeHint": self.get_type_hint(post.id),
            "schemaReference": "",
            "isFromAnalysis": True,
        }

    def build_analysis_payload(self, post: Post, settings: dict, max_chars: int = DEFAULT_MAX_CHARS,
                               content: str | None = None) -> dict:
        page = self.build_page_data(post, max_chars, content)
        return prune_empty({
            "page": {
                "title": page["title"],
                "url": page["url"],
                "pageType": page["pageType"],
                "content": page["content"],
                "contentTruncated": page["contentTruncated"],
                "originalLength": page["originalLength"],
                "excerpt": page["excerpt"],
            },
            "site": self.build_site_data(),
            "typeHint": self.get_type_hint(post.id),
            "businessData": analysis_business_data(settings),
        })
