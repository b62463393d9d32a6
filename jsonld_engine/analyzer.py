"""Content Analyzer — Pass 1 of two-pass generation.

Sends the structured page text to the active provider with an
exhaustive-extraction prompt and parses the returned JSON into an
:class:`AnalysisResult`.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field

from jsonld_engine.errors import AnalysisParseError
from jsonld_engine.prompt_builder import SchemaPromptBuilder
from jsonld_engine.providers import Provider
from jsonld_engine.store import Post

log = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*\n?(.*?)\n?```$", re.DOTALL)

# item_counts key -> list it counts
ITEM_COUNT_KEYS = {
    "testimonials_found": "testimonials",
    "services_found": "services",
    "faqs_found": "faqs",
    "team_members_found": "team_members",
    "products_found": "products",
}

LIST_SECTIONS = ("services", "testimonials", "faqs", "team_members", "products", "events", "how_to_steps")


@dataclass
class AnalysisResult:
    page_type: str
    page_summary: str = ""
    organization: dict = field(default_factory=dict)
    services: list[dict] = field(default_factory=list)
    testimonials: list[dict] = field(default_factory=list)
    faqs: list[dict] = field(default_factory=list)
    team_members: list[dict] = field(default_factory=list)
    products: list[dict] = field(default_factory=list)
    events: list[dict] = field(default_factory=list)
    how_to_steps: list[dict] = field(default_factory=list)
    contact_info: dict = field(default_factory=dict)
    statistics: dict = field(default_factory=dict)
    item_counts: dict = field(default_factory=dict)
    raw: dict = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "AnalysisResult":
        def as_dict(key):
            value = data.get(key)
            return value if isinstance(value, dict) else {}

        result = cls(
            page_type=str(data["page_type"]),
            page_summary=data.get("page_summary") or "",
            organization=as_dict("organization"),
            contact_info=as_dict("contact_info"),
            statistics=as_dict("statistics"),
            item_counts=as_dict("item_counts"),
            raw=data,
        )
        for section in LIST_SECTIONS:
            setattr(result, section, _ordered_items(data.get(section)))
        result.warnings = count_mismatches(result)
        return result

    def to_dict(self) -> dict:
        """The analysis as sent to Pass 2: the model's object, empty sections dropped."""
        data = dict(self.raw)
        for section in LIST_SECTIONS:
            data[section] = getattr(self, section)
        return {k: v for k, v in data.items() if v not in (None, "", [], {})}


def _ordered_items(value) -> list[dict]:
    """Dict entries only, in source order; missing positions are filled from list order."""
    if not isinstance(value, list):
        return []
    items = []
    for index, item in enumerate(value, start=1):
        if not isinstance(item, dict):
            continue
        if "position" not in item and "step_number" not in item:
            item = {**item, "position": index}
        items.append(item)
    return items


def count_mismatches(result: AnalysisResult) -> list[str]:
    """Advisory differences between self-reported item_counts and the actual lists."""
    warnings = []
    for count_key, section in ITEM_COUNT_KEYS.items():
        if count_key not in result.item_counts:
            continue
        try:
            reported = int(result.item_counts[count_key])
        except (TypeError, ValueError):
            warnings.append(f"item_counts.{count_key} is not a number: {result.item_counts[count_key]!r}")
            continue
        actual = len(getattr(result, section))
        if reported != actual:
            warnings.append(f"item_counts.{count_key} reports {reported} but {actual} {section} were returned")
    return warnings


def clean_json_response(response: str) -> str:
    """Strip code fences and anything outside the outermost ``{...}``."""
    response = response.strip()
    match = _FENCE_RE.match(response)
    if match:
        response = match.group(1)
    start = response.find("{")
    end = response.rfind("}")
    if start != -1 and end > start:
        response = response[start:end + 1]
    return response.strip()


def parse_analysis(raw: str) -> AnalysisResult:
    cleaned = clean_json_response(raw or "")
    try:
        data = json.loads(cleaned)
    except ValueError as e:
        log.error(f"Content analysis JSON parse error: {e} - Raw: {(raw or '')[:500]}")
        raise AnalysisParseError("Failed to parse content analysis result.")

    if not isinstance(data, dict) or not data.get("page_type"):
        log.error(f"Content analysis structure validation failed: {cleaned[:500]}")
        raise AnalysisParseError("Invalid content analysis structure.")

    result = AnalysisResult.from_dict(data)
    for warning in result.warnings:
        log.warning(f"Content analysis: {warning}")
    return result


class ContentAnalyzer:
    """Runs Pass 1 for a post."""

    def __init__(self, prompt_builder: SchemaPromptBuilder):
        self.prompt_builder = prompt_builder

    def build_payload(self, post: Post, provider: Provider, settings: dict,
                      override_content: str | None = None) -> dict:
        max_chars = provider.max_content_chars(settings.get(f"{provider.get_slug()}_model", ""))
        return self.prompt_builder.build_analysis_payload(post, settings, max_chars, override_content)

    def analyze(self, post: Post, provider: Provider, settings: dict,
                override_content: str | None = None, on_event=None) -> AnalysisResult:
        """Classify the post's content. Raises AnalysisParseError or provider errors.

        With ``on_event`` the reply is streamed and forwarded as ``pass1``
        content events while it arrives.
        """
        payload = self.build_payload(post, provider, settings, override_content)
        log.info(
            f"Analyzing post #{post.id} with {provider.get_name()} "
            f"({len(payload.get('page', {}).get('content', ''))} chars)"
        )
        if on_event is not None:
            raw = provider.stream(provider.renderer.analysis_messages(payload), settings, on_event, "pass1")
        else:
            raw = provider.analyze(payload, settings)
        return parse_analysis(raw)
