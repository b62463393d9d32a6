"""Generation Orchestrator — runs one schema generation request for a post.

Checks run in a fixed order: cooldown, global rate limit, content length,
cache. Only then is a provider called, either once (single pass) or twice
(analysis, then generation from the analysis). Every failure is recorded on
the post without touching the last good schema, and every path returns a
:class:`GenerationResult` instead of raising.
"""

from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import dataclass, field
from enum import Enum

from jsonld_engine import validator
from jsonld_engine.analyzer import AnalysisResult, ContentAnalyzer
from jsonld_engine.cache import (
    ANALYSIS_KEY,
    DETECTED_TYPE_KEY,
    GENERATED_KEY,
    GENERATION_MODE_KEY,
    HASH_KEY,
    CacheGate,
)
from jsonld_engine.errors import ConfigError, RateLimitError, SchemaEngineError
from jsonld_engine.extractor import ContentExtractor
from jsonld_engine.llm_client import RateLimitGate
from jsonld_engine.prompt_builder import SchemaPromptBuilder
from jsonld_engine.providers import TWO_PASS_CALL_TIMEOUT, Provider, ProviderRegistry
from jsonld_engine.settings import get_model
from jsonld_engine.store import Post, SiteStore
from jsonld_engine.streaming import COMPLETE, ERROR, STATUS, StreamEvent, findings_summary

log = logging.getLogger(__name__)

COOLDOWN_SECONDS = 30
TWO_PASS_COOLDOWN_SECONDS = COOLDOWN_SECONDS * 2

CONTENT_TOO_SHORT_MESSAGE = (
    "Page content is too short to generate meaningful schema. "
    'Try enabling "Fetch from frontend" if using a page builder.'
)


class Outcome(Enum):
    CACHED = "cached"
    GENERATED = "generated"
    COOLDOWN = "cooldown"
    RATE_LIMITED = "rate_limited"
    CONTENT_TOO_SHORT = "content_too_short"
    ERROR = "error"


@dataclass
class GenerationResult:
    success: bool
    outcome: Outcome
    message: str = ""
    schema: str = ""
    schema_type: str = ""
    cached: bool = False
    content_hash: str = ""
    generated_at: int = 0
    wait_time: int = 0
    error_kind: str = ""
    failed_pass: int | None = None
    two_pass: bool = False
    timing: dict = field(default_factory=dict)
    analysis: dict | None = None
    warnings: list[str] = field(default_factory=list)


class GenerationOrchestrator:
    """Sequences extraction, prompting, the provider call, validation and caching."""

    def __init__(self, store: SiteStore, registry: ProviderRegistry, gate: RateLimitGate,
                 extractor: ContentExtractor | None = None, clock=time.time):
        self.store = store
        self.registry = registry
        self.gate = gate
        self.clock = clock
        self.extractor = extractor or ContentExtractor(store)
        self.cache = CacheGate(store, self.extractor, clock=clock)
        self.prompt_builder = SchemaPromptBuilder(store, self.extractor)
        self.analyzer = ContentAnalyzer(self.prompt_builder)

    # --- cooldown ---

    @staticmethod
    def cooldown_key(post_id: int) -> str:
        return f"wp_ai_schema_cooldown_{post_id}"

    def get_cooldown_remaining(self, post_id: int) -> int:
        expires_at = self.store.get_transient(self.cooldown_key(post_id))
        if not expires_at:
            return 0
        return max(0, int(math.ceil(float(expires_at) - self.clock())))

    def _set_cooldown(self, post_id: int, seconds: int):
        self.store.set_transient(self.cooldown_key(post_id), self.clock() + seconds, ttl=seconds)

    # --- entry point ---

    def generate(self, post_id: int, settings: dict, force: bool = False, fetch_frontend: bool | None = None,
                 two_pass: bool | None = None, on_event=None) -> GenerationResult:
        """Generate (or reuse) the schema for ``post_id``.

        ``fetch_frontend`` and ``two_pass`` default to the matching settings.
        ``on_event`` receives :class:`StreamEvent` objects and switches the
        provider calls to streaming.
        """
        if fetch_frontend is None:
            fetch_frontend = bool(settings.get("fetch_from_frontend"))
        if two_pass is None:
            two_pass = bool(settings.get("two_pass_generation"))
        emit = on_event or (lambda event: None)

        result = self._generate(post_id, settings, force, fetch_frontend, two_pass, on_event)

        log.info(
            f"Post #{post_id}: {result.outcome.value}" + (f" ({result.message})" if not result.success else ""),
            extra={"post_id": post_id, "provider": settings.get("provider", ""), "outcome": result.outcome.value},
        )
        if result.success:
            emit(StreamEvent(COMPLETE, {"schema": result.schema, "message": result.message,
                                        "cached": result.cached}))
        else:
            emit(StreamEvent(ERROR, {"message": result.message}))
        return result

    def _generate(self, post_id, settings, force, fetch_frontend, two_pass, on_event) -> GenerationResult:
        post = self.store.get_post(post_id)
        if post is None:
            return GenerationResult(False, Outcome.ERROR, "Post not found.", error_kind="content")

        if not force and self.store.get_transient(self.cooldown_key(post_id)):
            return GenerationResult(False, Outcome.COOLDOWN, "Please wait before regenerating.",
                                    wait_time=self.get_cooldown_remaining(post_id))

        wait = self.gate.remaining()
        if wait > 0:
            return GenerationResult(False, Outcome.RATE_LIMITED,
                                    f"Rate limited. Please try again in {wait} seconds.", wait_time=wait)

        try:
            return self._run(post, settings, force, fetch_frontend, two_pass, on_event)
        except Exception as e:
            log.error(f"Unexpected error generating schema for post #{post_id}: {e}", exc_info=True)
            message = f"Unexpected error: {e}"
            self.cache.save_error(post_id, message)
            return GenerationResult(False, Outcome.ERROR, message, error_kind="error", two_pass=two_pass)

    def _run(self, post, settings, force, fetch_frontend, two_pass, on_event) -> GenerationResult:
        post_id = post.id
        emit = on_event or (lambda event: None)
        override_content = None
        if fetch_frontend and post.status == "publish":
            emit(StreamEvent(STATUS, {"phase": "fetch", "message": "Fetching page content..."}))
            fetched = self.extractor.fetch_frontend_content(post)
            if fetched.success and fetched.content:
                override_content = fetched.content
                log.info(f"Fetched frontend content for post #{post_id}: {len(fetched.content)} chars")
            else:
                log.warning(f"Failed to fetch frontend for post #{post_id}: {fetched.error or 'empty result'}")

        if not override_content and self.extractor.is_content_empty(post):
            return GenerationResult(False, Outcome.CONTENT_TOO_SHORT, CONTENT_TOO_SHORT_MESSAGE,
                                    error_kind="content")

        if not self.cache.should_regenerate(post, settings, force):
            return GenerationResult(
                True,
                Outcome.CACHED,
                "Using cached schema.",
                schema=self.cache.get_schema(post_id),
                schema_type=self.store.get_post_meta(post_id, DETECTED_TYPE_KEY) or "",
                cached=True,
                content_hash=self.store.get_post_meta(post_id, HASH_KEY) or "",
                generated_at=int(self.store.get_post_meta(post_id, GENERATED_KEY) or 0),
            )

        provider = self.registry.get_active(settings)
        if provider is None:
            self.cache.save_error(post_id, "No provider configured.", ConfigError.kind)
            return GenerationResult(False, Outcome.ERROR, "No LLM provider configured.",
                                    error_kind=ConfigError.kind)
        try:
            provider.api_key(settings)
        except ConfigError as e:
            self.cache.save_error(post_id, "API key not configured.", e.kind)
            return GenerationResult(False, Outcome.ERROR, str(e), error_kind=e.kind)

        self._set_cooldown(post_id, TWO_PASS_COOLDOWN_SECONDS if two_pass else COOLDOWN_SECONDS)

        if two_pass:
            return self._two_pass(post, provider, settings, override_content, on_event)
        return self._single_pass(post, provider, settings, override_content, on_event)

    # --- passes ---

    def _failure(self, post: Post, error: SchemaEngineError, message: str, stored_message: str,
                 failed_pass: int | None, two_pass: bool, timing: dict) -> GenerationResult:
        self.cache.save_error(post.id, stored_message, error.kind)
        log.error(f"Generation failed for post #{post.id}: {stored_message}")
        if isinstance(error, RateLimitError):
            return GenerationResult(False, Outcome.RATE_LIMITED, message, wait_time=error.wait_seconds,
                                    error_kind=error.kind, failed_pass=failed_pass, two_pass=two_pass,
                                    timing=timing)
        return GenerationResult(False, Outcome.ERROR, message, error_kind=error.kind,
                                failed_pass=failed_pass, two_pass=two_pass, timing=timing)

    def _call(self, provider: Provider, payload: dict, settings: dict, on_event, phase: str,
              timeout: float | None = None) -> str:
        if on_event is not None:
            return provider.stream(provider.renderer.schema_messages(payload), settings, on_event, phase)
        if timeout is None:
            return provider.generate(payload, settings)
        return provider.generate(payload, settings, timeout=timeout)

    def _persist(self, post: Post, settings: dict, raw: str, mode: str, two_pass: bool,
                 timing: dict, analysis: AnalysisResult | None = None) -> GenerationResult:
        validation = validator.validate(raw)
        if not validation.valid:
            self.cache.save_error(post.id, validation.error, "validation")
            log.error(f"Validation failed for post #{post.id}: {validation.error} - Raw: {raw[:500]}")
            return GenerationResult(False, Outcome.ERROR, validation.error, error_kind="validation",
                                    failed_pass=2 if two_pass else None, two_pass=two_pass, timing=timing)

        content_hash = self.cache.generate_hash(post, settings)
        self.cache.save_schema(post, validation.schema, validation.schema_type, content_hash)
        self.store.update_post_meta(post.id, GENERATION_MODE_KEY, mode)
        message = (
            "Schema generated successfully using deep content analysis!"
            if two_pass else "Schema generated successfully!"
        )
        return GenerationResult(
            True,
            Outcome.GENERATED,
            message,
            schema=validation.schema,
            schema_type=validation.schema_type,
            content_hash=content_hash,
            generated_at=int(self.clock()),
            two_pass=two_pass,
            timing=timing,
            analysis=analysis.to_dict() if analysis else None,
            warnings=(analysis.warnings if analysis else []) + validation.warnings,
        )

    def _single_pass(self, post, provider, settings, override_content, on_event) -> GenerationResult:
        emit = on_event or (lambda event: None)
        start = time.time()
        max_chars = provider.max_content_chars(provider.model(settings))
        payload = self.prompt_builder.build_payload(post, settings, max_chars, override_content)
        log.info(f"Generating schema for post #{post.id} with {provider.get_name()}")
        emit(StreamEvent(STATUS, {"phase": "generate", "message": "Generating JSON-LD schema..."}))
        try:
            raw = self._call(provider, payload, settings, on_event, "generate")
        except SchemaEngineError as e:
            timing = {"total_seconds": round(time.time() - start, 2)}
            return self._failure(post, e, str(e), str(e), None, False, timing)

        timing = {"total_seconds": round(time.time() - start, 2)}
        return self._persist(post, settings, raw, "single_pass", False, timing)

    def _two_pass(self, post, provider, settings, override_content, on_event) -> GenerationResult:
        emit = on_event or (lambda event: None)
        timing = {}
        start = time.time()
        log.info(f"Starting two-pass schema generation for post #{post.id}")

        emit(StreamEvent(STATUS, {"phase": "pass1", "message": "AI analyzing page structure..."}))
        try:
            analysis = self.analyzer.analyze(post, provider, settings, override_content, on_event)
        except SchemaEngineError as e:
            timing["pass1_seconds"] = round(time.time() - start, 2)
            return self._failure(post, e, f"Content analysis failed: {e}", f"Pass 1 failed: {e}",
                                 1, True, timing)
        timing["pass1_seconds"] = round(time.time() - start, 2)
        log.info(f"Pass 1 completed in {timing['pass1_seconds']:.2f}s: {findings_summary(analysis.raw)}")
        emit(StreamEvent(STATUS, {"phase": "pass1", "message": findings_summary(analysis.raw),
                                  "findings": analysis.item_counts}))

        if settings.get("debug_logging"):
            self.store.update_post_meta(post.id, ANALYSIS_KEY, json.dumps(analysis.to_dict(), ensure_ascii=False))

        pass2_start = time.time()
        payload = self.prompt_builder.build_payload_from_analysis(post, analysis.to_dict(), settings)
        timing["pass2_payload_kb"] = round(len(json.dumps(payload).encode("utf-8")) / 1024, 1)
        emit(StreamEvent(STATUS, {"phase": "pass2", "message": "Generating JSON-LD schema..."}))
        try:
            raw = self._call(provider, payload, settings, on_event, "pass2", timeout=TWO_PASS_CALL_TIMEOUT)
        except SchemaEngineError as e:
            timing["pass2_seconds"] = round(time.time() - pass2_start, 2)
            return self._failure(post, e, f"Schema generation failed: {e}", f"Pass 2 failed: {e}",
                                 2, True, timing)
        timing["pass2_seconds"] = round(time.time() - pass2_start, 2)
        timing["total_seconds"] = round(time.time() - start, 2)

        result = self._persist(post, settings, raw, "two_pass", True, timing, analysis)
        if result.success:
            log.info(
                f"Two-pass completed for post #{post.id} - Pass 1: {timing['pass1_seconds']:.2f}s, "
                f"Pass 2: {timing['pass2_seconds']:.2f}s, Total: {timing['total_seconds']:.2f}s"
            )
        return result

    # --- diagnostics ---

    def diagnose(self, post_id: int, settings: dict) -> dict:
        """Everything that decides what the next generate() call would do."""
        post = self.store.get_post(post_id)
        if post is None:
            return {"post_id": post_id, "exists": False}
        provider = self.registry.get_active(settings)
        status = self.cache.get_cache_status(post, settings)
        return {
            "post_id": post_id,
            "exists": True,
            "post_type": post.post_type,
            "post_status": post.status,
            "content": self.extractor.get_content_info(post),
            "provider": provider.get_slug() if provider else None,
            "model": get_model(settings),
            "api_key_configured": bool(provider and settings.get(f"{provider.get_slug()}_api_key")),
            "two_pass": bool(settings.get("two_pass_generation")),
            "type_hint": self.prompt_builder.get_type_hint(post_id),
            "cooldown_remaining": self.get_cooldown_remaining(post_id),
            "rate_limit_remaining": self.gate.remaining(),
            "cache": {
                "has_schema": status.has_schema,
                "is_current": status.is_current,
                "generated_at": status.generated_at,
                "status": status.status,
                "error": status.error,
            },
            "generation_mode": self.store.get_post_meta(post_id, GENERATION_MODE_KEY) or "",
        }
