"""Deferred regeneration jobs queued when posts are saved."""

from __future__ import annotations

import logging

from jsonld_engine.cache import TYPE_HINT_KEY
from jsonld_engine.orchestrator import GenerationOrchestrator, GenerationResult
from jsonld_engine.settings import validate_type_hint

log = logging.getLogger(__name__)

QUEUE_KEY = "wp_ai_schema_regenerate_queue"


class RegenerationScheduler:
    """Queue of post ids persisted in the store, drained by ``run_pending``."""

    def __init__(self, orchestrator: GenerationOrchestrator):
        self.orchestrator = orchestrator
        self.store = orchestrator.store

    def pending(self) -> list[int]:
        return list(self.store.get_transient(QUEUE_KEY) or [])

    def schedule(self, post_id: int) -> bool:
        """Queue ``post_id``. Returns False when it is already pending."""
        queue = self.pending()
        if post_id in queue:
            log.debug(f"Regeneration for post #{post_id} already scheduled")
            return False
        queue.append(post_id)
        self.store.set_transient(QUEUE_KEY, queue)
        log.info(f"Scheduled regeneration for post #{post_id}")
        return True

    def clear(self):
        self.store.delete_transient(QUEUE_KEY)

    def on_post_saved(self, post_id: int, settings: dict, type_hint: str | None = None) -> bool:
        """Save hook: store the editor's type hint, queue a job if the schema is stale."""
        post = self.store.get_post(post_id)
        if post is None or post.post_type not in (settings.get("enabled_post_types") or ["page"]):
            return False

        if type_hint is not None:
            self.store.update_post_meta(post_id, TYPE_HINT_KEY, validate_type_hint(type_hint))

        if not settings.get("auto_regenerate_on_update"):
            return False
        if not self.orchestrator.cache.should_regenerate(post, settings, force=False):
            return False
        return self.schedule(post_id)

    def run_pending(self, settings: dict) -> dict[int, GenerationResult]:
        queue = self.pending()
        self.clear()
        results = {}
        for post_id in queue:
            results[post_id] = self.orchestrator.generate(post_id, settings, force=False)
        if queue:
            ok = sum(1 for r in results.values() if r.success)
            log.info(f"Ran {len(queue)} scheduled regenerations ({ok} succeeded)")
        return results
