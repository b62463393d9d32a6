"""Wires the schema engine together from ``config.yaml`` for scripts and cron jobs."""

from __future__ import annotations

import logging
import os

import yaml

from jsonld_engine.llm_client import LLMClient, RateLimitGate
from jsonld_engine.orchestrator import GenerationOrchestrator, GenerationResult
from jsonld_engine.output import ConflictDetector, SchemaRenderer
from jsonld_engine.prompt_builder import PromptRenderer
from jsonld_engine.providers import ProviderRegistry, default_registry
from jsonld_engine.scheduler import RegenerationScheduler
from jsonld_engine.settings import load_settings
from jsonld_engine.store import SiteStore

log = logging.getLogger(__name__)


class SchemaEngine:
    def __init__(self, config_path="config.yaml", overrides: dict | None = None):
        self.project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        self.settings = load_settings(config_path, overrides)

        store_path = "data/site.yaml"
        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                store_path = (yaml.safe_load(f) or {}).get("store_path", store_path)
        if store_path and not os.path.isabs(store_path):
            store_path = os.path.join(self.project_root, store_path)
        self.store = SiteStore(state_path=store_path)

        self.gate = RateLimitGate(self.store)
        self.client = LLMClient(self.gate)

        # Built on first use
        self._registry = None
        self._orchestrator = None
        self._renderer = None
        self._scheduler = None

    @property
    def registry(self) -> ProviderRegistry:
        if self._registry is None:
            self._registry = default_registry(self.client, PromptRenderer())
        return self._registry

    @property
    def orchestrator(self) -> GenerationOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = GenerationOrchestrator(self.store, self.registry, self.gate)
        return self._orchestrator

    @property
    def renderer(self) -> SchemaRenderer:
        if self._renderer is None:
            self._renderer = SchemaRenderer(self.store, ConflictDetector.from_settings(self.settings))
        return self._renderer

    @property
    def scheduler(self) -> RegenerationScheduler:
        if self._scheduler is None:
            self._scheduler = RegenerationScheduler(self.orchestrator)
        return self._scheduler

    def generate(self, post_id: int, force: bool = False, on_event=None) -> GenerationResult:
        return self.orchestrator.generate(post_id, self.settings, force=force, on_event=on_event)

    def render_head(self, post_id: int) -> str:
        return self.renderer.render_head(post_id, self.settings)

    def test_connection(self, slug: str | None = None) -> str:
        """Run the provider connection test. Raises SchemaEngineError on failure."""
        slug = slug or self.settings.get("provider", "deepseek")
        provider = self.registry.get(slug)
        if provider is None:
            raise ValueError(f"Unknown provider: {slug}")
        return provider.test_connection(self.settings)
