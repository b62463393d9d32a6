"""Shared fixtures: an in-memory site store on a controllable clock."""

import copy

import pytest

from jsonld_engine.settings import DEFAULT_SETTINGS
from jsonld_engine.store import Post, SiteStore


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    site = SiteStore(state_path=None, clock=clock)
    site.set_site_info("Acme Roofing", "https://acme.test", "Roof repair in Springfield")
    return site


@pytest.fixture
def settings():
    snapshot = copy.deepcopy(DEFAULT_SETTINGS)
    snapshot["deepseek_api_key"] = "sk-test"
    return snapshot


@pytest.fixture
def make_post(store):
    def _make(post_id=1, content="<p>" + "A" * 60 + "</p>", **fields):
        fields.setdefault("title", "Roof Repair")
        fields.setdefault("modified", "2026-01-01 10:00:00")
        post = Post(id=post_id, content=content, **fields)
        store.save_post(post)
        return post

    return _make
