"""Site Store — YAML-persisted posts, post meta and transients.

Stands in for the WordPress data layer: the engine only talks to posts,
per-post meta keys, expiring transients and permalinks through this class.
Pass ``state_path=None`` to keep everything in memory.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import asdict, dataclass, field

import yaml

log = logging.getLogger(__name__)


@dataclass
class Post:
    id: int
    title: str = ""
    content: str = ""
    excerpt: str = ""
    status: str = "publish"
    post_type: str = "page"
    date: str = ""
    modified: str = ""
    author: str = ""
    url: str = ""
    featured_image: dict = field(default_factory=dict)
    categories: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)


class SiteStore:
    """Posts, post meta and transients for one site."""

    def __init__(self, state_path="data/site.yaml", clock=time.time):
        self.state_path = state_path
        self.clock = clock
        self.state = self._load()

    def _load(self) -> dict:
        if self.state_path and os.path.exists(self.state_path):
            with open(self.state_path) as f:
                state = yaml.safe_load(f) or {}
        else:
            state = {}
        state.setdefault("site", {"name": "", "url": "", "description": ""})
        state.setdefault("posts", {})
        state.setdefault("transients", {})
        return state

    def _save(self):
        if not self.state_path:
            return
        os.makedirs(os.path.dirname(self.state_path) or ".", exist_ok=True)
        with open(self.state_path, "w") as f:
            yaml.dump(self.state, f, default_flow_style=False, sort_keys=False, allow_unicode=True)

    # --- site ---

    def site_info(self) -> dict:
        site = self.state.get("site", {})
        return {
            "name": site.get("name", ""),
            "url": site.get("url", ""),
            "description": site.get("description", ""),
        }

    def set_site_info(self, name: str = "", url: str = "", description: str = ""):
        self.state["site"] = {"name": name, "url": url.rstrip("/"), "description": description}
        self._save()

    # --- posts ---

    def _record(self, post_id: int) -> dict | None:
        return self.state["posts"].get(int(post_id))

    def get_post(self, post_id: int) -> Post | None:
        record = self._record(post_id)
        if record is None:
            return None
        fields = {k: v for k, v in record.items() if k != "meta"}
        return Post(id=int(post_id), **fields)

    def get_post_ids(self) -> list[int]:
        return sorted(self.state["posts"].keys())

    def save_post(self, post: Post):
        """Insert or update a post, keeping any existing meta."""
        existing = self._record(post.id) or {}
        record = asdict(post)
        record.pop("id")
        record["meta"] = existing.get("meta", {})
        self.state["posts"][int(post.id)] = record
        self._save()

    def delete_post(self, post_id: int) -> bool:
        removed = self.state["posts"].pop(int(post_id), None)
        if removed is not None:
            self._save()
            log.info(f"Deleted post #{post_id}")
        return removed is not None

    def get_post_content(self, post_id: int) -> str:
        record = self._record(post_id)
        return (record or {}).get("content", "") or ""

    def get_permalink(self, post_id: int) -> str:
        record = self._record(post_id) or {}
        if record.get("url"):
            return record["url"]
        base = self.state["site"].get("url", "").rstrip("/")
        return f"{base}/?page_id={post_id}"

    # --- post meta ---

    def get_post_meta(self, post_id: int, key: str, default=""):
        record = self._record(post_id)
        if record is None:
            return default
        return record.get("meta", {}).get(key, default)

    def update_post_meta(self, post_id: int, key: str, value):
        record = self._record(post_id)
        if record is None:
            raise KeyError(f"No post with id {post_id}")
        record.setdefault("meta", {})[key] = value
        self._save()

    def delete_post_meta(self, post_id: int, key: str):
        record = self._record(post_id)
        if record is not None and key in record.get("meta", {}):
            del record["meta"][key]
            self._save()

    # --- transients ---

    def get_transient(self, key: str):
        """Return the stored value, or None when missing or expired."""
        entry = self.state["transients"].get(key)
        if entry is None:
            return None
        expires = entry.get("expires")
        if expires is not None and self.clock() >= expires:
            del self.state["transients"][key]
            self._save()
            return None
        return entry.get("value")

    def set_transient(self, key: str, value, ttl: float | None = None):
        expires = self.clock() + ttl if ttl else None
        self.state["transients"][key] = {"value": value, "expires": expires}
        self._save()

    def delete_transient(self, key: str):
        if self.state["transients"].pop(key, None) is not None:
            self._save()
