#!/usr/bin/env python3
"""Schema health check — run hourly via cron."""

import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from jsonld_engine.cache import ERROR_KEY, STATUS_ERROR, STATUS_KEY
from jsonld_engine.engine import SchemaEngine


def check_errored_posts(engine: SchemaEngine) -> tuple[bool, str]:
    """Posts whose last generation attempt failed."""
    errored = []
    for post_id in engine.store.get_post_ids():
        if engine.store.get_post_meta(post_id, STATUS_KEY) == STATUS_ERROR:
            error = engine.store.get_post_meta(post_id, ERROR_KEY)
            errored.append(f"#{post_id}: {error}")
    if errored:
        return False, f"{len(errored)} posts in error state\n      " + "\n      ".join(errored)
    return True, "No posts in error state"


def check_rate_limit(engine: SchemaEngine) -> tuple[bool, str]:
    wait = engine.gate.remaining()
    if wait:
        return False, f"Provider rate limit active for another {wait}s"
    return True, "OK"


def check_missing_schema(engine: SchemaEngine) -> tuple[bool, str]:
    """Enabled posts that have never had a schema generated."""
    enabled = engine.settings.get("enabled_post_types") or ["page"]
    missing = []
    for post_id in engine.store.get_post_ids():
        post = engine.store.get_post(post_id)
        if post.post_type in enabled and not engine.renderer.has_schema(post_id):
            missing.append(post_id)
    if missing:
        return True, f"{len(missing)} posts without schema: {missing}"
    return True, "All enabled posts have schema"


def main():
    print(f"Health check: {datetime.now(timezone.utc).isoformat()}")
    engine = SchemaEngine(config_path=str(Path(__file__).parent.parent / "config.yaml"))
    failures = []

    checks = [
        ("Errored Posts", check_errored_posts),
        ("Rate Limit", check_rate_limit),
        ("Missing Schema", check_missing_schema),
    ]

    for name, check_fn in checks:
        ok, msg = check_fn(engine)
        status = "OK" if ok else "FAIL"
        print(f"  [{status}] {name}: {msg}")
        if not ok:
            failures.append(name)

    if failures:
        return 1

    print("All checks passed.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
