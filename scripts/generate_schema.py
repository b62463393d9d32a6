#!/usr/bin/env python3
"""Generate JSON-LD schema for posts in the site store.

Usage:
    python scripts/generate_schema.py <post_id> [<post_id> ...] [--force] [--stream]
    python scripts/generate_schema.py --pending

--force skips the cooldown and cache checks. --stream (or the streaming
setting) prints the model output as it arrives. --pending drains the
regeneration queue instead.
"""

import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from jsonld_engine.engine import SchemaEngine
from jsonld_engine.streaming import CONTENT, STATUS
from jsonld_engine.utils.logger import setup_logging
from jsonld_engine.validator import pretty_print


def print_event(event):
    if event.event == STATUS:
        print(f"  ... {event.data['message']}")
    elif event.event == CONTENT:
        print(event.data["chunk"], end="", flush=True)


def main(argv):
    flags = {arg for arg in argv if arg.startswith("--")}
    post_ids = [int(arg) for arg in argv if not arg.startswith("--")]

    engine = SchemaEngine(config_path=str(PROJECT_ROOT / "config.yaml"))
    setup_logging(debug=bool(engine.settings.get("debug_logging")))

    if "--pending" in flags:
        results = engine.scheduler.run_pending(engine.settings)
        for post_id, result in results.items():
            print(f"Post #{post_id}: {result.outcome.value} - {result.message}")
        return 0 if all(r.success for r in results.values()) else 1

    if not post_ids:
        print(__doc__)
        return 1

    on_event = print_event if "--stream" in flags or engine.settings.get("streaming") else None
    failures = 0
    for post_id in post_ids:
        result = engine.generate(post_id, force="--force" in flags, on_event=on_event)
        if on_event:
            print()
        print(f"Post #{post_id}: {result.message}")
        if result.success:
            print(f"  Type: {result.schema_type or 'unknown'}")
            if result.timing:
                print(f"  Timing: {result.timing}")
            for warning in result.warnings:
                print(f"  Warning: {warning}")
            print(pretty_print(result.schema))
        else:
            failures += 1
            if result.wait_time:
                print(f"  Retry in {result.wait_time}s")

    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
