#!/usr/bin/env python3
"""Verify the configured LLM provider's API key with a tiny request.

Usage:
    python scripts/verify_provider.py [deepseek|openai|anthropic]
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from jsonld_engine.engine import SchemaEngine
from jsonld_engine.errors import SchemaEngineError
from jsonld_engine.utils.logger import setup_logging


def main(argv):
    setup_logging()
    engine = SchemaEngine(config_path=str(Path(__file__).parent.parent / "config.yaml"))
    slug = argv[0] if argv else engine.settings.get("provider", "deepseek")
    print(f"Verifying {slug} connection...")

    try:
        message = engine.test_connection(slug)
    except (SchemaEngineError, ValueError) as e:
        print(f"\nConnection FAILED: {e}")
        print("\nPlease check:")
        print(f"  1. {slug.upper()}_API_KEY is set in .env or {slug}_api_key in config.yaml")
        print(f"  2. {slug}_model names a model your account can use")
        print("  3. The API is reachable from this machine")
        return 1

    print(f"  {message}")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
