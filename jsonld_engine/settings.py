"""Settings snapshot for the schema engine: defaults, YAML overrides, env API keys."""

from __future__ import annotations

import copy
import logging
import os

import yaml
from dotenv import load_dotenv

load_dotenv(override=True)

log = logging.getLogger(__name__)

SETTINGS_VERSION = "1.1"

DEFAULT_SETTINGS = {
    "provider": "deepseek",
    "deepseek_api_key": "",
    "deepseek_model": "deepseek-chat",
    "openai_api_key": "",
    "openai_model": "gpt-5-nano",
    "anthropic_api_key": "",
    "anthropic_model": "claude-sonnet-4-5-20250929",
    "temperature": 0.2,
    "output_location": "head",
    "enabled_post_types": ["page"],
    "business_name": "",
    "business_description": "",
    "business_logo": "",
    "business_email": "",
    "business_phone": "",
    "business_founding_date": "",
    "business_social_links": {},
    "business_locations": [],
    "auto_regenerate_on_update": False,
    "skip_if_schema_exists": False,
    "seo_plugins": {},
    "two_pass_generation": False,
    "fetch_from_frontend": False,
    "streaming": False,
    "delete_data_on_uninstall": False,
    "debug_logging": False,
    "settings_version": SETTINGS_VERSION,
}

# Environment variables that fill empty API key settings
ENV_API_KEYS = {
    "deepseek_api_key": "DEEPSEEK_API_KEY",
    "openai_api_key": "OPENAI_API_KEY",
    "anthropic_api_key": "ANTHROPIC_API_KEY",
}

TYPE_HINT_OPTIONS = {
    "auto": "Auto-detect",
    "Article": "Article",
    "WebPage": "WebPage",
    "Service": "Service",
    "LocalBusiness": "Local Business",
    "FAQPage": "FAQ Page",
    "Product": "Product",
    "Organization": "Organization",
    "Person": "Person",
    "Event": "Event",
    "HowTo": "How-To",
}


def load_settings(config_path="config.yaml", overrides: dict | None = None) -> dict:
    """Build a settings snapshot.

    Order of precedence: explicit ``overrides``, then the ``settings`` block of
    the YAML config file, then environment API keys for any key left empty,
    then ``DEFAULT_SETTINGS``.
    """
    settings = copy.deepcopy(DEFAULT_SETTINGS)

    if config_path and os.path.exists(config_path):
        with open(config_path) as f:
            config = yaml.safe_load(f) or {}
        settings.update(config.get("settings", {}) or {})
        log.info(f"Loaded settings from {config_path}")

    if overrides:
        settings.update(overrides)

    for key, env_name in ENV_API_KEYS.items():
        if not settings.get(key):
            settings[key] = os.getenv(env_name, "")

    return settings


def validate_type_hint(type_hint) -> str:
    """Return ``type_hint`` if it is a known option, otherwise ``"auto"``."""
    if type_hint in TYPE_HINT_OPTIONS:
        return type_hint
    return "auto"


def get_model(settings: dict) -> str:
    """Model id configured for the active provider."""
    provider = settings.get("provider", "")
    return settings.get(f"{provider}_model", "")
