"""Schema Reference — schema.org type definitions selected by type hint for prompts."""

from __future__ import annotations

import logging
import os

import yaml

log = logging.getLogger(__name__)

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DEFAULT_REFERENCE_PATH = os.path.join(PROJECT_ROOT, "data", "schema_reference.yaml")


class SchemaReference:
    """Loads the property reference and formats the slice relevant to a type hint."""

    def __init__(self, reference_path=DEFAULT_REFERENCE_PATH):
        self.reference_path = reference_path
        data = {}
        if os.path.exists(reference_path):
            with open(reference_path) as f:
                data = yaml.safe_load(f) or {}
        else:
            log.warning(f"Schema reference not found at {reference_path}")
        self.definitions: dict = data.get("types", {}) or {}
        self.type_families: dict = data.get("type_families", {}) or {}

    def get_relevant_types(self, type_hint: str) -> list[str]:
        if type_hint in self.type_families:
            return list(self.type_families[type_hint])
        return [type_hint, "Organization", "ContactPoint"]

    def get_definitions_for_types(self, types: list[str]) -> dict:
        return {t: self.definitions[t] for t in types if t in self.definitions}

    def format_for_prompt(self, definitions: dict) -> str:
        lines = [
            "=== SCHEMA.ORG PROPERTY REFERENCE ===",
            "Use these properties to create COMPREHENSIVE schemas. Include all applicable properties.",
            "",
        ]
        for type_name, definition in definitions.items():
            lines.append(f"--- {type_name} ---")
            lines.append(definition.get("description", ""))
            lines.append("Properties:")
            for prop, prop_def in (definition.get("properties") or {}).items():
                marker = "[REC] " if prop_def.get("recommended") else "      "
                line = f"{marker}{prop}: {prop_def.get('description', '')}"
                if prop_def.get("type"):
                    line += f" (Type: {prop_def['type']})"
                lines.append(line)
            for nested_type, nested_props in (definition.get("nested") or {}).items():
                lines.append(f"  Nested {nested_type}:")
                for prop, prop_def in nested_props.items():
                    lines.append(f"    - {prop}: {prop_def.get('description', '')}")
            lines.append("")
        lines.append("[REC] = Recommended property - include when data is available")
        return "\n".join(lines) + "\n"

    def for_type_hint(self, type_hint: str) -> str:
        """Formatted reference for the type family of ``type_hint``."""
        types = self.get_relevant_types(type_hint or "auto")
        return self.format_for_prompt(self.get_definitions_for_types(types))
