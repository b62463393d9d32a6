"""Schema Validator — pulls JSON-LD out of an LLM reply and checks its structure."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field

from bs4 import BeautifulSoup

log = logging.getLogger(__name__)

MAX_SIZE = 51200

_LD_JSON_RE = re.compile(
    r"""<script[^>]*type=['"]?application/ld\+json['"]?[^>]*>(.*?)</script>""", re.IGNORECASE | re.DOTALL
)
_SCRIPT_RE = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"</?[a-zA-Z][^>]*>")
_FENCE_RE = re.compile(r"```(?:json|json-ld)?\s*([\s\S]*?)```", re.IGNORECASE)
_OBJECT_RE = re.compile(r"(\{[\s\S]*\})")
_ARRAY_RE = re.compile(r"(\[[\s\S]*\])")


@dataclass
class SchemaValidation:
    valid: bool
    schema: str = ""
    schema_type: str = ""
    error: str = ""
    warnings: list[str] = field(default_factory=list)


def dumps(value) -> str:
    """Compact JSON with slashes and unicode left unescaped."""
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def strip_html(text: str) -> str:
    """Unwrap JSON-LD script tags, drop any other script, then strip markup."""
    text = _LD_JSON_RE.sub(lambda m: m.group(1), text)
    text = _SCRIPT_RE.sub("", text)
    if _TAG_RE.search(text):
        text = BeautifulSoup(text, "html.parser").get_text()
    return text.strip()


def _is_json_string(text: str) -> bool:
    text = text.strip()
    if not text or text[0] not in "{[":
        return False
    try:
        json.loads(text)
    except ValueError:
        return False
    return True


def extract_json(content: str) -> str:
    """The first JSON candidate that parses: whole text, fenced block, ``{...}``, ``[...]``."""
    content = content.strip()
    if _is_json_string(content):
        return content

    candidates = []
    match = _FENCE_RE.search(content)
    if match:
        candidates.append(match.group(1).strip())
    for pattern in (_OBJECT_RE, _ARRAY_RE):
        match = pattern.search(content)
        if match:
            candidates.append(match.group(1))

    for candidate in candidates:
        if _is_json_string(candidate):
            return candidate
    return ""


def _first_type(value) -> str:
    if isinstance(value, list):
        return str(value[0]) if value else ""
    return str(value) if value else ""


def get_schema_type(decoded) -> str:
    """Primary @type of a decoded document: the root's, else the first @graph entry's."""
    if isinstance(decoded, dict):
        if decoded.get("@type"):
            return _first_type(decoded["@type"])
        graph = decoded.get("@graph")
        if isinstance(graph, list):
            for node in graph:
                if isinstance(node, dict) and node.get("@type"):
                    return _first_type(node["@type"])
            return "@graph"
        return ""
    if isinstance(decoded, list):
        for item in decoded:
            if isinstance(item, dict) and item.get("@context") and item.get("@type"):
                return _first_type(item["@type"])
    return ""


def _collect_ids(node, defined: set, referenced: set):
    if isinstance(node, dict):
        node_id = node.get("@id")
        if isinstance(node_id, str):
            # a bare {"@id": ...} is a reference, anything more defines the node
            if len(node) == 1:
                referenced.add(node_id)
            else:
                defined.add(node_id)
        for value in node.values():
            _collect_ids(value, defined, referenced)
    elif isinstance(node, list):
        for item in node:
            _collect_ids(item, defined, referenced)


def unresolved_references(decoded) -> list[str]:
    defined, referenced = set(), set()
    _collect_ids(decoded, defined, referenced)
    return sorted(referenced - defined)


def _check_structure(decoded) -> str:
    """Error message for a structurally invalid document, "" when fine."""
    if isinstance(decoded, dict):
        if "@context" not in decoded:
            return "Schema must include @context."
        if "@graph" in decoded and not isinstance(decoded["@graph"], list):
            return "@graph must be an array."
        return ""
    if isinstance(decoded, list) and decoded and isinstance(decoded[0], dict):
        if any(isinstance(item, dict) and "@context" in item for item in decoded):
            return ""
    return "Schema must include @context."


def validate(raw: str) -> SchemaValidation:
    """Extract, size-check, decode and structure-check an LLM reply.

    On success ``schema`` holds the compact re-serialized JSON.
    """
    text = extract_json(strip_html(raw or ""))
    if not text:
        return SchemaValidation(False, error="Empty or no valid JSON found in response.")

    if len(text.encode("utf-8")) > MAX_SIZE:
        return SchemaValidation(False, error=f"Schema exceeds maximum size of {MAX_SIZE // 1024} KB.")

    try:
        decoded = json.loads(text)
    except ValueError as e:
        return SchemaValidation(False, error=f"Invalid JSON: {e}")

    error = _check_structure(decoded)
    if error:
        return SchemaValidation(False, error=error)

    context = decoded.get("@context") if isinstance(decoded, dict) else None
    warnings = []
    if isinstance(context, str) and context.rstrip("/") not in ("https://schema.org", "http://schema.org"):
        warnings.append(f"Unexpected @context: {context}")
    for ref in unresolved_references(decoded):
        warnings.append(f"@id reference {ref} does not match any node in the document")
    for warning in warnings:
        log.debug(f"Schema warning: {warning}")

    return SchemaValidation(True, schema=dumps(decoded), schema_type=get_schema_type(decoded), warnings=warnings)


def is_valid_json(text: str) -> bool:
    if not text:
        return False
    try:
        json.loads(text)
    except ValueError:
        return False
    return True


def pretty_print(text: str) -> str:
    try:
        decoded = json.loads(text)
    except ValueError:
        return text
    return json.dumps(decoded, indent=4, ensure_ascii=False)


def schema_type_of(text: str) -> str:
    try:
        return get_schema_type(json.loads(text))
    except ValueError:
        return ""
