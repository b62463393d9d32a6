"""Streaming — server-sent-event parsing for chat-completion streams.

The parser is a fold: ``process_chunk(state, data)`` takes the previous
:class:`StreamState` and a raw chunk, and returns the next state together
with the content fragments the chunk completed. Chunks may split lines
anywhere; partial lines wait in ``state.buffer``.
"""

from __future__ import annotations

import codecs
import json
import logging
from dataclasses import dataclass, field

log = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"

# Event names sent to streaming callers
STATUS = "status"
CONTENT = "content"
COMPLETE = "complete"
ERROR = "error"


@dataclass(frozen=True)
class StreamState:
    buffer: str = ""
    content: str = ""


@dataclass
class StreamEvent:
    event: str
    data: dict = field(default_factory=dict)


def _delta_content(payload: str) -> str:
    try:
        event = json.loads(payload)
    except ValueError:
        log.debug(f"Skipping undecodable stream line: {payload[:200]}")
        return ""
    if not isinstance(event, dict):
        return ""
    choices = event.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return ""
    delta = choices[0].get("delta") or {}
    content = delta.get("content")
    return content if isinstance(content, str) else ""


def _parse_line(line: str) -> str:
    line = line.strip()
    # blank keep-alives and ":" comments carry no data
    if not line or line.startswith(":"):
        return ""
    if not line.startswith(DATA_PREFIX):
        return ""
    payload = line[len(DATA_PREFIX):]
    if payload == DONE_SENTINEL:
        return ""
    return _delta_content(payload)


def process_chunk(state: StreamState, data: str) -> tuple[StreamState, list[str]]:
    buffer = state.buffer + data
    content = state.content
    fragments = []
    while "\n" in buffer:
        line, buffer = buffer.split("\n", 1)
        fragment = _parse_line(line)
        if fragment:
            content += fragment
            fragments.append(fragment)
    return StreamState(buffer, content), fragments


def finish(state: StreamState) -> tuple[StreamState, list[str]]:
    """Flush a trailing line the stream ended without a newline for."""
    if not state.buffer:
        return state, []
    return process_chunk(state, "\n")


def fold_stream(chunks, on_fragment=None) -> str:
    """Run ``process_chunk`` over byte or text chunks and return the full content.

    ``on_fragment(fragment, state)`` is called for every content fragment.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    state = StreamState()
    for chunk in chunks:
        text = decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        state, fragments = process_chunk(state, text)
        for fragment in fragments:
            if on_fragment:
                on_fragment(fragment, state)
    state, fragments = process_chunk(state, decoder.decode(b"", final=True))
    state, tail = finish(state)
    for fragment in fragments + tail:
        if on_fragment:
            on_fragment(fragment, state)
    return state.content


_FINDING_LABELS = (
    ("testimonials", "testimonial"),
    ("faqs", "FAQ"),
    ("services", "service"),
    ("team_members", "team member"),
    ("products", "product"),
)


def findings_summary(analysis: dict) -> str:
    """One-line status such as "Found: 3 testimonials, 1 FAQ"."""
    findings = []
    for key, label in _FINDING_LABELS:
        count = len(analysis.get(key) or [])
        if count:
            findings.append(f"{count} {label}{'s' if count > 1 else ''}")
    if not findings:
        return "Content analyzed"
    return "Found: " + ", ".join(findings)
