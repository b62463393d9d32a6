"""LLM Client — shared HTTP transport for chat-completion providers.

Owns the retry/backoff loop, the site-wide rate-limit gate, error-message
mapping and output-token budgeting. Providers decide how a request looks;
this module decides how it is sent and when to give up.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from email.utils import parsedate_to_datetime

import requests

from jsonld_engine.errors import ConfigError, ConnectionFailure, ParseError, RateLimitError, TransportError
from jsonld_engine.store import SiteStore

log = logging.getLogger(__name__)

MAX_RETRIES = 3
INITIAL_DELAY = 1.0
MAX_DELAY = 10.0
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504, 529}
# Rejected credentials are a configuration problem, not a transport one
AUTH_STATUS_CODES = {401, 403}

RATE_LIMIT_KEY = "wp_ai_schema_rate_limit_until"
DEFAULT_RATE_LIMIT_WAIT = 60
# Extra transient lifetime past the blocked-until time
RATE_LIMIT_GRACE = 10

MIN_OUTPUT_TOKENS = 1000
TOKEN_SAFETY_BUFFER = 2000
CHARS_PER_TOKEN = 3.5
MESSAGE_OVERHEAD_CHARS = 10

_STATUS_MESSAGES = {
    400: "Bad request. Please check your settings.",
    401: "Invalid API key. Please check your credentials.",
    403: "Access forbidden. Please check your API key permissions.",
    404: "API endpoint not found.",
    429: "Rate limit exceeded. Please try again later.",
}


@dataclass
class Reply:
    """One upstream response, decoupled from the library that fetched it."""

    status_code: int
    data: dict | None = None
    headers: dict = field(default_factory=dict)
    text: str = ""


def map_error(status_code: int, data=None) -> str:
    """Human-readable message for a failed response.

    A message in the response body wins over the generic per-status text.
    """
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, str) and error:
            return error
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
    if status_code in _STATUS_MESSAGES:
        return _STATUS_MESSAGES[status_code]
    if status_code >= 500:
        return "Server error. Please try again later."
    return f"Request failed with status code {status_code}."


def parse_retry_after(headers: dict, now: float | None = None) -> float | None:
    """Seconds to wait according to a ``Retry-After`` header, or None."""
    value = None
    for key, header_value in (headers or {}).items():
        if key.lower() == "retry-after":
            value = str(header_value).strip()
            break
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(value).timestamp()
    except (TypeError, ValueError):
        log.warning(f"Unparseable Retry-After header: {value}")
        return None
    now = time.time() if now is None else now
    return max(0.0, retry_at - now)


def estimate_tokens(messages: list[dict]) -> int:
    """Conservative token estimate: 3.5 characters per token plus per-message overhead."""
    total_chars = sum(len(m.get("content") or "") + MESSAGE_OVERHEAD_CHARS for m in messages)
    return int(math.ceil(total_chars / CHARS_PER_TOKEN))


def safe_max_tokens(messages: list[dict], requested: int, context_window: int, max_output: int) -> int:
    """Clamp ``requested`` so input + output + safety buffer fits the context window.

    Never returns less than MIN_OUTPUT_TOKENS.
    """
    input_tokens = estimate_tokens(messages)
    available = context_window - input_tokens - TOKEN_SAFETY_BUFFER
    if available < MIN_OUTPUT_TOKENS:
        log.warning(
            f"Input too large: ~{input_tokens} tokens estimated, only {available} available for output"
        )
        return MIN_OUTPUT_TOKENS
    return min(requested, max_output, available)


class RateLimitGate:
    """Site-wide "blocked until" marker shared by every generation request."""

    def __init__(self, store: SiteStore, clock=time.time):
        self.store = store
        self.clock = clock

    def remaining(self) -> int:
        """Whole seconds left in the current block, 0 when not blocked."""
        blocked_until = self.store.get_transient(RATE_LIMIT_KEY)
        if not blocked_until:
            return 0
        left = float(blocked_until) - self.clock()
        if left <= 0:
            self.store.delete_transient(RATE_LIMIT_KEY)
            return 0
        return int(math.ceil(left))

    def is_blocked(self) -> bool:
        return self.remaining() > 0

    def block(self, wait_seconds: float):
        blocked_until = self.clock() + wait_seconds
        self.store.set_transient(RATE_LIMIT_KEY, blocked_until, ttl=wait_seconds + RATE_LIMIT_GRACE)
        log.warning(f"Upstream rate limit: blocking requests for {int(math.ceil(wait_seconds))}s")

    def clear(self):
        self.store.delete_transient(RATE_LIMIT_KEY)

    def check(self):
        """Raise RateLimitError while a block is active."""
        left = self.remaining()
        if left > 0:
            raise RateLimitError(f"Rate limited. Please try again in {left} seconds.", wait_seconds=left)


class LLMClient:
    """Sends provider requests with bounded retry and exponential backoff."""

    def __init__(self, gate: RateLimitGate, session=None, sleep=time.sleep, max_retries=MAX_RETRIES):
        self.gate = gate
        self.session = session or requests.Session()
        self.sleep = sleep
        self.max_retries = max_retries

    # --- transport ---

    def post_json(self, url: str, headers: dict, body: dict, timeout: float = 60) -> dict:
        """POST ``body`` as JSON and return the decoded success envelope."""

        def send() -> Reply:
            try:
                resp = self.session.post(url, json=body, headers=headers, timeout=timeout)
            except requests.exceptions.Timeout:
                raise ConnectionFailure("Request timed out. Please try again later.")
            except requests.exceptions.ConnectionError as e:
                raise ConnectionFailure(f"Could not connect to the API: {e}")
            try:
                data = resp.json()
            except ValueError:
                data = None
            return Reply(resp.status_code, data, dict(resp.headers), resp.text)

        reply = self.request(send, url)
        if reply.data is None:
            raise ParseError("Failed to parse API response.")
        return reply.data

    def request(self, send, endpoint: str, method: str = "POST") -> Reply:
        """Call ``send`` until it yields a 2xx :class:`Reply` or retries run out.

        ``send`` returns a Reply, or raises ConnectionFailure when no response
        arrived. The shared rate-limit gate is checked once before the first
        attempt. Every 429 extends the gate, and a 429 asking for longer than
        MAX_DELAY is raised straight away instead of being slept through.
        """
        self.gate.check()

        delay = INITIAL_DELAY
        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                start = time.time()
                reply = send()
                elapsed = time.time() - start
            except ConnectionFailure as e:
                log.warning(f"{method} {endpoint} failed: {e}, attempt {attempt}/{self.max_retries}")
                last_error = e
            else:
                log.info(
                    f"{method} {endpoint} -> {reply.status_code}",
                    extra={
                        "endpoint": endpoint,
                        "method": method,
                        "status_code": reply.status_code,
                        "response_time": round(elapsed, 3),
                        "attempt": attempt,
                    },
                )
                if 200 <= reply.status_code < 300:
                    return reply

                message = map_error(reply.status_code, reply.data)
                retry_after = parse_retry_after(reply.headers)

                if reply.status_code == 429:
                    wait = retry_after if retry_after is not None else DEFAULT_RATE_LIMIT_WAIT
                    self.gate.block(wait)
                    error = RateLimitError(
                        f"Rate limited. Please try again in {int(math.ceil(wait))} seconds.",
                        wait_seconds=int(math.ceil(wait)),
                    )
                    if wait > MAX_DELAY:
                        raise error
                    last_error = error
                elif reply.status_code in RETRYABLE_STATUS_CODES:
                    log.warning(
                        f"Server error {reply.status_code}, retry {attempt}/{self.max_retries}"
                    )
                    last_error = TransportError(message, status_code=reply.status_code)
                else:
                    log.error(f"{method} {endpoint} rejected: {reply.status_code} {reply.text[:500]}")
                    if reply.status_code in AUTH_STATUS_CODES:
                        raise ConfigError(message)
                    raise TransportError(message, status_code=reply.status_code)

                if retry_after is not None:
                    delay = min(retry_after, MAX_DELAY)

            if attempt < self.max_retries:
                self.sleep(delay)
                delay = min(delay * 2, MAX_DELAY)

        if isinstance(last_error, RateLimitError):
            raise last_error
        if isinstance(last_error, ConnectionFailure):
            raise TransportError(
                "Could not reach the API. Please try again later.", status_code=None
            ) from last_error
        raise last_error

    def open_stream(self, url: str, headers: dict, body: dict, timeout: float = 300):
        """POST with ``stream=True`` and return the open response.

        Streaming requests are not retried. Error statuses are mapped the same
        way as :meth:`request`, and a 429 still blocks the shared gate.
        """
        self.gate.check()
        try:
            start = time.time()
            resp = self.session.post(url, json=body, headers=headers, timeout=timeout, stream=True)
            elapsed = time.time() - start
        except requests.exceptions.Timeout:
            raise TransportError("Request timed out. Please try again later.")
        except requests.exceptions.ConnectionError as e:
            raise TransportError(f"Could not connect to the API: {e}")

        log.info(
            f"POST {url} -> {resp.status_code} (stream)",
            extra={
                "endpoint": url,
                "method": "POST",
                "status_code": resp.status_code,
                "response_time": round(elapsed, 3),
            },
        )
        if resp.status_code < 400:
            return resp

        try:
            data = resp.json()
        except ValueError:
            data = None
        log.error(f"API error {resp.status_code}: {resp.text[:500]}")
        if resp.status_code == 429:
            retry_after = parse_retry_after(dict(resp.headers))
            wait = retry_after if retry_after is not None else DEFAULT_RATE_LIMIT_WAIT
            self.gate.block(wait)
            raise RateLimitError(
                f"Rate limited. Please try again in {int(math.ceil(wait))} seconds.",
                wait_seconds=int(math.ceil(wait)),
            )
        if resp.status_code in AUTH_STATUS_CODES:
            raise ConfigError(stream_error_message(resp.status_code, data))
        raise TransportError(stream_error_message(resp.status_code, data), status_code=resp.status_code)


def stream_error_message(status_code: int, data) -> str:
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        if data.get("message"):
            return data["message"]
    return f"HTTP {status_code}"
