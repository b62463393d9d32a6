"""Error taxonomy shared across the generation pipeline."""


class SchemaEngineError(Exception):
    """Base error. ``kind`` is stored on the post when generation fails."""

    kind = "error"


class ConfigError(SchemaEngineError):
    """Missing API key, unknown provider, or no provider configured."""

    kind = "config"


class ContentError(SchemaEngineError):
    """The page has too little content to describe."""

    kind = "content"


class TransportError(SchemaEngineError):
    """Upstream API failure: network, timeout, 5xx, or a rejected request."""

    kind = "transport"

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class ConnectionFailure(TransportError):
    """The request never got a response: timeout, DNS or refused connection."""


class RateLimitError(SchemaEngineError):
    """Upstream asked us to back off. Callers retry after ``wait_seconds``."""

    kind = "rate_limited"

    def __init__(self, message, wait_seconds=60):
        super().__init__(message)
        self.wait_seconds = wait_seconds


class ParseError(SchemaEngineError):
    kind = "parse"


class AnalysisParseError(ParseError):
    """Pass 1 returned something that is not a usable analysis object."""


class ValidationError(SchemaEngineError):
    kind = "validation"
