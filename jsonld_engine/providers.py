"""LLM providers and the registry that holds them.

Every provider offers the same capabilities: ``generate`` (Pass 2 or single
pass), ``analyze`` (Pass 1), ``stream``, ``test_connection`` and
``max_content_chars``. Chat-completion providers share one request shape and
go through :class:`LLMClient`; Anthropic goes through its SDK but reuses the
same retry loop and error mapping.
"""

from __future__ import annotations

import logging

import anthropic
import requests

from jsonld_engine.errors import ConfigError, ConnectionFailure, ParseError, TransportError
from jsonld_engine.llm_client import LLMClient, Reply, safe_max_tokens
from jsonld_engine.prompt_builder import PromptRenderer
from jsonld_engine.streaming import CONTENT, StreamEvent, fold_stream

log = logging.getLogger(__name__)

GENERATION_TIMEOUT = 60
# Per call; the two calls of a two-pass run share a five minute budget
TWO_PASS_CALL_TIMEOUT = 150
STREAM_TIMEOUT = 300
CONNECTION_TEST_TIMEOUT = 30
STREAM_TEMPERATURE = 0.3
CONNECTION_TEST_PROMPT = 'Say "OK" and nothing else.'
CONNECTION_OK_MESSAGE = "Connection successful! API key is valid."


class Provider:
    """Base class. Subclasses set the class attributes and implement ``complete``."""

    name = ""
    slug = ""
    default_model = ""
    models: dict = {}
    supports_streaming = False

    def __init__(self, client: LLMClient, renderer: PromptRenderer | None = None):
        self.client = client
        self.renderer = renderer or PromptRenderer()

    def get_name(self) -> str:
        return self.name

    def get_slug(self) -> str:
        return self.slug

    def get_models(self) -> dict:
        return self.models

    def get_model_config(self, model: str = "") -> dict:
        return self.models.get(model) or self.models[self.default_model]

    def get_max_tokens(self, model: str = "") -> int:
        return self.get_model_config(model or self.default_model)["max_output"]

    def max_content_chars(self, model: str = "") -> int:
        return self.get_model_config(model or self.default_model)["max_content_chars"]

    def get_settings_fields(self) -> dict:
        return {
            f"{self.slug}_api_key": {
                "label": "API Key",
                "type": "password",
                "description": f"Your {self.name} API key.",
                "required": True,
            },
            f"{self.slug}_model": {
                "label": "Model",
                "type": "select",
                "default": self.default_model,
                "options": list(self.models),
                "description": f"The {self.name} model to use.",
            },
        }

    def api_key(self, settings: dict) -> str:
        key = settings.get(f"{self.slug}_api_key", "")
        if not key:
            raise ConfigError(f"{self.name} API key is not configured. Please configure it in Settings.")
        return key

    def model(self, settings: dict) -> str:
        return settings.get(f"{self.slug}_model") or self.default_model

    def budget(self, messages: list[dict], settings: dict) -> int:
        config = self.get_model_config(self.model(settings))
        return safe_max_tokens(messages, config["max_output"], config["context_window"], config["max_output"])

    # --- capabilities ---

    def generate(self, payload: dict, settings: dict, timeout: float = GENERATION_TIMEOUT) -> str:
        """Raw schema text for a Pass 2 (or single-pass) payload."""
        return self.complete(self.renderer.schema_messages(payload), settings, timeout)

    def analyze(self, payload: dict, settings: dict, timeout: float = TWO_PASS_CALL_TIMEOUT) -> str:
        """Raw analysis JSON text for a Pass 1 payload."""
        return self.complete(self.renderer.analysis_messages(payload), settings, timeout)

    def test_connection(self, settings: dict) -> str:
        if not settings.get(f"{self.slug}_api_key"):
            raise ConfigError("API key is required.")
        self.complete(
            [{"role": "user", "content": CONNECTION_TEST_PROMPT}],
            settings,
            CONNECTION_TEST_TIMEOUT,
            temperature=0,
            max_tokens=10,
        )
        return CONNECTION_OK_MESSAGE

    def stream(self, messages: list[dict], settings: dict, on_event, phase: str) -> str:
        """Without native streaming, send one content event with the whole reply."""
        content = self.complete(messages, settings, STREAM_TIMEOUT, temperature=STREAM_TEMPERATURE)
        on_event(StreamEvent(CONTENT, {"phase": phase, "chunk": content, "total": len(content)}))
        return content

    def complete(self, messages: list[dict], settings: dict, timeout: float,
                 temperature: float | None = None, max_tokens: int | None = None) -> str:
        raise NotImplementedError


class ChatCompletionProvider(Provider):
    """OpenAI-style ``/chat/completions`` APIs with bearer auth."""

    endpoint = ""
    token_param = "max_tokens"
    supports_streaming = True

    def headers(self, api_key: str) -> dict:
        return {"Content-Type": "application/json", "Authorization": f"Bearer {api_key}"}

    def build_body(self, messages, settings, temperature=None, max_tokens=None, stream=False) -> dict:
        body = {
            "model": self.model(settings),
            "messages": messages,
            "temperature": float(settings.get("temperature", 0.2) if temperature is None else temperature),
            self.token_param: max_tokens if max_tokens is not None else self.budget(messages, settings),
        }
        if stream:
            body["stream"] = True
        return body

    def complete(self, messages, settings, timeout, temperature=None, max_tokens=None) -> str:
        api_key = self.api_key(settings)
        body = self.build_body(messages, settings, temperature, max_tokens)
        data = self.client.post_json(self.endpoint, self.headers(api_key), body, timeout)
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = ""
        if not content:
            raise ParseError("Empty response from API.")
        return content

    def stream(self, messages, settings, on_event, phase) -> str:
        api_key = self.api_key(settings)
        body = self.build_body(messages, settings, STREAM_TEMPERATURE, self.budget(messages, settings), stream=True)
        log.info(f"Streaming request to {self.endpoint} with model {body['model']}")
        resp = self.client.open_stream(self.endpoint, self.headers(api_key), body, STREAM_TIMEOUT)

        def forward(fragment, state):
            on_event(StreamEvent(CONTENT, {"phase": phase, "chunk": fragment, "total": len(state.content)}))

        try:
            return fold_stream(resp.iter_content(chunk_size=None), forward)
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Stream interrupted: {e}")
        finally:
            resp.close()


class DeepSeekProvider(ChatCompletionProvider):
    name = "DeepSeek"
    slug = "deepseek"
    endpoint = "https://api.deepseek.com/v1/chat/completions"
    default_model = "deepseek-chat"
    models = {
        "deepseek-chat": {
            "name": "DeepSeek Chat",
            "context_window": 65536,
            "max_output": 8000,
            "max_content_chars": 50000,
        },
    }


class OpenAIProvider(ChatCompletionProvider):
    name = "OpenAI"
    slug = "openai"
    endpoint = "https://api.openai.com/v1/chat/completions"
    token_param = "max_completion_tokens"
    default_model = "gpt-5-nano"
    models = {
        "gpt-5-nano": {
            "name": "GPT-5 nano",
            "context_window": 400000,
            "max_output": 16000,
            "max_content_chars": 100000,
        },
        "gpt-4o-mini": {
            "name": "GPT-4o mini",
            "context_window": 128000,
            "max_output": 16000,
            "max_content_chars": 100000,
        },
    }


class AnthropicProvider(Provider):
    """Claude models through the ``anthropic`` SDK.

    The SDK's own retries are disabled so the shared loop in LLMClient
    applies the same backoff and rate-limit gate as the HTTP providers.
    """

    name = "Anthropic"
    slug = "anthropic"
    endpoint = "https://api.anthropic.com/v1/messages"
    default_model = "claude-sonnet-4-5-20250929"
    models = {
        "claude-sonnet-4-5-20250929": {
            "name": "Claude Sonnet 4.5",
            "context_window": 200000,
            "max_output": 8000,
            "max_content_chars": 100000,
        },
        "claude-haiku-4-5-20251001": {
            "name": "Claude Haiku 4.5",
            "context_window": 200000,
            "max_output": 8000,
            "max_content_chars": 100000,
        },
    }

    def __init__(self, client: LLMClient, renderer: PromptRenderer | None = None, sdk_factory=None):
        super().__init__(client, renderer)
        self.sdk_factory = sdk_factory or anthropic.Anthropic
        self._sdk_clients: dict = {}

    def sdk(self, api_key: str):
        if api_key not in self._sdk_clients:
            self._sdk_clients[api_key] = self.sdk_factory(api_key=api_key, max_retries=0)
        return self._sdk_clients[api_key]

    def complete(self, messages, settings, timeout, temperature=None, max_tokens=None) -> str:
        api_key = self.api_key(settings)
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        chat = [m for m in messages if m["role"] != "system"]
        kwargs = {
            "model": self.model(settings),
            "max_tokens": max_tokens if max_tokens is not None else self.budget(messages, settings),
            "temperature": float(settings.get("temperature", 0.2) if temperature is None else temperature),
            "messages": chat,
            "timeout": timeout,
        }
        if system:
            kwargs["system"] = system
        sdk = self.sdk(api_key)

        def send() -> Reply:
            try:
                message = sdk.messages.create(**kwargs)
            except anthropic.APIStatusError as e:
                body = e.body if isinstance(e.body, dict) else None
                return Reply(e.status_code, body, dict(e.response.headers), str(e))
            except anthropic.APITimeoutError:
                raise ConnectionFailure("Request timed out. Please try again later.")
            except anthropic.APIConnectionError as e:
                raise ConnectionFailure(f"Could not connect to the API: {e}")
            text = "".join(
                block.text for block in message.content if getattr(block, "type", "") == "text"
            )
            return Reply(200, {"text": text})

        reply = self.client.request(send, self.endpoint)
        content = (reply.data or {}).get("text", "")
        if not content:
            raise ParseError("Empty response from API.")
        return content


class ProviderRegistry:
    """Keyed collection of provider instances, built explicitly and passed around."""

    def __init__(self, providers=()):
        self._providers: dict[str, Provider] = {}
        for provider in providers:
            self.register(provider)

    def register(self, provider: Provider) -> bool:
        slug = provider.get_slug()
        if slug in self._providers:
            log.warning(f'Provider "{slug}" is already registered.')
            return False
        self._providers[slug] = provider
        return True

    def unregister(self, slug: str) -> bool:
        return self._providers.pop(slug, None) is not None

    def get(self, slug: str) -> Provider | None:
        return self._providers.get(slug)

    def get_all(self) -> dict[str, Provider]:
        return dict(self._providers)

    def get_options(self) -> dict[str, str]:
        return {slug: provider.get_name() for slug, provider in self._providers.items()}

    def has(self, slug: str) -> bool:
        return slug in self._providers

    def get_active(self, settings: dict) -> Provider | None:
        return self.get(settings.get("provider", "deepseek"))

    def count(self) -> int:
        return len(self._providers)


def default_registry(client: LLMClient, renderer: PromptRenderer | None = None) -> ProviderRegistry:
    renderer = renderer or PromptRenderer()
    return ProviderRegistry([
        DeepSeekProvider(client, renderer),
        OpenAIProvider(client, renderer),
        AnthropicProvider(client, renderer),
    ])
