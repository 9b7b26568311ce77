"""Remote model clients over plain HTTP.

Each client exposes one coroutine, `complete(system, prompt, ...)`, returning
the generated text and token usage. Provider selection mirrors the
configuration's `provider` field.
"""

import logging
from dataclasses import dataclass

import httpx

from .ai.cost import Usage
from .config import NO_KEY_PROVIDERS, STANDARD_ENV_VAR_NAMES
from .exceptions import TransportConfigError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_MODELS: dict[str, str] = {
    "anthropic": "claude-sonnet-4-5",
    "openai": "gpt-4o",
    "openai_compatible": "default",
    "ollama": "llama3.1",
}

ANTHROPIC_URL = "https://api.anthropic.com/v1"
OPENAI_URL = "https://api.openai.com/v1"
OLLAMA_URL = "http://localhost:11434"
ANTHROPIC_VERSION = "2023-06-01"


@dataclass(frozen=True, slots=True)
class Completion:
    text: str
    model: str
    usage: Usage


class ChatClient:
    """Base class for provider clients sharing one httpx.AsyncClient."""

    provider = ""

    def __init__(self, model: str, base_url: str, headers: dict[str, str], timeout: float = 120.0):
        self.model = model
        self._base_url = base_url.rstrip("/")
        self._headers = {"Content-Type": "application/json", **headers}
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout, headers=self._headers)
        return self._client

    async def aclose(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _post(self, path: str, body: dict) -> dict:
        try:
            resp = await self._get_client().post(f"{self._base_url}{path}", json=body)
        except httpx.HTTPError as e:
            raise TransportError(f"{self.provider} request failed: {e}") from e
        if resp.status_code >= 400:
            logger.error(f"{self.provider} API error {resp.status_code}: {resp.text[:500]}")
            raise TransportError(f"{self.provider} API error {resp.status_code}: {resp.text[:200]}")
        return resp.json()

    async def complete(self, system: str, prompt: str, temperature: float = 0.2, max_tokens: int = 4096) -> Completion:
        raise NotImplementedError


class AnthropicClient(ChatClient):
    provider = "anthropic"

    async def complete(self, system: str, prompt: str, temperature: float = 0.2, max_tokens: int = 4096) -> Completion:
        body = {
            "model": self.model,
            "system": system,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        data = await self._post("/messages", body)
        text = "".join(block.get("text", "") for block in data.get("content", []) if block.get("type") == "text")
        usage = data.get("usage", {})
        return Completion(
            text=text,
            model=data.get("model", self.model),
            usage=Usage(usage.get("input_tokens", 0), usage.get("output_tokens", 0)),
        )


class OpenAIClient(ChatClient):
    """OpenAI and OpenAI-compatible servers (/chat/completions)."""

    provider = "openai"

    async def complete(self, system: str, prompt: str, temperature: float = 0.2, max_tokens: int = 4096) -> Completion:
        body = {
            "model": self.model,
            "messages": [{"role": "system", "content": system}, {"role": "user", "content": prompt}],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        data = await self._post("/chat/completions", body)
        choice = data.get("choices", [{}])[0]
        usage = data.get("usage", {})
        return Completion(
            text=choice.get("message", {}).get("content", "") or "",
            model=data.get("model", self.model),
            usage=Usage(usage.get("prompt_tokens", 0), usage.get("completion_tokens", 0)),
        )


class OllamaClient(ChatClient):
    provider = "ollama"

    async def complete(self, system: str, prompt: str, temperature: float = 0.2, max_tokens: int = 4096) -> Completion:
        body = {
            "model": self.model,
            "messages": [{"role": "system", "content": system}, {"role": "user", "content": prompt}],
            "stream": False,
            "options": {"temperature": temperature, "num_predict": max_tokens},
        }
        data = await self._post("/api/chat", body)
        return Completion(
            text=data.get("message", {}).get("content", ""),
            model=data.get("model", self.model),
            usage=Usage(data.get("prompt_eval_count", 0), data.get("eval_count", 0)),
        )


def get_llm(
    provider: str,
    model: str | None = None,
    api_key: str | None = None,
    base_url: str | None = None,
    timeout: float = 120.0,
) -> ChatClient:
    """Create a chat client for a provider.

    Args:
        provider: anthropic, openai, openai_compatible or ollama
        model: Model name; defaults per provider
        api_key: API key (not required for ollama or a custom base URL)
        base_url: Custom endpoint
        timeout: Request timeout in seconds

    Returns:
        Configured ChatClient

    Raises:
        TransportConfigError: If the provider is unsupported or its key is missing
    """
    requires_api_key = provider not in NO_KEY_PROVIDERS and not base_url
    if requires_api_key and not api_key:
        standard_var = STANDARD_ENV_VAR_NAMES.get(provider, "KITGEN_AI_API_KEY")
        raise TransportConfigError(
            f"API key required for provider '{provider}'",
            f"Set {standard_var} or KITGEN_AI_API_KEY, or choose another transport with KITGEN_AI_MODE",
        )

    model = model or DEFAULT_MODELS.get(provider, "default")
    match provider:
        case "anthropic":
            headers = {"x-api-key": api_key or "", "anthropic-version": ANTHROPIC_VERSION}
            return AnthropicClient(model, base_url or ANTHROPIC_URL, headers, timeout)
        case "openai" | "openai_compatible":
            if provider == "openai_compatible" and not base_url:
                raise TransportConfigError(
                    "Provider 'openai_compatible' needs a base URL", "Set KITGEN_AI_BASE_URL to the server's /v1 endpoint"
                )
            headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
            client = OpenAIClient(model, base_url or OPENAI_URL, headers, timeout)
            client.provider = provider
            return client
        case "ollama":
            return OllamaClient(model, base_url or OLLAMA_URL, {}, timeout)
        case _:
            raise TransportConfigError(
                f"Unsupported provider: {provider}", "Use one of: anthropic, openai, openai_compatible, ollama"
            )
