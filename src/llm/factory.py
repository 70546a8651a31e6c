"""Chat model selection.

Each request walks a chain of provider strategies: in development a local
provider (Ollama or LM Studio) is probed first, then the hosted providers are
tried in ``LLM_HOSTED_PROVIDERS`` order. A strategy that cannot produce a model
raises and the next one is tried; only an exhausted chain is an error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, List, Mapping, Optional

import httpx

from src.config import settings
from src.core.errors import ProviderSelectionError

if TYPE_CHECKING:
    from langchain_core.language_models.chat_models import BaseChatModel

logger = logging.getLogger(__name__)

VALID_PROVIDERS = ("ollama", "lmstudio", "openai", "anthropic")
LOCAL_PROVIDERS = ("ollama", "lmstudio")

# Families that emit reasoning output when asked to
THINKING_MODELS = (
    "deepseek-r1", "deepseek-v3", "deepseek-v3.1",
    "qwen3", "qwq",
    "phi4-reasoning", "phi-4-reasoning",
    "cogito",
)

# First match wins when the caller did not name a model
PREFERRED_LOCAL_MODELS = (
    "deepseek-r1", "qwen3", "phi4-reasoning", "cogito",
    "llama3.1", "gemma3:4b", "gemma3", "llama3.2", "llama3", "qwen2.5", "codestral",
)

EMBEDDING_MARKERS = ("embed", "nomic")

# Hosted clients are reused across requests
_llm_cache: dict[str, BaseChatModel] = {}


def clear_llm_cache() -> None:
    """Drop cached hosted clients so they're recreated on next call."""
    _llm_cache.clear()


def supports_thinking(model_name: str) -> bool:
    lowered = model_name.lower()
    return any(family in lowered for family in THINKING_MODELS)


def choose_local_model(available: List[str], preferred: Optional[str] = None) -> str:
    if preferred and preferred in available:
        return preferred
    for family in PREFERRED_LOCAL_MODELS:
        for name in available:
            if family in name:
                return name
    return available[0]


@dataclass
class ModelSelection:
    client: BaseChatModel
    model_name: str
    provider: str
    supports_reasoning: bool = False

    @property
    def info(self) -> str:
        suffix = " [Reasoning]" if self.supports_reasoning else ""
        return f"{self.provider} ({self.model_name}){suffix}"


@dataclass
class ProviderPreferences:
    """Per-request overrides for the local part of the chain."""
    local_enabled: bool = True
    local_provider: Optional[str] = None
    preferred_model: Optional[str] = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> "ProviderPreferences":
        enabled = headers.get("x-local-enabled") or headers.get("x-ollama-enabled")
        provider = headers.get("x-local-provider")
        return cls(
            local_enabled=(enabled or "true").lower() != "false",
            local_provider=provider if provider in LOCAL_PROVIDERS else None,
            preferred_model=headers.get("x-local-model") or headers.get("x-ollama-model"),
        )


# ---------------------------------------------------------------------------
# Internal constructors (lazy imports to avoid hard dep on unused packages)
# ---------------------------------------------------------------------------

def _create_chat_model(
    provider: str,
    model: str,
    *,
    temperature: Optional[float] = None,
    reasoning: bool = False,
) -> BaseChatModel:
    if provider == "ollama":
        from langchain_ollama import ChatOllama

        kwargs: dict = dict(base_url=settings.OLLAMA_BASE_URL, model=model, reasoning=reasoning)
        if temperature is not None:
            kwargs["temperature"] = temperature
        return ChatOllama(**kwargs)

    if provider == "lmstudio":
        from langchain_openai import ChatOpenAI

        kwargs = dict(
            model=model,
            base_url=f"{settings.LMSTUDIO_BASE_URL.rstrip('/')}/v1",
            api_key="lm-studio",
        )
        if temperature is not None:
            kwargs["temperature"] = temperature
        return ChatOpenAI(**kwargs)

    if provider == "openai":
        from langchain_openai import ChatOpenAI

        if not settings.OPENAI_API_KEY:
            raise ValueError("OPENAI_API_KEY is required when using the openai provider")
        kwargs = dict(model=model, api_key=settings.OPENAI_API_KEY)
        if reasoning and settings.OPENAI_REASONING_EFFORT:
            kwargs["reasoning"] = {"effort": settings.OPENAI_REASONING_EFFORT, "summary": "auto"}
        elif temperature is not None:
            kwargs["temperature"] = temperature
        return ChatOpenAI(**kwargs)

    if provider == "anthropic":
        from langchain_anthropic import ChatAnthropic

        if not settings.ANTHROPIC_API_KEY:
            raise ValueError("ANTHROPIC_API_KEY is required when using the anthropic provider")
        return ChatAnthropic(
            model=model,
            temperature=temperature if temperature is not None else 0.4,
            api_key=settings.ANTHROPIC_API_KEY,
        )

    raise ValueError(f"Unknown provider: {provider!r}. Valid: {VALID_PROVIDERS}")


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

class ProviderStrategy:
    name: str = ""
    is_local: bool = False

    async def resolve(self, prefs: ProviderPreferences) -> ModelSelection:
        raise NotImplementedError


class LocalProviderStrategy(ProviderStrategy):
    """Probes a local server for installed models before building a client."""
    is_local = True
    label = ""
    models_path = ""

    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or settings.LOCAL_PROBE_TIMEOUT_SECONDS
        self.transport = transport

    def _model_names(self, payload: dict) -> List[str]:
        raise NotImplementedError

    async def list_models(self) -> List[str]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.get(f"{self.base_url}{self.models_path}")
            response.raise_for_status()
            names = self._model_names(response.json())
        return [n for n in names if not any(marker in n.lower() for marker in EMBEDDING_MARKERS)]

    async def resolve(self, prefs: ProviderPreferences) -> ModelSelection:
        models = await self.list_models()
        if not models:
            raise ValueError(f"No chat models available in {self.label}")
        model_name = choose_local_model(models, prefs.preferred_model)
        thinking = supports_thinking(model_name)
        return ModelSelection(
            client=_create_chat_model(self.name, model_name, reasoning=thinking),
            model_name=model_name,
            provider=self.label,
            supports_reasoning=thinking,
        )


class OllamaStrategy(LocalProviderStrategy):
    name = "ollama"
    label = "Ollama"
    models_path = "/api/tags"

    def _model_names(self, payload: dict) -> List[str]:
        return [m["name"] for m in payload.get("models") or [] if m.get("name")]


class LMStudioStrategy(LocalProviderStrategy):
    name = "lmstudio"
    label = "LM Studio"
    models_path = "/v1/models"

    def _model_names(self, payload: dict) -> List[str]:
        return [m["id"] for m in payload.get("data") or [] if m.get("id")]


class HostedStrategy(ProviderStrategy):
    labels = {"openai": "OpenAI", "anthropic": "Anthropic"}

    def __init__(self, provider: str):
        if provider not in ("openai", "anthropic"):
            raise ValueError(f"Unknown hosted provider: {provider!r}")
        self.name = provider

    def _model_name(self) -> str:
        if self.name == "openai":
            return settings.OPENAI_MODEL_CHAT
        return settings.ANTHROPIC_MODEL_CHAT

    async def resolve(self, prefs: ProviderPreferences) -> ModelSelection:
        reasoning = self.name == "openai" and bool(settings.OPENAI_REASONING_EFFORT)
        if self.name not in _llm_cache:
            _llm_cache[self.name] = _create_chat_model(
                self.name, self._model_name(), temperature=0.4, reasoning=reasoning
            )
        return ModelSelection(
            client=_llm_cache[self.name],
            model_name=self._model_name(),
            provider=self.labels[self.name],
            supports_reasoning=reasoning,
        )


class ModelSelector:
    def __init__(self, strategies: Iterable[ProviderStrategy], default_local: Optional[str] = None):
        self.strategies = list(strategies)
        self.default_local = default_local

    def _chain(self, prefs: ProviderPreferences) -> List[ProviderStrategy]:
        local_provider = prefs.local_provider or self.default_local
        chain = []
        for strategy in self.strategies:
            if strategy.is_local:
                if not prefs.local_enabled or strategy.name != local_provider:
                    continue
            chain.append(strategy)
        return chain

    async def select(self, prefs: Optional[ProviderPreferences] = None) -> ModelSelection:
        prefs = prefs or ProviderPreferences()
        failures = []
        for strategy in self._chain(prefs):
            try:
                selection = await strategy.resolve(prefs)
            except Exception as e:
                logger.warning(f"Provider {strategy.name} unavailable, falling back: {e}")
                failures.append(f"{strategy.name}: {e}")
                continue
            logger.info(f"Model selected: {selection.info}")
            return selection
        raise ProviderSelectionError("No language model provider is available", detail=failures)


def build_model_selector() -> ModelSelector:
    strategies: List[ProviderStrategy] = []
    if settings.is_development and settings.LOCAL_MODELS_ENABLED:
        strategies.append(OllamaStrategy(settings.OLLAMA_BASE_URL))
        strategies.append(LMStudioStrategy(settings.LMSTUDIO_BASE_URL))
    for provider in settings.LLM_HOSTED_PROVIDERS:
        strategies.append(HostedStrategy(provider))
    return ModelSelector(strategies, default_local=settings.LOCAL_PROVIDER)
