import httpx
import pytest

from src.core.errors import ProviderSelectionError
from src.llm import factory
from src.llm.factory import (
    HostedStrategy,
    LMStudioStrategy,
    ModelSelector,
    OllamaStrategy,
    ProviderPreferences,
    choose_local_model,
    supports_thinking,
)


@pytest.fixture(autouse=True)
def fake_clients(monkeypatch):
    created = []

    def create(provider, model, *, temperature=None, reasoning=False):
        created.append((provider, model, reasoning))
        return f"{provider}:{model}"

    monkeypatch.setattr(factory, "_create_chat_model", create)
    factory.clear_llm_cache()
    yield created
    factory.clear_llm_cache()


def ollama_transport(names):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/tags"
        return httpx.Response(200, json={"models": [{"name": n} for n in names]})
    return httpx.MockTransport(handler)


def lmstudio_transport(ids):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/models"
        return httpx.Response(200, json={"data": [{"id": i} for i in ids]})
    return httpx.MockTransport(handler)


def unreachable_transport():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)
    return httpx.MockTransport(handler)


def test_thinking_families():
    assert supports_thinking("deepseek-r1:14b")
    assert supports_thinking("Qwen3-8B")
    assert not supports_thinking("llama3.2:3b")


def test_choose_local_model():
    available = ["mistral:7b", "llama3.2:3b", "qwen3:8b"]
    assert choose_local_model(available) == "qwen3:8b"
    assert choose_local_model(available, preferred="mistral:7b") == "mistral:7b"
    assert choose_local_model(available, preferred="missing") == "qwen3:8b"
    assert choose_local_model(["mistral:7b"]) == "mistral:7b"


def test_preferences_from_headers():
    prefs = ProviderPreferences.from_headers({
        "x-ollama-enabled": "false",
        "x-local-provider": "lmstudio",
        "x-ollama-model": "qwen3:8b",
    })
    assert prefs.local_enabled is False
    assert prefs.local_provider == "lmstudio"
    assert prefs.preferred_model == "qwen3:8b"

    defaults = ProviderPreferences.from_headers({"x-local-provider": "something-else"})
    assert defaults.local_enabled is True
    assert defaults.local_provider is None


@pytest.mark.asyncio
async def test_ollama_ignores_embedding_models(fake_clients):
    strategy = OllamaStrategy("http://ollama.test", transport=ollama_transport(
        ["nomic-embed-text:latest", "mxbai-embed-large", "deepseek-r1:8b"]
    ))
    assert await strategy.list_models() == ["deepseek-r1:8b"]

    selection = await ModelSelector([strategy], default_local="ollama").select()
    assert selection.provider == "Ollama"
    assert selection.model_name == "deepseek-r1:8b"
    assert selection.supports_reasoning is True
    assert fake_clients == [("ollama", "deepseek-r1:8b", True)]


@pytest.mark.asyncio
async def test_preferred_lmstudio_model():
    strategy = LMStudioStrategy("http://lmstudio.test", transport=lmstudio_transport(
        ["text-embedding-nomic", "llama-3.2-3b", "mistral-7b"]
    ))
    prefs = ProviderPreferences(local_provider="lmstudio", preferred_model="mistral-7b")
    selection = await ModelSelector([strategy], default_local="ollama").select(prefs)
    assert selection.provider == "LM Studio"
    assert selection.model_name == "mistral-7b"
    assert selection.client == "lmstudio:mistral-7b"


@pytest.mark.asyncio
async def test_falls_back_to_hosted_when_local_unreachable(monkeypatch):
    monkeypatch.setattr(factory.settings, "OPENAI_MODEL_CHAT", "gpt-test")
    selector = ModelSelector(
        [OllamaStrategy("http://ollama.test", transport=unreachable_transport()), HostedStrategy("openai")],
        default_local="ollama",
    )
    selection = await selector.select()
    assert selection.provider == "OpenAI"
    assert selection.client == "openai:gpt-test"


@pytest.mark.asyncio
async def test_no_local_models_falls_back():
    selector = ModelSelector(
        [OllamaStrategy("http://ollama.test", transport=ollama_transport(["nomic-embed-text"])),
         HostedStrategy("anthropic")],
        default_local="ollama",
    )
    selection = await selector.select()
    assert selection.provider == "Anthropic"


@pytest.mark.asyncio
async def test_local_disabled_skips_probe():
    def handler(request):
        raise AssertionError("local provider should not be probed")

    selector = ModelSelector(
        [OllamaStrategy("http://ollama.test", transport=httpx.MockTransport(handler)), HostedStrategy("openai")],
        default_local="ollama",
    )
    selection = await selector.select(ProviderPreferences(local_enabled=False))
    assert selection.provider == "OpenAI"


@pytest.mark.asyncio
async def test_hosted_clients_are_reused(fake_clients):
    selector = ModelSelector([HostedStrategy("openai")])
    first = await selector.select()
    second = await selector.select()
    assert first.client is second.client
    assert len(fake_clients) == 1


@pytest.mark.asyncio
async def test_exhausted_chain_raises(monkeypatch):
    def broken(provider, model, **kwargs):
        raise ValueError(f"{provider.upper()}_API_KEY is required")

    monkeypatch.setattr(factory, "_create_chat_model", broken)
    selector = ModelSelector(
        [OllamaStrategy("http://ollama.test", transport=unreachable_transport()),
         HostedStrategy("openai"), HostedStrategy("anthropic")],
        default_local="ollama",
    )
    with pytest.raises(ProviderSelectionError) as info:
        await selector.select()
    assert info.value.status_code == 503
    assert [line.split(":")[0] for line in info.value.detail] == ["ollama", "openai", "anthropic"]


def test_unknown_hosted_provider():
    with pytest.raises(ValueError):
        HostedStrategy("ollama")
