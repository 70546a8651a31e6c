"""Shared collaborators, resolved through FastAPI dependencies so tests can override them."""

from functools import lru_cache

from src.artifacts.service import ArtifactService
from src.chat.persistence import MessagePersistence, SqlMessageRepository
from src.database import get_session_factory
from src.llm.factory import ModelSelector, build_model_selector
from src.patents.store import PatentDocumentStore
from src.providers.sandbox import DaytonaSandboxProvider, SandboxProvider
from src.providers.search import SearchProvider, ValyuSearchProvider
from src.tools.registry import ToolRegistry, build_tool_registry


@lru_cache
def get_patent_store() -> PatentDocumentStore:
    return PatentDocumentStore(get_session_factory())


@lru_cache
def get_artifact_service() -> ArtifactService:
    return ArtifactService(get_session_factory())


@lru_cache
def get_search_provider() -> SearchProvider:
    return ValyuSearchProvider()


@lru_cache
def get_sandbox_provider() -> SandboxProvider:
    return DaytonaSandboxProvider()


@lru_cache
def get_model_selector() -> ModelSelector:
    return build_model_selector()


@lru_cache
def get_tool_registry() -> ToolRegistry:
    return build_tool_registry()


@lru_cache
def get_message_repository() -> SqlMessageRepository:
    return SqlMessageRepository(get_session_factory())


def get_message_persistence() -> MessagePersistence:
    return MessagePersistence(get_message_repository())
