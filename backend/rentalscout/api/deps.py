from dataclasses import dataclass
from typing import Optional

from fastapi import Header, Request

from rentalscout.agents.planner import RentalAgent
from rentalscout.core.errors import Unauthorized
from rentalscout.db.client import LanceDBHandle
from rentalscout.db.listings import ListingRepository
from rentalscout.search.adapters import LexicalSearchAdapter, VectorSearchAdapter
from rentalscout.search.hybrid import HybridRankingEngine
from rentalscout.services.embeddings import EmbeddingService
from rentalscout.services.llm import LanguageModelService
from rentalscout.state.profiles import UserProfileStore
from rentalscout.state.store import ConversationStore
from rentalscout.tools.registry import ToolRegistry


@dataclass
class Services:
    engine: HybridRankingEngine
    repository: ListingRepository
    conversations: ConversationStore
    profiles: UserProfileStore
    agent: RentalAgent


def build_services(handle: LanceDBHandle) -> Services:
    repository = ListingRepository(handle)
    engine = HybridRankingEngine(
        embedder=EmbeddingService(),
        vector_adapter=VectorSearchAdapter(handle),
        lexical_adapter=LexicalSearchAdapter(handle),
        repository=repository,
    )
    conversations = ConversationStore()
    profiles = UserProfileStore()
    agent = RentalAgent(
        llm=LanguageModelService(),
        registry=ToolRegistry.default(engine, profiles),
        store=conversations,
    )
    return Services(engine, repository, conversations, profiles, agent)


def get_services(request: Request) -> Services:
    return request.app.state.services


def current_user(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> Optional[str]:
    """Opaque caller identity; token issuance happens upstream."""
    return x_user_id or None


def require_user(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> str:
    if not x_user_id:
        raise Unauthorized("Sign in required")
    return x_user_id
