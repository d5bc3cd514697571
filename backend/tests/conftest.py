"""Shared fakes for the retrieval stack and the language model."""
from typing import Any, Dict, List, Optional

import pytest

from rentalscout.agents.planner import RentalAgent
from rentalscout.core.errors import EmbeddingUnavailable, NotFound, StoreUnavailable
from rentalscout.db.ids import normalize_listing_id
from rentalscout.db.listings import SORTS
from rentalscout.db.schemas import Listing
from rentalscout.search.adapters import Candidate, lexical_score, query_terms
from rentalscout.search.filters import SearchFilter
from rentalscout.search.hybrid import HybridRankingEngine
from rentalscout.services.llm import Completion, ToolCallRequest
from rentalscout.state.profiles import UserProfileStore
from rentalscout.state.store import ConversationStore
from rentalscout.tools.registry import ToolRegistry


ROWS: List[Dict[str, Any]] = [
    {
        "id": "1001", "name": "Sunny 2 bedroom apartment in Midtown Manhattan",
        "summary": "Bright apartment close to Times Square", "description": "Two bedrooms, one bath.",
        "neighborhood_overview": "", "property_type": "Apartment", "room_type": "Entire home/apt",
        "price": 350.0, "bedrooms": 2, "bathrooms": 1.0, "accommodates": 4, "market": "New York",
        "country": "United States", "host_is_superhost": True, "instant_bookable": True,
        "review_rating": 95.0, "number_of_reviews": 120, "image_url": "",
    },
    {
        "id": "1002", "name": "Cozy Brooklyn loft",
        "summary": "Industrial loft with exposed brick", "description": "Loft apartment near the park.",
        "neighborhood_overview": "Quiet Brooklyn street", "property_type": "Loft", "room_type": "Entire home/apt",
        "price": 180.0, "bedrooms": 1, "bathrooms": 1.0, "accommodates": 2, "market": "New York",
        "country": "United States", "host_is_superhost": False, "instant_bookable": False,
        "review_rating": 88.0, "number_of_reviews": 40, "image_url": "",
    },
    {
        "id": "1003", "name": "Large 3 bedroom apartment Upper West Side",
        "summary": "Family apartment in Manhattan", "description": "Three bedrooms, two baths, elevator.",
        "neighborhood_overview": "", "property_type": "Apartment", "room_type": "Entire home/apt",
        "price": 480.0, "bedrooms": 3, "bathrooms": 2.0, "accommodates": 6, "market": "New York",
        "country": "United States", "host_is_superhost": False, "instant_bookable": True,
        "review_rating": 91.0, "number_of_reviews": 60, "image_url": "",
    },
    {
        "id": "1004", "name": "Penthouse apartment with terrace",
        "summary": "Luxury penthouse in Manhattan", "description": "Two bedroom penthouse.",
        "neighborhood_overview": "", "property_type": "Apartment", "room_type": "Entire home/apt",
        "price": 900.0, "bedrooms": 2, "bathrooms": 2.0, "accommodates": 4, "market": "New York",
        "country": "United States", "host_is_superhost": True, "instant_bookable": False,
        "review_rating": 97.0, "number_of_reviews": 15, "image_url": "",
    },
    {
        "id": "2001", "name": "Private room near Sagrada Familia",
        "summary": "Room in a shared apartment", "description": "Private room, shared bathroom.",
        "neighborhood_overview": "", "property_type": "Apartment", "room_type": "Private room",
        "price": 45.0, "bedrooms": 1, "bathrooms": 1.0, "accommodates": 2, "market": "Barcelona",
        "country": "Spain", "host_is_superhost": True, "instant_bookable": True,
        "review_rating": 93.0, "number_of_reviews": 210, "image_url": "",
    },
]

# Similarity each listing gets from the fake vector index
SIMILARITY = {"1001": 0.92, "1002": 0.55, "1003": 0.81, "1004": 0.77, "2001": 0.30}


class FakeEmbedder:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[str] = []

    async def embed(self, text: str, is_query: bool = True) -> List[float]:
        self.calls.append(text)
        if self.fail:
            raise EmbeddingUnavailable("embedding service down")
        return [0.1] * 8


class MemoryVectorAdapter:
    def __init__(self, rows=None, similarity=None, fail: bool = False):
        self.rows = ROWS if rows is None else rows
        self.similarity = SIMILARITY if similarity is None else similarity
        self.fail = fail
        self.calls: List[Dict[str, Any]] = []

    async def query(self, vector, filters: SearchFilter, candidate_count: int) -> List[Candidate]:
        self.calls.append({"filters": filters, "candidate_count": candidate_count})
        if self.fail:
            raise StoreUnavailable("vector index unreachable")
        hits = [
            Candidate(normalize_listing_id(r["id"]), self.similarity.get(str(r["id"]), 0.0), r)
            for r in self.rows
            if filters.matches(r)
        ]
        hits.sort(key=lambda c: -c.raw_score)
        return hits[:candidate_count]


class MemoryLexicalAdapter:
    def __init__(self, rows=None, fail: bool = False):
        self.rows = ROWS if rows is None else rows
        self.fail = fail
        self.calls: List[Dict[str, Any]] = []

    async def query(self, text, filters: SearchFilter, candidate_count: int) -> List[Candidate]:
        self.calls.append({"text": text, "filters": filters, "candidate_count": candidate_count})
        if self.fail:
            raise StoreUnavailable("listing store unreachable")
        terms = query_terms(text)
        hits = []
        for r in self.rows:
            if not filters.matches(r):
                continue
            score = lexical_score(r, terms, " ".join(terms))
            if terms and score <= 0:
                continue
            hits.append(Candidate(normalize_listing_id(r["id"]), score, r))
        hits.sort(key=lambda c: (-c.raw_score, c.listing_id))
        return hits[:candidate_count]


class StaticAdapter:
    """Returns a fixed candidate list whatever the query."""

    def __init__(self, candidates: List[Candidate]):
        self.candidates = candidates

    async def query(self, *args, **kwargs) -> List[Candidate]:
        return list(self.candidates)


class MemoryRepository:
    def __init__(self, rows=None):
        self.rows = ROWS if rows is None else rows
        self.listings = {}
        for row in self.rows:
            listing = Listing.from_row(row)
            self.listings[listing.id] = listing
        self.lookups = 0

    async def find_by_id(self, listing_id) -> Listing:
        self.lookups += 1
        key = normalize_listing_id(listing_id)
        if key not in self.listings:
            raise NotFound(f"Listing {key} not found", listing_id=key)
        return self.listings[key]

    async def find_many(self, filters=None, sort="rating", skip=0, limit=20):
        key, reverse = SORTS[sort]
        rows = [r for r in self.rows if (filters or SearchFilter()).matches(r)]
        rows.sort(key=key, reverse=reverse)
        return [self.listings[normalize_listing_id(r["id"])] for r in rows[skip:skip + limit]], len(rows)


class ScriptedLLM:
    """Replays a fixed sequence of completions and records every dispatch."""

    def __init__(self, script: List[Any]):
        self.script = list(script)
        self.calls: List[Dict[str, Any]] = []

    def _next(self, messages, tools):
        self.calls.append({"messages": [dict(m) for m in messages], "tools": tools})
        if not self.script:
            raise AssertionError("ScriptedLLM ran out of responses")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def complete(self, messages, tools=None) -> Completion:
        return self._next(messages, tools)

    async def stream(self, messages, tools=None):
        completion = self._next(messages, tools)
        if completion.content:
            words = completion.content.split(" ")
            for i, word in enumerate(words):
                yield word if i == len(words) - 1 else word + " "
        yield completion


def tool_call(name: str, arguments: str, call_id: Optional[str] = None) -> Completion:
    return Completion(content=None, tool_calls=[ToolCallRequest(id=call_id or f"call_{name}", name=name, arguments=arguments)])


def answer(text: str) -> Completion:
    return Completion(content=text)


def make_engine(vector=None, lexical=None, embedder=None, repository=None) -> HybridRankingEngine:
    return HybridRankingEngine(
        embedder=embedder or FakeEmbedder(),
        vector_adapter=vector or MemoryVectorAdapter(),
        lexical_adapter=lexical or MemoryLexicalAdapter(),
        repository=repository or MemoryRepository(),
        vector_weight=0.7,
        lexical_weight=0.3,
        overfetch_factor=10,
        candidate_ceiling=200,
        max_limit=100,
    )


def make_agent(llm, engine=None, store=None, profiles=None, max_tool_rounds=5) -> RentalAgent:
    engine = engine or make_engine()
    return RentalAgent(
        llm=llm,
        registry=ToolRegistry.default(engine, profiles or UserProfileStore()),
        store=store or ConversationStore(),
        max_tool_rounds=max_tool_rounds,
        history_window=20,
        max_message_length=1000,
    )


@pytest.fixture
def engine():
    return make_engine()


@pytest.fixture
def store():
    return ConversationStore()


@pytest.fixture
def profiles():
    return UserProfileStore()
