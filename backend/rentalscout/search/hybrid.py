"""Hybrid ranking: fuse vector similarity with lexical matching.

Each strategy's raw scores are min-max normalised on their own, then combined
with a weighted sum (70/30 vector/lexical by default). A listing found by only
one strategy keeps just that strategy's weighted contribution. Results are
deduplicated on the normalised listing id and ordered by fused score, then by
ascending price, then by id, so identical inputs always rank identically.
"""
import asyncio
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

import structlog

from rentalscout.core.config import settings
from rentalscout.core.errors import EmbeddingUnavailable, InputValidationError, SearchUnavailable
from rentalscout.db.listings import ListingRepository
from rentalscout.db.schemas import compact_projection, detail_projection
from rentalscout.search.adapters import Candidate, LexicalSearchAdapter, VectorSearchAdapter
from rentalscout.search.filters import SearchFilter
from rentalscout.services.embeddings import EmbeddingService

logger = structlog.get_logger()


@dataclass
class RankedResult:
    listing_id: str
    score: float
    strategy: str  # "vector" or "lexical": the larger contributor
    vector_score: float | None
    lexical_score: float | None
    row: Dict[str, Any]

    @property
    def price(self) -> float | None:
        return self.row.get("price")

    def card(self) -> Dict[str, Any]:
        card = compact_projection(self.row, self.score)
        card["strategy"] = self.strategy
        return card


@dataclass
class SearchOutcome:
    results: List[RankedResult]
    search_type: str  # hybrid | vector | lexical
    degraded: bool = False
    warnings: List[str] = field(default_factory=list)

    @property
    def listing_ids(self) -> List[str]:
        return [r.listing_id for r in self.results]


def normalize_scores(candidates: Sequence[Candidate]) -> Dict[str, float]:
    """Min-max normalise raw scores to [0, 1], keeping the best score per id.

    When every candidate has the same score they all get 1.0, unless that
    score is not positive, in which case they all get 0.0.
    """
    best: Dict[str, float] = {}
    for c in candidates:
        if c.listing_id not in best or c.raw_score > best[c.listing_id]:
            best[c.listing_id] = c.raw_score
    if not best:
        return {}
    low, high = min(best.values()), max(best.values())
    if math.isclose(high, low):
        flat = 1.0 if high > 0 else 0.0
        return {k: flat for k in best}
    return {k: (v - low) / (high - low) for k, v in best.items()}


def fuse_candidates(
    vector_candidates: Sequence[Candidate],
    lexical_candidates: Sequence[Candidate],
    limit: int,
    vector_weight: float = 0.7,
    lexical_weight: float = 0.3,
) -> List[RankedResult]:
    vector_norm = normalize_scores(vector_candidates)
    lexical_norm = normalize_scores(lexical_candidates)

    rows: Dict[str, Dict[str, Any]] = {}
    for c in list(vector_candidates) + list(lexical_candidates):
        rows.setdefault(c.listing_id, c.row)

    fused: List[RankedResult] = []
    for listing_id, row in rows.items():
        v = vector_norm.get(listing_id)
        l = lexical_norm.get(listing_id)
        v_part = vector_weight * v if v is not None else 0.0
        l_part = lexical_weight * l if l is not None else 0.0
        if v is not None and (l is None or v_part >= l_part):
            strategy = "vector"
        else:
            strategy = "lexical"
        fused.append(RankedResult(
            listing_id=listing_id,
            # Rounded so equal scores compare equal and fall through to the price tie-break
            score=round(v_part + l_part, 9),
            strategy=strategy,
            vector_score=v,
            lexical_score=l,
            row=row,
        ))

    fused.sort(key=lambda r: (
        -r.score,
        r.price if r.price is not None else math.inf,
        r.listing_id,
    ))
    return fused[:limit]


class HybridRankingEngine:
    def __init__(
        self,
        embedder: EmbeddingService,
        vector_adapter: VectorSearchAdapter,
        lexical_adapter: LexicalSearchAdapter,
        repository: ListingRepository,
        vector_weight: float | None = None,
        lexical_weight: float | None = None,
        overfetch_factor: int | None = None,
        candidate_ceiling: int | None = None,
        max_limit: int | None = None,
    ):
        self.embedder = embedder
        self.vector_adapter = vector_adapter
        self.lexical_adapter = lexical_adapter
        self.repository = repository
        self.vector_weight = settings.VECTOR_WEIGHT if vector_weight is None else vector_weight
        self.lexical_weight = settings.LEXICAL_WEIGHT if lexical_weight is None else lexical_weight
        self.overfetch_factor = overfetch_factor or settings.OVERFETCH_FACTOR
        self.candidate_ceiling = candidate_ceiling or settings.CANDIDATE_CEILING
        self.max_limit = max_limit or settings.MAX_SEARCH_LIMIT

    def candidate_count(self, limit: int) -> int:
        return max(limit, min(limit * self.overfetch_factor, self.candidate_ceiling))

    async def search(self, query: str | None, filters: SearchFilter | None = None, limit: int = 10) -> SearchOutcome:
        if limit < 1 or limit > self.max_limit:
            raise InputValidationError(f"limit must be between 1 and {self.max_limit}", limit=limit)
        filters = filters or SearchFilter()
        n = self.candidate_count(limit)
        warnings: List[str] = []

        if not query or not query.strip():
            # Pure filter search
            lexical = await self._run_lexical(None, filters, n)
            if lexical is None:
                raise SearchUnavailable("Listing search is temporarily unavailable")
            results = fuse_candidates([], lexical, limit, self.vector_weight, self.lexical_weight)
            return SearchOutcome(results=results, search_type="lexical")

        vector = None
        try:
            vector = await self.embedder.embed(query, is_query=True)
        except EmbeddingUnavailable as e:
            logger.warning("Embedding unavailable, degrading to lexical search", error=e.message)
            warnings.append("embedding_unavailable")

        if vector is not None:
            # Fusion is the join point for the two independent strategies
            vector_hits, lexical_hits = await asyncio.gather(
                self._run_vector(vector, filters, n),
                self._run_lexical(query, filters, n),
            )
        else:
            vector_hits, lexical_hits = None, await self._run_lexical(query, filters, n)

        if vector is not None and vector_hits is None:
            warnings.append("vector_search_failed")
        if lexical_hits is None:
            warnings.append("lexical_search_failed")
        if vector_hits is None and lexical_hits is None:
            raise SearchUnavailable("Listing search is temporarily unavailable", warnings=warnings)

        if vector_hits is not None and lexical_hits is not None:
            search_type = "hybrid"
        elif vector_hits is not None:
            search_type = "vector"
        else:
            search_type = "lexical"

        results = fuse_candidates(
            vector_hits or [], lexical_hits or [], limit, self.vector_weight, self.lexical_weight
        )
        logger.info(
            "Hybrid search complete",
            query=query,
            filters=filters.applied(),
            search_type=search_type,
            vector_candidates=len(vector_hits or []),
            lexical_candidates=len(lexical_hits or []),
            returned=len(results),
            degraded=bool(warnings),
        )
        return SearchOutcome(results=results, search_type=search_type, degraded=bool(warnings), warnings=warnings)

    async def _run_vector(self, vector, filters: SearchFilter, n: int) -> List[Candidate] | None:
        try:
            return await self.vector_adapter.query(vector, filters, n)
        except Exception as e:
            logger.error("Vector search failed", error=repr(e))
            return None

    async def _run_lexical(self, query, filters: SearchFilter, n: int) -> List[Candidate] | None:
        try:
            return await self.lexical_adapter.query(query, filters, n)
        except Exception as e:
            logger.error("Lexical search failed", error=repr(e))
            return None

    async def get_details(self, listing_id: Any) -> Dict[str, Any]:
        listing = await self.repository.find_by_id(listing_id)
        return detail_projection(listing)
