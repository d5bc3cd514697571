"""LanceDB-backed retrieval strategies.

Both adapters return ``Candidate`` rows carrying only card columns; the
description text and the embedding never leave this module.
"""
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

import structlog

from rentalscout.core.config import settings
from rentalscout.db.client import LanceDBHandle
from rentalscout.db.ids import normalize_listing_id
from rentalscout.db.listings import scan_rows
from rentalscout.db.schemas import COMPACT_COLUMNS, TEXT_COLUMNS
from rentalscout.search.filters import SearchFilter

logger = structlog.get_logger()

# Field weights for lexical scoring
FIELD_WEIGHTS = {
    "name": 3.0,
    "summary": 2.0,
    "description": 1.0,
    "neighborhood_overview": 1.0,
}
PHRASE_BONUS = 2.0

STOPWORDS = {
    "a", "an", "the", "in", "on", "at", "for", "with", "near", "and", "or", "of", "to",
    "from", "by", "is", "are", "be", "me", "my", "we", "our", "i", "it", "that", "this",
    "find", "show", "looking", "look", "want", "need", "some", "any", "place", "places",
    "stay", "under", "over", "below", "above", "less", "more", "than", "between", "around",
    "about", "per", "night", "nights", "please", "can", "you", "who", "which", "has", "have",
}


@dataclass
class Candidate:
    listing_id: str
    raw_score: float
    row: Dict[str, Any]

    @property
    def price(self) -> float | None:
        return self.row.get("price")


def query_terms(text: str | None) -> List[str]:
    """Lower-cased content words; bare numbers are left to the filters."""
    if not text:
        return []
    terms = []
    for token in re.findall(r"[a-z0-9']+", text.lower()):
        token = token.strip("'")
        if len(token) < 3 or token in STOPWORDS or token.isdigit():
            continue
        if token not in terms:
            terms.append(token)
    return terms


def lexical_score(row: Dict[str, Any], terms: Sequence[str], phrase: str = "") -> float:
    """Weighted count of distinct query terms found per field (case-insensitive substring match)."""
    score = 0.0
    for field, weight in FIELD_WEIGHTS.items():
        value = (row.get(field) or "").lower()
        if not value:
            continue
        score += weight * sum(1 for term in terms if term in value)
        if phrase and len(terms) > 1 and phrase in value:
            score += PHRASE_BONUS
    return score


def _card_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {k: row.get(k) for k in COMPACT_COLUMNS}


class VectorSearchAdapter:
    def __init__(self, handle: LanceDBHandle):
        self.handle = handle

    async def query(self, vector: List[float], filters: SearchFilter, candidate_count: int) -> List[Candidate]:
        where = filters.to_where()

        def search(table):
            builder = table.search(vector, vector_column_name="vector").distance_type("cosine")
            if where:
                builder = builder.where(where, prefilter=True)
            return builder.select(COMPACT_COLUMNS).limit(candidate_count).to_list()

        rows = await self.handle.run(search, "vector_search")
        candidates = []
        for row in rows:
            distance = row.pop("_distance", None)
            if distance is None:
                continue
            # cosine distance -> similarity
            candidates.append(Candidate(normalize_listing_id(row["id"]), 1.0 - float(distance), _card_row(row)))
        logger.debug("Vector candidates", count=len(candidates), where=where)
        return candidates


class LexicalSearchAdapter:
    def __init__(self, handle: LanceDBHandle, page_size: int | None = None):
        self.handle = handle
        self.page_size = page_size or settings.SCAN_PAGE_SIZE

    async def query(self, text: str | None, filters: SearchFilter, candidate_count: int) -> List[Candidate]:
        where = filters.to_where()
        terms = query_terms(text)
        phrase = " ".join(terms)
        columns = list(dict.fromkeys(COMPACT_COLUMNS + TEXT_COLUMNS))

        def scan(table):
            return scan_rows(table, where, columns, page_size=self.page_size)

        rows = await self.handle.run(scan, "lexical_search")
        candidates = []
        for row in rows:
            score = lexical_score(row, terms, phrase)
            # With no usable terms every filtered row matches at score zero
            if terms and score <= 0:
                continue
            candidates.append(Candidate(normalize_listing_id(row["id"]), score, _card_row(row)))

        candidates.sort(key=lambda c: (-c.raw_score, c.listing_id))
        logger.debug("Lexical candidates", count=len(candidates), terms=terms, where=where)
        return candidates[:candidate_count]
