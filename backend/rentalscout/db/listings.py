from typing import Any, Dict, Iterable, List, Tuple

import structlog

from rentalscout.core.config import settings
from rentalscout.core.errors import InputValidationError, NotFound
from rentalscout.db.client import LanceDBHandle
from rentalscout.db.ids import normalize_listing_id
from rentalscout.db.schemas import Listing, ListingRow
from rentalscout.search.filters import SearchFilter

logger = structlog.get_logger()

# Browsing never needs the embedding
BROWSE_COLUMNS = [name for name in ListingRow.model_fields if name != "vector"]

SORTS = {
    "price_asc": (lambda r: (r.get("price") or 0.0, r["id"]), False),
    "price_desc": (lambda r: (r.get("price") or 0.0, r["id"]), True),
    "rating": (lambda r: (r.get("review_rating") or 0.0, r.get("number_of_reviews") or 0), True),
    "newest": (lambda r: str(r.get("created_at") or ""), True),
}


class ListingRepository:
    """Document-store view over the LanceDB listings table."""

    def __init__(self, handle: LanceDBHandle, page_size: int | None = None):
        self.handle = handle
        self.page_size = page_size or settings.SCAN_PAGE_SIZE

    async def find_by_id(self, listing_id: Any) -> Listing:
        key = normalize_listing_id(listing_id)
        logger.info("Fetching listing", listing_id=key)

        def query(table):
            # exact match query
            return table.search().where(f"id = '{_escape(key)}'").limit(1).to_list()

        rows = await self.handle.run(query, "find_by_id")
        if not rows:
            raise NotFound(f"Listing {key} not found", listing_id=key)
        return Listing.from_row(rows[0])

    async def find_many(
        self,
        filters: SearchFilter | None = None,
        sort: str = "rating",
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Listing], int]:
        if sort not in SORTS:
            raise InputValidationError(f"Unknown sort '{sort}'", allowed=sorted(SORTS))
        if skip < 0 or limit < 1:
            raise InputValidationError("skip must be >= 0 and limit >= 1")
        where = (filters or SearchFilter()).to_where()

        def query(table):
            return scan_rows(table, where, BROWSE_COLUMNS, page_size=self.page_size)

        rows = await self.handle.run(query, "find_many")
        total = len(rows)
        # Python-side sort over the full filtered set; plain scans come back in storage order
        key, reverse = SORTS[sort]
        rows.sort(key=key, reverse=reverse)
        page = rows[skip:skip + limit]
        return [Listing.from_row(r) for r in page], total

    async def add(self, listings: Iterable[Listing]) -> int:
        rows: List[Dict[str, Any]] = [listing.to_row() for listing in listings]
        if not rows:
            return 0

        def insert(table):
            table.add(rows)
            return len(rows)

        count = await self.handle.run(insert, "add")
        logger.info("Inserted listings", count=count)
        return count


def scan_rows(table, where: str | None, columns: List[str] | None = None, page_size: int = 1000) -> List[Dict[str, Any]]:
    """Read every row matching ``where``, one page of ``page_size`` rows at a time."""
    rows: List[Dict[str, Any]] = []
    offset = 0
    while True:
        builder = table.search()
        if where:
            builder = builder.where(where)
        if columns:
            builder = builder.select(columns)
        page = builder.offset(offset).limit(page_size).to_list()
        rows.extend(page)
        if len(page) < page_size:
            return rows
        offset += page_size


def _escape(value: str) -> str:
    return value.replace("'", "''")
