from pydantic import BaseModel, ConfigDict, Field

from rentalscout.search.filters import SearchFilter, infer_filters
from rentalscout.search.hybrid import HybridRankingEngine
from rentalscout.tools.base import Tool, ToolContext
import structlog

logger = structlog.get_logger()


class SearchRentalsParameters(BaseModel):
    query: str = Field(..., min_length=1, max_length=500, description="Natural language description of the stay the user wants")
    filters: SearchFilter = Field(default_factory=SearchFilter, description="Structured constraints. Leave fields out rather than guessing.")
    limit: int = Field(10, ge=1, le=50, description="Number of listings to return")

    model_config = ConfigDict(extra="forbid")


class SearchRentalsTool(Tool):
    name = "searchRentals"
    description = (
        "Search rental listings with hybrid semantic + keyword matching. "
        "Supports filters on property type, room type, location, country, price range, "
        "bedrooms, bathrooms, guests, superhost and instant booking."
    )
    parameters = SearchRentalsParameters
    is_search = True

    def __init__(self, engine: HybridRankingEngine):
        self.engine = engine

    async def execute(self, args: SearchRentalsParameters, context: ToolContext) -> dict:
        # Constraints spelled out in the query fill in whatever the model left empty
        inferred = infer_filters(args.query)
        applied = inferred.merged_with(args.filters)
        logger.info("Search", query=args.query, filters=applied.applied(), limit=args.limit)

        outcome = await self.engine.search(args.query, applied, args.limit)
        return {
            "query": args.query,
            "filters": applied.applied(),
            "inferred_filters": inferred.applied(),
            "search_type": outcome.search_type,
            "degraded": outcome.degraded,
            "count": len(outcome.results),
            "results": [r.card() for r in outcome.results],
        }
