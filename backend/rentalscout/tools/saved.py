from pydantic import BaseModel, ConfigDict, Field

from rentalscout.core.errors import NotFound, Unauthorized
from rentalscout.search.hybrid import HybridRankingEngine
from rentalscout.state.profiles import UserProfileStore
from rentalscout.tools.base import Tool, ToolContext


class GetSavedRentalsParameters(BaseModel):
    include_details: bool = Field(False, alias="includeDetails", description="Also return the full listing records")

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class GetSavedRentalsTool(Tool):
    name = "getSavedRentals"
    description = "List the rentals the signed-in user has saved. Only works for signed-in users."
    parameters = GetSavedRentalsParameters

    def __init__(self, profiles: UserProfileStore, engine: HybridRankingEngine):
        self.profiles = profiles
        self.engine = engine

    async def execute(self, args: GetSavedRentalsParameters, context: ToolContext) -> dict:
        if not context.is_authenticated:
            raise Unauthorized("The user must be signed in to see saved rentals")

        listing_ids = await self.profiles.saved_listings(context.user_id)
        result = {"listing_ids": listing_ids, "count": len(listing_ids)}
        if args.include_details:
            listings, missing = [], []
            for listing_id in listing_ids:
                try:
                    listings.append(await self.engine.get_details(listing_id))
                except NotFound:
                    missing.append(listing_id)
            result["listings"] = listings
            if missing:
                result["missing"] = missing
        return result
