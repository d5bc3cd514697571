from typing import Union

from pydantic import BaseModel, ConfigDict, Field

from rentalscout.search.hybrid import HybridRankingEngine
from rentalscout.tools.base import Tool, ToolContext
import structlog

logger = structlog.get_logger()


class GetPropertyDetailsParameters(BaseModel):
    property_id: Union[str, int] = Field(..., alias="propertyId", description="ID of the listing to retrieve details for")

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class GetPropertyDetailsTool(Tool):
    name = "getPropertyDetails"
    description = "Retrieve full details for a specific listing by its ID. Use this when the user asks for more information about a specific rental."
    parameters = GetPropertyDetailsParameters

    def __init__(self, engine: HybridRankingEngine):
        self.engine = engine

    async def execute(self, args: GetPropertyDetailsParameters, context: ToolContext) -> dict:
        logger.info(f"Fetching details for listing_id={args.property_id}")
        return await self.engine.get_details(args.property_id)
