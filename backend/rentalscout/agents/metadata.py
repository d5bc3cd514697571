from typing import Sequence

from rentalscout.agents.schemas import ChatContext, SearchMetadata
from rentalscout.state.models import ToolCallRecord

# Tools whose non-empty output counts as rental results for the UI
RESULT_TOOLS = {"searchRentals", "getPropertyDetails"}


def build_chat_context(records: Sequence[ToolCallRecord], tool_loop_exceeded: bool = False) -> ChatContext:
    """Summarise one agent run's tool calls for the calling UI.

    Search metadata comes from the most recent successful search so the UI can
    re-fetch the surfaced listings without running retrieval again.
    """
    searches = [r for r in records if r.is_search]
    successful = [r for r in searches if r.ok and isinstance(r.result, dict)]

    search_metadata = SearchMetadata(search_performed=bool(searches))
    if successful:
        last = successful[-1].result
        search_metadata = SearchMetadata(
            search_performed=True,
            search_type=last.get("search_type"),
            query=last.get("query"),
            filters=last.get("filters") or {},
            listing_ids=[card["id"] for card in last.get("results", [])],
        )

    return ChatContext(
        tool_calls_made=len(records),
        has_rental_results=any(r.name in RESULT_TOOLS and r.has_results for r in records),
        search_metadata=search_metadata,
        tools_used=[r.name for r in records],
        tool_loop_exceeded=tool_loop_exceeded,
        degraded=any(r.result.get("degraded") for r in successful),
    )
