import json

import pytest

from conftest import MemoryRepository, make_engine
from rentalscout.state.profiles import UserProfileStore
from rentalscout.tools.base import ToolContext
from rentalscout.tools.registry import ToolRegistry, model_content

ANONYMOUS = ToolContext(session_id="s1")
SIGNED_IN = ToolContext(user_id="u1", session_id="s1")


@pytest.fixture
def registry(engine, profiles):
    return ToolRegistry.default(engine, profiles)


def test_declares_three_tools_with_schemas(registry):
    declarations = {d["function"]["name"]: d for d in registry.declarations()}
    assert set(declarations) == {"searchRentals", "getPropertyDetails", "getSavedRentals"}
    search_params = declarations["searchRentals"]["function"]["parameters"]
    assert search_params["required"] == ["query"]
    assert "propertyId" in declarations["getPropertyDetails"]["function"]["parameters"]["properties"]
    assert "includeDetails" in declarations["getSavedRentals"]["function"]["parameters"]["properties"]


@pytest.mark.asyncio
async def test_search_infers_filters_and_returns_compact_cards(registry):
    record = await registry.run("c1", "searchRentals",
                                json.dumps({"query": "2 bedroom apartment in Manhattan under 500"}), ANONYMOUS)
    assert record.ok
    assert record.is_search
    result = record.result
    assert result["filters"] == {"min_bedrooms": 2, "max_price": 500, "location": "New York"}
    assert result["inferred_filters"] == result["filters"]
    assert result["search_type"] == "hybrid"
    assert [r["id"] for r in result["results"]] == ["1001", "1003"]
    card = result["results"][0]
    assert "description" not in card and "vector" not in card
    assert card["strategy"] == "vector"
    assert record.has_results


@pytest.mark.asyncio
async def test_explicit_filters_win_over_inferred(registry):
    record = await registry.run("c1", "searchRentals", {
        "query": "apartment in Manhattan under 500",
        "filters": {"max_price": 400},
    }, ANONYMOUS)
    assert record.result["filters"] == {"max_price": 400, "location": "New York"}
    assert all(r["price"] <= 400 for r in record.result["results"])


@pytest.mark.asyncio
async def test_schema_mismatch_becomes_invalid_tool_args(registry):
    record = await registry.run("c1", "searchRentals", json.dumps({"query": "loft", "limit": 500}), ANONYMOUS)
    assert not record.ok
    assert record.error["kind"] == "InvalidToolArgs"
    assert record.error["details"]["errors"][0]["field"] == "limit"


@pytest.mark.asyncio
async def test_malformed_json_becomes_invalid_tool_args(registry):
    record = await registry.run("c1", "getPropertyDetails", "{not json", ANONYMOUS)
    assert record.error["kind"] == "InvalidToolArgs"


@pytest.mark.asyncio
async def test_unknown_tool_is_recorded_not_raised(registry):
    record = await registry.run("c1", "bookRental", "{}", ANONYMOUS)
    assert record.error["kind"] == "InvalidToolArgs"
    assert not record.is_search


@pytest.mark.asyncio
async def test_property_details_accepts_numeric_id_and_is_idempotent(registry):
    first = await registry.run("c1", "getPropertyDetails", json.dumps({"propertyId": 1003}), ANONYMOUS)
    second = await registry.run("c2", "getPropertyDetails", json.dumps({"propertyId": "1003"}), ANONYMOUS)
    assert first.ok and second.ok
    assert first.result == second.result
    assert first.result["name"] == "Large 3 bedroom apartment Upper West Side"
    assert first.arguments == {"propertyId": 1003}


@pytest.mark.asyncio
async def test_property_details_not_found(registry):
    record = await registry.run("c1", "getPropertyDetails", json.dumps({"propertyId": "42"}), ANONYMOUS)
    assert record.error["kind"] == "NotFound"
    assert not record.has_results


@pytest.mark.asyncio
async def test_saved_rentals_require_identity(registry):
    record = await registry.run("c1", "getSavedRentals", "{}", ANONYMOUS)
    assert record.error["kind"] == "Unauthorized"


@pytest.mark.asyncio
async def test_saved_rentals_with_details(engine):
    profiles = UserProfileStore()
    await profiles.save_listing("u1", 2001)
    await profiles.save_listing("u1", "777")  # removed from the catalogue since
    registry = ToolRegistry.default(engine, profiles)

    record = await registry.run("c1", "getSavedRentals", json.dumps({"includeDetails": True}), SIGNED_IN)
    assert record.ok
    assert record.result["listing_ids"] == ["2001", "777"]
    assert [l["id"] for l in record.result["listings"]] == ["2001"]
    assert record.result["missing"] == ["777"]


@pytest.mark.asyncio
async def test_unexpected_tool_crash_is_contained(profiles):
    class BrokenRepository(MemoryRepository):
        async def find_by_id(self, listing_id):
            raise RuntimeError("boom")

    registry = ToolRegistry.default(make_engine(repository=BrokenRepository()), profiles)
    record = await registry.run("c1", "getPropertyDetails", json.dumps({"propertyId": "1001"}), ANONYMOUS)
    assert record.error == {"kind": "ToolError", "message": "boom"}


@pytest.mark.asyncio
async def test_model_content_trims_search_results(registry):
    record = await registry.run("c1", "searchRentals", json.dumps({"query": "apartment", "limit": 10}), ANONYMOUS)
    content = json.loads(model_content(record))
    assert len(content["top_results"]) <= 5
    assert content["summary"].startswith(f"Found {record.result['count']} listings")


@pytest.mark.asyncio
async def test_model_content_for_errors(registry):
    record = await registry.run("c1", "getSavedRentals", "{}", ANONYMOUS)
    assert json.loads(model_content(record)) == {
        "error": "Unauthorized",
        "message": "The user must be signed in to see saved rentals",
    }
