import asyncio
import sys
from pathlib import Path

# Fix Path
backend_dir = Path(__file__).resolve().parent.parent
sys.path.append(str(backend_dir))

from rentalscout.api.deps import build_services
from rentalscout.db.client import LanceDBHandle
from rentalscout.search.filters import infer_filters

GOLDEN_SET = [
    {
        "query": "2 bedroom apartment in Manhattan under 500",
        "expected_filters": {"min_bedrooms": 2, "max_price": 500, "location": "New York"},
    },
    {
        "query": "Superhost private room in Barcelona",
        "expected_filters": {"superhost_only": True, "room_type": "Private room", "location": "Barcelona"},
    },
    {
        "query": "Beach house in Oahu for 6 guests",
        "expected_filters": {"min_accommodates": 6, "location": "Oahu"},
    },
]


async def eval_ranking():
    print(f"--- Running Ranking Evaluation on {len(GOLDEN_SET)} queries ---\n")
    async with LanceDBHandle() as handle:
        services = build_services(handle)

        for case in GOLDEN_SET:
            q = case["query"]
            print(f"Query: '{q}'")

            # Filter extraction is checked first, then ranking under those filters
            inferred = infer_filters(q)
            extraction_ok = inferred.applied() == case["expected_filters"]
            print(f"  Filter extraction: {'OK' if extraction_ok else 'MISMATCH'} {inferred.applied()}")

            outcome = await services.engine.search(q, inferred, limit=10)
            results = [r.card() for r in outcome.results]
            print(f"  Returned {len(results)} results via {outcome.search_type}.")
            if not results:
                print("  [FAIL] No results found.")
                continue

            print(f"  Top 1: {results[0].get('name')} - ${results[0].get('price')}")
            top_5 = results[:5]
            expected = case["expected_filters"]
            if "max_price" in expected:
                hits = sum(1 for r in top_5 if r["price"] <= expected["max_price"])
                print(f"  Price Compliance Hit Rate@5: {hits}/{len(top_5)}")
            if "location" in expected:
                hits = sum(1 for r in top_5 if r["location"] == expected["location"])
                print(f"  Location Compliance Hit Rate@5: {hits}/{len(top_5)}")
            print("")

if __name__ == "__main__":
    asyncio.run(eval_ranking())
