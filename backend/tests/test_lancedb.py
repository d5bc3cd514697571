"""Round trip against a real LanceDB directory."""
import pytest

from rentalscout.core.errors import NotFound
from rentalscout.db.client import LanceDBHandle
from rentalscout.db.listings import ListingRepository
from rentalscout.db.schemas import EMBEDDING_DIMENSIONS, Address, Host, Listing, ReviewScores
from rentalscout.search.adapters import LexicalSearchAdapter, VectorSearchAdapter
from rentalscout.search.filters import SearchFilter


def unit_vector(axis: int) -> list:
    vector = [0.0] * EMBEDDING_DIMENSIONS
    vector[axis] = 1.0
    return vector


def make_listing(listing_id, name, price, bedrooms, market, axis, superhost=False):
    return Listing(
        id=listing_id,
        name=name,
        summary=f"{name} summary",
        description=f"{name} with a long description",
        property_type="Apartment",
        room_type="Entire home/apt",
        price=price,
        bedrooms=bedrooms,
        accommodates=bedrooms * 2,
        address=Address(market=market, country="United States"),
        host=Host(host_id="h1", name="Host", is_superhost=superhost),
        reviews=ReviewScores(rating=90.0, number_of_reviews=10),
        vector=unit_vector(axis),
    )


@pytest.fixture
def handle(tmp_path):
    handle = LanceDBHandle(uri=str(tmp_path / "lancedb"), table_name="listings", attempts=1, backoff=0)
    handle.acquire()
    yield handle
    handle.release()


@pytest.fixture
def listings():
    return [
        make_listing(1001, "Manhattan apartment", 350.0, 2, "New York", 0, superhost=True),
        make_listing("1002", "Brooklyn loft", 180.0, 1, "New York", 1),
        make_listing(2001, "Barcelona flat", 90.0, 2, "Barcelona", 2),
    ]


@pytest.mark.asyncio
async def test_repository_round_trip(handle, listings):
    repository = ListingRepository(handle)
    assert await repository.add(listings) == 3

    found = await repository.find_by_id({"$numberLong": "1001"})
    assert found.name == "Manhattan apartment"
    assert found.address.market == "New York"
    assert found.host.is_superhost is True
    assert found.vector is not None and len(found.vector) == EMBEDDING_DIMENSIONS

    again = await repository.find_by_id(1001)
    assert again.model_dump(exclude={"vector"}) == found.model_dump(exclude={"vector"})

    with pytest.raises(NotFound):
        await repository.find_by_id("404")


@pytest.mark.asyncio
async def test_find_many_filters_sorts_and_pages(handle, listings):
    repository = ListingRepository(handle)
    await repository.add(listings)

    page, total = await repository.find_many(SearchFilter(location="New York"), sort="price_asc", skip=0, limit=1)
    assert total == 2
    assert [l.id for l in page] == ["1002"]

    page, total = await repository.find_many(SearchFilter(location="New York"), sort="price_asc", skip=1, limit=1)
    assert [l.id for l in page] == ["1001"]


@pytest.mark.asyncio
async def test_vector_adapter_ranks_by_cosine_similarity(handle, listings):
    await ListingRepository(handle).add(listings)
    adapter = VectorSearchAdapter(handle)

    candidates = await adapter.query(unit_vector(1), SearchFilter(), 3)
    assert candidates[0].listing_id == "1002"
    assert candidates[0].raw_score == pytest.approx(1.0, abs=1e-5)
    assert "description" not in candidates[0].row

    filtered = await adapter.query(unit_vector(1), SearchFilter(location="Barcelona"), 3)
    assert [c.listing_id for c in filtered] == ["2001"]


@pytest.mark.asyncio
async def test_lexical_adapter_matches_text_under_filter(handle, listings):
    await ListingRepository(handle).add(listings)
    adapter = LexicalSearchAdapter(handle)

    candidates = await adapter.query("brooklyn LOFT", SearchFilter(), 10)
    assert [c.listing_id for c in candidates] == ["1002"]
    assert "summary" not in candidates[0].row

    none = await adapter.query("loft", SearchFilter(location="Barcelona"), 10)
    assert none == []


@pytest.fixture
def many_listings():
    rows = [make_listing(3000 + n, f"Plain apartment {n}", 100.0 + n, 1, "New York", n) for n in range(29)]
    rows.append(make_listing(99, "Unique treehouse", 75.0, 1, "New York", 29))
    return rows


@pytest.mark.asyncio
async def test_lexical_adapter_reads_past_the_first_page(handle, many_listings):
    await ListingRepository(handle).add(many_listings)
    adapter = LexicalSearchAdapter(handle, page_size=10)

    candidates = await adapter.query("treehouse", SearchFilter(), 10)
    assert [c.listing_id for c in candidates] == ["99"]

    everything = await adapter.query(None, SearchFilter(), 100)
    assert len(everything) == 30


@pytest.mark.asyncio
async def test_find_many_sorts_and_pages_across_scan_pages(handle, many_listings):
    repository = ListingRepository(handle, page_size=7)
    await repository.add(many_listings)

    first, total = await repository.find_many(sort="price_asc", skip=0, limit=2)
    assert total == 30
    assert [l.id for l in first] == ["99", "3000"]

    last, total = await repository.find_many(sort="price_asc", skip=28, limit=5)
    assert total == 30
    assert [l.id for l in last] == ["3027", "3028"]
    assert last[0].vector is None


@pytest.mark.asyncio
async def test_get_table_reopens_existing_and_reset_empties(handle, listings):
    assert handle.get_table().count_rows() == 0
    await ListingRepository(handle).add(listings)
    assert handle.get_table().count_rows() == 3

    assert handle.reset_table().count_rows() == 0


def test_reset_table_on_fresh_database(tmp_path):
    with_nothing = LanceDBHandle(uri=str(tmp_path / "empty"), table_name="listings").acquire()
    assert with_nothing.reset_table().count_rows() == 0
    with_nothing.release()
