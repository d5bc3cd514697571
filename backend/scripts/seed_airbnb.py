import asyncio
import json
import re
import sys
from datetime import datetime
from pathlib import Path

# Add backend directory to python path
backend_dir = Path(__file__).resolve().parent.parent
sys.path.append(str(backend_dir))

import structlog

from rentalscout.core.config import settings
from rentalscout.core.errors import EmbeddingUnavailable
from rentalscout.core.logging import configure_logging
from rentalscout.db.client import LanceDBHandle
from rentalscout.db.listings import ListingRepository
from rentalscout.db.schemas import Address, Host, Listing, ReviewScores
from rentalscout.services.embeddings import EmbeddingService

logger = structlog.get_logger()

BATCH_SIZE = 100


def clean_text(text):
    if not text: return ""
    # Remove HTML tags
    clean = re.sub(r'<.*?>', '', text)
    # Remove multiple spaces/newlines
    clean = re.sub(r'\s+', ' ', clean).strip()
    return clean


def unwrap(value):
    """Extended-JSON numbers ({"$numberDecimal": "80.00"}) to plain floats."""
    if isinstance(value, dict):
        for key in ("$numberDecimal", "$numberDouble", "$numberInt", "$numberLong"):
            if key in value:
                return float(value[key])
        if "$date" in value:
            return value["$date"]
    return value


def to_listing(doc: dict) -> Listing:
    address = doc.get("address") or {}
    location = (address.get("location") or {}).get("coordinates") or [None, None]
    host = doc.get("host") or {}
    reviews = doc.get("review_scores") or {}
    rating = unwrap(reviews.get("review_scores_rating"))
    return Listing(
        id=doc["_id"],
        name=clean_text(doc.get("name")) or "Untitled Listing",
        summary=clean_text(doc.get("summary"))[:1000],
        description=clean_text(doc.get("description"))[:2000],
        neighborhood_overview=clean_text(doc.get("neighborhood_overview"))[:1000],
        property_type=doc.get("property_type") or "",
        room_type=doc.get("room_type") or "",
        price=float(unwrap(doc.get("price")) or 0),
        bedrooms=int(unwrap(doc.get("bedrooms")) or 0),
        bathrooms=float(unwrap(doc.get("bathrooms")) or 0),
        beds=int(unwrap(doc.get("beds")) or 0),
        accommodates=int(unwrap(doc.get("accommodates")) or 0),
        minimum_nights=int(unwrap(doc.get("minimum_nights")) or 1),
        instant_bookable=bool(doc.get("instant_bookable")),
        cancellation_policy=doc.get("cancellation_policy") or "",
        amenities=(doc.get("amenities") or [])[:20],  # keep the payload small
        image_url=(doc.get("images") or {}).get("picture_url") or "",
        listing_url=doc.get("listing_url") or "",
        address=Address(
            street=address.get("street") or "",
            market=address.get("market") or "",
            country=address.get("country") or "",
            country_code=address.get("country_code") or "",
            longitude=unwrap(location[0]),
            latitude=unwrap(location[1]),
        ),
        host=Host(
            host_id=str(host.get("host_id") or ""),
            name=host.get("host_name") or "",
            is_superhost=bool(host.get("host_is_superhost")),
        ),
        reviews=ReviewScores(
            rating=float(rating) if rating is not None else None,
            cleanliness=unwrap(reviews.get("review_scores_cleanliness")),
            location=unwrap(reviews.get("review_scores_location")),
            value=unwrap(reviews.get("review_scores_value")),
            number_of_reviews=int(unwrap(doc.get("number_of_reviews")) or 0),
        ),
    )


async def seed(path: Path):
    configure_logging(settings.LOG_LEVEL)
    logger.info("Initializing DB and Embeddings...")
    handle = LanceDBHandle().acquire()
    # Drop existing table to start fresh with new schema
    handle.reset_table()
    repository = ListingRepository(handle)
    embedder = EmbeddingService()

    logger.info(f"Reading listings from {path}...")
    with path.open("r", encoding="utf-8") as f:
        # One JSON document per line (mongoexport) or a single JSON array
        text = f.read().strip()
        docs = json.loads(text) if text.startswith("[") else [json.loads(line) for line in text.splitlines() if line]

    batch, total, skipped = [], 0, 0
    for i, doc in enumerate(docs):
        try:
            listing = to_listing(doc)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping document {doc.get('_id')}: {e}")
            skipped += 1
            continue

        text_to_embed = listing.embedding_text()
        if text_to_embed:
            try:
                listing.vector = await embedder.embed(text_to_embed, is_query=False)
                listing.last_embedded_at = datetime.now()
            except EmbeddingUnavailable as e:
                # Stored without a vector; lexical search still finds it
                logger.warning(f"No embedding for {listing.id}: {e.message}")
        batch.append(listing)

        if len(batch) >= BATCH_SIZE:
            total += await repository.add(batch)
            batch = []
            logger.info(f"Processed {i + 1} documents...")

    if batch:
        total += await repository.add(batch)
    logger.info("Seed complete!", inserted=total, skipped=skipped)
    handle.release()


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("usage: seed_airbnb.py <listingsAndReviews.json>")
        sys.exit(1)
    asyncio.run(seed(Path(sys.argv[1])))
