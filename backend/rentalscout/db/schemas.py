from datetime import datetime
from typing import Any, Dict, List, Optional

from lancedb.pydantic import Vector
from pydantic import BaseModel, ConfigDict, Field, field_validator

from rentalscout.core.config import settings
from rentalscout.db.ids import normalize_listing_id

EMBEDDING_DIMENSIONS = settings.EMBEDDING_DIMENSIONS


class ListingRow(BaseModel):
    """Flat LanceDB row; nested records are spread over prefixed columns."""
    id: str
    name: str
    summary: str = ""
    description: str = ""
    neighborhood_overview: str = ""

    property_type: str = ""
    room_type: str = ""
    price: float = 0.0
    bedrooms: int = 0
    bathrooms: float = 0.0
    beds: int = 0
    accommodates: int = 0
    minimum_nights: int = 1
    instant_bookable: bool = False
    cancellation_policy: str = ""
    amenities: list[str] = Field(default_factory=list)
    image_url: str = ""
    listing_url: str = ""

    # Address
    street: str = ""
    market: str = ""
    country: str = ""
    country_code: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    # Host
    host_id: str = ""
    host_name: str = ""
    host_is_superhost: bool = False

    # Reviews
    review_rating: Optional[float] = None
    review_cleanliness: Optional[float] = None
    review_location: Optional[float] = None
    review_value: Optional[float] = None
    number_of_reviews: int = 0

    created_at: datetime = Field(default_factory=datetime.now)
    last_embedded_at: Optional[datetime] = None

    # Vector for LanceDB
    vector: Optional[Vector(EMBEDDING_DIMENSIONS)] = None

    model_config = ConfigDict(extra="ignore")


class Address(BaseModel):
    street: str = ""
    market: str = ""
    country: str = ""
    country_code: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class Host(BaseModel):
    host_id: str = ""
    name: str = ""
    is_superhost: bool = False


class ReviewScores(BaseModel):
    rating: Optional[float] = None
    cleanliness: Optional[float] = None
    location: Optional[float] = None
    value: Optional[float] = None
    number_of_reviews: int = 0


class Listing(BaseModel):
    """Core Listing model for rental properties"""
    id: str
    name: str
    summary: str = ""
    description: str = ""
    neighborhood_overview: str = ""

    property_type: str = ""
    room_type: str = ""
    price: float = 0.0
    bedrooms: int = 0
    bathrooms: float = 0.0
    beds: int = 0
    accommodates: int = 0
    minimum_nights: int = 1
    instant_bookable: bool = False
    cancellation_policy: str = ""
    amenities: List[str] = Field(default_factory=list)
    image_url: str = ""
    listing_url: str = ""

    address: Address = Field(default_factory=Address)
    host: Host = Field(default_factory=Host)
    reviews: ReviewScores = Field(default_factory=ReviewScores)

    created_at: datetime = Field(default_factory=datetime.now)
    last_embedded_at: Optional[datetime] = None
    vector: Optional[List[float]] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value: Any) -> str:
        return normalize_listing_id(value)

    @field_validator("vector")
    @classmethod
    def _full_vector_or_none(cls, value: Optional[List[float]]) -> Optional[List[float]]:
        # A partial vector is never stored; it is either complete or absent
        if value is not None and len(value) != EMBEDDING_DIMENSIONS:
            raise ValueError(
                f"vector must have exactly {EMBEDDING_DIMENSIONS} dimensions, got {len(value)}"
            )
        return value

    def embedding_text(self) -> str:
        parts = [self.name, self.summary, self.description]
        return " ".join(p.strip() for p in parts if p and p.strip())

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Listing":
        vector = row.get("vector")
        if vector is not None:
            vector = [float(v) for v in vector]
        return cls(
            **{k: v for k, v in row.items() if k in ListingRow.model_fields and k != "vector"},
            vector=vector,
            address=Address(
                street=row.get("street") or "",
                market=row.get("market") or "",
                country=row.get("country") or "",
                country_code=row.get("country_code") or "",
                latitude=row.get("latitude"),
                longitude=row.get("longitude"),
            ),
            host=Host(
                host_id=row.get("host_id") or "",
                name=row.get("host_name") or "",
                is_superhost=bool(row.get("host_is_superhost")),
            ),
            reviews=ReviewScores(
                rating=row.get("review_rating"),
                cleanliness=row.get("review_cleanliness"),
                location=row.get("review_location"),
                value=row.get("review_value"),
                number_of_reviews=row.get("number_of_reviews") or 0,
            ),
        )

    def to_row(self) -> Dict[str, Any]:
        data = self.model_dump(exclude={"address", "host", "reviews"})
        data.update(
            street=self.address.street,
            market=self.address.market,
            country=self.address.country,
            country_code=self.address.country_code,
            latitude=self.address.latitude,
            longitude=self.address.longitude,
            host_id=self.host.host_id,
            host_name=self.host.name,
            host_is_superhost=self.host.is_superhost,
            review_rating=self.reviews.rating,
            review_cleanliness=self.reviews.cleanliness,
            review_location=self.reviews.location,
            review_value=self.reviews.value,
            number_of_reviews=self.reviews.number_of_reviews,
        )
        return data


# Columns fetched for search cards; never the description text or the vector
COMPACT_COLUMNS = [
    "id", "name", "property_type", "room_type", "price", "bedrooms", "bathrooms",
    "accommodates", "market", "country", "host_is_superhost", "review_rating",
    "number_of_reviews", "image_url",
]

# Columns the lexical adapter needs on top of the card columns
TEXT_COLUMNS = ["name", "summary", "description", "neighborhood_overview"]


def compact_projection(row: Dict[str, Any], score: float | None = None) -> Dict[str, Any]:
    """Search-result card for one row."""
    card = {
        "id": normalize_listing_id(row["id"]),
        "name": row.get("name"),
        "property_type": row.get("property_type"),
        "room_type": row.get("room_type"),
        "price": row.get("price"),
        "bedrooms": row.get("bedrooms"),
        "bathrooms": row.get("bathrooms"),
        "accommodates": row.get("accommodates"),
        "location": row.get("market"),
        "country": row.get("country"),
        "superhost": bool(row.get("host_is_superhost")),
        "review_rating": row.get("review_rating"),
        "number_of_reviews": row.get("number_of_reviews"),
        "image_url": row.get("image_url"),
    }
    if score is not None:
        card["score"] = round(score, 6)
    return card


def detail_projection(listing: Listing) -> Dict[str, Any]:
    """Full record for the detail view, without the embedding."""
    return listing.model_dump(mode="json", exclude={"vector"})
