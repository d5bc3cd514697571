"""Search filters and rule-based filter inference from free text."""
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Neighborhood and city aliases mapped onto listing markets
LOCATION_ALIASES: Dict[str, str] = {
    "new york": "New York",
    "new york city": "New York",
    "nyc": "New York",
    "manhattan": "New York",
    "brooklyn": "New York",
    "queens": "New York",
    "bronx": "New York",
    "harlem": "New York",
    "soho": "New York",
    "williamsburg": "New York",
    "barcelona": "Barcelona",
    "sydney": "Sydney",
    "bondi": "Sydney",
    "montreal": "Montreal",
    "hong kong": "Hong Kong",
    "istanbul": "Istanbul",
    "porto": "Porto",
    "rio": "Rio De Janeiro",
    "rio de janeiro": "Rio De Janeiro",
    "copacabana": "Rio De Janeiro",
    "oahu": "Oahu",
    "honolulu": "Oahu",
    "waikiki": "Oahu",
    "maui": "Maui",
    "kauai": "Kauai",
    "big island": "The Big Island",
    "the big island": "The Big Island",
}

ROOM_TYPE_PHRASES = [
    (re.compile(r"\bprivate room\b"), "Private room"),
    (re.compile(r"\bshared room\b"), "Shared room"),
    (re.compile(r"\b(?:entire|whole) (?:home|house|place|apartment|apt|flat)\b"), "Entire home/apt"),
]

_NUM = r"\$?\s*(\d[\d,]*(?:\.\d+)?)"
_NOT_COUNT = r"(?![\d,]|\.\d)(?!\s*(?:bed|br\b|bd\b|bath|ba\b|guest|people|person|adult|night))"

_BEDROOMS = re.compile(r"\b(\d+)\s*-?\s*(?:bed(?:room)?s?|br|bd)\b")
_BATHROOMS = re.compile(r"\b(\d+(?:\.5)?)\s*-?\s*(?:bath(?:room)?s?|ba)\b")
_GUESTS = [
    re.compile(r"\b(\d+)\s*(?:guests?|people|persons?|adults?)\b"),
    re.compile(r"\bsleeps\s*(\d+)\b"),
]
_BETWEEN = re.compile(r"\bbetween\s*" + _NUM + r"\s*(?:and|to|-)\s*" + _NUM)
_MAX_PRICE = re.compile(
    r"\b(?:under|below|less than|cheaper than|max(?:imum)?|up to|no more than|at most)\s*" + _NUM + _NOT_COUNT
)
_MIN_PRICE = re.compile(
    r"\b(?:over|above|more than|at least|min(?:imum)?|starting (?:at|from))\s*" + _NUM + _NOT_COUNT
)


def canonical_location(value: str) -> str:
    return LOCATION_ALIASES.get(value.strip().lower(), value.strip())


def _number(text: str) -> float:
    return float(text.replace(",", ""))


class SearchFilter(BaseModel):
    """Independently optional constraints; an empty filter matches everything."""
    property_type: Optional[str] = Field(None, description="Exact property type, e.g. 'Apartment', 'House', 'Condominium'")
    room_type: Optional[str] = Field(None, description="One of 'Entire home/apt', 'Private room', 'Shared room'")
    country: Optional[str] = Field(None, description="Country name, e.g. 'United States'")
    location: Optional[str] = Field(None, description="Market / city, e.g. 'New York', 'Barcelona', 'Sydney'")
    min_price: Optional[float] = Field(None, ge=0, description="Minimum nightly price")
    max_price: Optional[float] = Field(None, ge=0, description="Maximum nightly price")
    min_bedrooms: Optional[int] = Field(None, ge=0, description="Minimum number of bedrooms")
    min_bathrooms: Optional[float] = Field(None, ge=0, description="Minimum number of bathrooms")
    min_accommodates: Optional[int] = Field(None, ge=0, description="Minimum number of guests the listing sleeps")
    superhost_only: Optional[bool] = Field(None, description="If True, only listings run by superhosts")
    instant_bookable: Optional[bool] = Field(None, description="If True, only instantly bookable listings")

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("location")
    @classmethod
    def _canonical_location(cls, value: Optional[str]) -> Optional[str]:
        return canonical_location(value) if value else value

    def applied(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)

    def is_empty(self) -> bool:
        return not self.applied()

    def merged_with(self, override: "SearchFilter") -> "SearchFilter":
        """Fields set on ``override`` win over fields set here."""
        return SearchFilter(**{**self.applied(), **override.applied()})

    def to_where(self) -> Optional[str]:
        """Render as a LanceDB SQL predicate, or None when unconstrained."""
        clauses: List[str] = []
        if self.property_type:
            clauses.append(f"property_type = {_quote(self.property_type)}")
        if self.room_type:
            clauses.append(f"room_type = {_quote(self.room_type)}")
        if self.country:
            clauses.append(f"country = {_quote(self.country)}")
        if self.location:
            clauses.append(f"market = {_quote(self.location)}")
        if self.min_price is not None: clauses.append(f"price >= {self.min_price}")
        if self.max_price is not None: clauses.append(f"price <= {self.max_price}")
        if self.min_bedrooms is not None: clauses.append(f"bedrooms >= {self.min_bedrooms}")
        if self.min_bathrooms is not None: clauses.append(f"bathrooms >= {self.min_bathrooms}")
        if self.min_accommodates is not None: clauses.append(f"accommodates >= {self.min_accommodates}")
        # Boolean filters - strictly enforce if requested
        if self.superhost_only: clauses.append("host_is_superhost = true")
        if self.instant_bookable: clauses.append("instant_bookable = true")
        return " AND ".join(clauses) if clauses else None

    def matches(self, row: Dict[str, Any]) -> bool:
        """Evaluate the same predicates against a plain row dict."""
        checks = [
            self.property_type is None or row.get("property_type") == self.property_type,
            self.room_type is None or row.get("room_type") == self.room_type,
            self.country is None or row.get("country") == self.country,
            self.location is None or row.get("market") == self.location,
            self.min_price is None or (row.get("price") or 0) >= self.min_price,
            self.max_price is None or (row.get("price") or 0) <= self.max_price,
            self.min_bedrooms is None or (row.get("bedrooms") or 0) >= self.min_bedrooms,
            self.min_bathrooms is None or (row.get("bathrooms") or 0) >= self.min_bathrooms,
            self.min_accommodates is None or (row.get("accommodates") or 0) >= self.min_accommodates,
            not self.superhost_only or bool(row.get("host_is_superhost")),
            not self.instant_bookable or bool(row.get("instant_bookable")),
        ]
        return all(checks)


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def infer_filters(query: str | None) -> SearchFilter:
    """Pull structured constraints out of a natural-language query.

    "2 bedroom apartment in Manhattan under 500" gives
    ``min_bedrooms=2, max_price=500, location="New York"``.
    """
    if not query:
        return SearchFilter()
    text = query.lower()
    found: Dict[str, Any] = {}

    m = _BEDROOMS.search(text)
    if m:
        found["min_bedrooms"] = int(m.group(1))
    m = _BATHROOMS.search(text)
    if m:
        found["min_bathrooms"] = float(m.group(1))
    for pattern in _GUESTS:
        m = pattern.search(text)
        if m:
            found["min_accommodates"] = int(m.group(1))
            break

    m = _BETWEEN.search(text)
    if m:
        low, high = sorted((_number(m.group(1)), _number(m.group(2))))
        found["min_price"], found["max_price"] = low, high
    else:
        m = _MAX_PRICE.search(text)
        if m:
            found["max_price"] = _number(m.group(1))
        m = _MIN_PRICE.search(text)
        if m:
            found["min_price"] = _number(m.group(1))

    if "superhost" in text:
        found["superhost_only"] = True
    if re.search(r"\binstant(?:ly)?[ -]?book", text):
        found["instant_bookable"] = True

    for pattern, room_type in ROOM_TYPE_PHRASES:
        if pattern.search(text):
            found["room_type"] = room_type
            break

    # Longest alias first so "new york city" wins over "new york"
    for alias in sorted(LOCATION_ALIASES, key=len, reverse=True):
        if re.search(r"\b" + re.escape(alias) + r"\b", text):
            found["location"] = LOCATION_ALIASES[alias]
            break

    return SearchFilter(**found)
