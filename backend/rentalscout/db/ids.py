import re
from typing import Any

from rentalscout.core.errors import InputValidationError

_NUMERIC = re.compile(r"^\+?\d+$")
_OBJECT_ID = re.compile(r"^[0-9a-fA-F]{24}$")


def normalize_listing_id(value: Any) -> str:
    """Map any accepted listing identifier to one canonical comparable key.

    Accepted forms: native ids in extended-JSON shape (``{"$oid": ...}``,
    ``{"$numberLong": ...}``, ``{"$numberInt": ...}``), integers, integral
    floats and strings. ``10006546``, ``"10006546"`` and
    ``{"$numberLong": "10006546"}`` all normalise to ``"10006546"``.
    """
    if isinstance(value, dict):
        for key in ("$oid", "$numberLong", "$numberInt"):
            if key in value:
                return normalize_listing_id(value[key])
        raise InputValidationError(f"Unsupported identifier object: {value!r}")

    # bool is an int subclass; True is never a listing id
    if isinstance(value, bool) or value is None:
        raise InputValidationError(f"Invalid listing identifier: {value!r}")

    if isinstance(value, int):
        if value < 0:
            raise InputValidationError(f"Invalid listing identifier: {value!r}")
        return str(value)

    if isinstance(value, float):
        if not value.is_integer() or value < 0:
            raise InputValidationError(f"Invalid listing identifier: {value!r}")
        return str(int(value))

    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise InputValidationError("Listing identifier must not be empty")
        if _NUMERIC.match(text):
            return str(int(text))
        if _OBJECT_ID.match(text):
            return text.lower()
        return text

    raise InputValidationError(f"Unsupported identifier type: {type(value).__name__}")


def same_listing(a: Any, b: Any) -> bool:
    return normalize_listing_id(a) == normalize_listing_id(b)
