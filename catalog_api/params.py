"""Decoding of request parameters that FastAPI cannot coerce on its own."""

import re
from typing import Optional

from pydantic import ValidationError

from .data_models import PriceRange
from .errors import InvalidInputError

# "<from>-<to>" or "<from>-" for an upward-open range
_PRICE_RANGE = re.compile(r"^\s*(\d+)\s*-\s*(\d*)\s*$")


def parse_price_range(raw: Optional[str]) -> Optional[PriceRange]:
    """Return the range encoded in ``raw``, or ``None`` when it is missing or blank."""
    if raw is None or not raw.strip():
        return None

    match = _PRICE_RANGE.match(raw)
    if match is None:
        raise InvalidInputError(
            "price range conversion failed",
            f"expected '<from>-<to>', got {raw!r}",
        )

    low, high = match.groups()
    try:
        return PriceRange(from_=int(low), to=int(high) if high else None)
    except ValidationError as e:
        raise InvalidInputError("price range conversion failed", e.errors()[0]["msg"]) from e
