"""
Structured filter extraction from free text.

extract_filters() is total: it never raises, and text without a
recognisable pattern simply leaves the matching filter unset.

    >>> extract_filters("2 bedroom apartment under 5000 in lusail").model_dump(exclude_none=True)
    {'category': 'Apartment', 'location': 'lusail', 'bedrooms': 2, 'max_price': 5000}
"""

import math
import re

from realty_chat.constants import LOCATION_GAZETTEER, PROPERTY_CATEGORIES
from realty_chat.models.retrieval import PropertyFilters

# A number followed by a room word is a room count, not a price
_ROOM_WORD = r"\s*-?\s*(?:bedrooms?|beds?|br|bhk|bathrooms?|baths?)\b"
_NUMBER = r"(\d[\d,]*(?:\.\d+)?)(?![\d,]|\.\d)(?!" + _ROOM_WORD + r")\s*(k|m)?\b"

_BEDROOMS = re.compile(r"\b(\d+)\s*-?\s*(?:bedrooms?|beds?|br|bhk)\b", re.IGNORECASE)
_BATHROOMS = re.compile(r"\b(\d+)\s*-?\s*(?:bathrooms?|baths?)\b", re.IGNORECASE)
_MAX_PRICE = re.compile(
    r"\b(?:under|below|max|less than|up to)\s*(?:qar\s*)?" + _NUMBER, re.IGNORECASE
)
_MIN_PRICE = re.compile(
    r"\b(?:above|over|min|more than|at least)\s*(?:qar\s*)?" + _NUMBER, re.IGNORECASE
)
_RENT = re.compile(r"\b(?:rent|rental|renting|lease|leasing)\b", re.IGNORECASE)
_SALE = re.compile(r"\b(?:buy|buying|sale|sell|purchase|own)\b", re.IGNORECASE)
_FEATURED = re.compile(r"\bfeatured\b", re.IGNORECASE)

_CATEGORIES = [
    (re.compile(rf"\b(?:{pattern})\b", re.IGNORECASE), label)
    for pattern, label in PROPERTY_CATEGORIES
]
_LOCATIONS = [
    (re.compile(rf"\b{re.escape(name)}\b", re.IGNORECASE), name) for name in LOCATION_GAZETTEER
]

_MULTIPLIERS = {"k": 1_000, "m": 1_000_000}


def _parse_amount(number: str, suffix: str | None) -> int | None:
    try:
        value = float(number.replace(",", ""))
    except ValueError:
        return None
    if suffix:
        value *= _MULTIPLIERS[suffix.lower()]
    if not math.isfinite(value):
        return None
    return int(value)


def _listing_type(message: str) -> str | None:
    rent = _RENT.search(message)
    sale = _SALE.search(message)
    if rent and sale:
        # Both mentioned: the earlier mention wins
        return "rent" if rent.start() < sale.start() else "sale"
    if rent:
        return "rent"
    if sale:
        return "sale"
    return None


def _category(message: str) -> str | None:
    for pattern, label in _CATEGORIES:
        if pattern.search(message):
            return label
    return None


def _location(message: str) -> str | None:
    for pattern, name in _LOCATIONS:
        if pattern.search(message):
            return name
    return None


def extract_filters(message: str) -> PropertyFilters:
    """Extract property filters from a user message. Never raises."""
    if not message:
        return PropertyFilters()

    fields: dict = {
        "listing_type": _listing_type(message),
        "category": _category(message),
        "location": _location(message),
    }

    if match := _BEDROOMS.search(message):
        fields["bedrooms"] = int(match.group(1))
    if match := _BATHROOMS.search(message):
        fields["bathrooms"] = int(match.group(1))
    if match := _MAX_PRICE.search(message):
        fields["max_price"] = _parse_amount(match.group(1), match.group(2))
    if match := _MIN_PRICE.search(message):
        fields["min_price"] = _parse_amount(match.group(1), match.group(2))
    if _FEATURED.search(message):
        fields["featured"] = True

    return PropertyFilters(**fields)
