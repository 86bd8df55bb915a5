"""In-memory provider discovery.

Filtering is split in two passes, mirroring the browse screen: the basic pass
(search text, skill, city, live location) and an advanced refinement (price
range, minimum rating, availability tags) that callers apply separately.
Both passes keep the input order and are recomputed from scratch on every call.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from marketplace.catalog import LIVE_LOCATION_RADIUS_KM
from marketplace.models import Coordinates, Provider
from marketplace.services.geo import within_radius

_PRICE_PATTERN = re.compile(r"\d[\d,]*(?:\.\d+)?")


@dataclass(frozen=True)
class DirectoryFilter:
    search_term: str = ""
    skill: str = ""
    city: str = ""
    use_live_location: bool = False
    user_coordinates: Optional[Coordinates] = None
    radius_km: float = LIVE_LOCATION_RADIUS_KM


@dataclass(frozen=True)
class AdvancedFilter:
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    min_rating: Optional[float] = None
    availability_tags: Sequence[str] = field(default_factory=tuple)


def _matches_search(provider: Provider, term: str, include_city: bool = False) -> bool:
    if term in provider.name.lower():
        return True
    if any(term in skill.lower() for skill in provider.skills):
        return True
    if include_city and term in provider.location.city.lower():
        return True
    return term in provider.bio.lower()


def filter_providers(providers: Iterable[Provider], criteria: DirectoryFilter) -> List[Provider]:
    term = criteria.search_term.strip().lower()
    result: List[Provider] = []
    for provider in providers:
        if term and not _matches_search(provider, term):
            continue
        if criteria.skill and criteria.skill not in provider.skills:
            continue
        if criteria.city and provider.location.city != criteria.city:
            continue
        if criteria.use_live_location:
            # An unknown user position excludes everyone rather than skipping the filter.
            if not within_radius(criteria.user_coordinates, provider.location.coordinates, criteria.radius_km):
                continue
        result.append(provider)
    return result


def parse_price(pricing: str) -> Optional[float]:
    """First number found in free-text pricing, e.g. ``"Rs. 2,500 per visit"`` -> 2500."""
    match = _PRICE_PATTERN.search(pricing or "")
    if not match:
        return None
    return float(match.group(0).replace(",", ""))


def refine_providers(providers: Iterable[Provider], advanced: AdvancedFilter) -> List[Provider]:
    tags = [tag.strip().lower() for tag in advanced.availability_tags if tag and tag.strip()]
    price_filter = advanced.min_price is not None or advanced.max_price is not None
    result: List[Provider] = []
    for provider in providers:
        if price_filter:
            price = parse_price(provider.pricing)
            if price is None:
                continue
            if advanced.min_price is not None and price < advanced.min_price:
                continue
            if advanced.max_price is not None and price > advanced.max_price:
                continue
        if advanced.min_rating:
            if (provider.rating or 0.0) < advanced.min_rating:
                continue
        if tags:
            availability = provider.availability.lower()
            if not all(tag in availability for tag in tags):
                continue
        result.append(provider)
    return result


def search_providers(providers: Iterable[Provider], search_term: str) -> List[Provider]:
    """Admin listing search: like the directory text search, but also matches city."""
    term = search_term.strip().lower()
    if not term:
        return list(providers)
    return [provider for provider in providers if _matches_search(provider, term, include_city=True)]
