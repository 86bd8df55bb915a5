import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from marketplace.models import Coordinates, Provider, ProviderLocation
from marketplace.services.directory import (
    AdvancedFilter,
    DirectoryFilter,
    filter_providers,
    parse_price,
    refine_providers,
    search_providers,
)


def _provider(provider_id, name, skills, city="", coords=None, bio="", pricing="", availability="", rating=None):
    return Provider(
        id=provider_id,
        user_id=provider_id,
        name=name,
        bio=bio,
        skills=skills,
        location=ProviderLocation(
            city=city,
            coordinates=Coordinates(latitude=coords[0], longitude=coords[1]) if coords else None,
        ),
        pricing=pricing,
        availability=availability,
        rating=rating,
    )


def _providers():
    return [
        _provider("p1", "Karachi Kitchen", ["Chef"], city="Karachi", coords=(24.8, 67.0),
                  bio="Home-style biryani", pricing="Rs. 2,000 per meal", availability="Weekends, Evenings", rating=4.6),
        _provider("p2", "Lahore Dastarkhwan", ["Chef"], city="Lahore", coords=(31.5, 74.3),
                  bio="Catering for events", pricing="Rs. 4500 per event", availability="Weekdays", rating=3.9),
        _provider("p3", "Sparkle Cleaners", ["Home Cleaner"], city="Karachi",
                  bio="Deep cleaning, no coordinates on file", pricing="Negotiable", availability="Mornings"),
    ]


def test_live_location_keeps_only_nearby_chef():
    user = Coordinates(latitude=24.85, longitude=67.01)
    result = filter_providers(
        _providers(),
        DirectoryFilter(skill="Chef", use_live_location=True, user_coordinates=user, radius_km=10),
    )
    assert [p.id for p in result] == ["p1"]


def test_provider_without_coordinates_never_passes_live_location():
    user = Coordinates(latitude=24.85, longitude=67.01)
    result = filter_providers(
        _providers(),
        DirectoryFilter(search_term="clean", city="Karachi", use_live_location=True, user_coordinates=user),
    )
    assert result == []


def test_live_location_without_user_position_empties_result():
    result = filter_providers(_providers(), DirectoryFilter(use_live_location=True, user_coordinates=None))
    assert result == []


def test_live_location_off_ignores_distance():
    result = filter_providers(_providers(), DirectoryFilter(use_live_location=False))
    assert [p.id for p in result] == ["p1", "p2", "p3"]


def test_search_is_case_insensitive_over_name_skill_and_bio():
    providers = _providers()
    assert [p.id for p in filter_providers(providers, DirectoryFilter(search_term="KITCHEN"))] == ["p1"]
    assert [p.id for p in filter_providers(providers, DirectoryFilter(search_term="chef"))] == ["p1", "p2"]
    assert [p.id for p in filter_providers(providers, DirectoryFilter(search_term="catering"))] == ["p2"]
    # City is not part of the customer-facing search.
    assert filter_providers(providers, DirectoryFilter(search_term="lahore dast")) != []
    assert filter_providers(providers, DirectoryFilter(search_term="karachi")) == [providers[0]]


def test_skill_and_city_are_exact_matches():
    providers = _providers()
    assert filter_providers(providers, DirectoryFilter(skill="chef")) == []
    assert [p.id for p in filter_providers(providers, DirectoryFilter(city="Karachi"))] == ["p1", "p3"]
    assert filter_providers(providers, DirectoryFilter(city="karachi")) == []


def test_filtering_is_idempotent():
    providers = _providers()
    criteria = DirectoryFilter(search_term="a", city="Karachi")
    first = filter_providers(providers, criteria)
    second = filter_providers(providers, criteria)
    assert first == second
    assert filter_providers(first, criteria) == first


def test_parse_price_reads_first_number():
    assert parse_price("Rs. 2,500 per visit") == 2500
    assert parse_price("1500/hour") == 1500
    assert parse_price("Negotiable") is None
    assert parse_price("") is None


def test_refine_by_price_range_excludes_unpriced_providers():
    result = refine_providers(_providers(), AdvancedFilter(min_price=0, max_price=3000))
    assert [p.id for p in result] == ["p1"]


def test_refine_by_min_rating_and_availability():
    providers = _providers()
    assert [p.id for p in refine_providers(providers, AdvancedFilter(min_rating=4))] == ["p1"]
    assert [p.id for p in refine_providers(providers, AdvancedFilter(availability_tags=("weekends", "Evenings")))] == ["p1"]
    assert refine_providers(providers, AdvancedFilter(availability_tags=("Weekends", "Mornings"))) == []


def test_refine_without_criteria_is_noop():
    providers = _providers()
    assert refine_providers(providers, AdvancedFilter()) == providers


def test_admin_search_also_matches_city():
    providers = _providers()
    assert [p.id for p in search_providers(providers, "lahore")] == ["p2"]
    assert search_providers(providers, "  ") == providers
