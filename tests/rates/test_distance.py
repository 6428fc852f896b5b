import pytest

from rates.distance import (
    CITY_COORDINATES,
    DistanceResolver,
    haversine_miles,
    location_key,
)
from rates.schemas import Location


class TestHaversine:
    def test_same_point_is_zero(self) -> None:
        assert haversine_miles(41.8781, -87.6298, 41.8781, -87.6298) == 0

    def test_new_york_to_los_angeles(self) -> None:
        ny = CITY_COORDINATES["new york, ny"]
        la = CITY_COORDINATES["los angeles, ca"]
        assert 2430 < haversine_miles(*ny, *la) < 2460

    def test_symmetric(self) -> None:
        ny = CITY_COORDINATES["new york, ny"]
        chi = CITY_COORDINATES["chicago, il"]
        assert haversine_miles(*ny, *chi) == pytest.approx(haversine_miles(*chi, *ny))


class TestLocationKey:
    def test_location_model(self) -> None:
        assert location_key(Location(city="Chicago", region="il")) == "chicago, il"

    def test_string_with_country_is_trimmed_to_city_and_region(self) -> None:
        assert location_key(" Chicago ,IL, US") == "chicago, il"

    def test_none(self) -> None:
        assert location_key(None) == ""


class TestDistanceResolver:
    """Distance in whole miles between two locations."""

    def test_known_cities(self) -> None:
        resolver = DistanceResolver()
        distance = resolver.resolve("New York, NY", "Chicago, IL")
        assert isinstance(distance, int)
        assert 700 < distance < 730

    def test_identical_locations_are_zero(self) -> None:
        resolver = DistanceResolver()
        assert resolver.resolve("Chicago, IL", Location(city="chicago", region="IL")) == 0

    def test_identical_unknown_locations_are_zero(self) -> None:
        assert DistanceResolver().resolve("Smallville, KS", "Smallville, KS") == 0

    def test_unknown_origin_uses_new_york(self) -> None:
        """
        Scenario: origin missing from the city table.
        Expected: no error, New York coordinates used in its place.
        """
        resolver = DistanceResolver()
        assert resolver.resolve("Smallville, KS", "Los Angeles, CA") == resolver.resolve(
            "New York, NY", "Los Angeles, CA"
        )

    def test_unknown_destination_uses_los_angeles(self) -> None:
        resolver = DistanceResolver()
        assert resolver.resolve("Chicago, IL", "Nowhere, ZZ") == resolver.resolve("Chicago, IL", "Los Angeles, CA")

    def test_custom_table(self) -> None:
        resolver = DistanceResolver(coordinates={"Origin Town, AA": (0.0, 0.0), "Far Town, BB": (0.0, 1.0)})
        # one degree of longitude on the equator
        assert resolver.resolve("origin town, aa", "far town, bb") == 69
