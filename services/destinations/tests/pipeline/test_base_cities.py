"""
Tests for the base city catalog.

Covers:
- Bundled dataset loads and is clean
- Malformed entry filtering
- Case-insensitive dedup (first occurrence wins, order kept)
- Continent / name lookups
"""

import json

import pytest

from services.destinations.pipeline.base_cities import (
    DATA_PATH,
    VALID_CONTINENTS,
    BaseCity,
    generate_base_cities,
    get_cities_by_continent,
    get_city_by_name,
    get_continents,
    is_valid_continent,
    load_raw_catalog,
)

from .conftest import make_base_city, make_raw_entry


# ===================================================================
# Bundled dataset
# ===================================================================


class TestBundledCatalog:
    def test_loads_non_empty(self):
        cities = generate_base_cities()
        assert len(cities) >= 50

    def test_every_city_is_valid(self):
        for city in generate_base_cities():
            assert isinstance(city, BaseCity)
            assert city.city and city.country
            assert city.climate_type and city.best_time_to_visit
            assert city.continent in VALID_CONTINENTS

    def test_no_duplicate_keys(self):
        cities = generate_base_cities()
        keys = [c.key for c in cities]
        assert len(keys) == len(set(keys))

    def test_stable_order(self):
        first = generate_base_cities()
        second = generate_base_cities()
        assert first == second
        assert first[0].city == "Tokyo"

    def test_raw_file_is_json_array(self):
        raw = load_raw_catalog()
        assert isinstance(raw, list)
        assert DATA_PATH.name == "base_cities.json"

    def test_non_array_file_yields_empty(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text(json.dumps({"city": "Paris"}))
        assert load_raw_catalog(path) == []

    def test_includes_non_ascii_names(self):
        names = {c.city for c in generate_base_cities()}
        assert "São Paulo" in names
        assert "Medellín" in names


# ===================================================================
# Filtering
# ===================================================================


class TestFiltering:
    def test_valid_entry_kept(self):
        cities = generate_base_cities([make_raw_entry()])
        assert cities == [make_base_city()]

    @pytest.mark.parametrize("field_name", [
        "city", "country", "continent", "climate_type", "best_time_to_visit",
    ])
    def test_missing_field_dropped(self, field_name):
        entry = make_raw_entry()
        del entry[field_name]
        assert generate_base_cities([entry]) == []

    @pytest.mark.parametrize("field_name", ["city", "country", "climate_type"])
    def test_empty_string_dropped(self, field_name):
        assert generate_base_cities([make_raw_entry(**{field_name: ""})]) == []

    def test_non_string_field_dropped(self):
        assert generate_base_cities([make_raw_entry(city=42)]) == []

    def test_unknown_continent_dropped(self):
        assert generate_base_cities([make_raw_entry(continent="Atlantis")]) == []

    def test_antarctica_dropped(self):
        assert generate_base_cities([make_raw_entry(continent="Antarctica")]) == []

    def test_non_dict_entries_dropped(self):
        assert generate_base_cities([None, "Paris", 3, ["Paris"]]) == []

    def test_empty_input(self):
        assert generate_base_cities([]) == []


# ===================================================================
# Dedup
# ===================================================================


class TestDedup:
    def test_case_insensitive_duplicate_removed(self):
        entries = [
            make_raw_entry(best_time_to_visit="first"),
            make_raw_entry(city="PARIS", country="france", best_time_to_visit="second"),
        ]
        cities = generate_base_cities(entries)
        assert len(cities) == 1
        assert cities[0].best_time_to_visit == "first"

    def test_same_city_different_country_kept(self):
        entries = [
            make_raw_entry(),
            make_raw_entry(country="United States", continent="North America"),
        ]
        assert len(generate_base_cities(entries)) == 2

    def test_order_preserved(self):
        entries = [
            make_raw_entry(city="Rome", country="Italy"),
            make_raw_entry(city="Lisbon", country="Portugal"),
            make_raw_entry(city="rome", country="ITALY"),
            make_raw_entry(city="Athens", country="Greece"),
        ]
        assert [c.city for c in generate_base_cities(entries)] == ["Rome", "Lisbon", "Athens"]

    def test_hyphenated_names_do_not_collide(self):
        entries = [
            make_raw_entry(city="Port-Louis", country="Mauritius", continent="Africa"),
            make_raw_entry(city="Port", country="Louis-Mauritius", continent="Africa"),
        ]
        cities = generate_base_cities(entries)
        assert [(c.city, c.country) for c in cities] == [
            ("Port-Louis", "Mauritius"), ("Port", "Louis-Mauritius"),
        ]

    def test_same_object_id_dropped(self, caplog):
        entries = [
            make_raw_entry(city="São Paulo", country="Brazil", continent="South America"),
            make_raw_entry(city="Sao Paulo", country="Brazil", continent="South America"),
        ]
        with caplog.at_level("WARNING"):
            cities = generate_base_cities(entries)
        assert [c.city for c in cities] == ["São Paulo"]
        assert "sao-paulo-brazil" in caplog.text

    def test_bundled_object_ids_unique(self):
        ids = [c.object_id for c in generate_base_cities()]
        assert len(ids) == len(set(ids))

    def test_invalid_duplicate_does_not_shadow_valid(self):
        entries = [
            make_raw_entry(continent="Atlantis"),
            make_raw_entry(best_time_to_visit="valid one"),
        ]
        cities = generate_base_cities(entries)
        assert len(cities) == 1
        assert cities[0].best_time_to_visit == "valid one"


# ===================================================================
# Lookups
# ===================================================================


class TestLookups:
    def test_is_valid_continent(self):
        assert is_valid_continent("Europe")
        assert not is_valid_continent("Antarctica")
        assert not is_valid_continent("europe")
        assert not is_valid_continent(None)

    def test_get_continents_first_seen_order(self):
        continents = get_continents(generate_base_cities())
        assert continents == [
            "Asia", "Europe", "North America", "South America", "Africa", "Oceania",
        ]

    def test_get_cities_by_continent(self):
        cities = generate_base_cities()
        africa = get_cities_by_continent(cities, "Africa")
        assert africa
        assert all(c.continent == "Africa" for c in africa)
        assert get_cities_by_continent(cities, "Antarctica") == []

    def test_get_city_by_name_case_insensitive(self):
        cities = generate_base_cities()
        city = get_city_by_name(cities, "kYoTo")
        assert city is not None
        assert city.country == "Japan"

    def test_get_city_by_name_missing(self):
        assert get_city_by_name(generate_base_cities(), "Atlantis") is None

    def test_key_lowercases(self):
        assert make_base_city(city="New York", country="USA").key == ("new york", "usa")

    def test_object_id(self):
        assert make_base_city(city="São Paulo", country="Brazil").object_id == "sao-paulo-brazil"
