"""
Tests for the catalog query engine.

Covers drink-window status, search, filters, the eight sort orders,
facet extraction, and the composed browse query.
"""

import pytest

from cellarbook.catalog_query import (
    CatalogQuery,
    collection_stats,
    drink_window_status,
    extract_filter_facets,
    extract_grape_varieties,
    filter_wines,
    hide_finished,
    normalize_grape,
    remaining_bottles,
    run_query,
    search_wines,
    sort_wines,
)
from cellarbook.constants import DrinkWindowStatus, SortOption
from cellarbook.schema import Filters


YEAR = 2024


class TestDrinkWindowStatus:
    """Test drink-window classification."""

    def test_no_window_is_ready(self, make_wine):
        """Missing start/end default to an open window."""
        wine = make_wine()
        assert drink_window_status(wine, YEAR) == DrinkWindowStatus.READY

    def test_before_start_is_too_young(self, make_wine):
        wine = make_wine(drink_window_start="2030", drink_window_end="2045")
        assert drink_window_status(wine, YEAR) == DrinkWindowStatus.TOO_YOUNG

    def test_after_end_is_past_prime(self, make_wine):
        wine = make_wine(drink_window_start="2010", drink_window_end="2020")
        assert drink_window_status(wine, YEAR) == DrinkWindowStatus.PAST_PRIME

    def test_window_bounds_are_inclusive(self, make_wine):
        """The start and end years themselves are drinkable."""
        wine = make_wine(drink_window_start="2024", drink_window_end="2024")
        assert drink_window_status(wine, YEAR) == DrinkWindowStatus.READY

    def test_peak_range_containing_year_is_at_peak(self, make_wine):
        wine = make_wine(
            drink_window_start="2020",
            drink_window_end="2035",
            peak_drinking="2023-2028",
        )
        assert drink_window_status(wine, YEAR) == DrinkWindowStatus.AT_PEAK

    def test_peak_range_outside_year_is_ready(self, make_wine):
        wine = make_wine(
            drink_window_start="2020",
            drink_window_end="2035",
            peak_drinking="2028-2032",
        )
        assert drink_window_status(wine, YEAR) == DrinkWindowStatus.READY

    def test_same_wine_across_years(self, make_wine):
        """2020-2030 with a 2024-2026 peak: at peak in 2025, past in 2032, young in 2019."""
        wine = make_wine(
            drink_window_start="2020",
            drink_window_end="2030",
            peak_drinking="2024-2026",
        )
        assert drink_window_status(wine, 2025) == DrinkWindowStatus.AT_PEAK
        assert drink_window_status(wine, 2032) == DrinkWindowStatus.PAST_PRIME
        assert drink_window_status(wine, 2019) == DrinkWindowStatus.TOO_YOUNG

    def test_peak_text_without_range_is_ignored(self, make_wine):
        wine = make_wine(drink_window_start="2020", drink_window_end="2035", peak_drinking="now")
        assert drink_window_status(wine, YEAR) == DrinkWindowStatus.READY

    def test_leading_year_parsed_from_text(self, make_wine):
        """'2030 (est.)' reads as 2030."""
        wine = make_wine(drink_window_start="2030 (est.)")
        assert drink_window_status(wine, YEAR) == DrinkWindowStatus.TOO_YOUNG

    def test_unparseable_years_fall_back_to_open_window(self, make_wine):
        wine = make_wine(drink_window_start="soon", drink_window_end="later")
        assert drink_window_status(wine, YEAR) == DrinkWindowStatus.READY

    def test_defaults_to_current_year(self, make_wine):
        """Without a year the status is still one of the known values."""
        wine = make_wine(drink_window_start="2000", drink_window_end="2001")
        assert drink_window_status(wine) == DrinkWindowStatus.PAST_PRIME


class TestSearchWines:
    """Test free-text search."""

    @pytest.fixture
    def wines(self, make_wine):
        return [
            make_wine(producer="Giacomo Conterno", name="Barolo Francia", region="Piedmont"),
            make_wine(producer="Ridge", name="Monte Bello", tasting_notes="Cassis and cedar"),
            make_wine(producer="Egly-Ouriet", name="Brut Tradition", food_pairings="Oysters"),
        ]

    def test_empty_query_returns_all_in_order(self, wines):
        assert search_wines(wines, "") == wines
        assert search_wines(wines, "   ") == wines

    def test_case_insensitive_producer_match(self, wines):
        result = search_wines(wines, "CONTERNO")
        assert [w.producer for w in result] == ["Giacomo Conterno"]

    def test_matches_tasting_notes(self, wines):
        result = search_wines(wines, "cassis")
        assert [w.producer for w in result] == ["Ridge"]

    def test_food_pairings_are_not_searched(self, wines):
        assert search_wines(wines, "oysters") == []

    def test_no_match_returns_empty(self, wines):
        assert search_wines(wines, "riesling") == []


class TestFilterWines:
    """Test attribute filters."""

    @pytest.fixture
    def wines(self, make_wine):
        return [
            make_wine(producer="A", country="Italy", wine_type="Red", grape_varieties="Nebbiolo",
                      drink_window_start="2020", drink_window_end="2040"),
            make_wine(producer="B", country="France", wine_type="Red", grape_varieties="Pinot Noir",
                      drink_window_start="2030", drink_window_end="2050"),
            make_wine(producer="C", country="France", wine_type="White", grape_varieties="Chardonnay"),
        ]

    def test_empty_criteria_returns_all(self, wines):
        assert filter_wines(wines, Filters()) == wines
        assert filter_wines(wines, None) == wines

    def test_country_exact_match(self, wines):
        result = filter_wines(wines, Filters(country="France"))
        assert [w.producer for w in result] == ["B", "C"]

    def test_all_criteria_must_match(self, wines):
        result = filter_wines(wines, Filters(country="France", wine_type="Red"))
        assert [w.producer for w in result] == ["B"]

    def test_grape_filter_is_case_insensitive_substring(self, wines):
        result = filter_wines(wines, Filters(grape_variety="pinot"))
        assert [w.producer for w in result] == ["B"]

    def test_drink_window_status_filter(self, wines):
        result = filter_wines(wines, Filters(drink_window_status="Too Young"), current_year=YEAR)
        assert [w.producer for w in result] == ["B"]

    def test_mapping_with_camel_case_keys(self, wines):
        result = filter_wines(wines, {"wineType": "White"})
        assert [w.producer for w in result] == ["C"]

    def test_filtering_is_idempotent(self, wines):
        criteria = Filters(country="France")
        once = filter_wines(wines, criteria)
        assert filter_wines(once, criteria) == once

    def test_input_list_is_not_mutated(self, wines):
        before = list(wines)
        filter_wines(wines, Filters(country="Italy"))
        assert wines == before


class TestSortWines:
    """Test the eight sort orders."""

    def _producers(self, wines):
        return [w.producer for w in wines]

    def test_producer_az_case_insensitive_with_name_tiebreak(self, make_wine):
        wines = [
            make_wine(producer="ridge", name="Zinfandel"),
            make_wine(producer="Antinori", name="Tignanello"),
            make_wine(producer="Ridge", name="Monte Bello"),
        ]
        result = sort_wines(wines, SortOption.PRODUCER_AZ)
        assert [(w.producer, w.name) for w in result] == [
            ("Antinori", "Tignanello"),
            ("Ridge", "Monte Bello"),
            ("ridge", "Zinfandel"),
        ]

    def test_wine_name_az(self, make_wine):
        wines = [
            make_wine(producer="X", name="Zeta"),
            make_wine(producer="Y", name="alpha"),
        ]
        result = sort_wines(wines, "wine-name-az")
        assert [w.name for w in result] == ["alpha", "Zeta"]

    def test_vintage_newest_puts_unknown_last(self, make_wine):
        wines = [
            make_wine(producer="A", vintage="2015"),
            make_wine(producer="B", vintage="NV"),
            make_wine(producer="C", vintage="2020"),
            make_wine(producer="D", vintage=""),
        ]
        result = sort_wines(wines, SortOption.VINTAGE_NEWEST)
        assert self._producers(result) == ["C", "A", "B", "D"]

    def test_vintage_oldest_puts_unknown_last(self, make_wine):
        wines = [
            make_wine(producer="A", vintage="2015"),
            make_wine(producer="B", vintage="NV"),
            make_wine(producer="C", vintage="2020"),
        ]
        result = sort_wines(wines, SortOption.VINTAGE_OLDEST)
        assert self._producers(result) == ["A", "C", "B"]

    def test_rating_descending_missing_counts_as_zero(self, make_wine):
        wines = [
            make_wine(producer="A", rating="88"),
            make_wine(producer="B"),
            make_wine(producer="C", rating="95"),
        ]
        result = sort_wines(wines, SortOption.RATING)
        assert self._producers(result) == ["C", "A", "B"]

    def test_region_sorts_by_country_then_region(self, make_wine):
        wines = [
            make_wine(producer="A", country="Italy", region="Tuscany"),
            make_wine(producer="B", country="France", region="Rhône"),
            make_wine(producer="C", country="Italy", region="Piedmont"),
            make_wine(producer="D", country="France", region="Burgundy"),
        ]
        result = sort_wines(wines, SortOption.REGION)
        assert self._producers(result) == ["D", "B", "C", "A"]

    def test_drink_soon_closed_windows_first_then_soonest_end(self, make_wine):
        wines = [
            make_wine(producer="Open"),
            make_wine(producer="Late", drink_window_start="2020", drink_window_end="2035"),
            make_wine(producer="Past", drink_window_start="2010", drink_window_end="2018"),
            make_wine(producer="Soon", drink_window_start="2020", drink_window_end="2026"),
        ]
        result = sort_wines(wines, SortOption.DRINK_SOON, current_year=YEAR)
        assert self._producers(result) == ["Past", "Soon", "Late", "Open"]

    def test_status_priority_order(self, make_wine):
        wines = [
            make_wine(producer="Old", drink_window_start="2000", drink_window_end="2010"),
            make_wine(producer="Young", drink_window_start="2030", drink_window_end="2040"),
            make_wine(producer="Ready", drink_window_start="2020", drink_window_end="2030"),
            make_wine(producer="Peak", drink_window_start="2020", drink_window_end="2030",
                      peak_drinking="2022-2026"),
        ]
        result = sort_wines(wines, SortOption.STATUS_PRIORITY, current_year=YEAR)
        assert self._producers(result) == ["Peak", "Ready", "Young", "Old"]

    def test_unknown_order_returns_unchanged_copy(self, make_wine):
        wines = [make_wine(producer="B"), make_wine(producer="A")]
        result = sort_wines(wines, "by-mood")
        assert result == wines
        assert result is not wines

    def test_sort_does_not_mutate_input(self, make_wine):
        wines = [make_wine(producer="B"), make_wine(producer="A")]
        sort_wines(wines, SortOption.PRODUCER_AZ)
        assert self._producers(wines) == ["B", "A"]

    def test_sort_is_a_permutation(self, make_wine):
        wines = [make_wine(producer=p, vintage=v) for p, v in [("A", "2019"), ("B", ""), ("C", "2001")]]
        for option in SortOption:
            result = sort_wines(wines, option, current_year=YEAR)
            assert sorted(w.id for w in result) == sorted(w.id for w in wines)


class TestFacets:
    """Test filter facet extraction."""

    def test_distinct_sorted_values_and_newest_vintage_first(self, make_wine):
        wines = [
            make_wine(country="Italy", vintage="2016"),
            make_wine(country="France", vintage="2019"),
            make_wine(country="Italy", vintage=""),
        ]
        facets = extract_filter_facets(wines)
        assert facets.countries == ["France", "Italy"]
        assert facets.vintages == ["2019", "2016"]

    def test_status_facet_is_fixed_list(self, make_wine):
        facets = extract_filter_facets([make_wine()])
        assert facets.drink_window_statuses == ["Ready to Drink", "At Peak", "Too Young", "Past Prime"]

    def test_grape_percentages_are_stripped(self, make_wine):
        wines = [make_wine(grape_varieties="80% Cabernet Sauvignon, 20% Merlot")]
        assert extract_grape_varieties(wines) == ["Cabernet sauvignon", "Merlot"]

    def test_grape_parentheticals_and_min_are_stripped(self):
        assert normalize_grape("Nebbiolo (min 85%)") == "Nebbiolo"
        assert normalize_grape("Sangiovese min 90%") == "Sangiovese"

    def test_grape_facets_over_blend_and_minimum(self, make_wine):
        wines = [
            make_wine(grape_varieties="80% Cabernet Sauvignon, 20% Merlot"),
            make_wine(grape_varieties="Nebbiolo (min 85%)"),
        ]
        assert extract_grape_varieties(wines) == ["Cabernet sauvignon", "Merlot", "Nebbiolo"]
        assert extract_filter_facets(wines).grape_varieties == ["Cabernet sauvignon", "Merlot", "Nebbiolo"]

    def test_grapes_split_on_semicolon_and_word_and(self, make_wine):
        wines = [make_wine(grape_varieties="Shiraz; Viognier"), make_wine(grape_varieties="Grenache and Syrah")]
        assert extract_grape_varieties(wines) == ["Grenache", "Shiraz", "Syrah", "Viognier"]

    def test_grapes_deduplicated_after_normalizing_case(self, make_wine):
        wines = [make_wine(grape_varieties="merlot"), make_wine(grape_varieties="MERLOT")]
        assert extract_grape_varieties(wines) == ["Merlot"]

    def test_short_fragments_dropped(self, make_wine):
        wines = [make_wine(grape_varieties="Syrah, GS, - ")]
        assert extract_grape_varieties(wines) == ["Syrah"]


class TestBottlesAndQuery:
    """Test remaining-bottle accounting and the composed query."""

    def test_remaining_bottles(self, make_wine):
        assert remaining_bottles(make_wine(quantity="3"), 1) == 2
        assert remaining_bottles(make_wine(quantity="2"), 5) == 0

    def test_unparseable_quantity_counts_as_one(self, make_wine):
        assert remaining_bottles(make_wine(quantity="a few"), 0) == 1

    def test_hide_finished(self, make_wine):
        done = make_wine(id="done", quantity="1")
        left = make_wine(id="left", quantity="2")
        assert hide_finished([done, left], {"done": 1, "left": 1}) == [left]

    def test_run_query_hides_finished_unless_asked(self, make_wine):
        done = make_wine(id="done", producer="A", quantity="1")
        left = make_wine(id="left", producer="B", quantity="1")
        counts = {"done": 1}

        assert run_query([done, left], CatalogQuery(), counts) == [left]
        shown = run_query([done, left], CatalogQuery(show_finished=True), counts)
        assert [w.id for w in shown] == ["done", "left"]

    def test_run_query_combines_search_filter_and_sort(self, make_wine):
        wines = [
            make_wine(producer="Vietti", name="Barolo Rocche", country="Italy", vintage="2015"),
            make_wine(producer="Bartolo Mascarello", name="Barolo", country="Italy", vintage="2017"),
            make_wine(producer="Dujac", name="Clos de la Roche", country="France", vintage="2017"),
        ]
        query = CatalogQuery(
            search="barolo",
            filters=Filters(country="Italy"),
            sort=SortOption.VINTAGE_NEWEST,
        )
        result = run_query(wines, query)
        assert [w.producer for w in result] == ["Bartolo Mascarello", "Vietti"]

    def test_query_params_round_trip(self):
        params = {"q": "barolo", "sort": "rating", "country": "Italy", "wineType": "Red", "showConsumed": "true"}
        query = CatalogQuery.from_params(params)

        assert query.search == "barolo"
        assert query.sort == SortOption.RATING
        assert query.filters.wine_type == "Red"
        assert query.show_finished is True
        assert query.to_params() == params

    def test_unknown_sort_param_falls_back_to_default(self):
        query = CatalogQuery.from_params({"sort": "nonsense"})
        assert query.sort == SortOption.DRINK_SOON
        assert query.to_params() == {}

    def test_collection_stats(self, make_wine):
        wines = [
            make_wine(id="a", quantity="3", drink_window_start="2030"),
            make_wine(id="b", quantity="1"),
            make_wine(id="c", quantity="2"),
        ]
        stats = collection_stats(wines, {"a": 1, "b": 1}, current_year=YEAR)
        assert stats.active_wines == 2
        assert stats.total_bottles == 4
        assert stats.status_counts == {"Too Young": 1, "Ready to Drink": 1}
