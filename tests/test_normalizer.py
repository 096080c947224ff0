"""
Tests for storage row <-> Wine conversion.
"""

import json

import pytest

from cellarbook.constants import WineOrigin
from cellarbook.error_handling import StorageError
from cellarbook.normalizer import (
    load_catalog_file,
    updates_to_record,
    wine_from_catalog_json,
    wine_from_record,
    wine_to_record,
    wines_to_frame,
)
from cellarbook.schema import WINE_FIELDS, Wine


class TestWineFromRecord:
    """Test reading storage rows."""

    def test_null_columns_become_empty_strings(self):
        row = {"id": "w1", "producer": "Ridge", "name": "Monte Bello", "vintage": None, "region": None}
        wine = wine_from_record(row)
        assert wine.vintage == ""
        assert wine.region == ""

    def test_null_quantity_defaults_to_one(self):
        wine = wine_from_record({"id": "w1", "quantity": None})
        assert wine.quantity == "1"

    def test_user_added_flag_sets_origin(self):
        wine = wine_from_record({"id": "abc", "is_user_added": True})
        assert wine.origin == WineOrigin.USER_ADDED
        assert wine.is_user_added

    def test_storage_columns_are_ignored(self):
        wine = wine_from_record({"id": "w1", "created_at": "2024-01-01", "is_deleted": False})
        assert wine.id == "w1"

    def test_numeric_values_are_coerced(self):
        wine = wine_from_record({"id": "w1", "vintage": 2018, "alcohol": 14.0})
        assert wine.vintage == "2018"
        assert wine.alcohol == "14"


class TestWineFromCatalogJson:
    """Test reading camelCase catalog entries."""

    def test_camel_case_keys(self):
        wine = wine_from_catalog_json({
            "id": "178",
            "producer": "Castello Banfi",
            "grapeVarieties": "Sangiovese",
            "drinkWindowEnd": "2035",
        })
        assert wine.grape_varieties == "Sangiovese"
        assert wine.drink_window_end == "2035"
        assert wine.origin == WineOrigin.CATALOG

    def test_user_prefix_implies_user_added(self):
        wine = wine_from_catalog_json({"id": "user-1718000000000-abc123xyz"})
        assert wine.origin == WineOrigin.USER_ADDED


class TestLoadCatalogFile:
    """Test reading a catalog JSON file."""

    def test_loads_entries_with_ids(self, tmp_path):
        path = tmp_path / "wine-catalog.json"
        path.write_text(json.dumps([
            {"id": "1", "producer": "Krug", "wineType": "Sparkling"},
            {"producer": "No id"},
            "not a wine",
        ]))
        wines = load_catalog_file(path)
        assert [w.id for w in wines] == ["1"]
        assert wines[0].wine_type == "Sparkling"

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(StorageError):
            load_catalog_file(tmp_path / "missing.json")

    def test_non_list_raises(self, tmp_path):
        path = tmp_path / "wine-catalog.json"
        path.write_text(json.dumps({"wines": []}))
        with pytest.raises(StorageError):
            load_catalog_file(path)


class TestWineToRecord:
    """Test writing storage rows."""

    def test_empty_strings_stored_as_null(self):
        record = wine_to_record(Wine(id="w1", producer="Ridge", name=""))
        assert record["vintage"] is None
        assert record["producer"] == "Ridge"
        assert record["name"] == ""

    def test_every_field_has_a_column(self):
        record = wine_to_record(Wine(id="w1"))
        for field_name in WINE_FIELDS:
            assert field_name in record

    def test_flags(self):
        record = wine_to_record(Wine(id="w1"), is_user_added=True)
        assert record["is_user_added"] is True
        assert record["is_deleted"] is False
        assert record["quantity"] == "1"

    def test_provenance_defaults_to_origin(self):
        wine = Wine(id="x", origin=WineOrigin.USER_ADDED)
        assert wine_to_record(wine)["is_user_added"] is True


class TestUpdatesToRecord:
    """Test partial update mapping."""

    def test_camel_and_snake_keys_are_mapped(self):
        record = updates_to_record({"tastingNotes": "Cassis", "drink_window_end": "2040"})
        assert record["tasting_notes"] == "Cassis"
        assert record["drink_window_end"] == "2040"

    def test_every_wine_field_is_forwarded(self):
        updates = {field_name: "x" for field_name in WINE_FIELDS}
        record = updates_to_record(updates)
        for field_name in WINE_FIELDS:
            assert record[field_name] == "x"

    def test_id_and_unknown_keys_dropped(self):
        record = updates_to_record({"id": "other", "favouriteColour": "red", "rating": "92"})
        assert "id" not in record
        assert "favourite_colour" not in record
        assert record["rating"] == "92"

    def test_updated_at_is_stamped(self):
        assert "updated_at" in updates_to_record({})


class TestWinesToFrame:
    """Test tabular display view."""

    def test_frame_columns_and_derived_values(self):
        wines = [
            Wine(id="a", producer="Ridge", quantity="2", drink_window_start="2020", drink_window_end="2040"),
            Wine(id="b", producer="Krug"),
        ]
        df = wines_to_frame(wines, {"a": 1}, current_year=2024)

        assert list(df["id"]) == ["a", "b"]
        assert list(df["remaining"]) == [1, 1]
        assert list(df["vintage"]) == ["NV", "NV"]
        assert df.loc[0, "drink_window"] == "2020-2040"
        assert df.loc[1, "drink_window"] == ""
        assert df.loc[0, "status"] == "Ready to Drink"

    def test_empty_list_keeps_columns(self):
        df = wines_to_frame([])
        assert df.empty
        assert "status" in df.columns
