"""
Tests for the Supabase repository helpers.

Uses an in-memory fake of the supabase-py query builder that records the
chained calls and returns canned rows.
"""

from types import SimpleNamespace

import pytest

from cellarbook import wines_repo
from cellarbook.error_handling import ErrorContext, StorageError
from cellarbook.schema import Wine


class FakeQuery:
    """Chainable stand-in for a postgrest request builder."""

    def __init__(self, table_name, rows=None, error=None):
        self.table_name = table_name
        self.calls = []
        self.payload = None
        self._rows = rows
        self._error = error

    def _record(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        return self

    def select(self, *args, **kwargs):
        return self._record("select", *args, **kwargs)

    def eq(self, *args, **kwargs):
        return self._record("eq", *args, **kwargs)

    def order(self, *args, **kwargs):
        return self._record("order", *args, **kwargs)

    def limit(self, *args, **kwargs):
        return self._record("limit", *args, **kwargs)

    def delete(self, *args, **kwargs):
        return self._record("delete", *args, **kwargs)

    def insert(self, payload, **kwargs):
        self.payload = payload
        return self._record("insert", payload, **kwargs)

    def upsert(self, payload, **kwargs):
        self.payload = payload
        return self._record("upsert", payload, **kwargs)

    def update(self, payload, **kwargs):
        self.payload = payload
        return self._record("update", payload, **kwargs)

    def call(self, name):
        """Arguments of the first recorded call with this name."""
        for call_name, args, kwargs in self.calls:
            if call_name == name:
                return args, kwargs
        raise AssertionError(f"{name} was not called")

    def execute(self):
        if self._error is not None:
            raise self._error
        if self._rows is not None:
            return SimpleNamespace(data=self._rows)
        # Echo written rows back like `returning=representation`
        if isinstance(self.payload, list):
            return SimpleNamespace(data=self.payload)
        if self.payload is not None:
            return SimpleNamespace(data=[self.payload])
        return SimpleNamespace(data=[])


class FakeSupabase:
    """Minimal client exposing table()."""

    def __init__(self, rows=None, error=None):
        self.rows = rows or {}
        self.error = error
        self.queries = []

    def table(self, name):
        query = FakeQuery(name, self.rows.get(name), self.error)
        self.queries.append(query)
        return query

    @property
    def last(self):
        return self.queries[-1]


class TestWines:
    """Test wine CRUD."""

    def test_list_wines_excludes_deleted_and_orders_by_producer(self):
        sb = FakeSupabase(rows={"wines": [
            {"id": "1", "producer": "Krug", "name": "Grande Cuvée", "vintage": None, "is_user_added": False},
        ]})

        wines = wines_repo.list_wines(sb)

        assert [w.producer for w in wines] == ["Krug"]
        assert wines[0].vintage == ""
        assert sb.last.call("eq") == (("is_deleted", False), {})
        assert sb.last.call("order") == (("producer",), {})

    def test_get_wine_missing_returns_none(self):
        sb = FakeSupabase(rows={"wines": []})
        assert wines_repo.get_wine(sb, "nope") is None

    def test_get_wine_found(self):
        sb = FakeSupabase(rows={"wines": [{"id": "7", "producer": "Ridge"}]})
        assert wines_repo.get_wine(sb, "7").producer == "Ridge"

    def test_add_wine_assigns_user_id(self):
        sb = FakeSupabase()
        stored = wines_repo.add_wine(sb, Wine(producer="Ridge", name="Monte Bello"))

        assert stored.id.startswith("user-")
        assert stored.is_user_added
        assert sb.last.payload["is_user_added"] is True
        assert sb.last.payload["is_deleted"] is False

    def test_update_wine_maps_camel_case(self):
        sb = FakeSupabase()
        wines_repo.update_wine(sb, "7", {"tastingNotes": "Cassis", "vintage": "2019"})

        assert sb.last.payload["tasting_notes"] == "Cassis"
        assert sb.last.payload["vintage"] == "2019"
        assert "updated_at" in sb.last.payload
        assert sb.last.call("eq") == (("id", "7"), {})

    def test_update_missing_wine_raises(self):
        sb = FakeSupabase(rows={"wines": []})
        with pytest.raises(StorageError):
            wines_repo.update_wine(sb, "missing", {"vintage": "2019"})

    def test_delete_is_soft(self):
        sb = FakeSupabase()
        wines_repo.delete_wine(sb, "7")
        assert sb.last.payload["is_deleted"] is True

    def test_restore_clears_flag(self):
        sb = FakeSupabase()
        wines_repo.restore_wine(sb, "7")
        assert sb.last.payload["is_deleted"] is False

    def test_bulk_import_upserts_in_batches(self):
        sb = FakeSupabase()
        wines = [Wine(id=str(i), producer=f"P{i}") for i in range(5)]

        written = wines_repo.bulk_import_wines(sb, wines, batch_size=2)

        assert written == 5
        assert len(sb.queries) == 3
        args, kwargs = sb.queries[0].call("upsert")
        assert kwargs == {"on_conflict": "id"}
        assert all(row["is_user_added"] is False for row in args[0])

    def test_failures_become_storage_errors(self):
        sb = FakeSupabase(error=RuntimeError("connection refused"))
        with pytest.raises(StorageError) as exc_info:
            wines_repo.list_wines(sb)
        assert isinstance(exc_info.value.__cause__, RuntimeError)


class TestConsumption:
    """Test consumption history tables."""

    def test_list_consumption_newest_first(self):
        sb = FakeSupabase(rows={"consumption_history": [
            {"id": "c2", "wine_id": "7", "date": "2024-03-01", "notes": None},
            {"id": "c1", "wine_id": "7", "date": "2024-01-01", "notes": "Good"},
        ]})

        events = wines_repo.list_consumption(sb, "7")

        assert [e.id for e in events] == ["c2", "c1"]
        assert events[0].notes == ""
        assert sb.last.call("order") == (("date",), {"desc": True})

    def test_add_consumption_generates_id(self):
        sb = FakeSupabase()
        event = wines_repo.add_consumption(sb, "7", "2024-05-01", "Birthday")

        assert event.id.startswith("consumption-")
        assert sb.last.payload["wine_id"] == "7"
        assert event.notes == "Birthday"

    def test_add_consumption_keeps_given_id(self):
        sb = FakeSupabase()
        event = wines_repo.add_consumption(sb, "7", "2024-05-01", event_id="consumption-1-abc")
        assert event.id == "consumption-1-abc"
        assert sb.last.call("upsert")[1] == {"on_conflict": "id"}

    def test_remove_consumption_deletes_by_id(self):
        sb = FakeSupabase()
        wines_repo.remove_consumption(sb, "c1")
        assert sb.last.call("delete") == ((), {})
        assert sb.last.call("eq") == (("id", "c1"), {})

    def test_consumption_counts(self):
        sb = FakeSupabase(rows={"consumption_history": [
            {"wine_id": "a"}, {"wine_id": "a"}, {"wine_id": "b"},
        ]})
        assert wines_repo.consumption_counts(sb) == {"a": 2, "b": 1}


class TestNotesAndPurchaseDates:
    """Test per-wine user data tables."""

    def test_missing_note_is_empty(self):
        sb = FakeSupabase(rows={"user_notes": []})
        assert wines_repo.get_user_note(sb, "7") == ""

    def test_save_note_upserts(self):
        sb = FakeSupabase()
        wines_repo.save_user_note(sb, "7", "Open in 2030")
        assert sb.last.table_name == "user_notes"
        assert sb.last.payload["note"] == "Open in 2030"

    def test_purchase_date_roundtrip_shape(self):
        sb = FakeSupabase(rows={"user_purchase_dates": [{"purchase_date": "2021-02-02"}]})
        assert wines_repo.get_purchase_date(sb, "7") == "2021-02-02"

    def test_missing_purchase_date_is_none(self):
        sb = FakeSupabase(rows={"user_purchase_dates": []})
        assert wines_repo.get_purchase_date(sb, "7") is None

    def test_save_purchase_date_upserts(self):
        sb = FakeSupabase()
        wines_repo.save_purchase_date(sb, "7", "2021-02-02")
        assert sb.last.table_name == "user_purchase_dates"
        assert sb.last.payload["purchase_date"] == "2021-02-02"


class TestDetailReadFailures:
    """Reads behind the wine detail view report through ErrorContext."""

    @pytest.mark.parametrize("read", [
        wines_repo.list_consumption,
        wines_repo.get_user_note,
        wines_repo.get_purchase_date,
    ])
    def test_read_failure_is_captured(self, read):
        sb = FakeSupabase(error=RuntimeError("timeout"))

        with ErrorContext("loading notes") as ctx:
            read(sb, "7")

        assert isinstance(ctx.error, StorageError)
        assert ctx.message.startswith("Failed loading notes: Failed fetching")
