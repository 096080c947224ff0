"""
Supabase repository helpers for the wine catalog.

Thin wrappers over the wines, consumption_history, user_notes and
user_purchase_dates tables. Every call takes the client explicitly, and
any failure is logged and re-raised as StorageError.
"""

import logging
from collections import Counter
from typing import Any, Dict, Iterable, List, Mapping, Optional

from supabase import Client

from cellarbook.constants import CONSUMPTION_ID_PREFIX, TableNames, USER_ID_PREFIX, WineOrigin
from cellarbook.error_handling import StorageError
from cellarbook.normalizer import (
    utc_now_iso,
    updates_to_record,
    wine_from_record,
    wine_to_record,
)
from cellarbook.schema import ConsumptionEvent, Wine
from cellarbook.utils import timestamped_id

logger = logging.getLogger(__name__)


def _execute(query: Any, operation: str) -> List[Dict[str, Any]]:
    """Run a built query and return its rows."""
    try:
        response = query.execute()
    except Exception as e:
        logger.error(f"Error {operation}: {e}")
        raise StorageError(f"Failed {operation}: {e}") from e
    return response.data or []


# =======================
# WINES
# =======================

def list_wines(sb: Client) -> List[Wine]:
    """All wines that are not soft-deleted, ordered by producer."""
    rows = _execute(
        sb.table(TableNames.WINES)
        .select("*")
        .eq("is_deleted", False)
        .order("producer"),
        "fetching wines",
    )
    logger.info(f"Fetched {len(rows)} wines")
    return [wine_from_record(row) for row in rows]


def get_wine(sb: Client, wine_id: str) -> Optional[Wine]:
    """One wine by id, or None when no row matches."""
    rows = _execute(
        sb.table(TableNames.WINES).select("*").eq("id", wine_id).limit(1),
        f"fetching wine {wine_id}",
    )
    return wine_from_record(rows[0]) if rows else None


def add_wine(sb: Client, wine: Wine, is_user_added: bool = True) -> Wine:
    """
    Insert a wine and return the stored row.

    A wine without an id gets a fresh user- id.
    """
    if not wine.id:
        wine = wine.model_copy(update={'id': timestamped_id(USER_ID_PREFIX)})
    if is_user_added:
        wine = wine.model_copy(update={'origin': WineOrigin.USER_ADDED})

    record = wine_to_record(wine, is_user_added=is_user_added)
    rows = _execute(sb.table(TableNames.WINES).insert(record), f"adding wine {wine.id}")
    logger.info(f"Added wine {wine.id}: {wine.display_name}")
    return wine_from_record(rows[0]) if rows else wine


def update_wine(sb: Client, wine_id: str, updates: Mapping[str, Any]) -> Wine:
    """
    Apply a partial update and return the stored row.

    Raises:
        StorageError: If the update fails or no wine has this id
    """
    record = updates_to_record(updates)
    rows = _execute(
        sb.table(TableNames.WINES).update(record).eq("id", wine_id),
        f"updating wine {wine_id}",
    )
    if not rows:
        raise StorageError(f"Wine {wine_id} not found")
    return wine_from_record(rows[0])


def _set_deleted(sb: Client, wine_id: str, deleted: bool) -> None:
    _execute(
        sb.table(TableNames.WINES)
        .update({"is_deleted": deleted, "updated_at": utc_now_iso()})
        .eq("id", wine_id),
        f"{'deleting' if deleted else 'restoring'} wine {wine_id}",
    )


def delete_wine(sb: Client, wine_id: str) -> None:
    """Soft delete: the row stays and can be restored."""
    _set_deleted(sb, wine_id, True)
    logger.info(f"Soft-deleted wine {wine_id}")


def restore_wine(sb: Client, wine_id: str) -> None:
    _set_deleted(sb, wine_id, False)
    logger.info(f"Restored wine {wine_id}")


def bulk_import_wines(
    sb: Client,
    wines: Iterable[Wine],
    is_user_added: bool = False,
    batch_size: int = 200
) -> int:
    """
    Upsert wines keyed on id; safe to run repeatedly.

    Returns:
        Number of rows written
    """
    records = [wine_to_record(wine, is_user_added=is_user_added) for wine in wines]
    written = 0
    for start in range(0, len(records), batch_size):
        batch = records[start:start + batch_size]
        rows = _execute(
            sb.table(TableNames.WINES).upsert(batch, on_conflict="id"),
            f"importing wines {start}-{start + len(batch)}",
        )
        written += len(rows)
    logger.info(f"Bulk imported {written} wines (user_added={is_user_added})")
    return written


# =======================
# CONSUMPTION HISTORY
# =======================

def _event_from_row(row: Mapping[str, Any]) -> ConsumptionEvent:
    return ConsumptionEvent.model_validate({
        'id': row.get('id'),
        'date': row.get('date'),
        'notes': row.get('notes'),
    })


def list_consumption(sb: Client, wine_id: str) -> List[ConsumptionEvent]:
    """Consumption events for a wine, most recent date first."""
    rows = _execute(
        sb.table(TableNames.CONSUMPTION)
        .select("*")
        .eq("wine_id", wine_id)
        .order("date", desc=True),
        f"fetching consumption for {wine_id}",
    )
    return [_event_from_row(row) for row in rows]


def add_consumption(
    sb: Client,
    wine_id: str,
    date: str,
    notes: str = "",
    event_id: Optional[str] = None
) -> ConsumptionEvent:
    """Record one bottle; an existing event_id is kept so imports can be re-run."""
    event_id = event_id or timestamped_id(CONSUMPTION_ID_PREFIX)
    rows = _execute(
        sb.table(TableNames.CONSUMPTION).upsert({
            "id": event_id,
            "wine_id": wine_id,
            "date": date,
            "notes": notes,
        }, on_conflict="id"),
        f"adding consumption for {wine_id}",
    )
    if rows:
        return _event_from_row(rows[0])
    return ConsumptionEvent(id=event_id, date=date, notes=notes)


def remove_consumption(sb: Client, consumption_id: str) -> None:
    _execute(
        sb.table(TableNames.CONSUMPTION).delete().eq("id", consumption_id),
        f"removing consumption {consumption_id}",
    )


def consumption_counts(sb: Client) -> Dict[str, int]:
    """Bottles consumed per wine id, across the whole collection."""
    rows = _execute(
        sb.table(TableNames.CONSUMPTION).select("wine_id"),
        "counting consumption",
    )
    return dict(Counter(row["wine_id"] for row in rows if row.get("wine_id")))


# =======================
# NOTES AND PURCHASE DATES
# =======================

def get_user_note(sb: Client, wine_id: str) -> str:
    rows = _execute(
        sb.table(TableNames.USER_NOTES).select("note").eq("wine_id", wine_id).limit(1),
        f"fetching note for {wine_id}",
    )
    return (rows[0].get("note") or "") if rows else ""


def save_user_note(sb: Client, wine_id: str, note: str) -> None:
    _execute(
        sb.table(TableNames.USER_NOTES).upsert({
            "wine_id": wine_id,
            "note": note,
            "updated_at": utc_now_iso(),
        }),
        f"saving note for {wine_id}",
    )


def get_purchase_date(sb: Client, wine_id: str) -> Optional[str]:
    rows = _execute(
        sb.table(TableNames.PURCHASE_DATES).select("purchase_date").eq("wine_id", wine_id).limit(1),
        f"fetching purchase date for {wine_id}",
    )
    return (rows[0].get("purchase_date") or None) if rows else None


def save_purchase_date(sb: Client, wine_id: str, date: str) -> None:
    _execute(
        sb.table(TableNames.PURCHASE_DATES).upsert({
            "wine_id": wine_id,
            "purchase_date": date,
            "updated_at": utc_now_iso(),
        }),
        f"saving purchase date for {wine_id}",
    )
