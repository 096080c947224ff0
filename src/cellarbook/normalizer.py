"""
Conversion between the storage row shape and the in-memory Wine record.

Storage rows are flat snake_case dicts with nullable columns; Wine records
hold non-null strings where "" means absent. Both directions are driven by
the Wine model's field list, so adding a column to the model is enough to
carry it through inserts, reads and partial updates.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import pandas as pd
from pydantic.alias_generators import to_snake

from cellarbook.catalog_query import drink_window_status, remaining_bottles
from cellarbook.error_handling import StorageError
from cellarbook.schema import Wine, WINE_FIELDS

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def wine_from_record(row: Mapping[str, Any]) -> Wine:
    """Build a Wine from a storage row (missing/NULL columns become "")."""
    return Wine.model_validate(dict(row))


def wine_from_catalog_json(item: Mapping[str, Any]) -> Wine:
    """Build a Wine from a camelCase catalog entry."""
    return Wine.model_validate(dict(item))


def load_catalog_file(path: Union[str, Path]) -> List[Wine]:
    """
    Read a JSON catalog (a list of camelCase wine entries).

    Entries without an id are skipped.

    Raises:
        StorageError: If the file cannot be read or is not a JSON list
    """
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            items = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Error reading catalog {path}: {e}")
        raise StorageError(f"Could not read catalog {path}: {e}") from e

    if not isinstance(items, list):
        raise StorageError(f"Catalog {path} must contain a JSON list of wines")

    wines = [wine_from_catalog_json(item) for item in items if isinstance(item, dict)]
    wines = [wine for wine in wines if wine.id]
    logger.info(f"Loaded {len(wines)} wines from {path}")
    return wines


def wine_to_record(wine: Wine, is_user_added: Optional[bool] = None) -> Dict[str, Any]:
    """
    Convert a Wine to a storage row.

    Args:
        wine: Wine to store
        is_user_added: Override provenance (defaults to the wine's origin)

    Returns:
        Row dict with empty strings stored as NULL
    """
    record: Dict[str, Any] = {'id': wine.id}
    for field_name in WINE_FIELDS:
        value = getattr(wine, field_name)
        record[field_name] = value if value else None

    record['producer'] = wine.producer
    record['name'] = wine.name
    record['quantity'] = wine.quantity or "1"
    record['is_user_added'] = wine.is_user_added if is_user_added is None else is_user_added
    record['is_deleted'] = False
    return record


def updates_to_record(updates: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Map a partial update (camelCase or snake_case keys) to storage columns.

    Every Wine field is forwarded; ``id`` and unknown keys are dropped.
    Values are stored as given, except None which clears the column.
    """
    record: Dict[str, Any] = {}
    for key, value in updates.items():
        column = to_snake(key)
        if column not in WINE_FIELDS:
            continue
        record[column] = value
    record['updated_at'] = utc_now_iso()
    return record


def wines_to_frame(
    wines: Iterable[Wine],
    consumed_counts: Optional[Mapping[str, int]] = None,
    current_year: Optional[int] = None
) -> pd.DataFrame:
    """
    Tabular view of a wine list for display.

    Columns: id, producer, name, vintage, wine_type, country, region,
    grape_varieties, status, drink_window, quantity, remaining, rating.
    """
    counts = consumed_counts or {}
    rows: List[Dict[str, Any]] = []
    for wine in wines:
        window = ""
        if wine.drink_window_start or wine.drink_window_end:
            window = f"{wine.drink_window_start or '?'}-{wine.drink_window_end or '?'}"
        rows.append({
            'id': wine.id,
            'producer': wine.producer,
            'name': wine.name,
            'vintage': wine.vintage or "NV",
            'wine_type': wine.wine_type,
            'country': wine.country,
            'region': wine.region,
            'grape_varieties': wine.grape_varieties,
            'status': drink_window_status(wine, current_year).value,
            'drink_window': window,
            'quantity': wine.quantity,
            'remaining': remaining_bottles(wine, counts.get(wine.id, 0)),
            'rating': wine.rating,
        })

    columns = [
        'id', 'producer', 'name', 'vintage', 'wine_type', 'country', 'region',
        'grape_varieties', 'status', 'drink_window', 'quantity', 'remaining', 'rating'
    ]
    return pd.DataFrame(rows, columns=columns)
