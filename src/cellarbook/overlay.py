"""
User Overlay Store

Local, file-backed user state layered over the read-only catalog:
consumption history, personal notes, purchase-date overrides, wines the
user added, and deletion tombstones. Used when no Supabase backend is
configured.

Lifecycle is load -> mutate -> persist. Every mutating call on
OverlayStore writes the file back unless autosave is off.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel, to_snake

from cellarbook.constants import CONSUMPTION_ID_PREFIX, USER_ID_PREFIX, WineOrigin
from cellarbook.error_handling import StorageError
from cellarbook.schema import ConsumptionEvent, Wine
from cellarbook.utils import int_or_default, timestamped_id

logger = logging.getLogger(__name__)


class UserOverlay(BaseModel):
    """Serialized overlay (camelCase keys on disk)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra='ignore',
    )

    # Legacy single-event-per-wine map, kept so old files round-trip
    consumed_wines: Dict[str, ConsumptionEvent] = Field(default_factory=dict)
    consumption_history: Dict[str, List[ConsumptionEvent]] = Field(default_factory=dict)
    user_notes: Dict[str, str] = Field(default_factory=dict)
    purchase_dates: Dict[str, str] = Field(default_factory=dict)
    added_wines: List[Wine] = Field(default_factory=list)
    deleted_wines: List[str] = Field(default_factory=list)

    @model_validator(mode='before')
    @classmethod
    def _migrate_legacy(cls, data: Any) -> Any:
        """Fill in sections missing from older files."""
        if not isinstance(data, dict):
            return data
        data = dict(data)

        history_key = 'consumptionHistory' if 'consumptionHistory' in data else 'consumption_history'
        if data.get(history_key) is None:
            legacy = data.get('consumedWines') or data.get('consumed_wines') or {}
            if not isinstance(legacy, dict):
                legacy = {}
            data[history_key] = {
                wine_id: [{
                    'id': timestamped_id(CONSUMPTION_ID_PREFIX),
                    'date': info.get('date', '') if isinstance(info, dict) else '',
                    'notes': info.get('notes', '') if isinstance(info, dict) else '',
                }]
                for wine_id, info in legacy.items()
            }

        for key in ('userNotes', 'purchaseDates', 'deletedWines', 'addedWines'):
            if data.get(key) is None:
                data.pop(key, None)
        return data


def merge_collection(catalog: Iterable[Wine], overlay: UserOverlay) -> List[Wine]:
    """Catalog wines plus user-added wines, minus tombstoned ids."""
    deleted = set(overlay.deleted_wines)
    combined = list(catalog) + list(overlay.added_wines)
    return [wine for wine in combined if wine.id not in deleted]


class OverlayStore:
    """
    File-backed UserOverlay with the consumption/notes/wines operations.

    Usage:
        store = OverlayStore("data/user-data.json")
        store.add_consumption("wine-7", "2024-05-01", "Birthday dinner")
        wines = merge_collection(catalog, store.overlay)
    """

    def __init__(self, path: Union[str, Path], autosave: bool = True):
        self.path = Path(path)
        self.autosave = autosave
        self.overlay = self.load()

    # =======================
    # PERSISTENCE
    # =======================

    def load(self) -> UserOverlay:
        """Read the overlay file; a missing or unreadable file gives an empty overlay."""
        if not self.path.exists():
            logger.info(f"No overlay at {self.path}, starting empty")
            return UserOverlay()

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
            overlay = UserOverlay.model_validate(raw)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Error reading overlay {self.path}: {e}")
            return UserOverlay()

        logger.info(
            f"Loaded overlay: {len(overlay.added_wines)} added wines, "
            f"{len(overlay.deleted_wines)} deleted"
        )
        return overlay

    def reload(self) -> UserOverlay:
        self.overlay = self.load()
        return self.overlay

    def save(self) -> None:
        """Write the overlay as camelCase JSON."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = self.overlay.model_dump(by_alias=True, mode='json')
            with open(self.path, 'w', encoding='utf-8') as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
        except OSError as e:
            logger.error(f"Error saving overlay {self.path}: {e}")
            raise StorageError(f"Could not save user data: {e}") from e

    def _commit(self) -> None:
        if self.autosave:
            self.save()

    # =======================
    # CONSUMPTION
    # =======================

    def add_consumption(
        self,
        wine_id: str,
        date: str,
        notes: str = "",
        quantity: Optional[Any] = None
    ) -> ConsumptionEvent:
        """
        Log one bottle as drunk.

        Args:
            wine_id: Wine the bottle belongs to
            date: Date drunk (ISO string)
            notes: Free-text tasting notes
            quantity: Bottles owned; when given, logging past it is
                recorded anyway with a warning

        Returns:
            The stored event
        """
        if quantity is not None:
            owned = int_or_default(quantity, 1)
            if self.consumed_count(wine_id) >= owned:
                logger.warning(
                    f"Logging consumption beyond quantity for {wine_id}: "
                    f"{self.consumed_count(wine_id) + 1}/{owned}"
                )

        event = ConsumptionEvent(
            id=timestamped_id(CONSUMPTION_ID_PREFIX),
            date=date,
            notes=notes,
        )
        self.overlay.consumption_history.setdefault(wine_id, []).append(event)
        self._commit()
        return event

    def remove_consumption(self, wine_id: str, event_id: str) -> bool:
        """Delete one event; returns False when the wine has no history."""
        events = self.overlay.consumption_history.get(wine_id)
        if events is None:
            return False

        remaining = [event for event in events if event.id != event_id]
        if remaining:
            self.overlay.consumption_history[wine_id] = remaining
        else:
            del self.overlay.consumption_history[wine_id]
        self._commit()
        return True

    def consumption_history(self, wine_id: str) -> List[ConsumptionEvent]:
        return list(self.overlay.consumption_history.get(wine_id, []))

    def consumed_count(self, wine_id: str) -> int:
        return len(self.overlay.consumption_history.get(wine_id, []))

    def consumed_counts(self) -> Dict[str, int]:
        return {
            wine_id: len(events)
            for wine_id, events in self.overlay.consumption_history.items()
        }

    def remaining_count(self, wine_id: str, total_quantity: int) -> int:
        return max(0, total_quantity - self.consumed_count(wine_id))

    def is_fully_consumed(self, wine_id: str, total_quantity: int) -> bool:
        return self.consumed_count(wine_id) >= total_quantity

    def latest_consumption(self, wine_id: str) -> Optional[ConsumptionEvent]:
        """Most recently logged event (insertion order), if any."""
        events = self.overlay.consumption_history.get(wine_id)
        return events[-1] if events else None

    def clear_consumption(self, wine_id: str) -> None:
        """Forget every consumption record for a wine, legacy ones included."""
        self.overlay.consumption_history.pop(wine_id, None)
        self.overlay.consumed_wines.pop(wine_id, None)
        self._commit()

    # =======================
    # NOTES AND PURCHASE DATES
    # =======================

    def save_user_note(self, wine_id: str, note: str) -> None:
        """Store a personal note; blank text removes it."""
        if note.strip():
            self.overlay.user_notes[wine_id] = note
        else:
            self.overlay.user_notes.pop(wine_id, None)
        self._commit()

    def user_note(self, wine_id: str) -> str:
        return self.overlay.user_notes.get(wine_id, "")

    def save_purchase_date(self, wine_id: str, date: str) -> None:
        """Override the purchase date; blank text removes the override."""
        if date.strip():
            self.overlay.purchase_dates[wine_id] = date
        else:
            self.overlay.purchase_dates.pop(wine_id, None)
        self._commit()

    def purchase_date(self, wine_id: str) -> Optional[str]:
        return self.overlay.purchase_dates.get(wine_id) or None

    def effective_purchase_date(self, wine: Wine) -> str:
        """User override if set, else the wine's own purchase date."""
        return self.purchase_date(wine.id) or wine.purchase_date

    # =======================
    # ADDED AND DELETED WINES
    # =======================

    def add_wine(self, wine: Union[Wine, Mapping[str, Any]]) -> Wine:
        """Store a new wine under a fresh user- id."""
        if not isinstance(wine, Wine):
            wine = Wine.model_validate(dict(wine))
        added = wine.model_copy(update={
            'id': timestamped_id(USER_ID_PREFIX),
            'origin': WineOrigin.USER_ADDED,
        })
        self.overlay.added_wines.append(added)
        self._commit()
        logger.info(f"Added wine {added.id}: {added.display_name}")
        return added

    def added_wines(self) -> List[Wine]:
        return list(self.overlay.added_wines)

    def update_added_wine(self, wine_id: str, updates: Mapping[str, Any]) -> Optional[Wine]:
        """Merge field updates into a user-added wine (None if not found)."""
        for index, wine in enumerate(self.overlay.added_wines):
            if wine.id != wine_id:
                continue
            merged = wine.model_dump()
            merged.update({to_snake(key): value for key, value in updates.items()})
            merged['id'] = wine.id
            merged['origin'] = wine.origin
            updated = Wine.model_validate(merged)
            self.overlay.added_wines[index] = updated
            self._commit()
            return updated

        logger.warning(f"No user-added wine {wine_id} to update")
        return None

    def delete_wine(self, wine_id: str) -> None:
        """
        Tombstone any wine and drop the data attached to it.

        A user-added copy is removed outright; notes, purchase override and
        consumption history for the id are cleared.
        """
        self.overlay.added_wines = [
            wine for wine in self.overlay.added_wines if wine.id != wine_id
        ]
        if wine_id not in self.overlay.deleted_wines:
            self.overlay.deleted_wines.append(wine_id)

        self.overlay.consumption_history.pop(wine_id, None)
        self.overlay.consumed_wines.pop(wine_id, None)
        self.overlay.user_notes.pop(wine_id, None)
        self.overlay.purchase_dates.pop(wine_id, None)
        self._commit()
        logger.info(f"Deleted wine {wine_id}")

    def restore_wine(self, wine_id: str) -> None:
        """Lift the tombstone (a removed user-added copy does not come back)."""
        self.overlay.deleted_wines = [
            deleted for deleted in self.overlay.deleted_wines if deleted != wine_id
        ]
        self._commit()

    def is_deleted(self, wine_id: str) -> bool:
        return wine_id in self.overlay.deleted_wines

    def deleted_wine_ids(self) -> List[str]:
        return list(self.overlay.deleted_wines)

    def export_added_wines(self) -> str:
        """User-added wines as pretty-printed camelCase JSON."""
        return json.dumps(
            [wine.to_camel_dict() for wine in self.overlay.added_wines],
            indent=2,
            ensure_ascii=False,
        )
