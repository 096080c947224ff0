"""
Catalog query engine.

Turns a wine list into the subset and order the user asked for:
- drink-window status derived from the current year
- free-text search and attribute filters
- eight sort orders
- facet values for the filter sidebar

Every function here is pure. Inputs are never mutated, and numeric fields
that do not parse fall back to the defaults in QueryDefaults instead of
raising, so a half-filled record can always be shown.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from cellarbook.constants import DrinkWindowStatus, QueryDefaults, SortOption
from cellarbook.schema import FilterOptions, Filters, Wine
from cellarbook.utils import int_or_default

_PEAK_RANGE = re.compile(r'(\d{4})-(\d{4})')

# Grape vocabulary clean-up
_GRAPE_SPLIT = re.compile(r'[,;]|\band\b', re.IGNORECASE)
_PARENTHETICAL = re.compile(r'\s*\(.*?\)\s*')
_PERCENTAGE = re.compile(r'\s*\d+%?\s*')
_MIN_WORD = re.compile(r'\bmin\b\s*', re.IGNORECASE)
_LEADING_DASH = re.compile(r'^\s*-\s*')

SEARCH_FIELDS = (
    'producer', 'name', 'region', 'country', 'grape_varieties', 'tasting_notes', 'notes'
)

# Filters compared by exact equality
EQUALITY_FILTERS = (
    'country', 'region', 'wine_type', 'vintage', 'body', 'tannin_level', 'acidity_level'
)

FilterCriteria = Union[Filters, Mapping[str, str]]


def _resolve_year(current_year: Optional[int]) -> int:
    return current_year if current_year is not None else date.today().year


# =======================
# DRINK WINDOW
# =======================

def window_years(wine: Wine) -> Tuple[int, int]:
    """Start/end years of the drink window with open-ended defaults."""
    start = int_or_default(wine.drink_window_start, QueryDefaults.WINDOW_START)
    end = int_or_default(wine.drink_window_end, QueryDefaults.WINDOW_END)
    return start, end


def drink_window_status(wine: Wine, current_year: Optional[int] = None) -> DrinkWindowStatus:
    """
    Where a wine sits in its drink window for the given year.

    A wine with no window at all is Ready to Drink (start defaults to 0,
    end to 9999). At Peak requires a 'YYYY-YYYY' range in peak_drinking
    that contains the year.

    Args:
        wine: Wine to classify
        current_year: Year to evaluate (defaults to today)

    Returns:
        DrinkWindowStatus
    """
    year = _resolve_year(current_year)
    start, end = window_years(wine)

    if year < start:
        return DrinkWindowStatus.TOO_YOUNG
    if year > end:
        return DrinkWindowStatus.PAST_PRIME
    if start <= year <= end:
        match = _PEAK_RANGE.search(wine.peak_drinking or "")
        if match and int(match.group(1)) <= year <= int(match.group(2)):
            return DrinkWindowStatus.AT_PEAK
        return DrinkWindowStatus.READY
    return DrinkWindowStatus.UNKNOWN


# =======================
# SEARCH AND FILTER
# =======================

def search_wines(wines: Iterable[Wine], query: str) -> List[Wine]:
    """Case-insensitive substring search over the descriptive text fields."""
    wines = list(wines)
    needle = (query or "").strip().lower()
    if not needle:
        return wines

    return [
        wine for wine in wines
        if any(needle in getattr(wine, name).lower() for name in SEARCH_FIELDS)
    ]


def _matches(wine: Wine, criteria: Filters, year: int) -> bool:
    for name in EQUALITY_FILTERS:
        wanted = getattr(criteria, name)
        if wanted and getattr(wine, name) != wanted:
            return False

    if criteria.drink_window_status:
        if drink_window_status(wine, year).value != criteria.drink_window_status:
            return False

    if criteria.grape_variety:
        if criteria.grape_variety.lower() not in wine.grape_varieties.lower():
            return False

    return True


def filter_wines(
    wines: Iterable[Wine],
    criteria: Optional[FilterCriteria] = None,
    current_year: Optional[int] = None
) -> List[Wine]:
    """
    Keep wines matching every non-empty criterion.

    Args:
        wines: Wines to filter
        criteria: Filters model or a mapping of criterion -> value
        current_year: Year used for the drink-window criterion

    Returns:
        Matching wines in input order
    """
    wines = list(wines)
    if criteria is None:
        return wines
    if not isinstance(criteria, Filters):
        criteria = Filters.model_validate(dict(criteria))
    if criteria.is_empty():
        return wines

    year = _resolve_year(current_year)
    return [wine for wine in wines if _matches(wine, criteria, year)]


# =======================
# SORTING
# =======================

def _fold(text: str) -> str:
    return text.casefold()


def _name_key(wine: Wine) -> Tuple[str, str]:
    return _fold(wine.producer), _fold(wine.name)


def _sort_key(option: SortOption, year: int):
    if option == SortOption.DRINK_SOON:
        def key(wine: Wine):
            start, end = window_years(wine)
            # Closed windows first, then the soonest-closing
            return (0 if year > end else 1, end, start) + _name_key(wine)
        return key

    if option == SortOption.STATUS_PRIORITY:
        return lambda wine: (drink_window_status(wine, year).priority,) + _name_key(wine)

    if option == SortOption.PRODUCER_AZ:
        return _name_key

    if option == SortOption.WINE_NAME_AZ:
        return lambda wine: (_fold(wine.name), _fold(wine.producer))

    if option == SortOption.VINTAGE_NEWEST:
        return lambda wine: (
            -int_or_default(wine.vintage, QueryDefaults.VINTAGE_NEWEST_UNKNOWN),
        ) + _name_key(wine)

    if option == SortOption.VINTAGE_OLDEST:
        return lambda wine: (
            int_or_default(wine.vintage, QueryDefaults.VINTAGE_OLDEST_UNKNOWN),
        ) + _name_key(wine)

    if option == SortOption.REGION:
        return lambda wine: (_fold(wine.country), _fold(wine.region)) + _name_key(wine)

    # SortOption.RATING
    return lambda wine: (
        -int_or_default(wine.rating, QueryDefaults.RATING_UNKNOWN),
    ) + _name_key(wine)


def sort_wines(
    wines: Iterable[Wine],
    order: Union[SortOption, str],
    current_year: Optional[int] = None
) -> List[Wine]:
    """
    Return a sorted copy of the wine list.

    Ties fall back to producer then wine name. Unknown vintages land last
    in both vintage orders; a missing rating counts as 0. An unrecognised
    order returns an unchanged copy.
    """
    wines = list(wines)
    try:
        option = SortOption(order)
    except ValueError:
        return wines

    return sorted(wines, key=_sort_key(option, _resolve_year(current_year)))


# =======================
# FACETS
# =======================

def normalize_grape(fragment: str) -> Optional[str]:
    """
    Clean one grape fragment for the facet vocabulary.

    "80% Cabernet Sauvignon" -> "Cabernet sauvignon", "Nebbiolo (min 85%)"
    -> "Nebbiolo". Returns None for fragments too short to be a grape.
    """
    grape = fragment.strip()
    grape = _PARENTHETICAL.sub(' ', grape)
    grape = _PERCENTAGE.sub(' ', grape)
    grape = _MIN_WORD.sub('', grape)
    grape = _LEADING_DASH.sub('', grape)
    grape = ' '.join(grape.split())

    if len(grape) < QueryDefaults.MIN_GRAPE_LENGTH:
        return None
    return grape[0].upper() + grape[1:].lower()


def extract_grape_varieties(wines: Iterable[Wine]) -> List[str]:
    """Sorted, de-duplicated grape names found across the collection."""
    grapes = set()
    for wine in wines:
        if not wine.grape_varieties:
            continue
        for fragment in _GRAPE_SPLIT.split(wine.grape_varieties):
            grape = normalize_grape(fragment)
            if grape:
                grapes.add(grape)
    return sorted(grapes)


def _distinct(values: Iterable[str], reverse: bool = False) -> List[str]:
    return sorted({value for value in values if value}, reverse=reverse)


def extract_filter_facets(wines: Iterable[Wine]) -> FilterOptions:
    """Distinct values per filter dimension (vintages newest first)."""
    wines = list(wines)
    return FilterOptions(
        countries=_distinct(wine.country for wine in wines),
        regions=_distinct(wine.region for wine in wines),
        wine_types=_distinct(wine.wine_type for wine in wines),
        vintages=_distinct((wine.vintage for wine in wines), reverse=True),
        bodies=_distinct(wine.body for wine in wines),
        tannin_levels=_distinct(wine.tannin_level for wine in wines),
        acidity_levels=_distinct(wine.acidity_level for wine in wines),
        drink_window_statuses=DrinkWindowStatus.selectable(),
        grape_varieties=extract_grape_varieties(wines),
    )


# =======================
# BOTTLES AND COMPOSED QUERIES
# =======================

def remaining_bottles(wine: Wine, consumed_count: int) -> int:
    """Bottles left; quantity that does not parse counts as one bottle."""
    quantity = int_or_default(wine.quantity, QueryDefaults.QUANTITY)
    return max(0, quantity - consumed_count)


def hide_finished(wines: Iterable[Wine], consumed_counts: Mapping[str, int]) -> List[Wine]:
    """Drop wines whose every bottle has been logged as consumed."""
    return [
        wine for wine in wines
        if remaining_bottles(wine, consumed_counts.get(wine.id, 0)) > 0
    ]


@dataclass
class CatalogQuery:
    """Everything the browse view needs to reproduce a result list."""

    search: str = ""
    filters: Filters = field(default_factory=Filters)
    sort: SortOption = SortOption.DRINK_SOON
    show_finished: bool = False

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> 'CatalogQuery':
        """Rebuild a query from URL parameters (unknown sort -> default)."""
        try:
            sort = SortOption(params.get('sort', SortOption.DRINK_SOON.value))
        except ValueError:
            sort = SortOption.DRINK_SOON

        return cls(
            search=params.get('q', ''),
            filters=Filters.model_validate({
                key: value for key, value in params.items()
                if key not in ('q', 'sort', 'showConsumed')
            }),
            sort=sort,
            show_finished=params.get('showConsumed') == 'true',
        )

    def to_params(self) -> Dict[str, str]:
        """URL parameters, omitting defaults and empty criteria."""
        params: Dict[str, str] = {}
        if self.search:
            params['q'] = self.search
        if self.sort != SortOption.DRINK_SOON:
            params['sort'] = self.sort.value
        if self.show_finished:
            params['showConsumed'] = 'true'
        params.update({
            key: value for key, value in self.filters.to_camel_dict().items() if value
        })
        return params


def run_query(
    wines: Iterable[Wine],
    query: CatalogQuery,
    consumed_counts: Optional[Mapping[str, int]] = None,
    current_year: Optional[int] = None
) -> List[Wine]:
    """Hide finished wines, then search, filter and sort."""
    counts = consumed_counts or {}
    result = list(wines)
    if not query.show_finished:
        result = hide_finished(result, counts)
    result = search_wines(result, query.search)
    result = filter_wines(result, query.filters, current_year)
    return sort_wines(result, query.sort, current_year)


@dataclass
class CollectionStats:
    """Header numbers for the browse view."""

    active_wines: int = 0
    total_bottles: int = 0
    status_counts: Dict[str, int] = field(default_factory=dict)


def collection_stats(
    wines: Iterable[Wine],
    consumed_counts: Optional[Mapping[str, int]] = None,
    current_year: Optional[int] = None
) -> CollectionStats:
    """Count wines with bottles left, the bottles themselves, and their statuses."""
    counts = consumed_counts or {}
    stats = CollectionStats()
    for wine in wines:
        remaining = remaining_bottles(wine, counts.get(wine.id, 0))
        if remaining <= 0:
            continue
        stats.active_wines += 1
        stats.total_bottles += remaining
        status = drink_window_status(wine, current_year).value
        stats.status_counts[status] = stats.status_counts.get(status, 0) + 1
    return stats
