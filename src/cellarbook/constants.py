"""
Cellarbook Constants and Enums

Centralized enums, scoring weights, vocabularies and storage names so the
engines and the data layer never hardcode the same string twice.
"""

from enum import Enum
from typing import List


# =======================
# WINE ATTRIBUTE ENUMS
# =======================

class WineOrigin(str, Enum):
    """Where a wine record came from."""
    CATALOG = "catalog"
    USER_ADDED = "user_added"


class DrinkWindowStatus(str, Enum):
    """Drink-window state of a wine relative to a given year."""
    TOO_YOUNG = "Too Young"
    READY = "Ready to Drink"
    AT_PEAK = "At Peak"
    PAST_PRIME = "Past Prime"
    UNKNOWN = "Unknown"

    @classmethod
    def selectable(cls) -> List[str]:
        """Statuses offered as filter facets (Unknown is never offered)."""
        return [cls.READY.value, cls.AT_PEAK.value, cls.TOO_YOUNG.value, cls.PAST_PRIME.value]

    @property
    def priority(self) -> int:
        """Rank used by the status-priority sort (lower drinks first)."""
        return _STATUS_PRIORITY.get(self, 4)


_STATUS_PRIORITY = {
    DrinkWindowStatus.AT_PEAK: 0,
    DrinkWindowStatus.READY: 1,
    DrinkWindowStatus.TOO_YOUNG: 2,
    DrinkWindowStatus.PAST_PRIME: 3,
}


class SortOption(str, Enum):
    """Collection sort orders."""
    DRINK_SOON = "drink-soon"
    STATUS_PRIORITY = "status-priority"
    PRODUCER_AZ = "producer-az"
    WINE_NAME_AZ = "wine-name-az"
    VINTAGE_NEWEST = "vintage-newest"
    VINTAGE_OLDEST = "vintage-oldest"
    REGION = "region"
    RATING = "rating"

    @property
    def label(self) -> str:
        return SORT_LABELS[self]


SORT_LABELS = {
    SortOption.DRINK_SOON: "Drink Soon",
    SortOption.STATUS_PRIORITY: "Status Priority",
    SortOption.PRODUCER_AZ: "Producer (A-Z)",
    SortOption.WINE_NAME_AZ: "Wine Name (A-Z)",
    SortOption.VINTAGE_NEWEST: "Vintage (Newest)",
    SortOption.VINTAGE_OLDEST: "Vintage (Oldest)",
    SortOption.REGION: "Region",
    SortOption.RATING: "Rating",
}


class ImageSide(str, Enum):
    """Which label photo an image belongs to."""
    FRONT = "front"
    BACK = "back"


# =======================
# ALGORITHM CONSTANTS
# =======================

class QueryDefaults:
    """Fallbacks used when numeric strings do not parse."""

    WINDOW_START = 0
    WINDOW_END = 9999

    # Unknown vintages sort last in both directions
    VINTAGE_NEWEST_UNKNOWN = 0
    VINTAGE_OLDEST_UNKNOWN = 9999

    RATING_UNKNOWN = 0
    QUANTITY = 1

    # Grape fragments this short are dropped from the facet vocabulary
    MIN_GRAPE_LENGTH = 3


class SimilarityWeights:
    """
    Points awarded per shared attribute by the similarity engine.

    Type and region dominate; structure (body/tannin/acidity) comes next;
    oak and tasting keywords only nudge the ranking.
    """

    WINE_TYPE = 25
    BODY = 15
    TANNIN = 10
    ACIDITY = 10
    COUNTRY = 8
    REGION = 15

    GRAPE_PER_MATCH = 12
    GRAPE_MAX_MATCHES = 2

    OAK = 5

    FLAVOR_MIN_SHARED = 2
    FLAVOR_BASE = 5
    FLAVOR_PER_KEYWORD = 2
    FLAVOR_MAX_KEYWORDS = 4

    DEFAULT_LIMIT = 6


# Values that never count as a shared attribute
TANNIN_NOT_APPLICABLE = "N/A"
OAK_UNKNOWN = "Unknown"


# Tasting-note descriptors compared between wines
TASTING_KEYWORDS = (
    # fruit
    'cherry', 'plum', 'blackberry', 'raspberry', 'strawberry', 'blueberry',
    'apple', 'pear', 'peach', 'apricot', 'citrus', 'lemon', 'grapefruit', 'orange',
    # oak and spice
    'vanilla', 'oak', 'spice', 'pepper', 'cinnamon', 'clove',
    # earth and mineral
    'chocolate', 'coffee', 'tobacco', 'leather', 'earth', 'mineral',
    # floral
    'floral', 'rose', 'violet', 'honey', 'butter',
    # other
    'tar', 'truffle', 'herbs', 'mint', 'eucalyptus',
)


# Label fields the vision model is asked to fill in
LABEL_BODY_LEVELS = ["Light", "Light-Medium", "Medium", "Medium-Full", "Full"]
LABEL_TANNIN_LEVELS = ["N/A", "Low", "Low-Medium", "Medium", "Medium-High", "High", "Very High"]
LABEL_ACIDITY_LEVELS = ["Low", "Medium", "Medium-High", "High"]
LABEL_WINE_TYPES = ["Red", "White", "Rosé", "Sparkling", "Dessert", "Fortified", "Orange/Amber"]


# =======================
# STORAGE CONSTANTS
# =======================

class TableNames:
    """Supabase table names."""

    WINES = "wines"
    CONSUMPTION = "consumption_history"
    USER_NOTES = "user_notes"
    PURCHASE_DATES = "user_purchase_dates"


USER_ID_PREFIX = "user-"
CONSUMPTION_ID_PREFIX = "consumption-"
IMAGE_BUCKET = "wine-labels"
STORAGE_URL_MARKER = "supabase.co/storage"


class FilePaths:
    """Local files used when no Supabase backend is configured."""

    DATA_DIR = "data"
    CATALOG_JSON = "data/wine-catalog.json"
    OVERLAY_JSON = "data/user-data.json"
    CACHE_DIR = ".cache"
    LLM_CACHE_DIR = ".cache/llm"
