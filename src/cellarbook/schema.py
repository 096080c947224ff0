"""Pydantic schemas for Cellarbook records and AI payloads."""

from typing import Any, ClassVar, Dict, FrozenSet, List

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from cellarbook.constants import WineOrigin, USER_ID_PREFIX


def _as_text(value: Any) -> str:
    """Coerce a loosely typed value (None, number, text) to a string."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "Yes" if value else ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class LenientRecord(BaseModel):
    """
    Base for records built from human or AI data entry.

    Every declared field is a string; None and numbers are coerced so
    construction never fails on partial data. Accepts snake_case field
    names or camelCase aliases and ignores unknown keys.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra='ignore',
    )

    # Fields that are not plain text and must not be coerced
    _untyped_fields: ClassVar[FrozenSet[str]] = frozenset()

    @model_validator(mode='before')
    @classmethod
    def _coerce_text_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        coerced = {}
        for key, value in data.items():
            if key in cls._untyped_fields:
                coerced[key] = value
            else:
                coerced[key] = _as_text(value)
        return coerced

    def to_camel_dict(self) -> Dict[str, Any]:
        """Dump with camelCase keys (catalog JSON / overlay file shape)."""
        return self.model_dump(by_alias=True, mode='json')


class Wine(LenientRecord):
    """One wine in the collection; empty string means the value is absent."""

    _untyped_fields: ClassVar[FrozenSet[str]] = frozenset({'origin', 'is_user_added', 'isUserAdded'})

    id: str = ""

    # Descriptive
    producer: str = ""
    name: str = ""
    vintage: str = ""
    region: str = ""
    appellation: str = ""
    country: str = ""
    grape_varieties: str = ""
    blend_percentage: str = ""
    alcohol: str = ""
    bottle_size: str = ""
    wine_type: str = ""
    color: str = ""

    # Structure and character
    body: str = ""
    tannin_level: str = ""
    acidity_level: str = ""
    oak_treatment: str = ""
    aging_potential: str = ""

    # Drink window
    drink_window_start: str = ""
    drink_window_end: str = ""
    current_status: str = ""
    peak_drinking: str = ""

    # Acquisition
    purchase_date: str = ""
    purchase_price: str = ""
    purchase_location: str = ""
    quantity: str = "1"

    # Legacy single-consumption fields (superseded by consumption history)
    consumed: str = ""
    date_consumed: str = ""
    consumption_notes: str = ""

    # Cellar
    storage_location: str = ""
    cellar_temperature: str = ""

    # Narrative
    tasting_notes: str = ""
    aroma_notes: str = ""
    food_pairings: str = ""
    rating: str = ""

    # Media: remote URL, or a data: URL awaiting upload
    front_image: str = ""
    back_image: str = ""

    notes: str = ""

    origin: WineOrigin = WineOrigin.CATALOG

    @model_validator(mode='before')
    @classmethod
    def _infer_origin(cls, data: Any) -> Any:
        """Derive provenance for legacy data that carries no origin tag."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        flag = data.pop('is_user_added', data.pop('isUserAdded', None))
        if data.get('origin') in (None, ""):
            data.pop('origin', None)
            if flag is not None:
                data['origin'] = WineOrigin.USER_ADDED if flag else WineOrigin.CATALOG
            elif str(data.get('id') or "").startswith(USER_ID_PREFIX):
                data['origin'] = WineOrigin.USER_ADDED
        return data

    @field_validator('quantity')
    @classmethod
    def _default_quantity(cls, value: str) -> str:
        return value.strip() or "1"

    @property
    def is_user_added(self) -> bool:
        return self.origin == WineOrigin.USER_ADDED

    @property
    def display_name(self) -> str:
        """'Producer Name (vintage)' with NV for missing vintages."""
        title = " ".join(part for part in (self.producer, self.name) if part)
        return f"{title} ({self.vintage or 'NV'})"


# Wine attributes other than identity and provenance
WINE_FIELDS: List[str] = [
    name for name in Wine.model_fields if name not in ('id', 'origin')
]


class ConsumptionEvent(LenientRecord):
    """One bottle drunk on a given date."""

    id: str = ""
    date: str = ""
    notes: str = ""


class Filters(LenientRecord):
    """Attribute filter criteria; an empty value never filters."""

    country: str = ""
    region: str = ""
    wine_type: str = ""
    vintage: str = ""
    body: str = ""
    tannin_level: str = ""
    acidity_level: str = ""
    drink_window_status: str = ""
    grape_variety: str = ""

    def is_empty(self) -> bool:
        return not any(self.model_dump().values())

    def active(self) -> Dict[str, str]:
        """Only the criteria that are set."""
        return {key: value for key, value in self.model_dump().items() if value}


class FilterOptions(BaseModel):
    """Selectable facet values derived from a wine list."""

    countries: List[str] = Field(default_factory=list)
    regions: List[str] = Field(default_factory=list)
    wine_types: List[str] = Field(default_factory=list)
    vintages: List[str] = Field(default_factory=list)
    bodies: List[str] = Field(default_factory=list)
    tannin_levels: List[str] = Field(default_factory=list)
    acidity_levels: List[str] = Field(default_factory=list)
    drink_window_statuses: List[str] = Field(default_factory=list)
    grape_varieties: List[str] = Field(default_factory=list)


class LabelExtraction(LenientRecord):
    """Fields the vision model reads or infers from a label photo."""

    producer: str = Field("", description="Winery/producer name")
    name: str = Field("", description="Wine name without the producer")
    vintage: str = Field("", description="Vintage year, e.g. '2020'")
    country: str = Field("", description="Country of origin")
    region: str = Field("", description="Wine region")
    appellation: str = Field("", description="DOC/DOCG/AOC/AVA if known")
    grape_varieties: str = Field("", description="Comma separated grapes")
    blend_percentage: str = Field("", description="Blend split if visible")
    wine_type: str = Field("", description="Red, White, Rosé, Sparkling, ...")
    color: str = Field("", description="Descriptive color")
    alcohol: str = Field("", description="ABV as a number string")
    bottle_size: str = Field("", description="e.g. 750ml")
    body: str = Field("", description="Light .. Full")
    tannin_level: str = Field("", description="N/A, Low .. Very High")
    acidity_level: str = Field("", description="Low .. High")
    oak_treatment: str = Field("", description="Oak aging details")
    aging_potential: str = Field("", description="e.g. 5-10 years")
    drink_window_start: str = Field("", description="Earliest year to drink")
    drink_window_end: str = Field("", description="Latest year to drink")
    tasting_notes: str = Field("", description="Palate notes")
    aroma_notes: str = Field("", description="Nose notes")
    food_pairings: str = Field("", description="Pairing suggestions")
    notes: str = Field("", description="Awards, designations, other info")

    def to_wine_fields(self) -> Dict[str, str]:
        """Non-empty values keyed by Wine field name, ready to prefill a form."""
        return {key: value for key, value in self.model_dump().items() if value.strip()}


class WineReference(BaseModel):
    """A wine cited inline in a chat reply as [[display|id]]."""

    id: str
    display_name: str


class ChatReply(BaseModel):
    """Assistant reply with the wines it linked to."""

    reply: str
    wine_references: List[WineReference] = Field(default_factory=list)
