"""
_parsed_data.py
---------------
Typed row DTOs produced by the CSV parser and consumed by CatalogImporter.

A field left as None means the column was missing or its cell blank; the
importer uses model defaults on create and leaves the stored value alone on
update. `row` is the 1-based CSV line the entry came from (the header is
line 1), used to point validation issues at their source.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Optional

ENTITY_CATEGORIES = "categories"
ENTITY_ITEMS = "items"
ENTITY_SIZES = "item_sizes"
ENTITY_MODIFIER_GROUPS = "modifier_groups"
ENTITY_MODIFIERS = "modifiers"
ENTITY_OVERRIDES = "item_modifier_overrides"

ENTITY_KINDS = (
    ENTITY_CATEGORIES,
    ENTITY_ITEMS,
    ENTITY_SIZES,
    ENTITY_MODIFIER_GROUPS,
    ENTITY_MODIFIERS,
    ENTITY_OVERRIDES,
)


@dataclass
class ParsedCategory:
    name: str
    description: Optional[str] = None
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None
    row: Optional[int] = field(default=None, compare=False)


@dataclass
class ParsedItem:
    name: str
    description: Optional[str] = None
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    base_price: Optional[float] = None
    is_sizeable: Optional[bool] = None
    is_customizable: Optional[bool] = None
    is_active: Optional[bool] = None
    is_available: Optional[bool] = None
    is_signature: Optional[bool] = None
    max_per_order: Optional[int] = None
    sort_order: Optional[int] = None
    default_size_code: Optional[str] = None
    row: Optional[int] = field(default=None, compare=False)


@dataclass
class ParsedItemSize:
    size_code: str
    name: str
    display_order: Optional[int] = None
    is_active: Optional[bool] = None
    row: Optional[int] = field(default=None, compare=False)


@dataclass
class ParsedModifierGroup:
    name: str
    display_name: Optional[str] = None
    display_type: Optional[str] = None
    min_select: Optional[int] = None
    max_select: Optional[int] = None
    applies_per_quantity: Optional[bool] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None
    quantity_levels: Optional[list[dict[str, Any]]] = None
    prices_by_size: Optional[list[dict[str, Any]]] = None
    row: Optional[int] = field(default=None, compare=False)


@dataclass
class ParsedModifier:
    group_key: str
    modifier_key: str
    name: str
    is_default: Optional[bool] = None
    max_quantity: Optional[int] = None
    display_order: Optional[int] = None
    is_active: Optional[bool] = None
    row: Optional[int] = field(default=None, compare=False)


@dataclass
class ParsedItemModifierOverride:
    item_name: str
    group_key: str
    modifier_key: str
    item_category_name: Optional[str] = None
    max_quantity: Optional[int] = None
    is_default: Optional[bool] = None
    prices_by_size: Optional[list[dict[str, Any]]] = None
    quantity_levels: Optional[list[dict[str, Any]]] = None
    row: Optional[int] = field(default=None, compare=False)


@dataclass
class ParsedImportData:
    """Six ordered batches, one per entity kind."""

    categories: list[ParsedCategory] = field(default_factory=list)
    items: list[ParsedItem] = field(default_factory=list)
    item_sizes: list[ParsedItemSize] = field(default_factory=list)
    modifier_groups: list[ParsedModifierGroup] = field(default_factory=list)
    modifiers: list[ParsedModifier] = field(default_factory=list)
    item_modifier_overrides: list[ParsedItemModifierOverride] = field(default_factory=list)

    def add(self, kind: str, entry) -> None:
        getattr(self, kind).append(entry)

    def merge(self, other: "ParsedImportData") -> "ParsedImportData":
        return ParsedImportData(
            **{f.name: [*getattr(self, f.name), *getattr(other, f.name)] for f in fields(self)}
        )

    @property
    def total_rows(self) -> int:
        return sum(len(getattr(self, f.name)) for f in fields(self))

    def counts(self) -> dict[str, int]:
        return {f.name: len(getattr(self, f.name)) for f in fields(self)}
