"""
_natural_keys.py
----------------
Natural-key maps for one import run.

Categories and sizes are prefetched once per run. Modifier groups and
modifiers are looked up per row by CatalogImporter; anything created during
the run is registered here too so later rows see it without another query.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from catalog.models import Business, Category, ItemSize


def normalize_key(value) -> str:
    return str(value or "").strip().lower()


def modifier_key(group_key: str, name: str) -> str:
    return f"{normalize_key(group_key)}:{normalize_key(name)}"


def item_key(name: str, category_name: Optional[str]) -> str:
    return f"{normalize_key(name)}|{normalize_key(category_name)}"


@dataclass
class ImportContext:
    business: Business
    category_ids: dict[str, int] = field(default_factory=dict)
    size_ids: dict[str, int] = field(default_factory=dict)
    group_ids: dict[str, int] = field(default_factory=dict)
    modifier_ids: dict[str, int] = field(default_factory=dict)
    item_ids: dict[str, int] = field(default_factory=dict)
    default_size_codes: dict[int, str] = field(default_factory=dict)
    rollback_ops: list[Any] = field(default_factory=list)

    def category_id(self, name) -> Optional[int]:
        return self.category_ids.get(normalize_key(name))

    def size_id(self, code) -> Optional[int]:
        return self.size_ids.get(normalize_key(code))


def build_index(business: Business) -> ImportContext:
    """One query each for the business's categories and sizes."""
    context = ImportContext(business=business)
    for pk, name in Category.objects.filter(business=business).order_by("id").values_list("id", "name"):
        # first row wins when legacy data holds case-variant duplicates
        context.category_ids.setdefault(normalize_key(name), pk)
    for pk, code in ItemSize.objects.filter(business=business).values_list("id", "code"):
        context.size_ids.setdefault(normalize_key(code), pk)
    return context
