"""
_validation.py
--------------
Row-level checks run on a parsed batch before anything is written.

Errors block the import; warnings are reported and the import goes ahead.
Checks that need the database (does this group or category exist?) are left
to CatalogImporter, which resolves references against persisted rows too.

Errors:
- duplicate category, size code, modifier group, modifier (per group) or
  item (per category) within the batch
- modifier group with min_select greater than max_select
- modifier group display_type other than RADIO or CHECKBOX
- modifier with max_quantity below 1

Warnings:
- modifier group whose max_select exceeds the number of its modifiers in
  the same batch
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from catalog.models import ModifierGroup
from importers._natural_keys import item_key, modifier_key, normalize_key
from importers._parsed_data import ParsedImportData


@dataclass
class ValidationIssue:
    entity: str
    field: str
    message: str
    row: Optional[int] = None
    value: Any = None
    file: str = "import.csv"

    def __str__(self) -> str:
        where = f"{self.file} row {self.row}" if self.row else self.file
        return f"{where}: {self.entity}.{self.field}: {self.message}"

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ValidationReport:
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def as_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "errors": [issue.as_dict() for issue in self.errors],
            "warnings": [issue.as_dict() for issue in self.warnings],
        }


class _Checker:
    def __init__(self, filename: str):
        self.filename = filename
        self.report = ValidationReport()

    def error(self, entry, entity, field_name, message, value=None):
        self.report.errors.append(
            ValidationIssue(entity, field_name, message, getattr(entry, "row", None), value, self.filename)
        )

    def warning(self, entry, entity, field_name, message, value=None):
        self.report.warnings.append(
            ValidationIssue(entity, field_name, message, getattr(entry, "row", None), value, self.filename)
        )

    def duplicates(self, entries, entity, field_name, key, label):
        """Flag every entry whose natural key was already seen earlier in the batch."""
        seen = set()
        for entry in entries:
            entry_key = key(entry)
            if entry_key in seen:
                value = getattr(entry, field_name)
                self.error(entry, entity, field_name, f"Duplicate {label}: {value}", value)
            else:
                seen.add(entry_key)


def _item_category(entry) -> str:
    if entry.category_name:
        return entry.category_name
    return f"#{entry.category_id}" if entry.category_id else ""


def validate(data: ParsedImportData, filename: str = "import.csv") -> ValidationReport:
    """Check a parsed batch and return its errors and warnings."""
    check = _Checker(filename or "import.csv")

    check.duplicates(data.categories, "Category", "name", lambda c: normalize_key(c.name), "category name")
    check.duplicates(
        data.item_sizes, "ItemSize", "size_code", lambda s: normalize_key(s.size_code), "size code"
    )
    check.duplicates(
        data.modifier_groups, "ModifierGroup", "name", lambda g: normalize_key(g.name), "modifier group name"
    )
    check.duplicates(
        data.modifiers,
        "Modifier",
        "modifier_key",
        lambda m: modifier_key(m.group_key, m.modifier_key),
        "modifier_key in its group",
    )
    check.duplicates(
        data.items, "Item", "name", lambda i: item_key(i.name, _item_category(i)), "item name in its category"
    )

    modifiers_per_group: dict[str, int] = {}
    for modifier in data.modifiers:
        group = normalize_key(modifier.group_key)
        modifiers_per_group[group] = modifiers_per_group.get(group, 0) + 1
        if modifier.max_quantity is not None and modifier.max_quantity < 1:
            check.error(
                modifier,
                "Modifier",
                "max_quantity",
                "max_quantity must be greater than or equal to 1",
                modifier.max_quantity,
            )

    for group in data.modifier_groups:
        if group.display_type is not None and group.display_type not in ModifierGroup.DisplayType.values:
            check.error(
                group,
                "ModifierGroup",
                "display_type",
                "display_type must be 'RADIO' or 'CHECKBOX'",
                group.display_type,
            )
        has_bounds = group.min_select is not None and group.max_select is not None
        if has_bounds and group.min_select > group.max_select:
            check.error(
                group,
                "ModifierGroup",
                "min_select",
                f"min_select ({group.min_select}) must be less than or equal to "
                f"max_select ({group.max_select})",
                group.min_select,
            )
        modifier_count = modifiers_per_group.get(normalize_key(group.name), 0)
        if modifier_count and group.max_select is not None and group.max_select > modifier_count:
            check.warning(
                group,
                "ModifierGroup",
                "max_select",
                f"max_select ({group.max_select}) is greater than number of modifiers ({modifier_count})",
                group.max_select,
            )

    return check.report
