"""
catalog_importer.py
-------------------
Applies a parsed catalog CSV to one business inside a single transaction.

Rows are matched to persisted entities by natural key (category name, size
code, group name, modifier name within its group, item name within its
category) and processed in dependency order:

1. categories        4. modifiers
2. item sizes        5. items
3. modifier groups   6. item default sizes
                     7. item <-> group <-> modifier assignment (full replace)

Updates only touch a fixed set of basic fields; pricing, sizing and
availability configured by hand is never overwritten. Every mutation appends
a RollbackOp; the list is returned only when the transaction commits and is
what importers._undo replays to reverse a committed import.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import asdict, dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from django.db import transaction

from catalog.models import Business, Category, Item, ItemSize, Modifier, ModifierGroup
from importers._base_Importer import BaseImporter
from importers._csv_parser import parse_upload
from importers._natural_keys import ImportContext, build_index, item_key, modifier_key, normalize_key
from importers._parsed_data import ParsedImportData
from importers._validation import ValidationReport, validate
from importers.errors import ImportValidationError

GROUP_NOT_FOUND_MESSAGE = "Modifier group not found. Import groups first."
CATEGORY_NOT_FOUND_MESSAGE = "Category not found for this item. Import categories first."

SNAPSHOT_EXCLUDE = {"id", "created_at", "updated_at"}


@dataclass
class RollbackOp:
    entity_type: str
    action: str
    id: int
    previous_data: Optional[dict[str, Any]] = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def snapshot(instance) -> dict[str, Any]:
    """Field values keyed by attname (FKs as `<name>_id`), suitable for restoring."""
    return {
        field.attname: field.value_from_object(instance)
        for field in instance._meta.concrete_fields
        if field.name not in SNAPSHOT_EXCLUDE
    }


def _apply(instance, values: dict[str, Any]) -> list[str]:
    """Set every non-None value on the instance and return the changed field names."""
    changed = []
    for field, value in values.items():
        if value is None:
            continue
        setattr(instance, field, value)
        changed.append(field)
    return changed


class CatalogImporter(BaseImporter):
    """Upsert engine for catalog CSV imports, scoped to one business."""

    def __init__(self, business: Business, *, dry_run=False, log_to_console=True, filename=None):
        super().__init__(dry_run=dry_run, log_to_console=log_to_console)
        self.business = business
        self.rollback_ops: list[RollbackOp] = []
        self.filename: Optional[str] = filename
        self.validation: Optional[ValidationReport] = None

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    def run_from_file(self, source, filename: Optional[str] = None, *, entity_type=None) -> list[RollbackOp]:
        """Parse a CSV path or raw bytes and save it."""
        if isinstance(source, (str, Path)):
            path = Path(source)
            if not path.exists():
                raise FileNotFoundError(f"File not found: {path}")
            content = path.read_bytes()
            filename = filename or path.name
        else:
            content = source
        self.filename = filename or "import.csv"

        self.log(f"Importing {self.filename} ({'dry-run' if self.dry_run else 'live'})", "📥")
        parsed = parse_upload(content, self.filename, entity_type=entity_type)
        ops = self.save_all(parsed.data)
        self.summarize()
        return ops

    def save_all(self, data: ParsedImportData) -> list[RollbackOp]:
        """
        Apply every batch in one transaction and return the compensation log.

        The batch is validated first: validation errors raise
        ImportValidationError before the transaction starts, warnings are only
        logged. Any later error aborts the transaction and is re-raised
        unchanged; the partially built op list is discarded with it. In
        dry-run mode the transaction is rolled back after a full pass and the
        ops are returned as a preview.
        """
        self.rollback_ops = []
        self.log(
            f"Starting {'dry-run' if self.dry_run else 'live'} catalog import for {self.business} "
            f"({data.total_rows} rows)",
            "🚀",
        )
        self._validate(data)
        try:
            with transaction.atomic():
                # Serializes imports for the same business until commit/abort.
                business = Business.objects.select_for_update().get(pk=self.business.pk)
                context = build_index(business)
                self._save_categories(context, data)
                self._save_item_sizes(context, data)
                self._save_modifier_groups(context, data)
                self._save_modifiers(context, data)
                self._save_items(context, data)
                self._assign_default_sizes(context)
                self._assign_modifier_groups(context, data)
                if self.dry_run:
                    transaction.set_rollback(True)
        except Exception as exc:
            self.counters["errors"] += 1
            self.log(f"Import aborted, nothing was saved: {exc}", "❌", level=logging.ERROR)
            raise

        self.rollback_ops = list(context.rollback_ops)
        if self.dry_run:
            self.log(f"[Dry Run] Rolled back {len(self.rollback_ops)} change(s)", "🧪")
        else:
            self.log(f"Committed {len(self.rollback_ops)} change(s)", "💾")
        return self.rollback_ops

    def _validate(self, data: ParsedImportData) -> None:
        report = validate(data, self.filename or "import.csv")
        self.validation = report
        for issue in report.warnings:
            self.log(str(issue), "⚠️", level=logging.WARNING)
        if report.is_valid:
            return

        for issue in report.errors:
            self.log(str(issue), "❌", level=logging.ERROR)
        self.counters["errors"] += len(report.errors)
        self.log(
            f"Import aborted, nothing was saved: {len(report.errors)} validation error(s)",
            "❌",
            level=logging.ERROR,
        )
        raise ImportValidationError(
            f"{len(report.errors)} validation error(s), first: {report.errors[0]}",
            issues=report.errors,
        )

    # ------------------------------------------------------------------
    # Compensation log
    # ------------------------------------------------------------------
    def _record_create(self, context: ImportContext, entity_type: str, instance) -> None:
        context.rollback_ops.append(RollbackOp(entity_type, "create", instance.pk))
        self.counters["added"] += 1
        if self.dry_run:
            self.log(f"[Dry Run] Would create {entity_type}: {instance}", "🧪", level=logging.DEBUG)
        else:
            self.log(f"Created {entity_type}: {instance}", "🆕", level=logging.DEBUG)

    def _record_update(self, context: ImportContext, entity_type: str, instance) -> None:
        context.rollback_ops.append(RollbackOp(entity_type, "update", instance.pk, snapshot(instance)))
        self.counters["updated"] += 1
        if self.dry_run:
            self.log(f"[Dry Run] Would update {entity_type}: {instance}", "🧪", level=logging.DEBUG)
        else:
            self.log(f"Updated {entity_type}: {instance}", "🔄", level=logging.DEBUG)

    def _capture_item_once(self, context: ImportContext, item: Item) -> None:
        """Late item mutations (steps 6 and 7) keep only the earliest snapshot."""
        seen = any(op.entity_type == "item" and op.id == item.pk for op in context.rollback_ops)
        if not seen:
            self._record_update(context, "item", item)

    # ------------------------------------------------------------------
    # 1. Categories
    # ------------------------------------------------------------------
    def _save_categories(self, context: ImportContext, data: ParsedImportData) -> None:
        for row in data.categories:
            key = normalize_key(row.name)
            category_id = context.category_ids.get(key)
            if category_id:
                category = Category.objects.get(pk=category_id)
                self._record_update(context, "category", category)
                changed = _apply(
                    category,
                    {"description": row.description, "sort_order": row.sort_order, "is_active": row.is_active},
                )
                if changed:
                    category.save(update_fields=changed + ["updated_at"])
                continue

            category = Category.objects.create(
                business=context.business,
                name=row.name,
                description=row.description,
                sort_order=row.sort_order if row.sort_order is not None else 0,
                is_active=row.is_active if row.is_active is not None else True,
            )
            context.category_ids[key] = category.pk
            self._record_create(context, "category", category)

    # ------------------------------------------------------------------
    # 2. Item sizes
    # ------------------------------------------------------------------
    def _save_item_sizes(self, context: ImportContext, data: ParsedImportData) -> None:
        for row in data.item_sizes:
            key = normalize_key(row.size_code)
            size_id = context.size_ids.get(key)
            if size_id:
                size = ItemSize.objects.get(pk=size_id)
                self._record_update(context, "item_size", size)
                changed = _apply(
                    size,
                    {"name": row.name or None, "display_order": row.display_order, "is_active": row.is_active},
                )
                if changed:
                    size.save(update_fields=changed + ["updated_at"])
                continue

            size = ItemSize.objects.create(
                business=context.business,
                code=row.size_code,
                name=row.name or row.size_code,
                display_order=row.display_order or 0,
                is_active=row.is_active if row.is_active is not None else True,
            )
            context.size_ids[key] = size.pk
            self._record_create(context, "item_size", size)

    # ------------------------------------------------------------------
    # 3. Modifier groups
    # ------------------------------------------------------------------
    def _resolve_prices_by_size(self, context: ImportContext, entries) -> Optional[list[dict[str, Any]]]:
        """Translate sizeCode entries to size ids; unknown codes are dropped."""
        if entries is None:
            return None
        resolved = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            code = entry.get("sizeCode") or entry.get("size_code")
            size_id = context.size_id(code)
            if not size_id:
                self.counters["skipped"] += 1
                self.log(f"Dropped price for unknown size code '{code}'", "⚠️", level=logging.WARNING)
                continue
            price_delta = entry.get("priceDelta", entry.get("price_delta", 0))
            resolved.append({"size_id": size_id, "sizeCode": code, "priceDelta": price_delta})
        return resolved

    def _save_modifier_groups(self, context: ImportContext, data: ParsedImportData) -> None:
        for row in data.modifier_groups:
            values = {
                "display_name": row.display_name,
                "display_type": row.display_type,
                "min_select": row.min_select,
                "max_select": row.max_select,
                "applies_per_quantity": row.applies_per_quantity,
                "is_active": row.is_active,
                "sort_order": row.sort_order,
                "quantity_levels": row.quantity_levels,
                "prices_by_size": self._resolve_prices_by_size(context, row.prices_by_size),
            }
            group = ModifierGroup.objects.filter(business=context.business, name=row.name).first()
            if group:
                self._record_update(context, "modifier_group", group)
                changed = _apply(group, values)
                if changed:
                    group.save(update_fields=changed + ["updated_at"])
            else:
                group = ModifierGroup(business=context.business, name=row.name)
                _apply(group, values)
                group.save()
                self._record_create(context, "modifier_group", group)
            context.group_ids[normalize_key(row.name)] = group.pk

    # ------------------------------------------------------------------
    # 4. Modifiers
    # ------------------------------------------------------------------
    def _resolve_group_id(self, context: ImportContext, group_key: str) -> Optional[int]:
        key = normalize_key(group_key)
        if key in context.group_ids:
            return context.group_ids[key]
        group_id = (
            ModifierGroup.objects.filter(business=context.business, name__iexact=str(group_key).strip())
            .order_by("id")
            .values_list("id", flat=True)
            .first()
        )
        if group_id:
            context.group_ids[key] = group_id
        return group_id

    def _save_modifiers(self, context: ImportContext, data: ParsedImportData) -> None:
        for row in data.modifiers:
            group_id = self._resolve_group_id(context, row.group_key)
            if not group_id:
                raise ImportValidationError(GROUP_NOT_FOUND_MESSAGE)

            modifier = Modifier.objects.filter(modifier_group_id=group_id, name=row.name).first()
            if modifier:
                self._record_update(context, "modifier", modifier)
                changed = _apply(modifier, {"display_order": row.display_order, "is_active": row.is_active})
                if changed:
                    modifier.save(update_fields=changed + ["updated_at"])
            else:
                modifier = Modifier.objects.create(
                    modifier_group_id=group_id,
                    name=row.name,
                    display_order=row.display_order or 0,
                    is_active=row.is_active if row.is_active is not None else True,
                    is_default=bool(row.is_default),
                    max_quantity=row.max_quantity,
                )
                self._record_create(context, "modifier", modifier)

            context.modifier_ids[modifier_key(row.group_key, row.modifier_key)] = modifier.pk
            context.modifier_ids.setdefault(modifier_key(row.group_key, row.name), modifier.pk)

    # ------------------------------------------------------------------
    # 5. Items
    # ------------------------------------------------------------------
    def _resolve_category(self, context: ImportContext, row) -> Category:
        category = None
        if row.category_id:
            category = Category.objects.filter(pk=row.category_id, business=context.business).first()
        elif row.category_name:
            category_id = context.category_id(row.category_name)
            if category_id:
                category = Category.objects.get(pk=category_id)
        if category is None:
            raise ImportValidationError(CATEGORY_NOT_FOUND_MESSAGE)
        return category

    def _save_items(self, context: ImportContext, data: ParsedImportData) -> None:
        for row in data.items:
            category = self._resolve_category(context, row)
            item = Item.objects.filter(business=context.business, name=row.name, category=category).first()
            if item:
                self._record_update(context, "item", item)
                changed = _apply(
                    item,
                    {"description": row.description, "is_active": row.is_active, "sort_order": row.sort_order},
                )
                if changed:
                    item.save(update_fields=changed + ["updated_at"])
            else:
                item = Item.objects.create(
                    business=context.business,
                    category=category,
                    name=row.name,
                    description=row.description,
                    base_price=Decimal("0.00"),
                    is_sizeable=False,
                    is_customizable=bool(row.is_customizable),
                    is_active=row.is_active if row.is_active is not None else True,
                    is_available=row.is_available if row.is_available is not None else True,
                    is_signature=bool(row.is_signature),
                    max_per_order=row.max_per_order,
                    sort_order=row.sort_order or 0,
                )
                self._record_create(context, "item", item)

            context.item_ids[item_key(row.name, category.name)] = item.pk
            if row.default_size_code:
                context.default_size_codes[item.pk] = row.default_size_code

    # ------------------------------------------------------------------
    # 6. Default sizes
    # ------------------------------------------------------------------
    def _assign_default_sizes(self, context: ImportContext) -> None:
        for item_id, size_code in context.default_size_codes.items():
            size_id = context.size_id(size_code)
            if not size_id:
                self.counters["skipped"] += 1
                self.log(f"Default size '{size_code}' not found, item left unchanged", "⚠️", level=logging.WARNING)
                continue
            item = Item.objects.get(pk=item_id)
            if item.default_size_id == size_id:
                continue
            self._capture_item_once(context, item)
            item.default_size_id = size_id
            item.save(update_fields=["default_size", "updated_at"])

    # ------------------------------------------------------------------
    # 7. Item <-> group <-> modifier assignment
    # ------------------------------------------------------------------
    def _resolve_override_item(self, context: ImportContext, override) -> Optional[int]:
        name_key = normalize_key(override.item_name)
        if override.item_category_name:
            item_id = context.item_ids.get(item_key(override.item_name, override.item_category_name))
            if item_id:
                return item_id
            queryset = Item.objects.filter(
                business=context.business,
                name__iexact=override.item_name,
                category__name__iexact=override.item_category_name,
            )
        else:
            for key, item_id in context.item_ids.items():
                if key.split("|", 1)[0] == name_key:
                    return item_id
            queryset = Item.objects.filter(business=context.business, name__iexact=override.item_name)
        item_id = queryset.order_by("id").values_list("id", flat=True).first()
        if item_id:
            context.item_ids[item_key(override.item_name, override.item_category_name)] = item_id
        return item_id

    def _resolve_modifier_id(self, context: ImportContext, group_id: int, override) -> Optional[int]:
        key = modifier_key(override.group_key, override.modifier_key)
        if key in context.modifier_ids:
            return context.modifier_ids[key]
        modifier_id = (
            Modifier.objects.filter(modifier_group_id=group_id, name__iexact=override.modifier_key)
            .order_by("id")
            .values_list("id", flat=True)
            .first()
        )
        if modifier_id:
            context.modifier_ids[key] = modifier_id
        return modifier_id

    def _build_assignment(self, context: ImportContext, overrides) -> list[dict[str, Any]]:
        by_group: OrderedDict[str, list] = OrderedDict()
        for override in overrides:
            by_group.setdefault(normalize_key(override.group_key), []).append(override)

        assignment = []
        for display_order, group_overrides in enumerate(by_group.values()):
            group_id = self._resolve_group_id(context, group_overrides[0].group_key)
            if not group_id:
                self.counters["skipped"] += 1
                self.log(
                    f"Modifier group '{group_overrides[0].group_key}' not found, dropped",
                    "⚠️",
                    level=logging.WARNING,
                )
                continue

            modifier_overrides = []
            for override in group_overrides:
                modifier_id = self._resolve_modifier_id(context, group_id, override)
                if not modifier_id:
                    self.counters["skipped"] += 1
                    self.log(
                        f"Modifier '{override.modifier_key}' not found in '{override.group_key}', dropped",
                        "⚠️",
                        level=logging.WARNING,
                    )
                    continue
                entry: dict[str, Any] = {"modifier_id": modifier_id}
                prices = self._resolve_prices_by_size(context, override.prices_by_size)
                if prices is not None:
                    entry["prices_by_size"] = prices
                if override.quantity_levels is not None:
                    entry["quantity_levels"] = override.quantity_levels
                modifier_overrides.append(entry)

            group_entry: dict[str, Any] = {"modifier_group_id": group_id, "display_order": display_order}
            if modifier_overrides:
                group_entry["modifier_overrides"] = modifier_overrides
            assignment.append(group_entry)
        return assignment

    def _assign_modifier_groups(self, context: ImportContext, data: ParsedImportData) -> None:
        overrides_by_item: OrderedDict[int, list] = OrderedDict()
        for override in data.item_modifier_overrides:
            item_id = self._resolve_override_item(context, override)
            if not item_id:
                self.counters["skipped"] += 1
                self.log(f"Item '{override.item_name}' not found, override dropped", "⚠️", level=logging.WARNING)
                continue
            overrides_by_item.setdefault(item_id, []).append(override)

        for item_id, overrides in overrides_by_item.items():
            assignment = self._build_assignment(context, overrides)
            if not assignment:
                continue
            item = Item.objects.get(pk=item_id)
            self._capture_item_once(context, item)
            item.modifier_groups = assignment
            item.save(update_fields=["modifier_groups", "updated_at"])
