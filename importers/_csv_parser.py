"""
_csv_parser.py
--------------
Turns an uploaded catalog CSV into a ParsedImportData batch.

Two layouts are accepted:
- type-based: `type` + `name` headers, one entity per row, `parent` names the
  owning category (ITEM) or modifier group (MODIFIER)
- entity-specific: no type column; each row is classified by the ordered
  CLASSIFICATION_RULES table, or by a per-file entity hint taken from the
  filename (e.g. `modifier_groups.csv`)

Headers are lower-cased and trimmed, so every synonym below is lower-case.
"""

from __future__ import annotations

import csv
import io
import json
import logging
from pathlib import Path
from typing import Any, Callable, NamedTuple, Optional

from importers._parsed_data import (
    ENTITY_CATEGORIES,
    ENTITY_ITEMS,
    ENTITY_KINDS,
    ENTITY_MODIFIER_GROUPS,
    ENTITY_MODIFIERS,
    ENTITY_OVERRIDES,
    ENTITY_SIZES,
    ParsedCategory,
    ParsedImportData,
    ParsedItem,
    ParsedItemModifierOverride,
    ParsedItemSize,
    ParsedModifier,
    ParsedModifierGroup,
)
from importers.errors import ImportFileError

logger = logging.getLogger(__name__)

MISSING_BUFFER_MESSAGE = (
    'File buffer is missing. Ensure the file is sent as multipart/form-data with field name "file".'
)
ZIP_NOT_SUPPORTED_MESSAGE = "ZIP files are not supported. Please upload CSV files only."

# Key under which read_rows stores each row's CSV line number.
LINE_KEY = "__line__"

ZIP_CONTENT_TYPES = {"application/zip", "application/x-zip-compressed"}
TRUE_VALUES = {"true", "1", "yes"}

# ---------------------------------------------------------------------------
# Column synonyms
# ---------------------------------------------------------------------------
NAME_COLUMNS = ("name",)
SIZE_CODE_COLUMNS = ("size_code", "sizecode", "size code", "code")
DISPLAY_TYPE_COLUMNS = ("display_type", "displaytype", "display type")
DISPLAY_NAME_COLUMNS = ("display_name", "displayname", "display name")
MIN_SELECT_COLUMNS = ("min_select", "minselect", "min select")
MAX_SELECT_COLUMNS = ("max_select", "maxselect", "max select")
GROUP_REF_COLUMNS = (
    "group_key",
    "groupkey",
    "group key",
    "modifier_group_name",
    "modifiergroupname",
    "modifier group name",
)
MODIFIER_KEY_COLUMNS = ("modifier_key", "modifierkey", "modifier key")
ITEM_REF_COLUMNS = ("item_name", "itemname", "item name", "item_key", "itemkey", "item key")
ITEM_CATEGORY_COLUMNS = ("item_category_name", "itemcategoryname", "item category name")
CATEGORY_ID_COLUMNS = ("category_id", "categoryid")
CATEGORY_NAME_COLUMNS = ("category_name", "categoryname", "category name", "category")
DEFAULT_SIZE_COLUMNS = ("default_size_code", "defaultsizecode", "default size code")
QUANTITY_LEVELS_COLUMNS = ("quantity_levels", "quantitylevels", "quantity levels")
PRICES_BY_SIZE_COLUMNS = ("prices_by_size", "pricesbysize", "prices by size")
SORT_ORDER_COLUMNS = ("sort_order", "sortorder", "sort order")
DISPLAY_ORDER_COLUMNS = ("display_order", "displayorder", "display order")
MAX_QUANTITY_COLUMNS = ("max_quantity", "maxquantity", "max quantity")
IS_ACTIVE_COLUMNS = ("is_active", "isactive", "active")


class ParseResult(NamedTuple):
    data: ParsedImportData
    files: list[str]


# ---------------------------------------------------------------------------
# Casting helpers
# ---------------------------------------------------------------------------
def parse_int(value: Any) -> int:
    """Integer cast with a 0 fallback; '2.0' and ' 3 ' are accepted."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(str(value).strip())
    except ValueError:
        try:
            return int(float(str(value).strip()))
        except (ValueError, OverflowError):
            return 0


def parse_float(value: Any) -> float:
    if value is None:
        return 0.0
    try:
        result = float(str(value).strip())
    except ValueError:
        return 0.0
    return result if result == result else 0.0  # NaN


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in TRUE_VALUES


def parse_json(value: Any, column: str):
    """Decode a JSON cell; blank cells decode to None."""
    text = str(value or "").strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ImportFileError(f"Invalid JSON in column '{column}': {exc.msg}") from exc


# ---------------------------------------------------------------------------
# Row accessors
# ---------------------------------------------------------------------------
def _value(row: dict, columns: tuple[str, ...]) -> str:
    """First non-empty cell among the synonym columns, or ''."""
    for column in columns:
        cell = row.get(column)
        if cell:
            return cell
    return ""


def _present(row: dict, columns: tuple[str, ...]) -> Optional[str]:
    """The first synonym column present in the header, even if its cell is blank."""
    for column in columns:
        if column in row:
            return column
    return None


def _optional_text(row: dict, columns: tuple[str, ...]) -> Optional[str]:
    return _value(row, columns) or None


def _optional_int(row: dict, columns: tuple[str, ...]) -> Optional[int]:
    value = _value(row, columns)
    return parse_int(value) if value else None


def _optional_bool(row: dict, columns: tuple[str, ...]) -> Optional[bool]:
    value = _value(row, columns)
    return parse_bool(value) if value else None


def _optional_json(row: dict, columns: tuple[str, ...]):
    column = _present(row, columns)
    if column is None:
        return None
    decoded = parse_json(_value(row, columns), column)
    if decoded is None:
        return None
    if not isinstance(decoded, list):
        raise ImportFileError(f"Column '{column}' must contain a JSON list.")
    return decoded


# ---------------------------------------------------------------------------
# Row predicates
# ---------------------------------------------------------------------------
def has_name(row: dict) -> bool:
    return bool(_value(row, NAME_COLUMNS))


def has_size_identifier(row: dict) -> bool:
    return bool(_value(row, SIZE_CODE_COLUMNS))


def looks_like_modifier_group(row: dict) -> bool:
    if not has_name(row):
        return False
    return _present(row, DISPLAY_TYPE_COLUMNS + MIN_SELECT_COLUMNS + MAX_SELECT_COLUMNS) is not None


def looks_like_modifier_item(row: dict) -> bool:
    if not _value(row, GROUP_REF_COLUMNS) or not has_name(row):
        return False
    if _value(row, MODIFIER_KEY_COLUMNS):
        return True
    return parse_float(_value(row, MAX_QUANTITY_COLUMNS)) > 0


def looks_like_item_modifier_override(row: dict) -> bool:
    return bool(
        _value(row, ITEM_REF_COLUMNS)
        and _value(row, GROUP_REF_COLUMNS)
        and _value(row, MODIFIER_KEY_COLUMNS)
        and not has_name(row)
    )


class ClassificationRule(NamedTuple):
    name: str
    predicate: Callable[[dict], bool]
    kind: str


CLASSIFICATION_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule("item_size", has_size_identifier, ENTITY_SIZES),
    ClassificationRule(
        "modifier_group",
        lambda row: looks_like_modifier_group(row) and not looks_like_modifier_item(row),
        ENTITY_MODIFIER_GROUPS,
    ),
    ClassificationRule("modifier", looks_like_modifier_item, ENTITY_MODIFIERS),
    ClassificationRule("item_modifier_override", looks_like_item_modifier_override, ENTITY_OVERRIDES),
    ClassificationRule(
        "item",
        lambda row: has_name(row) and not _value(row, GROUP_REF_COLUMNS),
        ENTITY_ITEMS,
    ),
    ClassificationRule("category", has_name, ENTITY_CATEGORIES),
)


def classify_row(row: dict) -> Optional[str]:
    """Entity kind of the first matching rule, or None when the row is dropped."""
    for rule in CLASSIFICATION_RULES:
        if rule.predicate(row):
            return rule.kind
    return None


def _forced_modifier_groups(row: dict) -> Optional[str]:
    if looks_like_modifier_group(row) and not looks_like_modifier_item(row):
        return ENTITY_MODIFIER_GROUPS
    return None


def _forced_modifiers(row: dict) -> Optional[str]:
    if looks_like_modifier_item(row):
        return ENTITY_MODIFIERS
    if looks_like_modifier_group(row):
        return ENTITY_MODIFIER_GROUPS
    return None


def _forced_overrides(row: dict) -> Optional[str]:
    if _value(row, ITEM_REF_COLUMNS) and _value(row, GROUP_REF_COLUMNS) and _value(row, MODIFIER_KEY_COLUMNS):
        return ENTITY_OVERRIDES
    return None


FORCED_CLASSIFIERS: dict[str, Callable[[dict], Optional[str]]] = {
    ENTITY_MODIFIER_GROUPS: _forced_modifier_groups,
    ENTITY_MODIFIERS: _forced_modifiers,
    ENTITY_CATEGORIES: lambda row: ENTITY_CATEGORIES if has_name(row) else None,
    ENTITY_ITEMS: lambda row: ENTITY_ITEMS if has_name(row) else None,
    ENTITY_SIZES: lambda row: ENTITY_SIZES if (has_size_identifier(row) or has_name(row)) else None,
    ENTITY_OVERRIDES: _forced_overrides,
}


# ---------------------------------------------------------------------------
# Per-kind parsers (entity-specific layout)
# ---------------------------------------------------------------------------
def parse_category(row: dict) -> ParsedCategory:
    return ParsedCategory(
        name=_value(row, NAME_COLUMNS),
        description=_optional_text(row, ("description",)),
        sort_order=_optional_int(row, SORT_ORDER_COLUMNS),
        is_active=_optional_bool(row, IS_ACTIVE_COLUMNS),
    )


def parse_item(row: dict) -> ParsedItem:
    category_id = _value(row, CATEGORY_ID_COLUMNS)
    base_price = _value(row, ("base_price", "baseprice", "base price", "price"))
    return ParsedItem(
        name=_value(row, NAME_COLUMNS),
        description=_optional_text(row, ("description",)),
        category_id=(parse_int(category_id) or None) if category_id else None,
        category_name=_optional_text(row, CATEGORY_NAME_COLUMNS),
        base_price=parse_float(base_price) if base_price else None,
        is_sizeable=_optional_bool(row, ("is_sizeable", "issizeable", "is sizeable")),
        is_customizable=_optional_bool(row, ("is_customizable", "iscustomizable", "is customizable")),
        is_active=_optional_bool(row, IS_ACTIVE_COLUMNS),
        is_available=_optional_bool(row, ("is_available", "isavailable", "is available")),
        is_signature=_optional_bool(row, ("is_signature", "issignature", "is signature")),
        max_per_order=_optional_int(row, ("max_per_order", "maxperorder", "max per order")),
        sort_order=_optional_int(row, SORT_ORDER_COLUMNS),
        default_size_code=_optional_text(row, DEFAULT_SIZE_COLUMNS),
    )


def parse_item_size(row: dict) -> ParsedItemSize:
    size_code = _value(row, SIZE_CODE_COLUMNS) or _value(row, NAME_COLUMNS)
    return ParsedItemSize(
        size_code=size_code,
        name=_value(row, NAME_COLUMNS) or size_code,
        display_order=_optional_int(row, DISPLAY_ORDER_COLUMNS + SORT_ORDER_COLUMNS),
        is_active=_optional_bool(row, IS_ACTIVE_COLUMNS),
    )


def parse_modifier_group(row: dict) -> ParsedModifierGroup:
    display_type = _value(row, DISPLAY_TYPE_COLUMNS)
    max_select = _optional_int(row, MAX_SELECT_COLUMNS)
    return ParsedModifierGroup(
        name=_value(row, NAME_COLUMNS),
        display_name=_optional_text(row, DISPLAY_NAME_COLUMNS),
        display_type=display_type.upper() if display_type else None,
        min_select=_optional_int(row, MIN_SELECT_COLUMNS),
        # A zero max_select is not a usable group, so it falls back to 1.
        max_select=(max_select or 1) if max_select is not None else None,
        applies_per_quantity=_optional_bool(
            row, ("applies_per_quantity", "appliesperquantity", "applies per quantity")
        ),
        is_active=_optional_bool(row, IS_ACTIVE_COLUMNS),
        sort_order=_optional_int(row, SORT_ORDER_COLUMNS),
        quantity_levels=_optional_json(row, QUANTITY_LEVELS_COLUMNS),
        prices_by_size=_optional_json(row, PRICES_BY_SIZE_COLUMNS),
    )


def parse_modifier(row: dict) -> ParsedModifier:
    name = _value(row, NAME_COLUMNS)
    max_quantity = _value(row, MAX_QUANTITY_COLUMNS)
    return ParsedModifier(
        group_key=_value(row, GROUP_REF_COLUMNS),
        modifier_key=_value(row, MODIFIER_KEY_COLUMNS) or name,
        name=name,
        is_default=_optional_bool(row, ("is_default", "isdefault", "is default")),
        max_quantity=parse_int(max_quantity) if max_quantity else None,
        display_order=_optional_int(row, DISPLAY_ORDER_COLUMNS),
        is_active=_optional_bool(row, IS_ACTIVE_COLUMNS),
    )


def parse_item_modifier_override(row: dict) -> ParsedItemModifierOverride:
    max_quantity = _value(row, MAX_QUANTITY_COLUMNS)
    return ParsedItemModifierOverride(
        item_name=_value(row, ITEM_REF_COLUMNS),
        item_category_name=_optional_text(row, ITEM_CATEGORY_COLUMNS),
        group_key=_value(row, GROUP_REF_COLUMNS),
        modifier_key=_value(row, MODIFIER_KEY_COLUMNS),
        max_quantity=parse_int(max_quantity) if max_quantity else None,
        is_default=_optional_bool(row, ("is_default", "isdefault", "is default")),
        prices_by_size=_optional_json(row, PRICES_BY_SIZE_COLUMNS),
        quantity_levels=_optional_json(row, QUANTITY_LEVELS_COLUMNS),
    )


ROW_PARSERS: dict[str, Callable[[dict], Any]] = {
    ENTITY_CATEGORIES: parse_category,
    ENTITY_ITEMS: parse_item,
    ENTITY_SIZES: parse_item_size,
    ENTITY_MODIFIER_GROUPS: parse_modifier_group,
    ENTITY_MODIFIERS: parse_modifier,
    ENTITY_OVERRIDES: parse_item_modifier_override,
}


# ---------------------------------------------------------------------------
# Generic type-based layout
# ---------------------------------------------------------------------------
def is_type_based(headers) -> bool:
    return "type" in headers and "name" in headers


def _generic_active(row: dict) -> Optional[bool]:
    return _optional_bool(row, ("active", "is_active"))


def parse_type_based_row(row: dict):
    """Map one `type`+`name` row to (kind, dto), or None when the row is skipped."""
    row_type = (row.get("type") or "").strip().upper()
    name = row.get("name") or ""
    parent = row.get("parent") or ""
    if not name:
        return None

    if row_type == "CATEGORY":
        return ENTITY_CATEGORIES, ParsedCategory(
            name=name,
            description=_optional_text(row, ("description",)),
            sort_order=_optional_int(row, SORT_ORDER_COLUMNS),
            is_active=_generic_active(row),
        )
    if row_type == "ITEM":
        return ENTITY_ITEMS, ParsedItem(
            name=name,
            description=_optional_text(row, ("description",)),
            category_name=parent or _optional_text(row, CATEGORY_NAME_COLUMNS),
            is_active=_generic_active(row),
            sort_order=_optional_int(row, SORT_ORDER_COLUMNS),
            default_size_code=_optional_text(row, DEFAULT_SIZE_COLUMNS),
        )
    if row_type == "SIZE":
        return ENTITY_SIZES, ParsedItemSize(
            size_code=name,
            name=name,
            display_order=_optional_int(row, SORT_ORDER_COLUMNS + DISPLAY_ORDER_COLUMNS),
            is_active=_generic_active(row),
        )
    if row_type == "MOD_GROUP":
        return ENTITY_MODIFIER_GROUPS, ParsedModifierGroup(
            name=name,
            display_name=_optional_text(row, DISPLAY_NAME_COLUMNS),
            display_type=(_value(row, DISPLAY_TYPE_COLUMNS) or "CHECKBOX").upper(),
            min_select=parse_int(_value(row, MIN_SELECT_COLUMNS)),
            max_select=parse_int(_value(row, MAX_SELECT_COLUMNS)) or 1,
            is_active=_generic_active(row),
            sort_order=_optional_int(row, SORT_ORDER_COLUMNS),
        )
    if row_type == "MODIFIER":
        if not parent:
            return None
        max_quantity = _value(row, MAX_QUANTITY_COLUMNS)
        return ENTITY_MODIFIERS, ParsedModifier(
            group_key=parent,
            modifier_key=name,
            name=name,
            max_quantity=parse_int(max_quantity) if max_quantity else None,
            display_order=_optional_int(row, SORT_ORDER_COLUMNS + DISPLAY_ORDER_COLUMNS),
            is_active=_generic_active(row),
        )
    return None


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------
def entity_type_from_filename(filename: Optional[str]) -> Optional[str]:
    lowered = Path(filename or "").name.lower()
    if "modifier" in lowered and "group" in lowered:
        return ENTITY_MODIFIER_GROUPS
    if "override" in lowered:
        return ENTITY_OVERRIDES
    if "modifier" in lowered:
        return ENTITY_MODIFIERS
    if "category" in lowered or "categories" in lowered:
        return ENTITY_CATEGORIES
    if "size" in lowered:
        return ENTITY_SIZES
    if "item" in lowered:
        return ENTITY_ITEMS
    return None


def read_rows(text: str) -> tuple[list[str], list[dict]]:
    """
    Split CSV text into normalized headers and trimmed, non-blank row dicts.

    Each row dict also carries its CSV line number under LINE_KEY.
    """
    try:
        reader = csv.reader(io.StringIO(text, newline=""))
        raw_headers = next(reader, None)
        if raw_headers is None:
            return [], []
        headers = [header.strip().lower() for header in raw_headers]
        rows = []
        for cells in reader:
            if not any(cell.strip() for cell in cells):
                continue
            row = {
                header: (cells[i].strip() if i < len(cells) else "")
                for i, header in enumerate(headers)
                if header
            }
            row[LINE_KEY] = reader.line_num
            rows.append(row)
    except csv.Error as exc:
        raise ImportFileError(f"Unable to parse CSV: {exc}") from exc
    return headers, rows


def parse_rows(headers, rows: list[dict], entity_type: Optional[str] = None) -> ParsedImportData:
    data = ParsedImportData()
    dropped = 0

    if is_type_based(headers):
        for row in rows:
            parsed = parse_type_based_row(row)
            if parsed is None:
                dropped += 1
                continue
            kind, entry = parsed
            entry.row = row.get(LINE_KEY)
            data.add(kind, entry)
    else:
        classify = FORCED_CLASSIFIERS[entity_type] if entity_type else classify_row
        for row in rows:
            kind = classify(row)
            if kind is None:
                dropped += 1
                continue
            entry = ROW_PARSERS[kind](row)
            entry.row = row.get(LINE_KEY)
            data.add(kind, entry)

    if dropped:
        logger.info("Dropped %s unclassifiable row(s)", dropped)
    return data


def parse_upload(
    content: Optional[bytes],
    filename: str = "import.csv",
    *,
    content_type: Optional[str] = None,
    entity_type: Optional[str] = None,
) -> ParseResult:
    """
    Validate and parse one uploaded CSV.

    Structural problems (missing buffer, ZIP archive, undecodable text, malformed
    CSV or JSON cells) raise ImportFileError before anything touches the database.
    """
    if content is None:
        raise ImportFileError(MISSING_BUFFER_MESSAGE)
    if (filename or "").lower().endswith(".zip") or (content_type or "").lower() in ZIP_CONTENT_TYPES:
        raise ImportFileError(ZIP_NOT_SUPPORTED_MESSAGE)
    if entity_type is not None and entity_type not in ENTITY_KINDS:
        raise ImportFileError(f"Unknown entity type '{entity_type}'.")

    if isinstance(content, str):
        text = content
    else:
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ImportFileError(f"File is not valid UTF-8: {exc}") from exc

    headers, rows = read_rows(text)
    hint = entity_type or entity_type_from_filename(filename)
    data = parse_rows(headers, rows, hint)
    logger.info("Parsed %s: %s", filename, data.counts())
    return ParseResult(data=data, files=[filename])
