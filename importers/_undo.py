"""
_undo.py
--------
Persists the compensation log of a committed catalog import and replays it
in reverse to undo that import later.

Undo is its own transaction and is only ever started by a caller (admin
view or management command); a committed import is never reversed
automatically.
"""

import logging

from django.db import transaction
from django.db.models import ProtectedError, RestrictedError
from django.utils import timezone

from catalog.models import CatalogImportLog, Category, Item, ItemSize, Modifier, ModifierGroup
from importers.errors import ImportValidationError

logger = logging.getLogger(__name__)

MODEL_BY_ENTITY = {
    "category": Category,
    "item_size": ItemSize,
    "modifier_group": ModifierGroup,
    "modifier": Modifier,
    "item": Item,
}


def _as_dict(op) -> dict:
    return op.as_dict() if hasattr(op, "as_dict") else dict(op)


def record_import(importer, ops, *, filename, user=None) -> CatalogImportLog:
    """Store the op list and run summary for a finished import."""
    op_dicts = [_as_dict(op) for op in ops]
    dry_run = importer.dry_run
    return CatalogImportLog.objects.create(
        business=importer.business,
        filename=filename or "",
        run_type="dry-run" if dry_run else "live",
        status="dry-run" if dry_run else "committed",
        rollback_ops=op_dicts,
        created_count=sum(1 for op in op_dicts if op["action"] == "create"),
        updated_count=sum(1 for op in op_dicts if op["action"] == "update"),
        summary=importer.summary or importer.summarize(),
        log_output=importer.get_output(),
        uploaded_by=user if getattr(user, "is_authenticated", False) else None,
    )


def _restore(instance, previous_data: dict) -> None:
    attnames = {field.attname for field in instance._meta.concrete_fields}
    for attname, value in previous_data.items():
        if attname in attnames and attname != "id":
            setattr(instance, attname, value)
    instance.save()


def undo_import(import_log: CatalogImportLog, *, user=None) -> dict[str, int]:
    """
    Reverse a committed import.

    Ops are replayed newest first: created rows are deleted, updated rows get
    their snapshot back. Rows that no longer exist are counted and skipped.
    Returns counts for "deleted", "restored" and "missing".
    """
    counts = {"deleted": 0, "restored": 0, "missing": 0}

    with transaction.atomic():
        log = CatalogImportLog.objects.select_for_update().get(pk=import_log.pk)
        if log.status == "undone":
            raise ImportValidationError("This import has already been undone")
        if log.run_type == "dry-run" or log.status == "dry-run":
            raise ImportValidationError("Dry-run imports cannot be undone")

        for op in reversed(log.rollback_ops or []):
            model = MODEL_BY_ENTITY.get(op.get("entity_type"))
            if model is None:
                raise ImportValidationError(f"Unknown entity type in rollback log: {op.get('entity_type')!r}")

            instance = model.objects.filter(pk=op.get("id")).first()
            if instance is None:
                counts["missing"] += 1
                logger.warning("Skipping %s #%s: already gone", op["entity_type"], op.get("id"))
                continue

            if op.get("action") == "create":
                try:
                    instance.delete()
                except (ProtectedError, RestrictedError) as exc:
                    blockers = ", ".join(sorted(str(obj) for obj in exc.args[1]))
                    raise ImportValidationError(
                        f"Cannot undo: {op['entity_type']} '{instance}' is still used by {blockers}. "
                        "Undo or remove those rows first."
                    ) from exc
                counts["deleted"] += 1
            elif op.get("action") == "update":
                _restore(instance, op.get("previous_data") or {})
                counts["restored"] += 1
            else:
                raise ImportValidationError(f"Unknown rollback action: {op.get('action')!r}")

        log.status = "undone"
        log.undone_at = timezone.now()
        log.undone_by = user if getattr(user, "is_authenticated", False) else None
        log.save(update_fields=["status", "undone_at", "undone_by"])

    import_log.refresh_from_db()
    logger.info("Undid catalog import %s: %s", log.pk, counts)
    return counts
