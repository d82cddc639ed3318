"""Wrap the CatalogImporter for CLI execution and record the compensation log."""

from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from catalog.models import Business
from importers import CatalogImporter, record_import
from importers._parsed_data import ENTITY_KINDS
from importers.errors import CatalogImportError


class Command(BaseCommand):
    help = "Import a catalog CSV (categories, sizes, modifier groups, modifiers, items). Supports --dry-run."

    def add_arguments(self, parser):
        parser.add_argument("--file", required=True, help="Path to the catalog CSV file.")
        parser.add_argument("--business", required=True, type=int, help="ID of the business to import into.")
        parser.add_argument(
            "--entity-type",
            choices=ENTITY_KINDS,
            help="Treat every row as this entity kind instead of guessing from the filename.",
        )
        parser.add_argument("--dry-run", action="store_true", help="Run the full import, then roll it back.")

    def handle(self, *args, **opts):
        file_path = Path(opts["file"])
        if not file_path.exists():
            raise CommandError(f"File not found: {file_path}")

        try:
            business = Business.objects.get(pk=opts["business"])
        except Business.DoesNotExist as exc:
            raise CommandError(f"Business {opts['business']} does not exist.") from exc

        importer = CatalogImporter(business, dry_run=opts["dry_run"], log_to_console=False)
        self.stdout.write(self.style.NOTICE(
            f"📥 Importing {file_path} into {business} {'(dry-run)' if opts['dry_run'] else ''}"
        ))
        try:
            ops = importer.run_from_file(file_path, entity_type=opts.get("entity_type"))
        except CatalogImportError as exc:
            for issue in getattr(exc, "issues", []):
                self.stderr.write(f"❌ {issue}")
            raise CommandError(f"Import failed: {exc}") from exc

        import_log = record_import(importer, ops, filename=file_path.name)
        self.stdout.write(importer.get_output())
        self.stdout.write(self.style.SUCCESS(
            f"✅ Done. {len(ops)} change(s) recorded in import log #{import_log.pk}."
        ))
