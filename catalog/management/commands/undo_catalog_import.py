from django.core.management.base import BaseCommand, CommandError

from catalog.models import CatalogImportLog
from importers import undo_import
from importers.errors import CatalogImportError


class Command(BaseCommand):
    help = "Undo a committed catalog import by replaying its rollback log in reverse."

    def add_arguments(self, parser):
        parser.add_argument("log_id", type=int, help="ID of the CatalogImportLog to undo.")

    def handle(self, *args, **opts):
        try:
            import_log = CatalogImportLog.objects.get(pk=opts["log_id"])
        except CatalogImportLog.DoesNotExist as exc:
            raise CommandError(f"Import log {opts['log_id']} does not exist.") from exc

        try:
            counts = undo_import(import_log)
        except CatalogImportError as exc:
            raise CommandError(str(exc)) from exc

        self.stdout.write(self.style.SUCCESS(
            f"↩️ Undid import #{import_log.pk}: {counts['deleted']} deleted, "
            f"{counts['restored']} restored, {counts['missing']} already gone."
        ))
