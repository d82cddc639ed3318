# importers/_base_Importer.py

import io
import logging

from django.utils import timezone

logger = logging.getLogger("importers")


class BaseImporter:
    """
    Abstract importer class providing:
    - dry_run support
    - structured logging (to console, buffer and the "importers" logger)
    - summary counters for test assertions
    """

    def __init__(self, dry_run=False, log_to_console=True):
        self.dry_run = dry_run
        self.log_to_console = log_to_console
        self.buffer = io.StringIO()
        self.counters = {
            "added": 0,
            "updated": 0,
            "skipped": 0,
            "errors": 0,
        }
        self.start_time = timezone.now()
        self.summary = None

    # ---------------------------------------------------------------------
    # Logging
    # ---------------------------------------------------------------------
    def log(self, message, emoji="💬", level=logging.INFO):
        timestamp = timezone.now().strftime("%H:%M:%S")
        line = f"[{timestamp}] {emoji} {message}"
        self.buffer.write(line + "\n")
        logger.log(level, message)
        if self.log_to_console:
            print(line)

    def get_output(self) -> str:
        return self.buffer.getvalue()

    # ---------------------------------------------------------------------
    # Summary
    # ---------------------------------------------------------------------
    def summarize(self):
        elapsed = (timezone.now() - self.start_time).total_seconds()
        summary = (
            f"\n📊 Import Summary ({'Dry Run' if self.dry_run else 'Committed'})\n"
            f"Added: {self.counters['added']}\n"
            f"Updated: {self.counters['updated']}\n"
            f"Skipped: {self.counters['skipped']}\n"
            f"Errors: {self.counters['errors']}\n"
            f"Elapsed: {elapsed:.2f}s\n"
        )
        self.log(summary, "✅")
        self.summary = summary
        return summary
