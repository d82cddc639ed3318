import logging
import re

import pytest

from importers._base_Importer import BaseImporter


def test_log_lines_are_timestamped_and_buffered(capsys):
    importer = BaseImporter(log_to_console=False)

    importer.log("Created category: Mains", "🆕")

    line = importer.get_output().strip()
    assert re.fullmatch(r"\[\d{2}:\d{2}:\d{2}\] 🆕 Created category: Mains", line)
    assert capsys.readouterr().out == ""


def test_log_to_console_echoes_lines(capsys):
    importer = BaseImporter(log_to_console=True)

    importer.log("hello")

    assert "💬 hello" in capsys.readouterr().out


def test_log_lines_reach_the_importers_logger(caplog, monkeypatch):
    monkeypatch.setattr(logging.getLogger("importers"), "propagate", True)
    importer = BaseImporter(log_to_console=False)

    with caplog.at_level(logging.WARNING, logger="importers"):
        importer.log("Default size 'XL' not found", "⚠️", level=logging.WARNING)

    assert "Default size 'XL' not found" in caplog.text


@pytest.mark.parametrize("dry_run, label", [(True, "Dry Run"), (False, "Committed")])
def test_summarize_reports_counters(dry_run, label):
    importer = BaseImporter(dry_run=dry_run, log_to_console=False)
    importer.counters["added"] = 3
    importer.counters["skipped"] = 1

    summary = importer.summarize()

    assert f"Import Summary ({label})" in summary
    assert "Added: 3" in summary
    assert "Skipped: 1" in summary
    assert importer.summary == summary
    assert "Import Summary" in importer.get_output()
