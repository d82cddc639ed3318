import os
import django

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "core.settings")

# Only initialize once
if not django.apps.apps.ready:
    django.setup()

import pytest

from tests.factories import BusinessFactory


@pytest.fixture(autouse=True)
def catalog_upload_dir(settings, tmp_path):
    settings.CATALOG_IMPORT_DIR = tmp_path / "catalog_uploads"
    return settings.CATALOG_IMPORT_DIR


@pytest.fixture
def business(db):
    return BusinessFactory(name="Corner Cafe")


@pytest.fixture
def write_csv(tmp_path):
    def _write(name, content):
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path

    return _write
