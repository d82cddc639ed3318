import pytest
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Permission
from django.contrib.messages import get_messages
from django.core.files.uploadedfile import SimpleUploadedFile
from django.urls import reverse

from catalog.models import CatalogImportLog, Category, Item
from importers import CatalogImporter, parse_upload, record_import

MENU_CSV = b"type,name,parent\nCATEGORY,Mains,\nITEM,Burger,Mains\n"


def _login_user(client, username="catalog-user", perm_codenames=None):
    user = get_user_model().objects.create_user(username=username, password="pw")
    for codename in perm_codenames or []:
        perm = Permission.objects.get(content_type__app_label="catalog", codename=codename)
        user.user_permissions.add(perm)
    client.force_login(user)
    return user


@pytest.mark.django_db
def test_upload_catalog_view_imports_and_logs(client, business, catalog_upload_dir):
    user = _login_user(client, perm_codenames=["add_catalogimportlog"])
    upload = SimpleUploadedFile("menu.csv", MENU_CSV, content_type="text/csv")

    response = client.post(reverse("upload_catalog", args=[business.pk]), {"catalog_csv": upload})

    assert response.status_code == 302
    assert response.url == reverse("catalog_import_logs", args=[business.pk])
    assert Item.objects.filter(business=business, name="Burger").exists()
    log = CatalogImportLog.objects.get()
    assert (log.filename, log.run_type, log.uploaded_by) == ("menu.csv", "live", user)
    saved = list(catalog_upload_dir.iterdir())
    assert len(saved) == 1
    assert saved[0].name.endswith("-menu.csv")


@pytest.mark.django_db
def test_upload_catalog_view_dry_run(client, business, catalog_upload_dir):
    _login_user(client, perm_codenames=["add_catalogimportlog"])
    upload = SimpleUploadedFile("menu.csv", MENU_CSV, content_type="text/csv")

    response = client.post(
        reverse("upload_catalog", args=[business.pk]),
        {"catalog_csv": upload, "dry_run": "on"},
    )

    assert response.status_code == 302
    assert Category.objects.count() == 0
    assert CatalogImportLog.objects.get().run_type == "dry-run"
    assert not catalog_upload_dir.exists()
    messages = [str(m) for m in get_messages(response.wsgi_request)]
    assert any("Dry-run complete" in m for m in messages)


@pytest.mark.django_db
def test_upload_catalog_view_rejects_zip(client, business):
    _login_user(client, perm_codenames=["add_catalogimportlog"])
    upload = SimpleUploadedFile("menu.zip", b"PK\x03\x04", content_type="application/zip")

    response = client.post(reverse("upload_catalog", args=[business.pk]), {"catalog_csv": upload})

    assert response.status_code == 302
    assert CatalogImportLog.objects.count() == 0
    messages = [str(m) for m in get_messages(response.wsgi_request)]
    assert any("ZIP files are not supported" in m for m in messages)


@pytest.mark.django_db
def test_upload_catalog_view_reports_validation_errors(client, business):
    _login_user(client, perm_codenames=["add_catalogimportlog"])
    upload = SimpleUploadedFile("items.csv", b"name,category_name\nBurger,Nowhere\n", content_type="text/csv")

    response = client.post(reverse("upload_catalog", args=[business.pk]), {"catalog_csv": upload})

    assert response.status_code == 302
    assert Item.objects.count() == 0
    messages = [str(m) for m in get_messages(response.wsgi_request)]
    assert any("Category not found for this item" in m for m in messages)


@pytest.mark.django_db
def test_upload_catalog_view_requires_file(client, business):
    _login_user(client, perm_codenames=["add_catalogimportlog"])

    response = client.post(reverse("upload_catalog", args=[business.pk]), {})

    assert response.status_code == 302
    messages = [str(m) for m in get_messages(response.wsgi_request)]
    assert "No file uploaded." in messages


@pytest.mark.django_db
def test_upload_catalog_view_requires_permission(client, business):
    _login_user(client)
    upload = SimpleUploadedFile("menu.csv", MENU_CSV, content_type="text/csv")

    response = client.post(reverse("upload_catalog", args=[business.pk]), {"catalog_csv": upload})

    assert response.status_code == 403
    assert Category.objects.count() == 0


@pytest.mark.django_db
def test_undo_catalog_import_view(client, business):
    _login_user(client, perm_codenames=["change_catalogimportlog"])
    importer = CatalogImporter(business, log_to_console=False)
    ops = importer.save_all(parse_upload(MENU_CSV, "menu.csv").data)
    log = record_import(importer, ops, filename="menu.csv")

    response = client.post(reverse("undo_catalog_import", args=[log.pk]))

    assert response.status_code == 302
    log.refresh_from_db()
    assert log.status == "undone"
    assert Item.objects.count() == 0

    response = client.post(reverse("undo_catalog_import", args=[log.pk]))
    messages = [str(m) for m in get_messages(response.wsgi_request)]
    assert any("already been undone" in m for m in messages)


@pytest.mark.django_db
def test_catalog_import_logs_view_lists_runs(client, business):
    _login_user(client, perm_codenames=["view_catalogimportlog"])
    importer = CatalogImporter(business, log_to_console=False)
    ops = importer.save_all(parse_upload(MENU_CSV, "menu.csv").data)
    record_import(importer, ops, filename="menu.csv")

    response = client.get(reverse("catalog_import_logs", args=[business.pk]))

    assert response.status_code == 200
    payload = response.json()
    assert payload["page"] == 1
    assert len(payload["results"]) == 1
    entry = payload["results"][0]
    assert (entry["filename"], entry["status"], entry["created_count"]) == ("menu.csv", "committed", 2)
    assert entry["can_undo"] is True


@pytest.mark.django_db
def test_upload_catalog_view_lists_validation_errors(client, business):
    _login_user(client, perm_codenames=["add_catalogimportlog"])
    content = b"name,display_type,min_select,max_select\nMilk,RADIO,3,1\nSauces,DROPDOWN,0,1\n"
    upload = SimpleUploadedFile("modifier_groups.csv", content, content_type="text/csv")

    response = client.post(reverse("upload_catalog", args=[business.pk]), {"catalog_csv": upload})

    assert response.status_code == 302
    assert CatalogImportLog.objects.count() == 0
    messages = [str(m) for m in get_messages(response.wsgi_request)]
    assert any("2 validation error(s)" in m and "modifier_groups.csv row 2" in m for m in messages)
    assert any("modifier_groups.csv row 3: ModifierGroup.display_type" in m for m in messages)


@pytest.mark.django_db
def test_upload_catalog_view_flashes_validation_warnings(client, business):
    _login_user(client, perm_codenames=["add_catalogimportlog"])
    content = b"type,name,parent,max_select\nMOD_GROUP,Milk,,2\nMODIFIER,Oat,Milk,\n"
    upload = SimpleUploadedFile("menu.csv", content, content_type="text/csv")

    response = client.post(
        reverse("upload_catalog", args=[business.pk]),
        {"catalog_csv": upload, "dry_run": "on"},
    )

    assert response.status_code == 302
    warnings = [str(m) for m in get_messages(response.wsgi_request) if m.level_tag == "warning"]
    assert warnings == [
        "⚠️ menu.csv row 2: ModifierGroup.max_select: max_select (2) is greater than number of modifiers (1)"
    ]
