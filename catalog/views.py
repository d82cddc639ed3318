"""Upload, undo and history endpoints for catalog CSV imports."""

from pathlib import Path

from django.conf import settings
from django.contrib import messages
from django.contrib.auth.decorators import permission_required
from django.core.paginator import EmptyPage, PageNotAnInteger, Paginator
from django.http import JsonResponse
from django.shortcuts import get_object_or_404, redirect
from django.utils import timezone
from django.utils.html import format_html
from django.utils.text import slugify
from django.views.decorators.http import require_POST

from catalog.models import Business, CatalogImportLog
from importers import CatalogImporter, parse_upload, record_import, undo_import
from importers.errors import CatalogImportError

# Cap on per-row validation messages flashed for one upload.
MAX_ISSUE_MESSAGES = 20


def _save_catalog_upload(uploaded_file, content: bytes) -> Path:
    """Keep a timestamped copy of the uploaded CSV in CATALOG_IMPORT_DIR."""

    target_dir = Path(settings.CATALOG_IMPORT_DIR)
    target_dir.mkdir(parents=True, exist_ok=True)

    original_name = Path(uploaded_file.name or "catalog-upload")
    base = slugify(original_name.stem) or "catalog-upload"
    timestamp = timezone.now().strftime("%Y%m%d-%H%M%S")
    destination = target_dir / f"{timestamp}-{base}{original_name.suffix}"
    destination.write_bytes(content)
    return destination


@permission_required("catalog.add_catalogimportlog", raise_exception=True)
@require_POST
def upload_catalog_view(request, business_id):
    """Handle a catalog CSV upload (supports dry run)."""

    business = get_object_or_404(Business, pk=business_id)
    uploaded_file = request.FILES.get("catalog_csv")
    dry_run = bool(request.POST.get("dry_run"))
    entity_type = request.POST.get("entity_type") or None

    if not uploaded_file:
        messages.error(request, "No file uploaded.")
        return redirect("catalog_import_logs", business_id=business.pk)

    content = uploaded_file.read()
    try:
        parsed = parse_upload(
            content,
            uploaded_file.name,
            content_type=getattr(uploaded_file, "content_type", None),
            entity_type=entity_type,
        )
        importer = CatalogImporter(
            business, dry_run=dry_run, log_to_console=False, filename=uploaded_file.name
        )
        ops = importer.save_all(parsed.data)
        summary = importer.summarize()
        import_log = record_import(importer, ops, filename=uploaded_file.name, user=request.user)
    except CatalogImportError as exc:
        messages.error(request, f"❌ Error importing catalog CSV: {exc}")
        for issue in getattr(exc, "issues", [])[1:MAX_ISSUE_MESSAGES]:
            messages.error(request, f"❌ {issue}")
        return redirect("catalog_import_logs", business_id=business.pk)

    for issue in importer.validation.warnings[:MAX_ISSUE_MESSAGES]:
        messages.warning(request, f"⚠️ {issue}")
    if not dry_run:
        _save_catalog_upload(uploaded_file, content)

    messages.success(
        request,
        f"{'🧪 Dry-run complete' if dry_run else '✅ Import complete'}: {uploaded_file.name} (log #{import_log.pk})",
    )
    messages.info(
        request,
        format_html("<pre class='import-log bg-light p-3 border rounded small mb-0'>{}</pre>", summary),
    )
    return redirect("catalog_import_logs", business_id=business.pk)


@permission_required("catalog.change_catalogimportlog", raise_exception=True)
@require_POST
def undo_catalog_import_view(request, pk):
    import_log = get_object_or_404(CatalogImportLog, pk=pk)
    try:
        counts = undo_import(import_log, user=request.user)
    except CatalogImportError as exc:
        messages.error(request, f"❌ {exc}")
    else:
        messages.success(
            request,
            f"↩️ Undid import #{import_log.pk}: {counts['deleted']} deleted, {counts['restored']} restored",
        )
    return redirect("catalog_import_logs", business_id=import_log.business_id)


@permission_required("catalog.view_catalogimportlog", raise_exception=True)
def catalog_import_logs_view(request, business_id):
    """Paginated JSON history of a business's catalog imports."""

    logs = (
        CatalogImportLog.objects.filter(business_id=business_id)
        .select_related("uploaded_by")
        .order_by("-created_at")
    )
    paginator = Paginator(logs, 20)
    try:
        page_obj = paginator.page(request.GET.get("page") or 1)
    except (PageNotAnInteger, EmptyPage):
        page_obj = paginator.page(1)

    return JsonResponse(
        {
            "page": page_obj.number,
            "num_pages": paginator.num_pages,
            "results": [
                {
                    "id": log.pk,
                    "filename": log.filename,
                    "run_type": log.run_type,
                    "status": log.status,
                    "created_count": log.created_count,
                    "updated_count": log.updated_count,
                    "uploaded_by": log.uploaded_by.get_username() if log.uploaded_by else None,
                    "created_at": log.created_at.isoformat(),
                    "undone_at": log.undone_at.isoformat() if log.undone_at else None,
                    "can_undo": log.can_undo,
                }
                for log in page_obj.object_list
            ],
        }
    )
