"""Admin registrations for the menu catalog and its import history."""
from django.contrib import admin, messages

from importers import undo_import
from importers.errors import CatalogImportError

from .models import (
    Business,
    CatalogImportLog,
    Category,
    Item,
    ItemSize,
    Modifier,
    ModifierGroup,
)


@admin.register(Business)
class BusinessAdmin(admin.ModelAdmin):
    list_display = ("name", "created_at")
    search_fields = ("name",)


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ("name", "business", "sort_order", "is_active")
    list_filter = ("business", "is_active")
    search_fields = ("name",)
    ordering = ("business", "sort_order", "name")


@admin.register(ItemSize)
class ItemSizeAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "business", "display_order", "is_active")
    list_filter = ("business", "is_active")
    search_fields = ("code", "name")


class ModifierInline(admin.TabularInline):
    """Inline editing for modifiers beneath their group."""
    model = Modifier
    extra = 0
    fields = ("name", "display_order", "is_active", "is_default", "max_quantity")


@admin.register(ModifierGroup)
class ModifierGroupAdmin(admin.ModelAdmin):
    list_display = ("name", "display_name", "business", "display_type", "min_select", "max_select", "is_active")
    list_filter = ("business", "display_type", "is_active")
    search_fields = ("name", "display_name")
    inlines = [ModifierInline]


@admin.register(Modifier)
class ModifierAdmin(admin.ModelAdmin):
    list_display = ("name", "modifier_group", "display_order", "is_active", "is_default")
    list_filter = ("modifier_group__business", "is_active")
    search_fields = ("name", "modifier_group__name")


@admin.register(Item)
class ItemAdmin(admin.ModelAdmin):
    list_display = ("name", "category", "base_price", "default_size", "is_active", "is_available")
    list_filter = ("business", "category", "is_active", "is_available")
    search_fields = ("name", "category__name")
    list_select_related = ("category", "default_size")


@admin.register(CatalogImportLog)
class CatalogImportLogAdmin(admin.ModelAdmin):
    """Show each catalog import run and let staff undo committed ones."""
    list_display = (
        "filename",
        "business",
        "run_type",
        "status",
        "created_count",
        "updated_count",
        "created_at",
        "short_summary",
    )
    list_filter = ("business", "run_type", "status")
    search_fields = ("filename", "summary", "log_output")
    readonly_fields = (
        "business",
        "filename",
        "run_type",
        "status",
        "rollback_ops",
        "created_count",
        "updated_count",
        "summary",
        "log_output",
        "uploaded_by",
        "created_at",
        "undone_at",
        "undone_by",
    )
    ordering = ("-created_at",)
    actions = ["undo_selected_imports"]

    def short_summary(self, obj):
        if not obj.summary:
            return "—"
        preview = obj.summary.strip().splitlines()[0]
        return (preview[:75] + "…") if len(preview) > 75 else preview

    short_summary.short_description = "Summary"

    @admin.action(description="Undo selected imports")
    def undo_selected_imports(self, request, queryset):
        # newest first so later imports are reversed before the ones they built on
        for import_log in queryset.order_by("-created_at"):
            try:
                undo_import(import_log, user=request.user)
            except CatalogImportError as exc:
                self.message_user(request, f"{import_log}: {exc}", level=messages.WARNING)
            else:
                self.message_user(request, f"Undid {import_log}", level=messages.SUCCESS)
