# catalog/models.py

from decimal import Decimal

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.utils import timezone


class Business(models.Model):
    """Tenant scope. Every catalog entity hangs off exactly one business."""

    name = models.CharField(max_length=255)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name_plural = "Businesses"
        ordering = ["name"]

    def __str__(self):
        return self.name


class Category(models.Model):
    business = models.ForeignKey(Business, on_delete=models.CASCADE, related_name="categories")
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, null=True)
    sort_order = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "Categories"
        ordering = ["sort_order", "name"]
        indexes = [models.Index(fields=["business", "name"], name="catalog_cat_busines_5f2c1a_idx")]

    def __str__(self):
        return self.name


class ItemSize(models.Model):
    """Business-wide size (S, M, L...) referenced by code from items and modifier groups."""

    business = models.ForeignKey(Business, on_delete=models.CASCADE, related_name="item_sizes")
    name = models.CharField(max_length=100)
    code = models.CharField(max_length=32)
    display_order = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["display_order", "code"]
        constraints = [
            models.UniqueConstraint(fields=["business", "code"], name="unique_size_code_per_business"),
        ]

    def __str__(self):
        return f"{self.name} ({self.code})"


class ModifierGroup(models.Model):
    """
    A named set of modifiers (e.g. "Toppings", "Milk Options").

    quantity_levels and prices_by_size are stored as embedded JSON lists:
        quantity_levels: [{"quantity": 1, "name": "Light", "price": 0.5}, ...]
        prices_by_size:  [{"size_id": 3, "sizeCode": "L", "priceDelta": 0.75}, ...]
    """

    class DisplayType(models.TextChoices):
        RADIO = "RADIO", "Radio"
        CHECKBOX = "CHECKBOX", "Checkbox"

    business = models.ForeignKey(Business, on_delete=models.CASCADE, related_name="modifier_groups")
    name = models.CharField(max_length=255)
    display_name = models.CharField(max_length=255, blank=True, null=True)
    display_type = models.CharField(
        max_length=16,
        choices=DisplayType.choices,
        default=DisplayType.RADIO,
    )
    min_select = models.PositiveIntegerField(default=0)
    max_select = models.PositiveIntegerField(default=1)
    applies_per_quantity = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    sort_order = models.IntegerField(default=0)
    quantity_levels = models.JSONField(blank=True, null=True, encoder=DjangoJSONEncoder)
    prices_by_size = models.JSONField(default=list, blank=True, encoder=DjangoJSONEncoder)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["sort_order", "name"]
        indexes = [models.Index(fields=["business", "name"], name="catalog_mod_busines_8d41e0_idx")]

    def __str__(self):
        return self.display_name or self.name


class Modifier(models.Model):
    modifier_group = models.ForeignKey(ModifierGroup, on_delete=models.CASCADE, related_name="modifiers")
    name = models.CharField(max_length=255)
    display_order = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)
    is_default = models.BooleanField(default=False)
    max_quantity = models.PositiveIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["modifier_group__name", "display_order", "name"]

    def __str__(self):
        return f"{self.name} ({self.modifier_group.name})"


class Item(models.Model):
    """
    A sellable menu item.

    modifier_groups holds the item's full modifier assignment:
        [{"modifier_group_id": 4, "display_order": 0,
          "modifier_overrides": [{"modifier_id": 9, "prices_by_size": [...], "quantity_levels": [...]}]}]
    """

    business = models.ForeignKey(Business, on_delete=models.CASCADE, related_name="items")
    category = models.ForeignKey(Category, on_delete=models.PROTECT, related_name="items")
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, null=True)
    base_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    is_sizeable = models.BooleanField(default=False)
    is_customizable = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    is_available = models.BooleanField(default=True)
    is_signature = models.BooleanField(default=False)
    max_per_order = models.PositiveIntegerField(null=True, blank=True)
    sort_order = models.IntegerField(default=0)
    default_size = models.ForeignKey(
        ItemSize,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="default_for_items",
    )
    modifier_groups = models.JSONField(default=list, blank=True, encoder=DjangoJSONEncoder)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["sort_order", "name"]
        indexes = [models.Index(fields=["category", "name"], name="catalog_ite_categor_3b9e77_idx")]

    @property
    def category_name(self) -> str:
        return self.category.name if self.category_id else ""

    def __str__(self):
        return f"{self.name} ({self.category_name})"


class CatalogImportLog(models.Model):
    """Persisted compensation log for one catalog CSV import."""

    RUN_TYPE_CHOICES = [
        ("dry-run", "Dry Run"),
        ("live", "Live"),
    ]
    STATUS_CHOICES = [
        ("committed", "Committed"),
        ("undone", "Undone"),
        ("dry-run", "Dry Run"),
    ]

    business = models.ForeignKey(Business, on_delete=models.CASCADE, related_name="import_logs")
    filename = models.CharField(max_length=255, blank=True)
    run_type = models.CharField(max_length=20, choices=RUN_TYPE_CHOICES, default="live")
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="committed")
    rollback_ops = models.JSONField(default=list, blank=True, encoder=DjangoJSONEncoder)
    created_count = models.PositiveIntegerField(default=0)
    updated_count = models.PositiveIntegerField(default=0)
    summary = models.TextField(blank=True)
    log_output = models.TextField(blank=True, null=True)
    uploaded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="catalog_import_logs",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    undone_at = models.DateTimeField(null=True, blank=True)
    undone_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="undone_catalog_imports",
    )

    class Meta:
        ordering = ("-created_at",)

    def __str__(self):
        timestamp = self.created_at.astimezone(timezone.get_current_timezone()) if self.created_at else None
        ts_display = timestamp.strftime("%Y-%m-%d %H:%M") if timestamp else "pending"
        return f"{self.filename or 'catalog import'} ({self.get_status_display()}) @ {ts_display}"

    @property
    def can_undo(self) -> bool:
        return self.status == "committed"
