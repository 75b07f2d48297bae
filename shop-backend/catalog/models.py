# catalog/models.py

from django.db import models
from django.db.models import F, Q
from django.db.models.functions import Lower
from django.utils.text import slugify

from common.models import TimeStampedModel


class ProductStatus(models.TextChoices):
    ACTIVE = "ACTIVE", "Active"
    INACTIVE = "INACTIVE", "Inactive"


class ProductQuerySet(models.QuerySet):
    def active(self):
        return self.filter(status=ProductStatus.ACTIVE)

    def low_stock(self):
        return self.active().filter(stock_current__lte=F("stock_min_level")).order_by("stock_current", "id")


class Product(TimeStampedModel):
    """
    Inventory-bearing catalog entry.

    Stock counters are mutated only through inventory.ledger, which locks the
    row and appends an inventory.StockMovement in the same transaction.
    Products are never deleted; they are deactivated via `status`.
    """
    tenant = models.ForeignKey("tenants.Tenant", on_delete=models.CASCADE, related_name="products")
    sku = models.CharField(max_length=64)
    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=220, blank=True)
    brand = models.CharField(max_length=120, blank=True, default="")
    category = models.CharField(max_length=120, blank=True, db_index=True)
    description = models.TextField(blank=True, default="")
    image_url = models.URLField(blank=True, default="")

    price = models.DecimalField(max_digits=12, decimal_places=2)
    old_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    stock_current = models.IntegerField(default=0)
    stock_reserved = models.IntegerField(default=0)
    stock_min_level = models.IntegerField(default=5)
    stock_max_level = models.IntegerField(default=100)
    reorder_point = models.IntegerField(default=10)
    last_restocked_at = models.DateTimeField(null=True, blank=True)

    status = models.CharField(
        max_length=10, choices=ProductStatus.choices, default=ProductStatus.ACTIVE, db_index=True
    )

    objects = ProductQuerySet.as_manager()

    class Meta:
        constraints = [
            models.UniqueConstraint(Lower("sku"), "tenant", name="uniq_product_sku_ci_per_tenant"),
            models.CheckConstraint(condition=Q(price__gte=0), name="product_price_non_negative"),
            models.CheckConstraint(condition=Q(stock_reserved__gte=0), name="product_reserved_non_negative"),
            models.CheckConstraint(
                condition=Q(stock_reserved__lte=F("stock_current")),
                name="product_reserved_lte_current",
            ),
        ]
        indexes = [
            models.Index(fields=["tenant", "status"], name="product_tenant_status_idx"),
            models.Index(fields=["tenant", "category", "status"], name="product_tenant_cat_idx"),
            models.Index(fields=["tenant", "stock_current"], name="product_tenant_stock_idx"),
        ]
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.sku})"

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = slugify(self.name)[:220]
        super().save(*args, **kwargs)

    @property
    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE

    @property
    def available_stock(self) -> int:
        return max(0, self.stock_current - self.stock_reserved)

    @property
    def in_stock(self) -> bool:
        return self.available_stock > 0

    @property
    def low_stock(self) -> bool:
        return 0 < self.stock_current <= self.stock_min_level

    @property
    def needs_reorder(self) -> bool:
        return self.stock_current <= self.reorder_point

    @property
    def over_max_level(self) -> bool:
        # advisory only, add_stock does not enforce it
        return self.stock_current > self.stock_max_level

    @property
    def has_discount(self) -> bool:
        return bool(self.old_price and self.old_price > self.price)

    @property
    def discount_percent(self) -> int:
        if not self.has_discount:
            return 0
        return int(round((1 - self.price / self.old_price) * 100))

    def deactivate(self):
        self.status = ProductStatus.INACTIVE
        self.save(update_fields=["status", "updated_at"])
