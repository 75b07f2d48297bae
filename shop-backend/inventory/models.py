# inventory/models.py
from django.conf import settings
from django.db import models


class MovementType(models.TextChoices):
    RESTOCK = "restock", "Restock"
    SALE = "sale", "Sale"
    RETURN = "return", "Return"
    ADJUSTMENT = "adjustment", "Adjustment"
    RESERVATION = "reservation", "Reservation"
    RELEASE = "release", "Release"


class StockMovement(models.Model):
    """
    Immutable movement log for audit: one row per change to a product's
    current or reserved stock, written in the same transaction as the change.

    `quantity` is signed from the point of view of the affected counter:
    reservations are negative (removed from available), releases positive.
    For reservation/release rows previous/new are *available* stock; for all
    other types they are *current* stock.
    """
    product = models.ForeignKey("catalog.Product", on_delete=models.PROTECT, related_name="stock_movements")
    type = models.CharField(max_length=16, choices=MovementType.choices)
    quantity = models.IntegerField()
    previous_stock = models.IntegerField()
    new_stock = models.IntegerField()
    reason = models.CharField(max_length=255, blank=True, default="")
    order_ref = models.CharField(max_length=64, blank=True, default="", db_index=True)
    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["product", "created_at"], name="movement_product_created_idx"),
            models.Index(fields=["type", "created_at"], name="movement_type_created_idx"),
        ]

    def __str__(self):
        return f"{self.type} {self.quantity} on product #{self.product_id} ({self.order_ref or '-'})"
