# tenants/models.py
from django.db import models

from common.models import TimeStampedModel


class Tenant(TimeStampedModel):
    """
    Company / brand. Catalog, carts, orders, loyalty and payments FK to this.
    """
    name = models.CharField(max_length=120)
    code = models.SlugField(unique=True)
    currency_code = models.CharField(max_length=3, default="CLP")
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

    @property
    def order_prefix(self) -> str:
        return (self.code or "T").upper()[:8]
