# inventory/urls.py
from django.urls import path

from .api import (
    AdjustView, ConfirmSaleView, LowStockView, MovementListView,
    ReleaseView, ReserveView, RestockView, ReturnView,
)

app_name = "inventory"

urlpatterns = [
    path("products/<int:pk>/restock", RestockView.as_view(), name="restock"),
    path("products/<int:pk>/reserve", ReserveView.as_view(), name="reserve"),
    path("products/<int:pk>/release", ReleaseView.as_view(), name="release"),
    path("products/<int:pk>/confirm-sale", ConfirmSaleView.as_view(), name="confirm-sale"),
    path("products/<int:pk>/return", ReturnView.as_view(), name="return"),
    path("products/<int:pk>/adjust", AdjustView.as_view(), name="adjust"),
    path("products/<int:pk>/movements", MovementListView.as_view(), name="movements"),
    path("low_stock", LowStockView.as_view(), name="low-stock"),
]
