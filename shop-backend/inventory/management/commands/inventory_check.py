"""
Management command to validate stock ledger parity.

For every product, the newest movement that touched current stock must
carry the product's current stock as its new_stock, and reserved stock must
never exceed current stock.

Usage:
    python manage.py inventory_check
    python manage.py inventory_check --tenant <tenant_id>
    python manage.py inventory_check --verbose
    python manage.py inventory_check --by-type

Exit codes:
    0 - All products match their ledger (clean)
    1 - One or more mismatches found
"""

from django.core.management.base import BaseCommand, CommandError
from django.db.models import Count, Sum

from catalog.models import Product
from inventory.models import MovementType, StockMovement
from tenants.models import Tenant

# Movement types whose previous/new columns track available, not current, stock.
AVAILABILITY_TYPES = (MovementType.RESERVATION, MovementType.RELEASE)


class Command(BaseCommand):
    help = "Validate stock ledger parity between products and their StockMovement rows"

    def add_arguments(self, parser):
        parser.add_argument(
            "--tenant",
            type=int,
            help="Check products for a specific tenant only",
        )
        parser.add_argument(
            "--verbose",
            action="store_true",
            help="Show detailed output for each mismatch as it is found",
        )
        parser.add_argument(
            "--by-type",
            action="store_true",
            help="Group ledger quantities by movement type",
        )

    def handle(self, *args, **options):
        tenant_id = options.get("tenant")
        verbose = options.get("verbose", False)
        by_type = options.get("by_type", False)

        products = Product.objects.all()
        movements = StockMovement.objects.all()
        if tenant_id:
            try:
                tenant = Tenant.objects.get(id=tenant_id)
            except Tenant.DoesNotExist:
                raise CommandError(f"Tenant with id {tenant_id} does not exist")
            self.stdout.write(f"Checking stock for tenant: {tenant.name} ({tenant.code})")
            products = products.filter(tenant=tenant)
            movements = movements.filter(product__tenant=tenant)

        if not products.exists():
            self.stdout.write(self.style.WARNING("No products found to check"))
            return

        self.stdout.write(f"Checking {products.count()} products...")

        mismatches = []
        for product in products.order_by("id"):
            problems = []
            if product.stock_reserved > product.stock_current:
                problems.append(
                    f"reserved {product.stock_reserved} exceeds current {product.stock_current}"
                )

            last = (
                product.stock_movements.exclude(type__in=AVAILABILITY_TYPES)
                .order_by("-created_at", "-id")
                .first()
            )
            if last is not None and last.new_stock != product.stock_current:
                problems.append(
                    f"last {last.type} movement left {last.new_stock}, product holds {product.stock_current}"
                )

            if problems:
                mismatches.append((product, problems))
                if verbose:
                    self.stdout.write(self.style.ERROR(f"MISMATCH: {product.sku} - {'; '.join(problems)}"))

        self.stdout.write("")
        self.stdout.write("=" * 60)
        self.stdout.write(f"Checked: {products.count()} products")
        self.stdout.write(f"Mismatches: {len(mismatches)}")

        if by_type:
            self.stdout.write("")
            self.stdout.write("=" * 60)
            self.stdout.write("LEDGER BREAKDOWN BY TYPE")
            self.stdout.write("=" * 60)
            stats = (
                movements.values("type")
                .annotate(count=Count("id"), total=Sum("quantity"))
                .order_by("type")
            )
            if not stats:
                self.stdout.write("No movements found.")
            else:
                self.stdout.write(f"{'Type':<20} {'Count':<10} {'Total Qty':<15}")
                self.stdout.write("-" * 60)
                for stat in stats:
                    self.stdout.write(f"{stat['type']:<20} {stat['count']:<10} {stat['total'] or 0:>15}")

        if mismatches:
            self.stdout.write("")
            self.stdout.write(self.style.ERROR("MISMATCHES FOUND:"))
            for product, problems in mismatches:
                self.stdout.write(
                    self.style.ERROR(f"  - {product.sku} ({product.name}) [tenant {product.tenant_id}]: {'; '.join(problems)}")
                )
            raise CommandError(
                "Review stock movements for the products above.", returncode=1
            )

        self.stdout.write("")
        self.stdout.write(self.style.SUCCESS("All products match the stock ledger (clean)"))
