"""
Delete carts whose expiry has passed.

Usage:
    python manage.py purge_expired_carts
    python manage.py purge_expired_carts --dry-run
"""

from django.core.management.base import BaseCommand
from django.utils import timezone

from carts.models import Cart
from carts.services import purge_expired_carts


class Command(BaseCommand):
    help = "Delete abandoned carts past their expiry"

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Only count expired carts, do not delete them",
        )

    def handle(self, *args, **options):
        if options.get("dry_run"):
            count = Cart.objects.filter(expires_at__lte=timezone.now()).count()
            self.stdout.write(f"{count} expired carts would be purged")
            return

        count = purge_expired_carts()
        self.stdout.write(self.style.SUCCESS(f"Purged {count} expired carts"))
