"""
Mark active loyalty coupons past their expiry as expired.

Usage:
    python manage.py expire_coupons
"""

from django.core.management.base import BaseCommand

from loyalty.rewards import mark_expired_coupons


class Command(BaseCommand):
    help = "Mark expired reward coupons"

    def handle(self, *args, **options):
        count = mark_expired_coupons()
        self.stdout.write(self.style.SUCCESS(f"Marked {count} coupons as expired"))
