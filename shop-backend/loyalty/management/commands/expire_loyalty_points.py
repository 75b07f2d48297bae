"""
Expire loyalty points whose batches have passed their expiry date.

Safe to run repeatedly: already expired batches are removed on the first pass.

Usage:
    python manage.py expire_loyalty_points
"""

from django.core.management.base import BaseCommand

from loyalty.services import expire_all_points


class Command(BaseCommand):
    help = "Expire loyalty point batches past their expiry date"

    def handle(self, *args, **options):
        accounts, points = expire_all_points()
        if not accounts:
            self.stdout.write("No expired points found")
            return
        self.stdout.write(self.style.SUCCESS(f"Expired {points} points across {accounts} accounts"))
