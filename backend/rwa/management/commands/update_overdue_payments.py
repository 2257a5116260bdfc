"""
Mark Pending payments whose due date has passed as Overdue.
Usage: python manage.py update_overdue_payments
"""
from django.core.management.base import BaseCommand

from rwa.services import update_overdue_payments


class Command(BaseCommand):
    help = 'Mark pending payments past their due date as overdue'

    def handle(self, *args, **options):
        result = update_overdue_payments()
        self.stdout.write(self.style.SUCCESS(
            f'Updated {result["updated_count"]} payment(s) to Overdue'
        ))
