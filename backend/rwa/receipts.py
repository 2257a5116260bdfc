"""
RWA — Receipt generation
A receipt is issued automatically when a payment becomes Paid.
"""
import logging

from django.db import DatabaseError, IntegrityError, transaction
from django.dispatch import receiver
from django.utils import timezone

from .models import Payment, Receipt
from .signals import payment_status_changed

logger = logging.getLogger(__name__)

RECEIPT_PREFIX = 'RWA'


def next_receipt_number(today=None):
    """RWA + YYYYMMDD + 3-digit sequence restarting every day."""
    today = today or timezone.localdate()
    prefix = f'{RECEIPT_PREFIX}{today:%Y%m%d}'
    last = (
        Receipt.objects.filter(receipt_number__startswith=prefix)
        .order_by('-receipt_number')
        .values_list('receipt_number', flat=True)
        .first()
    )
    sequence = int(last[-3:]) + 1 if last else 1
    return f'{prefix}{sequence:03d}'


def generate_receipt_for_payment(payment):
    """Create the payment's receipt; returns the existing one if already issued."""
    if payment.status != Payment.STATUS_PAID:
        logger.info('Skipping receipt for payment %s: status is %s', payment.pk, payment.status)
        return None

    existing = Receipt.objects.filter(payment=payment).first()
    if existing:
        return existing

    with transaction.atomic():
        receipt = Receipt.objects.create(
            payment=payment,
            receipt_number=next_receipt_number(),
            receipt_date=payment.payment_date or timezone.localdate(),
            amount=payment.amount_paid,
            tax_amount=0,
            total_amount=payment.amount_paid,
            notes=f'Payment for {payment.payment_month}',
        )
    logger.info('Receipt %s generated for payment %s', receipt.receipt_number, payment.pk)
    return receipt


def generate_missing_receipts():
    """Backfill receipts for every Paid payment that has none."""
    generated, failed = [], []
    for payment in Payment.objects.filter(status=Payment.STATUS_PAID, receipt__isnull=True):
        try:
            receipt = generate_receipt_for_payment(payment)
        except (IntegrityError, DatabaseError):
            logger.exception('Failed to generate receipt for payment %s', payment.pk)
            failed.append(payment.pk)
            continue
        generated.append(receipt.receipt_number)
    return {
        'generated': generated,
        'failed': failed,
        'total': len(generated),
        'errors': len(failed),
    }


@receiver(payment_status_changed)
def issue_receipt_on_paid(sender, payment, previous_status, **kwargs):
    if payment.status == Payment.STATUS_PAID:
        generate_receipt_for_payment(payment)
