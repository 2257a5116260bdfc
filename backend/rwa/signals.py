"""
RWA — Payment notifications
Subscribers such as receipt generation listen on
`payment_status_changed`; they receive `payment` (as committed) and
`previous_status`.
"""
import logging

from django.db import transaction
from django.dispatch import Signal

from .models import Payment

logger = logging.getLogger(__name__)

payment_status_changed = Signal()


def _dispatch(payment_id, previous_status):
    payment = Payment.objects.filter(pk=payment_id).select_related('resident').first()
    if payment is None or payment.status == previous_status:
        return
    results = payment_status_changed.send_robust(
        sender=Payment, payment=payment, previous_status=previous_status,
    )
    for receiver, result in results:
        if isinstance(result, Exception):
            logger.error('Status-change subscriber %r failed for payment %s: %s',
                         receiver, payment.pk, result)


def emit_status_changed(payment, previous_status):
    """Default notification sink: deliver the stored row once the transaction commits."""
    payment_id = payment.pk
    transaction.on_commit(lambda: _dispatch(payment_id, previous_status))
