"""
RWA — Payment services
Monthly generation, overdue detection and reporting built on top of the
recalculation engine.
"""
import csv
import logging
from datetime import date
from decimal import Decimal

from django.db import transaction
from django.db.models import Count, F, Sum

from .models import Payment, Resident
from .months import current_month, is_due_date_passed, month_label, month_of, months_between, shift_month
from .recalculation import (
    RecalculationEngine, ZERO, classify_status, payment_remarks,
)

logger = logging.getLogger(__name__)

DEFAULTER_MONTHS_BACK = 3

CSV_HEADERS = [
    'Flat Number', 'Resident Name', 'Contact Number', 'Payment Month',
    'Amount Due', 'Amount Paid', 'Balance Due', 'Payment Status',
    'Payment Date', 'Payment Method', 'Transaction ID', 'Remarks',
]


# ═══════════════════════════════════════════════════════════
#  CREATION / MONTHLY GENERATION
# ═══════════════════════════════════════════════════════════

def create_payment(engine=None, **data):
    """Create one payment; status is derived from the amounts when not given."""
    engine = engine or RecalculationEngine()
    amount_paid = data.setdefault('amount_paid', ZERO)
    if not data.get('status'):
        data['status'] = classify_status(data['amount_due'], amount_paid)
    if not data.get('payment_date') and amount_paid > 0:
        data['payment_date'] = date.today()
    payment = Payment.objects.create(**data)
    if payment.status != Payment.STATUS_PENDING:
        engine.notify(payment, Payment.STATUS_PENDING)
    return payment


def generate_monthly_payments(month, force=False, dry_run=False, engine=None):
    """
    Create every active resident's payment for `month` at base + carry-forward.
    Existing rows are left alone unless `force`, which refreshes their
    amount_due and remarks. With `dry_run` nothing is written.
    """
    engine = engine or RecalculationEngine()
    stats = {
        'month': month,
        'created': 0,
        'updated': 0,
        'skipped': 0,
        'total_carry_forward': ZERO,
        'total_amount_due': ZERO,
        'rows': [],
    }
    residents = Resident.objects.filter(status=Resident.STATUS_ACTIVE).order_by('house_number', 'floor')

    with transaction.atomic():
        for resident in residents:
            carry = engine.carry_forward(resident.pk, month)
            base = resident.monthly_maintenance
            amount_due = base + carry
            existing = engine.repository.get_payment(resident.pk, month)
            if existing and not force:
                stats['skipped'] += 1
                continue

            stats['total_carry_forward'] += carry
            stats['total_amount_due'] += amount_due
            stats['rows'].append({
                'resident': resident.flat_label,
                'owner_name': resident.owner_name,
                'base': base,
                'carry_forward': carry,
                'amount_due': amount_due,
            })
            if dry_run:
                continue

            remarks = payment_remarks(base, carry)
            if existing:
                existing.amount_due = amount_due
                existing.remarks = remarks
                previous = engine.set_status(existing, classify_status(amount_due, existing.amount_paid))
                engine.save(existing, previous, fields=['amount_due', 'remarks', 'status'])
                stats['updated'] += 1
            else:
                payment = Payment.objects.create(
                    resident=resident,
                    payment_month=month,
                    amount_due=amount_due,
                    amount_paid=ZERO,
                    status=classify_status(amount_due, ZERO),
                    remarks=remarks,
                )
                if payment.status != Payment.STATUS_PENDING:
                    engine.notify(payment, Payment.STATUS_PENDING)
                stats['created'] += 1

    logger.info('Monthly payments for %s: created=%d updated=%d skipped=%d dry_run=%s',
                month, stats['created'], stats['updated'], stats['skipped'], dry_run)
    return stats


# ═══════════════════════════════════════════════════════════
#  OVERDUE
# ═══════════════════════════════════════════════════════════

def update_overdue_payments(today=None, engine=None):
    """Re-classify Pending payments whose due date has passed."""
    engine = engine or RecalculationEngine()
    today = today or date.today()
    updated = 0
    with transaction.atomic():
        candidates = Payment.objects.filter(
            status=Payment.STATUS_PENDING,
            payment_month__lt=month_of(today),
        ).order_by('payment_month')
        for payment in candidates:
            if not is_due_date_passed(payment.payment_month, today):
                continue
            if engine.refresh_status(payment, today) and payment.status == Payment.STATUS_OVERDUE:
                updated += 1
    logger.info('Marked %d payment(s) overdue', updated)
    return {'updated_count': updated}


# ═══════════════════════════════════════════════════════════
#  REPORTING
# ═══════════════════════════════════════════════════════════

def _collection_rate(total_due, total_paid):
    if total_due > 0:
        return round(float(total_paid / total_due * 100), 2)
    return 0


def payment_statistics(month=None):
    month = month or current_month()
    payments = Payment.objects.filter(payment_month=month)
    totals = payments.aggregate(due=Sum('amount_due'), paid=Sum('amount_paid'), count=Count('id'))
    total_due = totals['due'] or ZERO
    total_paid = totals['paid'] or ZERO

    by_status = dict(payments.order_by().values_list('status').annotate(n=Count('id')))
    by_method = dict(
        payments.order_by().exclude(payment_method='').values_list('payment_method')
        .annotate(total=Sum('amount_paid'))
    )
    active_residents = Resident.objects.filter(status=Resident.STATUS_ACTIVE).count()

    return {
        'month': month,
        'total_residents': active_residents,
        'total_payments': totals['count'],
        'total_amount_due': total_due,
        'total_amount_paid': total_paid,
        'total_balance_due': total_due - total_paid,
        'collection_percentage': _collection_rate(total_due, total_paid),
        'payment_counts': {
            'paid': by_status.get(Payment.STATUS_PAID, 0),
            'partial': by_status.get(Payment.STATUS_PARTIAL, 0),
            'pending': by_status.get(Payment.STATUS_PENDING, 0),
            'overdue': by_status.get(Payment.STATUS_OVERDUE, 0),
        },
        'payment_methods': {
            'cash': by_method.get('Cash', ZERO),
            'upi': by_method.get('UPI', ZERO),
            'bank_transfer': by_method.get('Bank Transfer', ZERO),
        },
        'residents_without_payment': max(0, active_residents - totals['count']),
    }


def defaulters(months_back=DEFAULTER_MONTHS_BACK, today=None):
    """Residents with unpaid months at least `months_back` old, largest balance first."""
    today = today or date.today()
    cutoff = shift_month(month_of(today), -months_back)
    payments = (
        Payment.objects.select_related('resident')
        .filter(payment_month__lte=cutoff)
        .exclude(status=Payment.STATUS_PAID)
        .order_by('payment_month')
    )

    grouped = {}
    for payment in payments:
        entry = grouped.setdefault(payment.resident_id, {
            'resident': payment.resident,
            'total_due': ZERO,
            'total_paid': ZERO,
            'overdue_months': 0,
            'oldest_due_month': payment.payment_month,
            'latest_due_month': payment.payment_month,
            'payments': [],
        })
        entry['total_due'] += payment.amount_due
        entry['total_paid'] += payment.amount_paid
        entry['overdue_months'] += 1
        entry['latest_due_month'] = payment.payment_month
        entry['payments'].append(payment)

    for entry in grouped.values():
        entry['total_balance'] = entry['total_due'] - entry['total_paid']
    return sorted(grouped.values(), key=lambda e: e['total_balance'], reverse=True)


def monthly_trends(start_month, end_month):
    rows = (
        Payment.objects.filter(payment_month__gte=start_month, payment_month__lte=end_month)
        .values('payment_month')
        .annotate(total_due=Sum('amount_due'), total_paid=Sum('amount_paid'), payment_count=Count('id'))
        .order_by('payment_month')
    )
    by_month = {r['payment_month']: r for r in rows}
    trends = []
    for month in months_between(start_month, end_month):
        row = by_month.get(month)
        if not row:
            continue
        trends.append({
            'month': month,
            'month_name': month_label(month),
            'total_due': row['total_due'],
            'total_paid': row['total_paid'],
            'collection_rate': _collection_rate(row['total_due'], row['total_paid']),
            'payment_count': row['payment_count'],
        })
    return trends


def unpaid_payments(month):
    """Active residents' payments for `month` that still carry a balance."""
    return (
        Payment.objects.select_related('resident')
        .filter(payment_month=month, resident__status=Resident.STATUS_ACTIVE,
                amount_paid__lt=F('amount_due'))
        .order_by('resident__house_number', 'resident__floor')
    )


# ═══════════════════════════════════════════════════════════
#  CSV EXPORT
# ═══════════════════════════════════════════════════════════

def export_rows(payments):
    for p in payments:
        yield [
            p.resident.flat_label,
            p.resident.owner_name,
            p.resident.contact_number,
            p.payment_month,
            f'{p.amount_due:.2f}',
            f'{p.amount_paid:.2f}',
            f'{p.balance_due:.2f}',
            p.status,
            p.payment_date.isoformat() if p.payment_date else 'N/A',
            p.payment_method or 'N/A',
            p.transaction_id or '',
            p.remarks or '',
        ]


def write_payments_csv(stream, payments):
    writer = csv.writer(stream)
    writer.writerow(CSV_HEADERS)
    for row in export_rows(payments):
        writer.writerow(row)
    return stream


def total_outstanding(month):
    total = unpaid_payments(month).aggregate(total=Sum(F('amount_due') - F('amount_paid')))['total']
    return total or Decimal('0')
