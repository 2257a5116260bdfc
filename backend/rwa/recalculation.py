"""
RWA — Carry-forward recalculation engine

Each month's amount_due is the resident's base maintenance plus whatever was
left unpaid in the immediately preceding month. Editing one month therefore
ripples forward through every later month of that resident:

  PaymentEditor.update_payment
    ├── classify_status            (re-derive the edited row's status)
    ├── RecalculationEngine.cascade            (future months, current base)
    └── RecalculationEngine.propagate_maintenance_change
                                    (only when amount_due moved by >= threshold;
                                     stores the new base and re-walks the future
                                     months with it)

Nothing here is triggered from model save hooks; callers invoke the editor
explicitly and pass the acting user.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Callable, List, Optional

from django.db import DatabaseError, transaction

from .exceptions import PaymentRuleError, RecalculationError
from .models import MaintenanceChangeLog, Payment, Resident
from .months import is_due_date_passed, next_month, previous_month
from .signals import emit_status_changed

logger = logging.getLogger(__name__)

# A change in amount_due of at least this much is read as a change of the
# resident's base maintenance rather than a one-off adjustment.
MAINTENANCE_CHANGE_THRESHOLD = Decimal('10')

ZERO = Decimal('0')


def _dec(value):
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value or 0))


# ═══════════════════════════════════════════════════════════
#  STATUS CLASSIFIER
# ═══════════════════════════════════════════════════════════

def classify_status(amount_due, amount_paid):
    """Due/paid-only classification: Paid, Partial or Pending."""
    amount_due, amount_paid = _dec(amount_due), _dec(amount_paid)
    if amount_paid >= amount_due:
        return Payment.STATUS_PAID
    if amount_paid > 0:
        return Payment.STATUS_PARTIAL
    return Payment.STATUS_PENDING


def classify_status_by_date(amount_due, amount_paid, due_date_passed):
    """Like classify_status, but an unpaid row past its due date is Overdue."""
    status = classify_status(amount_due, amount_paid)
    if status == Payment.STATUS_PENDING and due_date_passed:
        return Payment.STATUS_OVERDUE
    return status


# ═══════════════════════════════════════════════════════════
#  REMARKS
# ═══════════════════════════════════════════════════════════

def format_currency(amount):
    """₹1,234.50"""
    return f'₹{_dec(amount):,.2f}'


def payment_remarks(base_maintenance, carry_forward):
    parts = []
    if _dec(carry_forward) > 0:
        parts.append(f'Includes carry-forward of {format_currency(carry_forward)} from previous month')
    parts.append(f'Base maintenance: {format_currency(base_maintenance)}')
    return '. '.join(parts)


def append_remark(existing, new):
    if not new:
        return existing
    if not existing:
        return new
    return f'{existing} | {new}'


# ═══════════════════════════════════════════════════════════
#  PERSISTENCE
# ═══════════════════════════════════════════════════════════

class PaymentRepository:
    """Django ORM access used by the engine."""

    def get_payment(self, resident_id, month) -> Optional[Payment]:
        return Payment.objects.filter(resident_id=resident_id, payment_month=month).first()

    def get_future_payments(self, resident_id, after_month) -> List[Payment]:
        return list(
            Payment.objects.filter(resident_id=resident_id, payment_month__gt=after_month)
            .order_by('payment_month')
        )

    def save_payment(self, payment, fields=None):
        if fields:
            payment.save(update_fields=list(fields) + ['updated_at'])
        else:
            payment.save()

    def get_resident(self, resident_id, lock=False) -> Resident:
        qs = Resident.objects.all()
        if lock:
            qs = qs.select_for_update()
        return qs.get(pk=resident_id)

    def save_resident(self, resident, fields=None):
        if fields:
            resident.save(update_fields=list(fields) + ['updated_at'])
        else:
            resident.save()


# ═══════════════════════════════════════════════════════════
#  AUDIT
# ═══════════════════════════════════════════════════════════

@dataclass
class MaintenanceChange:
    resident_id: int
    old_maintenance: Decimal
    new_maintenance: Decimal
    payment_month: str
    actor: object = None
    updated_payments: List[Payment] = field(default_factory=list)


def record_maintenance_change(change):
    """Default audit sink: a MaintenanceChangeLog row plus a log line."""
    logger.info(
        'Maintenance updated via payment edit: resident=%s old=%s new=%s month=%s updated_by=%s',
        change.resident_id, change.old_maintenance, change.new_maintenance,
        change.payment_month, getattr(change.actor, 'pk', None) or 'system',
    )
    try:
        with transaction.atomic():
            MaintenanceChangeLog.objects.create(
                resident_id=change.resident_id,
                old_maintenance=change.old_maintenance,
                new_maintenance=change.new_maintenance,
                payment_month=change.payment_month,
                changed_by=change.actor if getattr(change.actor, 'pk', None) else None,
            )
    except DatabaseError:
        logger.exception('Could not store maintenance change for resident %s', change.resident_id)


# ═══════════════════════════════════════════════════════════
#  ENGINE
# ═══════════════════════════════════════════════════════════

class RecalculationEngine:
    """
    Carry-forward calculator, recalculation cascade and maintenance-change
    propagator. `notify(payment, previous_status)` is called for every stored
    status change; `audit(MaintenanceChange)` for every base-rate change.
    """

    def __init__(self, repository=None, notify: Callable = None, audit: Callable = None):
        self.repository = repository or PaymentRepository()
        self.notify = notify or emit_status_changed
        self.audit = audit or record_maintenance_change

    # ── status ───────────────────────────────────

    def set_status(self, payment, new_status):
        """Assign a status; returns the previous value if it changed, else None."""
        previous = payment.status
        if previous == new_status:
            return None
        payment.status = new_status
        return previous

    def save(self, payment, previous_status=None, fields=None):
        self.repository.save_payment(payment, fields)
        if previous_status is not None:
            self.notify(payment, previous_status)

    @contextmanager
    def coalesced_notifications(self):
        """
        Hold status changes until the block ends, then send one notification
        per payment with its first previous status and its final status.
        Rows that end where they started are not reported.
        """
        pending = {}
        deliver = self.notify

        def collect(payment, previous_status):
            if payment.pk in pending:
                previous_status = pending[payment.pk][0]
            pending[payment.pk] = (previous_status, payment)

        self.notify = collect
        try:
            yield
        finally:
            self.notify = deliver
        for previous_status, payment in pending.values():
            if payment.status != previous_status:
                deliver(payment, previous_status)

    def refresh_status(self, payment, today=None):
        """Re-classify against the due date (Overdue-aware). True if it changed."""
        new_status = classify_status_by_date(
            payment.amount_due, payment.amount_paid,
            is_due_date_passed(payment.payment_month, today),
        )
        previous = self.set_status(payment, new_status)
        if previous is None:
            return False
        self.save(payment, previous, fields=['status'])
        return True

    # ── carry-forward ────────────────────────────

    def carry_forward(self, resident_id, month):
        """Unpaid balance of the month immediately before `month` (never negative)."""
        previous = self.repository.get_payment(resident_id, previous_month(month))
        if previous is None:
            return ZERO
        return max(ZERO, previous.amount_due - previous.amount_paid)

    # ── cascade ──────────────────────────────────

    def cascade(self, resident_id, edited_month):
        """
        Recompute amount_due = base + carry-forward for every month after
        `edited_month`, oldest first so each month sees its predecessor's
        updated figures. Rows whose amount_due is already right are not
        written. Returns the updated payments.
        """
        base = self.repository.get_resident(resident_id).monthly_maintenance
        updated = []
        for payment in self.repository.get_future_payments(resident_id, edited_month):
            carry = self.carry_forward(resident_id, payment.payment_month)
            new_due = base + carry
            if payment.amount_due == new_due:
                continue
            payment.amount_due = new_due
            payment.remarks = payment_remarks(base, carry)
            previous = self.set_status(payment, classify_status(new_due, payment.amount_paid))
            self.save(payment, previous, fields=['amount_due', 'remarks', 'status'])
            updated.append(payment)
        if updated:
            logger.debug('Cascade for resident %s after %s updated %d month(s)',
                         resident_id, edited_month, len(updated))
        return updated

    # ── maintenance change ───────────────────────

    def propagate_maintenance_change(self, payment, old_amount_due, new_amount_due, actor=None):
        """
        Treat a large amount_due edit as a new base maintenance: store it on the
        resident, audit it, and re-walk later months with the new base.
        Returns the MaintenanceChange, or None when the edit is not significant.
        """
        carry = self.carry_forward(payment.resident_id, payment.payment_month)
        old_base = _dec(old_amount_due) - carry
        new_base = _dec(new_amount_due) - carry
        if new_base <= 0 or abs(new_base - old_base) < MAINTENANCE_CHANGE_THRESHOLD:
            return None

        resident = self.repository.get_resident(payment.resident_id)
        resident.monthly_maintenance = new_base
        self.repository.save_resident(resident, fields=['monthly_maintenance'])

        change = MaintenanceChange(
            resident_id=resident.pk,
            old_maintenance=old_base,
            new_maintenance=new_base,
            payment_month=payment.payment_month,
            actor=actor,
        )
        try:
            self.audit(change)
        except Exception:
            logger.exception('Audit sink failed for resident %s', resident.pk)

        change.updated_payments = self.forward_walk(resident.pk, payment.payment_month, new_base)
        return change

    def forward_walk(self, resident_id, after_month, base):
        """
        Rewrite every month after `after_month` to base + carry-forward.
        Status only moves up to Partial/Paid here; a row is never put back
        to Pending by this walk.
        """
        updated = []
        for payment in self.repository.get_future_payments(resident_id, after_month):
            carry = self.carry_forward(resident_id, payment.payment_month)
            new_due = base + carry
            payment.amount_due = new_due
            payment.remarks = payment_remarks(base, carry)
            previous = None
            if payment.amount_paid >= new_due:
                previous = self.set_status(payment, Payment.STATUS_PAID)
            elif payment.amount_paid > 0:
                previous = self.set_status(payment, Payment.STATUS_PARTIAL)
            self.save(payment, previous, fields=['amount_due', 'remarks', 'status'])
            updated.append(payment)
        return updated


# ═══════════════════════════════════════════════════════════
#  EDIT BOUNDARY
# ═══════════════════════════════════════════════════════════

@dataclass
class EditResult:
    payment: Payment
    cascaded: List[Payment] = field(default_factory=list)
    maintenance_change: Optional[MaintenanceChange] = None


class PaymentEditor:
    """
    Applies a validated edit to one payment and everything it implies for the
    resident's later months, in a single transaction with the resident row
    locked.
    """
    EDITABLE_FIELDS = ('remarks', 'payment_method', 'transaction_id', 'payment_date')

    def __init__(self, engine=None):
        self.engine = engine or RecalculationEngine()

    def update_payment(self, payment, amount_due=None, amount_paid=None, actor=None, **metadata):
        unknown = set(metadata) - set(self.EDITABLE_FIELDS)
        if unknown:
            raise TypeError(f'Unexpected payment fields: {", ".join(sorted(unknown))}')

        engine = self.engine
        try:
            with transaction.atomic(), engine.coalesced_notifications():
                engine.repository.get_resident(payment.resident_id, lock=True)
                # Another edit may have committed while we waited for the lock.
                payment.refresh_from_db()

                old_due, old_paid = payment.amount_due, payment.amount_paid
                new_due = old_due if amount_due is None else _dec(amount_due)
                new_paid = old_paid if amount_paid is None else _dec(amount_paid)
                if new_paid > new_due:
                    raise PaymentRuleError('Amount paid cannot exceed amount due.')

                for name, value in metadata.items():
                    setattr(payment, name, value)
                payment.amount_due = new_due
                payment.amount_paid = new_paid

                previous = engine.set_status(payment, classify_status(new_due, new_paid))
                if payment.payment_date is None and (
                        payment.status == Payment.STATUS_PAID or new_paid > old_paid):
                    payment.payment_date = date.today()
                engine.save(payment, previous, fields=list(dict.fromkeys([
                    'amount_due', 'amount_paid', 'status', 'payment_date', *metadata,
                ])))

                result = EditResult(payment=payment)
                due_changed = new_due != old_due
                if due_changed or new_paid != old_paid:
                    result.cascaded = engine.cascade(payment.resident_id, payment.payment_month)
                if due_changed and abs(new_due - old_due) >= MAINTENANCE_CHANGE_THRESHOLD:
                    result.maintenance_change = engine.propagate_maintenance_change(
                        payment, old_due, new_due, actor=actor,
                    )
        except DatabaseError as exc:
            logger.exception('Payment %s (%s) update failed; rolled back',
                             payment.pk, payment.payment_month)
            raise RecalculationError(
                f'Could not update payment for {payment.payment_month}; no changes were saved.'
            ) from exc
        return result

    def record_partial_payment(self, payment, amount, actor=None, payment_date=None,
                               payment_method='', transaction_id='', remarks=''):
        amount = _dec(amount)
        if amount <= 0:
            raise PaymentRuleError('Payment amount must be greater than zero.')

        with transaction.atomic():
            self.engine.repository.get_resident(payment.resident_id, lock=True)
            payment.refresh_from_db()
            new_total = payment.amount_paid + amount
            if new_total > payment.amount_due:
                raise PaymentRuleError('Payment amount exceeds the due amount.')

            metadata = {'payment_date': payment_date or date.today()}
            if payment_method:
                metadata['payment_method'] = payment_method
            if transaction_id:
                metadata['transaction_id'] = transaction_id
            if remarks:
                metadata['remarks'] = append_remark(payment.remarks, remarks)
            return self.update_payment(payment, amount_paid=new_total, actor=actor, **metadata)
