"""
RWA — Data Models (PostgreSQL optimized)

Model hierarchy:
  User (custom auth, committee members)
  Resident (one flat / house)
  ├── Payment (monthly maintenance per resident)
  │    └── Receipt (issued once a payment is fully paid)
  └── MaintenanceChangeLog (audit of base-maintenance changes)
"""

from decimal import Decimal
from django.db import models
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.core.validators import MinValueValidator

from .months import due_date


# ═══════════════════════════════════════════════════════════
#  CUSTOM USER
# ═══════════════════════════════════════════════════════════

class UserManager(BaseUserManager):
    def create_user(self, email, name, password=None, **extra):
        if not email:
            raise ValueError('Email is required')
        user = self.model(email=self.normalize_email(email), name=name, **extra)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, name, password=None, **extra):
        extra.setdefault('is_staff', True)
        extra.setdefault('is_superuser', True)
        extra.setdefault('role', User.ROLE_ADMIN)
        return self.create_user(email, name, password, **extra)


class User(AbstractBaseUser, PermissionsMixin):
    """
    RWA committee member operating the backend.
    Admins manage residents; treasurers record payments; viewers read only.
    """
    ROLE_ADMIN = 'admin'
    ROLE_TREASURER = 'treasurer'
    ROLE_VIEWER = 'viewer'
    ROLE_CHOICES = [
        (ROLE_ADMIN, 'Administrator'),
        (ROLE_TREASURER, 'Treasurer'),
        (ROLE_VIEWER, 'Viewer'),
    ]

    email = models.EmailField(unique=True, db_index=True)
    name = models.CharField(max_length=200)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_VIEWER)
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()
    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['name']

    class Meta:
        db_table = 'users'
        ordering = ['name']

    def __str__(self):
        return f'{self.name} <{self.email}>'


# ═══════════════════════════════════════════════════════════
#  RESIDENT
# ═══════════════════════════════════════════════════════════

class Resident(models.Model):
    """
    A household in the society.
    `monthly_maintenance` is the base charge before any carry-forward.
    """
    STATUS_ACTIVE = 'active'
    STATUS_INACTIVE = 'inactive'
    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_INACTIVE, 'Inactive'),
    ]
    STATE_OCCUPIED = 'occupied'
    STATE_VACANT = 'vacant'
    STATE_CHOICES = [
        (STATE_OCCUPIED, 'Occupied'),
        (STATE_VACANT, 'Vacant'),
    ]

    house_number = models.CharField(max_length=20, db_index=True)
    floor = models.CharField(max_length=20, blank=True, default='')
    owner_name = models.CharField(max_length=255, db_index=True)
    contact_number = models.CharField(max_length=20, blank=True, default='')
    email = models.EmailField(blank=True, default='')
    address = models.TextField(blank=True, default='')
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_ACTIVE,
                              db_index=True)
    current_state = models.CharField(max_length=10, choices=STATE_CHOICES,
                                     default=STATE_OCCUPIED)
    monthly_maintenance = models.DecimalField(max_digits=10, decimal_places=2, default=0,
                                              validators=[MinValueValidator(0)])
    move_in_date = models.DateField(null=True, blank=True)
    emergency_contact = models.CharField(max_length=255, blank=True, default='')
    emergency_phone = models.CharField(max_length=20, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'residents'
        ordering = ['house_number', 'floor']
        unique_together = ['house_number', 'floor']

    def __str__(self):
        return f'{self.flat_label} — {self.owner_name}'

    @property
    def flat_label(self):
        if self.floor:
            return f'{self.house_number}/{self.floor}'
        return self.house_number


# ═══════════════════════════════════════════════════════════
#  PAYMENT (Monthly maintenance per resident)
# ═══════════════════════════════════════════════════════════

class Payment(models.Model):
    """
    A monthly maintenance record for a resident.
    `status` is stored, and must be re-derived whenever either amount changes.
    """
    STATUS_PENDING = 'Pending'
    STATUS_PARTIAL = 'Partial'
    STATUS_PAID = 'Paid'
    STATUS_OVERDUE = 'Overdue'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_PARTIAL, 'Partial'),
        (STATUS_PAID, 'Paid'),
        (STATUS_OVERDUE, 'Overdue'),
    ]
    METHOD_CHOICES = [
        ('Cash', 'Cash'),
        ('UPI', 'UPI'),
        ('Bank Transfer', 'Bank Transfer'),
    ]

    resident = models.ForeignKey(Resident, on_delete=models.PROTECT, related_name='payments')
    payment_month = models.CharField(max_length=7, db_index=True, help_text='Format: YYYY-MM')
    amount_due = models.DecimalField(max_digits=10, decimal_places=2, default=0,
                                     validators=[MinValueValidator(0)])
    amount_paid = models.DecimalField(max_digits=10, decimal_places=2, default=0,
                                      validators=[MinValueValidator(0)])
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING,
                              db_index=True)
    payment_date = models.DateField(null=True, blank=True)
    payment_method = models.CharField(max_length=15, choices=METHOD_CHOICES,
                                      blank=True, default='')
    transaction_id = models.CharField(max_length=255, blank=True, default='')
    remarks = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'payments'
        ordering = ['-payment_month', 'resident__house_number']
        constraints = [
            models.UniqueConstraint(fields=['resident', 'payment_month'],
                                    name='payments_resident_month_unique'),
        ]
        indexes = [
            models.Index(fields=['payment_month', 'status'], name='payments_month_status_idx'),
        ]

    def __str__(self):
        return f'{self.resident.flat_label} — {self.payment_month} ({self.status})'

    @property
    def balance_due(self):
        return max(Decimal('0'), self.amount_due - self.amount_paid)

    @property
    def due_date(self):
        return due_date(self.payment_month)


# ═══════════════════════════════════════════════════════════
#  RECEIPT
# ═══════════════════════════════════════════════════════════

class Receipt(models.Model):
    """Issued once per fully paid payment."""
    payment = models.OneToOneField(Payment, on_delete=models.CASCADE, related_name='receipt')
    receipt_number = models.CharField(max_length=20, unique=True)
    receipt_date = models.DateField(db_index=True)
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    tax_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=10, decimal_places=2)
    notes = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'receipts'
        ordering = ['-receipt_date', '-receipt_number']

    def __str__(self):
        return self.receipt_number


# ═══════════════════════════════════════════════════════════
#  MAINTENANCE CHANGE LOG (audit trail)
# ═══════════════════════════════════════════════════════════

class MaintenanceChangeLog(models.Model):
    """Base maintenance changes inferred from payment edits."""
    resident = models.ForeignKey(Resident, on_delete=models.CASCADE,
                                 related_name='maintenance_changes')
    old_maintenance = models.DecimalField(max_digits=10, decimal_places=2)
    new_maintenance = models.DecimalField(max_digits=10, decimal_places=2)
    payment_month = models.CharField(max_length=7)
    changed_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='maintenance_changes')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'maintenance_change_logs'
        ordering = ['-created_at']

    def __str__(self):
        return f'{self.resident_id}: {self.old_maintenance} → {self.new_maintenance}'
