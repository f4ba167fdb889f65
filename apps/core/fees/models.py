import calendar
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q, Sum
from django.utils import timezone

from apps.core.students.models import Student
from apps.core.utils.managers import LedgerManager


MONTH_CHOICES = tuple((number, calendar.month_name[number]) for number in range(1, 13))


class LedgerRecordModel(models.Model):
    class Meta:
        abstract = True

    def delete(self, *args, **kwargs):
        raise ValidationError('Ledger entries cannot be deleted. Record a new entry instead.')


class FeeStructureItem(models.Model):
    description = models.CharField(max_length=150)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['id']
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gte=0),
                name='fee_item_amount_not_negative',
            ),
        ]

    def clean(self):
        super().clean()
        if self.description:
            self.description = self.description.strip()
        if not self.description:
            raise ValidationError({'description': 'Fee description is required.'})
        if self.amount is None or self.amount < 0:
            raise ValidationError({'amount': 'Amount must be zero or greater.'})

    def __str__(self):
        return f"{self.description} ({self.amount})"


class Invoice(models.Model):
    student = models.ForeignKey(
        Student,
        on_delete=models.PROTECT,
        related_name='invoices',
    )
    month = models.PositiveSmallIntegerField(choices=MONTH_CHOICES)
    year = models.PositiveIntegerField()
    issue_date = models.DateField(default=timezone.localdate)
    due_date = models.DateField()
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='generated_invoices',
    )
    created_at = models.DateTimeField(auto_now_add=True)

    ISSUED_FIELDS = ('student_id', 'month', 'year', 'issue_date', 'due_date', 'total_amount')

    class Meta:
        ordering = ['-issue_date', '-id']
        constraints = [
            models.UniqueConstraint(
                fields=['student', 'month', 'year'],
                name='unique_invoice_per_student_period',
            ),
            models.CheckConstraint(
                condition=Q(total_amount__gte=0),
                name='invoice_total_not_negative',
            ),
        ]
        indexes = [
            models.Index(fields=['year', 'month'], name='fees_invoice_period_idx'),
        ]

    @property
    def period_label(self):
        return f"{calendar.month_name[self.month]} {self.year}"

    @property
    def invoice_number(self):
        return f"INV-{self.year}{self.month:02d}-{self.pk or 0:05d}"

    def clean(self):
        super().clean()
        if self.due_date and self.issue_date and self.due_date < self.issue_date:
            raise ValidationError({'due_date': 'Due date cannot be before issue date.'})

    def save(self, *args, **kwargs):
        if self.pk:
            issued = type(self).objects.filter(pk=self.pk).values(*self.ISSUED_FIELDS).first()
            if issued is not None:
                changed = [
                    field for field in self.ISSUED_FIELDS
                    if not self._same_value(issued[field], getattr(self, field))
                ]
                if changed:
                    raise ValidationError(
                        f"Issued invoices cannot be changed ({', '.join(changed)})."
                    )
        super().save(*args, **kwargs)

    @staticmethod
    def _same_value(stored, current):
        if isinstance(stored, Decimal):
            return current is not None and stored == Decimal(str(current))
        return stored == current

    def delete(self, *args, **kwargs):
        raise ValidationError('Invoices cannot be deleted once issued.')

    def __str__(self):
        return f"{self.invoice_number} - {self.student.name} ({self.period_label})"


class InvoiceItem(models.Model):
    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.CASCADE,
        related_name='items',
    )
    position = models.PositiveSmallIntegerField()
    description = models.CharField(max_length=150)
    amount = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        ordering = ['position', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['invoice', 'position'],
                name='unique_invoice_item_position',
            ),
        ]

    def save(self, *args, **kwargs):
        if self.pk and type(self).objects.filter(pk=self.pk).exists():
            raise ValidationError('Invoice items cannot be changed once issued.')

        # Lines may only be added while they still fit the issued total.
        billed = (
            type(self).objects.filter(invoice_id=self.invoice_id).aggregate(total=Sum('amount'))['total']
            or Decimal('0')
        )
        if billed + Decimal(str(self.amount or '0')) > self.invoice.total_amount:
            raise ValidationError('Invoice items cannot exceed the issued invoice total.')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError('Invoice items cannot be deleted once issued.')

    def __str__(self):
        return f"{self.description}: {self.amount}"


class Payment(LedgerRecordModel):
    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.PROTECT,
        related_name='payments',
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_date = models.DateField(default=timezone.localdate)
    received_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='received_payments',
    )
    created_at = models.DateTimeField(auto_now_add=True)

    objects = LedgerManager()

    class Meta:
        ordering = ['-payment_date', '-id']
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name='payment_amount_positive',
            ),
        ]
        indexes = [
            models.Index(fields=['invoice', 'payment_date'], name='fees_payment_invoice_idx'),
        ]

    def clean(self):
        super().clean()
        if self.amount is None or self.amount <= 0:
            raise ValidationError({'amount': 'Payment amount must be greater than zero.'})

    def __str__(self):
        return f"Payment {self.amount} on invoice {self.invoice_id}"


class Waiver(LedgerRecordModel):
    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.PROTECT,
        related_name='waivers',
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    reason = models.CharField(max_length=255)
    granted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='granted_waivers',
    )
    created_at = models.DateTimeField(auto_now_add=True)

    objects = LedgerManager()

    class Meta:
        ordering = ['-created_at', '-id']
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name='waiver_amount_positive',
            ),
        ]

    def clean(self):
        super().clean()
        if self.amount is None or self.amount <= 0:
            raise ValidationError({'amount': 'Waiver amount must be greater than zero.'})
        if not (self.reason or '').strip():
            raise ValidationError({'reason': 'A reason is required for every waiver.'})

    def __str__(self):
        return f"Waiver {self.amount} on invoice {self.invoice_id}"
