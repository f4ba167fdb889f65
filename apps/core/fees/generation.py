import calendar
from datetime import date, timedelta
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured, ValidationError

from .settlement import ZERO, to_decimal

DUE_POLICY_DAYS_AFTER_ISSUE = 'days_after_issue'
DUE_POLICY_DAY_OF_NEXT_MONTH = 'day_of_next_month'


def validate_billing_period(month, year):
    if month not in range(1, 13):
        raise ValidationError('Billing month must be between 1 and 12.')
    if year is None or year <= 0:
        raise ValidationError('Billing year must be a positive number.')


def compute_due_date(issue_date: date, policy=None, offset=None) -> date:
    policy = policy or settings.INVOICE_DUE_POLICY
    offset = settings.INVOICE_DUE_OFFSET if offset is None else offset

    if policy == DUE_POLICY_DAYS_AFTER_ISSUE:
        return issue_date + timedelta(days=max(offset, 0))

    if policy == DUE_POLICY_DAY_OF_NEXT_MONTH:
        if issue_date.month == 12:
            year, month = issue_date.year + 1, 1
        else:
            year, month = issue_date.year, issue_date.month + 1
        last_day = calendar.monthrange(year, month)[1]
        return date(year, month, min(max(offset, 1), last_day))

    raise ImproperlyConfigured(f'Unknown invoice due date policy: {policy!r}')


def billing_period_key(student_id, month, year):
    return (student_id, int(month), int(year))


def snapshot_fee_items(fee_structure):
    return [
        {
            'description': item.description,
            'amount': to_decimal(item.amount),
        }
        for item in fee_structure
    ]


def plan_monthly_invoices(
    *,
    students,
    fee_structure,
    existing_invoices,
    month,
    year,
    issue_date: date,
    due_date: date = None,
    skip_empty=None,
):
    """
    Work out which invoices a generation run for (month, year) must create.

    One plan per active student that has no invoice for the period yet,
    keyed on (student, month, year), so repeated runs never double-bill.
    Each plan carries its own copy of the fee items; later edits to the fee
    structure do not reach invoices already planned or issued.
    """
    if skip_empty is None:
        skip_empty = settings.INVOICE_SKIP_EMPTY_FEE_STRUCTURE

    items = snapshot_fee_items(fee_structure)
    if not items and skip_empty:
        return []

    total_amount = sum((item['amount'] for item in items), ZERO)
    due_date = due_date or compute_due_date(issue_date)

    covered = {
        billing_period_key(invoice.student_id, invoice.month, invoice.year)
        for invoice in existing_invoices
    }

    planned = []
    for student in students:
        if not student.is_active:
            continue
        key = billing_period_key(student.pk, month, year)
        if key in covered:
            continue
        covered.add(key)
        planned.append({
            'student': student,
            'month': month,
            'year': year,
            'issue_date': issue_date,
            'due_date': due_date,
            'items': [dict(item) for item in items],
            'total_amount': Decimal(total_amount),
        })
    return planned
