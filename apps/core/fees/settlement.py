"""
Invoice settlement.

Settlement is never stored: it is folded from the payment and waiver ledger
each time it is needed, so it cannot drift from the rows it describes.
"""
from decimal import Decimal

STATUS_PAID = 'Paid'
STATUS_PARTIAL = 'Partial'
STATUS_UNPAID = 'Unpaid'
STATUS_CHOICES = (
    (STATUS_UNPAID, 'Unpaid'),
    (STATUS_PARTIAL, 'Partial'),
    (STATUS_PAID, 'Paid'),
)

ZERO = Decimal('0.00')


def to_decimal(value) -> Decimal:
    return Decimal(str(value or '0'))


def sum_amounts(entries) -> Decimal:
    return sum((to_decimal(entry.amount) for entry in entries), ZERO)


def entries_for_invoice(entries, invoice_id):
    return [entry for entry in entries if entry.invoice_id == invoice_id]


def derive_status(*, raw_due: Decimal, paid_amount: Decimal, waiver_amount: Decimal) -> str:
    if raw_due <= 0:
        return STATUS_PAID
    if paid_amount > 0 or waiver_amount > 0:
        return STATUS_PARTIAL
    return STATUS_UNPAID


def settle_invoice(invoice, payments, waivers) -> dict:
    """
    Settle one invoice against the full payment and waiver collections.

    Entries are matched on ``invoice_id``; anything pointing elsewhere is
    ignored. Overpayment clamps ``due_amount`` at zero and the excess is not
    kept as a credit. Never raises for numeric amounts.
    """
    paid_amount = sum_amounts(entries_for_invoice(payments, invoice.pk))
    waiver_amount = sum_amounts(entries_for_invoice(waivers, invoice.pk))

    raw_due = to_decimal(invoice.total_amount) - paid_amount - waiver_amount

    return {
        'paid_amount': paid_amount,
        'waiver_amount': waiver_amount,
        'due_amount': raw_due if raw_due > 0 else ZERO,
        'status': derive_status(
            raw_due=raw_due,
            paid_amount=paid_amount,
            waiver_amount=waiver_amount,
        ),
    }
