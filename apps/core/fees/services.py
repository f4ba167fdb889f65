from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from io import BytesIO

from PIL import Image, ImageDraw
from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.mail import send_mail
from django.db import transaction
from django.utils import timezone

from apps.core.students.models import Student
from apps.core.utils.formatting import format_currency
from apps.core.utils.nepali_calendar import to_bs_display

from .generation import plan_monthly_invoices, validate_billing_period
from .models import FeeStructureItem, Invoice, InvoiceItem, Payment, Waiver
from .reporting import dangling_ledger_entries, pending_invoices
from .settlement import settle_invoice

logger = logging.getLogger(__name__)

# The PDF renderer's default font has no Devanagari glyphs.
PDF_CURRENCY_SYMBOL = 'Rs.'


def _to_decimal(value) -> Decimal:
    try:
        return Decimal(str(value if value is not None else '0'))
    except InvalidOperation as exc:
        raise ValidationError(f'Invalid amount: {value!r}.') from exc


def _quantize(value) -> Decimal:
    return _to_decimal(value).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


def load_ledger_snapshot():
    """Full, consistent collections for one settlement/report computation."""
    snapshot = {
        'students': list(Student.objects.all()),
        'invoices': list(Invoice.objects.prefetch_related('items')),
        'payments': list(Payment.objects.all()),
        'waivers': list(Waiver.objects.all()),
        'fee_structure': list(FeeStructureItem.objects.order_by('id')),
    }

    dangling = dangling_ledger_entries(snapshot['invoices'], snapshot['payments'], snapshot['waivers'])
    if dangling['payments'] or dangling['waivers']:
        logger.warning(
            'Ledger has %s payments and %s waivers pointing at unknown invoices',
            len(dangling['payments']),
            len(dangling['waivers']),
        )
    return snapshot


def invoice_settlement(invoice: Invoice):
    return settle_invoice(
        invoice,
        list(Payment.objects.for_invoice(invoice)),
        list(Waiver.objects.for_invoice(invoice)),
    )


@transaction.atomic
def generate_monthly_invoices(*, month, year, issue_date=None, created_by=None):
    validate_billing_period(month, year)
    issue_date = issue_date or timezone.localdate()

    # Lock the roster so two concurrent runs for a period serialize here.
    students = list(Student.objects.select_for_update().active().order_by('id'))
    fee_structure = list(FeeStructureItem.objects.order_by('id'))
    existing = list(Invoice.objects.filter(month=month, year=year).only('student_id', 'month', 'year'))

    planned = plan_monthly_invoices(
        students=students,
        fee_structure=fee_structure,
        existing_invoices=existing,
        month=month,
        year=year,
        issue_date=issue_date,
    )

    created = []
    for plan in planned:
        invoice = Invoice(
            student=plan['student'],
            month=plan['month'],
            year=plan['year'],
            issue_date=plan['issue_date'],
            due_date=plan['due_date'],
            total_amount=_quantize(plan['total_amount']),
            created_by=created_by,
        )
        invoice.full_clean(validate_unique=False)
        invoice.save()
        InvoiceItem.objects.bulk_create([
            InvoiceItem(
                invoice=invoice,
                position=position,
                description=item['description'],
                amount=_quantize(item['amount']),
            )
            for position, item in enumerate(plan['items'], start=1)
        ])
        created.append(invoice)

    logger.info(
        'Generated %s invoices for %02d/%s (%s active students already invoiced)',
        len(created),
        month,
        year,
        len(students) - len(created),
    )
    return created


@transaction.atomic
def record_payment(*, invoice: Invoice, amount, payment_date=None, received_by=None):
    amount = _quantize(amount)
    if amount <= 0:
        raise ValidationError('Payment amount must be greater than zero.')

    payment = Payment(
        invoice=invoice,
        amount=amount,
        payment_date=payment_date or timezone.localdate(),
        received_by=received_by,
    )
    payment.full_clean()
    payment.save()

    logger.info('Recorded payment %s of %s on invoice %s', payment.pk, amount, invoice.pk)
    return payment


@transaction.atomic
def grant_waiver(*, invoice: Invoice, amount, reason, granted_by=None):
    amount = _quantize(amount)
    if amount <= 0:
        raise ValidationError('Waiver amount must be greater than zero.')

    reason = (reason or '').strip()
    if not reason:
        raise ValidationError('A reason is required for every waiver.')

    waiver = Waiver(
        invoice=invoice,
        amount=amount,
        reason=reason[:255],
        granted_by=granted_by,
    )
    waiver.full_clean()
    waiver.save()

    logger.info('Granted waiver %s of %s on invoice %s', waiver.pk, amount, invoice.pk)
    return waiver


def save_fee_item(*, description, amount, item: FeeStructureItem | None = None):
    item = item or FeeStructureItem()
    item.description = description
    item.amount = _quantize(amount)
    item.full_clean()
    item.save()
    logger.info('Saved fee item %s (%s)', item.pk, item.description)
    return item


def delete_fee_item(item: FeeStructureItem):
    # Issued invoices keep their own item snapshot.
    item_id = item.pk
    item.delete()
    logger.info('Deleted fee item %s', item_id)


def _reminder_message(row):
    invoice = row['invoice']
    student = row['student']
    return (
        f"Dear Parent/Guardian,\n\n"
        f"This is a reminder that the fee invoice {invoice.invoice_number} for "
        f"{student.name} ({invoice.period_label}) has an outstanding balance of "
        f"{format_currency(row['due_amount'])}.\n"
        f"Due date: {invoice.due_date} ({to_bs_display(invoice.due_date)}).\n\n"
        f"Please clear the dues at the school office.\n\n"
        f"{settings.SCHOOL_NAME} Administration\n"
    )


def send_fee_reminders(invoice_ids):
    """
    Email the guardian of each selected pending invoice.

    Invoices already settled or without a guardian email are skipped. A
    failing address is logged and does not stop the rest of the batch.
    """
    wanted = {int(invoice_id) for invoice_id in invoice_ids}
    snapshot = load_ledger_snapshot()
    rows = [
        row for row in pending_invoices(
            snapshot['students'],
            snapshot['invoices'],
            snapshot['payments'],
            snapshot['waivers'],
        )
        if row['invoice'].pk in wanted
    ]

    result = {'sent': [], 'skipped': [], 'failed': []}
    for row in rows:
        invoice = row['invoice']
        if not row['email']:
            result['skipped'].append(invoice)
            continue

        try:
            send_mail(
                subject=f"Fee reminder: {invoice.invoice_number} ({invoice.period_label})",
                message=_reminder_message(row),
                from_email=settings.DEFAULT_FROM_EMAIL,
                recipient_list=[row['email']],
                fail_silently=False,
            )
        except Exception:
            logger.warning('Fee reminder for invoice %s failed', invoice.pk, exc_info=True)
            result['failed'].append(invoice)
        else:
            result['sent'].append(invoice)

    logger.info(
        'Fee reminders: %s sent, %s skipped, %s failed',
        len(result['sent']),
        len(result['skipped']),
        len(result['failed']),
    )
    return result


def build_invoice_image(invoice: Invoice):
    width = 1240
    height = 1754
    page = Image.new('RGB', (width, height), color='white')
    draw = ImageDraw.Draw(page)

    student = invoice.student
    payments = list(invoice.payments.order_by('payment_date', 'id'))
    waivers = list(invoice.waivers.order_by('created_at', 'id'))
    settlement = settle_invoice(invoice, payments, waivers)

    draw.rectangle((30, 30, width - 30, height - 30), outline='black', width=3)
    draw.text((60, 60), f"{settings.SCHOOL_NAME} - Fee Invoice", fill='black')
    draw.text((60, 110), f"Invoice No: {invoice.invoice_number}", fill='black')
    draw.text((60, 150), f"Billing Period: {invoice.period_label}", fill='black')
    draw.text((60, 190), f"Issue Date: {invoice.issue_date} ({to_bs_display(invoice.issue_date)})", fill='black')
    draw.text((60, 230), f"Due Date: {invoice.due_date} ({to_bs_display(invoice.due_date)})", fill='black')
    draw.text((60, 270), f"Student: {student.name}", fill='black')
    draw.text((60, 310), f"Class: {student.student_class}  Roll: {student.roll}", fill='black')
    draw.text((60, 350), f"Guardian Contact: {student.guardian_contact}", fill='black')

    y = 430
    draw.text((60, y), 'Description', fill='black')
    draw.text((860, y), 'Amount', fill='black')
    draw.line((60, y + 26, width - 60, y + 26), fill='black')
    y += 50

    for item in invoice.items.all():
        draw.text((60, y), item.description, fill='black')
        draw.text((860, y), format_currency(item.amount, symbol=PDF_CURRENCY_SYMBOL), fill='black')
        y += 36

    y += 20
    draw.line((60, y, width - 60, y), fill='black')
    y += 30

    draw.text((60, y), f"Total: {format_currency(invoice.total_amount, symbol=PDF_CURRENCY_SYMBOL)}", fill='black')
    y += 36
    draw.text((60, y), f"Paid: {format_currency(settlement['paid_amount'], symbol=PDF_CURRENCY_SYMBOL)}", fill='black')
    y += 36
    draw.text((60, y), f"Waived: {format_currency(settlement['waiver_amount'], symbol=PDF_CURRENCY_SYMBOL)}", fill='black')
    y += 36
    draw.text((60, y), f"Balance Due: {format_currency(settlement['due_amount'], symbol=PDF_CURRENCY_SYMBOL)}", fill='black')
    y += 36
    draw.text((60, y), f"Status: {settlement['status']}", fill='black')
    y += 70

    if payments:
        draw.text((60, y), 'Payment History', fill='black')
        y += 36
        for payment in payments:
            draw.text((60, y), f"{payment.payment_date}  {format_currency(payment.amount, symbol=PDF_CURRENCY_SYMBOL)}", fill='black')
            y += 32

    return page


def image_to_pdf_bytes(images):
    if not images:
        return b''
    rgb_images = [img.convert('RGB') for img in images]
    output = BytesIO()
    rgb_images[0].save(output, format='PDF', save_all=True, append_images=rgb_images[1:])
    return output.getvalue()


def generate_invoice_pdf(invoice: Invoice) -> bytes:
    image = build_invoice_image(invoice)
    return image_to_pdf_bytes([image])
