"""
Aggregate figures folded from settle_invoice() over whole collections.

Everything here is recomputed from the ledger on every call; nothing is
cached or written back.
"""
from .settlement import STATUS_PAID, ZERO, settle_invoice, sum_amounts, to_decimal


def _students_by_id(students):
    return {student.pk: student for student in students}


def active_outstanding_total(students, invoices, payments, waivers):
    """Due amount of invoices whose student is active.

    Dues of deactivated students stay in the ledger but are left out of this
    figure.
    """
    by_id = _students_by_id(students)
    total = ZERO
    for invoice in invoices:
        student = by_id.get(invoice.student_id)
        if student is None or not student.is_active:
            continue
        total += settle_invoice(invoice, payments, waivers)['due_amount']
    return total


def total_collected(payments):
    return sum_amounts(payments)


def student_report_rows(students, invoices, payments, waivers):
    rows = []
    for student in students:
        student_invoices = [invoice for invoice in invoices if invoice.student_id == student.pk]
        total_billed = sum((to_decimal(invoice.total_amount) for invoice in student_invoices), ZERO)

        total_paid = ZERO
        total_due = ZERO
        for invoice in student_invoices:
            settlement = settle_invoice(invoice, payments, waivers)
            total_paid += settlement['paid_amount']
            total_due += settlement['due_amount']

        rows.append({
            'student': student,
            'student_id': student.pk,
            'student_name': student.name,
            'is_active': student.is_active,
            'total_billed': total_billed,
            'total_paid': total_paid,
            'total_due': total_due,
        })
    return rows


def invoice_rows(students, invoices, payments, waivers):
    by_id = _students_by_id(students)
    rows = []
    for invoice in invoices:
        student = by_id.get(invoice.student_id)
        rows.append({
            'invoice': invoice,
            'student': student,
            'student_name': student.name if student else 'N/A',
            'student_email': student.guardian_email if student else '',
            **settle_invoice(invoice, payments, waivers),
        })
    rows.sort(key=lambda row: (row['invoice'].issue_date, row['invoice'].pk or 0), reverse=True)
    return rows


def pending_invoices(students, invoices, payments, waivers):
    """Invoices with something left to pay, with the contact needed to chase them."""
    return [
        {
            **row,
            'email': row['student_email'],
            'due_date': row['invoice'].due_date,
        }
        for row in invoice_rows(students, invoices, payments, waivers)
        if row['due_amount'] > 0
    ]


def report_summary_stats(students, invoices, payments, waivers):
    settlements = [settle_invoice(invoice, payments, waivers) for invoice in invoices]
    return {
        'total_students': len(students),
        'total_collected': total_collected(payments),
        'total_due': sum((settlement['due_amount'] for settlement in settlements), ZERO),
        'pending_invoices': sum(1 for settlement in settlements if settlement['status'] != STATUS_PAID),
    }


def dashboard_stats(students, invoices, payments, waivers, recent_limit=3):
    by_invoice = {invoice.pk: invoice for invoice in invoices}
    by_student = _students_by_id(students)

    recent_payments = []
    for payment in sorted(payments, key=lambda entry: (entry.payment_date, entry.pk or 0), reverse=True)[:recent_limit]:
        invoice = by_invoice.get(payment.invoice_id)
        student = by_student.get(invoice.student_id) if invoice else None
        recent_payments.append({
            'payment': payment,
            'invoice': invoice,
            'student_name': student.name if student else 'N/A',
        })

    unpaid = [
        row for row in invoice_rows(students, invoices, payments, waivers)
        if row['status'] != STATUS_PAID
    ]

    return {
        'active_students': sum(1 for student in students if student.is_active),
        'total_collected': total_collected(payments),
        'total_due': active_outstanding_total(students, invoices, payments, waivers),
        'recent_payments': recent_payments,
        'recent_unpaid_invoices': unpaid[:recent_limit],
    }


def dangling_ledger_entries(invoices, payments, waivers):
    """Payments and waivers whose invoice is not in ``invoices``."""
    known = {invoice.pk for invoice in invoices}
    return {
        'payments': [payment for payment in payments if payment.invoice_id not in known],
        'waivers': [waiver for waiver in waivers if waiver.invoice_id not in known],
    }
