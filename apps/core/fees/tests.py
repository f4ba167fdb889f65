from datetime import date
from decimal import Decimal
from itertools import permutations
from unittest import mock

from django.contrib.auth import get_user_model
from django.core import mail
from django.core.exceptions import ImproperlyConfigured, ValidationError
from django.template import Context, Template
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse

from apps.core.students.models import Student
from apps.core.users.models import AuditLog
from apps.core.utils.formatting import format_currency, group_indian_digits
from apps.core.utils.nepali_calendar import INVALID_DATE, to_bs_display

from .generation import (
    DUE_POLICY_DAY_OF_NEXT_MONTH,
    DUE_POLICY_DAYS_AFTER_ISSUE,
    compute_due_date,
    plan_monthly_invoices,
    validate_billing_period,
)
from .models import FeeStructureItem, Invoice, InvoiceItem, Payment, Waiver
from .reporting import (
    active_outstanding_total,
    dangling_ledger_entries,
    dashboard_stats,
    invoice_rows,
    pending_invoices,
    report_summary_stats,
    student_report_rows,
    total_collected,
)
from .services import (
    delete_fee_item,
    generate_invoice_pdf,
    generate_monthly_invoices,
    grant_waiver,
    invoice_settlement,
    record_payment,
    save_fee_item,
    send_fee_reminders,
)
from .settlement import STATUS_CHOICES, STATUS_PAID, STATUS_PARTIAL, STATUS_UNPAID, settle_invoice


def _invoice(pk, total, student_id=1, month=4, year=2025, issue_date=date(2025, 4, 1)):
    return Invoice(
        pk=pk,
        student_id=student_id,
        month=month,
        year=year,
        issue_date=issue_date,
        due_date=issue_date,
        total_amount=Decimal(total),
    )


def _payment(invoice_id, amount, pk=None, payment_date=date(2025, 4, 5)):
    return Payment(pk=pk, invoice_id=invoice_id, amount=Decimal(amount), payment_date=payment_date)


def _waiver(invoice_id, amount, pk=None):
    return Waiver(pk=pk, invoice_id=invoice_id, amount=Decimal(amount), reason='Scholarship')


def _student(pk, name='Student', is_active=True, email=''):
    return Student(
        pk=pk,
        name=name,
        student_class='UKG',
        roll=pk,
        guardian_contact='9800000000',
        guardian_email=email,
        is_active=is_active,
    )


class SettlementTests(SimpleTestCase):
    def test_full_payment_is_paid(self):
        invoice = _invoice(1, '5000')
        result = settle_invoice(invoice, [_payment(1, '5000')], [])
        self.assertEqual(result, {
            'paid_amount': Decimal('5000'),
            'waiver_amount': Decimal('0'),
            'due_amount': Decimal('0'),
            'status': STATUS_PAID,
        })

    def test_payment_and_waiver_leave_partial_due(self):
        invoice = _invoice(1, '5000')
        result = settle_invoice(invoice, [_payment(1, '2000')], [_waiver(1, '1000')])
        self.assertEqual(result['paid_amount'], Decimal('2000'))
        self.assertEqual(result['waiver_amount'], Decimal('1000'))
        self.assertEqual(result['due_amount'], Decimal('2000'))
        self.assertEqual(result['status'], STATUS_PARTIAL)

    def test_untouched_invoice_is_unpaid(self):
        result = settle_invoice(_invoice(1, '3000'), [], [])
        self.assertEqual(result['paid_amount'], Decimal('0'))
        self.assertEqual(result['waiver_amount'], Decimal('0'))
        self.assertEqual(result['due_amount'], Decimal('3000'))
        self.assertEqual(result['status'], STATUS_UNPAID)

    def test_overpayment_clamps_due_to_zero(self):
        result = settle_invoice(_invoice(1, '1000'), [_payment(1, '1500')], [])
        self.assertEqual(result['paid_amount'], Decimal('1500'))
        self.assertEqual(result['due_amount'], Decimal('0'))
        self.assertEqual(result['status'], STATUS_PAID)

    def test_zero_total_invoice_is_paid_without_entries(self):
        result = settle_invoice(_invoice(1, '0'), [], [])
        self.assertEqual(result['due_amount'], Decimal('0'))
        self.assertEqual(result['status'], STATUS_PAID)

    def test_waiver_alone_can_settle_invoice(self):
        result = settle_invoice(_invoice(1, '1200'), [], [_waiver(1, '1200')])
        self.assertEqual(result['status'], STATUS_PAID)

    def test_waiver_alone_makes_invoice_partial(self):
        result = settle_invoice(_invoice(1, '1200'), [], [_waiver(1, '200')])
        self.assertEqual(result['status'], STATUS_PARTIAL)

    def test_entries_for_other_invoices_are_ignored(self):
        payments = [_payment(2, '900'), _payment(1, '100')]
        waivers = [_waiver(3, '50')]
        result = settle_invoice(_invoice(1, '500'), payments, waivers)
        self.assertEqual(result['paid_amount'], Decimal('100'))
        self.assertEqual(result['waiver_amount'], Decimal('0'))
        self.assertEqual(result['due_amount'], Decimal('400'))

    def test_conservation_when_not_overpaid(self):
        invoice = _invoice(1, '4750.50')
        payments = [_payment(1, '1000.25'), _payment(1, '500')]
        waivers = [_waiver(1, '250.25')]
        result = settle_invoice(invoice, payments, waivers)
        self.assertEqual(
            result['paid_amount'] + result['waiver_amount'] + result['due_amount'],
            invoice.total_amount,
        )

    def test_repeated_settlement_is_identical(self):
        invoice = _invoice(1, '3000')
        payments = [_payment(1, '1000')]
        waivers = [_waiver(1, '300')]
        self.assertEqual(
            settle_invoice(invoice, payments, waivers),
            settle_invoice(invoice, payments, waivers),
        )

    def test_entry_order_does_not_matter(self):
        invoice = _invoice(1, '3000')
        payments = [_payment(1, '100'), _payment(1, '250.50'), _payment(1, '999.99')]
        expected = settle_invoice(invoice, payments, [])
        for ordering in permutations(payments):
            self.assertEqual(settle_invoice(invoice, list(ordering), []), expected)

    def test_ledger_entries_never_move_invoice_backwards(self):
        invoice = _invoice(1, '2000')
        rank = {status: position for position, (status, _) in enumerate(STATUS_CHOICES)}
        payments = []
        waivers = []
        entries = [
            ('payment', '300'),
            ('waiver', '200'),
            ('payment', '700'),
            ('waiver', '800'),
            ('payment', '150'),
            ('waiver', '25'),
        ]

        previous = settle_invoice(invoice, payments, waivers)
        self.assertEqual(previous['status'], STATUS_UNPAID)
        for kind, amount in entries:
            if kind == 'payment':
                payments.append(_payment(1, amount))
            else:
                waivers.append(_waiver(1, amount))
            current = settle_invoice(invoice, payments, waivers)

            self.assertLessEqual(current['due_amount'], previous['due_amount'])
            self.assertGreaterEqual(current['due_amount'], Decimal('0'))
            self.assertGreaterEqual(rank[current['status']], rank[previous['status']])
            if previous['status'] == STATUS_PAID:
                self.assertEqual(current['status'], STATUS_PAID)
            previous = current

        self.assertEqual(previous['status'], STATUS_PAID)


class ReportingTests(SimpleTestCase):
    def setUp(self):
        self.active = _student(1, name='Asha', email='asha@example.com')
        self.inactive = _student(2, name='Bikash', is_active=False)
        self.students = [self.active, self.inactive]
        self.invoices = [
            _invoice(10, '5000', student_id=1, issue_date=date(2025, 4, 1)),
            _invoice(11, '3000', student_id=1, month=5, issue_date=date(2025, 5, 1)),
            _invoice(12, '2000', student_id=2, issue_date=date(2025, 4, 1)),
        ]
        self.payments = [
            _payment(10, '5000', pk=1, payment_date=date(2025, 4, 3)),
            _payment(11, '1000', pk=2, payment_date=date(2025, 5, 4)),
        ]
        self.waivers = [_waiver(11, '500', pk=1)]

    def test_outstanding_total_skips_inactive_students(self):
        total = active_outstanding_total(self.students, self.invoices, self.payments, self.waivers)
        self.assertEqual(total, Decimal('1500'))

    def test_total_collected_sums_every_payment(self):
        self.assertEqual(total_collected(self.payments), Decimal('6000'))

    def test_total_collected_counts_overpayment_in_full(self):
        payments = [_payment(10, '7000')]
        self.assertEqual(total_collected(payments), Decimal('7000'))

    def test_student_rows_include_inactive_students(self):
        rows = student_report_rows(self.students, self.invoices, self.payments, self.waivers)
        by_name = {row['student_name']: row for row in rows}
        self.assertEqual(by_name['Asha']['total_billed'], Decimal('8000'))
        self.assertEqual(by_name['Asha']['total_paid'], Decimal('6000'))
        self.assertEqual(by_name['Asha']['total_due'], Decimal('1500'))
        self.assertEqual(by_name['Bikash']['total_due'], Decimal('2000'))
        self.assertFalse(by_name['Bikash']['is_active'])

    def test_student_without_invoices_gets_zero_row(self):
        rows = student_report_rows([_student(3, name='Chandra')], self.invoices, self.payments, self.waivers)
        self.assertEqual(rows[0]['total_billed'], Decimal('0'))
        self.assertEqual(rows[0]['total_due'], Decimal('0'))

    def test_invoice_rows_are_newest_first(self):
        rows = invoice_rows(self.students, self.invoices, self.payments, self.waivers)
        self.assertEqual(rows[0]['invoice'].pk, 11)
        self.assertEqual(rows[0]['status'], STATUS_PARTIAL)

    def test_invoice_row_for_unknown_student(self):
        rows = invoice_rows([], [self.invoices[0]], [], [])
        self.assertEqual(rows[0]['student_name'], 'N/A')

    def test_pending_invoices_only_have_dues(self):
        rows = pending_invoices(self.students, self.invoices, self.payments, self.waivers)
        self.assertEqual({row['invoice'].pk for row in rows}, {11, 12})
        row = next(row for row in rows if row['invoice'].pk == 11)
        self.assertEqual(row['email'], 'asha@example.com')
        self.assertEqual(row['due_amount'], Decimal('1500'))

    def test_report_summary_counts_all_students(self):
        stats = report_summary_stats(self.students, self.invoices, self.payments, self.waivers)
        self.assertEqual(stats['total_students'], 2)
        self.assertEqual(stats['total_collected'], Decimal('6000'))
        self.assertEqual(stats['total_due'], Decimal('3500'))
        self.assertEqual(stats['pending_invoices'], 2)

    def test_dashboard_stats(self):
        stats = dashboard_stats(self.students, self.invoices, self.payments, self.waivers)
        self.assertEqual(stats['active_students'], 1)
        self.assertEqual(stats['total_due'], Decimal('1500'))
        self.assertEqual(stats['recent_payments'][0]['payment'].pk, 2)
        self.assertEqual(stats['recent_payments'][0]['student_name'], 'Asha')
        self.assertEqual(len(stats['recent_unpaid_invoices']), 2)

    def test_dangling_entries_are_reported(self):
        payments = self.payments + [_payment(99, '100', pk=3)]
        waivers = self.waivers + [_waiver(98, '20', pk=2)]
        dangling = dangling_ledger_entries(self.invoices, payments, waivers)
        self.assertEqual([payment.pk for payment in dangling['payments']], [3])
        self.assertEqual([waiver.pk for waiver in dangling['waivers']], [2])


@override_settings(
    INVOICE_DUE_POLICY=DUE_POLICY_DAYS_AFTER_ISSUE,
    INVOICE_DUE_OFFSET=15,
    INVOICE_SKIP_EMPTY_FEE_STRUCTURE=False,
)
class GenerationPlanTests(SimpleTestCase):
    def setUp(self):
        self.fee_structure = [
            FeeStructureItem(pk=1, description='Tuition', amount=Decimal('4000')),
            FeeStructureItem(pk=2, description='Snacks', amount=Decimal('1000')),
        ]

    def test_skips_students_already_invoiced_for_period(self):
        students = [_student(pk) for pk in range(1, 11)]
        existing = [_invoice(100 + pk, '5000', student_id=pk) for pk in (2, 5, 9)]
        planned = plan_monthly_invoices(
            students=students,
            fee_structure=self.fee_structure,
            existing_invoices=existing,
            month=4,
            year=2025,
            issue_date=date(2025, 4, 1),
        )
        self.assertEqual(len(planned), 7)
        self.assertNotIn(5, {plan['student'].pk for plan in planned})

    def test_other_periods_do_not_block_generation(self):
        existing = [_invoice(100, '5000', student_id=1, month=3)]
        planned = plan_monthly_invoices(
            students=[_student(1)],
            fee_structure=self.fee_structure,
            existing_invoices=existing,
            month=4,
            year=2025,
            issue_date=date(2025, 4, 1),
        )
        self.assertEqual(len(planned), 1)

    def test_inactive_students_are_not_billed(self):
        planned = plan_monthly_invoices(
            students=[_student(1), _student(2, is_active=False)],
            fee_structure=self.fee_structure,
            existing_invoices=[],
            month=4,
            year=2025,
            issue_date=date(2025, 4, 1),
        )
        self.assertEqual([plan['student'].pk for plan in planned], [1])

    def test_plan_carries_items_and_total(self):
        planned = plan_monthly_invoices(
            students=[_student(1)],
            fee_structure=self.fee_structure,
            existing_invoices=[],
            month=4,
            year=2025,
            issue_date=date(2025, 4, 1),
        )
        plan = planned[0]
        self.assertEqual(plan['total_amount'], Decimal('5000'))
        self.assertEqual([item['description'] for item in plan['items']], ['Tuition', 'Snacks'])
        self.assertEqual(plan['due_date'], date(2025, 4, 16))

    def test_plan_items_are_detached_from_fee_structure(self):
        planned = plan_monthly_invoices(
            students=[_student(1)],
            fee_structure=self.fee_structure,
            existing_invoices=[],
            month=4,
            year=2025,
            issue_date=date(2025, 4, 1),
        )
        self.fee_structure[0].amount = Decimal('9999')
        self.assertEqual(planned[0]['items'][0]['amount'], Decimal('4000'))

    def test_empty_fee_structure_plans_zero_total(self):
        planned = plan_monthly_invoices(
            students=[_student(1)],
            fee_structure=[],
            existing_invoices=[],
            month=4,
            year=2025,
            issue_date=date(2025, 4, 1),
        )
        self.assertEqual(planned[0]['total_amount'], Decimal('0'))
        self.assertEqual(planned[0]['items'], [])

    def test_empty_fee_structure_can_be_skipped(self):
        planned = plan_monthly_invoices(
            students=[_student(1)],
            fee_structure=[],
            existing_invoices=[],
            month=4,
            year=2025,
            issue_date=date(2025, 4, 1),
            skip_empty=True,
        )
        self.assertEqual(planned, [])

    def test_due_date_policies(self):
        self.assertEqual(compute_due_date(date(2025, 1, 20)), date(2025, 2, 4))
        self.assertEqual(
            compute_due_date(date(2025, 1, 20), policy=DUE_POLICY_DAY_OF_NEXT_MONTH, offset=31),
            date(2025, 2, 28),
        )
        self.assertEqual(
            compute_due_date(date(2025, 12, 5), policy=DUE_POLICY_DAY_OF_NEXT_MONTH, offset=10),
            date(2026, 1, 10),
        )

    def test_unknown_due_policy_is_rejected(self):
        with self.assertRaises(ImproperlyConfigured):
            compute_due_date(date(2025, 1, 1), policy='whenever')

    def test_billing_period_validation(self):
        validate_billing_period(12, 2025)
        with self.assertRaises(ValidationError):
            validate_billing_period(13, 2025)
        with self.assertRaises(ValidationError):
            validate_billing_period(1, 0)


@override_settings(
    INVOICE_DUE_POLICY=DUE_POLICY_DAYS_AFTER_ISSUE,
    INVOICE_DUE_OFFSET=15,
    INVOICE_SKIP_EMPTY_FEE_STRUCTURE=False,
)
class FeesBaseTestCase(TestCase):
    def setUp(self):
        user_model = get_user_model()

        self.admin = user_model.objects.create_user(
            username='billing_admin',
            password='pass12345',
            role=user_model.ROLE_ADMIN,
        )
        self.accountant = user_model.objects.create_user(
            username='billing_accountant',
            password='pass12345',
            role=user_model.ROLE_ACCOUNTANT,
        )

        self.students = [
            Student.objects.create(
                name=f'Student {index}',
                student_class='UKG',
                roll=index,
                guardian_contact='9800000000',
                guardian_email=f'guardian{index}@example.com' if index % 2 else '',
            )
            for index in range(1, 4)
        ]
        FeeStructureItem.objects.create(description='Tuition', amount=Decimal('4000.00'))
        FeeStructureItem.objects.create(description='Snacks', amount=Decimal('1000.00'))


class FeeServiceTests(FeesBaseTestCase):
    def test_generation_creates_one_invoice_per_active_student(self):
        self.students[2].is_active = False
        self.students[2].save()

        created = generate_monthly_invoices(month=4, year=2025, issue_date=date(2025, 4, 1))

        self.assertEqual(len(created), 2)
        invoice = created[0]
        self.assertEqual(invoice.total_amount, Decimal('5000.00'))
        self.assertEqual(invoice.items.count(), 2)
        self.assertEqual(invoice.due_date, date(2025, 4, 16))

    def test_generation_is_idempotent_per_period(self):
        generate_monthly_invoices(month=4, year=2025)
        second = generate_monthly_invoices(month=4, year=2025)
        self.assertEqual(second, [])
        self.assertEqual(Invoice.objects.filter(month=4, year=2025).count(), 3)

    def test_generation_bills_remaining_students(self):
        generate_monthly_invoices(month=4, year=2025)
        newcomer = Student.objects.create(
            name='Newcomer',
            student_class='LKG',
            roll=1,
            guardian_contact='9811111111',
        )
        created = generate_monthly_invoices(month=4, year=2025)
        self.assertEqual([invoice.student_id for invoice in created], [newcomer.pk])

    def test_generation_rejects_invalid_month(self):
        with self.assertRaises(ValidationError):
            generate_monthly_invoices(month=0, year=2025)

    def test_fee_changes_do_not_touch_issued_invoices(self):
        invoice = generate_monthly_invoices(month=4, year=2025)[0]
        item = FeeStructureItem.objects.get(description='Tuition')
        save_fee_item(description='Tuition', amount='6000', item=item)

        invoice.refresh_from_db()
        self.assertEqual(invoice.total_amount, Decimal('5000.00'))
        self.assertEqual(
            list(invoice.items.values_list('amount', flat=True)),
            [Decimal('4000.00'), Decimal('1000.00')],
        )

    def test_deleting_fee_item_keeps_invoice_items(self):
        invoice = generate_monthly_invoices(month=4, year=2025)[0]
        delete_fee_item(FeeStructureItem.objects.get(description='Snacks'))
        self.assertEqual(InvoiceItem.objects.filter(invoice=invoice).count(), 2)

    def test_invoice_total_is_immutable(self):
        invoice = generate_monthly_invoices(month=4, year=2025)[0]
        invoice.total_amount = Decimal('1.00')
        with self.assertRaises(ValidationError):
            invoice.save()

    def test_generation_log_counts_already_invoiced_students(self):
        Student.objects.filter(pk=self.students[2].pk).update(is_active=False)
        generate_monthly_invoices(month=4, year=2025)
        Student.objects.filter(pk=self.students[2].pk).update(is_active=True)

        with self.assertLogs('apps.core.fees.services', level='INFO') as logs:
            created = generate_monthly_invoices(month=4, year=2025)

        self.assertEqual(len(created), 1)
        self.assertIn('Generated 1 invoices for 04/2025 (2 active students already invoiced)', logs.output[-1])

    def test_issued_invoice_fields_are_immutable(self):
        invoice = generate_monthly_invoices(month=4, year=2025)[0]
        changes = {
            'month': 5,
            'year': 2026,
            'issue_date': date(2025, 4, 2),
            'due_date': date(2025, 5, 30),
            'student_id': self.students[1].pk,
        }
        for field, value in changes.items():
            stale = Invoice.objects.get(pk=invoice.pk)
            setattr(stale, field, value)
            with self.assertRaises(ValidationError):
                stale.save()

        invoice.refresh_from_db()
        self.assertEqual((invoice.month, invoice.year), (4, 2025))

    def test_resaving_unchanged_invoice_is_allowed(self):
        invoice = generate_monthly_invoices(month=4, year=2025)[0]
        Invoice.objects.get(pk=invoice.pk).save()

    def test_items_cannot_be_added_to_issued_invoice(self):
        invoice = generate_monthly_invoices(month=4, year=2025)[0]
        with self.assertRaises(ValidationError):
            InvoiceItem.objects.create(invoice=invoice, position=3, description='Late fee', amount=Decimal('50.00'))

        total = sum(invoice.items.values_list('amount', flat=True))
        self.assertEqual(total, invoice.total_amount)

    def test_issued_items_cannot_be_edited_or_deleted(self):
        invoice = generate_monthly_invoices(month=4, year=2025)[0]
        item = invoice.items.first()
        item.amount = Decimal('1.00')
        with self.assertRaises(ValidationError):
            item.save()
        with self.assertRaises(ValidationError):
            item.delete()

    def test_payments_and_waivers_settle_invoice(self):
        invoice = generate_monthly_invoices(month=4, year=2025)[0]
        record_payment(invoice=invoice, amount='2000', received_by=self.accountant)
        grant_waiver(invoice=invoice, amount='1000', reason='Sibling discount', granted_by=self.admin)

        settlement = invoice_settlement(invoice)
        self.assertEqual(settlement['due_amount'], Decimal('2000.00'))
        self.assertEqual(settlement['status'], STATUS_PARTIAL)

        record_payment(invoice=invoice, amount='2000')
        self.assertEqual(invoice_settlement(invoice)['status'], STATUS_PAID)

    def test_payment_must_be_positive(self):
        invoice = generate_monthly_invoices(month=4, year=2025)[0]
        with self.assertRaises(ValidationError):
            record_payment(invoice=invoice, amount='0')
        self.assertFalse(Payment.objects.exists())

    def test_waiver_requires_reason(self):
        invoice = generate_monthly_invoices(month=4, year=2025)[0]
        with self.assertRaises(ValidationError):
            grant_waiver(invoice=invoice, amount='100', reason='   ')

    def test_ledger_entries_cannot_be_deleted(self):
        invoice = generate_monthly_invoices(month=4, year=2025)[0]
        payment = record_payment(invoice=invoice, amount='100')
        with self.assertRaises(ValidationError):
            payment.delete()
        with self.assertRaises(ValidationError):
            invoice.delete()

    def test_reminders_skip_missing_email(self):
        invoices = generate_monthly_invoices(month=4, year=2025)
        result = send_fee_reminders([invoice.pk for invoice in invoices])

        self.assertEqual(len(result['sent']), 2)
        self.assertEqual(len(result['skipped']), 1)
        self.assertEqual(len(mail.outbox), 2)
        subjects = ' '.join(message.subject for message in mail.outbox)
        self.assertIn(invoices[0].invoice_number, subjects)

    def test_reminders_ignore_settled_invoices(self):
        invoice = generate_monthly_invoices(month=4, year=2025)[0]
        record_payment(invoice=invoice, amount=invoice.total_amount)
        result = send_fee_reminders([invoice.pk])
        self.assertEqual(result, {'sent': [], 'skipped': [], 'failed': []})

    def test_reminder_failure_does_not_stop_batch(self):
        invoices = generate_monthly_invoices(month=4, year=2025)
        with mock.patch('apps.core.fees.services.send_mail', side_effect=OSError('smtp down')):
            result = send_fee_reminders([invoice.pk for invoice in invoices])
        self.assertEqual(len(result['failed']), 2)
        self.assertEqual(len(result['skipped']), 1)

    def test_invoice_pdf_is_generated(self):
        invoice = generate_monthly_invoices(month=4, year=2025)[0]
        record_payment(invoice=invoice, amount='1500')
        pdf_bytes = generate_invoice_pdf(invoice)
        self.assertTrue(pdf_bytes.startswith(b'%PDF'))


class FeeViewTests(FeesBaseTestCase):
    def test_accountant_can_open_invoice_list(self):
        generate_monthly_invoices(month=4, year=2025)
        self.client.login(username='billing_accountant', password='pass12345')
        response = self.client.get(reverse('invoice_list'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.context['rows']), 3)

    def test_reminders_tab_lists_pending_invoices(self):
        invoice = generate_monthly_invoices(month=4, year=2025)[0]
        record_payment(invoice=invoice, amount=invoice.total_amount)
        self.client.login(username='billing_accountant', password='pass12345')
        response = self.client.get(reverse('invoice_list'), {'tab': 'reminders'})
        self.assertEqual(len(response.context['rows']), 2)

    def test_generate_view_creates_invoices(self):
        self.client.login(username='billing_accountant', password='pass12345')
        response = self.client.post(reverse('invoice_generate'), {'month': 5, 'year': 2025})
        self.assertRedirects(response, reverse('invoice_list'))
        self.assertEqual(Invoice.objects.filter(month=5, year=2025).count(), 3)
        self.assertTrue(AuditLog.objects.filter(action='fees.invoices_generated').exists())

    def test_payment_view_records_payment(self):
        invoice = generate_monthly_invoices(month=4, year=2025)[0]
        self.client.login(username='billing_accountant', password='pass12345')
        response = self.client.post(
            reverse('payment_record', args=[invoice.pk]),
            {'amount': '1500.00', 'payment_date': '2025-04-10'},
        )
        self.assertRedirects(response, reverse('invoice_list'))
        payment = Payment.objects.get(invoice=invoice)
        self.assertEqual(payment.received_by, self.accountant)

    def test_payment_view_rejects_zero_amount(self):
        invoice = generate_monthly_invoices(month=4, year=2025)[0]
        self.client.login(username='billing_accountant', password='pass12345')
        response = self.client.post(
            reverse('payment_record', args=[invoice.pk]),
            {'amount': '0', 'payment_date': '2025-04-10'},
        )
        self.assertEqual(response.status_code, 200)
        self.assertFalse(Payment.objects.exists())

    def test_waiver_view_grants_waiver(self):
        invoice = generate_monthly_invoices(month=4, year=2025)[0]
        self.client.login(username='billing_accountant', password='pass12345')
        self.client.post(
            reverse('waiver_grant', args=[invoice.pk]),
            {'amount': '500', 'reason': 'Staff child'},
        )
        self.assertEqual(Waiver.objects.get(invoice=invoice).reason, 'Staff child')

    def test_invoice_pdf_download(self):
        invoice = generate_monthly_invoices(month=4, year=2025)[0]
        self.client.login(username='billing_accountant', password='pass12345')
        response = self.client.get(reverse('invoice_pdf', args=[invoice.pk]))
        self.assertEqual(response['Content-Type'], 'application/pdf')
        self.assertIn(invoice.invoice_number, response['Content-Disposition'])

    def test_send_reminders_view(self):
        invoices = generate_monthly_invoices(month=4, year=2025)
        self.client.login(username='billing_accountant', password='pass12345')
        self.client.post(
            reverse('fee_reminders_send'),
            {'invoice_ids': [str(invoice.pk) for invoice in invoices]},
        )
        self.assertEqual(len(mail.outbox), 2)

    def test_admin_cannot_edit_issued_invoice(self):
        invoice = generate_monthly_invoices(month=4, year=2025)[0]
        get_user_model().objects.create_superuser('root', 'root@example.com', 'pass12345')
        self.client.login(username='root', password='pass12345')
        url = reverse('admin:fees_invoice_change', args=[invoice.pk])

        self.assertEqual(self.client.get(url).status_code, 200)
        response = self.client.post(url, {
            'student': invoice.student_id,
            'month': 5,
            'year': 2025,
            'issue_date': '2025-04-01',
            'due_date': '2025-04-16',
            'total_amount': '1.00',
        })

        self.assertEqual(response.status_code, 403)
        invoice.refresh_from_db()
        self.assertEqual(invoice.month, 4)
        self.assertEqual(invoice.total_amount, Decimal('5000.00'))

    def test_invoice_list_filters_by_status(self):
        invoices = generate_monthly_invoices(month=4, year=2025)
        record_payment(invoice=invoices[0], amount=invoices[0].total_amount)
        self.client.login(username='billing_accountant', password='pass12345')

        response = self.client.get(reverse('invoice_list'), {'status': STATUS_PAID})
        self.assertEqual([row['invoice'].pk for row in response.context['rows']], [invoices[0].pk])
        self.assertEqual(response.context['status_choices'], STATUS_CHOICES)

    def test_unknown_status_filter_is_ignored(self):
        generate_monthly_invoices(month=4, year=2025)
        self.client.login(username='billing_accountant', password='pass12345')

        response = self.client.get(reverse('invoice_list'), {'status': 'Refunded'})
        self.assertEqual(response.context['selected_status'], '')
        self.assertEqual(len(response.context['rows']), 3)

    def test_accountant_cannot_edit_fee_structure(self):
        self.client.login(username='billing_accountant', password='pass12345')
        response = self.client.get(reverse('fee_structure_list'))
        self.assertEqual(response.status_code, 403)

    def test_admin_can_add_fee_item(self):
        self.client.login(username='billing_admin', password='pass12345')
        response = self.client.post(
            reverse('fee_structure_list'),
            {'description': 'Transport', 'amount': '1500'},
        )
        self.assertRedirects(response, reverse('fee_structure_list'))
        self.assertTrue(FeeStructureItem.objects.filter(description='Transport').exists())

    def test_admin_can_delete_fee_item(self):
        item = FeeStructureItem.objects.get(description='Snacks')
        self.client.login(username='billing_admin', password='pass12345')
        self.client.post(reverse('fee_structure_delete', args=[item.pk]))
        self.assertFalse(FeeStructureItem.objects.filter(pk=item.pk).exists())


@override_settings(CURRENCY_SYMBOL='रु')
class DisplayFilterTests(SimpleTestCase):
    def test_currency_uses_indian_grouping(self):
        self.assertEqual(format_currency(Decimal('1234567')), 'रु 12,34,567')
        self.assertEqual(format_currency(Decimal('1500.5')), 'रु 1,500.50')
        self.assertEqual(format_currency(0), 'रु 0')
        self.assertEqual(format_currency(Decimal('999'), symbol='Rs.'), 'Rs. 999')

    def test_group_indian_digits(self):
        self.assertEqual(group_indian_digits('100'), '100')
        self.assertEqual(group_indian_digits('100000'), '1,00,000')

    def test_bs_date_reference_points(self):
        self.assertEqual(to_bs_display(date(1923, 4, 13)), 'Baisakh 1, 1980')
        self.assertEqual(to_bs_display(date(1923, 4, 14)), 'Baisakh 2, 1980')
        self.assertEqual(to_bs_display('1923-05-14'), 'Jestha 1, 1980')

    def test_bs_date_edge_values(self):
        self.assertEqual(to_bs_display(None), '')
        self.assertEqual(to_bs_display(date(1900, 1, 1)), INVALID_DATE)
        self.assertEqual(to_bs_display('not-a-date'), INVALID_DATE)

    def test_template_filters(self):
        rendered = Template(
            '{% load billing_format %}{{ amount|currency }} | {{ day|bs_date }} | {{ status|status_badge }}'
        ).render(Context({'amount': Decimal('2500'), 'day': date(1923, 4, 13), 'status': 'Partial'}))
        self.assertEqual(rendered, 'रु 2,500 | Baisakh 1, 1980 | badge-partial')

    def test_status_badge_covers_every_status(self):
        for status, _ in STATUS_CHOICES:
            rendered = Template('{% load billing_format %}{{ status|status_badge }}').render(
                Context({'status': status})
            )
            self.assertEqual(rendered, f'badge-{status.lower()}')
        self.assertEqual(
            Template('{% load billing_format %}{{ status|status_badge }}').render(Context({'status': 'Void'})),
            '',
        )
