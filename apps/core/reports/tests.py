from decimal import Decimal
from unittest import mock

import requests
from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse

from apps.core.fees.models import FeeStructureItem
from apps.core.fees.services import generate_monthly_invoices, record_payment
from apps.core.students.models import Student

from .summary import FAILURE_MESSAGE, UNAVAILABLE_MESSAGE, build_summary_prompt, generate_report_summary

STATS = {
    'total_students': 12,
    'total_collected': Decimal('125000'),
    'total_due': Decimal('18500.50'),
    'pending_invoices': 4,
}


@override_settings(CURRENCY_SYMBOL='रु')
class ReportSummaryTests(SimpleTestCase):
    def test_prompt_includes_formatted_figures(self):
        prompt = build_summary_prompt(STATS)
        self.assertIn('Total Students: 12', prompt)
        self.assertIn('रु 1,25,000', prompt)
        self.assertIn('रु 18,500.50', prompt)
        self.assertIn('Pending Dues: 4', prompt)

    @override_settings(AI_SUMMARY_API_KEY='')
    def test_missing_key_returns_fallback(self):
        with mock.patch('apps.core.reports.summary.requests.post') as post:
            self.assertEqual(generate_report_summary(STATS), UNAVAILABLE_MESSAGE)
        post.assert_not_called()

    @override_settings(AI_SUMMARY_API_KEY='test-key', AI_SUMMARY_MODEL='gemini-2.5-flash')
    def test_returns_model_text(self):
        response = mock.Mock()
        response.json.return_value = {
            'candidates': [{'content': {'parts': [{'text': '- Collections are healthy.'}]}}],
        }
        with mock.patch('apps.core.reports.summary.requests.post', return_value=response) as post:
            summary = generate_report_summary(STATS)

        self.assertEqual(summary, '- Collections are healthy.')
        args, kwargs = post.call_args
        self.assertIn('gemini-2.5-flash', args[0])
        self.assertEqual(kwargs['headers'], {'x-goog-api-key': 'test-key'})

    @override_settings(AI_SUMMARY_API_KEY='test-key')
    def test_transport_error_returns_fallback(self):
        with mock.patch(
            'apps.core.reports.summary.requests.post',
            side_effect=requests.ConnectionError('offline'),
        ):
            self.assertEqual(generate_report_summary(STATS), FAILURE_MESSAGE)

    @override_settings(AI_SUMMARY_API_KEY='test-key')
    def test_empty_response_returns_fallback(self):
        response = mock.Mock()
        response.json.return_value = {'candidates': []}
        with mock.patch('apps.core.reports.summary.requests.post', return_value=response):
            self.assertEqual(generate_report_summary(STATS), FAILURE_MESSAGE)


class ReportViewTests(TestCase):
    def setUp(self):
        get_user_model().objects.create_user(
            username='reports_accountant',
            password='pass12345',
            role='accountant',
        )
        self.student = Student.objects.create(
            name='Riya Shah',
            student_class='UKG',
            roll=1,
            guardian_contact='9800000001',
        )
        FeeStructureItem.objects.create(description='Tuition', amount=Decimal('4000.00'))
        self.client.login(username='reports_accountant', password='pass12345')

    def test_dashboard_shows_stats(self):
        response = self.client.get(reverse('dashboard'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.context['stats']['active_students'], 1)

    def test_report_rows_and_stats(self):
        invoice = generate_monthly_invoices(month=4, year=2025)[0]
        record_payment(invoice=invoice, amount=invoice.total_amount)

        response = self.client.get(reverse('report_list'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.context['stats']['total_students'], 1)
        self.assertEqual(response.context['stats']['pending_invoices'], 0)
        self.assertEqual(response.context['rows'][0]['student_name'], 'Riya Shah')

    def test_report_csv_export(self):
        response = self.client.get(reverse('report_list'), {'export': 'csv'})
        self.assertEqual(response['Content-Type'], 'text/csv')
        self.assertIn('billing_report.csv', response['Content-Disposition'])
        self.assertIn('Riya Shah', response.content.decode('utf-8'))

    def test_summary_is_generated_on_post(self):
        with mock.patch('apps.core.reports.views.generate_report_summary', return_value='All good.'):
            response = self.client.post(reverse('report_list'))
        self.assertEqual(response.context['ai_summary'], 'All good.')
