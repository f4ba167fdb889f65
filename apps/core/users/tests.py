from django.contrib.auth import get_user_model
from django.http import HttpRequest
from django.test import RequestFactory, TestCase
from django.urls import reverse

from .audit import log_audit_event
from .models import AuditLog


class RoleAccessTests(TestCase):
    def setUp(self):
        self.user_model = get_user_model()
        self.admin = self.user_model.objects.create_user(
            username='admin1',
            password='pass12345',
            role=self.user_model.ROLE_ADMIN,
        )
        self.accountant = self.user_model.objects.create_user(
            username='accountant1',
            password='pass12345',
            role=self.user_model.ROLE_ACCOUNTANT,
        )

    def test_anonymous_user_is_sent_to_login(self):
        response = self.client.get(reverse('dashboard'))
        self.assertEqual(response.status_code, 302)
        self.assertIn(reverse('login'), response['Location'])

    def test_accountant_can_open_dashboard(self):
        self.client.login(username='accountant1', password='pass12345')
        response = self.client.get(reverse('dashboard'))
        self.assertEqual(response.status_code, 200)

    def test_accountant_cannot_open_fee_settings(self):
        self.client.login(username='accountant1', password='pass12345')
        response = self.client.get(reverse('fee_structure_list'))
        self.assertEqual(response.status_code, 403)

    def test_admin_can_open_fee_settings(self):
        self.client.login(username='admin1', password='pass12345')
        response = self.client.get(reverse('fee_structure_list'))
        self.assertEqual(response.status_code, 200)

    def test_new_users_default_to_accountant(self):
        user = self.user_model.objects.create_user(username='plain', password='pass12345')
        self.assertEqual(user.role, self.user_model.ROLE_ACCOUNTANT)
        self.assertFalse(user.is_billing_admin)

    def test_superuser_is_always_admin(self):
        user = self.user_model.objects.create_superuser('root', 'root@example.com', 'pass12345')
        self.assertEqual(user.role, self.user_model.ROLE_ADMIN)
        self.assertTrue(user.is_billing_admin)


class AuditLogTests(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(username='auditor', password='pass12345')

    def test_login_is_audited(self):
        self.client.login(username='auditor', password='pass12345')
        self.assertTrue(AuditLog.objects.filter(user=self.user, action='user.login').exists())

    def test_event_records_request_details(self):
        request = RequestFactory().post('/fees/invoices/generate/', REMOTE_ADDR='10.0.0.5')
        request.user = self.user

        log_audit_event(request=request, action='fees.invoices_generated', target=self.user, details='Created=3')

        entry = AuditLog.objects.get(action='fees.invoices_generated')
        self.assertEqual(entry.method, 'POST')
        self.assertEqual(entry.path, '/fees/invoices/generate/')
        self.assertEqual(entry.ip_address, '10.0.0.5')
        self.assertEqual(entry.target_model, 'User')
        self.assertEqual(entry.target_id, str(self.user.pk))

    def test_event_without_request_user_uses_given_user(self):
        request = HttpRequest()

        log_audit_event(request=request, action='user.login', target=self.user, user=self.user)

        entry = AuditLog.objects.get(action='user.login')
        self.assertEqual(entry.user, self.user)
        self.assertEqual(entry.method, '')

    def test_logout_is_audited(self):
        self.client.login(username='auditor', password='pass12345')
        self.client.post(reverse('logout'))
        self.assertTrue(AuditLog.objects.filter(user=self.user, action='user.logout').exists())
