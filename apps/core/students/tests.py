import csv
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase
from django.urls import reverse

from .models import Student
from .services import (
    STUDENT_CSV_HEADERS,
    create_student,
    import_students_from_csv,
    set_student_active,
    students_to_csv_bytes,
)


def _csv_upload(text, name='students.csv'):
    return SimpleUploadedFile(name, text.encode('utf-8'), content_type='text/csv')


class StudentsBaseTestCase(TestCase):
    def setUp(self):
        self.accountant = get_user_model().objects.create_user(
            username='students_accountant',
            password='pass12345',
            role='accountant',
        )
        self.student = Student.objects.create(
            name='Riya Shah',
            student_class='UKG',
            roll=1,
            guardian_contact='9800000001',
            guardian_email='shah@example.com',
        )


class StudentServiceTests(StudentsBaseTestCase):
    def test_create_student_from_data(self):
        student = create_student(form_or_data={
            'name': '  Aarav Thapa ',
            'student_class': 'Nursery',
            'roll': 7,
            'guardian_contact': '9811111111',
            'guardian_email': '',
            'address': '',
        })

        self.assertEqual(student.name, 'Aarav Thapa')
        self.assertTrue(student.is_active)
        self.assertTrue(Student.objects.filter(pk=student.pk).exists())

    def test_create_student_can_enroll_inactive(self):
        student = create_student(
            form_or_data={
                'name': 'Sita',
                'student_class': 'LKG',
                'roll': 2,
                'guardian_contact': '9822222222',
            },
            is_active=False,
        )
        self.assertFalse(student.is_active)

    def test_create_student_rejects_invalid_data(self):
        with self.assertRaises(ValidationError):
            create_student(form_or_data={'name': '', 'student_class': 'LKG', 'roll': 0})
        self.assertEqual(Student.objects.count(), 1)

    def test_deactivation_keeps_the_row(self):
        self.assertTrue(set_student_active(self.student, False))
        self.student.refresh_from_db()
        self.assertFalse(self.student.is_active)
        self.assertFalse(set_student_active(self.student, False))

    def test_delete_only_deactivates(self):
        self.student.delete()
        self.assertTrue(Student.objects.filter(pk=self.student.pk, is_active=False).exists())

    def test_active_queryset(self):
        Student.objects.create(
            name='Left School',
            student_class='LKG',
            roll=2,
            guardian_contact='9800000002',
            is_active=False,
        )
        self.assertEqual(list(Student.objects.active()), [self.student])

    def test_csv_export_has_header_and_status(self):
        rows = list(csv.reader(StringIO(students_to_csv_bytes([self.student]).decode('utf-8'))))
        self.assertEqual(rows[0], STUDENT_CSV_HEADERS)
        self.assertEqual(rows[1][1], 'Riya Shah')
        self.assertEqual(rows[1][-1], 'Active')

    def test_import_creates_students(self):
        upload = _csv_upload(
            'Name,Class,Roll,Guardian Contact,Guardian Email,Address,Status\n'
            'Aarav,Nursery,3,9811111111,aarav@example.com,Lalitpur,Active\n'
            'Sita,Nursery,4,9822222222,,,Inactive\n'
        )
        created = import_students_from_csv(upload)

        self.assertEqual(len(created), 2)
        self.assertTrue(Student.objects.get(name='Aarav').is_active)
        self.assertFalse(Student.objects.get(name='Sita').is_active)

    def test_import_is_all_or_nothing(self):
        upload = _csv_upload(
            'Name,Class,Roll,Guardian Contact\n'
            'Aarav,Nursery,3,9811111111\n'
            ',Nursery,0,9822222222\n'
        )
        with self.assertRaises(ValidationError) as caught:
            import_students_from_csv(upload)

        self.assertTrue(any(message.startswith('Row 3:') for message in caught.exception.messages))
        self.assertFalse(Student.objects.filter(name='Aarav').exists())

    def test_import_requires_columns(self):
        with self.assertRaises(ValidationError):
            import_students_from_csv(_csv_upload('Name,Class\nAarav,Nursery\n'))


class StudentViewTests(StudentsBaseTestCase):
    def setUp(self):
        super().setUp()
        self.client.login(username='students_accountant', password='pass12345')

    def test_list_filters_by_status(self):
        set_student_active(self.student, False)
        response = self.client.get(reverse('student_list'), {'status': 'active'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(list(response.context['students']), [])

    def test_add_student(self):
        response = self.client.post(reverse('student_list'), {
            'name': 'New Kid',
            'student_class': 'Playgroup',
            'roll': 5,
            'guardian_contact': '9833333333',
            'guardian_email': '',
            'address': '',
        })
        self.assertRedirects(response, reverse('student_list'))
        self.assertTrue(Student.objects.filter(name='New Kid', is_active=True).exists())

    def test_status_toggle(self):
        self.client.post(reverse('student_status_update', args=[self.student.pk]), {'is_active': '0'})
        self.student.refresh_from_db()
        self.assertFalse(self.student.is_active)

    def test_export_csv(self):
        response = self.client.get(reverse('student_export_csv'))
        self.assertEqual(response['Content-Type'], 'text/csv')
        self.assertIn('Riya Shah', response.content.decode('utf-8'))

    def test_import_view(self):
        upload = _csv_upload('Name,Class,Roll,Guardian Contact\nAarav,Nursery,3,9811111111\n')
        response = self.client.post(reverse('student_import'), {'file': upload})
        self.assertRedirects(response, reverse('student_list'))
        self.assertTrue(Student.objects.filter(name='Aarav').exists())
