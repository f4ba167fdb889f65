import csv
import logging
from io import StringIO

from django.core.exceptions import ValidationError
from django.db import transaction

from apps.core.utils.exports import rows_to_csv_bytes

from .forms import StudentForm
from .models import Student

logger = logging.getLogger(__name__)

STUDENT_CSV_HEADERS = [
    'ID',
    'Name',
    'Class',
    'Roll',
    'Guardian Contact',
    'Guardian Email',
    'Address',
    'Status',
]

# CSV column -> StudentForm field
IMPORT_COLUMN_MAP = {
    'name': 'name',
    'class': 'student_class',
    'roll': 'roll',
    'guardian contact': 'guardian_contact',
    'guardian email': 'guardian_email',
    'address': 'address',
}


@transaction.atomic
def create_student(*, form_or_data, is_active=True):
    """Enroll a student from a bound StudentForm or a plain dict of form data."""
    form = form_or_data if isinstance(form_or_data, StudentForm) else StudentForm(data=form_or_data)
    if not form.is_valid():
        raise ValidationError([
            f"{field}: {' '.join(messages)}" for field, messages in form.errors.items()
        ])

    student = form.save(commit=False)
    student.is_active = is_active
    student.full_clean()
    student.save()
    logger.info('Enrolled student %s in %s (roll %s)', student.pk, student.student_class, student.roll)
    return student


def set_student_active(student: Student, is_active: bool):
    if student.is_active == is_active:
        return False

    student.is_active = is_active
    student.save(update_fields=['is_active', 'updated_at'])
    logger.info(
        'Student %s marked %s',
        student.pk,
        'active' if is_active else 'inactive',
    )
    return True


def student_csv_rows(students):
    for student in students:
        yield [
            student.pk,
            student.name,
            student.student_class,
            student.roll,
            student.guardian_contact,
            student.guardian_email,
            student.address,
            'Active' if student.is_active else 'Inactive',
        ]


def students_to_csv_bytes(students):
    return rows_to_csv_bytes(STUDENT_CSV_HEADERS, student_csv_rows(students))


def _read_upload(upload):
    raw = upload.read()
    if isinstance(raw, bytes):
        try:
            raw = raw.decode('utf-8-sig')
        except UnicodeDecodeError as exc:
            raise ValidationError('CSV file must be UTF-8 encoded.') from exc
    return raw


def _normalize_row(row):
    data = {}
    for column, value in row.items():
        if column is None:
            continue
        field = IMPORT_COLUMN_MAP.get(column.strip().lower())
        if field:
            data[field] = (value or '').strip()
    return data


@transaction.atomic
def import_students_from_csv(upload):
    """
    Create students from an exported-style CSV.

    Either every row is valid and all students are created, or nothing is
    saved and a ValidationError lists the offending rows. A Status column
    reading "Inactive" imports the student as inactive.
    """
    reader = csv.DictReader(StringIO(_read_upload(upload)))
    if not reader.fieldnames:
        raise ValidationError('CSV file is empty.')

    headers = {name.strip().lower() for name in reader.fieldnames if name}
    missing = [column for column in ('name', 'class', 'roll', 'guardian contact') if column not in headers]
    if missing:
        raise ValidationError(f"Missing CSV columns: {', '.join(missing)}.")

    forms = []
    errors = []
    for line_number, row in enumerate(reader, start=2):
        form = StudentForm(data=_normalize_row(row))
        if not form.is_valid():
            problems = '; '.join(
                f"{field}: {' '.join(messages)}" for field, messages in form.errors.items()
            )
            errors.append(f'Row {line_number}: {problems}')
            continue

        status = (row.get('Status') or row.get('status') or '').strip().lower()
        forms.append((form, status != 'inactive'))

    if errors:
        raise ValidationError(errors)
    if not forms:
        raise ValidationError('CSV file has no student rows.')

    created = [create_student(form_or_data=form, is_active=is_active) for form, is_active in forms]

    logger.info('Imported %s students from CSV', len(created))
    return created
