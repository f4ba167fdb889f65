import random
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone
from faker import Faker

from apps.core.fees.models import FeeStructureItem
from apps.core.fees.services import generate_monthly_invoices, grant_waiver, record_payment
from apps.core.students.models import Student
from apps.core.users.models import User

DEFAULT_FEE_ITEMS = (
    ('Tuition Fee', Decimal('4500.00')),
    ('Montessori Materials', Decimal('800.00')),
    ('Snacks', Decimal('1200.00')),
    ('Transport', Decimal('1500.00')),
)

CLASSES = ('Playgroup', 'Nursery', 'LKG', 'UKG')


class Command(BaseCommand):
    help = 'Seeds the database with demo students, fees and invoices.'

    def add_arguments(self, parser):
        parser.add_argument('--students', type=int, default=5, help='Students per class.')

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write('Seeding database...')

        fake = Faker()

        if not User.objects.filter(username='admin').exists():
            User.objects.create_superuser('admin', 'admin@example.com', 'password')
            self.stdout.write(self.style.SUCCESS('Successfully created admin user.'))

        accountant, created = User.objects.get_or_create(
            username='accountant',
            defaults={'role': User.ROLE_ACCOUNTANT},
        )
        if created:
            accountant.set_password('password')
            accountant.save()
            self.stdout.write(self.style.SUCCESS('Successfully created accountant user.'))

        for description, amount in DEFAULT_FEE_ITEMS:
            _, created = FeeStructureItem.objects.get_or_create(
                description=description,
                defaults={'amount': amount},
            )
            if created:
                self.stdout.write(self.style.SUCCESS(f'Successfully created fee item: {description}'))

        for student_class in CLASSES:
            next_roll = (
                Student.objects.filter(student_class=student_class).order_by('-roll').values_list('roll', flat=True).first()
                or 0
            )
            for offset in range(1, options['students'] + 1):
                student = Student.objects.create(
                    name=fake.name(),
                    student_class=student_class,
                    roll=next_roll + offset,
                    guardian_contact=fake.numerify('98########'),
                    guardian_email=fake.email() if random.random() > 0.2 else '',
                    address=fake.city(),
                )
                self.stdout.write(self.style.SUCCESS(f'Successfully created student: {student.name}'))

        today = timezone.localdate()
        invoices = generate_monthly_invoices(month=today.month, year=today.year, created_by=accountant)
        self.stdout.write(self.style.SUCCESS(f'Generated {len(invoices)} invoices for {today:%B %Y}.'))

        for invoice in invoices:
            roll = random.random()
            if roll < 0.4:
                record_payment(invoice=invoice, amount=invoice.total_amount, received_by=accountant)
            elif roll < 0.7:
                record_payment(
                    invoice=invoice,
                    amount=(invoice.total_amount / 2).quantize(Decimal('0.01')),
                    received_by=accountant,
                )
            elif roll < 0.8:
                grant_waiver(
                    invoice=invoice,
                    amount=Decimal('500.00'),
                    reason='Sibling discount',
                    granted_by=accountant,
                )

        self.stdout.write(self.style.SUCCESS('Database seeded successfully.'))
