from django.db import models

from apps.core.utils.managers import ActiveManager


class Student(models.Model):
    name = models.CharField(max_length=150)
    student_class = models.CharField(max_length=50)
    roll = models.PositiveIntegerField()
    guardian_contact = models.CharField(max_length=20)
    guardian_email = models.EmailField(blank=True)
    address = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ActiveManager()

    class Meta:
        ordering = ['student_class', 'roll', 'id']
        indexes = [
            models.Index(fields=['is_active'], name='students_active_idx'),
            models.Index(fields=['student_class', 'roll'], name='students_class_roll_idx'),
        ]

    def clean(self):
        super().clean()
        if self.name:
            self.name = self.name.strip()
        if self.student_class:
            self.student_class = self.student_class.strip()

    def delete(self, *args, **kwargs):
        # Students are never removed; their invoices stay in the ledger.
        if self.is_active:
            self.is_active = False
            self.save(update_fields=['is_active', 'updated_at'])

    def __str__(self):
        return f"{self.name} ({self.student_class} - {self.roll})"
