from django.contrib import admin

from .models import Student


@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    list_display = ('name', 'student_class', 'roll', 'guardian_contact', 'guardian_email', 'is_active')
    list_filter = ('is_active', 'student_class')
    search_fields = ('name', 'guardian_contact', 'guardian_email')
