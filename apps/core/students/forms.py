from django import forms
from django.core.exceptions import ValidationError

from .models import Student


class StudentForm(forms.ModelForm):
    class Meta:
        model = Student
        fields = [
            'name',
            'student_class',
            'roll',
            'guardian_contact',
            'guardian_email',
            'address',
        ]
        widgets = {
            'address': forms.Textarea(attrs={'rows': 2}),
        }

    def clean_name(self):
        name = (self.cleaned_data.get('name') or '').strip()
        if not name:
            raise ValidationError('Student name is required.')
        return name

    def clean_roll(self):
        roll = self.cleaned_data.get('roll')
        if roll is not None and roll <= 0:
            raise ValidationError('Roll number must be greater than zero.')
        return roll


class StudentImportForm(forms.Form):
    file = forms.FileField(help_text='CSV with Name, Class, Roll, Guardian Contact, Guardian Email, Address.')

    def clean_file(self):
        upload = self.cleaned_data['file']
        if not upload.name.lower().endswith('.csv'):
            raise ValidationError('Upload a .csv file.')
        return upload
