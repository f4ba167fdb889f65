from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Student',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=150)),
                ('student_class', models.CharField(max_length=50)),
                ('roll', models.PositiveIntegerField()),
                ('guardian_contact', models.CharField(max_length=20)),
                ('guardian_email', models.EmailField(blank=True, max_length=254)),
                ('address', models.TextField(blank=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['student_class', 'roll', 'id'],
                'indexes': [
                    models.Index(fields=['is_active'], name='students_active_idx'),
                    models.Index(fields=['student_class', 'roll'], name='students_class_roll_idx'),
                ],
            },
        ),
    ]
