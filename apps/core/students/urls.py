from django.urls import path

from .views import (
    student_export_csv,
    student_import,
    student_list,
    student_status_update,
)

urlpatterns = [
    path('', student_list, name='student_list'),
    path('<int:pk>/status/', student_status_update, name='student_status_update'),
    path('export/', student_export_csv, name='student_export_csv'),
    path('import/', student_import, name='student_import'),
]
