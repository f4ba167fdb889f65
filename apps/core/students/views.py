from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.core.exceptions import ValidationError
from django.http import HttpResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.views.decorators.http import require_POST

from apps.core.users.audit import log_audit_event
from apps.core.users.decorators import role_required

from .forms import StudentForm, StudentImportForm
from .models import Student
from .services import (
    create_student,
    import_students_from_csv,
    set_student_active,
    students_to_csv_bytes,
)


def _truthy_param(value):
    return str(value).lower() in {'1', 'true', 'yes', 'on'}


def _filtered_students(request):
    students = Student.objects.all()

    status = request.GET.get('status')
    search = (request.GET.get('q') or '').strip()
    if status == 'active':
        students = students.filter(is_active=True)
    elif status == 'inactive':
        students = students.filter(is_active=False)
    if search:
        students = students.filter(name__icontains=search)
    return students


@login_required
@role_required()
def student_list(request):
    if request.method == 'POST':
        form = StudentForm(request.POST)
        if form.is_valid():
            try:
                student = create_student(form_or_data=form)
            except ValidationError as exc:
                form.add_error(None, '; '.join(exc.messages))
            else:
                log_audit_event(
                    request=request,
                    action='students.created',
                    target=student,
                    details=f"Class={student.student_class}, Roll={student.roll}",
                )
                messages.success(request, 'Student added successfully!')
                return redirect('student_list')
    else:
        form = StudentForm()

    return render(request, 'students/student_list.html', {
        'students': _filtered_students(request),
        'form': form,
        'import_form': StudentImportForm(),
        'selected_status': request.GET.get('status', ''),
        'search': request.GET.get('q', ''),
    })


@login_required
@role_required()
@require_POST
def student_status_update(request, pk):
    student = get_object_or_404(Student, pk=pk)
    is_active = _truthy_param(request.POST.get('is_active'))
    if set_student_active(student, is_active):
        log_audit_event(
            request=request,
            action='students.status_changed',
            target=student,
            details=f"Active={student.is_active}",
        )
    messages.success(request, 'Student status updated!')
    return redirect('student_list')


@login_required
@role_required()
def student_export_csv(request):
    content = students_to_csv_bytes(_filtered_students(request))
    response = HttpResponse(content, content_type='text/csv')
    response['Content-Disposition'] = 'attachment; filename="students.csv"'
    return response


@login_required
@role_required()
@require_POST
def student_import(request):
    form = StudentImportForm(request.POST, request.FILES)
    if not form.is_valid():
        for error in form.errors.get('file', []):
            messages.error(request, error)
        return redirect('student_list')

    try:
        created = import_students_from_csv(form.cleaned_data['file'])
    except ValidationError as exc:
        messages.error(request, '; '.join(exc.messages))
    else:
        log_audit_event(
            request=request,
            action='students.imported',
            details=f"Count={len(created)}",
        )
        messages.success(request, f'{len(created)} students imported.')
    return redirect('student_list')
