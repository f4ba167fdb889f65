from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.shortcuts import render

from apps.core.fees.reporting import (
    dangling_ledger_entries,
    dashboard_stats,
    report_summary_stats,
    student_report_rows,
)
from apps.core.fees.services import load_ledger_snapshot
from apps.core.users.audit import log_audit_event
from apps.core.users.decorators import role_required
from apps.core.utils.exports import csv_response

from .summary import generate_report_summary

REPORT_CSV_HEADERS = ['Student ID', 'Name', 'Status', 'Total Billed', 'Total Paid', 'Total Due']


def _ledger(snapshot):
    return (
        snapshot['students'],
        snapshot['invoices'],
        snapshot['payments'],
        snapshot['waivers'],
    )


@login_required
@role_required()
def dashboard(request):
    snapshot = load_ledger_snapshot()
    return render(request, 'reports/dashboard.html', {
        'stats': dashboard_stats(*_ledger(snapshot)),
    })


@login_required
@role_required()
def report_list(request):
    snapshot = load_ledger_snapshot()
    rows = student_report_rows(*_ledger(snapshot))
    stats = report_summary_stats(*_ledger(snapshot))

    if request.GET.get('export') == 'csv':
        log_audit_event(request=request, action='reports.exported', details=f"Rows={len(rows)}")
        return csv_response(
            headers=REPORT_CSV_HEADERS,
            rows=(
                [
                    row['student_id'],
                    row['student_name'],
                    'Active' if row['is_active'] else 'Inactive',
                    row['total_billed'],
                    row['total_paid'],
                    row['total_due'],
                ]
                for row in rows
            ),
            filename_base='billing_report',
        )

    ai_summary = ''
    if request.method == 'POST':
        ai_summary = generate_report_summary(stats)
        log_audit_event(request=request, action='reports.summary_generated')

    dangling = dangling_ledger_entries(snapshot['invoices'], snapshot['payments'], snapshot['waivers'])
    if dangling['payments'] or dangling['waivers']:
        messages.warning(request, 'Some ledger entries reference invoices that no longer exist.')

    return render(request, 'reports/report_list.html', {
        'rows': rows,
        'stats': stats,
        'ai_summary': ai_summary,
    })
