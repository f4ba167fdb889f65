from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.core.exceptions import ValidationError
from django.http import HttpResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.urls import reverse
from django.views.decorators.http import require_POST

from apps.core.users.audit import log_audit_event
from apps.core.users.decorators import ADMIN_ONLY, role_required

from .forms import FeeStructureItemForm, InvoiceGenerationForm, PaymentForm, WaiverForm
from .models import FeeStructureItem, Invoice
from .reporting import invoice_rows, pending_invoices
from .services import (
    delete_fee_item,
    generate_invoice_pdf,
    generate_monthly_invoices,
    grant_waiver,
    invoice_settlement,
    load_ledger_snapshot,
    record_payment,
    save_fee_item,
    send_fee_reminders,
)
from .settlement import STATUS_CHOICES

INVOICE_TABS = ('invoices', 'reminders')


def _snapshot_rows(snapshot, builder):
    return builder(
        snapshot['students'],
        snapshot['invoices'],
        snapshot['payments'],
        snapshot['waivers'],
    )


@login_required
@role_required()
def invoice_list(request):
    tab = request.GET.get('tab')
    if tab not in INVOICE_TABS:
        tab = 'invoices'

    status = request.GET.get('status', '')
    if status not in dict(STATUS_CHOICES):
        status = ''
    snapshot = load_ledger_snapshot()

    if tab == 'reminders':
        rows = _snapshot_rows(snapshot, pending_invoices)
    else:
        rows = _snapshot_rows(snapshot, invoice_rows)
        if status:
            rows = [row for row in rows if row['status'] == status]

    return render(request, 'fees/invoice_list.html', {
        'tab': tab,
        'rows': rows,
        'selected_status': status,
        'status_choices': STATUS_CHOICES,
        'generation_form': InvoiceGenerationForm(),
        'has_fee_structure': bool(snapshot['fee_structure']),
    })


@login_required
@role_required()
@require_POST
def invoice_generate(request):
    form = InvoiceGenerationForm(request.POST)
    if not form.is_valid():
        for errors in form.errors.values():
            for error in errors:
                messages.error(request, error)
        return redirect('invoice_list')

    month = form.cleaned_data['month']
    year = form.cleaned_data['year']
    try:
        created = generate_monthly_invoices(
            month=month,
            year=year,
            issue_date=form.cleaned_data.get('issue_date'),
            created_by=request.user,
        )
    except ValidationError as exc:
        messages.error(request, '; '.join(exc.messages))
        return redirect('invoice_list')

    log_audit_event(
        request=request,
        action='fees.invoices_generated',
        details=f"Period={month:02d}/{year}, Created={len(created)}",
    )
    if created:
        messages.success(request, f'Generated {len(created)} invoice(s) for {month:02d}/{year}.')
    else:
        messages.info(request, f'All active students already have invoices for {month:02d}/{year}.')
    return redirect('invoice_list')


@login_required
@role_required()
def payment_record(request, invoice_id):
    invoice = get_object_or_404(Invoice.objects.select_related('student'), pk=invoice_id)
    settlement = invoice_settlement(invoice)

    if request.method == 'POST':
        form = PaymentForm(request.POST)
        if form.is_valid():
            try:
                payment = record_payment(
                    invoice=invoice,
                    amount=form.cleaned_data['amount'],
                    payment_date=form.cleaned_data['payment_date'],
                    received_by=request.user,
                )
            except ValidationError as exc:
                form.add_error(None, '; '.join(exc.messages))
            else:
                log_audit_event(
                    request=request,
                    action='fees.payment_recorded',
                    target=payment,
                    details=f"Invoice={invoice.invoice_number}, Amount={payment.amount}",
                )
                messages.success(request, 'Payment recorded successfully.')
                return redirect('invoice_list')
    else:
        form = PaymentForm()

    return render(request, 'fees/payment_form.html', {
        'invoice': invoice,
        'settlement': settlement,
        'form': form,
    })


@login_required
@role_required()
def waiver_grant(request, invoice_id):
    invoice = get_object_or_404(Invoice.objects.select_related('student'), pk=invoice_id)
    settlement = invoice_settlement(invoice)

    if request.method == 'POST':
        form = WaiverForm(request.POST)
        if form.is_valid():
            try:
                waiver = grant_waiver(
                    invoice=invoice,
                    amount=form.cleaned_data['amount'],
                    reason=form.cleaned_data['reason'],
                    granted_by=request.user,
                )
            except ValidationError as exc:
                form.add_error(None, '; '.join(exc.messages))
            else:
                log_audit_event(
                    request=request,
                    action='fees.waiver_granted',
                    target=waiver,
                    details=f"Invoice={invoice.invoice_number}, Amount={waiver.amount}",
                )
                messages.success(request, 'Waiver granted successfully.')
                return redirect('invoice_list')
    else:
        form = WaiverForm()

    return render(request, 'fees/waiver_form.html', {
        'invoice': invoice,
        'settlement': settlement,
        'form': form,
    })


@login_required
@role_required()
def invoice_pdf(request, invoice_id):
    invoice = get_object_or_404(
        Invoice.objects.select_related('student').prefetch_related('items'),
        pk=invoice_id,
    )
    pdf_bytes = generate_invoice_pdf(invoice)
    response = HttpResponse(pdf_bytes, content_type='application/pdf')
    response['Content-Disposition'] = f'attachment; filename="{invoice.invoice_number}.pdf"'
    return response


@login_required
@role_required()
@require_POST
def fee_reminders_send(request):
    invoice_ids = [value for value in request.POST.getlist('invoice_ids') if value.isdigit()]
    if not invoice_ids:
        messages.warning(request, 'Select at least one invoice to remind.')
        return redirect(f"{reverse('invoice_list')}?tab=reminders")

    result = send_fee_reminders(invoice_ids)
    log_audit_event(
        request=request,
        action='fees.reminders_sent',
        details=(
            f"Sent={len(result['sent'])}, Skipped={len(result['skipped'])}, "
            f"Failed={len(result['failed'])}"
        ),
    )

    if result['sent']:
        messages.success(request, f"Sent {len(result['sent'])} reminder(s).")
    if result['skipped']:
        messages.warning(request, f"Skipped {len(result['skipped'])} invoice(s) without a guardian email.")
    if result['failed']:
        messages.error(request, f"{len(result['failed'])} reminder(s) could not be delivered.")
    return redirect(f"{reverse('invoice_list')}?tab=reminders")


@login_required
@role_required(ADMIN_ONLY)
def fee_structure_list(request):
    if request.method == 'POST':
        form = FeeStructureItemForm(request.POST)
        if form.is_valid():
            try:
                item = save_fee_item(
                    description=form.cleaned_data['description'],
                    amount=form.cleaned_data['amount'],
                )
            except ValidationError as exc:
                form.add_error(None, '; '.join(exc.messages))
            else:
                log_audit_event(
                    request=request,
                    action='fees.fee_item_created',
                    target=item,
                    details=f"Amount={item.amount}",
                )
                messages.success(request, 'Fee item added.')
                return redirect('fee_structure_list')
    else:
        form = FeeStructureItemForm()

    return render(request, 'fees/fee_structure_list.html', {
        'items': FeeStructureItem.objects.order_by('id'),
        'form': form,
    })


@login_required
@role_required(ADMIN_ONLY)
def fee_structure_update(request, pk):
    item = get_object_or_404(FeeStructureItem, pk=pk)
    form = FeeStructureItemForm(request.POST or None, instance=item)

    if request.method == 'POST' and form.is_valid():
        try:
            item = save_fee_item(
                description=form.cleaned_data['description'],
                amount=form.cleaned_data['amount'],
                item=item,
            )
        except ValidationError as exc:
            form.add_error(None, '; '.join(exc.messages))
        else:
            log_audit_event(
                request=request,
                action='fees.fee_item_updated',
                target=item,
                details=f"Amount={item.amount}",
            )
            messages.success(request, 'Fee item updated.')
            return redirect('fee_structure_list')

    return render(request, 'fees/fee_structure_form.html', {'form': form, 'item': item})


@login_required
@role_required(ADMIN_ONLY)
@require_POST
def fee_structure_delete(request, pk):
    item = get_object_or_404(FeeStructureItem, pk=pk)
    description = item.description
    delete_fee_item(item)
    log_audit_event(
        request=request,
        action='fees.fee_item_deleted',
        details=f"Item={description}",
    )
    messages.success(request, 'Fee item removed.')
    return redirect('fee_structure_list')
