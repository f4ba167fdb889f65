from django.urls import path

from .views import (
    fee_reminders_send,
    fee_structure_delete,
    fee_structure_list,
    fee_structure_update,
    invoice_generate,
    invoice_list,
    invoice_pdf,
    payment_record,
    waiver_grant,
)

urlpatterns = [
    path('invoices/', invoice_list, name='invoice_list'),
    path('invoices/generate/', invoice_generate, name='invoice_generate'),
    path('invoices/<int:invoice_id>/pay/', payment_record, name='payment_record'),
    path('invoices/<int:invoice_id>/waive/', waiver_grant, name='waiver_grant'),
    path('invoices/<int:invoice_id>/pdf/', invoice_pdf, name='invoice_pdf'),
    path('reminders/send/', fee_reminders_send, name='fee_reminders_send'),

    path('structure/', fee_structure_list, name='fee_structure_list'),
    path('structure/<int:pk>/edit/', fee_structure_update, name='fee_structure_update'),
    path('structure/<int:pk>/delete/', fee_structure_delete, name='fee_structure_delete'),
]
