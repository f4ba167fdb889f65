from django.contrib import admin

from .models import FeeStructureItem, Invoice, InvoiceItem, Payment, Waiver


@admin.register(FeeStructureItem)
class FeeStructureItemAdmin(admin.ModelAdmin):
    list_display = ('description', 'amount', 'updated_at')
    search_fields = ('description',)


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0
    can_delete = False
    readonly_fields = ('position', 'description', 'amount')

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ('id', 'student', 'month', 'year', 'issue_date', 'due_date', 'total_amount')
    list_filter = ('year', 'month')
    search_fields = ('student__name',)
    inlines = [InvoiceItemInline]

    # Invoices come only from monthly generation and are read-only afterwards.
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ('id', 'invoice', 'amount', 'payment_date', 'received_by')
    list_filter = ('payment_date',)
    search_fields = ('invoice__student__name',)

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Waiver)
class WaiverAdmin(admin.ModelAdmin):
    list_display = ('id', 'invoice', 'amount', 'reason', 'granted_by', 'created_at')
    search_fields = ('invoice__student__name', 'reason')

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
