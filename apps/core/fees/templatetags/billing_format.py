from django import template

from apps.core.fees.settlement import STATUS_CHOICES
from apps.core.utils.formatting import format_currency
from apps.core.utils.nepali_calendar import to_bs_display

register = template.Library()

@register.filter
def currency(value):
    return format_currency(value)

@register.filter
def bs_date(value):
    return to_bs_display(value)

@register.filter
def status_badge(status):
    if status not in dict(STATUS_CHOICES):
        return ''
    return f'badge-{status.lower()}'
