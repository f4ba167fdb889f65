from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from django.conf import settings


def group_indian_digits(digits: str) -> str:
    """Group an unsigned integer string the en-IN way: 12,34,567."""
    if len(digits) <= 3:
        return digits

    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ','.join(groups + [tail])


def format_amount(value) -> str:
    try:
        amount = Decimal(str(value if value is not None else '0'))
    except InvalidOperation:
        return str(value)

    amount = amount.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    sign = '-' if amount < 0 else ''
    integer_part, fraction = f'{abs(amount):.2f}'.split('.')
    text = group_indian_digits(integer_part)
    if fraction != '00':
        text = f'{text}.{fraction}'
    return f'{sign}{text}'


def format_currency(value, symbol=None) -> str:
    symbol = settings.CURRENCY_SYMBOL if symbol is None else symbol
    return f'{symbol} {format_amount(value)}'.strip()
