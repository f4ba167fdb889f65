"""
Approximate Gregorian (AD) to Bikram Sambat (BS) conversion for display.

Only a handful of recent BS years carry their real month lengths; every other
year borrows the 2081 layout, so results drift for older dates. Nothing in the
billing ledger depends on these values.
"""
from datetime import date, datetime

BS_MONTHS = (
    'Baisakh', 'Jestha', 'Ashadh', 'Shrawan', 'Bhadra', 'Ashwin',
    'Kartik', 'Mangsir', 'Poush', 'Magh', 'Falgun', 'Chaitra',
)

BS_MONTH_DAYS = {
    2079: (31, 31, 32, 32, 31, 31, 30, 29, 30, 29, 30, 30),
    2080: (31, 32, 31, 32, 31, 30, 30, 30, 29, 30, 29, 31),
    2081: (31, 31, 32, 32, 31, 30, 30, 29, 30, 29, 30, 30),
    2082: (31, 32, 31, 32, 31, 30, 30, 30, 29, 30, 29, 31),
}
FALLBACK_BS_YEAR = 2081

# 13 April 1923 AD is 1 Baisakh 1980 BS.
REFERENCE_AD_DATE = date(1923, 4, 13)
REFERENCE_BS_YEAR = 1980

INVALID_DATE = 'Invalid Date'


def _month_days(bs_year):
    return BS_MONTH_DAYS.get(bs_year, BS_MONTH_DAYS[FALLBACK_BS_YEAR])


def _coerce_date(value):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip()[:10])
    raise TypeError(f'Unsupported date value: {value!r}')


def to_bs_date(value):
    """Return (year, month, day) in BS for an AD date, datetime or ISO string."""
    ad_date = _coerce_date(value)
    remaining = (ad_date - REFERENCE_AD_DATE).days
    if remaining < 0:
        raise ValueError('Dates before 1980 BS are not supported.')

    bs_year = REFERENCE_BS_YEAR
    while remaining >= sum(_month_days(bs_year)):
        remaining -= sum(_month_days(bs_year))
        bs_year += 1

    for index, days in enumerate(_month_days(bs_year)):
        if remaining < days:
            return bs_year, index + 1, remaining + 1
        remaining -= days

    # Unreachable: the year loop leaves fewer days than the year holds.
    return bs_year, 12, _month_days(bs_year)[-1]


def to_bs_display(value) -> str:
    if value in (None, ''):
        return ''
    try:
        bs_year, bs_month, bs_day = to_bs_date(value)
    except (TypeError, ValueError):
        return INVALID_DATE
    return f'{BS_MONTHS[bs_month - 1]} {bs_day}, {bs_year}'
