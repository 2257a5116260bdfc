"""
RWA — Payment month helpers
Payment months are "YYYY-MM" strings; their lexicographic order is the
calendar order, which the payment queries rely on.
"""
import calendar
import re
from datetime import date

MONTH_RE = re.compile(r'^\d{4}-\d{2}$')


def is_valid_month(value):
    """True for a well-formed YYYY-MM string with a month between 01 and 12."""
    if not isinstance(value, str) or not MONTH_RE.match(value):
        return False
    return 1 <= int(value[5:7]) <= 12


def _split(month):
    y, m = map(int, month.split('-'))
    return y, m


def shift_month(month, delta):
    y, m = _split(month)
    index = y * 12 + (m - 1) + delta
    return f'{index // 12:04d}-{index % 12 + 1:02d}'


def previous_month(month):
    """'2025-01' -> '2024-12'"""
    return shift_month(month, -1)


def next_month(month):
    return shift_month(month, 1)


def months_between(start_ym, end_ym):
    """YYYY-MM strings from start to end inclusive."""
    if not start_ym or not end_ym or start_ym > end_ym:
        return []
    out = []
    current = start_ym
    while current <= end_ym:
        out.append(current)
        current = next_month(current)
    return out


def month_of(day):
    return f'{day.year}-{day.month:02d}'


def current_month():
    return month_of(date.today())


def due_date(month):
    """A month's charge falls due on its last calendar day."""
    y, m = _split(month)
    return date(y, m, calendar.monthrange(y, m)[1])


def is_due_date_passed(month, today=None):
    today = today or date.today()
    return today > due_date(month)


def month_label(month):
    """'2025-11' -> 'Nov 2025'"""
    y, m = _split(month)
    return f'{calendar.month_abbr[m]} {y}'
