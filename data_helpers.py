"""Small coercion helpers shared by the data-access modules.

Input comes from WTForms (already typed) or from JSON bodies (strings), so
every helper accepts either.
"""
from datetime import date, datetime, time


def clean(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def missing_fields(data, fields):
    return [name for name in fields if clean(data.get(name)) in (None, '')]


def parse_date(value):
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value).strip()[:10], '%Y-%m-%d').date()


def parse_time(value):
    if value is None or value == '':
        return None
    if isinstance(value, time):
        return value
    return datetime.strptime(str(value).strip()[:5], '%H:%M').time()


def parse_int(value):
    if value is None or value == '':
        return None
    return int(value)


def parse_float(value):
    if value is None or value == '':
        return None
    return float(value)


def optional_id(value):
    """Select fields use 0 for "none"."""
    value = parse_int(value)
    return value or None
