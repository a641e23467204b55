from datetime import date, datetime, timedelta

TERMS_DAYS = {
    'due_on_receipt': 0,
    'net_15': 15,
    'net_30': 30,
    'net_60': 60,
}

# customer/vendor records store the code without the underscore
TERMS_ALIASES = {
    'net15': 'net_15',
    'net30': 'net_30',
    'net60': 'net_60',
}


def normalize_terms(terms_code):
    code = (terms_code or '').strip().lower()
    return TERMS_ALIASES.get(code, code)


def parse_date(value):
    """Accept a date, a datetime or a 'YYYY-MM-DD' (optionally with a time part) string."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    # API dates sometimes arrive as full ISO timestamps
    s = s.split('T')[0].split(' ')[0]
    try:
        return datetime.strptime(s, '%Y-%m-%d').date()
    except ValueError:
        return None


def format_date(value):
    d = parse_date(value)
    return d.strftime('%Y-%m-%d') if d else None


def due_date(issue_date, terms_code):
    """Due date for the payment terms, or None when the terms are unknown/blank."""
    issued = parse_date(issue_date)
    if issued is None:
        return None
    days = TERMS_DAYS.get(normalize_terms(terms_code))
    if days is None:
        return None
    return issued + timedelta(days=days)
