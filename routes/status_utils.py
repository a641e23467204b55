"""
Settlement status of invoices and bills.

Status is never edited directly: it is recomputed from (total, paid, due date, cancelled) each
time a document is read. Only the creation state (draft/sent/opened/proforma) and cancellation
are stored choices.
"""
from datetime import date

from .pricing_utils import as_decimal, round2
from .terms_utils import parse_date

DRAFT = 'draft'
SENT = 'sent'
PROFORMA = 'proforma'
OPENED = 'opened'
PARTIALLY_PAID = 'partially_paid'
PAID = 'paid'
OVERDUE = 'overdue'
CANCELLED = 'cancelled'

STATUSES = (DRAFT, SENT, PROFORMA, OPENED, PARTIALLY_PAID, PAID, OVERDUE, CANCELLED)

# statuses a document can be created in
INITIAL_STATUSES = (DRAFT, SENT, OPENED, PROFORMA)
# not yet issued: never becomes overdue while unpaid
UNISSUED_STATUSES = (DRAFT, PROFORMA)

PAYABLE_STATUSES = frozenset([OPENED, OVERDUE, PARTIALLY_PAID])


def initial_status(kind, proforma=False):
    if proforma:
        return PROFORMA
    if kind == 'estimate':
        return DRAFT
    return OPENED


def balance_due(total_amount, paid_amount):
    return round2(as_decimal(total_amount) - as_decimal(paid_amount))


def derive_status(total_amount, paid_amount, due_date=None, cancelled=False, created_as=OPENED, today=None):
    """
    Compute the settlement status.

    `created_as` is the state the document was created in (opened, sent, draft or proforma); it
    is what an unpaid document that is not past due reports.
    """
    if cancelled:
        return CANCELLED

    total = round2(total_amount)
    paid = round2(paid_amount)
    if created_as not in INITIAL_STATUSES:
        created_as = OPENED

    if created_as in UNISSUED_STATUSES and paid <= 0:
        return created_as
    if paid >= total:
        return PAID
    if paid > 0:
        return PARTIALLY_PAID

    due = parse_date(due_date)
    today = today or date.today()
    if due is not None and due < today:
        return OVERDUE
    return created_as


def document_status(document, today=None):
    """Status of an API document record (dict with total_amount/paid_amount/due_date/status)."""
    stored = (document.get('status') or '').strip().lower()
    cancelled = stored == CANCELLED or bool(document.get('cancelled'))
    created_as = stored if stored in INITIAL_STATUSES else OPENED
    return derive_status(
        document.get('total_amount'),
        document.get('paid_amount'),
        document.get('due_date'),
        cancelled=cancelled,
        created_as=created_as,
        today=today,
    )


def is_payable(status):
    return status in PAYABLE_STATUSES


def days_overdue(document, today=None):
    """How many days past due; 0 when paid, cancelled or without a due date."""
    status = document_status(document, today=today)
    if status in (PAID, CANCELLED):
        return 0
    due = parse_date(document.get('due_date'))
    if due is None:
        return 0
    today = today or date.today()
    return max(0, (today - due).days)
