"""
Turn a submitted estimate/invoice/bill form into the books API payload.

Pure functions: no I/O. Lookups (tax rates, orders) are passed in by the caller.
"""
import logging
from datetime import datetime
from decimal import Decimal

from .pricing_utils import (
    DISCOUNT_FIXED, DISCOUNT_PERCENTAGE, aggregate, aggregate_bill, as_decimal,
    default_tax_rate, line_payload, money, price_line, require_valid_item, valid_items,
)
from .status_utils import CANCELLED, initial_status
from .terms_utils import due_date, format_date, normalize_terms, parse_date
from .utils import ValidationError, parse_int

logger = logging.getLogger(__name__)

DATE_FIELDS = {
    'estimate': 'estimate_date',
    'invoice': 'invoice_date',
    'bill': 'bill_date',
}

NUMBER_FIELDS = {
    'estimate': 'estimate_number',
    'invoice': 'invoice_number',
    'bill': 'bill_number',
}

COUNTERPARTY_FIELDS = {
    'estimate': 'customer_id',
    'invoice': 'customer_id',
    'bill': 'vendor_id',
}

# header fields copied through to the API as typed
PASSTHROUGH_FIELDS = {
    'estimate': ('notes', 'head_note', 'shipping_address', 'billing_address', 'ship_via',
                 'shipping_date', 'expiry_date'),
    'invoice': ('notes', 'head_note', 'shipping_address', 'billing_address', 'ship_via',
                'shipping_date', 'tracking_number'),
    'bill': ('notes', 'mailing_address'),
}


def _require(form, field, message):
    value = form.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(message, field=field)
    return value


def validate_header(kind, form):
    """Required header fields, checked in the order the forms report them."""
    if kind == 'invoice':
        _require(form, 'invoice_number', 'Invoice number is required')
        if not parse_int(form.get('customer_id')):
            raise ValidationError('Customer is required', field='customer_id')
        if parse_date(_require(form, 'invoice_date', 'Invoice date is required')) is None:
            raise ValidationError('Invoice date is required', field='invoice_date')
    elif kind == 'estimate':
        if not parse_int(form.get('customer_id')):
            raise ValidationError('Customer is required', field='customer_id')
    elif kind == 'bill':
        _require(form, 'bill_number', 'Bill number is required')
        if parse_date(_require(form, 'bill_date', 'Bill date is required')) is None:
            raise ValidationError('Bill date is required', field='bill_date')
    else:
        raise ValueError(f"Unknown document kind {kind!r}")


def priced_lines(kind, raw_items, tax_rates=None):
    """Price every submitted row; rows without a tax rate take the default rate."""
    default = default_tax_rate(tax_rates)
    lines = []
    for raw in raw_items or []:
        row = dict(raw)
        if row.get('tax_rate') in (None, ''):
            row['tax_rate'] = default if default is not None else 0
        lines.append(price_line(row, kind))
    return lines


def document_totals(kind, lines, form):
    if kind == 'bill':
        return aggregate_bill(lines)
    discount_type = form.get('discount_type') or DISCOUNT_FIXED
    if discount_type not in (DISCOUNT_FIXED, DISCOUNT_PERCENTAGE):
        raise ValidationError('Discount type must be "percentage" or "fixed"', field='discount_type')
    return aggregate(
        lines,
        discount_type=discount_type,
        discount_value=form.get('discount_value') or 0,
        shipping_cost=form.get('shipping_cost') or 0,
        shipping_tax_rate=form.get('shipping_tax_rate') or 0,
    )


def build_document(kind, form, tax_rates=None, is_update=False):
    """
    Validate a document form and return (payload, totals).

    Raises ValidationError for missing header fields or when no row references a product.
    """
    validate_header(kind, form)

    lines = priced_lines(kind, form.get('items'), tax_rates)
    require_valid_item(lines)
    if kind == 'estimate':
        lines = valid_items(lines)

    totals = document_totals(kind, lines, form)

    issue_field = DATE_FIELDS[kind]
    issued = parse_date(form.get(issue_field)) or datetime.utcnow().date()
    terms = normalize_terms(form.get('terms'))
    due = due_date(issued, terms)

    payload = {
        NUMBER_FIELDS[kind]: (form.get(NUMBER_FIELDS[kind]) or '').strip() or None,
        COUNTERPARTY_FIELDS[kind]: parse_int(form.get(COUNTERPARTY_FIELDS[kind])),
        'company_id': parse_int(form.get('company_id')),
        'employee_id': parse_int(form.get('employee_id')),
        issue_field: issued.strftime('%Y-%m-%d'),
        'terms': terms,
        'due_date': format_date(due),
        'subtotal': money(totals['subtotal']),
        'tax_amount': money(totals['tax_amount']),
        'total_amount': money(totals['total']),
        'items': [line_payload(line, kind) for line in lines],
    }
    for field in PASSTHROUGH_FIELDS[kind]:
        if field in form:
            payload[field] = form.get(field)

    if kind in ('estimate', 'invoice'):
        payload.update({
            'discount_type': form.get('discount_type') or DISCOUNT_FIXED,
            'discount_value': float(as_decimal(form.get('discount_value'))),
            'discount_amount': money(totals['discount_amount']),
            'shipping_cost': money(totals['shipping_cost']),
            'shipping_tax_rate': float(as_decimal(form.get('shipping_tax_rate'))),
        })
    if kind == 'invoice':
        payload['estimate_id'] = parse_int(form.get('estimate_id'))
    if kind == 'bill':
        payload['order_id'] = parse_int(form.get('order_id'))

    if form.get('cancelled'):
        payload['status'] = CANCELLED
    elif not is_update:
        proforma = kind == 'invoice' and form.get('invoice_type') == 'proforma'
        payload['status'] = initial_status(kind, proforma=proforma)

    return payload, totals


def bill_from_order(order, order_items, now=None):
    """Bill form pre-filled from a purchase order: vendor, number and the ordered lines."""
    now = now or datetime.utcnow()
    items = []
    for item in order_items or []:
        qty = item.get('qty')
        row = {
            'product_id': item.get('product_id') or 0,
            'product_name': item.get('name') or '',
            'description': item.get('description') or '',
            'quantity': Decimal('1') if qty in (None, '') else as_decimal(qty),
            'cost_price': as_decimal(item.get('rate')),
            'tax_rate': as_decimal(item.get('tax_rate')),
        }
        items.append(price_line(row, 'bill'))
    return {
        'bill_number': f"BILL-{order.get('order_no')}-{int(now.timestamp() * 1000)}",
        'order_id': parse_int(order.get('id')),
        'vendor_id': parse_int(order.get('vendor_id')),
        'vendor_name': order.get('supplier') or '',
        'employee_id': parse_int(order.get('class')),
        'items': items,
    }


def lines_for_display(lines, kind):
    return [line_payload(line, kind) for line in lines]
