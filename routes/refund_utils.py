"""
Invoice refunds (returns).

The user picks which invoice lines come back, how many units and at what unit price. A refund is
posted as one request listing every returned line; the books side re-checks quantities against
what was sold and issues the refund number.

Quantities are clamped to [0, quantity purchased] and refund prices to >= 0 as they are typed,
so the state never holds an out-of-range value.
"""
import logging
from decimal import Decimal

from .pricing_utils import ZERO, as_decimal, money, round2
from .terms_utils import parse_date
from .utils import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_REFUND_METHOD = 'Cash'


def refund_line(record):
    """Refund row for one invoice item as returned by the books API."""
    unit_price = round2(record.get('unit_price'))
    return {
        'invoice_item_id': int(record.get('id') or record.get('invoice_item_id')),
        'product_name': record.get('product_name') or 'Unknown Item',
        'quantity_purchased': as_decimal(record.get('quantity')),
        'quantity_to_return': Decimal('0'),
        'unit_price': unit_price,
        'refund_unit_price': unit_price,
        'selected': False,
    }


class RefundEngine:
    """Line selection, return quantities and refund prices for one invoice."""

    def __init__(self, company_id, invoice_id, lines):
        self.company_id = company_id
        self.invoice_id = invoice_id
        self.lines = list(lines)

    @classmethod
    def from_records(cls, company_id, invoice_id, records):
        lines = []
        for record in records or []:
            try:
                lines.append(refund_line(record))
            except (TypeError, ValueError):
                logger.warning("Skipping invoice item without a usable id: %r", record)
        return cls(company_id, invoice_id, lines)

    def line(self, item_id):
        for line in self.lines:
            if line['invoice_item_id'] == item_id:
                return line
        return None

    def _clamp(self, line, value):
        return max(Decimal('0'), min(as_decimal(value), line['quantity_purchased']))

    def toggle(self, item_id):
        """Select/deselect a line. Selecting starts at one unit; deselecting returns nothing."""
        line = self.line(item_id)
        if line is None:
            return False
        line['selected'] = not line['selected']
        if not line['selected']:
            line['quantity_to_return'] = Decimal('0')
        elif line['quantity_to_return'] == 0:
            line['quantity_to_return'] = self._clamp(line, 1)
        return line['selected']

    def set_quantity(self, item_id, value):
        line = self.line(item_id)
        if line is None:
            return False
        line['quantity_to_return'] = self._clamp(line, value)
        # typing a positive quantity selects the line
        if line['quantity_to_return'] > 0:
            line['selected'] = True
        return True

    def set_refund_price(self, item_id, value):
        line = self.line(item_id)
        if line is None:
            return False
        line['refund_unit_price'] = max(ZERO, round2(value))
        return True

    def refund_items(self):
        return [line for line in self.lines if line['selected'] and line['quantity_to_return'] > 0]

    def total(self):
        return round2(sum((line['quantity_to_return'] * line['refund_unit_price']
                           for line in self.lines if line['selected']), ZERO))

    def build_refund(self, refund_date, refund_method=None, reason=None):
        items = self.refund_items()
        if not items:
            raise ValidationError('Please select at least one item to refund.', field='items')
        refunded_on = parse_date(refund_date)
        if refunded_on is None:
            raise ValidationError('Refund date is required (YYYY-MM-DD).', field='refund_date')

        return {
            'invoiceId': self.invoice_id,
            'companyId': self.company_id,
            'date': refunded_on.strftime('%Y-%m-%d'),
            'reason': reason or '',
            'paymentMethod': (refund_method or '').strip() or DEFAULT_REFUND_METHOD,
            'refundItems': [
                {
                    'invoice_item_id': line['invoice_item_id'],
                    'quantity_to_return': float(line['quantity_to_return']),
                    'refund_unit_price': money(line['refund_unit_price']),
                }
                for line in items
            ],
        }

    def submit(self, client, refund_date, refund_method=None, reason=None):
        """Post the refund; ValidationError before any call, SubmitFailure leaves state as is."""
        payload = self.build_refund(refund_date, refund_method, reason)
        logger.info("Submitting refund of %s for invoice %s (company %s, %d lines)",
                    self.total(), self.invoice_id, self.company_id, len(payload['refundItems']))
        result = client.process_refund(self.company_id, payload)
        return payload, result

    def to_dict(self):
        return {
            'company_id': self.company_id,
            'invoice_id': self.invoice_id,
            'lines': [
                dict(line,
                     quantity_purchased=str(line['quantity_purchased']),
                     quantity_to_return=str(line['quantity_to_return']),
                     unit_price=str(line['unit_price']),
                     refund_unit_price=str(line['refund_unit_price']))
                for line in self.lines
            ],
        }

    @classmethod
    def from_dict(cls, data):
        lines = []
        for line in data.get('lines', []):
            lines.append(dict(
                line,
                invoice_item_id=int(line['invoice_item_id']),
                quantity_purchased=as_decimal(line.get('quantity_purchased')),
                quantity_to_return=as_decimal(line.get('quantity_to_return')),
                unit_price=round2(line.get('unit_price')),
                refund_unit_price=round2(line.get('refund_unit_price')),
                selected=bool(line.get('selected')),
            ))
        return cls(data.get('company_id'), data.get('invoice_id'), lines)

    def summary(self):
        return {
            'invoice_id': self.invoice_id,
            'total_refund': money(self.total()),
            'lines': [
                {
                    'invoice_item_id': line['invoice_item_id'],
                    'product_name': line['product_name'],
                    'quantity_purchased': float(line['quantity_purchased']),
                    'quantity_to_return': float(line['quantity_to_return']),
                    'unit_price': money(line['unit_price']),
                    'refund_unit_price': money(line['refund_unit_price']),
                    'line_refund': money(line['quantity_to_return'] * line['refund_unit_price'])
                    if line['selected'] else 0.0,
                    'selected': line['selected'],
                }
                for line in self.lines
            ],
        }
