"""
Line pricing and document totals.

Prices are typed tax-inclusive. A line carries the net unit price and the per-unit tax derived
from it, but its total is quantity x the gross price. Document subtotal/tax are summed from the
net decomposition, so `subtotal + tax_amount` can differ from the sum of line totals by a few
cents. Both behaviours are what the books API expects and must not be reconciled here.

Every derived amount is rounded to 2dp, half away from zero, at each step.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext

from .utils import ValidationError

getcontext().prec = 28

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')
HUNDRED = Decimal('100')
CENT = Decimal('0.01')

DISCOUNT_PERCENTAGE = 'percentage'
DISCOUNT_FIXED = 'fixed'

# line field holding the tax-inclusive unit price, per document kind
PRICE_FIELDS = {
    'estimate': 'unit_price',
    'invoice': 'unit_price',
    'bill': 'cost_price',
}


def as_decimal(value):
    """Coerce user/API input to an unrounded Decimal.

    - None, '' and unparsable input become Decimal('0').
    - Strings may carry thousands separators: "1,234.56".
    - Floats go through str() to avoid binary artifacts.
    """
    if value is None or value == '':
        return Decimal('0')
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, int):
        return Decimal(value)
    try:
        s = str(value).strip().replace(',', '')
        if s.startswith('(') and s.endswith(')'):
            s = '-' + s[1:-1]
        d = Decimal(s)
    except (InvalidOperation, ValueError):
        return Decimal('0')
    if not d.is_finite():
        return Decimal('0')
    return d


def round2(value):
    """Round to cents, half away from zero."""
    return as_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def money(value):
    """Wire format for amounts: a float already rounded to 2dp."""
    return float(round2(value))


def price(quantity, entered_unit_price, tax_rate_percent):
    """
    Derive the per-row fields of a line from the tax-inclusive price.

    Never raises on negative input; the forms constrain that.
    """
    q = as_decimal(quantity)
    p = as_decimal(entered_unit_price)
    r = as_decimal(tax_rate_percent)

    if r == 0:
        net_unit_price = round2(p)
        tax_amount_per_unit = ZERO
    else:
        divisor = 1 + r / HUNDRED
        if divisor == 0:
            # -100% would divide by zero; treat as untaxed
            logger.warning("price: tax rate %s%% is not usable, treating line as untaxed", r)
            net_unit_price = round2(p)
            tax_amount_per_unit = ZERO
        else:
            net_unit_price = round2(p / divisor)
            tax_amount_per_unit = round2(net_unit_price * r / HUNDRED)

    return {
        'net_unit_price': net_unit_price,
        'tax_amount_per_unit': tax_amount_per_unit,
        'line_total': round2(q * p),
    }


def new_line(kind, tax_rate=0):
    """Blank row as the forms start it: no product, default tax rate."""
    return {
        'product_id': 0,
        'product_name': '',
        'description': '',
        'quantity': Decimal('0'),
        PRICE_FIELDS[kind]: ZERO,
        'tax_rate': as_decimal(tax_rate),
        'actual_unit_price': ZERO,
        'tax_amount': ZERO,
        'total_price': ZERO,
    }


def price_line(line, kind):
    """Re-run the full derivation for one row (returns a new dict, input untouched)."""
    price_field = PRICE_FIELDS[kind]
    row = dict(line)
    row['quantity'] = as_decimal(row.get('quantity'))
    row[price_field] = as_decimal(row.get(price_field))
    row['tax_rate'] = as_decimal(row.get('tax_rate'))
    derived = price(row['quantity'], row[price_field], row['tax_rate'])
    row['actual_unit_price'] = derived['net_unit_price']
    row['tax_amount'] = derived['tax_amount_per_unit']
    row['total_price'] = derived['line_total']
    return row


def update_line(line, kind, field, value):
    """Set one field the way a form edit does. Quantity/price/tax edits re-price the row."""
    row = dict(line)
    row[field] = value
    if field in ('quantity', PRICE_FIELDS[kind], 'tax_rate'):
        return price_line(row, kind)
    return row


def apply_product(line, product, kind, quantity=None):
    """
    Fill a row from a catalog product.

    Overwrites name, description and price, keeps the row's tax rate. Quantity resets to 1
    unless the caller supplies one (e.g. a purchase-order line being billed).
    """
    price_field = PRICE_FIELDS[kind]
    source_price = product.get('cost_price') if kind == 'bill' else product.get('unit_price')
    row = dict(line)
    row['product_id'] = product.get('id') or product.get('product_id') or 0
    row['product_name'] = product.get('name') or ''
    row['description'] = product.get('description') or ''
    row[price_field] = as_decimal(source_price)
    row['quantity'] = as_decimal(quantity) if quantity is not None else Decimal('1')
    return price_line(row, kind)


def default_tax_rate(tax_rates):
    """Return the first rate flagged default (percent as Decimal), or None."""
    for rate in tax_rates or []:
        flag = rate.get('is_default')
        if flag in (True, 1, '1', 'true', 'True'):
            return as_decimal(rate.get('rate', rate.get('rate_percent')))
    return None


def apply_default_tax_rate(lines, tax_rates, kind):
    """Lines still at 0% take the default rate once rates have loaded."""
    default = default_tax_rate(tax_rates)
    if default is None:
        return [dict(line) for line in lines]
    result = []
    for line in lines:
        if as_decimal(line.get('tax_rate')) == 0:
            result.append(update_line(line, kind, 'tax_rate', default))
        else:
            result.append(dict(line))
    return result


def has_valid_item(lines):
    """True if at least one row references a real product/category (id not 0/None)."""
    return any(_has_product(line) for line in lines or [])


def _has_product(line):
    ref = line.get('product_id')
    if ref in (None, '', 0, '0'):
        return False
    return True


def valid_items(lines):
    return [line for line in lines or [] if _has_product(line)]


def require_valid_item(lines):
    if not has_valid_item(lines):
        raise ValidationError('At least one valid item is required', field='items')


def aggregate(items, discount_type=DISCOUNT_FIXED, discount_value=0, shipping_cost=0, shipping_tax_rate=0):
    """
    Totals for an estimate or invoice.

    `items` must already be priced (see price_line). Pure: same input, same output.
    """
    subtotal = round2(sum((as_decimal(i.get('quantity')) * as_decimal(i.get('actual_unit_price'))
                           for i in items), Decimal('0')))
    tax_amount = round2(sum((as_decimal(i.get('quantity')) * as_decimal(i.get('tax_amount'))
                             for i in items), Decimal('0')))

    if discount_type == DISCOUNT_PERCENTAGE:
        discount_amount = round2(subtotal * as_decimal(discount_value) / HUNDRED)
    else:
        discount_amount = round2(discount_value)

    base_shipping = round2(shipping_cost)
    shipping_tax_amount = round2(base_shipping * as_decimal(shipping_tax_rate) / HUNDRED)
    shipping_total = round2(base_shipping + shipping_tax_amount)

    total = round2(subtotal + shipping_total + tax_amount - discount_amount)

    return {
        'subtotal': subtotal,
        'tax_amount': tax_amount,
        'discount_amount': discount_amount,
        'shipping_cost': shipping_total,
        'shipping_tax_amount': shipping_tax_amount,
        'total': total,
    }


def aggregate_bill(items):
    """
    Totals for a bill: the total is the sum of gross line totals.

    subtotal/tax_amount are still reported from the net decomposition for display only.
    """
    subtotal = round2(sum((as_decimal(i.get('quantity')) * as_decimal(i.get('actual_unit_price'))
                           for i in items), Decimal('0')))
    tax_amount = round2(sum((as_decimal(i.get('quantity')) * as_decimal(i.get('tax_amount'))
                             for i in items), Decimal('0')))
    total = round2(sum((as_decimal(i.get('total_price')) for i in items), Decimal('0')))
    return {
        'subtotal': subtotal,
        'tax_amount': tax_amount,
        'total': total,
    }


def line_payload(line, kind):
    """API shape of a priced row: ids as int/None, amounts as 2dp floats."""
    price_field = PRICE_FIELDS[kind]
    try:
        product_id = int(line.get('product_id') or 0) or None
    except (TypeError, ValueError):
        product_id = None
    payload = {
        'product_id': product_id,
        'product_name': line.get('product_name') or '',
        'description': line.get('description') or '',
        'quantity': float(as_decimal(line.get('quantity'))),
        price_field: money(line.get(price_field)),
        'actual_unit_price': money(line.get('actual_unit_price')),
        'tax_rate': float(as_decimal(line.get('tax_rate'))),
        'tax_amount': money(line.get('tax_amount')),
        'total_price': money(line.get('total_price')),
    }
    return payload
