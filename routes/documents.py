from flask import Blueprint, request, jsonify, current_app
import logging

from .api_client import get_api_client
from .decorators import api_errors
from .document_utils import build_document, bill_from_order, lines_for_display, priced_lines, document_totals
from .lookup_utils import get_tax_rates
from .pricing_utils import (
    apply_default_tax_rate, apply_product, default_tax_rate, money, new_line, price, update_line,
)
from .terms_utils import due_date, format_date
from .utils import ValidationError, log_action, parse_int

logger = logging.getLogger(__name__)

documents_bp = Blueprint('documents', __name__, url_prefix='/<int:company_id>')

KINDS = ('estimate', 'invoice', 'bill')


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Expected a JSON object body')
    return data


def _kind(kind):
    if kind not in KINDS:
        raise ValidationError(f'Unknown document type: {kind}', field='kind')
    return kind


def _find_product(company_id, product_id):
    for product in get_api_client().list_products(company_id):
        if parse_int(product.get('id') or product.get('product_id')) == product_id:
            return product
    raise ValidationError(f'Product {product_id} not found', field='product_id')


@documents_bp.route('/tax-rates')
@api_errors
def tax_rates(company_id):
    return jsonify(get_tax_rates(company_id))


@documents_bp.route('/pricing/line', methods=['POST'])
@api_errors
def price_single_line(company_id):
    """
    Re-price one row after an edit.

    Body: {"kind", "line", "field"?, "value"?, "product_id"?, "quantity"?}
    With product_id the row is filled from the catalog first.
    """
    data = _json_body()
    kind = _kind(data.get('kind') or 'invoice')
    line = data.get('line') or {}

    product_id = parse_int(data.get('product_id'))
    if product_id:
        product = _find_product(company_id, product_id)
        line = apply_product(line, product, kind, quantity=data.get('quantity'))
    elif data.get('field'):
        line = update_line(line, kind, data['field'], data.get('value'))
    else:
        line = priced_lines(kind, [line])[0]

    return jsonify(lines_for_display([line], kind)[0])


@documents_bp.route('/pricing/totals', methods=['POST'])
@api_errors
def price_totals(company_id):
    """Recompute every row and the document totals. Pure preview, nothing is saved."""
    data = _json_body()
    kind = _kind(data.get('kind') or 'invoice')
    lines = priced_lines(kind, data.get('items'))
    if data.get('apply_default_tax'):
        lines = apply_default_tax_rate(lines, get_tax_rates(company_id), kind)
    totals = document_totals(kind, lines, data)
    return jsonify({
        'items': lines_for_display(lines, kind),
        'totals': {k: money(v) for k, v in totals.items()},
    })


@documents_bp.route('/pricing/quote')
@api_errors
def price_quote(company_id):
    """GET variant for quick checks: ?quantity=&price=&tax_rate="""
    derived = price(request.args.get('quantity'), request.args.get('price'), request.args.get('tax_rate'))
    return jsonify({k: money(v) for k, v in derived.items()})


@documents_bp.route('/due-date')
@api_errors
def resolve_due_date(company_id):
    issue_date = request.args.get('issue_date')
    terms = request.args.get('terms')
    return jsonify({'due_date': format_date(due_date(issue_date, terms))})


def _check_eligibility(company_id, payload):
    if not current_app.config.get('CHECK_CUSTOMER_ELIGIBILITY', True):
        return
    if payload.get('status') == 'proforma':
        return
    result = get_api_client().check_customer_eligibility(
        company_id, payload.get('customer_id'), payload.get('total_amount'))
    if not result.get('eligible', False):
        raise ValidationError(result.get('reason') or 'Customer is not eligible to create more invoices',
                              field='customer_id')


@documents_bp.route('/<any(estimate, invoice, bill):kind>s', methods=['POST'])
@api_errors
def create_document(company_id, kind):
    form = _json_body()
    form['company_id'] = company_id
    payload, totals = build_document(kind, form, tax_rates=get_tax_rates(company_id))

    client = get_api_client()
    if kind == 'invoice':
        _check_eligibility(company_id, payload)

    result = client.create_document(kind, company_id, payload) or {}
    doc_id = parse_int(result.get('id'))

    if kind == 'invoice' and payload.get('estimate_id'):
        client.update_estimate_after_invoice(company_id, payload['estimate_id'], doc_id)

    log_action(f'Created {kind} {payload.get(f"{kind}_number") or doc_id} for {totals["total"]:,.2f}.',
               company_id=company_id, ref_type=kind, ref_id=doc_id, amount=totals['total'])
    logger.info("Created %s id=%s total=%s (company %s)", kind, doc_id, totals['total'], company_id)
    return jsonify({'id': doc_id, 'document': payload}), 201


@documents_bp.route('/<any(estimate, invoice, bill):kind>s/<int:document_id>', methods=['PUT'])
@api_errors
def update_document(company_id, kind, document_id):
    form = _json_body()
    form['company_id'] = company_id
    payload, totals = build_document(kind, form, tax_rates=get_tax_rates(company_id), is_update=True)

    get_api_client().update_document(kind, company_id, document_id, payload)

    log_action(f'Updated {kind} #{document_id} ({totals["total"]:,.2f}).',
               company_id=company_id, ref_type=kind, ref_id=document_id, amount=totals['total'])
    return jsonify({'id': document_id, 'document': payload})


@documents_bp.route('/bills/from-order/<int:order_id>')
@api_errors
def bill_from_purchase_order(company_id, order_id):
    client = get_api_client()
    order = client.get_order(company_id, order_id)
    form = bill_from_order(order, client.list_order_items(company_id, order_id))
    form['items'] = lines_for_display(form['items'], 'bill')
    return jsonify(form)


@documents_bp.route('/products/<int:product_id>/line')
@api_errors
def product_line(company_id, product_id):
    """Blank row filled from a catalog product (?kind=bill uses the cost price)."""
    kind = _kind(request.args.get('kind') or 'invoice')
    product = _find_product(company_id, product_id)
    rates = get_tax_rates(company_id)
    line = new_line(kind, tax_rate=default_tax_rate(rates) or 0)
    line = apply_product(line, product, kind, quantity=request.args.get('quantity'))
    return jsonify(lines_for_display([line], kind)[0])
