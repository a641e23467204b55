from flask import Blueprint, request, jsonify, session, current_app
from datetime import date
import logging
import uuid

from .allocation_utils import AllocationEngine
from .api_client import get_api_client
from .decorators import api_errors
from .lookup_utils import get_payment_methods
from .pricing_utils import round2
from .refund_utils import DEFAULT_REFUND_METHOD, RefundEngine
from .utils import ValidationError, cache, log_action

logger = logging.getLogger(__name__)

ar_ap_bp = Blueprint('ar_ap', __name__, url_prefix='/<int:company_id>/payments/<any(invoice, bill):kind>/<int:counterparty_id>')
refunds_bp = Blueprint('refunds', __name__, url_prefix='/<int:company_id>/refunds/<int:invoice_id>')


# In-progress state lives in the server-side cache; the session cookie only carries a token per
# screen, so its size does not grow with the number of open documents.

def _cache_key(state_key, token):
    return f'{state_key}:{token}'


def _fetch_state(state_key):
    token = session.get(state_key)
    if not token:
        return None
    return cache.get(_cache_key(state_key, token))


def _store_state(state_key, data):
    token = session.get(state_key)
    if not token:
        token = uuid.uuid4().hex
        session[state_key] = token
    cache.set(_cache_key(state_key, token), data,
              timeout=current_app.config.get('PAYMENT_STATE_SECONDS', 3600))


def _drop_state(state_key):
    token = session.pop(state_key, None)
    if token:
        cache.delete(_cache_key(state_key, token))


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _today():
    return date.today().strftime('%Y-%m-%d')


# -- receive payment / pay bills -------------------------------------------

def _session_key(kind, company_id, counterparty_id):
    return f'allocation:{kind}:{company_id}:{counterparty_id}'


def _load_engine(kind, company_id, counterparty_id):
    data = _fetch_state(_session_key(kind, company_id, counterparty_id))
    if not data:
        raise ValidationError('No payment in progress. Load the open documents first.')
    return AllocationEngine.from_dict(data)


def _save_engine(engine):
    _store_state(_session_key(engine.kind, engine.company_id, engine.counterparty_id), engine.to_dict())


@ar_ap_bp.route('/start', methods=['POST'])
@api_errors
def start_payment(company_id, kind, counterparty_id):
    """
    Load the counterparty's open documents and begin a fresh payment.
      invoice: receive payment from customer <counterparty_id>
      bill:    pay bills of vendor <counterparty_id>
    A failed lookup halts here: no state is stored.
    """
    records = get_api_client().list_open_documents(kind, company_id, counterparty_id)
    engine = AllocationEngine.from_records(
        kind, company_id, counterparty_id, records,
        allow_overpayment=current_app.config.get('ALLOW_OVERPAYMENT', False),
    )
    _save_engine(engine)

    methods = get_payment_methods()
    body = engine.summary()
    body['payment_methods'] = methods
    body['payment_method'] = methods[0] if methods else ''
    body['payment_date'] = _today()
    logger.info("Started %s payment for counterparty %s (company %s): %d open documents",
                kind, counterparty_id, company_id, len(engine.documents))
    return jsonify(body)


@ar_ap_bp.route('', methods=['GET'])
@api_errors
def payment_state(company_id, kind, counterparty_id):
    engine = _load_engine(kind, company_id, counterparty_id)
    return jsonify(engine.summary(query=request.args.get('q')))


@ar_ap_bp.route('/toggle-all', methods=['POST'])
@api_errors
def toggle_all(company_id, kind, counterparty_id):
    engine = _load_engine(kind, company_id, counterparty_id)
    engine.toggle_select_all()
    _save_engine(engine)
    return jsonify(engine.summary())


@ar_ap_bp.route('/toggle/<int:document_id>', methods=['POST'])
@api_errors
def toggle_document(company_id, kind, counterparty_id, document_id):
    engine = _load_engine(kind, company_id, counterparty_id)
    engine.toggle_one(document_id)
    _save_engine(engine)
    return jsonify(engine.summary())


@ar_ap_bp.route('/amount/<int:document_id>', methods=['POST'])
@api_errors
def set_document_amount(company_id, kind, counterparty_id, document_id):
    engine = _load_engine(kind, company_id, counterparty_id)
    engine.set_amount(document_id, _json_body().get('amount'))
    _save_engine(engine)
    return jsonify(engine.summary())


@ar_ap_bp.route('/submit', methods=['POST'])
@api_errors
def submit_payment(company_id, kind, counterparty_id):
    """
    Record one payment with its per-document allocations.

    On any failure the stored state is left exactly as it was.
    """
    engine = _load_engine(kind, company_id, counterparty_id)
    data = _json_body()
    reference = data.get('deposit_to', data.get('reference'))

    payload, _ = engine.submit(
        get_api_client(),
        data.get('payment_date') or _today(),
        data.get('payment_method'),
        reference=reference,
        notes=data.get('notes'),
    )

    _drop_state(_session_key(kind, company_id, counterparty_id))
    amount = round2(payload['payment_amount'])
    log_action(f'Recorded {kind} payment of {amount:,.2f} for counterparty #{counterparty_id} '
               f'({payload["payment_method"]}).',
               company_id=company_id, ref_type=f'{kind}_payment', ref_id=counterparty_id, amount=amount)
    return jsonify({'status': 'ok', 'payment': payload}), 201


@ar_ap_bp.route('', methods=['DELETE'])
@api_errors
def discard_payment(company_id, kind, counterparty_id):
    _drop_state(_session_key(kind, company_id, counterparty_id))
    return jsonify({'status': 'ok'})


# -- invoice refunds --------------------------------------------------------

def _refund_key(company_id, invoice_id):
    return f'refund:{company_id}:{invoice_id}'


def _load_refund(company_id, invoice_id):
    data = _fetch_state(_refund_key(company_id, invoice_id))
    if not data:
        raise ValidationError('No refund in progress. Load the invoice items first.')
    return RefundEngine.from_dict(data)


def _save_refund(engine):
    _store_state(_refund_key(engine.company_id, engine.invoice_id), engine.to_dict())


@refunds_bp.route('/start', methods=['POST'])
@api_errors
def start_refund(company_id, invoice_id):
    records = get_api_client().list_invoice_items(company_id, invoice_id)
    engine = RefundEngine.from_records(company_id, invoice_id, records)
    _save_refund(engine)

    body = engine.summary()
    body['payment_methods'] = get_payment_methods()
    body['refund_method'] = DEFAULT_REFUND_METHOD
    body['refund_date'] = _today()
    return jsonify(body)


@refunds_bp.route('', methods=['GET'])
@api_errors
def refund_state(company_id, invoice_id):
    return jsonify(_load_refund(company_id, invoice_id).summary())


@refunds_bp.route('/toggle/<int:item_id>', methods=['POST'])
@api_errors
def toggle_refund_line(company_id, invoice_id, item_id):
    engine = _load_refund(company_id, invoice_id)
    engine.toggle(item_id)
    _save_refund(engine)
    return jsonify(engine.summary())


@refunds_bp.route('/quantity/<int:item_id>', methods=['POST'])
@api_errors
def set_refund_quantity(company_id, invoice_id, item_id):
    engine = _load_refund(company_id, invoice_id)
    engine.set_quantity(item_id, _json_body().get('quantity'))
    _save_refund(engine)
    return jsonify(engine.summary())


@refunds_bp.route('/price/<int:item_id>', methods=['POST'])
@api_errors
def set_refund_price(company_id, invoice_id, item_id):
    engine = _load_refund(company_id, invoice_id)
    engine.set_refund_price(item_id, _json_body().get('price'))
    _save_refund(engine)
    return jsonify(engine.summary())


@refunds_bp.route('/submit', methods=['POST'])
@api_errors
def submit_refund(company_id, invoice_id):
    engine = _load_refund(company_id, invoice_id)
    data = _json_body()
    payload, result = engine.submit(
        get_api_client(),
        data.get('refund_date') or _today(),
        data.get('refund_method'),
        reason=data.get('reason'),
    )
    total = engine.total()
    refund_number = (result or {}).get('refundNumber')

    _drop_state(_refund_key(company_id, invoice_id))
    log_action(f'Refunded {total:,.2f} on invoice #{invoice_id} ({refund_number or "no number"}).',
               company_id=company_id, ref_type='refund', ref_id=invoice_id, amount=total)
    return jsonify({
        'status': 'ok',
        'refund_number': refund_number,
        'total_refund': float(total),
        'refund': payload,
    }), 201


@refunds_bp.route('', methods=['DELETE'])
@api_errors
def discard_refund(company_id, invoice_id):
    _drop_state(_refund_key(company_id, invoice_id))
    return jsonify({'status': 'ok'})
