"""
Multi-document payment allocation.

One payment action (receive payment from a customer, pay bills to a vendor) settles several open
documents at once. The engine keeps the user's selection and per-document amounts, keeps the
running payment total in sync, and turns the state into one payment submission with a
per-document allocation list.

The engine never touches paid_amount/status of the documents it holds: those only change on the
books side, and the caller re-fetches after a successful submit. A failed submit leaves the
selection and amounts exactly as they were so the user can retry.

State is a plain dict (see to_dict/from_dict) so it can live in the Flask session between
requests.
"""
import logging
from datetime import date

from .pricing_utils import round2, money, ZERO
from .status_utils import document_status, is_payable, balance_due, days_overdue
from .terms_utils import format_date, parse_date
from .utils import ValidationError

logger = logging.getLogger(__name__)

# per kind: counterparty key, allocation list key, allocation id key, document number key
KINDS = {
    'invoice': {
        'counterparty_key': 'customer_id',
        'allocations_key': 'invoice_payments',
        'document_key': 'invoice_id',
        'number_key': 'invoice_number',
        'label': 'invoices',
    },
    'bill': {
        'counterparty_key': 'vendor_id',
        'allocations_key': 'bill_payments',
        'document_key': 'bill_id',
        'number_key': 'bill_number',
        'label': 'bills',
    },
}


def document_snapshot(record, kind, today=None):
    """Reduce an API document record to what the engine needs."""
    keys = KINDS[kind]
    doc_id = record.get('id') or record.get(keys['document_key'])
    snapshot = {
        'id': int(doc_id),
        'number': record.get(keys['number_key']) or record.get('number') or str(doc_id),
        'total_amount': round2(record.get('total_amount')),
        'paid_amount': round2(record.get('paid_amount')),
        'due_date': format_date(record.get('due_date')),
        'status': document_status(record, today=today),
    }
    snapshot['balance_due'] = balance_due(snapshot['total_amount'], snapshot['paid_amount'])
    return snapshot


def payable_documents(records, kind, today=None):
    """Snapshots of the records that can still take a payment, in API order."""
    docs = []
    for record in records or []:
        try:
            snapshot = document_snapshot(record, kind, today=today)
        except (TypeError, ValueError):
            logger.warning("Skipping %s record without a usable id: %r", kind, record)
            continue
        if is_payable(snapshot['status']):
            docs.append(snapshot)
    return docs


class AllocationEngine:
    """Selection/amount state for one payment action against one counterparty."""

    def __init__(self, kind, company_id, counterparty_id, documents, allow_overpayment=False):
        if kind not in KINDS:
            raise ValueError(f"Unknown document kind {kind!r}")
        self.kind = kind
        self.company_id = company_id
        self.counterparty_id = counterparty_id
        self.documents = list(documents)
        self.allow_overpayment = allow_overpayment
        self.selected = []
        self.amounts = {}
        self.select_all = False
        self.payment_total = ZERO

    @classmethod
    def from_records(cls, kind, company_id, counterparty_id, records, allow_overpayment=False, today=None):
        return cls(kind, company_id, counterparty_id,
                   payable_documents(records, kind, today=today),
                   allow_overpayment=allow_overpayment)

    # -- lookups -------------------------------------------------------

    def document(self, doc_id):
        for doc in self.documents:
            if doc['id'] == doc_id:
                return doc
        return None

    def eligible_ids(self):
        return [doc['id'] for doc in self.documents if is_payable(doc['status'])]

    def visible_documents(self, query=None):
        """Documents whose number contains `query` (case-insensitive); all when blank."""
        q = (query or '').strip().lower()
        if not q:
            return list(self.documents)
        return [doc for doc in self.documents if q in str(doc['number']).lower()]

    # -- state changes -------------------------------------------------

    def _recompute(self):
        self.payment_total = round2(sum((self.amounts.get(i, ZERO) for i in self.selected), ZERO))
        eligible = self.eligible_ids()
        self.select_all = bool(eligible) and all(i in self.selected for i in eligible)

    def toggle_select_all(self):
        if not self.select_all:
            self.selected = self.eligible_ids()
            for doc_id in self.selected:
                self.amounts[doc_id] = self.document(doc_id)['balance_due']
        else:
            self.selected = []
            self.amounts = {}
        self._recompute()
        return self.select_all

    def toggle_one(self, doc_id):
        """Flip one document in or out of the payment. Unpayable/unknown documents are ignored."""
        doc = self.document(doc_id)
        if doc is None or not is_payable(doc['status']):
            logger.debug("toggle_one: %s %r is not payable, ignoring", self.kind, doc_id)
            return False
        if doc_id in self.selected:
            self.selected.remove(doc_id)
            self.amounts.pop(doc_id, None)
        else:
            self.selected.append(doc_id)
            self.amounts[doc_id] = doc['balance_due']
        self._recompute()
        return doc_id in self.selected

    def set_amount(self, doc_id, value):
        """
        Overwrite the amount for a selected document.

        Not clamped to the balance due: over-allocation is caught at submit.
        """
        if doc_id not in self.selected:
            logger.debug("set_amount: %s %r is not selected, ignoring", self.kind, doc_id)
            return False
        self.amounts[doc_id] = round2(value)
        self._recompute()
        return True

    # -- submission ----------------------------------------------------

    def allocations(self):
        """(document id, amount) for every selected document with a positive amount."""
        result = []
        for doc_id in self.selected:
            amount = self.amounts.get(doc_id, ZERO)
            if amount > 0:
                result.append((doc_id, amount))
        return result

    def validate(self, payment_method):
        label = KINDS[self.kind]['label']
        if not (payment_method or '').strip():
            raise ValidationError('Please select a payment method.', field='payment_method')

        allocations = self.allocations()
        if not allocations:
            raise ValidationError(f'Please select the {label} to pay.', field='amounts')

        if not self.allow_overpayment:
            for doc_id, amount in allocations:
                doc = self.document(doc_id)
                if amount > doc['balance_due']:
                    raise ValidationError(
                        f"Payment of {amount:,.2f} for {doc['number']} exceeds its balance due of "
                        f"{doc['balance_due']:,.2f}.",
                        field=str(doc_id),
                    )
        return allocations

    def build_payment(self, payment_date, payment_method, reference=None, notes=None):
        """Validate and return the payment submission body."""
        allocations = self.validate(payment_method)
        paid_on = parse_date(payment_date)
        if paid_on is None:
            raise ValidationError('Payment date is required (YYYY-MM-DD).', field='payment_date')

        keys = KINDS[self.kind]
        total = round2(sum((amount for _, amount in allocations), ZERO))
        return {
            'payment_amount': money(total),
            'payment_date': paid_on.strftime('%Y-%m-%d'),
            'payment_method': payment_method.strip(),
            'deposit_to': reference or None,
            'notes': notes or '',
            keys['counterparty_key']: self.counterparty_id,
            keys['allocations_key']: [
                {keys['document_key']: doc_id, 'payment_amount': money(amount)}
                for doc_id, amount in allocations
            ],
        }

    def submit(self, client, payment_date, payment_method, reference=None, notes=None):
        """
        Post the payment through `client`. Raises ValidationError before any call when the state
        is not submittable; SubmitFailure from the client propagates with the state untouched.
        """
        payload = self.build_payment(payment_date, payment_method, reference, notes)
        logger.info("Submitting %s payment of %s for counterparty %s (company %s, %d allocations)",
                    self.kind, payload['payment_amount'], self.counterparty_id, self.company_id,
                    len(payload[KINDS[self.kind]['allocations_key']]))
        result = client.submit_payment(self.kind, self.company_id, self.counterparty_id, payload)
        return payload, result

    # -- (de)serialization ---------------------------------------------

    def to_dict(self):
        return {
            'kind': self.kind,
            'company_id': self.company_id,
            'counterparty_id': self.counterparty_id,
            'allow_overpayment': self.allow_overpayment,
            'documents': [
                {
                    'id': doc['id'],
                    'number': doc['number'],
                    'total_amount': str(doc['total_amount']),
                    'paid_amount': str(doc['paid_amount']),
                    'balance_due': str(doc['balance_due']),
                    'due_date': doc['due_date'],
                    'status': doc['status'],
                }
                for doc in self.documents
            ],
            'selected': list(self.selected),
            'amounts': {str(k): str(v) for k, v in self.amounts.items()},
            'select_all': self.select_all,
            'payment_total': str(self.payment_total),
        }

    @classmethod
    def from_dict(cls, data):
        documents = []
        for doc in data.get('documents', []):
            documents.append({
                'id': int(doc['id']),
                'number': doc.get('number'),
                'total_amount': round2(doc.get('total_amount')),
                'paid_amount': round2(doc.get('paid_amount')),
                'balance_due': round2(doc.get('balance_due')),
                'due_date': doc.get('due_date'),
                'status': doc.get('status'),
            })
        engine = cls(data['kind'], data.get('company_id'), data.get('counterparty_id'), documents,
                     allow_overpayment=bool(data.get('allow_overpayment')))
        engine.selected = [int(i) for i in data.get('selected', [])]
        engine.amounts = {int(k): round2(v) for k, v in (data.get('amounts') or {}).items()}
        engine._recompute()
        return engine

    def summary(self, query=None, today=None):
        """JSON-friendly view of the state for the payment screen."""
        today = today or date.today()
        rows = []
        for doc in self.visible_documents(query):
            rows.append({
                'id': doc['id'],
                'number': doc['number'],
                'due_date': doc['due_date'],
                'status': doc['status'],
                'total_amount': money(doc['total_amount']),
                'paid_amount': money(doc['paid_amount']),
                'balance_due': money(doc['balance_due']),
                'days_overdue': days_overdue(doc, today=today),
                'selected': doc['id'] in self.selected,
                'amount': money(self.amounts[doc['id']]) if doc['id'] in self.selected else None,
            })
        return {
            'kind': self.kind,
            'counterparty_id': self.counterparty_id,
            'select_all': self.select_all,
            'payment_total': money(self.payment_total),
            'documents': rows,
        }
