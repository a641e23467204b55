import pytest

from app import create_app
from config import TestingConfig
from models import db


class FakeApiClient:
    """Stands in for routes.api_client.ApiClient; records every call."""

    def __init__(self):
        self.calls = []
        self.failures = {}
        self.tax_rates = [
            {'tax_rate_id': 1, 'name': 'Zero', 'rate': '0.00', 'is_default': 0},
            {'tax_rate_id': 2, 'name': 'VAT', 'rate': '12.00', 'is_default': 1},
        ]
        self.payment_methods = ['Cash', 'Bank Transfer']
        self.products = [
            {'id': 7, 'name': 'Widget', 'description': 'Blue widget', 'unit_price': '56.00', 'cost_price': '30.00'},
        ]
        self.open_documents = {
            'invoice': [
                {'id': 1, 'invoice_number': 'INV-001', 'total_amount': '100.00', 'paid_amount': '0.00',
                 'due_date': '2099-01-01', 'status': 'opened'},
                {'id': 2, 'invoice_number': 'INV-002', 'total_amount': '300.00', 'paid_amount': '50.00',
                 'due_date': '2099-01-01', 'status': 'partially_paid'},
                {'id': 3, 'invoice_number': 'INV-003', 'total_amount': '50.00', 'paid_amount': None,
                 'due_date': '2000-01-01', 'status': 'opened'},
                {'id': 4, 'invoice_number': 'INV-004', 'total_amount': '80.00', 'paid_amount': '80.00',
                 'due_date': '2099-01-01', 'status': 'paid'},
            ],
            'bill': [
                {'id': 11, 'bill_number': 'BILL-11', 'total_amount': '75.50', 'paid_amount': '0',
                 'due_date': '2099-01-01', 'status': 'opened'},
                {'id': 12, 'bill_number': 'BILL-12', 'total_amount': '20.00', 'paid_amount': '0',
                 'due_date': '2099-01-01', 'status': 'cancelled'},
            ],
        }
        self.orders = [{'id': 3, 'order_no': 'PO-3', 'vendor_id': 4, 'supplier': 'Acme', 'class': None}]
        self.order_items = [
            {'product_id': 7, 'name': 'Widget', 'description': '', 'qty': 5, 'rate': '11.20', 'tax_rate': 12},
        ]
        self.invoice_items = [
            {'id': 31, 'product_name': 'Widget', 'quantity': 3, 'unit_price': '56.00'},
            {'id': 32, 'product_name': 'Gadget', 'quantity': 1, 'unit_price': '19.99'},
        ]
        self.eligibility = {'eligible': True}
        self.next_id = 501

    def _call(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.failures:
            raise self.failures[name]

    def calls_to(self, name):
        return [c for c in self.calls if c[0] == name]

    def list_tax_rates(self, company_id):
        self._call('list_tax_rates', company_id)
        return list(self.tax_rates)

    def list_payment_methods(self):
        self._call('list_payment_methods')
        return list(self.payment_methods)

    def list_products(self, company_id):
        self._call('list_products', company_id)
        return list(self.products)

    def list_open_documents(self, kind, company_id, counterparty_id):
        self._call('list_open_documents', kind, company_id, counterparty_id)
        return list(self.open_documents[kind])

    def get_order(self, company_id, order_id):
        self._call('get_order', company_id, order_id)
        return self.orders[0]

    def list_invoice_items(self, company_id, invoice_id):
        self._call('list_invoice_items', company_id, invoice_id)
        return list(self.invoice_items)

    def list_order_items(self, company_id, order_id):
        self._call('list_order_items', company_id, order_id)
        return list(self.order_items)

    def check_customer_eligibility(self, company_id, customer_id, invoice_total):
        self._call('check_customer_eligibility', company_id, customer_id, invoice_total)
        return dict(self.eligibility)

    def create_document(self, kind, company_id, payload):
        self._call('create_document', kind, company_id, payload)
        return {'id': self.next_id}

    def update_document(self, kind, company_id, document_id, payload):
        self._call('update_document', kind, company_id, document_id, payload)
        return {}

    def update_estimate_after_invoice(self, company_id, estimate_id, invoice_id):
        self._call('update_estimate_after_invoice', company_id, estimate_id, invoice_id)
        return {}

    def submit_payment(self, kind, company_id, counterparty_id, payload):
        self._call('submit_payment', kind, company_id, counterparty_id, payload)
        return {}

    def process_refund(self, company_id, payload):
        self._call('process_refund', company_id, payload)
        return {'refundNumber': 'RF-0001'}


@pytest.fixture()
def fake_api():
    return FakeApiClient()


@pytest.fixture()
def app(fake_api):
    app = create_app(TestingConfig)
    app.extensions['api_client'] = fake_api
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()
