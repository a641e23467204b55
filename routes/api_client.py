"""
HTTP client for the books API (customers, vendors, products, documents, payments).

Every call is a one-shot request: no retries, no backoff. Reads raise LookupFailure, writes raise
SubmitFailure, both carrying the server's own message when it sent one.
"""
import logging

import requests
from flask import current_app

from .utils import LookupFailure, SubmitFailure

logger = logging.getLogger(__name__)

OPEN_DOCUMENT_PATHS = {
    'invoice': '/api/getInvoicesByCustomer/{company_id}/{counterparty_id}',
    'bill': '/api/getBillsByVendor/{company_id}/{counterparty_id}',
}

PAYMENT_PATHS = {
    'invoice': '/api/recordInvoicePayment/{company_id}/{counterparty_id}',
    'bill': '/api/recordBillPayment/{company_id}/{counterparty_id}',
}

CREATE_PATHS = {
    'invoice': '/api/createInvoice/{company_id}',
    'estimate': '/api/estimates',
    'bill': '/api/createBill/{company_id}',
}

UPDATE_PATHS = {
    'invoice': '/api/invoices/{company_id}/{document_id}',
    'estimate': '/api/editEstimate/{company_id}/{document_id}',
    'bill': '/api/updateBill/{company_id}/{document_id}',
}


def _error_message(response, default):
    """Pull the server's explanation out of an error response, if any."""
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ('reason', 'error', 'message'):
            if data.get(key):
                return str(data[key])
    return default


class ApiClient:
    """Thin wrapper over a requests.Session bound to one books API base URL."""

    def __init__(self, base_url, token=None, timeout=10, session=None):
        self.base_url = (base_url or '').rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'Content-Type': 'application/json'})
        if token:
            self.session.headers['Authorization'] = f'Bearer {token}'

    def _url(self, path):
        return f'{self.base_url}{path}'

    def _get(self, path, what):
        try:
            response = self.session.get(self._url(path), timeout=self.timeout)
        except requests.exceptions.Timeout:
            logger.warning("GET %s timed out after %ss", path, self.timeout)
            raise LookupFailure(f'Failed to fetch {what}: the server did not answer in time.')
        except requests.exceptions.RequestException as exc:
            logger.exception("GET %s failed", path)
            raise LookupFailure(f'Failed to fetch {what}: {exc}')
        if not response.ok:
            message = _error_message(response, f'Failed to fetch {what}.')
            logger.warning("GET %s -> %s: %s", path, response.status_code, message)
            raise LookupFailure(message, status_code=response.status_code)
        try:
            return response.json()
        except ValueError:
            logger.error("GET %s returned a non-JSON body", path)
            raise LookupFailure(f'Failed to fetch {what}: unreadable response.', status_code=response.status_code)

    def _send(self, method, path, payload, what):
        try:
            response = self.session.request(method, self._url(path), json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout:
            logger.warning("%s %s timed out after %ss", method, path, self.timeout)
            raise SubmitFailure(f'Failed to {what}: the server did not answer in time.')
        except requests.exceptions.RequestException as exc:
            logger.exception("%s %s failed", method, path)
            raise SubmitFailure(f'Failed to {what}: {exc}')
        if not response.ok:
            message = _error_message(response, f'Failed to {what}.')
            logger.warning("%s %s -> %s: %s", method, path, response.status_code, message)
            raise SubmitFailure(message, status_code=response.status_code)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    # -- lookups -------------------------------------------------------

    def list_tax_rates(self, company_id):
        data = self._get(f'/api/tax-rates/{company_id}', 'tax rates')
        # some deployments wrap the rows in an extra list
        if isinstance(data, list) and data and isinstance(data[0], list):
            data = data[0]
        return data if isinstance(data, list) else []

    def list_payment_methods(self):
        data = self._get('/api/getPaymentMethods', 'payment methods')
        if not isinstance(data, list):
            return []
        return [row.get('name') for row in data if isinstance(row, dict) and row.get('name')]

    def list_products(self, company_id):
        data = self._get(f'/api/getProducts/{company_id}', 'products')
        return data if isinstance(data, list) else []

    def list_open_documents(self, kind, company_id, counterparty_id):
        path = OPEN_DOCUMENT_PATHS[kind].format(company_id=company_id, counterparty_id=counterparty_id)
        data = self._get(path, f'{kind}s')
        return data if isinstance(data, list) else []

    def list_invoice_items(self, company_id, invoice_id):
        data = self._get(f'/api/getInvoiceItems/{company_id}/{invoice_id}', 'invoice items')
        return data if isinstance(data, list) else []

    def list_order_items(self, company_id, order_id):
        data = self._get(f'/api/order-items/{company_id}/{order_id}', 'purchase order items')
        return data if isinstance(data, list) else []

    def get_order(self, company_id, order_id):
        data = self._get(f'/api/getOrders/{company_id}', 'purchase orders')
        for order in data if isinstance(data, list) else []:
            if str(order.get('id')) == str(order_id):
                return order
        raise LookupFailure('Selected order not found', status_code=404)

    def check_customer_eligibility(self, company_id, customer_id, invoice_total):
        payload = {
            'company_id': company_id,
            'customer_id': customer_id,
            'invoice_total': invoice_total,
            'operation_type': 'create',
        }
        return self._send('POST', '/api/checkCustomerEligibility', payload, 'check customer eligibility')

    # -- writes --------------------------------------------------------

    def create_document(self, kind, company_id, payload):
        path = CREATE_PATHS[kind].format(company_id=company_id)
        return self._send('POST', path, payload, f'save {kind}')

    def update_document(self, kind, company_id, document_id, payload):
        path = UPDATE_PATHS[kind].format(company_id=company_id, document_id=document_id)
        return self._send('PUT', path, payload, f'update {kind}')

    def update_estimate_after_invoice(self, company_id, estimate_id, invoice_id):
        path = f'/api/updateEstimateAfterInvoice/{company_id}/{estimate_id}'
        return self._send('POST', path, {'invoice_id': invoice_id}, 'update estimate')

    def submit_payment(self, kind, company_id, counterparty_id, payload):
        path = PAYMENT_PATHS[kind].format(company_id=company_id, counterparty_id=counterparty_id)
        return self._send('POST', path, payload, 'record payment')

    def process_refund(self, company_id, payload):
        return self._send('POST', f'/api/processRefund/{company_id}', payload, 'process refund')


def init_api_client(app):
    client = ApiClient(
        app.config.get('API_BASE_URL'),
        token=app.config.get('API_TOKEN'),
        timeout=app.config.get('API_TIMEOUT', 10),
    )
    app.extensions['api_client'] = client
    return client


def get_api_client():
    return current_app.extensions['api_client']
