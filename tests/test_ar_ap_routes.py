from decimal import Decimal

import pytest

from models import AuditLog
from routes.utils import LookupFailure, SubmitFailure

BASE = '/1/payments/invoice/5'


@pytest.fixture
def started(client):
    resp = client.post(f'{BASE}/start')
    assert resp.status_code == 200
    return resp.get_json()


def test_start_loads_payable_invoices(started, fake_api):
    assert [row['id'] for row in started['documents']] == [1, 2, 3]
    assert [row['balance_due'] for row in started['documents']] == [100.0, 250.0, 50.0]
    assert started['documents'][2]['status'] == 'overdue'
    assert started['payment_methods'] == ['Cash', 'Bank Transfer']
    assert started['payment_method'] == 'Cash'
    assert started['payment_total'] == 0.0
    assert started['select_all'] is False
    assert fake_api.calls_to('list_open_documents') == [('list_open_documents', 'invoice', 1, 5)]


def test_state_requires_start(client):
    resp = client.get(BASE)
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'No payment in progress. Load the open documents first.'


def test_lookup_failure_stores_nothing(client, fake_api):
    fake_api.failures['list_open_documents'] = LookupFailure('Customer not found', status_code=404)
    resp = client.post(f'{BASE}/start')
    assert resp.status_code == 502
    assert resp.get_json() == {'error': 'Customer not found'}
    assert client.get(BASE).status_code == 400


def test_selection_flow(client, started):
    state = client.post(f'{BASE}/toggle-all').get_json()
    assert state['select_all'] is True
    assert state['payment_total'] == 400.0

    state = client.post(f'{BASE}/toggle/2').get_json()
    assert state['select_all'] is False
    assert state['payment_total'] == 150.0

    state = client.post(f'{BASE}/amount/1', json={'amount': '40'}).get_json()
    assert state['payment_total'] == 90.0
    assert state['documents'][0]['amount'] == 40.0

    # paid invoice was never loaded
    state = client.post(f'{BASE}/toggle/4').get_json()
    assert state['payment_total'] == 90.0

    assert client.get(BASE).get_json()['payment_total'] == 90.0


def test_search(client, started):
    rows = client.get(f'{BASE}?q=inv-002').get_json()['documents']
    assert [row['id'] for row in rows] == [2]


def test_submit_requires_method(client, started, fake_api):
    client.post(f'{BASE}/toggle/1')
    resp = client.post(f'{BASE}/submit', json={'payment_method': ''})
    assert resp.status_code == 400
    assert resp.get_json() == {'error': 'Please select a payment method.', 'field': 'payment_method'}
    assert fake_api.calls_to('submit_payment') == []


def test_submit_requires_selection(client, started):
    resp = client.post(f'{BASE}/submit', json={'payment_method': 'Cash'})
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'Please select the invoices to pay.'


def test_over_allocation_rejected(client, started, fake_api):
    client.post(f'{BASE}/toggle/1')
    client.post(f'{BASE}/amount/1', json={'amount': 150})
    resp = client.post(f'{BASE}/submit', json={'payment_method': 'Cash'})
    assert resp.status_code == 400
    assert resp.get_json()['field'] == '1'
    assert fake_api.calls_to('submit_payment') == []


def test_over_allocation_allowed_by_config(app, client, fake_api):
    app.config['ALLOW_OVERPAYMENT'] = True
    client.post(f'{BASE}/start')
    client.post(f'{BASE}/toggle/1')
    client.post(f'{BASE}/amount/1', json={'amount': 150})
    resp = client.post(f'{BASE}/submit', json={'payment_method': 'Cash', 'payment_date': '2024-02-01'})
    assert resp.status_code == 201
    assert resp.get_json()['payment']['payment_amount'] == 150.0


def test_submit_success(app, client, started, fake_api):
    client.post(f'{BASE}/toggle-all')
    client.post(f'{BASE}/toggle/2')
    client.post(f'{BASE}/amount/1', json={'amount': 40})
    resp = client.post(f'{BASE}/submit', json={
        'payment_method': 'Bank Transfer',
        'payment_date': '2024-02-01',
        'deposit_to': 'Checking',
        'notes': 'Thanks',
    })
    assert resp.status_code == 201
    expected = {
        'payment_amount': 90.0,
        'payment_date': '2024-02-01',
        'payment_method': 'Bank Transfer',
        'deposit_to': 'Checking',
        'notes': 'Thanks',
        'customer_id': 5,
        'invoice_payments': [
            {'invoice_id': 1, 'payment_amount': 40.0},
            {'invoice_id': 3, 'payment_amount': 50.0},
        ],
    }
    assert resp.get_json() == {'status': 'ok', 'payment': expected}
    assert fake_api.calls_to('submit_payment') == [('submit_payment', 'invoice', 1, 5, expected)]

    # state is discarded; the caller reloads open documents
    assert client.get(BASE).status_code == 400
    with app.app_context():
        entry = AuditLog.query.one()
        assert entry.ref_type == 'invoice_payment'
        assert str(entry.amount) == '90.00'


def test_submit_failure_keeps_state(client, started, fake_api):
    fake_api.failures['submit_payment'] = SubmitFailure('Payment rejected by books', status_code=422)
    client.post(f'{BASE}/toggle-all')
    client.post(f'{BASE}/amount/2', json={'amount': 20})
    resp = client.post(f'{BASE}/submit', json={'payment_method': 'Cash'})
    assert resp.status_code == 502
    assert resp.get_json() == {'error': 'Payment rejected by books'}

    state = client.get(BASE).get_json()
    assert state['payment_total'] == 170.0
    assert [row['selected'] for row in state['documents']] == [True, True, True]

    del fake_api.failures['submit_payment']
    assert client.post(f'{BASE}/submit', json={'payment_method': 'Cash'}).status_code == 201
    assert len(fake_api.calls_to('submit_payment')) == 2


def test_pay_bills(client, fake_api):
    base = '/1/payments/bill/4'
    started = client.post(f'{base}/start').get_json()
    assert [row['id'] for row in started['documents']] == [11]
    client.post(f'{base}/toggle-all')
    resp = client.post(f'{base}/submit', json={'payment_method': 'Cash', 'payment_date': '2024-02-01'})
    assert resp.status_code == 201
    payment = resp.get_json()['payment']
    assert payment['vendor_id'] == 4
    assert payment['bill_payments'] == [{'bill_id': 11, 'payment_amount': 75.5}]


def test_payments_are_kept_per_counterparty(client, started):
    client.post(f'{BASE}/toggle-all')
    client.post('/1/payments/invoice/6/start')
    assert client.get(BASE).get_json()['payment_total'] == 400.0
    assert client.get('/1/payments/invoice/6').get_json()['payment_total'] == 0.0


def test_discard(client, started):
    assert client.delete(BASE).get_json() == {'status': 'ok'}
    assert client.get(BASE).status_code == 400


def test_many_open_invoices_keep_the_cookie_small(client, fake_api):
    fake_api.open_documents['invoice'] = [
        {'id': i, 'invoice_number': f'INV-{i:05d}', 'total_amount': f'{100 + i}.{i % 100:02d}',
         'paid_amount': f'{i % 7}.50', 'due_date': '2099-01-01' if i % 3 else '2000-06-15', 'status': 'opened'}
        for i in range(1, 251)
    ]
    expected_total = sum(Decimal(f'{100 + i}.{i % 100:02d}') - Decimal(f'{i % 7}.50') for i in range(1, 251))

    responses = [client.post(f'{BASE}/start'), client.post(f'{BASE}/toggle-all')]
    assert responses[1].get_json()['payment_total'] == float(expected_total)

    resp = client.post(f'{BASE}/submit', json={'payment_method': 'Cash', 'payment_date': '2024-02-01'})
    responses.append(resp)
    assert resp.status_code == 201
    payment = resp.get_json()['payment']
    assert len(payment['invoice_payments']) == 250
    assert payment['payment_amount'] == float(expected_total)

    for r in responses:
        for cookie in r.headers.getlist('Set-Cookie'):
            assert len(cookie) < 4093
