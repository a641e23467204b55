from datetime import date
from decimal import Decimal

import pytest

from routes.status_utils import (
    balance_due, days_overdue, derive_status, document_status, initial_status, is_payable,
)

TODAY = date(2024, 2, 1)


@pytest.mark.parametrize('total,paid,due,kwargs,expected', [
    (100, 0, '2024-03-01', {}, 'opened'),
    (100, 0, '2024-01-01', {}, 'overdue'),
    (100, 40, '2024-01-01', {}, 'partially_paid'),
    (100, 100, '2024-01-01', {}, 'paid'),
    (100, 150, None, {}, 'paid'),
    (100, 100, None, {'cancelled': True}, 'cancelled'),
    (100, 0, '2024-01-01', {'created_as': 'draft'}, 'draft'),
    (100, 0, '2024-01-01', {'created_as': 'proforma'}, 'proforma'),
    (100, 50, None, {'created_as': 'draft'}, 'partially_paid'),
    (100, 0, '2024-03-01', {'created_as': 'sent'}, 'sent'),
    (100, 0, '2024-01-01', {'created_as': 'sent'}, 'overdue'),
    (100, 0, None, {}, 'opened'),
])
def test_derive_status(total, paid, due, kwargs, expected):
    assert derive_status(total, paid, due, today=TODAY, **kwargs) == expected


def test_due_today_is_not_overdue():
    assert derive_status(100, 0, '2024-02-01', today=TODAY) == 'opened'


def test_document_status_ignores_stale_stored_status():
    record = {'total_amount': '100.00', 'paid_amount': '100.00', 'due_date': '2024-01-01', 'status': 'overdue'}
    assert document_status(record, today=TODAY) == 'paid'
    record = {'total_amount': '100.00', 'paid_amount': '0', 'status': 'Cancelled'}
    assert document_status(record, today=TODAY) == 'cancelled'


def test_initial_status():
    assert initial_status('invoice') == 'opened'
    assert initial_status('bill') == 'opened'
    assert initial_status('estimate') == 'draft'
    assert initial_status('invoice', proforma=True) == 'proforma'


def test_payable_statuses():
    assert all(is_payable(s) for s in ('opened', 'overdue', 'partially_paid'))
    assert not any(is_payable(s) for s in ('paid', 'cancelled', 'draft', 'proforma', 'sent'))


def test_balance_due():
    assert balance_due('300.00', '50.25') == Decimal('249.75')
    assert balance_due(100, None) == Decimal('100.00')


def test_days_overdue():
    record = {'total_amount': 100, 'paid_amount': 0, 'due_date': '2024-01-22'}
    assert days_overdue(record, today=TODAY) == 10
    assert days_overdue(dict(record, paid_amount=100), today=TODAY) == 0
    assert days_overdue(dict(record, due_date='2024-03-01'), today=TODAY) == 0
    assert days_overdue(dict(record, due_date=None), today=TODAY) == 0
