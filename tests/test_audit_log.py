from decimal import Decimal

from models import AuditLog, Money, db
from routes.lookup_utils import clear_tax_rate_cache, get_payment_methods, get_tax_rates
from routes.utils import LookupFailure, log_action, parse_int


def test_log_action_outside_request(app):
    with app.app_context():
        entry = log_action('Recorded bill payment', company_id=1, ref_type='bill_payment', ref_id=4,
                           amount=Decimal('10.005'))
        assert entry is not None
        stored = db.session.get(AuditLog, entry.id)
        assert stored.amount == Decimal('10.01')
        assert stored.ip_address is None


def test_log_action_truncates_long_text(app):
    with app.app_context():
        entry = log_action('x' * 400)
        assert len(entry.action) == 255


def test_tax_rate_cache_can_be_cleared(app, fake_api):
    with app.app_context():
        get_tax_rates(1)
        get_tax_rates(1)
        clear_tax_rate_cache(1)
        get_tax_rates(1)
    assert len(fake_api.calls_to('list_tax_rates')) == 2


def test_payment_methods_degrade(app, fake_api):
    fake_api.failures['list_payment_methods'] = LookupFailure('down')
    with app.app_context():
        assert get_payment_methods() == []


def test_parse_int():
    assert parse_int('12') == 12
    assert parse_int('0') is None
    assert parse_int('') is None
    assert parse_int('abc') is None
    assert parse_int(None) is None


def test_money_type_reports_decimal():
    assert Money().python_type is Decimal
