import logging

from .api_client import get_api_client
from .utils import cache, LookupFailure

logger = logging.getLogger(__name__)


@cache.memoize()
def _fetch_tax_rates(company_id):
    return get_api_client().list_tax_rates(company_id)


def get_tax_rates(company_id):
    """
    Tax rates for the company, memoized for CACHE_DEFAULT_TIMEOUT seconds.

    A failed lookup degrades to an empty list (lines default to 0% tax) and is not cached.
    """
    try:
        return _fetch_tax_rates(company_id)
    except LookupFailure:
        logger.warning("Tax rates unavailable for company %s; lines default to 0%%", company_id)
        return []


def clear_tax_rate_cache(company_id=None):
    try:
        if company_id is not None:
            cache.delete_memoized(_fetch_tax_rates, company_id)
        else:
            cache.delete_memoized(_fetch_tax_rates)
    except Exception:
        logger.exception("clear_tax_rate_cache: failed to clear cache for %r", company_id)


def get_payment_methods():
    """Payment method names; empty when the lookup fails."""
    try:
        return get_api_client().list_payment_methods()
    except LookupFailure:
        logger.warning("Payment methods unavailable")
        return []
