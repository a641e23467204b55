from flask import request
from models import db, AuditLog
from flask_caching import Cache
import logging

cache = Cache()


class ValidationError(ValueError):
    """Missing required field, empty allocation set, no valid line item.

    Reported inline; the user corrects the form and resubmits.
    """

    def __init__(self, message, field=None):
        super().__init__(message)
        self.message = message
        self.field = field


class LookupFailure(LookupError):
    """A read from the books API (tax rates, open documents, ...) failed."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class SubmitFailure(RuntimeError):
    """The books API rejected a write. `message` is shown to the user verbatim."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def log_action(action_description, company_id=None, ref_type=None, ref_id=None, amount=None):
    """
    Create an AuditLog row for the action_description and commit it.

    - The remote API already owns the transaction for the business data; this row is local only.
    - Never raises on logging failures; logs internal exception instead to avoid breaking user flows.
    """
    try:
        try:
            ip_addr = request.remote_addr
        except Exception:
            ip_addr = None

        log_entry = AuditLog(
            company_id=company_id,
            action=(str(action_description) if action_description is not None else '')[:255],
            ref_type=ref_type,
            ref_id=ref_id,
            amount=amount,
            ip_address=ip_addr
        )
        db.session.add(log_entry)
        db.session.commit()
        return log_entry
    except Exception:
        logging.exception("Failed to create audit log for action: %s", action_description)
        try:
            db.session.rollback()
        except Exception:
            pass
        return None


def parse_int(value):
    """Return int(value) or None for blanks and garbage (form ids: '0' means 'none selected')."""
    if value is None or value == '':
        return None
    try:
        return int(value) or None
    except (TypeError, ValueError):
        return None
