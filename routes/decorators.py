from functools import wraps
import logging
from flask import jsonify
from .utils import ValidationError, LookupFailure, SubmitFailure

logger = logging.getLogger(__name__)


def api_errors(f):
    """
    Turn the error taxonomy into JSON responses.
    Example: a ValidationError becomes 400 {"error": "...", "field": "..."}
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except ValidationError as e:
            logger.info("Validation failed in %s: %s", f.__name__, e.message)
            body = {'error': e.message}
            if e.field:
                body['field'] = e.field
            return jsonify(body), 400
        except LookupFailure as e:
            return jsonify({'error': e.message}), 502
        except SubmitFailure as e:
            # surfaced verbatim; nothing is retried
            return jsonify({'error': e.message}), 502
    return decorated_function
