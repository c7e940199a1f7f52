"""
Error taxonomy shared by every workflow.

Workflows raise these; ``register_error_handlers`` turns them into JSON
bodies of the form ``{"error": message, "code": code, ...details}``.
"""
import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ScoopifyError(Exception):
    status_code = 500
    code = 'error'
    default_message = 'Request failed'

    def __init__(self, message=None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self):
        body = {'error': self.message, 'code': self.code}
        body.update(self.details)
        return body


class Unauthorized(ScoopifyError):
    status_code = 401
    code = 'unauthorized'
    default_message = 'Authentication required'


class Forbidden(ScoopifyError):
    status_code = 403
    code = 'forbidden'
    default_message = 'You do not have permission to perform this action'


class NotFound(ScoopifyError):
    status_code = 404
    code = 'not_found'
    default_message = 'Resource not found'


class InvalidInput(ScoopifyError):
    status_code = 400
    code = 'invalid_input'
    default_message = 'Invalid input'


class InvalidState(ScoopifyError):
    status_code = 409
    code = 'invalid_state'
    default_message = 'Operation not allowed in the current state'


class Conflict(ScoopifyError):
    status_code = 409
    code = 'conflict'
    default_message = 'Resource was modified by another request'


class UpstreamFailure(ScoopifyError):
    """A dependency (database, Stripe, geocoder, email) failed; the caller may retry."""
    status_code = 503
    code = 'upstream_failure'
    default_message = 'A dependent service is unavailable, please retry'

    def __init__(self, message=None, **details):
        details.setdefault('retryable', True)
        super().__init__(message, **details)


def register_error_handlers(app):
    from scoopify import db

    @app.errorhandler(ScoopifyError)
    def handle_scoopify_error(error):
        if error.status_code >= 500:
            logger.warning('%s: %s', error.__class__.__name__, error.message)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(429)
    def ratelimit_handler(e):
        retry_after = dict(e.get_headers()).get('Retry-After') if hasattr(e, 'get_headers') else None
        retry_after_seconds = int(retry_after) if retry_after else 60
        return jsonify({
            'error': 'Too many requests. Please try again later.',
            'code': 'rate_limited',
            'retry_after': retry_after_seconds,
        }), 429

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        code = (error.name or 'error').lower().replace(' ', '_')
        return jsonify({'error': error.description, 'code': code}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        db.session.rollback()
        logger.exception('Unhandled error: %s', error)
        return jsonify({'error': 'Internal server error', 'code': 'internal_error'}), 500
