"""
Request ID middleware for request tracing and logging
"""
import logging
import uuid

from flask import has_request_context, request


LOG_FORMAT = '%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s'


class RequestIdMiddleware:
    """
    WSGI middleware to add unique request ID to each request
    Useful for logging and tracing requests across services
    """

    def __init__(self, app):
        self.app = app

    def __call__(self, environ, start_response):
        # Generate or extract request ID
        request_id = environ.get('HTTP_X_REQUEST_ID') or str(uuid.uuid4())

        # Store in environ
        environ['request_id'] = request_id

        # Add to response headers
        def custom_start_response(status, headers, exc_info=None):
            headers.append(('X-Request-ID', request_id))
            return start_response(status, headers, exc_info)

        return self.app(environ, custom_start_response)


class RequestIdFilter(logging.Filter):
    """Stamp every log record with the current request id ('-' outside a request)."""

    def filter(self, record):
        request_id = '-'
        if has_request_context():
            request_id = request.environ.get('request_id', '-')
        record.request_id = request_id
        return True


def configure_logging(app):
    """Attach a request-id aware handler to the root logger once per process."""
    root = logging.getLogger()
    root.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    for handler in root.handlers:
        if getattr(handler, '_scoopify', False):
            return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestIdFilter())
    handler._scoopify = True
    root.addHandler(handler)
