"""
Shared Flask extension instances.

Created as a separate module to avoid circular imports when route
blueprints need access to extensions that are initialised in create_app().
"""
import logging

from flask import request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

logger = logging.getLogger(__name__)


def rate_limit_key():
    """Key by authenticated caller when a bearer token is present, else by address."""
    from scoopify.auth import peek_user_id
    user_id = peek_user_id(request)
    if user_id:
        return 'user:{}'.format(user_id)
    return get_remote_address()


# Limiter is created without an app; storage comes from RATELIMIT_STORAGE_URI.
limiter = Limiter(key_func=rate_limit_key)


def init_limiter(app):
    """Bind the limiter; without a shared store rate limiting is switched off, loudly."""
    if app.config.get('RATELIMIT_ENABLED', True) and not app.config.get('RATELIMIT_STORAGE_URI'):
        logger.warning(
            'REDIS_URL is not set -- rate limiting is disabled '
            '(per-process counters would not be shared across workers).'
        )
        app.config['RATELIMIT_ENABLED'] = False
    limiter.init_app(app)
