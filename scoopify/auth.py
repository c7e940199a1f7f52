"""
Caller identity: token decoding, per-request identity cache and route guards.

Token issuance belongs to the login service; ``generate_token`` exists for
tests and internal tooling.
"""
import hmac
from collections import namedtuple
from datetime import datetime, timedelta, timezone
from functools import wraps

import jwt
from flask import current_app, g, request

from scoopify import db
from scoopify.errors import Forbidden, Unauthorized
from scoopify.models import User
from scoopify.models.user import ROLE_ADMIN

Identity = namedtuple('Identity', ['user_id', 'role', 'employee_id', 'customer_id'])


def generate_token(user: User, expires_in: timedelta = None) -> str:
    """Generate a JWT carrying the user id and role"""
    now = datetime.now(timezone.utc)
    expires_in = expires_in or timedelta(days=current_app.config['JWT_EXPIRES_DAYS'])
    payload = {
        'user_id': user.id,
        'role': user.role,
        'exp': now + expires_in,
        'iat': now,
    }
    return jwt.encode(
        payload,
        current_app.config['JWT_SECRET'],
        algorithm=current_app.config['JWT_ALGORITHM']
    )


def decode_token(token: str) -> dict:
    """Decode and verify JWT token"""
    try:
        return jwt.decode(
            token,
            current_app.config['JWT_SECRET'],
            algorithms=[current_app.config['JWT_ALGORITHM']]
        )
    except jwt.ExpiredSignatureError:
        raise Unauthorized('Token has expired')
    except jwt.InvalidTokenError:
        raise Unauthorized('Invalid token')


def _extract_token(req):
    auth_header = req.headers.get('Authorization', '')
    if auth_header.startswith('Bearer '):
        return auth_header[len('Bearer '):].strip() or None
    return req.cookies.get('token')


def peek_user_id(req):
    """User id from a valid token, or None. Never raises; used for rate-limit keys."""
    token = _extract_token(req)
    if not token:
        return None
    try:
        return decode_token(token).get('user_id')
    except Unauthorized:
        return None


def resolve_identity() -> Identity:
    """Resolve the caller once per request and cache it on flask.g"""
    token = _extract_token(request)
    if not token:
        raise Unauthorized('Missing authorization token')
    if g.get('identity_token') == token:
        return g.identity

    payload = decode_token(token)
    user = db.session.get(User, payload.get('user_id'))
    if not user or not user.is_active():
        raise Unauthorized('Unknown or inactive user')

    # Role comes from the database so a demoted user loses access immediately
    g.identity = Identity(
        user_id=user.id,
        role=user.role,
        employee_id=user.employee.id if user.employee else None,
        customer_id=user.customer.id if user.customer else None,
    )
    g.identity_token = token
    return g.identity


def current_identity() -> Identity:
    return resolve_identity()


def require_auth(f):
    """Decorator to require authentication for routes"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        resolve_identity()
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """Decorator to require specific role(s) for routes"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            identity = resolve_identity()
            if identity.role not in roles:
                raise Forbidden('Insufficient permissions')
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_cron_or_admin(f):
    """Timer-invoked endpoints accept the shared X-Cron-Secret header or an admin token"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        secret = current_app.config.get('CRON_SECRET')
        provided = request.headers.get('X-Cron-Secret')
        if provided is not None:
            if not secret or not hmac.compare_digest(provided, secret):
                raise Unauthorized('Invalid cron secret')
            return f(*args, **kwargs)

        identity = resolve_identity()
        if identity.role != ROLE_ADMIN:
            raise Forbidden('Insufficient permissions')
        return f(*args, **kwargs)

    return decorated_function
