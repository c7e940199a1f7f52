"""
Validation utilities

Each validator raises InvalidInput with a message naming the offending field,
so routes can pass request data straight through.
"""
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from scoopify.errors import InvalidInput

ZIP_PATTERN = re.compile(r'^\d{5}$')


def is_valid_zip(zip_code):
    """
    Validate a five-digit US ZIP code

    Args:
        zip_code (str): ZIP code to validate

    Returns:
        bool: True if valid, False otherwise
    """
    return isinstance(zip_code, str) and bool(ZIP_PATTERN.match(zip_code))


def validate_zip_code(zip_code, field='zip_code'):
    if not is_valid_zip(zip_code):
        raise InvalidInput(f'{field} must be a 5-digit ZIP code', field=field)
    return zip_code


def require_fields(data, *fields):
    """
    Ensure every field is present and non-empty in a JSON body

    Args:
        data (dict): parsed request body
        *fields (str): required keys

    Returns:
        dict: the same body
    """
    if not isinstance(data, dict):
        raise InvalidInput('Request body must be a JSON object')
    missing = [f for f in fields if data.get(f) in (None, '')]
    if missing:
        raise InvalidInput('Missing required fields: {}'.format(', '.join(missing)), missing=missing)
    return data


def parse_amount_cents(data):
    """
    Read a positive amount from either ``amount_cents`` (int) or ``amount`` (dollars)

    Dollar amounts must have at most two decimal places.

    Returns:
        int: amount in cents
    """
    if data.get('amount_cents') is not None:
        value = data['amount_cents']
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidInput('amount_cents must be an integer', field='amount_cents')
        cents = value
    elif data.get('amount') is not None:
        try:
            dollars = Decimal(str(data['amount']))
        except InvalidOperation:
            raise InvalidInput('amount must be a number', field='amount')
        if not dollars.is_finite() or dollars != dollars.quantize(Decimal('0.01')):
            raise InvalidInput('amount must have at most two decimal places', field='amount')
        cents = int(dollars * 100)
    else:
        raise InvalidInput('amount is required', field='amount')

    if cents <= 0:
        raise InvalidInput('amount must be greater than zero', field='amount')
    return cents


def parse_datetime(value, field='scheduled_date'):
    """
    Parse an ISO-8601 timestamp

    Aware values are converted to naive UTC; naive values are returned as-is
    and interpreted by the caller.

    Returns:
        tuple: (datetime, is_aware)
    """
    if not isinstance(value, str):
        raise InvalidInput(f'{field} must be an ISO-8601 string', field=field)
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        raise InvalidInput(f'{field} must be an ISO-8601 string', field=field)
    if parsed.tzinfo is not None:
        return parsed.astimezone(timezone.utc).replace(tzinfo=None), True
    return parsed, False


def parse_rating(value):
    """Ratings are whole stars from 1 to 5."""
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 5:
        raise InvalidInput('rating must be an integer between 1 and 5', field='rating')
    return value


def json_body(req):
    """Parsed JSON object body ({} when absent); InvalidInput for anything else."""
    data = req.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidInput('Request body must be a JSON object')
    return data
