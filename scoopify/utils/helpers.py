"""
Helper utilities
"""
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo


def generate_unique_id():
    """
    Generate a unique UUID

    Returns:
        str: UUID string
    """
    return str(uuid.uuid4())


def utcnow():
    """
    Current time as a naive UTC datetime

    Every DateTime column stores naive UTC so values compare the same way
    on PostgreSQL and SQLite.

    Returns:
        datetime: naive UTC timestamp
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_local(moment, tz_name):
    """
    Convert a naive UTC datetime to an aware datetime in the given zone

    Args:
        moment (datetime): naive UTC timestamp
        tz_name (str): IANA zone name, e.g. 'America/Denver'

    Returns:
        datetime: aware local datetime
    """
    return moment.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(tz_name))


def local_to_utc(local_dt, tz_name):
    """
    Interpret a naive local wall-clock datetime in tz_name and return naive UTC

    Args:
        local_dt (datetime): naive wall-clock time
        tz_name (str): IANA zone name

    Returns:
        datetime: naive UTC timestamp
    """
    aware = local_dt.replace(tzinfo=ZoneInfo(tz_name))
    return aware.astimezone(timezone.utc).replace(tzinfo=None)


def local_day_bounds(moment, tz_name):
    """
    UTC bounds of the local calendar day containing moment

    Args:
        moment (datetime): naive UTC timestamp
        tz_name (str): IANA zone name

    Returns:
        tuple: (start, end) naive UTC datetimes, end exclusive
    """
    local_day = to_local(moment, tz_name).date()
    start = datetime(local_day.year, local_day.month, local_day.day)
    return local_to_utc(start, tz_name), local_to_utc(start + timedelta(days=1), tz_name)


def within_local_hours(moment, tz_name, start_hour, end_hour):
    """
    Whether moment falls in [start_hour, end_hour) local time

    Returns:
        bool
    """
    hour = to_local(moment, tz_name).hour
    return start_hour <= hour < end_hour


def cents_to_dollars(cents):
    """
    Convert integer cents to a dollar float for JSON output

    Args:
        cents (int): amount in cents

    Returns:
        float: dollars, or None when cents is None
    """
    if cents is None:
        return None
    return float(Decimal(cents) / Decimal(100))


def format_currency(cents, currency='USD'):
    """
    Format an amount in cents as currency

    Args:
        cents (int): amount in cents
        currency (str): Currency code

    Returns:
        str: Formatted currency string
    """
    amount = cents_to_dollars(cents or 0)
    if currency == 'USD':
        return f'${amount:,.2f}'
    return f'{amount:,.2f} {currency}'


def paginate_query(query, page=1, per_page=20):
    """Helper to paginate SQLAlchemy queries"""
    page = max(1, page)
    per_page = min(100, max(1, per_page))  # Cap at 100 items per page

    paginated = query.paginate(page=page, per_page=per_page, error_out=False)

    return {
        'items': paginated.items,
        'total': paginated.total,
        'page': page,
        'per_page': per_page,
        'pages': paginated.pages,
        'has_next': paginated.has_next,
        'has_prev': paginated.has_prev
    }
