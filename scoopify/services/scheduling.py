"""
Creating service visits.

New visits start SCHEDULED and locked; the unlock run opens them on the
scheduled day.
"""
import logging
from datetime import datetime, timedelta

from flask import current_app

from scoopify import db
from scoopify.errors import InvalidInput, InvalidState, NotFound
from scoopify.models import AuditLog, Customer, Service
from scoopify.models.customer import SUBSCRIPTION_ACTIVE, WEEKDAYS
from scoopify.models.payment import RECIPIENT_EMPLOYEE
from scoopify.models.service import CANCELLED, DELAYED, SCHEDULED
from scoopify.services.gateway import compare_and_set, get_or_404, transaction
from scoopify.services.payouts import PayoutPolicy, open_referral_for
from scoopify.utils.helpers import local_day_bounds, local_to_utc, to_local, utcnow

logger = logging.getLogger(__name__)


def _potential_earnings(customer, price_cents):
    policy = PayoutPolicy.from_config(current_app.config)
    has_referral = open_referral_for(customer.id) is not None
    return policy.split(price_cents, has_referral)[RECIPIENT_EMPLOYEE]


def _new_service(customer, scheduled_date, price_cents):
    return Service(
        customer_id=customer.id,
        status=SCHEDULED,
        scheduled_date=scheduled_date,
        is_locked=True,
        price_cents=price_cents,
        potential_earnings_cents=_potential_earnings(customer, price_cents),
    )


def schedule_service(customer_id, scheduled_date, price_cents=None):
    """Create one locked visit for a customer. scheduled_date is naive UTC."""
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFound('Customer not found')

    price_cents = price_cents if price_cents is not None else customer.visit_price_cents
    if not price_cents or price_cents <= 0:
        raise InvalidInput('A positive price is required for this visit', field='price')
    if not customer.zip_code:
        raise InvalidInput('Customer has no service address', field='customer_id')

    service = _new_service(customer, scheduled_date, price_cents)
    with transaction('schedule_service', customer_id):
        db.session.add(service)

    logger.info('Scheduled service %s for customer %s on %s', service.id, customer_id, scheduled_date)
    return service


def _next_visit_day(local_today, service_day):
    """Next occurrence of service_day strictly after local_today."""
    target = WEEKDAYS.index(service_day)
    days_ahead = (target - local_today.weekday()) % 7 or 7
    return local_today + timedelta(days=days_ahead)


def create_weekly_services(now=None):
    """
    Create next week's visit for every active subscriber.

    Idempotent: a customer who already has a non-cancelled visit on that
    local day is skipped. Returns the number of visits created.
    """
    config = current_app.config
    tz_name = config['TIMEZONE']
    now = now or utcnow()
    local_today = to_local(now, tz_name).date()

    customers = (
        Customer.query
        .filter(Customer.subscription_status == SUBSCRIPTION_ACTIVE, Customer.service_day.in_(WEEKDAYS))
        .all()
    )

    created = 0
    with transaction('create_weekly_services'):
        for customer in customers:
            if not customer.visit_price_cents or not customer.zip_code:
                logger.warning('Customer %s has no price or address; weekly visit not created', customer.id)
                continue

            visit_day = _next_visit_day(local_today, customer.service_day)
            visit_at = local_to_utc(
                datetime(visit_day.year, visit_day.month, visit_day.day, config['JOB_UNLOCK_HOUR']),
                tz_name,
            )
            day_start, day_end = local_day_bounds(visit_at, tz_name)
            exists = (
                Service.query
                .filter(
                    Service.customer_id == customer.id,
                    Service.scheduled_date >= day_start,
                    Service.scheduled_date < day_end,
                    Service.status != CANCELLED,
                )
                .first()
            )
            if exists:
                continue

            db.session.add(_new_service(customer, visit_at, customer.visit_price_cents))
            created += 1

        if created:
            AuditLog.record('SCHEDULING', 'weekly_services_created', data={'count': created})

    logger.info('Weekly scheduling created %d services', created)
    return created


def reschedule_service(identity, service_id, scheduled_date):
    """Move an unassigned SCHEDULED or DELAYED visit to a new date; it is locked again."""
    service = get_or_404(Service, service_id, 'Service not found')
    if service.employee_id or service.status not in (SCHEDULED, DELAYED):
        raise InvalidState('Only unassigned scheduled or delayed services can be rescheduled')

    changes = {
        'status': SCHEDULED,
        'scheduled_date': scheduled_date,
        'is_locked': True,
        'unlocked_at': None,
        'delay_reason': None,
        'delayed_at': None,
    }
    with transaction('reschedule_service', service_id):
        won = compare_and_set(
            Service, service_id,
            {'status': (SCHEDULED, DELAYED), 'employee_id': None},
            changes,
        )
        if not won:
            raise InvalidState('Service changed and can no longer be rescheduled')
        AuditLog.record(
            'SCHEDULING', 'service_rescheduled', entity_type='service', entity_id=service_id,
            actor_id=identity.user_id, data={'scheduled_date': scheduled_date.isoformat()},
        )
    db.session.refresh(service)
    return service
