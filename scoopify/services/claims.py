"""
Job claim workflow and the worker-side lifecycle.

Every transition is a conditional UPDATE guarded by the state the caller
observed, so of two concurrent requests exactly one wins and the other gets
Conflict or InvalidState without changing anything.
"""
import logging
from datetime import timedelta

from flask import current_app

from scoopify import db
from scoopify.errors import Conflict, Forbidden, InvalidInput, InvalidState
from scoopify.models import AuditLog, Employee, Service
from scoopify.models.service import (
    ACTIVE_STATUSES,
    ARRIVED,
    CANCELLED,
    CLAIMED,
    DELAYED,
    IN_PROGRESS,
    SCHEDULED,
    can_transition,
    sources_for,
)
from scoopify.models.user import ROLE_ADMIN, ROLE_CUSTOMER, ROLE_EMPLOYEE
from scoopify.services.coverage import CoverageResolver
from scoopify.services.effects import run_soft_effect
from scoopify.services.gateway import compare_and_set, get_or_404, transaction
from scoopify.services.notifications import (
    notify_service_cancelled,
    notify_service_claimed,
    notify_service_delayed,
)
from scoopify.utils.helpers import local_day_bounds, utcnow, within_local_hours

logger = logging.getLogger(__name__)


def require_employee(identity):
    if identity.role != ROLE_EMPLOYEE or not identity.employee_id:
        raise Forbidden('Only workers can perform this action')
    employee = db.session.get(Employee, identity.employee_id)
    if employee is None or not employee.is_active:
        raise Forbidden('Worker profile is inactive')
    return employee


def require_assigned(service, employee):
    if service.employee_id != employee.id:
        raise Forbidden('You are not assigned to this job')


def _in_claim_window(now):
    config = current_app.config
    return within_local_hours(now, config['TIMEZONE'], config['JOB_UNLOCK_HOUR'], config['CLAIM_WINDOW_END_HOUR'])


def _transition(service, target, expected, changes, operation, actor_id=None):
    """Move service to target if it still matches expected; InvalidState otherwise."""
    if not can_transition(service.status, target):
        raise InvalidState(
            'Cannot move a {} service to {}'.format(service.status, target),
            status=service.status,
        )
    changes = dict(changes, status=target)
    with transaction(operation, service.id):
        won = compare_and_set(Service, service.id, expected, changes)
        if not won:
            raise InvalidState('Service was changed by another request', status=service.status)
        AuditLog.record(
            'JOB_STATUS', operation, entity_type='service', entity_id=service.id,
            actor_id=actor_id, data={'from': service.status, 'to': target},
        )
    db.session.refresh(service)
    return service


def active_job_count(employee_id, now):
    day_start, day_end = local_day_bounds(now, current_app.config['TIMEZONE'])
    return (
        Service.query
        .filter(
            Service.employee_id == employee_id,
            Service.status.in_(ACTIVE_STATUSES),
            Service.scheduled_date >= day_start,
            Service.scheduled_date < day_end,
        )
        .count()
    )


def claim_service(identity, service_id, now=None, resolver=None):
    """Assign an unlocked job to the calling worker. Exactly one concurrent claimer wins."""
    config = current_app.config
    now = now or utcnow()

    employee = require_employee(identity)
    service = get_or_404(Service, service_id, 'Service not found')

    if not _in_claim_window(now):
        raise InvalidState(
            'Jobs can only be claimed between {}:00 and {}:00'.format(
                config['JOB_UNLOCK_HOUR'], config['CLAIM_WINDOW_END_HOUR']),
            reason='outside_claim_window',
        )
    if service.employee_id:
        raise Conflict('Service already claimed by another worker', reason='already_claimed')
    if service.is_locked:
        raise InvalidState(
            'This job is not yet available. Jobs unlock at {}:00.'.format(config['JOB_UNLOCK_HOUR']),
            reason='locked',
        )
    if service.status != SCHEDULED:
        raise InvalidState('Service is not available for claiming', status=service.status)

    zip_code = service.zip_code
    if not zip_code:
        raise InvalidState('Customer address information is incomplete', reason='missing_address')

    resolver = resolver or CoverageResolver.from_config(config)
    if not resolver.employee_covers(employee.id, zip_code):
        raise Conflict('This service is outside your coverage area', reason='outside_coverage')

    active = active_job_count(employee.id, now)
    if active and (employee.average_rating or 0) < config['QUEUE_RATING_THRESHOLD']:
        raise Conflict(
            'Finish your current job before claiming another one',
            reason='active_job_limit',
            active_jobs=active,
        )

    deadline = now + timedelta(minutes=config['ARRIVAL_WINDOW_MINUTES'])
    with transaction('claim_service', service_id):
        won = compare_and_set(
            Service, service_id,
            {'employee_id': None, 'status': SCHEDULED, 'is_locked': False},
            {
                'employee_id': employee.id,
                'status': CLAIMED,
                'claimed_at': now,
                'arrival_deadline': deadline,
            },
        )
        if not won:
            raise Conflict('Service already claimed by another worker', reason='already_claimed')
        AuditLog.record(
            'JOB_CLAIM', 'claimed', entity_type='service', entity_id=service_id,
            actor_id=identity.user_id,
            data={'employee_id': employee.id, 'arrival_deadline': deadline.isoformat()},
        )

    db.session.refresh(service)
    logger.info('Service %s claimed by employee %s', service_id, employee.id)
    run_soft_effect('notify_service_claimed', notify_service_claimed, service)
    return service


def mark_arrived(identity, service_id, now=None):
    """Record arrival. Returns (service, is_late)."""
    now = now or utcnow()
    employee = require_employee(identity)
    service = get_or_404(Service, service_id, 'Service not found')
    require_assigned(service, employee)

    service = _transition(
        service, ARRIVED,
        {'employee_id': employee.id, 'status': (CLAIMED, DELAYED)},
        {'arrived_at': now},
        'arrived', identity.user_id,
    )
    return service, service.is_late()


def start_service(identity, service_id, now=None):
    now = now or utcnow()
    employee = require_employee(identity)
    service = get_or_404(Service, service_id, 'Service not found')
    require_assigned(service, employee)

    return _transition(
        service, IN_PROGRESS,
        {'employee_id': employee.id, 'status': ARRIVED},
        {'started_at': now},
        'started', identity.user_id,
    )


def delay_service(identity, service_id, reason, now=None):
    """Mark a job delayed: the assigned worker from CLAIMED, an admin from SCHEDULED or CLAIMED."""
    now = now or utcnow()
    if not reason or not str(reason).strip():
        raise InvalidInput('A delay reason is required', field='reason')

    service = get_or_404(Service, service_id, 'Service not found')
    if identity.role == ROLE_ADMIN:
        if service.status not in (SCHEDULED, CLAIMED):
            raise InvalidState('Only scheduled or claimed services can be delayed', status=service.status)
        expected = {'employee_id': service.employee_id, 'status': service.status}
    else:
        employee = require_employee(identity)
        require_assigned(service, employee)
        expected = {'employee_id': employee.id, 'status': CLAIMED}
        if service.status != CLAIMED:
            raise InvalidState('Only claimed services can be delayed', status=service.status)

    service = _transition(
        service, DELAYED, expected,
        {'delay_reason': str(reason).strip(), 'delayed_at': now},
        'delayed', identity.user_id,
    )
    run_soft_effect('notify_service_delayed', notify_service_delayed, service)
    return service


def cancel_service(identity, service_id, reason=None, now=None):
    """Cancel any not-yet-completed job. Allowed for the owning customer and admins."""
    now = now or utcnow()
    service = get_or_404(Service, service_id, 'Service not found')

    if identity.role == ROLE_CUSTOMER:
        if service.customer_id != identity.customer_id:
            raise Forbidden('You can only cancel your own services')
    elif identity.role != ROLE_ADMIN:
        raise Forbidden('Only the customer or an admin can cancel a service')

    cancellable = sources_for(CANCELLED)
    if service.status not in cancellable:
        raise InvalidState('Service can no longer be cancelled', status=service.status)

    service = _transition(
        service, CANCELLED,
        {'status': service.status},
        {'cancellation_reason': reason or 'Cancelled by {}'.format(identity.role.lower()), 'cancelled_at': now},
        'cancelled', identity.user_id,
    )
    run_soft_effect('notify_service_cancelled', notify_service_cancelled, service)
    return service


def list_available_services(identity, now=None, resolver=None):
    """Unlocked, unassigned jobs for today that the calling worker covers."""
    config = current_app.config
    now = now or utcnow()
    employee = require_employee(identity)

    if not _in_claim_window(now):
        return []

    day_start, day_end = local_day_bounds(now, config['TIMEZONE'])
    candidates = (
        Service.query
        .filter(
            Service.status == SCHEDULED,
            Service.is_locked == False,  # noqa: E712
            Service.employee_id.is_(None),
            Service.scheduled_date >= day_start,
            Service.scheduled_date < day_end,
        )
        .order_by(Service.scheduled_date)
        .all()
    )

    resolver = resolver or CoverageResolver.from_config(config)
    return [s for s in candidates if resolver.employee_covers(employee.id, s.zip_code)]


def list_my_services(identity, include_finished=False):
    """The calling worker's jobs (active ones by default)."""
    employee = require_employee(identity)
    query = Service.query.filter(Service.employee_id == employee.id)
    if not include_finished:
        query = query.filter(Service.status.in_(ACTIVE_STATUSES + (DELAYED,)))
    return query.order_by(Service.scheduled_date.desc()).all()


def get_service_for(identity, service_id):
    """Load a service the caller is allowed to see."""
    service = get_or_404(Service, service_id, 'Service not found')
    if identity.role == ROLE_ADMIN:
        return service
    if identity.role == ROLE_CUSTOMER and service.customer_id == identity.customer_id:
        return service
    if identity.role == ROLE_EMPLOYEE:
        # Workers see their own jobs and the unassigned pool
        if service.employee_id in (None, identity.employee_id):
            return service
    raise Forbidden('You do not have access to this service')
