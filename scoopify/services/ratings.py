"""Customer ratings of completed services."""
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from scoopify import db
from scoopify.errors import Conflict, Forbidden, InvalidState, NotFound
from scoopify.models import Employee, Service, ServiceRating
from scoopify.models.service import COMPLETED
from scoopify.models.user import ROLE_CUSTOMER
from scoopify.services.effects import run_soft_effect
from scoopify.services.gateway import get_or_404, transaction
from scoopify.services.notifications import notify_rating_admins, notify_rating_worker
from scoopify.utils.validators import parse_rating

logger = logging.getLogger(__name__)


def _refresh_average(employee_id):
    average = (
        db.session.query(func.avg(ServiceRating.rating))
        .filter(ServiceRating.employee_id == employee_id)
        .scalar()
    )
    employee = db.session.get(Employee, employee_id)
    employee.average_rating = round(float(average or 0), 2)
    return employee.average_rating


def rate_service(identity, service_id, rating, feedback=None, correction=False):
    """
    Create (or, with correction=True, update) the customer's rating.

    Returns (rating_row, created). Notifications go out after commit and
    never affect the outcome.
    """
    if identity.role != ROLE_CUSTOMER or not identity.customer_id:
        raise Forbidden('Only customers can rate services')
    rating = parse_rating(rating)
    if feedback is not None:
        feedback = str(feedback).strip() or None

    service = get_or_404(Service, service_id, 'Service not found')
    if service.customer_id != identity.customer_id:
        raise Forbidden('You can only rate your own services')
    if service.status != COMPLETED:
        raise InvalidState('Only completed services can be rated', status=service.status)

    existing = service.rating
    if existing is not None and not correction:
        raise Conflict('Service already rated', reason='already_rated')
    if existing is None and correction:
        raise NotFound('Service has not been rated yet')

    try:
        with transaction('rate_service', service_id):
            if existing is not None:
                existing.rating = rating
                existing.feedback = feedback
                record = existing
            else:
                record = ServiceRating(
                    service_id=service.id,
                    customer_id=service.customer_id,
                    employee_id=service.employee_id,
                    rating=rating,
                    feedback=feedback,
                )
                db.session.add(record)
            service.is_rated = True
            db.session.flush()
            average = _refresh_average(service.employee_id)
    except IntegrityError:
        raise Conflict('Service already rated', reason='already_rated')

    logger.info('Service %s rated %d (employee %s average now %.2f)',
                service.id, rating, service.employee_id, average)

    run_soft_effect('notify_rating_admins', notify_rating_admins, record, service)
    run_soft_effect('notify_rating_worker', notify_rating_worker, record, service)
    return record, existing is None
