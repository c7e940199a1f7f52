"""
Notifications: an in-app row per event, mirrored by email when an address
is known.

Every notification is its own short transaction written after the primary
operation committed. Email failures never propagate: the row is marked
FAILED with the error so it shows up on the next poll and can be retried.
"""
import logging
from datetime import timedelta

from flask import current_app

from scoopify import db
from scoopify.email_templates import (
    rating_prompt_html,
    rating_received_html,
    service_cancelled_html,
    service_claimed_html,
    service_completed_html,
    service_delayed_html,
    service_reminder_html,
)
from scoopify.errors import Forbidden
from scoopify.models import Notification, Service
from scoopify.models.notification import (
    CHANNEL_ADMIN,
    CHANNEL_USER,
    DELIVERY_FAILED,
    DELIVERY_PENDING,
    DELIVERY_SENT,
    DELIVERY_SKIPPED,
)
from scoopify.models.service import COMPLETED, SCHEDULED
from scoopify.models.user import ROLE_ADMIN
from scoopify.services.email import EmailDeliveryError, email_configured, send_email
from scoopify.services.effects import run_soft_effect
from scoopify.services.gateway import get_or_404, transaction
from scoopify.utils.helpers import format_currency, local_day_bounds, to_local, utcnow

logger = logging.getLogger(__name__)

ADMIN_CHANNEL = CHANNEL_ADMIN


def notify(recipient, notification_type, title, message, data=None, email_to=None, email_html=None):
    """
    Record a notification for a user id, or for every admin when recipient is ADMIN_CHANNEL.

    Returns the Notification row with its delivery status filled in.
    """
    is_admin_channel = recipient == ADMIN_CHANNEL
    notification = Notification(
        user_id=None if is_admin_channel else recipient,
        channel=CHANNEL_ADMIN if is_admin_channel else CHANNEL_USER,
        type=notification_type,
        title=title,
        message=message,
        data=data or {},
        service_id=(data or {}).get('service_id'),
        email_to=email_to,
        email_html=email_html,
        delivery_status=DELIVERY_PENDING if email_to else DELIVERY_SKIPPED,
    )
    with transaction('notify', recipient):
        db.session.add(notification)

    if email_to:
        deliver(notification)
    return notification


def deliver(notification):
    """Attempt email delivery for one notification and persist the outcome."""
    html = notification.email_html or '<p>{}</p>'.format(notification.message)
    notification.delivery_attempts = (notification.delivery_attempts or 0) + 1
    try:
        send_email(notification.email_to, notification.title, html)
    except EmailDeliveryError as exc:
        notification.delivery_status = DELIVERY_FAILED
        notification.delivery_error = str(exc)[:1000]
        logger.warning('Notification %s email delivery failed: %s', notification.id, exc)
    else:
        notification.delivery_status = DELIVERY_SENT if email_configured() else DELIVERY_SKIPPED
        notification.delivery_error = None
        notification.delivered_at = utcnow()

    with transaction('deliver_notification', notification.id):
        db.session.add(notification)
    return notification


def notify_admins(notification_type, title, message, data=None, email_html=None):
    return notify(
        ADMIN_CHANNEL, notification_type, title, message, data=data,
        email_to=current_app.config.get('ADMIN_EMAIL'), email_html=email_html,
    )


def list_notifications(identity, status=None, unread_only=False, limit=50):
    """The caller's notifications, plus the ADMIN channel for admins."""
    query = Notification.query
    if identity.role == ROLE_ADMIN:
        query = query.filter(db.or_(
            Notification.user_id == identity.user_id,
            Notification.channel == CHANNEL_ADMIN,
        ))
    else:
        query = query.filter(Notification.user_id == identity.user_id)

    if status:
        query = query.filter(Notification.delivery_status == status)
    if unread_only:
        query = query.filter(Notification.read_at.is_(None))

    return query.order_by(Notification.created_at.desc()).limit(limit).all()


def mark_read(identity, notification_id):
    notification = get_or_404(Notification, notification_id, 'Notification not found')
    own = notification.user_id == identity.user_id
    admin_visible = notification.channel == CHANNEL_ADMIN and identity.role == ROLE_ADMIN
    if not (own or admin_visible):
        raise Forbidden('Not your notification')

    with transaction('mark_notification_read', notification_id):
        notification.mark_read()
    return notification


def retry_failed_notifications(limit=100):
    """Re-deliver FAILED notifications. Returns counts per outcome."""
    failed = (
        Notification.query
        .filter(Notification.delivery_status == DELIVERY_FAILED, Notification.email_to.isnot(None))
        .order_by(Notification.created_at)
        .limit(limit)
        .all()
    )
    summary = {'retried': 0, 'sent': 0, 'failed': 0}
    for notification in failed:
        deliver(notification)
        summary['retried'] += 1
        if notification.delivery_status == DELIVERY_FAILED:
            summary['failed'] += 1
        else:
            summary['sent'] += 1
    logger.info('Notification retry: %s', summary)
    return summary


# ---------------------------------------------------------------------------
# Service lifecycle notifications
# ---------------------------------------------------------------------------

def _local_time(moment):
    if moment is None:
        return None
    return to_local(moment, current_app.config['TIMEZONE']).strftime('%b %d, %I:%M %p')


def notify_service_claimed(service):
    customer = service.customer
    worker_name = service.employee.name if service.employee else None
    deadline = _local_time(service.arrival_deadline)
    return notify(
        customer.user_id, 'service_claimed', 'Your scooper is assigned',
        '{} claimed your visit and will arrive by {}.'.format(worker_name or 'A scooper', deadline),
        data={'service_id': service.id, 'employee_id': service.employee_id},
        email_to=customer.user.email if customer.user else None,
        email_html=service_claimed_html(customer.name, worker_name, deadline),
    )


def notify_service_delayed(service):
    customer = service.customer
    return notify(
        customer.user_id, 'service_delayed', 'Your visit is delayed',
        'Today\'s visit is delayed: {}'.format(service.delay_reason),
        data={'service_id': service.id, 'reason': service.delay_reason},
        email_to=customer.user.email if customer.user else None,
        email_html=service_delayed_html(customer.name, service.delay_reason),
    )


def notify_service_cancelled(service):
    """Tell the assigned worker, if any, that their job was cancelled."""
    if not service.employee:
        return None
    employee = service.employee
    scheduled = _local_time(service.scheduled_date)
    return notify(
        employee.user_id, 'service_cancelled', 'Visit cancelled',
        'The visit scheduled for {} was cancelled.'.format(scheduled),
        data={'service_id': service.id, 'reason': service.cancellation_reason},
        email_to=employee.user.email if employee.user else None,
        email_html=service_cancelled_html(employee.name, scheduled, service.cancellation_reason),
    )


def notify_service_completed(service):
    customer = service.customer
    total = format_currency(service.price_cents)
    return notify(
        customer.user_id, 'service_completed', 'Your yard is clean',
        'Your visit was completed. Rate your scooper to let us know how we did.',
        data={'service_id': service.id},
        email_to=customer.user.email if customer.user else None,
        email_html=service_completed_html(customer.name, service.id, total),
    )


def notify_completion_admins(service):
    customer = service.customer
    return notify_admins(
        'service_completed', 'Service completed',
        '{} completed the visit for {}.'.format(service.employee.name if service.employee else 'A worker', customer.name),
        data={'service_id': service.id, 'employee_id': service.employee_id},
    )


def _rating_payload(rating, service):
    worker_name = service.employee.name if service.employee else None
    data = {
        'service_id': service.id,
        'rating': rating.rating,
        'feedback': rating.feedback,
        'employee_id': rating.employee_id,
    }
    message = '{} received {} / 5'.format(worker_name or 'Worker', rating.rating)
    if rating.feedback:
        message += ': "{}"'.format(rating.feedback)
    return worker_name, data, message


def notify_rating_admins(rating, service):
    worker_name, data, message = _rating_payload(rating, service)
    return notify_admins(
        'service_rated', 'New service rating', message, data=data,
        email_html=rating_received_html('Admin', worker_name, rating.rating, rating.feedback),
    )


def notify_rating_worker(rating, service):
    employee = service.employee
    if not employee:
        return None
    worker_name, data, message = _rating_payload(rating, service)
    return notify(
        employee.user_id, 'service_rated', 'You received a rating', message, data=data,
        email_to=employee.user.email if employee.user else None,
        email_html=rating_received_html(employee.name, worker_name, rating.rating, rating.feedback),
    )


# ---------------------------------------------------------------------------
# Customer reminders (timer-driven)
# ---------------------------------------------------------------------------

REMINDER_TYPE = 'service_reminder'
RATING_PROMPT_TYPE = 'rating_prompt'


def _already_sent(service, notification_type):
    return db.session.query(
        Notification.query.filter_by(service_id=service.id, type=notification_type).exists()
    ).scalar()


def notify_service_reminder(service):
    customer = service.customer
    scheduled = _local_time(service.scheduled_date)
    return notify(
        customer.user_id, REMINDER_TYPE, 'Your visit is tomorrow',
        'Your Scoopify visit is scheduled for {}.'.format(scheduled),
        data={'service_id': service.id},
        email_to=customer.user.email if customer.user else None,
        email_html=service_reminder_html(customer.name, scheduled, customer.gate_code),
    )


def notify_rating_prompt(service):
    customer = service.customer
    worker_name = service.employee.name if service.employee else None
    return notify(
        customer.user_id, RATING_PROMPT_TYPE, 'How did we do?',
        'Rate yesterday\'s visit by {}.'.format(worker_name or 'your scooper'),
        data={'service_id': service.id, 'employee_id': service.employee_id},
        email_to=customer.user.email if customer.user else None,
        email_html=rating_prompt_html(customer.name, worker_name),
    )


def send_customer_reminders(now=None):
    """
    Visit reminders for tomorrow's SCHEDULED visits and rating prompts for
    yesterday's unrated completions (local days).

    Each kind goes out at most once per service, so the timer may run this
    as often as it likes. Returns counts per kind.
    """
    tz_name = current_app.config['TIMEZONE']
    now = now or utcnow()
    today_start, today_end = local_day_bounds(now, tz_name)
    tomorrow_start, tomorrow_end = local_day_bounds(today_end, tz_name)
    yesterday_start, _ = local_day_bounds(today_start - timedelta(minutes=1), tz_name)

    upcoming = (
        Service.query
        .filter(
            Service.status == SCHEDULED,
            Service.scheduled_date >= tomorrow_start,
            Service.scheduled_date < tomorrow_end,
        )
        .all()
    )
    unrated = (
        Service.query
        .filter(
            Service.status == COMPLETED,
            Service.is_rated == False,  # noqa: E712
            Service.completed_at >= yesterday_start,
            Service.completed_at < today_start,
        )
        .all()
    )

    summary = {'service_reminders': 0, 'rating_prompts': 0}
    batches = (
        ('service_reminders', REMINDER_TYPE, notify_service_reminder, upcoming),
        ('rating_prompts', RATING_PROMPT_TYPE, notify_rating_prompt, unrated),
    )
    for key, notification_type, notifier, services in batches:
        for service in services:
            if _already_sent(service, notification_type):
                continue
            if run_soft_effect(notification_type, notifier, service) is not None:
                summary[key] += 1

    logger.info('Customer reminders: %s', summary)
    return summary
