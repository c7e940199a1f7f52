import json
import logging

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import IntegrityError

from scoopify import db
from scoopify.errors import InvalidInput
from scoopify.models import Earning, Payment, PaymentDistribution, WebhookEvent
from scoopify.models.payment import PAYMENT_PAID, PAYMENT_PENDING
from scoopify.services.gateway import transaction
from scoopify.utils.helpers import utcnow

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint('webhooks', __name__)


def _parse_event(payload, sig_header):
    webhook_secret = current_app.config.get('STRIPE_WEBHOOK_SECRET')

    # Verify webhook signature when secret is configured
    if webhook_secret:
        import stripe
        try:
            return stripe.Webhook.construct_event(payload, sig_header, webhook_secret)
        except stripe.SignatureVerificationError:
            raise InvalidInput('Invalid signature')
        except ValueError:
            raise InvalidInput('Invalid payload')

    if not (current_app.debug or current_app.testing):
        logger.error('STRIPE_WEBHOOK_SECRET is not set; rejecting unverified webhook')
        raise InvalidInput('Webhook verification is not configured')

    # Dev mode: parse without verification
    try:
        return json.loads(payload)
    except ValueError:
        raise InvalidInput('Invalid JSON')


@webhooks_bp.route('/stripe', methods=['POST'])
def stripe_webhook():
    """
    Handle Stripe webhook events with signature verification.
    Events: payment_intent.succeeded, transfer.reversed
    Redelivered events are acknowledged without being applied twice.
    """
    payload = request.get_data(as_text=True)
    event = _parse_event(payload, request.headers.get('Stripe-Signature', ''))

    try:
        event_id = event['id']
        event_type = event['type']
        data_object = event['data']['object']
    except (KeyError, TypeError):
        raise InvalidInput('Malformed event')

    if WebhookEvent.query.filter_by(stripe_event_id=event_id).first():
        return jsonify({'received': True, 'duplicate': True}), 200

    handler = HANDLERS.get(event_type)
    try:
        with transaction('stripe_webhook', event_id):
            status = handler(data_object) if handler else 'ignored'
            db.session.add(WebhookEvent(stripe_event_id=event_id, event_type=event_type, status=status))
    except IntegrityError:
        # Concurrent delivery of the same event already recorded it
        return jsonify({'received': True, 'duplicate': True}), 200

    logger.info('Stripe event %s (%s): %s', event_id, event_type, status)
    return jsonify({'received': True}), 200


def _handle_payment_succeeded(intent):
    """Mark the payment for this intent as paid."""
    intent_id = intent.get('id', '')
    payment = Payment.query.filter_by(stripe_payment_intent_id=intent_id).first()
    if payment is None:
        reference = (intent.get('metadata') or {}).get('source_reference')
        payment = Payment.query.filter_by(source_reference=reference).first() if reference else None
    if payment is None:
        return 'ignored'

    payment.status = PAYMENT_PAID
    payment.paid_at = utcnow()
    payment.stripe_payment_intent_id = intent_id
    return 'processed'


def _handle_transfer_reversed(transfer):
    """A reversed transfer puts the earning (and its distribution) back to pending."""
    transfer_id = transfer.get('id', '')
    earnings = Earning.query.filter_by(stripe_transfer_id=transfer_id).all()
    distributions = PaymentDistribution.query.filter_by(stripe_transfer_id=transfer_id).all()
    if not earnings and not distributions:
        return 'ignored'

    for row in earnings + distributions:
        row.status = PAYMENT_PENDING
        row.paid_at = None
        row.stripe_transfer_id = None
        row.transfer_attempt = (row.transfer_attempt or 0) + 1
    logger.warning('Transfer %s reversed; %d earnings returned to pending', transfer_id, len(earnings))
    return 'processed'


HANDLERS = {
    'payment_intent.succeeded': _handle_payment_succeeded,
    'transfer.reversed': _handle_transfer_reversed,
}
