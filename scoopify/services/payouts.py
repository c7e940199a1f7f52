"""
Payment distribution and payouts.

A customer payment is split in integer cents into a referral fee (when the
customer was referred), the worker's share and the company's remainder.
Distribution is idempotent per source reference; transfers to Stripe
Connect accounts carry idempotency keys derived from the row they pay.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, List

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from scoopify import db
from scoopify.errors import InvalidInput, NotFound, UpstreamFailure
from scoopify.models import AuditLog, Earning, Employee, Payment, PaymentDistribution, Referral
from scoopify.models.payment import (
    PAYMENT_PAID,
    PAYMENT_PENDING,
    RECIPIENT_COMPANY,
    RECIPIENT_EMPLOYEE,
    RECIPIENT_REFERRAL,
)
from scoopify.models.referral import REFERRAL_PAID, REFERRAL_PENDING, REFERRAL_PROCESSED
from scoopify.services.gateway import compare_and_set, transaction
from scoopify.utils.helpers import cents_to_dollars, utcnow

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10000


@dataclass(frozen=True)
class PayoutPolicy:
    referral_fee_cents: int = 500
    employee_share_bps: int = 7500

    @classmethod
    def from_config(cls, config):
        return cls(
            referral_fee_cents=int(config.get('REFERRAL_FEE_CENTS', 500)),
            employee_share_bps=int(config.get('EMPLOYEE_SHARE_BPS', 7500)),
        )

    def split(self, amount_cents, has_referral):
        """
        Split amount_cents into recipient shares.

        The referral fee is capped at the amount; the worker gets the floor of
        their basis-point share of what is left and the company takes the
        rest, so the parts always sum to amount_cents.
        """
        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents < 0:
            raise InvalidInput('amount must be a non-negative integer number of cents')

        referral = min(self.referral_fee_cents, amount_cents) if has_referral else 0
        remainder = amount_cents - referral
        employee = remainder * self.employee_share_bps // BPS_DENOMINATOR
        company = remainder - employee

        shares = {RECIPIENT_EMPLOYEE: employee, RECIPIENT_COMPANY: company}
        if has_referral:
            shares[RECIPIENT_REFERRAL] = referral
        return shares


def split_amount(amount_cents, has_referral, policy=None):
    policy = policy or PayoutPolicy.from_config(current_app.config)
    return policy.split(amount_cents, has_referral)


def open_referral_for(customer_id):
    """The customer's referral that still earns a fee (any non-PAID referral)."""
    return (
        Referral.query
        .filter(Referral.referred_customer_id == customer_id, Referral.status != REFERRAL_PAID)
        .first()
    )


def distribute_payment(source_reference, amount_cents, employee_id, has_referral=False,
                       service_id=None, referral_id=None, policy=None):
    """
    Record a payment and its distributions exactly once per source_reference.

    Returns (payment, created). A repeat call, including one that loses a
    concurrent insert race, returns the existing payment with created=False.
    """
    if not source_reference:
        raise InvalidInput('source_reference is required', field='source_reference')

    existing = Payment.query.filter_by(source_reference=source_reference).first()
    if existing is not None:
        logger.info('Payment %s already distributed', source_reference)
        return existing, False

    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise InvalidInput('amount must be greater than zero', field='amount')
    if db.session.get(Employee, employee_id) is None:
        raise NotFound('Employee not found')

    shares = (policy or PayoutPolicy.from_config(current_app.config)).split(amount_cents, has_referral)
    recipients = {
        RECIPIENT_EMPLOYEE: employee_id,
        RECIPIENT_COMPANY: None,
        RECIPIENT_REFERRAL: referral_id,
    }

    try:
        with transaction('distribute_payment', source_reference):
            payment = Payment(
                source_reference=source_reference,
                service_id=service_id,
                amount_cents=amount_cents,
                status=PAYMENT_PENDING,
            )
            db.session.add(payment)
            db.session.flush()

            employee_share = None
            for recipient_type, cents in shares.items():
                distribution = PaymentDistribution(
                    payment_id=payment.id,
                    recipient_type=recipient_type,
                    recipient_id=recipients[recipient_type],
                    amount_cents=cents,
                )
                db.session.add(distribution)
                if recipient_type == RECIPIENT_EMPLOYEE:
                    employee_share = distribution
            db.session.flush()

            db.session.add(Earning(
                employee_id=employee_id,
                service_id=service_id,
                distribution_id=employee_share.id,
                amount_cents=employee_share.amount_cents,
                status=PAYMENT_PENDING,
            ))
    except IntegrityError:
        existing = Payment.query.filter_by(source_reference=source_reference).first()
        if existing is None:
            raise
        logger.info('Payment %s distributed concurrently; returning existing', source_reference)
        return existing, False

    logger.info(
        'Distributed payment %s: %s',
        source_reference, {k: cents_to_dollars(v) for k, v in shares.items()},
    )
    return payment, True


def distribute_for_service(service):
    """Distribute a completed service's price; used as a post-completion effect."""
    referral = open_referral_for(service.customer_id)
    return distribute_payment(
        source_reference='service:{}'.format(service.id),
        amount_cents=service.price_cents,
        employee_id=service.employee_id,
        has_referral=referral is not None,
        service_id=service.id,
        referral_id=referral.id if referral else None,
    )


# ---------------------------------------------------------------------------
# Stripe transfers
# ---------------------------------------------------------------------------

def get_stripe():
    """Configure the stripe module from app config; None when Stripe is not configured."""
    config = current_app.config
    if not config.get('STRIPE_SECRET_KEY'):
        return None
    import stripe
    stripe.api_key = config['STRIPE_SECRET_KEY']
    stripe.max_network_retries = 0
    stripe.default_http_client = stripe.RequestsClient(timeout=config.get('EXTERNAL_TIMEOUT_SECONDS', 5))
    return stripe


def transfer_key(prefix, row):
    """Idempotency key for paying a row; changes after each reversal of that row."""
    return '{}-{}-{}'.format(prefix, row.id, row.transfer_attempt or 0)


def create_transfer(amount_cents, destination, idempotency_key, metadata):
    """
    Send a Stripe Connect transfer. Returns the transfer id.

    Dev mode (no Stripe key) returns a placeholder id. Stripe errors become
    UpstreamFailure; the idempotency key makes a retry safe.
    """
    stripe = get_stripe()
    if stripe is None:
        logger.info('[DEV] Transfer %s cents to %s (%s)', amount_cents, destination, idempotency_key)
        return 'tr_dev_{}'.format(uuid.uuid4().hex[:16])

    try:
        transfer = stripe.Transfer.create(
            amount=amount_cents,
            currency='usd',
            destination=destination,
            metadata=metadata,
            idempotency_key=idempotency_key,
        )
    except stripe.StripeError as exc:
        logger.exception('Stripe transfer failed (%s)', idempotency_key)
        raise UpstreamFailure('Payment provider error', operation='transfer') from exc
    return transfer.id


@dataclass
class PayoutResult:
    paid: List[str] = field(default_factory=list)
    failed: List[Dict] = field(default_factory=list)
    skipped: List[Dict] = field(default_factory=list)

    def to_dict(self):
        return {'paid': self.paid, 'failed': self.failed, 'skipped': self.skipped}


def payout_pending_earnings(employee_id=None, now=None):
    """Transfer every PENDING earning to its worker's Connect account."""
    now = now or utcnow()
    result = PayoutResult()

    query = Earning.query.filter(Earning.status == PAYMENT_PENDING, Earning.amount_cents > 0)
    if employee_id:
        query = query.filter(Earning.employee_id == employee_id)

    for earning in query.order_by(Earning.created_at).all():
        employee = earning.employee
        if not employee.stripe_connect_account_id and get_stripe() is not None:
            result.skipped.append({'earning_id': earning.id, 'reason': 'no_payout_account'})
            continue

        try:
            transfer_id = create_transfer(
                earning.amount_cents,
                employee.stripe_connect_account_id,
                idempotency_key=transfer_key('earning', earning),
                metadata={'earning_id': earning.id, 'service_id': earning.service_id or ''},
            )
        except UpstreamFailure as exc:
            result.failed.append({'earning_id': earning.id, 'error': exc.message})
            continue

        changes = {'status': PAYMENT_PAID, 'paid_at': now, 'stripe_transfer_id': transfer_id}
        with transaction('payout_earning', earning.id):
            compare_and_set(Earning, earning.id, {'status': PAYMENT_PENDING}, changes)
            compare_and_set(PaymentDistribution, earning.distribution_id, {'status': PAYMENT_PENDING}, changes)
            AuditLog.record(
                'PAYOUT', 'earning_paid', entity_type='earning', entity_id=earning.id,
                data={'amount_cents': earning.amount_cents, 'transfer_id': transfer_id},
            )
        result.paid.append(earning.id)

    logger.info('Earning payout run: %d paid, %d failed, %d skipped',
                len(result.paid), len(result.failed), len(result.skipped))
    return result


def earnings_summary(employee_id):
    """Ledger of a worker's earnings with pending and paid totals."""
    earnings = (
        Earning.query
        .filter_by(employee_id=employee_id)
        .order_by(Earning.created_at.desc())
        .all()
    )
    totals = dict(
        db.session.query(Earning.status, func.coalesce(func.sum(Earning.amount_cents), 0))
        .filter(Earning.employee_id == employee_id)
        .group_by(Earning.status)
        .all()
    )
    pending = int(totals.get(PAYMENT_PENDING, 0))
    paid = int(totals.get(PAYMENT_PAID, 0))
    return {
        'earnings': [e.to_dict() for e in earnings],
        'pending_cents': pending,
        'paid_cents': paid,
        'pending': cents_to_dollars(pending),
        'paid': cents_to_dollars(paid),
    }


# ---------------------------------------------------------------------------
# Referrals
# ---------------------------------------------------------------------------

def process_referrals(now=None):
    """
    Advance referrals and pay out referral shares.

    PENDING referrals that have earned a share become PROCESSED; every unpaid
    referral share is then transferred to the referrer's account and the
    referral marked PAID.
    """
    now = now or utcnow()
    summary = {'processed': 0, 'paid': 0, 'failed': 0, 'skipped': 0}

    earned = dict(
        db.session.query(PaymentDistribution.recipient_id, func.sum(PaymentDistribution.amount_cents))
        .filter(PaymentDistribution.recipient_type == RECIPIENT_REFERRAL)
        .group_by(PaymentDistribution.recipient_id)
        .all()
    )

    with transaction('process_referrals'):
        for referral in Referral.query.filter_by(status=REFERRAL_PENDING).all():
            if referral.id not in earned:
                continue
            changes = {
                'status': REFERRAL_PROCESSED,
                'processed_at': now,
                'commission_cents': int(earned[referral.id]),
            }
            if compare_and_set(Referral, referral.id, {'status': REFERRAL_PENDING}, changes):
                summary['processed'] += 1

    unpaid = (
        PaymentDistribution.query
        .filter(
            PaymentDistribution.recipient_type == RECIPIENT_REFERRAL,
            PaymentDistribution.status == PAYMENT_PENDING,
            PaymentDistribution.amount_cents > 0,
        )
        .order_by(PaymentDistribution.created_at)
        .all()
    )
    for distribution in unpaid:
        referral = db.session.get(Referral, distribution.recipient_id) if distribution.recipient_id else None
        if referral is None or referral.status == REFERRAL_PENDING:
            summary['skipped'] += 1
            continue
        if not referral.payout_account_id and get_stripe() is not None:
            summary['skipped'] += 1
            continue

        try:
            transfer_id = create_transfer(
                distribution.amount_cents,
                referral.payout_account_id,
                idempotency_key=transfer_key('referral', distribution),
                metadata={'referral_id': referral.id, 'distribution_id': distribution.id},
            )
        except UpstreamFailure:
            summary['failed'] += 1
            continue

        with transaction('pay_referral', referral.id):
            compare_and_set(
                PaymentDistribution, distribution.id, {'status': PAYMENT_PENDING},
                {'status': PAYMENT_PAID, 'paid_at': now, 'stripe_transfer_id': transfer_id},
            )
            compare_and_set(
                Referral, referral.id, {'status': (REFERRAL_PROCESSED, REFERRAL_PAID)},
                {'status': REFERRAL_PAID, 'paid_at': now, 'stripe_transfer_id': transfer_id},
            )
        summary['paid'] += 1

    if summary['processed'] or summary['paid'] or summary['failed']:
        with transaction('audit_referrals'):
            AuditLog.record('REFERRAL', 'referrals_processed', data=summary)
    logger.info('Referral run: %s', summary)
    return summary
