"""Payment, distribution and earning models"""
from scoopify import db
from .base import BaseModel

PAYMENT_PENDING = 'PENDING'
PAYMENT_PAID = 'PAID'

RECIPIENT_COMPANY = 'COMPANY'
RECIPIENT_EMPLOYEE = 'EMPLOYEE'
RECIPIENT_REFERRAL = 'REFERRAL'


class Payment(BaseModel):
    """
    Payment model - one customer payment, keyed by its source reference
    """
    __tablename__ = 'payments'

    # Idempotency key: a given source is distributed exactly once
    source_reference = db.Column(db.String(255), nullable=False, unique=True)
    service_id = db.Column(db.String(36), db.ForeignKey('services.id'))

    amount_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=PAYMENT_PENDING)
    stripe_payment_intent_id = db.Column(db.String(255), index=True)
    paid_at = db.Column(db.DateTime)

    distributions = db.relationship('PaymentDistribution', back_populates='payment', cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Payment {self.source_reference} {self.amount_cents}c>'

    def to_dict(self, include_distributions=True):
        data = super().to_dict()
        if include_distributions:
            data['distributions'] = [d.to_dict() for d in self.distributions]
        return data


class PaymentDistribution(BaseModel):
    """
    One recipient's share of a payment.

    recipient_id is the employee id for EMPLOYEE, the referral id for
    REFERRAL and empty for COMPANY.
    """
    __tablename__ = 'payment_distributions'

    payment_id = db.Column(db.String(36), db.ForeignKey('payments.id', ondelete='CASCADE'), nullable=False)
    recipient_type = db.Column(db.String(20), nullable=False)  # COMPANY, EMPLOYEE, REFERRAL
    recipient_id = db.Column(db.String(36))

    amount_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=PAYMENT_PENDING)
    stripe_transfer_id = db.Column(db.String(255))
    paid_at = db.Column(db.DateTime)
    # Bumped on each reversal so the next payout gets a fresh idempotency key
    transfer_attempt = db.Column(db.Integer, nullable=False, default=0)

    payment = db.relationship('Payment', back_populates='distributions')

    __table_args__ = (
        db.UniqueConstraint('payment_id', 'recipient_type', name='uq_distribution_recipient_type'),
    )

    def __repr__(self):
        return f'<PaymentDistribution {self.recipient_type} {self.amount_cents}c>'


class Earning(BaseModel):
    """
    Earning model - the worker's ledger entry for an EMPLOYEE distribution
    """
    __tablename__ = 'earnings'

    employee_id = db.Column(db.String(36), db.ForeignKey('employees.id'), nullable=False, index=True)
    service_id = db.Column(db.String(36), db.ForeignKey('services.id'))
    distribution_id = db.Column(db.String(36), db.ForeignKey('payment_distributions.id'), nullable=False, unique=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=PAYMENT_PENDING)
    stripe_transfer_id = db.Column(db.String(255), index=True)
    paid_at = db.Column(db.DateTime)
    transfer_attempt = db.Column(db.Integer, nullable=False, default=0)

    employee = db.relationship('Employee')
    distribution = db.relationship('PaymentDistribution')

    def __repr__(self):
        return f'<Earning {self.employee_id} {self.amount_cents}c {self.status}>'
