"""Referral model"""
from scoopify import db
from .base import BaseModel

REFERRAL_PENDING = 'PENDING'
REFERRAL_PROCESSED = 'PROCESSED'
REFERRAL_PAID = 'PAID'


class Referral(BaseModel):
    """
    Referral model - a referrer earns a fee from the referred customer's payments
    """
    __tablename__ = 'referrals'

    referrer_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False)
    referred_customer_id = db.Column(db.String(36), db.ForeignKey('customers.id'), nullable=False, unique=True)
    code = db.Column(db.String(50), nullable=False, index=True)

    status = db.Column(db.String(20), nullable=False, default=REFERRAL_PENDING)
    commission_cents = db.Column(db.Integer, nullable=False, default=0)
    payout_account_id = db.Column(db.String(255))  # Stripe Connect account of the referrer

    processed_at = db.Column(db.DateTime)
    paid_at = db.Column(db.DateTime)
    stripe_transfer_id = db.Column(db.String(255))

    referrer = db.relationship('User')
    referred_customer = db.relationship('Customer')

    def __repr__(self):
        return f'<Referral {self.code} {self.status}>'
