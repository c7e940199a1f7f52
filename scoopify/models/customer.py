"""Customer model"""
from scoopify import db
from .base import BaseModel

SUBSCRIPTION_ACTIVE = 'ACTIVE'
SUBSCRIPTION_PAUSED = 'PAUSED'
SUBSCRIPTION_CANCELLED = 'CANCELLED'

WEEKDAYS = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')


class Customer(BaseModel):
    """
    Customer model - subscribers whose yards are serviced
    """
    __tablename__ = 'customers'

    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True)
    name = db.Column(db.String(200), nullable=False)

    # Address
    street = db.Column(db.String(255))
    city = db.Column(db.String(100))
    state = db.Column(db.String(50))
    zip_code = db.Column(db.String(5), index=True)
    gate_code = db.Column(db.String(50))

    # Subscription
    service_day = db.Column(db.String(10))  # Monday..Sunday
    subscription_status = db.Column(db.String(20), nullable=False, default=SUBSCRIPTION_ACTIVE)
    visit_price_cents = db.Column(db.Integer)

    user = db.relationship('User', back_populates='customer')
    services = db.relationship('Service', back_populates='customer', lazy='dynamic')

    def __repr__(self):
        return f'<Customer {self.name} ({self.zip_code})>'

    @property
    def address(self):
        parts = [self.street, self.city, self.state, self.zip_code]
        return ', '.join(p for p in parts if p)
