"""Service (job) model"""
from scoopify import db
from .base import BaseModel

SCHEDULED = 'SCHEDULED'
CLAIMED = 'CLAIMED'
ARRIVED = 'ARRIVED'
IN_PROGRESS = 'IN_PROGRESS'
COMPLETED = 'COMPLETED'
CANCELLED = 'CANCELLED'
DELAYED = 'DELAYED'

STATUSES = (SCHEDULED, CLAIMED, ARRIVED, IN_PROGRESS, COMPLETED, CANCELLED, DELAYED)

# Statuses that count as a worker's active job for the day
ACTIVE_STATUSES = (CLAIMED, ARRIVED, IN_PROGRESS)

# Allowed status transitions; COMPLETED and CANCELLED are terminal
TRANSITIONS = {
    SCHEDULED: (CLAIMED, DELAYED, CANCELLED),
    CLAIMED: (ARRIVED, DELAYED, CANCELLED),
    DELAYED: (SCHEDULED, ARRIVED, CANCELLED),
    ARRIVED: (IN_PROGRESS, COMPLETED, CANCELLED),
    IN_PROGRESS: (COMPLETED, CANCELLED),
    COMPLETED: (),
    CANCELLED: (),
}


def can_transition(current, target):
    return target in TRANSITIONS.get(current, ())


def sources_for(target):
    """Every status from which target is reachable in one step."""
    return tuple(status for status, targets in TRANSITIONS.items() if target in targets)


class Service(BaseModel):
    """
    Service model - one scheduled visit to a customer's yard
    """
    __tablename__ = 'services'

    customer_id = db.Column(db.String(36), db.ForeignKey('customers.id', ondelete='CASCADE'), nullable=False)
    employee_id = db.Column(db.String(36), db.ForeignKey('employees.id'))

    status = db.Column(db.String(20), nullable=False, default=SCHEDULED)
    scheduled_date = db.Column(db.DateTime, nullable=False)

    # Locked until the unlock run on the scheduled day
    is_locked = db.Column(db.Boolean, nullable=False, default=True)
    unlocked_at = db.Column(db.DateTime)

    # Lifecycle timestamps
    claimed_at = db.Column(db.DateTime)
    arrival_deadline = db.Column(db.DateTime)
    arrived_at = db.Column(db.DateTime)
    started_at = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)

    # Pricing
    price_cents = db.Column(db.Integer, nullable=False)
    potential_earnings_cents = db.Column(db.Integer, nullable=False, default=0)

    is_rated = db.Column(db.Boolean, nullable=False, default=False)

    cancellation_reason = db.Column(db.Text)
    cancelled_at = db.Column(db.DateTime)
    delay_reason = db.Column(db.Text)
    delayed_at = db.Column(db.DateTime)

    customer = db.relationship('Customer', back_populates='services')
    employee = db.relationship('Employee')
    checklist = db.relationship('ServiceChecklist', back_populates='service', uselist=False)
    photos = db.relationship('ServicePhoto', back_populates='service', lazy='dynamic')
    rating = db.relationship('ServiceRating', back_populates='service', uselist=False)

    __table_args__ = (
        db.Index('idx_services_unlock', 'status', 'is_locked', 'scheduled_date'),
        db.Index('idx_services_employee', 'employee_id', 'status'),
        db.Index('idx_services_customer', 'customer_id', 'scheduled_date'),
    )

    def __repr__(self):
        return f'<Service {self.id} {self.status}>'

    @property
    def zip_code(self):
        return self.customer.zip_code if self.customer else None

    def is_late(self):
        """Arrived (or still not arrived) after the arrival deadline."""
        if not self.arrival_deadline:
            return False
        if self.arrived_at:
            return self.arrived_at > self.arrival_deadline
        return False

    def to_dict(self, include_details=False):
        data = super().to_dict()
        data['zip_code'] = self.zip_code
        data['is_late'] = self.is_late()
        if include_details:
            if self.customer:
                data['customer'] = {
                    'id': self.customer.id,
                    'name': self.customer.name,
                    'address': self.customer.address,
                    'gate_code': self.customer.gate_code,
                }
            data['checklist'] = self.checklist.to_dict() if self.checklist else None
            data['photo_count'] = self.photos.count()
            data['rating'] = self.rating.to_dict() if self.rating else None
        return data
