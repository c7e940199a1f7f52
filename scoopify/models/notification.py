"""Notification model"""
from scoopify import db
from scoopify.utils.helpers import utcnow
from .base import BaseModel

CHANNEL_USER = 'USER'
CHANNEL_ADMIN = 'ADMIN'

DELIVERY_PENDING = 'PENDING'
DELIVERY_SENT = 'SENT'
DELIVERY_FAILED = 'FAILED'
DELIVERY_SKIPPED = 'SKIPPED'


class Notification(BaseModel):
    """
    Notification model - in-app notifications, optionally mirrored by email.

    Rows on the ADMIN channel have no user and are visible to every admin.
    """
    __tablename__ = 'notifications'

    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'))
    channel = db.Column(db.String(10), nullable=False, default=CHANNEL_USER)

    type = db.Column(db.String(100), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    data = db.Column(db.JSON)
    service_id = db.Column(db.String(36), db.ForeignKey('services.id', ondelete='SET NULL'))

    # Email delivery
    email_to = db.Column(db.String(255))
    email_html = db.Column(db.Text)
    delivery_status = db.Column(db.String(20), nullable=False, default=DELIVERY_PENDING)
    delivery_error = db.Column(db.Text)
    delivery_attempts = db.Column(db.Integer, nullable=False, default=0)
    delivered_at = db.Column(db.DateTime)

    read_at = db.Column(db.DateTime)

    __table_args__ = (
        db.Index('idx_notifications_user_id', 'user_id', 'created_at'),
        db.Index('idx_notifications_delivery', 'delivery_status'),
        db.Index('idx_notifications_service_type', 'service_id', 'type'),
    )

    def __repr__(self):
        return f'<Notification {self.type} - {self.channel} user={self.user_id}>'

    def mark_read(self):
        """Mark notification as read"""
        if not self.read_at:
            self.read_at = utcnow()

    def to_dict(self, exclude=None):
        return super().to_dict(exclude=list(exclude or []) + ['email_html'])
