"""Webhook event model"""
from scoopify import db
from .base import BaseModel


class WebhookEvent(BaseModel):
    """Processed Stripe events, for deduplication of redeliveries."""
    __tablename__ = 'webhook_events'

    stripe_event_id = db.Column(db.String(255), nullable=False, unique=True)
    event_type = db.Column(db.String(100), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='processed')  # processed, ignored, failed
    error = db.Column(db.Text)

    def __repr__(self):
        return f'<WebhookEvent {self.event_type} {self.stripe_event_id}>'
