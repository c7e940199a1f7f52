"""Service rating model"""
from scoopify import db
from .base import BaseModel


class ServiceRating(BaseModel):
    """
    Customer rating of a completed service (1-5 stars)
    """
    __tablename__ = 'service_ratings'

    service_id = db.Column(db.String(36), db.ForeignKey('services.id', ondelete='CASCADE'), nullable=False, unique=True)
    customer_id = db.Column(db.String(36), db.ForeignKey('customers.id'), nullable=False)
    employee_id = db.Column(db.String(36), db.ForeignKey('employees.id'), nullable=False, index=True)

    rating = db.Column(db.Integer, nullable=False)
    feedback = db.Column(db.Text)

    service = db.relationship('Service', back_populates='rating')

    __table_args__ = (
        db.CheckConstraint('rating >= 1 AND rating <= 5', name='ck_service_rating_range'),
    )

    def __repr__(self):
        return f'<ServiceRating {self.rating} service={self.service_id}>'
