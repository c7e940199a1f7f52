"""Employee model"""
from scoopify import db
from .base import BaseModel


class Employee(BaseModel):
    """
    Employee model - workers who claim and complete service visits
    """
    __tablename__ = 'employees'

    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True)
    name = db.Column(db.String(200), nullable=False)

    average_rating = db.Column(db.Float, nullable=False, default=0.0)
    stripe_connect_account_id = db.Column(db.String(255))
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    user = db.relationship('User', back_populates='employee')
    coverage_areas = db.relationship('CoverageArea', back_populates='employee', cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Employee {self.name}>'
