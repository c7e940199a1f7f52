"""Coverage area and ZIP coordinate models"""
from scoopify import db
from scoopify.utils.helpers import utcnow
from .base import BaseModel


class CoverageArea(BaseModel):
    """
    A worker's service area: every ZIP within travel_radius_miles of zip_code
    """
    __tablename__ = 'coverage_areas'

    employee_id = db.Column(db.String(36), db.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False)
    zip_code = db.Column(db.String(5), nullable=False)
    travel_radius_miles = db.Column(db.Float, nullable=False, default=10.0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    employee = db.relationship('Employee', back_populates='coverage_areas')

    __table_args__ = (
        db.Index('idx_coverage_areas_employee', 'employee_id', 'is_active'),
    )

    def __repr__(self):
        return f'<CoverageArea {self.zip_code} r={self.travel_radius_miles}mi>'


class ZipLocation(db.Model):
    """ZIP centroid coordinates used for distance calculations."""
    __tablename__ = 'zip_locations'

    zip_code = db.Column(db.String(5), primary_key=True)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    city = db.Column(db.String(100))
    state = db.Column(db.String(50))
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f'<ZipLocation {self.zip_code}>'

    def to_dict(self):
        return {
            'zip_code': self.zip_code,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'city': self.city,
            'state': self.state,
        }
