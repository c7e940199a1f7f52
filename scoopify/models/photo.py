"""Service photo and checklist models"""
from scoopify import db
from .base import BaseModel

PHOTO_PRE_CLEAN = 'PRE_CLEAN'
PHOTO_POST_CLEAN = 'POST_CLEAN'
PHOTO_GATE = 'GATE'
PHOTO_TYPES = (PHOTO_PRE_CLEAN, PHOTO_POST_CLEAN, PHOTO_GATE)


class ServicePhoto(BaseModel):
    """
    Photo reference - the image itself lives in object storage
    """
    __tablename__ = 'service_photos'

    service_id = db.Column(db.String(36), db.ForeignKey('services.id', ondelete='CASCADE'), nullable=False)
    uploaded_by = db.Column(db.String(36), db.ForeignKey('employees.id'))
    checklist_id = db.Column(db.String(36), db.ForeignKey('service_checklists.id'))

    url = db.Column(db.String(1024), nullable=False)
    photo_type = db.Column(db.String(20), nullable=False)  # PRE_CLEAN, POST_CLEAN, GATE

    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)
    taken_at = db.Column(db.DateTime)

    # Set when linked to a completion checklist; purged after retention
    expires_at = db.Column(db.DateTime, index=True)

    service = db.relationship('Service', back_populates='photos')
    checklist = db.relationship('ServiceChecklist', back_populates='photos')

    __table_args__ = (
        db.Index('idx_service_photos_service', 'service_id', 'photo_type'),
    )

    def __repr__(self):
        return f'<ServicePhoto {self.photo_type} service={self.service_id}>'


class ServiceChecklist(BaseModel):
    """
    Completion checklist - one per completed service
    """
    __tablename__ = 'service_checklists'

    service_id = db.Column(db.String(36), db.ForeignKey('services.id', ondelete='CASCADE'), nullable=False, unique=True)

    gate_closed = db.Column(db.Boolean, nullable=False, default=False)
    corners_checked = db.Column(db.Boolean, nullable=False, default=False)
    waste_removed = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text)

    completed_at = db.Column(db.DateTime)
    corrected_by = db.Column(db.String(36), db.ForeignKey('users.id'))
    corrected_at = db.Column(db.DateTime)

    service = db.relationship('Service', back_populates='checklist')
    photos = db.relationship('ServicePhoto', back_populates='checklist')

    def __repr__(self):
        return f'<ServiceChecklist service={self.service_id}>'

    def to_dict(self, exclude=None):
        data = super().to_dict(exclude=exclude)
        data['photo_ids'] = [p.id for p in self.photos]
        return data
