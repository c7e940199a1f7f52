"""
Base model with common fields and methods
"""
from datetime import datetime

from scoopify import db
from scoopify.utils.helpers import cents_to_dollars, generate_unique_id, utcnow


class BaseModel(db.Model):
    """Abstract base model with common fields"""
    __abstract__ = True

    id = db.Column(db.String(36), primary_key=True, default=generate_unique_id)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def to_dict(self, exclude=None):
        """
        Convert model to dictionary

        ``*_cents`` columns are emitted twice: as cents and as dollars under
        the name without the suffix.

        Args:
            exclude (list): List of fields to exclude

        Returns:
            dict: Model as dictionary
        """
        exclude = exclude or []
        data = {}

        for column in self.__table__.columns:
            if column.name in exclude:
                continue
            value = getattr(self, column.name)

            if isinstance(value, datetime):
                value = value.isoformat()
            elif column.name.endswith('_cents'):
                data[column.name[:-len('_cents')]] = cents_to_dollars(value)

            data[column.name] = value

        return data
