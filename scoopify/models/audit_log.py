"""Audit log model"""
from scoopify import db
from .base import BaseModel


class AuditLog(BaseModel):
    """
    Audit trail of state-changing operations (claims, unlock runs, payouts)
    """
    __tablename__ = 'audit_logs'

    level = db.Column(db.String(10), nullable=False, default='INFO')
    category = db.Column(db.String(50), nullable=False, index=True)
    action = db.Column(db.String(100), nullable=False)

    entity_type = db.Column(db.String(50))
    entity_id = db.Column(db.String(36))
    actor_id = db.Column(db.String(36))

    data = db.Column(db.JSON)

    __table_args__ = (
        db.Index('idx_audit_logs_entity', 'entity_type', 'entity_id'),
    )

    def __repr__(self):
        return f'<AuditLog {self.category}:{self.action}>'

    @classmethod
    def record(cls, category, action, entity_type=None, entity_id=None, actor_id=None, data=None, level='INFO'):
        """Add an audit row to the current session; committed with the caller's transaction."""
        entry = cls(
            level=level,
            category=category,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            data=data or {},
        )
        db.session.add(entry)
        return entry
