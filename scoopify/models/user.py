"""User model"""
from werkzeug.security import generate_password_hash, check_password_hash

from scoopify import db
from .base import BaseModel

ROLE_ADMIN = 'ADMIN'
ROLE_EMPLOYEE = 'EMPLOYEE'
ROLE_CUSTOMER = 'CUSTOMER'
ROLES = (ROLE_ADMIN, ROLE_EMPLOYEE, ROLE_CUSTOMER)


class User(BaseModel):
    """
    User model - admins, workers (employees) and customers
    """
    __tablename__ = 'users'

    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    name = db.Column(db.String(200), nullable=False)
    phone = db.Column(db.String(50))

    role = db.Column(db.String(20), nullable=False)  # ADMIN, EMPLOYEE, CUSTOMER
    status = db.Column(db.String(20), nullable=False, default='active')

    employee = db.relationship('Employee', back_populates='user', uselist=False)
    customer = db.relationship('Customer', back_populates='user', uselist=False)

    def __repr__(self):
        return f'<User {self.email} ({self.role})>'

    def set_password(self, password):
        """Hash and set password"""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        """Verify password against hash"""
        return check_password_hash(self.password_hash, password)

    def is_admin(self):
        return self.role == ROLE_ADMIN

    def is_active(self):
        return self.status == 'active'

    def to_dict(self, exclude=None):
        exclude = list(exclude or []) + ['password_hash']
        return super().to_dict(exclude=exclude)
