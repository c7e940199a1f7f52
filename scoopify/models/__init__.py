"""SQLAlchemy models package"""
from .user import User
from .employee import Employee
from .customer import Customer
from .coverage_area import CoverageArea, ZipLocation
from .service import Service
from .photo import ServicePhoto, ServiceChecklist
from .payment import Payment, PaymentDistribution, Earning
from .rating import ServiceRating
from .referral import Referral
from .notification import Notification
from .audit_log import AuditLog
from .webhook_event import WebhookEvent

__all__ = [
    'User',
    'Employee',
    'Customer',
    'CoverageArea',
    'ZipLocation',
    'Service',
    'ServicePhoto',
    'ServiceChecklist',
    'Payment',
    'PaymentDistribution',
    'Earning',
    'ServiceRating',
    'Referral',
    'Notification',
    'AuditLog',
    'WebhookEvent',
]
