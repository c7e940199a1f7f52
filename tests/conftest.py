"""
Pytest configuration and fixtures for Scoopify backend tests

The clock is frozen at 10:00 America/Denver on Wednesday 2026-06-10
(16:00 UTC) unless a test moves it.
"""
import pytest
import os
from datetime import datetime, timedelta

from scoopify import create_app, db
from scoopify.auth import generate_token
from scoopify.models import (
    CoverageArea,
    Customer,
    Employee,
    Referral,
    Service,
    ServicePhoto,
    User,
    ZipLocation,
)
from scoopify.models.service import SCHEDULED

FROZEN_NOW = datetime(2026, 6, 10, 16, 0)

# Local 09:00 on the frozen day, as naive UTC
TODAY_9AM = datetime(2026, 6, 10, 15, 0)

ZIP_COORDINATES = [
    ('80903', 38.8339, -104.8214, 'Colorado Springs', 'CO'),
    ('80909', 38.8527, -104.7739, 'Colorado Springs', 'CO'),
    ('80132', 39.0917, -104.8728, 'Monument', 'CO'),
    ('81003', 38.2713, -104.6105, 'Pueblo', 'CO'),
]

CLOCKED_MODULES = [
    'scoopify.services.claims',
    'scoopify.services.completion',
    'scoopify.services.unlock',
    'scoopify.services.scheduling',
    'scoopify.services.payouts',
    'scoopify.services.notifications',
    'scoopify.routes.webhooks',
]


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def set_local(self, hour, minute=0):
        """Move to hour:minute Denver time (MDT, UTC-6) on the frozen day."""
        self.now = datetime(2026, 6, 10, hour, minute) + timedelta(hours=6)
        return self.now


@pytest.fixture(scope='function')
def app():
    """Create application instance for testing"""
    os.environ['FLASK_ENV'] = 'testing'
    app = create_app('testing')

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client"""
    return app.test_client()


@pytest.fixture(autouse=True)
def clock(monkeypatch):
    """Freeze utcnow() in every module that reads the time"""
    frozen = Clock(FROZEN_NOW)
    for module in CLOCKED_MODULES:
        monkeypatch.setattr(f'{module}.utcnow', frozen)
    return frozen


@pytest.fixture
def zip_locations(app):
    for zip_code, lat, lng, city, state in ZIP_COORDINATES:
        db.session.add(ZipLocation(zip_code=zip_code, latitude=lat, longitude=lng, city=city, state=state))
    db.session.commit()


@pytest.fixture
def user_factory(app):
    """Factory for creating users with a role"""
    def _create_user(role, email, name='Test User'):
        user = User(email=email, name=name, role=role, status='active')
        user.set_password('TestPass123!')
        db.session.add(user)
        db.session.commit()
        return user

    return _create_user


@pytest.fixture
def employee_factory(app, user_factory, zip_locations):
    """Factory for workers with one coverage area"""
    def _create_employee(email, name, zip_code='80903', radius=10, rating=4.0, connect_account=None):
        user = user_factory('EMPLOYEE', email, name)
        employee = Employee(
            user_id=user.id,
            name=name,
            average_rating=rating,
            stripe_connect_account_id=connect_account,
            is_active=True,
        )
        db.session.add(employee)
        db.session.flush()
        db.session.add(CoverageArea(employee_id=employee.id, zip_code=zip_code, travel_radius_miles=radius))
        db.session.commit()
        return employee

    return _create_employee


@pytest.fixture
def admin_user(user_factory):
    return user_factory('ADMIN', 'admin@scoopify.test', 'Ada Admin')


@pytest.fixture
def employee(employee_factory):
    """Worker based in 80903 with a 10 mile radius"""
    return employee_factory('sam@scoopify.test', 'Sam Scooper', rating=4.0)


@pytest.fixture
def employee_b(employee_factory):
    """Worker based in Monument (80132) with a 25 mile radius"""
    return employee_factory('riley@scoopify.test', 'Riley Rake', zip_code='80132', radius=25, rating=4.8)


@pytest.fixture
def customer_factory(app, user_factory):
    def _create_customer(email, name='Casey Customer', zip_code='80909', price_cents=4000, service_day='Wednesday'):
        user = user_factory('CUSTOMER', email, name)
        customer = Customer(
            user_id=user.id,
            name=name,
            street='12 Pine St',
            city='Colorado Springs',
            state='CO',
            zip_code=zip_code,
            gate_code='1234',
            service_day=service_day,
            visit_price_cents=price_cents,
        )
        db.session.add(customer)
        db.session.commit()
        return customer

    return _create_customer


@pytest.fixture
def customer(customer_factory):
    return customer_factory('casey@example.com')


@pytest.fixture
def service_factory(app, customer):
    """Factory for services; defaults to an unlocked job scheduled today"""
    def _create_service(**kwargs):
        defaults = {
            'customer_id': customer.id,
            'status': SCHEDULED,
            'scheduled_date': TODAY_9AM,
            'is_locked': False,
            'price_cents': 4000,
            'potential_earnings_cents': 3000,
        }
        defaults.update(kwargs)
        service = Service(**defaults)
        db.session.add(service)
        db.session.commit()
        return service

    return _create_service


@pytest.fixture
def service(service_factory):
    return service_factory()


@pytest.fixture
def photo_factory(app):
    """Register n photos of a type for a service; returns their ids"""
    def _create_photos(service, photo_type, count=1):
        ids = []
        for i in range(count):
            photo = ServicePhoto(
                service_id=service.id,
                uploaded_by=service.employee_id,
                url=f'https://storage.example.com/{service.id}/{photo_type.lower()}-{i}.jpg',
                photo_type=photo_type,
            )
            db.session.add(photo)
            db.session.flush()
            ids.append(photo.id)
        db.session.commit()
        return ids

    return _create_photos


@pytest.fixture
def referral_factory(app, admin_user):
    def _create_referral(customer, referrer=None, payout_account='acct_referrer'):
        referral = Referral(
            referrer_id=(referrer or admin_user).id,
            referred_customer_id=customer.id,
            code='FRIEND5',
            payout_account_id=payout_account,
        )
        db.session.add(referral)
        db.session.commit()
        return referral

    return _create_referral


def _headers(user):
    token = generate_token(user, expires_in=timedelta(hours=1))
    return {
        'Authorization': f'Bearer {token}',
        'Content-Type': 'application/json'
    }


@pytest.fixture
def admin_headers(admin_user):
    return _headers(admin_user)


@pytest.fixture
def employee_headers(employee):
    return _headers(employee.user)


@pytest.fixture
def employee_b_headers(employee_b):
    return _headers(employee_b.user)


@pytest.fixture
def customer_headers(customer):
    return _headers(customer.user)


@pytest.fixture
def cron_headers(app):
    return {'X-Cron-Secret': app.config['CRON_SECRET']}

