"""
Tests for the worker-side job lifecycle: arrive, start, delay, cancel
"""
import pytest
import json
from datetime import timedelta

from scoopify import db
from scoopify.models import Notification, Service
from scoopify.models.service import ARRIVED, CANCELLED, CLAIMED, COMPLETED, DELAYED, IN_PROGRESS, SCHEDULED

from conftest import FROZEN_NOW, _headers


@pytest.fixture
def claimed_service(service_factory, employee):
    return service_factory(
        employee_id=employee.id,
        status=CLAIMED,
        claimed_at=FROZEN_NOW,
        arrival_deadline=FROZEN_NOW + timedelta(minutes=120),
    )


class TestArrival:
    """Test recording arrival"""

    def test_arrive_on_time(self, client, claimed_service, employee_headers):
        response = client.post(f'/api/jobs/{claimed_service.id}/arrive', headers=employee_headers)

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['service']['status'] == ARRIVED
        assert data['is_late'] is False

    def test_arrive_late(self, client, claimed_service, employee_headers, clock):
        """Arriving after the deadline is allowed but flagged"""
        clock.now = FROZEN_NOW + timedelta(minutes=150)

        response = client.post(f'/api/jobs/{claimed_service.id}/arrive', headers=employee_headers)

        assert response.status_code == 200
        assert json.loads(response.data)['is_late'] is True

    def test_other_worker_cannot_arrive(self, client, claimed_service, employee_b_headers):
        response = client.post(f'/api/jobs/{claimed_service.id}/arrive', headers=employee_b_headers)

        assert response.status_code == 403
        assert db.session.get(Service, claimed_service.id).status == CLAIMED

    def test_arrive_after_delay(self, client, claimed_service, employee_headers):
        client.post(f'/api/jobs/{claimed_service.id}/delay', headers=employee_headers, json={'reason': 'Flat tire'})

        response = client.post(f'/api/jobs/{claimed_service.id}/arrive', headers=employee_headers)

        assert response.status_code == 200
        assert json.loads(response.data)['service']['status'] == ARRIVED


class TestStart:
    """Test starting the cleanup"""

    def test_start_after_arrival(self, client, claimed_service, employee_headers, clock):
        client.post(f'/api/jobs/{claimed_service.id}/arrive', headers=employee_headers)

        response = client.post(f'/api/jobs/{claimed_service.id}/start', headers=employee_headers)

        assert response.status_code == 200
        assert json.loads(response.data)['service']['status'] == IN_PROGRESS
        assert db.session.get(Service, claimed_service.id).started_at == clock.now

    def test_start_before_arrival(self, client, claimed_service, employee_headers):
        """CLAIMED cannot jump straight to IN_PROGRESS"""
        response = client.post(f'/api/jobs/{claimed_service.id}/start', headers=employee_headers)

        assert response.status_code == 409
        assert json.loads(response.data)['code'] == 'invalid_state'


class TestDelay:
    """Test delaying a job"""

    def test_delay_requires_reason(self, client, claimed_service, employee_headers):
        response = client.post(f'/api/jobs/{claimed_service.id}/delay', headers=employee_headers, json={})

        assert response.status_code == 400

    def test_worker_delays_claimed_job(self, client, claimed_service, customer, employee_headers):
        response = client.post(
            f'/api/jobs/{claimed_service.id}/delay',
            headers=employee_headers,
            json={'reason': 'Traffic on I-25'}
        )

        assert response.status_code == 200
        delayed = db.session.get(Service, claimed_service.id)
        assert delayed.status == DELAYED
        assert delayed.delay_reason == 'Traffic on I-25'
        assert Notification.query.filter_by(user_id=customer.user_id, type='service_delayed').count() == 1

    def test_admin_delays_unassigned_job(self, client, service, admin_headers):
        response = client.post(
            f'/api/jobs/{service.id}/delay',
            headers=admin_headers,
            json={'reason': 'Hail storm'}
        )

        assert response.status_code == 200
        assert db.session.get(Service, service.id).status == DELAYED

    def test_admin_reschedules_delayed_job(self, client, service, admin_headers):
        client.post(f'/api/jobs/{service.id}/delay', headers=admin_headers, json={'reason': 'Hail storm'})

        response = client.post(
            f'/api/admin/services/{service.id}/reschedule',
            headers=admin_headers,
            json={'scheduled_date': '2026-06-11T09:00:00'}
        )

        assert response.status_code == 200
        moved = db.session.get(Service, service.id)
        assert moved.status == SCHEDULED
        assert moved.is_locked is True
        assert moved.scheduled_date.isoformat() == '2026-06-11T15:00:00'


class TestCancel:
    """Test cancelling a job"""

    def test_customer_cancels_own_job(self, client, claimed_service, employee, customer_headers):
        response = client.post(
            f'/api/jobs/{claimed_service.id}/cancel',
            headers=customer_headers,
            json={'reason': 'Out of town'}
        )

        assert response.status_code == 200
        cancelled = db.session.get(Service, claimed_service.id)
        assert cancelled.status == CANCELLED
        assert cancelled.cancellation_reason == 'Out of town'
        # The assigned worker hears about it
        assert Notification.query.filter_by(user_id=employee.user_id, type='service_cancelled').count() == 1

    def test_other_customer_cannot_cancel(self, client, service, customer_factory):
        other = customer_factory('morgan@example.com', 'Morgan Other')

        response = client.post(f'/api/jobs/{service.id}/cancel', headers=_headers(other.user))

        assert response.status_code == 403

    def test_worker_cannot_cancel(self, client, claimed_service, employee_headers):
        response = client.post(f'/api/jobs/{claimed_service.id}/cancel', headers=employee_headers)

        assert response.status_code == 403

    def test_completed_job_cannot_be_cancelled(self, client, service_factory, employee, admin_headers):
        done = service_factory(employee_id=employee.id, status=COMPLETED)

        response = client.post(f'/api/jobs/{done.id}/cancel', headers=admin_headers)

        assert response.status_code == 409
        assert db.session.get(Service, done.id).status == COMPLETED


class TestJobVisibility:
    """Test who may read a job"""

    def test_assigned_worker_sees_details(self, client, claimed_service, employee_headers):
        response = client.get(f'/api/jobs/{claimed_service.id}', headers=employee_headers)

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['service']['customer']['gate_code'] == '1234'

    def test_other_worker_cannot_read_assigned_job(self, client, claimed_service, employee_b_headers):
        response = client.get(f'/api/jobs/{claimed_service.id}', headers=employee_b_headers)

        assert response.status_code == 403

    def test_my_jobs(self, client, claimed_service, employee_headers):
        response = client.get('/api/jobs/mine', headers=employee_headers)

        assert response.status_code == 200
        ids = [s['id'] for s in json.loads(response.data)['services']]
        assert ids == [claimed_service.id]
