"""
Tests for the daily job unlock run
"""
import pytest
import json
from datetime import timedelta

from sqlalchemy.exc import OperationalError

from scoopify import db
from scoopify.models import AuditLog, Service
from scoopify.models.service import CLAIMED, SCHEDULED
from scoopify.services.unlock import unlock_todays_jobs

from conftest import TODAY_9AM


@pytest.fixture
def locked_jobs(service_factory, employee):
    """Two locked jobs today, one tomorrow and one already assigned"""
    return {
        'today': service_factory(is_locked=True),
        'today_late': service_factory(is_locked=True, scheduled_date=TODAY_9AM + timedelta(hours=8)),
        'tomorrow': service_factory(is_locked=True, scheduled_date=TODAY_9AM + timedelta(days=1)),
        'assigned': service_factory(is_locked=True, employee_id=employee.id, status=CLAIMED),
    }


class TestUnlockRun:
    """Test unlocking today's jobs"""

    def test_unlocks_only_todays_unassigned_jobs(self, app, locked_jobs, clock):
        """Only today's SCHEDULED, unassigned jobs become claimable"""
        result = unlock_todays_jobs()

        assert result.unlocked == 2
        assert result.skipped is False

        today = db.session.get(Service, locked_jobs['today'].id)
        assert today.is_locked is False
        assert today.unlocked_at == clock.now
        assert db.session.get(Service, locked_jobs['today_late'].id).is_locked is False
        assert db.session.get(Service, locked_jobs['tomorrow'].id).is_locked is True
        assert db.session.get(Service, locked_jobs['assigned'].id).is_locked is True

    def test_second_run_changes_nothing(self, app, locked_jobs):
        """Running twice unlocks each job once and audits once"""
        first = unlock_todays_jobs()
        second = unlock_todays_jobs()

        assert first.unlocked == 2
        assert second.unlocked == 0
        audits = AuditLog.query.filter_by(category='JOB_UNLOCK', action='jobs_unlocked').all()
        assert len(audits) == 1
        assert audits[0].data['count'] == 2
        assert audits[0].data['local_date'] == '2026-06-10'

    def test_skipped_before_unlock_hour(self, app, locked_jobs, clock):
        """At 07:59 local nothing is unlocked"""
        clock.set_local(7, 59)

        result = unlock_todays_jobs()

        assert result.skipped is True
        assert result.reason == 'outside_window'
        assert Service.query.filter_by(is_locked=False).count() == 0

    def test_runs_at_unlock_hour(self, app, locked_jobs, clock):
        """08:00 local is inside the window"""
        clock.set_local(8, 0)

        assert unlock_todays_jobs().unlocked == 2

    def test_skipped_after_window_closes(self, app, locked_jobs, clock):
        clock.set_local(19, 0)

        assert unlock_todays_jobs().skipped is True

    def test_no_jobs_writes_no_audit(self, app):
        result = unlock_todays_jobs()

        assert result.unlocked == 0
        assert AuditLog.query.filter_by(category='JOB_UNLOCK').count() == 0


class TestUnlockEndpoint:
    """Test the timer endpoint"""

    def test_unlock_with_cron_secret(self, client, locked_jobs, cron_headers):
        response = client.post('/api/cron/unlock-jobs', headers=cron_headers)

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['unlocked'] == 2
        assert data['skipped'] is False

    def test_unlock_as_admin(self, client, locked_jobs, admin_headers):
        response = client.post('/api/cron/unlock-jobs', headers=admin_headers)

        assert response.status_code == 200
        assert json.loads(response.data)['unlocked'] == 2

    def test_wrong_cron_secret_rejected(self, client, locked_jobs):
        response = client.post('/api/cron/unlock-jobs', headers={'X-Cron-Secret': 'guess'})

        assert response.status_code == 401
        assert Service.query.filter_by(is_locked=False).count() == 0

    def test_no_credentials_rejected(self, client):
        response = client.post('/api/cron/unlock-jobs')

        assert response.status_code == 401

    def test_worker_token_forbidden(self, client, employee_headers):
        response = client.post('/api/cron/unlock-jobs', headers=employee_headers)

        assert response.status_code == 403

    def test_database_failure_is_retryable_and_audited(self, client, locked_jobs, cron_headers, monkeypatch):
        def failing_execute(*args, **kwargs):
            raise OperationalError('UPDATE services', {}, Exception('connection refused'))

        monkeypatch.setattr(db.session, 'execute', failing_execute)

        response = client.post('/api/cron/unlock-jobs', headers=cron_headers)

        assert response.status_code == 503
        data = json.loads(response.data)
        assert data['code'] == 'upstream_failure'
        assert data['retryable'] is True
        failure = AuditLog.query.filter_by(action='unlock_failed').one()
        assert failure.level == 'ERROR'
        assert failure.data['local_date'] == '2026-06-10'
        assert Service.query.filter_by(is_locked=False).count() == 0


class TestWeeklyScheduling:
    """Test creation of next week's visits"""

    def test_creates_locked_visit_on_service_day(self, client, customer, cron_headers):
        response = client.post('/api/cron/schedule-services', headers=cron_headers)

        assert response.status_code == 200
        assert json.loads(response.data)['created'] == 1

        visit = Service.query.filter_by(customer_id=customer.id).one()
        assert visit.status == SCHEDULED
        assert visit.is_locked is True
        assert visit.price_cents == 4000
        assert visit.potential_earnings_cents == 3000
        # Next Wednesday 08:00 MDT
        assert visit.scheduled_date.isoformat() == '2026-06-17T14:00:00'

    def test_repeat_run_is_idempotent(self, client, customer, cron_headers):
        client.post('/api/cron/schedule-services', headers=cron_headers)
        response = client.post('/api/cron/schedule-services', headers=cron_headers)

        assert json.loads(response.data)['created'] == 0
        assert Service.query.filter_by(customer_id=customer.id).count() == 1
