"""
Tests for the timer-driven visit reminders and rating prompts
"""
import pytest
import json
from datetime import timedelta

from scoopify.models import Notification
from scoopify.models.service import CANCELLED, COMPLETED
from scoopify.services.notifications import RATING_PROMPT_TYPE, REMINDER_TYPE, send_customer_reminders

from conftest import FROZEN_NOW, TODAY_9AM

TOMORROW_9AM = TODAY_9AM + timedelta(days=1)
YESTERDAY_NOON = FROZEN_NOW - timedelta(days=1) + timedelta(hours=2)


class TestServiceReminders:
    """Test reminders for tomorrow's visits"""

    def test_reminds_customer_of_tomorrows_visit(self, app, customer, service_factory):
        service = service_factory(scheduled_date=TOMORROW_9AM, is_locked=True)

        summary = send_customer_reminders()

        assert summary['service_reminders'] == 1
        rows = Notification.query.filter_by(type=REMINDER_TYPE).all()
        assert len(rows) == 1
        assert rows[0].user_id == customer.user_id
        assert rows[0].service_id == service.id
        assert '1234' in rows[0].email_html

    def test_reminder_sent_once(self, app, service_factory):
        service_factory(scheduled_date=TOMORROW_9AM, is_locked=True)

        send_customer_reminders()
        summary = send_customer_reminders()

        assert summary['service_reminders'] == 0
        assert Notification.query.filter_by(type=REMINDER_TYPE).count() == 1

    def test_skips_todays_and_cancelled_visits(self, app, service_factory):
        service_factory()
        service_factory(scheduled_date=TOMORROW_9AM, status=CANCELLED)

        summary = send_customer_reminders()

        assert summary['service_reminders'] == 0
        assert Notification.query.filter_by(type=REMINDER_TYPE).count() == 0


class TestRatingPrompts:
    """Test prompts to rate yesterday's completed visits"""

    def test_prompts_for_unrated_visit(self, app, customer, employee, service_factory):
        service = service_factory(
            scheduled_date=TODAY_9AM - timedelta(days=1), employee_id=employee.id,
            status=COMPLETED, completed_at=YESTERDAY_NOON,
        )

        summary = send_customer_reminders()

        assert summary['rating_prompts'] == 1
        row = Notification.query.filter_by(type=RATING_PROMPT_TYPE).one()
        assert row.user_id == customer.user_id
        assert row.service_id == service.id
        assert 'Sam Scooper' in row.message

    def test_prompt_sent_once(self, app, employee, service_factory):
        service_factory(employee_id=employee.id, status=COMPLETED, completed_at=YESTERDAY_NOON)

        send_customer_reminders()
        summary = send_customer_reminders()

        assert summary['rating_prompts'] == 0
        assert Notification.query.filter_by(type=RATING_PROMPT_TYPE).count() == 1

    def test_no_prompt_for_rated_or_todays_visit(self, app, employee, service_factory):
        service_factory(employee_id=employee.id, status=COMPLETED, completed_at=YESTERDAY_NOON, is_rated=True)
        service_factory(employee_id=employee.id, status=COMPLETED, completed_at=TODAY_9AM)

        summary = send_customer_reminders()

        assert summary['rating_prompts'] == 0
        assert Notification.query.filter_by(type=RATING_PROMPT_TYPE).count() == 0


class TestCustomerNotificationsEndpoint:
    """Test the timer endpoint"""

    def test_endpoint_reports_counts(self, client, service_factory, cron_headers):
        service_factory(scheduled_date=TOMORROW_9AM, is_locked=True)

        response = client.post('/api/cron/customer-notifications', headers=cron_headers)

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data == {'service_reminders': 1, 'rating_prompts': 0}

    def test_endpoint_requires_cron_secret(self, client, employee_headers):
        response = client.post('/api/cron/customer-notifications', headers=employee_headers)

        assert response.status_code == 403
