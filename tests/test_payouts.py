"""
Tests for payment distribution, worker payouts and referrals
"""
import pytest
import json
from types import SimpleNamespace

import stripe

from scoopify import db
from scoopify.errors import InvalidInput
from scoopify.models import Earning, Payment, PaymentDistribution, Referral
from scoopify.models.payment import PAYMENT_PAID, PAYMENT_PENDING
from scoopify.models.referral import REFERRAL_PAID
from scoopify.models.service import COMPLETED
from scoopify.services.payouts import (
    PayoutPolicy,
    distribute_for_service,
    distribute_payment,
    payout_pending_earnings,
    process_referrals,
)

policy = PayoutPolicy()


class TestSplit:
    """Test the integer-cent split rule"""

    def test_hundred_dollars_with_referral(self):
        assert policy.split(10000, True) == {'EMPLOYEE': 7125, 'COMPANY': 2375, 'REFERRAL': 500}

    def test_hundred_dollars_without_referral(self):
        assert policy.split(10000, False) == {'EMPLOYEE': 7500, 'COMPANY': 2500}

    def test_amount_below_referral_fee(self):
        """The referral fee never exceeds the payment"""
        assert policy.split(300, True) == {'EMPLOYEE': 0, 'COMPANY': 0, 'REFERRAL': 300}

    def test_one_cent_over_fee(self):
        assert policy.split(501, True) == {'EMPLOYEE': 0, 'COMPANY': 1, 'REFERRAL': 500}

    def test_odd_cents_go_to_company(self):
        assert policy.split(4001, False) == {'EMPLOYEE': 3000, 'COMPANY': 1001}

    @pytest.mark.parametrize('amount', [1, 499, 500, 1333, 9999, 123457])
    def test_shares_sum_to_amount(self, amount):
        for has_referral in (True, False):
            shares = policy.split(amount, has_referral)
            assert sum(shares.values()) == amount
            assert all(v >= 0 for v in shares.values())

    def test_negative_amount_rejected(self):
        with pytest.raises(InvalidInput):
            policy.split(-1, False)


class TestDistributePayment:
    """Test recording a payment's distribution"""

    def test_distribution_is_idempotent(self, app, employee):
        first, created = distribute_payment('pi_123', 10000, employee.id)
        again, created_again = distribute_payment('pi_123', 10000, employee.id)

        assert created is True
        assert created_again is False
        assert again.id == first.id
        assert Payment.query.count() == 1
        assert PaymentDistribution.query.count() == 2
        assert Earning.query.count() == 1

    def test_unknown_employee(self, app):
        from scoopify.errors import NotFound
        with pytest.raises(NotFound):
            distribute_payment('pi_404', 10000, 'nobody')

    def test_referred_customer_gets_referral_share(self, app, service_factory, employee, customer, referral_factory):
        referral = referral_factory(customer)
        done = service_factory(employee_id=employee.id, status=COMPLETED, price_cents=10000)

        payment, _ = distribute_for_service(done)

        shares = {d.recipient_type: d for d in payment.distributions}
        assert shares['REFERRAL'].amount_cents == 500
        assert shares['REFERRAL'].recipient_id == referral.id
        assert shares['EMPLOYEE'].amount_cents == 7125
        assert shares['COMPANY'].amount_cents == 2375


class TestDistributeEndpoint:
    """Test POST /api/payments/distribute"""

    def test_distribute_dollars(self, client, employee, cron_headers):
        response = client.post('/api/payments/distribute', headers=cron_headers, json={
            'source_reference': 'pi_abc',
            'amount': 100.00,
            'employee_id': employee.id,
            'has_referral': True,
        })

        assert response.status_code == 201
        data = json.loads(response.data)
        assert data['created'] is True
        shares = {d['recipient_type']: d['amount_cents'] for d in data['payment']['distributions']}
        assert shares == {'EMPLOYEE': 7125, 'COMPANY': 2375, 'REFERRAL': 500}

    def test_redelivery_returns_existing(self, client, employee, admin_headers):
        body = {'source_reference': 'pi_abc', 'amount_cents': 10000, 'employee_id': employee.id}
        client.post('/api/payments/distribute', headers=admin_headers, json=body)

        response = client.post('/api/payments/distribute', headers=admin_headers, json=body)

        assert response.status_code == 200
        assert json.loads(response.data)['created'] is False
        assert Payment.query.count() == 1

    @pytest.mark.parametrize('amount', [0, -5, 10.005, 'ten'])
    def test_invalid_amount(self, client, employee, cron_headers, amount):
        response = client.post('/api/payments/distribute', headers=cron_headers, json={
            'source_reference': 'pi_bad',
            'amount': amount,
            'employee_id': employee.id,
        })

        assert response.status_code == 400
        assert Payment.query.count() == 0

    def test_unknown_service_not_found(self, client, employee, cron_headers):
        response = client.post('/api/payments/distribute', headers=cron_headers, json={
            'source_reference': 'pi_orphan',
            'amount_cents': 4000,
            'employee_id': employee.id,
            'service_id': '00000000-0000-0000-0000-000000000000',
        })

        assert response.status_code == 404
        assert Payment.query.count() == 0

    def test_worker_cannot_distribute(self, client, employee, employee_headers):
        response = client.post('/api/payments/distribute', headers=employee_headers, json={
            'source_reference': 'pi_abc', 'amount': 10, 'employee_id': employee.id,
        })

        assert response.status_code == 403


class TestEarningsPayout:
    """Test paying out pending earnings"""

    def test_dev_mode_payout(self, client, employee, admin_headers):
        distribute_payment('pi_1', 4000, employee.id)

        response = client.post('/api/earnings/payout', headers=admin_headers, json={})

        assert response.status_code == 200
        assert len(json.loads(response.data)['paid']) == 1
        earning = Earning.query.one()
        assert earning.status == PAYMENT_PAID
        assert earning.stripe_transfer_id.startswith('tr_dev_')
        assert earning.distribution.status == PAYMENT_PAID

    def test_second_payout_pays_nothing(self, client, employee, admin_headers):
        distribute_payment('pi_1', 4000, employee.id)
        client.post('/api/earnings/payout', headers=admin_headers, json={})

        response = client.post('/api/earnings/payout', headers=admin_headers, json={})

        assert json.loads(response.data)['paid'] == []

    def test_stripe_transfer_uses_idempotency_key(self, app, employee_factory, monkeypatch):
        worker = employee_factory('jo@scoopify.test', 'Jo Connect', connect_account='acct_jo')
        distribute_payment('pi_2', 4000, worker.id)
        app.config['STRIPE_SECRET_KEY'] = 'sk_test_dummy'
        calls = []

        def fake_create(**kwargs):
            calls.append(kwargs)
            return SimpleNamespace(id='tr_live_1')

        monkeypatch.setattr(stripe.Transfer, 'create', fake_create)

        result = payout_pending_earnings()

        earning = Earning.query.one()
        assert result.paid == [earning.id]
        assert calls[0]['idempotency_key'] == f'earning-{earning.id}-0'
        assert calls[0]['destination'] == 'acct_jo'
        assert calls[0]['amount'] == 3000
        assert earning.stripe_transfer_id == 'tr_live_1'

    def test_worker_without_account_skipped(self, app, employee, monkeypatch):
        distribute_payment('pi_3', 4000, employee.id)
        app.config['STRIPE_SECRET_KEY'] = 'sk_test_dummy'
        monkeypatch.setattr(stripe.Transfer, 'create', lambda **kwargs: pytest.fail('no transfer expected'))

        result = payout_pending_earnings()

        assert result.skipped[0]['reason'] == 'no_payout_account'
        assert Earning.query.one().status == PAYMENT_PENDING

    def test_stripe_error_leaves_earning_pending(self, app, employee_factory, monkeypatch):
        worker = employee_factory('jo@scoopify.test', 'Jo Connect', connect_account='acct_jo')
        distribute_payment('pi_4', 4000, worker.id)
        app.config['STRIPE_SECRET_KEY'] = 'sk_test_dummy'

        def failing_create(**kwargs):
            raise stripe.APIConnectionError('network down')

        monkeypatch.setattr(stripe.Transfer, 'create', failing_create)

        result = payout_pending_earnings()

        assert len(result.failed) == 1
        assert Earning.query.one().status == PAYMENT_PENDING

    def test_earnings_ledger(self, client, employee, employee_headers, admin_headers):
        distribute_payment('pi_1', 4000, employee.id)
        distribute_payment('pi_2', 2000, employee.id)
        client.post('/api/earnings/payout', headers=admin_headers, json={})
        distribute_payment('pi_3', 1000, employee.id)

        response = client.get('/api/earnings', headers=employee_headers)

        data = json.loads(response.data)
        assert data['paid_cents'] == 4500
        assert data['pending_cents'] == 750
        assert len(data['earnings']) == 3


class TestReferrals:
    """Test referral processing and payout"""

    def test_process_and_pay_referral(self, client, service_factory, employee, customer, referral_factory, cron_headers):
        referral = referral_factory(customer)
        distribute_for_service(service_factory(employee_id=employee.id, status=COMPLETED, price_cents=10000))

        response = client.post('/api/cron/process-referrals', headers=cron_headers)

        summary = json.loads(response.data)
        assert summary['processed'] == 1
        assert summary['paid'] == 1
        paid = db.session.get(Referral, referral.id)
        assert paid.status == REFERRAL_PAID
        assert paid.commission_cents == 500
        assert paid.stripe_transfer_id.startswith('tr_dev_')

    def test_rerun_pays_nothing(self, app, service_factory, employee, customer, referral_factory):
        referral_factory(customer)
        distribute_for_service(service_factory(employee_id=employee.id, status=COMPLETED, price_cents=10000))
        process_referrals()

        summary = process_referrals()

        assert summary == {'processed': 0, 'paid': 0, 'failed': 0, 'skipped': 0}

    def test_referral_without_payments_stays_pending(self, app, customer, referral_factory):
        referral = referral_factory(customer)

        summary = process_referrals()

        assert summary['processed'] == 0
        assert db.session.get(Referral, referral.id).status == 'PENDING'
