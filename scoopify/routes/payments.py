from flask import Blueprint, jsonify, request

from scoopify import db
from scoopify.auth import current_identity, require_cron_or_admin, require_role
from scoopify.errors import InvalidInput
from scoopify.models import Employee, Service
from scoopify.models.user import ROLE_ADMIN, ROLE_EMPLOYEE
from scoopify.services.gateway import get_or_404
from scoopify.services.payouts import (
    distribute_payment,
    earnings_summary,
    open_referral_for,
    payout_pending_earnings,
)
from scoopify.utils.validators import json_body, parse_amount_cents, require_fields

payments_bp = Blueprint('payments', __name__)
earnings_bp = Blueprint('earnings', __name__)


@payments_bp.route('/distribute', methods=['POST'])
@require_cron_or_admin
def distribute():
    """
    Split a payment between company, worker and referrer (idempotent)
    POST /api/payments/distribute
    Body: {
        "source_reference": "pi_123",
        "amount": 100.00,            (or "amount_cents": 10000)
        "employee_id": "uuid",
        "service_id": "uuid",        (optional)
        "has_referral": true         (optional; derived from the service's customer when omitted)
    }
    """
    data = require_fields(json_body(request), 'source_reference')
    amount_cents = parse_amount_cents(data)

    service = get_or_404(Service, data['service_id'], 'Service not found') if data.get('service_id') else None
    employee_id = data.get('employee_id') or (service.employee_id if service else None)
    if not employee_id:
        raise InvalidInput('employee_id is required', field='employee_id')

    referral = open_referral_for(service.customer_id) if service else None
    has_referral = data.get('has_referral')
    if has_referral is None:
        has_referral = referral is not None
    elif not isinstance(has_referral, bool):
        raise InvalidInput('has_referral must be true or false', field='has_referral')

    payment, created = distribute_payment(
        source_reference=data['source_reference'],
        amount_cents=amount_cents,
        employee_id=employee_id,
        has_referral=has_referral,
        service_id=service.id if service else None,
        referral_id=referral.id if (referral and has_referral) else None,
    )
    return jsonify({'payment': payment.to_dict(), 'created': created}), 201 if created else 200


@earnings_bp.route('', methods=['GET'])
@require_role(ROLE_EMPLOYEE, ROLE_ADMIN)
def list_earnings():
    """
    Earnings ledger with pending and paid totals
    GET /api/earnings                      (worker: own ledger)
    GET /api/earnings?employee_id=uuid     (admin)
    """
    identity = current_identity()
    if identity.role == ROLE_ADMIN:
        employee_id = request.args.get('employee_id')
        if not employee_id:
            raise InvalidInput('employee_id is required', field='employee_id')
    else:
        employee_id = identity.employee_id
    if db.session.get(Employee, employee_id) is None:
        raise InvalidInput('Unknown employee', field='employee_id')

    return jsonify(earnings_summary(employee_id)), 200


@earnings_bp.route('/payout', methods=['POST'])
@require_role(ROLE_ADMIN)
def payout():
    """
    Transfer pending earnings to workers' Stripe Connect accounts
    POST /api/earnings/payout
    Body: {"employee_id": "uuid"}   (optional; all workers when omitted)
    """
    data = json_body(request)
    result = payout_pending_earnings(employee_id=data.get('employee_id'))
    return jsonify(result.to_dict()), 200
