from flask import Blueprint, current_app, jsonify, request

from scoopify import db
from scoopify.auth import current_identity, require_role
from scoopify.errors import InvalidInput
from scoopify.models import AuditLog, CoverageArea, Employee
from scoopify.models.user import ROLE_ADMIN
from scoopify.services.completion import correct_checklist
from scoopify.services.gateway import get_or_404, transaction
from scoopify.services.notifications import retry_failed_notifications
from scoopify.services.scheduling import reschedule_service, schedule_service
from scoopify.utils.helpers import local_to_utc, paginate_query
from scoopify.utils.validators import (
    json_body,
    parse_amount_cents,
    parse_datetime,
    require_fields,
    validate_zip_code,
)

admin_bp = Blueprint('admin', __name__)


def _scheduled_date(data):
    """ISO timestamp; naive values are local wall-clock time."""
    moment, is_aware = parse_datetime(data.get('scheduled_date'), 'scheduled_date')
    return moment if is_aware else local_to_utc(moment, current_app.config['TIMEZONE'])


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------

@admin_bp.route('/services', methods=['POST'])
@require_role(ROLE_ADMIN)
def create_service():
    """
    Schedule a visit (created locked)
    POST /api/admin/services
    Body: {
        "customer_id": "uuid",
        "scheduled_date": "2026-06-10T09:00:00",
        "amount": 40.00                (optional; defaults to the customer's visit price)
    }
    """
    data = require_fields(json_body(request), 'customer_id', 'scheduled_date')
    price_cents = None
    if data.get('amount') is not None or data.get('amount_cents') is not None:
        price_cents = parse_amount_cents(data)

    service = schedule_service(data['customer_id'], _scheduled_date(data), price_cents)
    return jsonify({'service': service.to_dict()}), 201


@admin_bp.route('/services/<service_id>/reschedule', methods=['POST'])
@require_role(ROLE_ADMIN)
def reschedule(service_id):
    """
    Move an unassigned scheduled or delayed visit
    POST /api/admin/services/:id/reschedule
    Body: {"scheduled_date": "2026-06-11T09:00:00"}
    """
    data = require_fields(json_body(request), 'scheduled_date')
    service = reschedule_service(current_identity(), service_id, _scheduled_date(data))
    return jsonify({'service': service.to_dict()}), 200


@admin_bp.route('/services/<service_id>/checklist', methods=['PUT'])
@require_role(ROLE_ADMIN)
def update_checklist(service_id):
    """
    Correct a completion checklist
    PUT /api/admin/services/:id/checklist
    Body: {"corners_checked": false, "notes": "Customer reported missed corner"}
    """
    record = correct_checklist(current_identity(), service_id, json_body(request))
    return jsonify({'checklist': record.to_dict()}), 200


# ---------------------------------------------------------------------------
# Coverage areas
# ---------------------------------------------------------------------------

def _radius(value):
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 < value <= 100:
        raise InvalidInput('travel_radius_miles must be a number between 0 and 100', field='travel_radius_miles')
    return float(value)


@admin_bp.route('/coverage-areas', methods=['GET'])
@require_role(ROLE_ADMIN)
def list_coverage_areas():
    """
    GET /api/admin/coverage-areas?employee_id=uuid&active=true
    """
    query = CoverageArea.query
    if request.args.get('employee_id'):
        query = query.filter(CoverageArea.employee_id == request.args['employee_id'])
    if request.args.get('active', 'true').lower() == 'true':
        query = query.filter(CoverageArea.is_active == True)  # noqa: E712
    areas = query.order_by(CoverageArea.zip_code).all()
    return jsonify({'coverage_areas': [a.to_dict() for a in areas]}), 200


@admin_bp.route('/coverage-areas', methods=['POST'])
@require_role(ROLE_ADMIN)
def create_coverage_area():
    """
    POST /api/admin/coverage-areas
    Body: {"employee_id": "uuid", "zip_code": "80903", "travel_radius_miles": 10}
    """
    data = require_fields(json_body(request), 'employee_id', 'zip_code')
    get_or_404(Employee, data['employee_id'], 'Employee not found')

    area = CoverageArea(
        employee_id=data['employee_id'],
        zip_code=validate_zip_code(data['zip_code']),
        travel_radius_miles=_radius(data.get('travel_radius_miles', 10)),
        is_active=True,
    )
    with transaction('create_coverage_area', data['employee_id']):
        db.session.add(area)
    return jsonify({'coverage_area': area.to_dict()}), 201


@admin_bp.route('/coverage-areas/<area_id>', methods=['PATCH'])
@require_role(ROLE_ADMIN)
def update_coverage_area(area_id):
    """
    PATCH /api/admin/coverage-areas/:id
    Body: {"travel_radius_miles": 15, "is_active": true}
    """
    area = get_or_404(CoverageArea, area_id, 'Coverage area not found')
    data = json_body(request)

    with transaction('update_coverage_area', area_id):
        if 'zip_code' in data:
            area.zip_code = validate_zip_code(data['zip_code'])
        if 'travel_radius_miles' in data:
            area.travel_radius_miles = _radius(data['travel_radius_miles'])
        if 'is_active' in data:
            if not isinstance(data['is_active'], bool):
                raise InvalidInput('is_active must be true or false', field='is_active')
            area.is_active = data['is_active']
    return jsonify({'coverage_area': area.to_dict()}), 200


@admin_bp.route('/coverage-areas/<area_id>', methods=['DELETE'])
@require_role(ROLE_ADMIN)
def deactivate_coverage_area(area_id):
    """
    Deactivate (history is kept)
    DELETE /api/admin/coverage-areas/:id
    """
    area = get_or_404(CoverageArea, area_id, 'Coverage area not found')
    with transaction('deactivate_coverage_area', area_id):
        area.is_active = False
    return jsonify({'coverage_area': area.to_dict()}), 200


# ---------------------------------------------------------------------------
# Notifications and audit
# ---------------------------------------------------------------------------

@admin_bp.route('/notifications/retry', methods=['POST'])
@require_role(ROLE_ADMIN)
def retry_notifications():
    """
    Re-deliver notifications whose email failed
    POST /api/admin/notifications/retry
    """
    return jsonify(retry_failed_notifications()), 200


@admin_bp.route('/audit-logs', methods=['GET'])
@require_role(ROLE_ADMIN)
def audit_logs():
    """
    GET /api/admin/audit-logs?category=JOB_UNLOCK&page=1&per_page=20
    """
    query = AuditLog.query
    if request.args.get('category'):
        query = query.filter(AuditLog.category == request.args['category'])
    if request.args.get('entity_id'):
        query = query.filter(AuditLog.entity_id == request.args['entity_id'])
    query = query.order_by(AuditLog.created_at.desc())

    result = paginate_query(
        query,
        request.args.get('page', 1, type=int),
        request.args.get('per_page', 20, type=int),
    )
    result['items'] = [entry.to_dict() for entry in result['items']]
    return jsonify(result), 200
