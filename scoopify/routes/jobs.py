from flask import Blueprint, jsonify, request

from scoopify.auth import current_identity, require_auth, require_role
from scoopify.extensions import limiter
from scoopify.models.user import ROLE_ADMIN, ROLE_CUSTOMER, ROLE_EMPLOYEE
from scoopify.services import claims, completion
from scoopify.utils.validators import json_body, parse_datetime

jobs_bp = Blueprint('jobs', __name__)


@jobs_bp.route('/available', methods=['GET'])
@require_role(ROLE_EMPLOYEE)
def available_jobs():
    """
    Unlocked jobs for today within the caller's coverage
    GET /api/jobs/available
    """
    services = claims.list_available_services(current_identity())
    return jsonify({
        'services': [s.to_dict() for s in services],
        'count': len(services),
    }), 200


@jobs_bp.route('/mine', methods=['GET'])
@require_role(ROLE_EMPLOYEE)
def my_jobs():
    """
    The caller's jobs
    GET /api/jobs/mine?all=true
    """
    include_finished = request.args.get('all', 'false').lower() == 'true'
    services = claims.list_my_services(current_identity(), include_finished=include_finished)
    return jsonify({'services': [s.to_dict(include_details=True) for s in services]}), 200


@jobs_bp.route('/<service_id>', methods=['GET'])
@require_auth
def get_job(service_id):
    """
    Get a job
    GET /api/jobs/:id
    """
    service = claims.get_service_for(current_identity(), service_id)
    return jsonify({'service': service.to_dict(include_details=True)}), 200


@jobs_bp.route('/<service_id>/claim', methods=['POST'])
@limiter.limit('20 per minute')
@require_role(ROLE_EMPLOYEE)
def claim_job(service_id):
    """
    Claim an unlocked job
    POST /api/jobs/:id/claim
    """
    service = claims.claim_service(current_identity(), service_id)
    return jsonify({
        'message': 'Service claimed',
        'service': service.to_dict(),
    }), 200


@jobs_bp.route('/<service_id>/arrive', methods=['POST'])
@require_role(ROLE_EMPLOYEE)
def arrive(service_id):
    """
    Record arrival at the customer's address
    POST /api/jobs/:id/arrive
    """
    service, is_late = claims.mark_arrived(current_identity(), service_id)
    return jsonify({'service': service.to_dict(), 'is_late': is_late}), 200


@jobs_bp.route('/<service_id>/start', methods=['POST'])
@require_role(ROLE_EMPLOYEE)
def start(service_id):
    """
    Start cleaning
    POST /api/jobs/:id/start
    """
    service = claims.start_service(current_identity(), service_id)
    return jsonify({'service': service.to_dict()}), 200


@jobs_bp.route('/<service_id>/delay', methods=['POST'])
@require_role(ROLE_EMPLOYEE, ROLE_ADMIN)
def delay(service_id):
    """
    Mark a job delayed
    POST /api/jobs/:id/delay
    Body: {"reason": "Traffic on I-25"}
    """
    data = json_body(request)
    service = claims.delay_service(current_identity(), service_id, data.get('reason'))
    return jsonify({'service': service.to_dict()}), 200


@jobs_bp.route('/<service_id>/cancel', methods=['POST'])
@require_role(ROLE_CUSTOMER, ROLE_ADMIN)
def cancel(service_id):
    """
    Cancel a job
    POST /api/jobs/:id/cancel
    Body: {"reason": "Out of town"}
    """
    data = json_body(request)
    service = claims.cancel_service(current_identity(), service_id, data.get('reason'))
    return jsonify({'service': service.to_dict()}), 200


@jobs_bp.route('/<service_id>/photos', methods=['POST'])
@require_role(ROLE_EMPLOYEE)
def add_photo(service_id):
    """
    Register an uploaded photo
    POST /api/jobs/:id/photos
    Body: {
        "url": "https://storage.example.com/photos/abc.jpg",
        "photo_type": "PRE_CLEAN",
        "latitude": 38.83,
        "longitude": -104.82,
        "taken_at": "2026-06-10T16:05:00Z"
    }
    """
    data = json_body(request)
    taken_at = parse_datetime(data['taken_at'], 'taken_at')[0] if data.get('taken_at') else None
    photo = completion.add_photo(
        current_identity(), service_id,
        url=data.get('url'),
        photo_type=data.get('photo_type'),
        latitude=data.get('latitude'),
        longitude=data.get('longitude'),
        taken_at=taken_at,
    )
    return jsonify({'photo': photo.to_dict()}), 201


@jobs_bp.route('/<service_id>/photos', methods=['GET'])
@require_auth
def list_photos(service_id):
    """
    Photos of a job
    GET /api/jobs/:id/photos
    """
    service = claims.get_service_for(current_identity(), service_id)
    return jsonify({'photos': [p.to_dict() for p in completion.list_photos(service)]}), 200


@jobs_bp.route('/<service_id>/complete', methods=['POST'])
@require_role(ROLE_EMPLOYEE)
def complete(service_id):
    """
    Complete a job with its evidence
    POST /api/jobs/:id/complete
    Body: {
        "checklist": {"gate_closed": true, "corners_checked": true, "waste_removed": true, "notes": "..."},
        "before_photo_ids": [...],
        "after_photo_ids": [...],
        "gate_photo_id": "..."
    }
    """
    data = json_body(request)
    service = completion.complete_service(
        current_identity(), service_id,
        checklist=data.get('checklist'),
        before_photo_ids=data.get('before_photo_ids'),
        after_photo_ids=data.get('after_photo_ids'),
        gate_photo_id=data.get('gate_photo_id'),
    )
    return jsonify({
        'message': 'Service completed',
        'service': service.to_dict(include_details=True),
    }), 200
