from flask import Blueprint, jsonify, request

from scoopify.auth import current_identity, require_auth, require_role
from scoopify.models.user import ROLE_CUSTOMER
from scoopify.services.claims import get_service_for
from scoopify.services.ratings import rate_service
from scoopify.utils.validators import json_body

services_bp = Blueprint('services', __name__)


@services_bp.route('/<service_id>/rate', methods=['POST', 'PUT'])
@require_role(ROLE_CUSTOMER)
def rate(service_id):
    """
    Rate a completed service (POST creates, PUT corrects)
    POST /api/services/:id/rate
    Body: {"rating": 5, "feedback": "Spotless yard"}
    """
    data = json_body(request)
    record, created = rate_service(
        current_identity(), service_id,
        data.get('rating'), data.get('feedback'),
        correction=request.method == 'PUT',
    )
    return jsonify({'rating': record.to_dict()}), 201 if created else 200


@services_bp.route('/<service_id>/rating', methods=['GET'])
@require_auth
def get_rating(service_id):
    """
    GET /api/services/:id/rating
    """
    service = get_service_for(current_identity(), service_id)
    return jsonify({'rating': service.rating.to_dict() if service.rating else None}), 200
