from flask import Blueprint, jsonify

from scoopify import db
from scoopify.auth import current_identity, require_auth
from scoopify.models import User

auth_bp = Blueprint('auth', __name__)


@auth_bp.route('/me', methods=['GET'])
@require_auth
def me():
    """
    Resolved identity of the caller
    GET /api/auth/me
    """
    identity = current_identity()
    user = db.session.get(User, identity.user_id)
    return jsonify({
        'identity': identity._asdict(),
        'user': user.to_dict(),
    }), 200
