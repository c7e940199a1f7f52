from flask import Blueprint, jsonify, request

from scoopify.auth import current_identity, require_auth
from scoopify.errors import InvalidInput
from scoopify.models.notification import DELIVERY_FAILED, DELIVERY_PENDING, DELIVERY_SENT, DELIVERY_SKIPPED
from scoopify.services.notifications import list_notifications, mark_read

notifications_bp = Blueprint('notifications', __name__)

DELIVERY_STATUSES = (DELIVERY_PENDING, DELIVERY_SENT, DELIVERY_FAILED, DELIVERY_SKIPPED)


@notifications_bp.route('', methods=['GET'])
@require_auth
def get_notifications():
    """
    The caller's notifications (admins also see the admin channel)
    GET /api/notifications?status=FAILED&unread=true&limit=50
    """
    status = request.args.get('status')
    if status and status not in DELIVERY_STATUSES:
        raise InvalidInput('status must be one of: {}'.format(', '.join(DELIVERY_STATUSES)), field='status')
    limit = min(max(request.args.get('limit', 50, type=int), 1), 200)
    unread_only = request.args.get('unread', 'false').lower() == 'true'

    notifications = list_notifications(current_identity(), status=status, unread_only=unread_only, limit=limit)
    return jsonify({
        'notifications': [n.to_dict() for n in notifications],
        'failed_count': sum(1 for n in notifications if n.delivery_status == DELIVERY_FAILED),
    }), 200


@notifications_bp.route('/<notification_id>/read', methods=['POST'])
@require_auth
def read(notification_id):
    """
    POST /api/notifications/:id/read
    """
    notification = mark_read(current_identity(), notification_id)
    return jsonify({'notification': notification.to_dict()}), 200
