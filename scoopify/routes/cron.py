"""
Endpoints for the external timer. Each call is idempotent, so a timer that
retries or fires twice is harmless.
"""
from flask import Blueprint, jsonify

from scoopify.auth import require_cron_or_admin
from scoopify.services.completion import purge_expired_photos
from scoopify.services.notifications import send_customer_reminders
from scoopify.services.payouts import process_referrals
from scoopify.services.scheduling import create_weekly_services
from scoopify.services.unlock import unlock_todays_jobs

cron_bp = Blueprint('cron', __name__)


@cron_bp.route('/unlock-jobs', methods=['POST'])
@require_cron_or_admin
def unlock_jobs():
    """
    POST /api/cron/unlock-jobs
    Header: X-Cron-Secret
    """
    result = unlock_todays_jobs()
    return jsonify(result.to_dict()), 200


@cron_bp.route('/schedule-services', methods=['POST'])
@require_cron_or_admin
def schedule_services():
    """
    POST /api/cron/schedule-services
    """
    return jsonify({'created': create_weekly_services()}), 200


@cron_bp.route('/purge-photos', methods=['POST'])
@require_cron_or_admin
def purge_photos():
    """
    POST /api/cron/purge-photos
    """
    return jsonify({'purged': purge_expired_photos()}), 200


@cron_bp.route('/process-referrals', methods=['POST'])
@require_cron_or_admin
def referrals():
    """
    POST /api/cron/process-referrals
    """
    return jsonify(process_referrals()), 200


@cron_bp.route('/customer-notifications', methods=['POST'])
@require_cron_or_admin
def customer_notifications():
    """
    POST /api/cron/customer-notifications
    Visit reminders for tomorrow and rating prompts for yesterday's visits.
    """
    return jsonify(send_customer_reminders()), 200
