"""
Daily job unlock.

At the unlock hour every SCHEDULED, unassigned, still-locked job for the
current local day becomes claimable. The run is a single conditional bulk
UPDATE, so repeating it (timer retries, manual triggers) changes nothing.
"""
import logging
from dataclasses import asdict, dataclass
from typing import Optional

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from scoopify import db
from scoopify.errors import UpstreamFailure
from scoopify.models import AuditLog, Service
from scoopify.models.service import SCHEDULED
from scoopify.services.gateway import transaction
from scoopify.utils.helpers import local_day_bounds, to_local, utcnow, within_local_hours

logger = logging.getLogger(__name__)


@dataclass
class UnlockResult:
    unlocked: int = 0
    skipped: bool = False
    reason: Optional[str] = None

    def to_dict(self):
        return asdict(self)


def unlock_todays_jobs(now=None):
    """Unlock today's jobs; a no-op outside the unlock window."""
    config = current_app.config
    tz_name = config['TIMEZONE']
    now = now or utcnow()
    local_now = to_local(now, tz_name)

    if not within_local_hours(now, tz_name, config['JOB_UNLOCK_HOUR'], config['CLAIM_WINDOW_END_HOUR']):
        logger.info('Unlock skipped: %s local is outside the unlock window', local_now.strftime('%H:%M'))
        return UnlockResult(skipped=True, reason='outside_window')

    day_start, day_end = local_day_bounds(now, tz_name)
    stmt = (
        update(Service)
        .where(
            Service.status == SCHEDULED,
            Service.is_locked == True,  # noqa: E712
            Service.employee_id.is_(None),
            Service.scheduled_date >= day_start,
            Service.scheduled_date < day_end,
        )
        .values(is_locked=False, unlocked_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )

    try:
        with transaction('unlock_jobs'):
            count = db.session.execute(stmt).rowcount
            if count:
                AuditLog.record('JOB_UNLOCK', 'jobs_unlocked', data={
                    'count': count,
                    'local_date': local_now.date().isoformat(),
                })
    except UpstreamFailure as exc:
        _record_failure(local_now, exc)
        raise

    logger.info('Unlocked %d jobs for %s', count, local_now.date())
    return UnlockResult(unlocked=count)


def _record_failure(local_now, error):
    """Best-effort failure audit in a fresh transaction; the database may still be down."""
    try:
        AuditLog.record('JOB_UNLOCK', 'unlock_failed', level='ERROR', data={
            'local_date': local_now.date().isoformat(),
            'error': error.message,
        })
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception('Could not write unlock failure audit record')
