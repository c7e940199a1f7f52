"""
Service completion and photo evidence.

A job completes only with full evidence: enough before and after photos,
one gate photo and every checklist item confirmed. The checklist, the photo
links and the status change commit together or not at all.
"""
import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from scoopify import db
from scoopify.errors import Conflict, InvalidInput, InvalidState, NotFound
from scoopify.models import AuditLog, Service, ServiceChecklist, ServicePhoto
from scoopify.models.photo import PHOTO_GATE, PHOTO_POST_CLEAN, PHOTO_PRE_CLEAN, PHOTO_TYPES
from scoopify.models.service import ARRIVED, CLAIMED, COMPLETED, DELAYED, IN_PROGRESS
from scoopify.services.claims import require_assigned, require_employee
from scoopify.services.effects import run_soft_effect
from scoopify.services.gateway import compare_and_set, get_or_404, transaction
from scoopify.services.notifications import notify_completion_admins, notify_service_completed
from scoopify.services.payouts import distribute_for_service
from scoopify.utils.helpers import utcnow

logger = logging.getLogger(__name__)

CHECKLIST_ITEMS = (
    ('gate_closed', 'gate closed'),
    ('corners_checked', 'all corners checked'),
    ('waste_removed', 'all waste removed'),
)

COMPLETABLE_STATUSES = (ARRIVED, IN_PROGRESS)
PHOTO_UPLOAD_STATUSES = (CLAIMED, DELAYED, ARRIVED, IN_PROGRESS)


def _unique_ids(values, field):
    if values is None:
        return []
    if not isinstance(values, (list, tuple)) or not all(isinstance(v, str) for v in values):
        raise InvalidInput(f'{field} must be a list of photo ids', field=field)
    return list(dict.fromkeys(values))


def validate_evidence(checklist, before_photo_ids, after_photo_ids, gate_photo_id,
                      min_before=4, min_after=4):
    """
    Check the shape of completion evidence. Raises InvalidInput naming the
    first missing item; returns (before_ids, after_ids, gate_id).
    """
    before_ids = _unique_ids(before_photo_ids, 'before_photo_ids')
    after_ids = _unique_ids(after_photo_ids, 'after_photo_ids')

    if len(before_ids) < min_before:
        raise InvalidInput(
            f'At least {min_before} before photos are required ({len(before_ids)} provided)',
            missing='before_photos',
        )
    if len(after_ids) < min_after:
        raise InvalidInput(
            f'At least {min_after} after photos are required ({len(after_ids)} provided)',
            missing='after_photos',
        )

    if isinstance(gate_photo_id, (list, tuple)):
        if len(gate_photo_id) != 1:
            raise InvalidInput('Exactly one gate photo is required', missing='gate_photo')
        gate_photo_id = gate_photo_id[0]
    if not gate_photo_id or not isinstance(gate_photo_id, str):
        raise InvalidInput('Exactly one gate photo is required', missing='gate_photo')

    if not isinstance(checklist, dict):
        raise InvalidInput('checklist is required', missing='checklist')
    for key, label in CHECKLIST_ITEMS:
        if checklist.get(key) is not True:
            raise InvalidInput(f'Checklist item not confirmed: {label}', missing=key)

    referenced = before_ids + after_ids + [gate_photo_id]
    if len(set(referenced)) != len(referenced):
        raise InvalidInput('A photo cannot be used for more than one purpose')

    return before_ids, after_ids, gate_photo_id


def _load_photos(service, before_ids, after_ids, gate_id):
    """Every referenced photo must exist, belong to this job, have the right type and be unlinked."""
    wanted = {pid: PHOTO_PRE_CLEAN for pid in before_ids}
    wanted.update({pid: PHOTO_POST_CLEAN for pid in after_ids})
    wanted[gate_id] = PHOTO_GATE

    photos = ServicePhoto.query.filter(ServicePhoto.id.in_(list(wanted))).all()
    found = {p.id: p for p in photos}
    for photo_id, photo_type in wanted.items():
        photo = found.get(photo_id)
        if photo is None or photo.service_id != service.id:
            raise InvalidInput(f'Photo {photo_id} does not belong to this service', missing='photo', photo_id=photo_id)
        if photo.photo_type != photo_type:
            raise InvalidInput(
                f'Photo {photo_id} is a {photo.photo_type} photo, expected {photo_type}',
                photo_id=photo_id,
            )
        if photo.checklist_id is not None:
            raise InvalidInput(f'Photo {photo_id} is already linked to a checklist', photo_id=photo_id)
    return photos


def complete_service(identity, service_id, checklist, before_photo_ids, after_photo_ids,
                     gate_photo_id, now=None):
    """Complete a job with its evidence; nothing is persisted unless everything is valid."""
    config = current_app.config
    now = now or utcnow()

    employee = require_employee(identity)
    service = get_or_404(Service, service_id, 'Service not found')
    require_assigned(service, employee)
    if service.status not in COMPLETABLE_STATUSES:
        raise InvalidState('Service must be arrived or in progress to complete', status=service.status)

    before_ids, after_ids, gate_id = validate_evidence(
        checklist, before_photo_ids, after_photo_ids, gate_photo_id,
        min_before=config['MIN_BEFORE_PHOTOS'], min_after=config['MIN_AFTER_PHOTOS'],
    )
    photos = _load_photos(service, before_ids, after_ids, gate_id)

    expires_at = now + timedelta(days=config['PHOTO_RETENTION_DAYS'])
    try:
        with transaction('complete_service', service_id):
            record = ServiceChecklist(
                service_id=service.id,
                gate_closed=True,
                corners_checked=True,
                waste_removed=True,
                notes=checklist.get('notes'),
                completed_at=now,
            )
            db.session.add(record)
            db.session.flush()

            for photo in photos:
                photo.checklist_id = record.id
                photo.expires_at = expires_at

            won = compare_and_set(
                Service, service.id,
                {'employee_id': employee.id, 'status': COMPLETABLE_STATUSES},
                {'status': COMPLETED, 'completed_at': now},
            )
            if not won:
                raise Conflict('Service changed while completing; nothing was saved')
            AuditLog.record(
                'JOB_STATUS', 'completed', entity_type='service', entity_id=service.id,
                actor_id=identity.user_id, data={'photo_count': len(photos)},
            )
    except IntegrityError:
        raise Conflict('Service already has a completion checklist')

    db.session.refresh(service)
    logger.info('Service %s completed by employee %s', service.id, employee.id)

    run_soft_effect('distribute_payment', distribute_for_service, service)
    run_soft_effect('notify_service_completed', notify_service_completed, service)
    run_soft_effect('notify_completion_admins', notify_completion_admins, service)
    return service


def add_photo(identity, service_id, url, photo_type, latitude=None, longitude=None, taken_at=None):
    """Register an already-uploaded photo for the caller's active job."""
    employee = require_employee(identity)
    service = get_or_404(Service, service_id, 'Service not found')
    require_assigned(service, employee)

    if service.status not in PHOTO_UPLOAD_STATUSES:
        raise InvalidState('Photos can only be added to an active job', status=service.status)
    if photo_type not in PHOTO_TYPES:
        raise InvalidInput('photo_type must be one of: {}'.format(', '.join(PHOTO_TYPES)), field='photo_type')
    if not isinstance(url, str) or not url.startswith(('https://', 'http://')):
        raise InvalidInput('url must be an http(s) URL', field='url')

    photo = ServicePhoto(
        service_id=service.id,
        uploaded_by=employee.id,
        url=url,
        photo_type=photo_type,
        latitude=latitude,
        longitude=longitude,
        taken_at=taken_at or utcnow(),
    )
    with transaction('add_photo', service_id):
        db.session.add(photo)
    return photo


def list_photos(service):
    return service.photos.order_by(ServicePhoto.created_at).all()


def correct_checklist(identity, service_id, changes, now=None):
    """Admin correction of a completed job's checklist."""
    now = now or utcnow()
    service = get_or_404(Service, service_id, 'Service not found')
    record = service.checklist
    if record is None:
        raise NotFound('Service has no completion checklist')

    allowed = {key for key, _ in CHECKLIST_ITEMS} | {'notes'}
    unknown = set(changes) - allowed
    if unknown:
        raise InvalidInput('Unknown checklist fields: {}'.format(', '.join(sorted(unknown))))
    for key, _ in CHECKLIST_ITEMS:
        if key in changes and not isinstance(changes[key], bool):
            raise InvalidInput(f'{key} must be true or false', field=key)

    before = record.to_dict()
    with transaction('correct_checklist', service_id):
        for key, value in changes.items():
            setattr(record, key, value)
        record.corrected_by = identity.user_id
        record.corrected_at = now
        AuditLog.record(
            'CHECKLIST', 'corrected', entity_type='service', entity_id=service_id,
            actor_id=identity.user_id,
            data={'before': {k: before[k] for k in changes}, 'after': changes},
        )
    return record


def purge_expired_photos(now=None):
    """Drop photo references whose retention has lapsed. Returns the number removed."""
    now = now or utcnow()
    with transaction('purge_expired_photos'):
        result = db.session.execute(
            ServicePhoto.__table__.delete().where(
                ServicePhoto.expires_at.isnot(None),
                ServicePhoto.expires_at <= now,
            )
        )
        count = result.rowcount
        if count:
            AuditLog.record('PHOTO_RETENTION', 'photos_purged', data={'count': count})
    logger.info('Purged %d expired photos', count)
    return count
