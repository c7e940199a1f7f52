"""
Persistence gateway used by the workflow services.

Every write goes through ``transaction()``; rows that another request may
race for are changed with ``compare_and_set``, a single conditional UPDATE
whose affected row count tells the caller whether it won.
"""
import logging
from contextlib import contextmanager

from sqlalchemy import update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from scoopify import db
from scoopify.errors import NotFound, UpstreamFailure

logger = logging.getLogger(__name__)


@contextmanager
def transaction(operation, entity_id=None):
    """
    Commit on success, roll back on any failure.

    Database availability errors become UpstreamFailure; IntegrityError is
    re-raised untouched so callers can treat unique-constraint races.
    """
    try:
        yield db.session
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise
    except (OperationalError, DBAPIError, PoolTimeoutError) as exc:
        db.session.rollback()
        logger.exception('Database failure during %s (entity=%s)', operation, entity_id)
        raise UpstreamFailure('Database unavailable, please retry', operation=operation) from exc
    except Exception:
        db.session.rollback()
        raise


def compare_and_set(model, entity_id, expected, changes):
    """
    Apply ``changes`` to one row only if it still matches ``expected``.

    ``expected`` maps column names to a value, None (IS NULL) or a tuple of
    allowed values. Returns True when exactly one row was updated.
    """
    conditions = [model.id == entity_id]
    for column, value in expected.items():
        attr = getattr(model, column)
        if value is None:
            conditions.append(attr.is_(None))
        elif isinstance(value, (tuple, list, set, frozenset)):
            conditions.append(attr.in_(list(value)))
        else:
            conditions.append(attr == value)

    stmt = (
        update(model)
        .where(*conditions)
        .values(**changes)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    return result.rowcount == 1


def get_or_404(model, entity_id, message=None):
    entity = db.session.get(model, entity_id) if entity_id else None
    if entity is None:
        raise NotFound(message or f'{model.__name__} not found')
    return entity
