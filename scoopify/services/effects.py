"""Post-commit side effects."""
import logging

from scoopify import db

logger = logging.getLogger(__name__)


def run_soft_effect(name, func, *args, **kwargs):
    """
    Run a side effect after the primary write has committed.

    A failure here never undoes or fails the primary operation; it is logged
    and the effect returns None. Effects that need to be retried leave a
    durable trace (e.g. a FAILED notification row).
    """
    try:
        return func(*args, **kwargs)
    except Exception:
        db.session.rollback()
        logger.exception('Side effect %s failed', name)
        return None
