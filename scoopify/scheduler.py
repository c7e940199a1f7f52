"""
Scoopify external timer

Runs as its own process so that exactly one instance fires the periodic
operations, however many web workers are running:

    python -m scoopify.scheduler

Jobs (cron triggers in the configured TIMEZONE):
- Unlock today's jobs at JOB_UNLOCK_HOUR:00, re-checked every 15 minutes
  until the claim window closes (each run is a no-op once done)
- Create next week's visits (daily)
- Purge expired photo references (nightly)
- Process referrals (daily)
- Customer visit reminders and rating prompts (hourly, each sent once)
"""

import logging

from apscheduler.schedulers.blocking import BlockingScheduler

from scoopify import create_app
from scoopify.services.completion import purge_expired_photos
from scoopify.services.notifications import send_customer_reminders
from scoopify.services.payouts import process_referrals
from scoopify.services.scheduling import create_weekly_services
from scoopify.services.unlock import unlock_todays_jobs

logger = logging.getLogger(__name__)


def _run(app, name, operation):
    """Run one operation inside an app context; failures are logged and retried next tick."""
    with app.app_context():
        try:
            result = operation()
            logger.info('Scheduler: %s finished: %s', name, result)
        except Exception:
            logger.exception('Scheduler: %s failed', name)


def build_scheduler(app):
    config = app.config
    scheduler = BlockingScheduler(timezone=config['TIMEZONE'])
    unlock_hour = config['JOB_UNLOCK_HOUR']
    window_end = config['CLAIM_WINDOW_END_HOUR']

    scheduler.add_job(
        _run,
        'cron',
        hour='{}-{}'.format(unlock_hour, window_end - 1),
        minute='0,15,30,45',
        args=[app, 'unlock_jobs', unlock_todays_jobs],
        id='unlock_jobs',
        name="Unlock today's jobs",
        coalesce=True,
        max_instances=1,
    )

    scheduler.add_job(
        _run,
        'cron',
        hour=2,
        minute=0,
        args=[app, 'schedule_services', create_weekly_services],
        id='schedule_services',
        name='Create next week of visits',
        coalesce=True,
    )

    scheduler.add_job(
        _run,
        'cron',
        hour=3,
        minute=0,
        args=[app, 'purge_photos', purge_expired_photos],
        id='purge_photos',
        name='Purge expired photos',
        coalesce=True,
    )

    scheduler.add_job(
        _run,
        'cron',
        hour=6,
        minute=0,
        args=[app, 'process_referrals', process_referrals],
        id='process_referrals',
        name='Process referrals',
        coalesce=True,
    )

    scheduler.add_job(
        _run,
        'cron',
        minute=0,
        args=[app, 'customer_notifications', send_customer_reminders],
        id='customer_notifications',
        name='Customer reminders and rating prompts',
        coalesce=True,
    )

    return scheduler


def main():
    app = create_app()
    scheduler = build_scheduler(app)
    logger.info('Scheduler started with %d jobs', len(scheduler.get_jobs()))
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info('Scheduler stopped')


if __name__ == '__main__':
    main()
