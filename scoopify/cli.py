"""Flask CLI commands: ``flask unlock-jobs`` etc. call the same operations as the timer."""
import click

from scoopify.services.completion import purge_expired_photos
from scoopify.services.notifications import send_customer_reminders
from scoopify.services.payouts import payout_pending_earnings, process_referrals
from scoopify.services.scheduling import create_weekly_services
from scoopify.services.unlock import unlock_todays_jobs


def register_commands(app):
    from scoopify import db

    @app.cli.command('create-db')
    def cli_create_db():
        """Create all tables."""
        db.create_all()
        click.echo('Tables created.')

    @app.cli.command('unlock-jobs')
    def cli_unlock_jobs():
        """Unlock today's jobs (no-op outside the unlock window)."""
        result = unlock_todays_jobs()
        if result.skipped:
            click.echo('Skipped: {}'.format(result.reason))
        else:
            click.echo('Unlocked {} jobs.'.format(result.unlocked))

    @app.cli.command('schedule-services')
    def cli_schedule_services():
        """Create next week's visits for active subscribers."""
        click.echo('Created {} services.'.format(create_weekly_services()))

    @app.cli.command('purge-photos')
    def cli_purge_photos():
        """Remove photo references past their retention period."""
        click.echo('Purged {} photos.'.format(purge_expired_photos()))

    @app.cli.command('process-referrals')
    def cli_process_referrals():
        """Advance referrals and pay referral shares."""
        click.echo(process_referrals())

    @app.cli.command('customer-notifications')
    def cli_customer_notifications():
        """Send visit reminders and rating prompts not sent yet."""
        click.echo(send_customer_reminders())

    @app.cli.command('payout-earnings')
    @click.option('--employee-id', default=None, help='Only pay this worker.')
    def cli_payout_earnings(employee_id):
        """Transfer pending earnings to Stripe Connect accounts."""
        result = payout_pending_earnings(employee_id=employee_id)
        click.echo('Paid {}, failed {}, skipped {}.'.format(
            len(result.paid), len(result.failed), len(result.skipped)))
