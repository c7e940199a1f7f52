"""
Email delivery: Resend (preferred) or SendGrid (fallback).

Unlike fire-and-forget senders, ``send_email`` raises EmailDeliveryError so
the caller can record the failure on the notification row.
"""
import logging

from flask import current_app

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """The configured provider rejected or failed to accept the message."""


def email_configured():
    return bool(current_app.config.get('RESEND_API_KEY') or current_app.config.get('SENDGRID_API_KEY'))


def send_email(to_email, subject, html_content):
    """Send an email synchronously.

    Returns the provider message id / status, or None in dev mode (no
    provider configured; the message is only logged).
    """
    config = current_app.config

    # --- Resend (preferred) ---
    if config.get('RESEND_API_KEY'):
        return _send_email_resend(config, to_email, subject, html_content)

    # --- SendGrid (fallback) ---
    if config.get('SENDGRID_API_KEY'):
        return _send_email_sendgrid(config, to_email, subject, html_content)

    # --- Dev mode: no email provider configured ---
    logger.info('[DEV] Email to %s: %s', to_email, subject)
    return None


def _send_email_resend(config, to_email, subject, html_content):
    """Send via the Resend API. Returns the response id."""
    import resend
    resend.api_key = config['RESEND_API_KEY']

    params = {
        'from': '{} <{}>'.format(config['EMAIL_FROM_NAME'], config['EMAIL_FROM']),
        'to': [to_email],
        'subject': subject,
        'html': html_content,
    }
    try:
        response = resend.Emails.send(params)
    except Exception as exc:
        logger.exception('Resend email failed for %s', to_email)
        raise EmailDeliveryError(str(exc)) from exc
    logger.info('Email sent via Resend to %s (id: %s)', to_email, response.get('id'))
    return response.get('id')


def _send_email_sendgrid(config, to_email, subject, html_content):
    """Send via SendGrid. Returns status code."""
    from sendgrid import SendGridAPIClient
    from sendgrid.helpers.mail import Mail

    message = Mail(
        from_email=(config['EMAIL_FROM'], config['EMAIL_FROM_NAME']),
        to_emails=to_email,
        subject=subject,
        html_content=html_content,
    )
    try:
        sg = SendGridAPIClient(config['SENDGRID_API_KEY'])
        response = sg.send(message)
    except Exception as exc:
        logger.exception('SendGrid email failed for %s', to_email)
        raise EmailDeliveryError(str(exc)) from exc
    if response.status_code >= 400:
        raise EmailDeliveryError('SendGrid returned {}'.format(response.status_code))
    logger.info('Email sent via SendGrid to %s (status: %s)', to_email, response.status_code)
    return response.status_code
