"""
HTML email templates for Scoopify Club.

Every public function returns a complete HTML string ready for sending via
``scoopify.services.email.send_email``.

Design tokens:
  - Primary accent: #15803D (green)
  - Background:     #f7faf7
  - Card:           #ffffff
  - Text dark:      #111827
  - Text muted:     #4b5563 / #6b7280

All styles are inlined for email-client compatibility. No external
resources (fonts, images, scripts) are referenced.
"""

from html import escape as _esc


# ---------------------------------------------------------------------------
# Shared layout helpers
# ---------------------------------------------------------------------------

def _header():
    """Scoopify branded header block."""
    return (
        '<div style="text-align:center;margin-bottom:30px;">'
        '<h1 style="color:#15803D;font-size:28px;margin:0;font-family:Arial,sans-serif;font-weight:700;">Scoopify Club</h1>'
        '<p style="color:#6b7280;margin:5px 0 0;font-size:14px;">Weekly Yard Cleanup</p>'
        '</div>'
    )


def _footer():
    return (
        '<div style="text-align:center;margin-top:30px;padding-top:20px;border-top:1px solid #e5e7eb;color:#9ca3af;font-size:12px;line-height:1.6;">'
        '<p style="margin:0;">Scoopify Club &middot; support@scoopifyclub.com</p>'
        '</div>'
    )


def _wrap(body_html):
    """Wrap inner content in the common email shell (background, card, header, footer)."""
    return (
        '<!DOCTYPE html>'
        '<html lang="en"><head><meta charset="utf-8">'
        '<meta name="viewport" content="width=device-width,initial-scale=1.0">'
        '<title>Scoopify Club</title></head>'
        '<body style="margin:0;padding:0;background-color:#f3f4f6;">'
        '<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto;background:#f7faf7;padding:40px 20px;">'
        + _header()
        + '<div style="background:#ffffff;border-radius:12px;padding:30px;box-shadow:0 1px 3px rgba(0,0,0,0.1);">'
        + body_html
        + '</div>'
        + _footer()
        + '</div></body></html>'
    )


def _detail_table(rows):
    """Green-tinted detail box. *rows* is a list of (label, value) tuples."""
    inner = ''
    for label, value in rows:
        inner += (
            '<tr>'
            '<td style="padding:8px 0;color:#6b7280;font-size:14px;">{label}</td>'
            '<td style="padding:8px 0;color:#111827;font-size:14px;font-weight:600;text-align:right;">{value}</td>'
            '</tr>'
        ).format(label=_esc(str(label)), value=_esc(str(value)))
    return (
        '<div style="background:#F0FDF4;border:1px solid #BBF7D0;border-radius:8px;padding:20px;margin:20px 0;">'
        '<table style="width:100%;border-collapse:collapse;">'
        + inner
        + '</table></div>'
    )


def _greeting(title, name):
    return (
        '<h2 style="color:#111827;margin:0 0 12px;font-size:22px;">{title}</h2>'
        '<p style="color:#4b5563;line-height:1.6;">Hi {name},</p>'
    ).format(title=_esc(title), name=_esc(str(name)) if name else 'there')


def _paragraph(text):
    return '<p style="color:#4b5563;line-height:1.6;">{}</p>'.format(_esc(text))


# ---------------------------------------------------------------------------
# Service lifecycle
# ---------------------------------------------------------------------------

def service_claimed_html(customer_name, worker_name, arrival_deadline):
    """Return HTML telling the customer a worker has claimed today's visit."""
    body = _greeting('Your Scooper Is Assigned!', customer_name)
    body += _paragraph('A scooper has claimed your visit for today.')
    body += _detail_table([
        ('Scooper', worker_name or 'Your scooper'),
        ('Arriving by', arrival_deadline or 'Today'),
    ])
    return _wrap(body)


def service_delayed_html(customer_name, reason):
    """Return HTML for a delayed-visit notice."""
    body = _greeting('Your Visit Is Delayed', customer_name)
    body += _paragraph('Today\'s visit is running late. We will be there as soon as we can.')
    body += _detail_table([('Reason', reason or 'Not specified')])
    return _wrap(body)


def service_cancelled_html(recipient_name, scheduled, reason):
    """Return HTML for a cancelled-visit notice."""
    body = _greeting('Visit Cancelled', recipient_name)
    body += _detail_table([
        ('Scheduled', scheduled or 'N/A'),
        ('Reason', reason or 'Not specified'),
    ])
    return _wrap(body)


def service_completed_html(customer_name, service_id, total):
    """Return HTML for a visit-completed email with a rating prompt."""
    short_id = str(service_id)[:8] if service_id else 'N/A'
    body = _greeting('Your Yard Is Clean!', customer_name)
    body += _paragraph('Your scooper has finished today\'s visit. Before and after photos are available in your dashboard.')
    body += _detail_table([
        ('Visit', '#{}'.format(short_id)),
        ('Total', total),
    ])
    body += _paragraph('Let us know how we did by rating your visit.')
    return _wrap(body)


def rating_received_html(recipient_name, worker_name, rating, feedback):
    """Return HTML for a new-rating notice (sent to admins and the worker)."""
    body = _greeting('New Service Rating', recipient_name)
    body += _detail_table([
        ('Scooper', worker_name or 'N/A'),
        ('Rating', '{} / 5'.format(rating)),
        ('Feedback', feedback or 'No comment'),
    ])
    return _wrap(body)


# ---------------------------------------------------------------------------
# Customer reminders
# ---------------------------------------------------------------------------

def service_reminder_html(customer_name, scheduled, gate_code):
    """Return HTML reminding the customer of tomorrow's visit."""
    body = _greeting('Your Visit Is Tomorrow', customer_name)
    body += _paragraph('Please make sure your gate is unlocked or the gate code is current, and pets are inside.')
    body += _detail_table([
        ('Scheduled', scheduled or 'Tomorrow'),
        ('Gate code', gate_code or 'None on file'),
    ])
    return _wrap(body)


def rating_prompt_html(customer_name, worker_name):
    """Return HTML asking the customer to rate yesterday's visit."""
    body = _greeting('How Did We Do?', customer_name)
    body += _paragraph('{} cleaned your yard yesterday. A quick rating helps us keep every visit spotless.'.format(
        worker_name or 'Your scooper'))
    return _wrap(body)
