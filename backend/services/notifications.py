"""Appointment confirmation emails.

Sending is best-effort: ``send_confirmation`` never raises, so a mail outage
cannot undo a booking that has already been stored.
"""

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from backend.core import config
from backend.models.appointment import Appointment
from backend.models.user import User

logger = logging.getLogger(__name__)


def build_confirmation_message(user: User, appointment: Appointment) -> MIMEMultipart:
    starts_at = appointment.date
    msg = MIMEMultipart('alternative')
    msg['Subject'] = 'Your astrology consultation is confirmed'
    msg['From'] = config.EMAIL_FROM_ADDRESS
    msg['To'] = user.email

    text_body = (
        f'Hello {user.name},\n\n'
        f'Your consultation is confirmed for {starts_at:%A, %B %d, %Y} at {starts_at:%I:%M %p} '
        f'until {appointment.end_time:%I:%M %p}.\n\n'
        'If you can no longer attend, please cancel from your appointments page.\n'
    )
    html_body = (
        f'<p>Hello {user.name},</p>'
        f'<p>Your consultation is confirmed for <strong>{starts_at:%A, %B %d, %Y}</strong> '
        f'at <strong>{starts_at:%I:%M %p}</strong> until {appointment.end_time:%I:%M %p}.</p>'
        '<p>If you can no longer attend, please cancel from your appointments page.</p>'
    )
    msg.attach(MIMEText(text_body, 'plain'))
    msg.attach(MIMEText(html_body, 'html'))
    return msg


def _send_via_smtp(msg: MIMEMultipart, recipient: str) -> None:
    if config.SMTP_PORT == 465:
        context = ssl.create_default_context()
        server = smtplib.SMTP_SSL(config.SMTP_HOST, config.SMTP_PORT, context=context, timeout=30)
    else:
        server = smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=30)
        if config.SMTP_USE_TLS:
            server.starttls(context=ssl.create_default_context())

    try:
        if config.SMTP_USERNAME:
            server.login(config.SMTP_USERNAME, config.SMTP_PASSWORD)
        sender = config.EMAIL_FROM_ADDRESS.split('<')[-1].rstrip('>')
        server.sendmail(sender, [recipient], msg.as_string())
    finally:
        server.quit()


def send_confirmation(user: User, appointment: Appointment) -> bool:
    if not user.email:
        logger.warning('User %s has no email; skipping confirmation for appointment %s', user.id, appointment.id)
        return False

    if not config.SMTP_HOST:
        logger.info(
            'SMTP not configured; confirmation for appointment %s to %s not sent',
            appointment.id,
            user.email,
        )
        return False

    try:
        _send_via_smtp(build_confirmation_message(user, appointment), user.email)
    except (smtplib.SMTPException, OSError):
        logger.exception('Failed to send confirmation for appointment %s to %s', appointment.id, user.email)
        return False

    logger.info('Sent confirmation for appointment %s to %s', appointment.id, user.email)
    return True
