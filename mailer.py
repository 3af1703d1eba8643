import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app

from errors import EmailError

logger = logging.getLogger(__name__)

RESET_HTML = """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2>Password Reset Request</h2>
  <p>You are receiving this email because you (or someone else) requested a password reset for your account.</p>
  <p><a href="{url}">Reset Password</a></p>
  <p>If you did not request this, please ignore this email and your password will remain unchanged.</p>
  <p>This link will expire in {ttl} minutes.</p>
</div>
"""


def email_configured():
    return bool(current_app.config.get('EMAIL_HOST'))


def absolute_reset_url(reset_url):
    if reset_url.startswith('http'):
        return reset_url
    return current_app.config['FRONTEND_URL'].rstrip('/') + reset_url


def send_email(email, subject, message, reset_url=None):
    """
    Send a transactional email. Raises EmailError when the transport is not
    configured or the SMTP exchange fails.
    """
    config = current_app.config
    if not email_configured():
        raise EmailError("Email transport is not configured")

    msg = MIMEMultipart('alternative')
    msg['Subject'] = subject
    msg['From'] = f"{config['FROM_NAME']} <{config['FROM_EMAIL']}>"
    msg['To'] = email
    msg.attach(MIMEText(message, 'plain'))
    if reset_url:
        url = absolute_reset_url(reset_url)
        msg.attach(MIMEText(RESET_HTML.format(url=url, ttl=config['RESET_TOKEN_TTL_MINUTES']), 'html'))

    host, port = config['EMAIL_HOST'], int(config['EMAIL_PORT'])
    try:
        if port == 465:
            server = smtplib.SMTP_SSL(host, port, timeout=30)
        else:
            server = smtplib.SMTP(host, port, timeout=30)
        with server:
            if port != 465:
                server.starttls()
            if config.get('EMAIL_USERNAME'):
                server.login(config['EMAIL_USERNAME'], config['EMAIL_PASSWORD'])
            server.sendmail(config['FROM_EMAIL'], [email], msg.as_string())
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Email to %s failed: %s", email, e)
        raise EmailError(f"Email could not be sent: {e}") from e

    logger.info("Email sent to %s: %s", email, subject)
