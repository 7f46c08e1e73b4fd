import asyncio
import logging

from fastapi_mail import ConnectionConfig, FastMail, MessageSchema, MessageType
from fastapi_mail.errors import ConnectionErrors
from jinja2 import Template

from backend.core import config

logger = logging.getLogger(__name__)

_LAYOUT = Template("""<!DOCTYPE html>
<html lang="en">
<body style="font-family: Arial, sans-serif; background: #f9fafb; padding: 24px;">
    <div style="max-width: 560px; margin: 0 auto; background: #ffffff; border-radius: 10px; overflow: hidden;">
        <div style="background: #047857; color: #ffffff; text-align: center; padding: 20px;">
            <h1 style="margin: 0; font-size: 24px;">Byte2Bite</h1>
        </div>
        <div style="padding: 24px; text-align: center; color: #374151;">
            <h2 style="color: #047857;">{{ heading }}</h2>
            <p>{{ intro }}</p>
            {% if code %}<div style="display: inline-block; padding: 14px 28px; font-size: 28px; font-weight: bold; letter-spacing: 6px; color: #ffffff; background: #047857; border-radius: 6px;">{{ code }}</div>{% endif %}
            {% if link %}<p><a href="{{ link }}" style="display: inline-block; padding: 10px 20px; color: #ffffff; background: #047857; border-radius: 6px; text-decoration: none;">{{ link_label }}</a></p>{% endif %}
            {% if footer %}<p style="font-size: 14px; color: #6b7280;">{{ footer }}</p>{% endif %}
        </div>
    </div>
</body>
</html>
""")

_mailer: FastMail | None = None


def get_connection_config() -> ConnectionConfig:
    return ConnectionConfig(
        MAIL_USERNAME=config.MAIL_USERNAME,
        MAIL_PASSWORD=config.MAIL_PASSWORD,
        MAIL_FROM=config.MAIL_FROM,
        MAIL_FROM_NAME=config.MAIL_FROM_NAME,
        MAIL_PORT=config.MAIL_PORT,
        MAIL_SERVER=config.MAIL_SERVER,
        MAIL_STARTTLS=config.MAIL_STARTTLS,
        MAIL_SSL_TLS=config.MAIL_SSL_TLS,
        USE_CREDENTIALS=bool(config.MAIL_USERNAME),
        SUPPRESS_SEND=1 if config.MAIL_SUPPRESS_SEND else 0,
    )


def get_mailer() -> FastMail:
    global _mailer
    if _mailer is None:
        _mailer = FastMail(get_connection_config())
    return _mailer


def render(heading: str, intro: str, **context) -> str:
    return _LAYOUT.render(heading=heading, intro=intro, **context)


async def send_with_retry(
    message: MessageSchema,
    retries: int | None = None,
    delay_seconds: float | None = None,
) -> None:
    """Send ``message``, retrying SMTP connection failures a fixed number of times."""
    max_retries = config.MAIL_SEND_RETRIES if retries is None else retries
    delay = config.MAIL_RETRY_DELAY_SECONDS if delay_seconds is None else delay_seconds

    attempt = 0
    while True:
        try:
            await get_mailer().send_message(message)
            return
        except ConnectionErrors:
            if attempt >= max_retries:
                logger.exception('Mail delivery to %s failed after %d retries', message.recipients, attempt)
                raise
            attempt += 1
            logger.warning(
                'Mail server unavailable. Retrying in %ss (attempt %d/%d)',
                delay,
                attempt,
                max_retries,
            )
            await asyncio.sleep(delay)


async def send_otp_email(email: str, code: str) -> None:
    message = MessageSchema(
        subject='Your Byte2Bite verification code',
        recipients=[email],
        body=render(
            'Verify your email',
            'Use the code below to verify your Byte2Bite account.',
            code=code,
            footer=f'The code expires in {config.OTP_EXPIRES_MINUTES} minutes. '
                   "If you didn't request it, you can ignore this email.",
        ),
        subtype=MessageType.html,
    )
    await send_with_retry(message)


async def send_password_reset_email(email: str, link: str) -> None:
    message = MessageSchema(
        subject='Reset your Byte2Bite password',
        recipients=[email],
        body=render(
            'Password reset',
            'We received a request to reset your password.',
            link=link,
            link_label='Reset password',
            footer=f'The link expires in {config.PASSWORD_RESET_EXPIRES_MINUTES} minutes.',
        ),
        subtype=MessageType.html,
    )
    await send_with_retry(message)


async def send_notification_email(email: str, title: str, body: str) -> None:
    message = MessageSchema(
        subject=f'Byte2Bite: {title}',
        recipients=[email],
        body=render(title, body),
        subtype=MessageType.html,
    )
    await send_with_retry(message)
