import asyncio

import pytest
from fastapi_mail import MessageSchema, MessageType
from fastapi_mail.errors import ConnectionErrors

from backend.core import email


class FlakyMailer:
    def __init__(self, failures: int):
        self.failures = failures
        self.attempts = 0
        self.sent = []

    async def send_message(self, message):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConnectionErrors('SMTP server not ready')
        self.sent.append(message)


def _message() -> MessageSchema:
    return MessageSchema(
        subject='Hello',
        recipients=['donor@example.org'],
        body='<p>Hi</p>',
        subtype=MessageType.html,
    )


def test_send_with_retry_recovers_after_transient_failures(monkeypatch: pytest.MonkeyPatch) -> None:
    mailer = FlakyMailer(failures=2)
    monkeypatch.setattr(email, 'get_mailer', lambda: mailer)

    asyncio.run(email.send_with_retry(_message(), retries=2, delay_seconds=0))

    assert mailer.attempts == 3
    assert len(mailer.sent) == 1


def test_send_with_retry_gives_up_after_two_retries(monkeypatch: pytest.MonkeyPatch) -> None:
    mailer = FlakyMailer(failures=5)
    monkeypatch.setattr(email, 'get_mailer', lambda: mailer)

    with pytest.raises(ConnectionErrors):
        asyncio.run(email.send_with_retry(_message(), retries=2, delay_seconds=0))

    assert mailer.attempts == 3
    assert mailer.sent == []


def test_send_otp_email_renders_code_into_html(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = []

    async def fake_send(message, retries=None, delay_seconds=None):
        captured.append(message)

    monkeypatch.setattr(email, 'send_with_retry', fake_send)

    asyncio.run(email.send_otp_email('donor@example.org', '482913'))

    assert len(captured) == 1
    assert 'donor@example.org' in str(captured[0].recipients[0])
    assert '482913' in captured[0].body
