"""
Gong Notifier - Email Tests
===========================
"""

import aiosmtplib
import pytest

from gong_notifier.core.errors import EmailTransportError
from gong_notifier.core.notifier.email import EmailTemplates, SmtpEmailSender
from gong_notifier.core.notifier.transitions import Transition

from fakes import make_event


class TestEmailTemplates:
    """Tests for rendered subjects and bodies."""

    def test_render_per_transition(self):
        """Failed, Broken and Fixed each have their own subject."""
        templates = EmailTemplates("http://gocd.example.com/go/")
        event = make_event(pipeline="api", counter=12, stage="test", stage_counter=2)

        assert templates.render(Transition.FAILED, event).subject == "Stage [api/12/test/2] failed"
        assert templates.render(Transition.BROKEN, event).subject == "Stage [api/12/test/2] is broken"
        assert templates.render(Transition.FIXED, event).subject == "Stage [api/12/test/2] is fixed"

    def test_stage_url(self):
        """Bodies link to the stage on the server."""
        templates = EmailTemplates("http://gocd.example.com/go/")
        event = make_event(pipeline="api", counter=12, stage="test", stage_counter=2)

        assert templates.stage_url(event) == "http://gocd.example.com/go/pipelines/api/12/test/2"
        assert templates.stage_url(event) in templates.render(Transition.FIXED, event).body

    @pytest.mark.parametrize(
        "transition",
        [Transition.BUILDING, Transition.PASSED, Transition.CANCELLED, Transition.UNKNOWN],
    )
    def test_no_template(self, transition):
        """Other transitions render nothing."""
        assert EmailTemplates("http://gocd").render(transition, make_event()) is None


class TestSmtpEmailSender:
    """Tests for SMTP delivery."""

    def test_build_message(self):
        """Headers and body are filled in."""
        sender = SmtpEmailSender("smtp.example.com", 2525, "gong@example.com")

        message = sender.build_message(["a@example.com", "b@example.com"], "Hello", "Body text")

        assert message["From"] == "gong@example.com"
        assert message["To"] == "a@example.com, b@example.com"
        assert message["Subject"] == "Hello"
        assert message.get_content().strip() == "Body text"

    async def test_send_uses_configured_relay(self, monkeypatch):
        """The message goes to the configured host, port and timeout."""
        calls = []

        async def fake_send(message, **kwargs):
            calls.append((message, kwargs))

        monkeypatch.setattr(aiosmtplib, "send", fake_send)
        sender = SmtpEmailSender("smtp.example.com", 2525, "gong@example.com", timeout=3.0)

        await sender.send(["a@example.com"], "Hello", "Body")

        assert len(calls) == 1
        message, kwargs = calls[0]
        assert kwargs == {"hostname": "smtp.example.com", "port": 2525, "timeout": 3.0}
        assert message["Subject"] == "Hello"

    @pytest.mark.parametrize(
        "error",
        [ConnectionRefusedError("refused"), aiosmtplib.SMTPException("auth failed"), TimeoutError()],
    )
    async def test_transport_errors(self, monkeypatch, error):
        """Connection, SMTP and timeout failures become EmailTransportError."""
        async def fake_send(message, **kwargs):
            raise error

        monkeypatch.setattr(aiosmtplib, "send", fake_send)
        sender = SmtpEmailSender("smtp.example.com", 25, "gong@example.com")

        with pytest.raises(EmailTransportError) as exc_info:
            await sender.send(["a@example.com"], "Hello", "Body")
        assert exc_info.value.__cause__ is error
