"""Outbound email tests. No SMTP server is contacted."""

import pytest

from signup.config import settings
from signup.services import notifier


@pytest.mark.unit
class TestRender:

    def test_verification_link(self, monkeypatch):
        monkeypatch.setattr(settings, "frontend_base_url", "https://signup.test/")
        notice = notifier.email_verification("a@example.com", "Ann", "tok123")

        assert notice.context["verification_link"] == "https://signup.test/verify-email?token=tok123"
        subject, html = notifier.render(notice)
        assert subject == "Verify your email address"
        assert "tok123" in html

    def test_payment_confirmation_amount(self):
        notice = notifier.payment_confirmation("a@example.com", "Ann Lee", 179.0, "WO-1-ABC123")
        subject, html = notifier.render(notice)
        assert "WO-1-ABC123" in subject
        assert "$179.00" in html

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            notifier.render(notifier.Notification("sms", "a@example.com"))


@pytest.mark.unit
class TestDispatch:

    def test_skips_without_smtp(self, monkeypatch):
        sent = []
        monkeypatch.setattr(settings, "smtp_host", "")
        monkeypatch.setattr(notifier, "_send_email", lambda *a: sent.append(a))

        notifier.dispatch(notifier.welcome("a@example.com", "Ann"))
        assert sent == []

    def test_delivery_failure_is_swallowed(self, monkeypatch):
        def boom(*args):
            raise OSError("connection refused")

        monkeypatch.setattr(settings, "smtp_host", "smtp.test")
        monkeypatch.setattr(notifier, "_send_email", boom)

        notifier.dispatch(notifier.welcome("a@example.com", "Ann"))

    def test_sends_rendered_message(self, monkeypatch):
        sent = []
        monkeypatch.setattr(settings, "smtp_host", "smtp.test")
        monkeypatch.setattr(notifier, "_send_email", lambda *a: sent.append(a))

        notifier.dispatch(notifier.welcome("a@example.com", "Ann"))
        assert sent == [("a@example.com", "Welcome aboard", notifier.render(
            notifier.welcome("a@example.com", "Ann"))[1])]
