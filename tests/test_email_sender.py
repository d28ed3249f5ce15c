"""Tests for notification_service/notification/email_sender.py.

All SMTP calls are mocked: no real server needed.
"""
from __future__ import annotations

import asyncio
import email as email_mod
import smtplib
from unittest.mock import MagicMock, patch

import pytest

from notification_service.core.errors import SendError
from notification_service.notification.email_sender import (
    Attachment,
    OutgoingMessage,
    SmtpMailTransport,
    build_mime,
    render_email,
)


# ---------------------------------------------------------------------------
# Fixtures / helpers
# ---------------------------------------------------------------------------

def _message(**overrides) -> OutgoingMessage:
    fields = {
        "from_addr": '"UniZ Campus" <noreply@uniz.test>',
        "to": "student@example.com",
        "subject": "Result Declaration: E2S1",
        "html": "<p>Hello</p>",
    }
    fields.update(overrides)
    return OutgoingMessage(**fields)


def _mock_server(mock_smtp_cls) -> MagicMock:
    mock_server = MagicMock()
    mock_smtp_cls.return_value.__enter__ = MagicMock(return_value=mock_server)
    mock_smtp_cls.return_value.__exit__ = MagicMock(return_value=False)
    return mock_server


# ===========================================================================
# render_email / build_mime
# ===========================================================================

class TestRenderEmail:
    def test_wraps_title_and_content(self):
        body = render_email("Welcome", "<p>Hello</p>")
        assert "<h2 style=\"color: #1f2937; margin-top: 0;\">Welcome</h2>" in body
        assert "<p>Hello</p>" in body
        assert "Please do not reply to this email." in body


class TestBuildMime:
    def test_html_body_and_pdf_attachment(self):
        msg = build_mime(
            _message(
                attachments=[Attachment("report.pdf", b"%PDF-1.4", "application/pdf")]
            )
        )
        parsed = email_mod.message_from_string(msg.as_string())

        assert parsed["Subject"] == "Result Declaration: E2S1"
        parts = parsed.get_payload()
        assert len(parts) == 2
        html_part = parts[0].get_payload(0)
        assert html_part.get_content_type() == "text/html"
        assert parts[1].get_content_type() == "application/pdf"
        assert parts[1].get_filename() == "report.pdf"
        assert parts[1].get_payload(decode=True) == b"%PDF-1.4"

    @pytest.mark.parametrize("filename", ['ACADEMIC_REPORT_O19"01_E2S1.pdf', "Rávi_Attendance_E2S1.pdf"])
    def test_attachment_filename_survives_quotes_and_non_ascii(self, filename):
        msg = build_mime(_message(attachments=[Attachment(filename, b"%PDF-1.4", "application/pdf")]))
        parsed = email_mod.message_from_string(msg.as_string())

        assert parsed.get_payload()[1].get_filename() == filename


# ===========================================================================
# SmtpMailTransport
# ===========================================================================

class TestSmtpMailTransport:
    @patch("notification_service.notification.email_sender.smtplib.SMTP")
    def test_send_uses_starttls_and_login(self, mock_smtp_cls):
        mock_server = _mock_server(mock_smtp_cls)
        transport = SmtpMailTransport("smtp.test", 587, username="bot", password="pw")

        asyncio.run(transport.send(_message()))

        mock_smtp_cls.assert_called_once_with("smtp.test", 587, timeout=30.0)
        mock_server.starttls.assert_called_once()
        mock_server.login.assert_called_once_with("bot", "pw")
        args = mock_server.sendmail.call_args.args
        assert args[1] == ["student@example.com"]

    @patch("notification_service.notification.email_sender.smtplib.SMTP")
    def test_no_login_without_username(self, mock_smtp_cls):
        mock_server = _mock_server(mock_smtp_cls)
        transport = SmtpMailTransport("localhost", 25, use_tls=False)

        asyncio.run(transport.send(_message()))

        mock_server.starttls.assert_not_called()
        mock_server.login.assert_not_called()
        mock_server.sendmail.assert_called_once()

    @patch("notification_service.notification.email_sender.smtplib.SMTP")
    def test_smtp_error_raises_send_error(self, mock_smtp_cls):
        mock_server = _mock_server(mock_smtp_cls)
        mock_server.sendmail.side_effect = smtplib.SMTPRecipientsRefused({})
        transport = SmtpMailTransport("localhost")

        with pytest.raises(SendError) as excinfo:
            asyncio.run(transport.send(_message()))

        assert isinstance(excinfo.value.__cause__, smtplib.SMTPException)
        assert mock_server.sendmail.call_count == 1

    @patch("notification_service.notification.email_sender.smtplib.SMTP")
    def test_connection_error_raises_send_error(self, mock_smtp_cls):
        mock_smtp_cls.side_effect = ConnectionRefusedError("refused")
        transport = SmtpMailTransport("localhost")

        with pytest.raises(SendError, match="refused"):
            asyncio.run(transport.send(_message()))

    @patch("notification_service.notification.email_sender.smtplib.SMTP")
    def test_recipient_not_in_logs(self, mock_smtp_cls, caplog):
        _mock_server(mock_smtp_cls)
        transport = SmtpMailTransport("localhost")

        with caplog.at_level("DEBUG"):
            asyncio.run(transport.send(_message(to="secret.address@example.com")))

        assert "secret.address@example.com" not in caplog.text
