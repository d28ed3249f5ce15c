"""Tests for notification_service/notification/dispatcher.py.

The transport is an AsyncMock; report jobs run through the real renderer
with a mocked browser.
"""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from notification_service.core.errors import BrowserLaunchError, SendError
from notification_service.jobs.models import parse_job
from notification_service.notification.dispatcher import NotificationDispatcher
from notification_service.notification.email_sender import render_email
from notification_service.reports.render_engine import RenderEngine
from notification_service.reports.renderer import ReportRenderer


# ---------------------------------------------------------------------------
# Fixtures / helpers
# ---------------------------------------------------------------------------

def _dispatcher(stack, transport=None) -> tuple[NotificationDispatcher, AsyncMock]:
    transport = transport or MagicMock()
    if not isinstance(transport.send, AsyncMock):
        transport.send = AsyncMock()
    engine = RenderEngine(
        executable_override="/usr/bin/fake-chrome",
        retry_delay_s=0,
        playwright_factory=stack.factory,
    )
    dispatcher = NotificationDispatcher(
        transport,
        ReportRenderer(engine),
        sender_address="noreply@uniz.test",
    )
    return dispatcher, transport.send


def _sent(send_mock: AsyncMock):
    return send_mock.call_args.args[0]


RESULT_JOB = {
    "type": "RESULTS",
    "recipient": "student@example.com",
    "name": "Ravi Kumar",
    "username": "O190001",
    "branch": "CSE",
    "semesterId": "E2S1",
    "campus": "Ongole",
    "grades": [
        {"subject": {"name": "Compilers", "code": "CS2101", "credits": 4}, "grade": 9},
        {"subject": {"name": "Networks", "code": "CS2102", "credits": 3}, "grade": 7},
    ],
}

ATTENDANCE_JOB = {
    "type": "ATTENDANCE_REPORT",
    "recipient": "student@example.com",
    "name": "Ravi Kumar",
    "username": "O190001",
    "branch": "CSE",
    "semesterId": "E2S1",
    "campus": "Ongole",
    "records": [
        {"subject": {"name": "Compilers", "code": "CS2101"}, "attendedClasses": 45, "totalClasses": 60},
    ],
}


# ===========================================================================
# EMAIL
# ===========================================================================

class TestEmailJobs:
    def test_body_wrapped_in_default_template(self, browser_stack):
        dispatcher, send = _dispatcher(browser_stack)
        job = parse_job({"type": "EMAIL", "recipient": "a@b.com", "subject": "Welcome", "body": "Hello"})

        asyncio.run(dispatcher.dispatch(job, job_id="1"))

        message = _sent(send)
        assert message.html == render_email("Welcome", "<p>Hello</p>")
        assert message.to == "a@b.com"
        assert message.subject == "Welcome"
        assert message.from_addr == '"UniZ Campus" <noreply@uniz.test>'
        assert message.attachments == []

    def test_explicit_html_sent_verbatim(self, browser_stack):
        dispatcher, send = _dispatcher(browser_stack)
        job = parse_job(
            {"type": "EMAIL", "recipient": "a@b.com", "subject": "Hi", "body": "x", "html": "<b>custom</b>"}
        )

        asyncio.run(dispatcher.dispatch(job))

        assert _sent(send).html == "<b>custom</b>"

    def test_email_jobs_never_launch_browser(self, browser_stack):
        dispatcher, _ = _dispatcher(browser_stack)
        job = parse_job({"type": "EMAIL", "recipient": "a@b.com", "subject": "Hi", "body": "x"})

        asyncio.run(dispatcher.dispatch(job))

        browser_stack.starter.start.assert_not_called()


# ===========================================================================
# Reports
# ===========================================================================

class TestReportJobs:
    def test_result_report_attached(self, browser_stack):
        dispatcher, send = _dispatcher(browser_stack)

        asyncio.run(dispatcher.dispatch(parse_job(RESULT_JOB), job_id="7"))

        send.assert_awaited_once()
        message = _sent(send)
        assert message.subject == "Result Declaration: E2S1"
        assert message.from_addr == '"UniZ Academics" <noreply@uniz.test>'
        assert "have been published" in message.html
        assert len(message.attachments) == 1
        attachment = message.attachments[0]
        assert attachment.filename == "ACADEMIC_REPORT_O190001_E2S1.pdf"
        assert attachment.content == b"%PDF-1.4 fake"
        assert attachment.content_type == "application/pdf"

    def test_attendance_report_attached(self, browser_stack):
        dispatcher, send = _dispatcher(browser_stack)

        asyncio.run(dispatcher.dispatch(parse_job(ATTENDANCE_JOB), job_id="8"))

        message = _sent(send)
        assert message.subject == "Attendance Report: E2S1"
        assert "detailed attendance record attached" in message.html
        assert message.attachments[0].filename == "O190001_Attendance_E2S1.pdf"

    def test_render_failure_sends_nothing(self, browser_stack):
        browser_stack.launch.side_effect = RuntimeError("Browser closed unexpectedly")
        dispatcher, send = _dispatcher(browser_stack)

        with pytest.raises(BrowserLaunchError):
            asyncio.run(dispatcher.dispatch(parse_job(RESULT_JOB), job_id="9"))

        send.assert_not_awaited()

    def test_send_failure_reraised_after_browser_released(self, browser_stack):
        transport = MagicMock()
        transport.send = AsyncMock(side_effect=SendError("550 mailbox unavailable"))
        dispatcher, _ = _dispatcher(browser_stack, transport)

        with pytest.raises(SendError):
            asyncio.run(dispatcher.dispatch(parse_job(ATTENDANCE_JOB), job_id="10"))

        browser_stack.browser.close.assert_awaited_once()

    def test_failure_logged_with_job_id(self, browser_stack, caplog):
        browser_stack.page.pdf.side_effect = RuntimeError("Protocol error")
        dispatcher, _ = _dispatcher(browser_stack)

        with caplog.at_level("ERROR"):
            with pytest.raises(Exception):
                asyncio.run(dispatcher.dispatch(parse_job(RESULT_JOB), job_id="job-42"))

        assert "job-42" in caplog.text
        assert "RESULT_REPORT" in caplog.text
        assert "Protocol error" in caplog.text


class TestUnknownJobs:
    def test_unsupported_object_raises_type_error(self, browser_stack):
        dispatcher, send = _dispatcher(browser_stack)

        with pytest.raises(TypeError):
            asyncio.run(dispatcher.dispatch(object()))  # type: ignore[arg-type]

        send.assert_not_awaited()
