"""Notification dispatcher: route one job to exactly one outgoing email.

EMAIL              : send ``html`` as-is, or ``body`` wrapped in the default layout
RESULT_REPORT      : render the grade report PDF, send it as an attachment
ATTENDANCE_REPORT  : render the attendance PDF, send it as an attachment

If rendering fails nothing is sent. Every failure is logged with the job id
and re-raised so the worker pool can mark the job failed.
"""
from __future__ import annotations

import html
import logging

from notification_service.jobs.models import (
    AttendanceReportJob,
    EmailJob,
    NotificationJob,
    ResultReportJob,
)
from notification_service.notification.email_sender import (
    Attachment,
    MailTransport,
    OutgoingMessage,
    render_email,
)
from notification_service.reports.renderer import RenderedDocument, ReportRenderer

logger = logging.getLogger(__name__)

_RESULT_BODY = (
    "<p>Dear Student,<br><br>The results for <strong>{semester}</strong> have been "
    "published.<br>Please find the detailed grade report attached.</p>"
)
_ATTENDANCE_BODY = (
    "<p>Dear Student,<br><br>The attendance report for <strong>{semester}</strong> is "
    "now available.<br>Please find your detailed attendance record attached.</p>"
)


def format_sender(name: str, address: str) -> str:
    return f'"{name}" <{address}>'


class NotificationDispatcher:
    """Send the email a :data:`NotificationJob` asks for."""

    def __init__(
        self,
        transport: MailTransport,
        renderer: ReportRenderer,
        *,
        sender_address: str,
        sender_name: str = "UniZ Campus",
        academics_sender_name: str = "UniZ Academics",
    ) -> None:
        self.transport = transport
        self.renderer = renderer
        self.general_sender = format_sender(sender_name, sender_address)
        self.academics_sender = format_sender(academics_sender_name, sender_address)

    async def dispatch(self, job: NotificationJob, job_id: str | None = None) -> None:
        try:
            if isinstance(job, EmailJob):
                await self._send_email(job)
            elif isinstance(job, ResultReportJob):
                await self._send_result_report(job)
            elif isinstance(job, AttendanceReportJob):
                await self._send_attendance_report(job)
            else:
                raise TypeError(f"Unsupported job type {type(job).__name__}")
        except Exception as exc:
            logger.error(
                "Job %s (%s) failed: %s", job_id, getattr(job, "kind", "?"), exc
            )
            raise
        logger.info("Job %s (%s) delivered", job_id, job.kind)

    # -- per kind -----------------------------------------------------------

    async def _send_email(self, job: EmailJob) -> None:
        body_html = job.html or render_email(html.escape(job.subject), f"<p>{job.body or ''}</p>")
        await self.transport.send(
            OutgoingMessage(
                from_addr=self.general_sender,
                to=job.recipient,
                subject=job.subject,
                html=body_html,
            )
        )

    async def _send_result_report(self, job: ResultReportJob) -> None:
        semester = job.payload.semester_id
        document = await self.renderer.render_result_report(job.payload)
        await self._send_report(
            job,
            subject=f"Result Declaration: {semester}",
            content=_RESULT_BODY.format(semester=html.escape(semester)),
            document=document,
        )

    async def _send_attendance_report(self, job: AttendanceReportJob) -> None:
        semester = job.payload.semester_id
        document = await self.renderer.render_attendance_report(job.payload)
        await self._send_report(
            job,
            subject=f"Attendance Report: {semester}",
            content=_ATTENDANCE_BODY.format(semester=html.escape(semester)),
            document=document,
        )

    async def _send_report(
        self,
        job: ResultReportJob | AttendanceReportJob,
        *,
        subject: str,
        content: str,
        document: RenderedDocument,
    ) -> None:
        await self.transport.send(
            OutgoingMessage(
                from_addr=self.academics_sender,
                to=job.recipient,
                subject=subject,
                html=render_email(html.escape(subject), content),
                attachments=[
                    Attachment(
                        filename=document.filename,
                        content=document.content,
                        content_type=document.content_type,
                    )
                ],
            )
        )
