"""Report renderer: payload to PDF bytes.

compose → markup → launch browser → export PDF → release browser. The
browser is scoped with :meth:`RenderEngine.session`, so it is closed whether
the export succeeds or raises. Errors are never suppressed: a report that
cannot be produced must fail the job instead of sending a bare email.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from notification_service.core.settings import DEFAULT_LOGO_URL
from notification_service.jobs.models import AttendancePayload, ResultPayload
from notification_service.reports.composer import (
    compose_attendance_report,
    compose_result_report,
)
from notification_service.reports.markup import render_attendance_html, render_result_html
from notification_service.reports.render_engine import (
    DEFAULT_LAUNCH_ATTEMPTS,
    PdfOptions,
    RenderEngine,
)

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


@dataclass(frozen=True)
class RenderedDocument:
    content: bytes
    filename: str
    content_type: str = PDF_CONTENT_TYPE


def result_report_filename(username: str, semester_id: str) -> str:
    return f"ACADEMIC_REPORT_{username}_{semester_id}.pdf"


def attendance_report_filename(username: str, semester_id: str) -> str:
    return f"{username}_Attendance_{semester_id}.pdf"


class ReportRenderer:
    """Turn report payloads into :class:`RenderedDocument` PDFs."""

    def __init__(
        self,
        engine: RenderEngine,
        *,
        logo_url: str = DEFAULT_LOGO_URL,
        launch_attempts: int = DEFAULT_LAUNCH_ATTEMPTS,
        pdf_options: PdfOptions | None = None,
    ) -> None:
        self.engine = engine
        self.logo_url = logo_url
        self.launch_attempts = launch_attempts
        self.pdf_options = pdf_options or PdfOptions()

    async def _to_pdf(self, html: str) -> bytes:
        async with self.engine.session(max_attempts=self.launch_attempts) as handle:
            return await self.engine.render(handle, html, self.pdf_options)

    async def render_result_report(self, payload: ResultPayload) -> RenderedDocument:
        report = compose_result_report(payload)
        html = render_result_html(report, payload, logo_url=self.logo_url)
        content = await self._to_pdf(html)
        logger.info(
            "Rendered result report (%d subjects, %d bytes)", len(report.rows), len(content)
        )
        return RenderedDocument(
            content=content,
            filename=result_report_filename(payload.username, payload.semester_id),
        )

    async def render_attendance_report(self, payload: AttendancePayload) -> RenderedDocument:
        report = compose_attendance_report(payload)
        html = render_attendance_html(report, payload, logo_url=self.logo_url)
        content = await self._to_pdf(html)
        logger.info(
            "Rendered attendance report (%d subjects, %d bytes)", len(report.rows), len(content)
        )
        return RenderedDocument(
            content=content,
            filename=attendance_report_filename(payload.username, payload.semester_id),
        )
