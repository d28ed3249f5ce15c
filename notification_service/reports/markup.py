"""HTML markup for printable reports.

Templates live in ``reports/templates`` and are filled with
:class:`string.Template`. Every value taken from a payload is HTML-escaped
before substitution.
"""
from __future__ import annotations

import html
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from string import Template

from notification_service.jobs.models import AttendancePayload, ResultPayload
from notification_service.reports.composer import AttendanceReport, ResultReport

TEMPLATE_DIR = Path(__file__).parent / "templates"

_RESULT_ROW = Template(
    """
    <tr>
        <td>${subject_name}</td>
        <td class="center">${credits}</td>
        <td class="center">${grade}</td>
    </tr>"""
)

_ATTENDANCE_ROW = Template(
    """
    <tr>
        <td>${subject_name} <br><small style="color:#666">${subject_code}</small></td>
        <td class="center">${attended} / ${total}</td>
        <td class="center">${percent}%</td>
    </tr>"""
)


@lru_cache(maxsize=None)
def _load_template(name: str, template_dir: Path = TEMPLATE_DIR) -> str:
    path = template_dir / name
    if not path.is_file():
        raise FileNotFoundError(f"No report template {name!r} in {template_dir}")
    return path.read_text(encoding="utf-8")


def _e(value: object) -> str:
    return html.escape(str(value))


def _header(payload: ResultPayload | AttendancePayload, logo_url: str) -> str:
    return Template(_load_template("_header.html")).safe_substitute(
        logo_url=_e(logo_url),
        username=_e(payload.username),
        branch=_e(payload.branch),
        name=_e(payload.name),
        campus=_e(payload.campus),
    )


def render_result_html(report: ResultReport, payload: ResultPayload, *, logo_url: str) -> str:
    rows = "".join(
        _RESULT_ROW.substitute(
            subject_name=_e(row.subject_name),
            credits=row.credits,
            grade=row.grade,
        )
        for row in report.rows
    )
    return Template(_load_template("result_report.html")).safe_substitute(
        styles=_load_template("_report_styles.css"),
        watermark=_e(f"RGUKT {payload.campus.upper()}"),
        header=_header(payload, logo_url),
        title=_e(report.title),
        rows=rows,
        total_credits=report.total_credits_display,
        earned_points=report.earned_points_display,
        sgpa=report.sgpa,
    )


def render_attendance_html(
    report: AttendanceReport,
    payload: AttendancePayload,
    *,
    logo_url: str,
    generated_on: datetime | None = None,
) -> str:
    generated_on = generated_on or datetime.now()
    rows = "".join(
        _ATTENDANCE_ROW.substitute(
            subject_name=_e(row.subject_name),
            subject_code=_e(row.subject_code),
            attended=row.attended_classes,
            total=row.total_classes,
            percent=row.percent,
        )
        for row in report.rows
    )
    return Template(_load_template("attendance_report.html")).safe_substitute(
        styles=_load_template("_report_styles.css"),
        watermark=_e(f"RGUKT {payload.campus.upper()}"),
        header=_header(payload, logo_url),
        title=_e(report.title),
        rows=rows,
        total_attended=report.total_attended,
        total_classes=report.total_classes,
        overall_percent=report.overall_percent,
        generated_on=generated_on.strftime("%d/%m/%Y, %H:%M:%S"),
    )
