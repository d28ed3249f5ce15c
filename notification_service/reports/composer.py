"""Report composer: academic payloads to derived metrics and table rows.

Pure functions only. Every number that ends up on a report is formatted
here so the markup layer only substitutes strings. Ties round half up
(8.125 -> "8.13"), never to even.

Result reports
--------------
total_credits  : sum of every entry's credits
earned_points  : sum of credits * max(grade_point, 0) over entries with credits > 0
sgpa           : earned_points / total_credits to 2 decimals, "0.00" without credits

Attendance reports
------------------
overall_percent : attended / total * 100 to 2 decimals, "0.00" without classes
row percent     : per-subject percentage to 1 decimal, "0.0" without classes
"""
from __future__ import annotations

import re
from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal
from dataclasses import dataclass

from notification_service.jobs.models import (
    AttendanceEntry,
    AttendancePayload,
    GradeEntry,
    ResultPayload,
)

# Inclusive lower bounds, checked top-down.
GRADE_THRESHOLDS: tuple[tuple[float, str], ...] = (
    (10, "EX"),
    (9, "A"),
    (8, "B"),
    (7, "C"),
    (6, "D"),
    (5, "E"),
)
FAILING_GRADE = "R"

_YEAR_RE = re.compile(r"([EP])[-_ ]?([1-4])", re.IGNORECASE)
_SEMESTER_RE = re.compile(r"S(?:em(?:ester)?)?[-_ ]?([1-3])", re.IGNORECASE)
_SUBJECT_YEAR_RE = re.compile(r"^[a-zA-Z]+[-_ ]?([1-4])")


# ---------------------------------------------------------------------------
# Composed reports
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ResultRow:
    subject_name: str
    subject_code: str
    credits: str
    grade: str


@dataclass(frozen=True)
class ResultReport:
    title: str
    rows: list[ResultRow]
    total_credits: float
    earned_points: float
    sgpa: str

    @property
    def total_credits_display(self) -> str:
        return _fixed(self.total_credits, 0)

    @property
    def earned_points_display(self) -> str:
        return _fixed(self.earned_points, 1)


@dataclass(frozen=True)
class AttendanceRow:
    subject_name: str
    subject_code: str
    attended_classes: int
    total_classes: int
    percent: str


@dataclass(frozen=True)
class AttendanceReport:
    title: str
    rows: list[AttendanceRow]
    total_attended: int
    total_classes: int
    overall_percent: str


def _fixed(value: float, places: int) -> str:
    """Format to ``places`` decimals, rounding exact ties away from zero."""
    quantum = Decimal(10) ** -places
    return format(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP), "f")


# ---------------------------------------------------------------------------
# Grades
# ---------------------------------------------------------------------------

def grade_letter(point: float) -> str:
    """Map a grade point to its letter grade."""
    for threshold, letter in GRADE_THRESHOLDS:
        if point >= threshold:
            return letter
    return FAILING_GRADE


def derive_result_title(semester_id: str, grades: Sequence[GradeEntry] = ()) -> str:
    """Best-effort heading such as ``"E2 SEMESTER-1 RESULTS"``.

    Falls back to the upper-cased semester id when the year or semester
    cannot be found. Never raises.
    """
    semester_id = semester_id or ""
    year = ""
    semester = ""

    year_match = _YEAR_RE.search(semester_id)
    if year_match:
        year = f"{year_match.group(1).upper()}{year_match.group(2)}"

    semester_match = _SEMESTER_RE.search(semester_id)
    if semester_match:
        semester = semester_match.group(1)

    if not year:
        for entry in grades:
            code_match = _SUBJECT_YEAR_RE.match(entry.subject_code or "")
            if code_match:
                year = f"E{code_match.group(1)}"
                break

    if year and semester:
        return f"{year} SEMESTER-{semester} RESULTS"
    return f"{semester_id.upper()} RESULTS".replace(" RESULTS RESULTS", " RESULTS")


def compose_result_report(payload: ResultPayload) -> ResultReport:
    total_credits = 0.0
    earned_points = 0.0
    rows: list[ResultRow] = []

    for entry in payload.grades:
        credits = float(entry.credits)
        total_credits += credits
        if credits > 0:
            earned_points += credits * max(entry.grade_point, 0)
        rows.append(
            ResultRow(
                subject_name=entry.subject_name,
                subject_code=entry.subject_code,
                credits=_fixed(credits, 1),
                grade=grade_letter(entry.grade_point),
            )
        )

    sgpa = _fixed(earned_points / total_credits, 2) if total_credits > 0 else "0.00"
    return ResultReport(
        title=derive_result_title(payload.semester_id, payload.grades),
        rows=rows,
        total_credits=total_credits,
        earned_points=earned_points,
        sgpa=sgpa,
    )


# ---------------------------------------------------------------------------
# Attendance
# ---------------------------------------------------------------------------

def derive_attendance_title(semester_id: str) -> str:
    return f"ATTENDANCE REPORT: {(semester_id or '').upper()}"


def _row_percent(entry: AttendanceEntry) -> str:
    if entry.total_classes > 0:
        return _fixed(entry.attended_classes / entry.total_classes * 100, 1)
    return "0.0"


def compose_attendance_report(payload: AttendancePayload) -> AttendanceReport:
    total_attended = 0
    total_classes = 0
    rows: list[AttendanceRow] = []

    for entry in payload.records:
        total_attended += entry.attended_classes
        total_classes += entry.total_classes
        rows.append(
            AttendanceRow(
                subject_name=entry.subject_name,
                subject_code=entry.subject_code,
                attended_classes=entry.attended_classes,
                total_classes=entry.total_classes,
                percent=_row_percent(entry),
            )
        )

    overall = _fixed(total_attended / total_classes * 100, 2) if total_classes > 0 else "0.00"
    return AttendanceReport(
        title=derive_attendance_title(payload.semester_id),
        rows=rows,
        total_attended=total_attended,
        total_classes=total_classes,
        overall_percent=overall,
    )
