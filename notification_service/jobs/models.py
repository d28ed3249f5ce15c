"""Job models: one frozen variant per notification kind.

Producers enqueue flat payloads such as::

    {"type": "RESULTS", "recipient": "...", "username": "O190001",
     "semesterId": "E2S1", "grades": [{"subject": {"name": ..., "code": ...,
     "credits": 4}, "grade": 9}]}

:func:`parse_job` normalises that shape into :data:`NotificationJob`, a
discriminated union keyed on ``kind``.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from notification_service.core.errors import InvalidJobError

EMAIL = "EMAIL"
RESULT_REPORT = "RESULT_REPORT"
ATTENDANCE_REPORT = "ATTENDANCE_REPORT"

# Older producers tag result jobs as "RESULTS".
_KIND_ALIASES: dict[str, str] = {"RESULTS": RESULT_REPORT}


# ---------------------------------------------------------------------------
# Report entries
# ---------------------------------------------------------------------------

class GradeEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    subject_name: str
    subject_code: str = ""
    credits: float = Field(ge=0)
    grade_point: float

    @model_validator(mode="before")
    @classmethod
    def _flatten_subject(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and isinstance(data.get("subject"), Mapping):
            subject = data["subject"]
            return {
                "subject_name": subject.get("name"),
                "subject_code": subject.get("code") or "",
                "credits": subject.get("credits", data.get("credits")),
                "grade_point": data.get("grade", data.get("grade_point")),
            }
        return data


class AttendanceEntry(BaseModel):
    """One subject's attendance; ``attended_classes <= total_classes`` is
    guaranteed by the producer and not re-checked here."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    subject_name: str
    subject_code: str = ""
    attended_classes: int = Field(ge=0, alias="attendedClasses")
    total_classes: int = Field(ge=0, alias="totalClasses")

    @model_validator(mode="before")
    @classmethod
    def _flatten_subject(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and isinstance(data.get("subject"), Mapping):
            subject = data["subject"]
            flat = {k: v for k, v in data.items() if k != "subject"}
            flat["subject_name"] = subject.get("name")
            flat["subject_code"] = subject.get("code") or ""
            return flat
        return data


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------

class _StudentPayload(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    username: str
    branch: str = ""
    semester_id: str = Field(alias="semesterId")
    campus: str = ""


class ResultPayload(_StudentPayload):
    grades: tuple[GradeEntry, ...] = ()


class AttendancePayload(_StudentPayload):
    records: tuple[AttendanceEntry, ...] = ()


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------

class _JobBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    recipient: str = Field(min_length=1)
    subject: str = ""


class EmailJob(_JobBase):
    kind: Literal["EMAIL"] = EMAIL
    body: str | None = None
    html: str | None = None


class ResultReportJob(_JobBase):
    kind: Literal["RESULT_REPORT"] = RESULT_REPORT
    payload: ResultPayload


class AttendanceReportJob(_JobBase):
    kind: Literal["ATTENDANCE_REPORT"] = ATTENDANCE_REPORT
    payload: AttendancePayload


NotificationJob = Annotated[
    Union[EmailJob, ResultReportJob, AttendanceReportJob],
    Field(discriminator="kind"),
]

_job_adapter: TypeAdapter = TypeAdapter(NotificationJob)


def parse_job(data: Mapping[str, Any]) -> EmailJob | ResultReportJob | AttendanceReportJob:
    """Build a :data:`NotificationJob` from a queued payload.

    Raises :class:`InvalidJobError` for unknown kinds or invalid fields.
    """
    if not isinstance(data, Mapping):
        raise InvalidJobError(f"Job data must be a mapping, got {type(data).__name__}")

    raw_kind = data.get("kind") or data.get("type")
    if not raw_kind:
        raise InvalidJobError("Job data has no 'type'")
    kind = str(raw_kind).upper()
    kind = _KIND_ALIASES.get(kind, kind)

    document: dict[str, Any] = {
        "kind": kind,
        "recipient": data.get("recipient"),
        "subject": data.get("subject") or "",
    }
    if kind == EMAIL:
        document["body"] = data.get("body")
        document["html"] = data.get("html")
    elif kind in (RESULT_REPORT, ATTENDANCE_REPORT):
        document["payload"] = data.get("payload") or dict(data)
    else:
        raise InvalidJobError(f"Unknown job type {raw_kind!r}")

    try:
        return _job_adapter.validate_python(document)
    except ValidationError as exc:
        raise InvalidJobError(
            f"Invalid {kind} job: {exc.error_count()} validation error(s)"
        ) from exc
