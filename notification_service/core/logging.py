"""Logging setup with recipient redaction.

Every email address is replaced by ``[REDACTED]`` in the message, its
arguments (exceptions included, since SMTP errors quote the refused
recipients) and any attached traceback before a handler formats the record.
"""
import logging
import logging.config
import re

EMAIL_ADDRESS_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
REDACTED = "[REDACTED]"


class AddressRedactionFilter(logging.Filter):
    """Mask recipient addresses before a record reaches any handler."""

    def _sanitize(self, value: object) -> object:
        if isinstance(value, BaseException):
            value = str(value)
        if not isinstance(value, str):
            return value
        return EMAIL_ADDRESS_RE.sub(REDACTED, value)

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self._sanitize(record.msg)

        if isinstance(record.args, tuple):
            record.args = tuple(self._sanitize(item) for item in record.args)
        elif isinstance(record.args, dict):
            record.args = {key: self._sanitize(value) for key, value in record.args.items()}

        # Formatter reuses exc_text when set, so the traceback is rendered once, redacted.
        if record.exc_info and not record.exc_text:
            record.exc_text = self._sanitize(logging.Formatter().formatException(record.exc_info))

        return True


def setup_logging() -> None:
    from notification_service.core.settings import get_settings

    settings = get_settings()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "address_redaction": {
                    "()": "notification_service.core.logging.AddressRedactionFilter",
                }
            },
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "filters": ["address_redaction"],
                }
            },
            "loggers": {
                "": {
                    "handlers": ["console"],
                    "level": settings.log_level.upper(),
                },
                "uvicorn.access": {
                    "handlers": ["console"],
                    "level": "WARNING",
                    "propagate": False,
                },
            },
        }
    )
