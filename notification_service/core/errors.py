"""Failure taxonomy for the notification pipeline.

None of these are swallowed inside the worker: each one propagates to the
job worker pool, which reports the job as failed so the queue can replay it.

BrowserNotFoundError : no local Chromium available; fatal for the job
BrowserLaunchError   : Chromium would not start within its launch attempts
RenderError          : page load or PDF export failed
SendError            : the mail transport rejected or could not deliver
InvalidJobError      : the queued payload does not describe a known job
"""
from __future__ import annotations


class NotificationError(RuntimeError):
    """Base class for every job-level failure raised by this service."""


class BrowserNotFoundError(NotificationError):
    """Raised when no Chromium executable can be resolved."""


class BrowserLaunchError(NotificationError):
    """Raised when Chromium fails to launch."""

    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class RenderError(NotificationError):
    """Raised when HTML could not be turned into a PDF."""


class SendError(NotificationError):
    """Raised when an outgoing message could not be delivered."""


class InvalidJobError(NotificationError, ValueError):
    """Raised when a queued job payload cannot be parsed."""
