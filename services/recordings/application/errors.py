from __future__ import annotations


class RecordingServiceError(Exception):
    """Base class for failures surfaced to API callers."""

    status_code = 400


class Unauthorized(RecordingServiceError):
    status_code = 401


class QuotaExceeded(RecordingServiceError):
    status_code = 403


class TooManyParts(RecordingServiceError):
    status_code = 400


class SessionNotFound(RecordingServiceError):
    status_code = 404


class SessionForbidden(RecordingServiceError):
    status_code = 403


class SessionInactive(RecordingServiceError):
    status_code = 400


class SessionExpired(RecordingServiceError):
    status_code = 400


class AssemblyFailed(RecordingServiceError):
    status_code = 502


class RecordingNotFound(RecordingServiceError):
    status_code = 404


class ShareTokenCollision(Exception):
    """Raised by the repository when a generated share token is already taken."""
