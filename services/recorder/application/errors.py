from __future__ import annotations

from pathlib import Path


class RecorderError(Exception):
    """Base class for capture and upload failures shown to the user."""

    status_code = 500


class PermissionDenied(RecorderError):
    status_code = 403


class SourceUnavailable(RecorderError):
    """An optional source (webcam, microphone) could not be opened."""

    status_code = 503


class EncodingUnsupported(RecorderError):
    status_code = 500


class NoDataCaptured(RecorderError):
    status_code = 422


class CaptureFailed(RecorderError):
    """Finalizing broke down for a reason other than an empty recording."""

    status_code = 500


class RecordingAlreadyActive(RecorderError):
    status_code = 409


class UploadInProgress(RecorderError):
    status_code = 409


class NoActiveRecording(RecorderError):
    status_code = 409


class NoPendingArtifact(RecorderError):
    status_code = 404


class ArtifactTooLarge(RecorderError):
    status_code = 413


class UploadApiError(RecorderError):
    """The recordings service rejected a request."""

    status_code = 502

    def __init__(self, status: int, detail: str) -> None:
        super().__init__(f"Recordings service returned {status}: {detail}")
        self.status = status
        self.detail = detail


class PartUploadFailed(RecorderError):
    status_code = 502

    def __init__(
        self, part_number: int, attempts: int, retained_path: Path | None = None
    ) -> None:
        self.part_number = part_number
        self.attempts = attempts
        self.retained_path = retained_path
        super().__init__(self._message())

    def _message(self) -> str:
        message = f"Part {self.part_number} failed after {self.attempts} attempts"
        if self.retained_path is not None:
            message += f"; recording kept at {self.retained_path}"
        return message

    def with_retained_path(self, path: Path) -> "PartUploadFailed":
        return PartUploadFailed(self.part_number, self.attempts, path)
