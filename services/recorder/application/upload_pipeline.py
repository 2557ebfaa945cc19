from __future__ import annotations

import logging
import math
import time
from typing import Callable, List, Optional

import requests

from .errors import ArtifactTooLarge, NoDataCaptured, PartUploadFailed
from .interfaces import CompletedPart, PartUploader, RecordingsApi
from ..domain.capture import Artifact, UploadResult

logger = logging.getLogger(__name__)

PART_SIZE_BYTES = 5 * 1024 * 1024
MAX_PARTS = 100

ProgressCallback = Callable[[float], None]


def count_parts(size: int, part_size: int = PART_SIZE_BYTES) -> int:
    return math.ceil(size / part_size)


def normalize_etag(etag: Optional[str]) -> Optional[str]:
    if etag is None:
        return None
    etag = etag.strip().strip('"')
    return etag or None


class UploadPipeline:
    """Uploads a finalized artifact as sequential multipart parts.

    Parts are sent one at a time in ascending order; each part is retried with
    exponential backoff before the whole upload is declared failed.
    """

    def __init__(
        self,
        *,
        api: RecordingsApi,
        part_uploader: PartUploader,
        part_size: int = PART_SIZE_BYTES,
        max_parts: int = MAX_PARTS,
        max_attempts: int = 3,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._api = api
        self._uploader = part_uploader
        self._part_size = part_size
        self._max_parts = max_parts
        self._max_attempts = max_attempts
        self._sleep = sleep

    @property
    def max_artifact_bytes(self) -> int:
        return self._part_size * self._max_parts

    def upload(
        self,
        artifact: Artifact,
        *,
        title: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UploadResult:
        size = artifact.size
        if size == 0:
            raise NoDataCaptured("Recording is empty")
        part_count = count_parts(size, self._part_size)
        if part_count > self._max_parts:
            raise ArtifactTooLarge(
                f"Recording is {size} bytes; the limit is {self.max_artifact_bytes} bytes"
            )

        initialized = self._api.init_recording(estimated_size=size, part_count=part_count)
        if len(initialized.upload_urls) < part_count:
            raise RuntimeError(
                f"Expected {part_count} upload URLs, got {len(initialized.upload_urls)}"
            )
        logger.info(
            "Uploading recording %s: %d bytes in %d part(s)",
            initialized.recording_id,
            size,
            part_count,
        )

        parts: List[CompletedPart] = []
        for index in range(part_count):
            part_number = index + 1
            start = index * self._part_size
            chunk = artifact.data[start : min(start + self._part_size, size)]
            etag = self._upload_part(
                initialized.upload_urls[index], chunk, part_number, artifact.mime_type
            )
            parts.append(CompletedPart(part_number=part_number, etag=etag))
            if on_progress is not None:
                on_progress(len(parts) / part_count * 100)

        published = self._api.complete_recording(
            initialized.recording_id,
            parts=parts,
            duration_seconds=artifact.duration_seconds,
            title=title,
        )
        logger.info("Recording %s published at %s", initialized.recording_id, published.share_url)
        return UploadResult(
            recording_id=initialized.recording_id,
            share_url=published.share_url,
            share_token=published.share_token,
        )

    def _upload_part(
        self, url: str, chunk: bytes, part_number: int, content_type: str
    ) -> str:
        for attempt in range(self._max_attempts):
            try:
                etag = normalize_etag(self._uploader.put_part(url, chunk, content_type))
                if etag is not None:
                    return etag
                logger.warning(
                    "Part %d attempt %d returned no ETag", part_number, attempt + 1
                )
            except requests.RequestException as exc:
                logger.warning(
                    "Part %d attempt %d failed: %s", part_number, attempt + 1, exc
                )
            if attempt < self._max_attempts - 1:
                self._sleep(2**attempt)
        raise PartUploadFailed(part_number, self._max_attempts)
