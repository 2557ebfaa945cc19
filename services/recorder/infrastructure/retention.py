"""Keeps finalized recordings on disk when they could not be uploaded."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from ..domain.capture import Artifact

logger = logging.getLogger(__name__)


class LocalArtifactStore:
    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)

    def save(self, artifact: Artifact, *, title: Optional[str] = None) -> Path:
        self._directory.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
        path = self._directory / f"recording-{stamp}.webm"
        path.write_bytes(artifact.data)
        path.with_suffix(".json").write_text(
            json.dumps(
                {
                    "durationSeconds": artifact.duration_seconds,
                    "mimeType": artifact.mime_type,
                    "title": title,
                    "savedAt": datetime.now(timezone.utc).isoformat(),
                }
            )
        )
        logger.info("Kept recording at %s (%d bytes)", path, artifact.size)
        return path

    def load(self, path: Path) -> Tuple[Artifact, Optional[str]]:
        path = Path(path)
        meta = json.loads(path.with_suffix(".json").read_text())
        artifact = Artifact(
            data=path.read_bytes(),
            duration_seconds=int(meta["durationSeconds"]),
            mime_type=meta.get("mimeType") or "video/webm",
        )
        return artifact, meta.get("title")

    def discard(self, path: Path) -> None:
        path = Path(path)
        path.unlink(missing_ok=True)
        path.with_suffix(".json").unlink(missing_ok=True)

    def list(self) -> List[Path]:
        if not self._directory.exists():
            return []
        return sorted(self._directory.glob("recording-*.webm"))
