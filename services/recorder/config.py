from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a number") from exc


def _env_optional(name: str) -> str | None:
    value = os.getenv(name)
    return value or None


@dataclass(frozen=True)
class RecorderConfig:
    api_base_url: str = "http://localhost:8000"
    api_token: str = ""
    request_timeout_seconds: float = 30.0
    coordinator_host: str = "127.0.0.1"
    coordinator_port: int = 8765
    frame_rate: int = 30
    refresh_interval_seconds: float = 1 / 60
    timeslice_seconds: float = 1.0
    max_duration_seconds: int = 420
    flush_timeout_seconds: float = 2.0
    video_bitrate: int = 2_500_000
    ffmpeg_binary: str = "ffmpeg"
    monitor_index: int = 1
    webcam_index: int = 0
    webcam_width: int = 640
    webcam_height: int = 480
    microphone_device: str | None = None
    system_audio_device: str | None = None
    sample_rate: int = 48_000
    channels: int = 2
    part_size_bytes: int = 5 * 1024 * 1024
    max_parts: int = 100
    max_attempts: int = 3
    retention_dir: Path = Path.home() / ".clipcast" / "recordings"
    log_level: str = "INFO"

    @property
    def coordinator_url(self) -> str:
        return f"http://{self.coordinator_host}:{self.coordinator_port}"

    @property
    def max_artifact_bytes(self) -> int:
        return self.part_size_bytes * self.max_parts


def load_config() -> RecorderConfig:
    return RecorderConfig(
        api_base_url=os.getenv("RECORDER_API_BASE_URL", "http://localhost:8000").rstrip("/"),
        api_token=os.getenv("RECORDER_API_TOKEN", ""),
        request_timeout_seconds=_env_float("RECORDER_REQUEST_TIMEOUT_SECONDS", 30.0),
        coordinator_host=os.getenv("RECORDER_COORDINATOR_HOST", "127.0.0.1"),
        coordinator_port=_env_int("RECORDER_COORDINATOR_PORT", 8765),
        frame_rate=_env_int("RECORDER_FRAME_RATE", 30),
        refresh_interval_seconds=_env_float("RECORDER_REFRESH_INTERVAL_SECONDS", 1 / 60),
        timeslice_seconds=_env_float("RECORDER_TIMESLICE_SECONDS", 1.0),
        max_duration_seconds=_env_int("RECORDER_MAX_DURATION_SECONDS", 420),
        flush_timeout_seconds=_env_float("RECORDER_FLUSH_TIMEOUT_SECONDS", 2.0),
        video_bitrate=_env_int("RECORDER_VIDEO_BITRATE", 2_500_000),
        ffmpeg_binary=os.getenv("RECORDER_FFMPEG_BINARY", "ffmpeg"),
        monitor_index=_env_int("RECORDER_MONITOR_INDEX", 1),
        webcam_index=_env_int("RECORDER_WEBCAM_INDEX", 0),
        webcam_width=_env_int("RECORDER_WEBCAM_WIDTH", 640),
        webcam_height=_env_int("RECORDER_WEBCAM_HEIGHT", 480),
        microphone_device=_env_optional("RECORDER_MICROPHONE_DEVICE"),
        system_audio_device=_env_optional("RECORDER_SYSTEM_AUDIO_DEVICE"),
        sample_rate=_env_int("RECORDER_SAMPLE_RATE", 48_000),
        channels=_env_int("RECORDER_CHANNELS", 2),
        part_size_bytes=_env_int("RECORDER_PART_SIZE_BYTES", 5 * 1024 * 1024),
        max_parts=_env_int("RECORDER_MAX_PARTS", 100),
        max_attempts=_env_int("RECORDER_MAX_ATTEMPTS", 3),
        retention_dir=Path(
            os.getenv(
                "RECORDER_RETENTION_DIR",
                str(Path.home() / ".clipcast" / "recordings"),
            )
        ).expanduser(),
        log_level=os.getenv("RECORDER_LOG_LEVEL", "INFO"),
    )
