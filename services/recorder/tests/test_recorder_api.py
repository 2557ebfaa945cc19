import pytest
from fastapi.testclient import TestClient

from services.recorder.application.interfaces import (
    InitializedRecording,
    PublishedRecording,
)
from services.recorder.application.upload_pipeline import UploadPipeline
from services.recorder.coordinator import RecordingCoordinator
from services.recorder.infrastructure.retention import LocalArtifactStore
from services.recorder.main import create_app


class EchoApi:
    def init_recording(self, *, estimated_size, part_count):
        return InitializedRecording(
            recording_id="rec-42",
            upload_urls=[f"https://storage.test/{n}" for n in range(1, part_count + 1)],
        )

    def complete_recording(self, recording_id, *, parts, duration_seconds, title=None):
        return PublishedRecording(
            share_url="https://watch.test/v/AbCdEf123456", share_token="AbCdEf123456"
        )


class AcceptingUploader:
    def put_part(self, url, data, content_type):
        return '"etag"'


@pytest.fixture
def client(make_controller, tmp_path):
    coordinator = RecordingCoordinator(
        controller=make_controller(),
        upload_pipeline=UploadPipeline(api=EchoApi(), part_uploader=AcceptingUploader()),
        artifact_store=LocalArtifactStore(tmp_path / "kept"),
    )
    with TestClient(create_app(coordinator)) as test_client:
        yield test_client


def test_ping(client):
    assert client.get("/ping").json() == {"message": "pong"}


def test_idle_state(client):
    body = client.get("/v1/recording/state").json()

    assert body["status"] == "idle"
    assert body["isRecording"] is False
    assert body["startTime"] is None
    assert body["pendingArtifactBytes"] == 0


def test_record_stop_and_upload(client, encoder):
    started = client.post("/v1/recording/start", json={"webcam": False, "mic": True})
    assert started.status_code == 200
    assert started.json()["isRecording"] is True
    assert started.json()["startTime"] is not None

    paused = client.post("/v1/recording/pause")
    assert paused.json()["isPaused"] is True
    resumed = client.post("/v1/recording/resume")
    assert resumed.json()["isPaused"] is False

    encoder.emit(b"chunk-1")
    encoder.emit(b"chunk-2")
    stopped = client.post("/v1/recording/stop")
    assert stopped.status_code == 200
    assert stopped.json()["artifactBytes"] == len(b"chunk-1chunk-2")
    assert stopped.json()["mimeType"] == "video/webm"

    uploaded = client.post("/v1/recording/upload", json={"title": "Demo"})
    assert uploaded.status_code == 200
    assert uploaded.json() == {
        "recordingId": "rec-42",
        "shareUrl": "https://watch.test/v/AbCdEf123456",
        "shareToken": "AbCdEf123456",
    }
    assert client.get("/v1/recording/state").json()["shareUrl"].endswith("AbCdEf123456")


def test_double_start_conflicts(client):
    assert client.post("/v1/recording/start", json={}).status_code == 200

    response = client.post("/v1/recording/start", json={"webcam": True})

    assert response.status_code == 409


def test_stop_without_data_is_unprocessable(client):
    client.post("/v1/recording/start", json={})

    response = client.post("/v1/recording/stop")

    assert response.status_code == 422
    assert "No data captured" in response.json()["detail"]


def test_controls_without_recording_conflict(client):
    assert client.post("/v1/recording/pause").status_code == 409
    assert client.post("/v1/recording/stop").status_code == 409


def test_upload_without_recording_is_not_found(client):
    assert client.post("/v1/recording/upload", json={}).status_code == 404
