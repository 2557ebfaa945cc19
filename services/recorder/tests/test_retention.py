from services.recorder.domain.capture import Artifact
from services.recorder.infrastructure.retention import LocalArtifactStore


def test_saved_recording_loads_back_with_title(tmp_path):
    store = LocalArtifactStore(tmp_path / "kept")

    path = store.save(Artifact(data=b"webm", duration_seconds=42), title="Weekly sync")
    artifact, title = store.load(path)

    assert store.list() == [path]
    assert artifact.data == b"webm"
    assert artifact.duration_seconds == 42
    assert artifact.mime_type == "video/webm"
    assert title == "Weekly sync"


def test_discard_removes_recording_and_metadata(tmp_path):
    store = LocalArtifactStore(tmp_path)
    path = store.save(Artifact(data=b"webm", duration_seconds=1))

    store.discard(path)

    assert store.list() == []
    assert not path.with_suffix(".json").exists()


def test_missing_directory_lists_nothing(tmp_path):
    assert LocalArtifactStore(tmp_path / "absent").list() == []
