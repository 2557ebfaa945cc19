from datetime import datetime, timezone

import jwt
import pytest
from fastapi.testclient import TestClient

from services.recordings.domain.user import SubscriptionTier, User
from services.recordings.infrastructure.identity import JwtIdentityProvider
from services.recordings.main import create_app

SECRET = "test-signing-secret-with-enough-bytes"


@pytest.fixture
def client(init_use_case, complete_use_case, watch_use_case, user_repository):
    for user_id, tier in [("owner-1", SubscriptionTier.FREE), ("owner-2", SubscriptionTier.PAID)]:
        user_repository.create(
            User(
                user_id=user_id,
                email=f"{user_id}@example.com",
                subscription_tier=tier,
                created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            )
        )
    app = create_app(
        init_recording_use_case=init_use_case,
        complete_recording_use_case=complete_use_case,
        watch_recording_use_case=watch_use_case,
        identity_provider=JwtIdentityProvider(
            secret=SECRET, algorithm="HS256", user_repository=user_repository
        ),
    )
    return TestClient(app)


def _auth(user_id="owner-1"):
    token = jwt.encode({"sub": user_id}, SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


def _init(client, headers=None, **overrides):
    body = {"estimatedSize": 6 * 1024 * 1024, "partCount": 2}
    body.update(overrides)
    return client.post("/api/recordings/init", json=body, headers=headers or _auth())


def test_ping(client):
    assert client.get("/ping").json() == {"message": "pong"}


def test_init_returns_upload_urls(client):
    response = _init(client)

    assert response.status_code == 201
    payload = response.json()
    assert payload["recordingId"] == "rec-1"
    assert payload["uploadId"] == "upload-1"
    assert len(payload["uploadUrls"]) == 2
    assert payload["expiresAt"].endswith("Z")


def test_full_flow_publishes_watchable_recording(client, recording_repository):
    recording_id = _init(client).json()["recordingId"]

    complete = client.post(
        f"/api/recordings/{recording_id}/complete",
        json={
            "parts": [
                {"partNumber": 1, "etag": "etag-1"},
                {"partNumber": 2, "etag": "etag-2"},
            ],
            "duration": 31,
            "title": "Bug repro",
        },
        headers=_auth(),
    )

    assert complete.status_code == 200
    body = complete.json()
    assert body["shareUrl"] == f"https://watch.test/v/{body['shareToken']}"
    assert body["recording"]["id"] == recording_id
    assert body["recording"]["title"] == "Bug repro"
    assert body["recording"]["duration"] == 31

    watch = client.get(f"/api/watch/{body['shareToken']}")

    assert watch.status_code == 200
    assert watch.json()["title"] == "Bug repro"
    assert watch.json()["duration"] == 31
    assert watch.json()["videoUrl"].startswith("https://storage.test/")
    assert recording_repository.get_by_share_token(body["shareToken"]).view_count == 1


def test_missing_bearer_token_is_unauthorized(client):
    response = client.post(
        "/api/recordings/init", json={"estimatedSize": 1, "partCount": 1}
    )

    assert response.status_code == 401


def test_invalid_bearer_token_is_unauthorized(client):
    response = _init(client, headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401


def test_unknown_user_is_unauthorized(client):
    response = _init(client, headers=_auth("ghost"))

    assert response.status_code == 401


def test_too_many_parts_is_bad_request(client):
    response = _init(client, partCount=101)

    assert response.status_code == 400


def test_invalid_body_is_rejected(client):
    response = _init(client, partCount=0)

    assert response.status_code == 422


def test_complete_by_other_owner_is_forbidden(client):
    recording_id = _init(client).json()["recordingId"]

    response = client.post(
        f"/api/recordings/{recording_id}/complete",
        json={"parts": [{"partNumber": 1, "etag": "e"}], "duration": 5},
        headers=_auth("owner-2"),
    )

    assert response.status_code == 403


def test_complete_unknown_recording_is_not_found(client):
    response = client.post(
        "/api/recordings/nope/complete",
        json={"parts": [{"partNumber": 1, "etag": "e"}], "duration": 5},
        headers=_auth(),
    )

    assert response.status_code == 404


def test_unknown_share_token_is_not_found(client):
    assert client.get("/api/watch/unknown").status_code == 404
