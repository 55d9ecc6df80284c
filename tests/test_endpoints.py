"""HTTP-level tests for the FastAPI app."""

import asyncio
from urllib.parse import parse_qs, urlparse
from uuid import UUID

from fastapi.testclient import TestClient

from processmaster.api.app import create_app
from processmaster.containers import AppContainer
from processmaster.domain.models import UserRecord
from tests.conftest import (
    TEST_PASSWORD,
    InMemoryUserRepository,
    auth_headers,
    png_bytes,
    register_user,
)


def _client(container: AppContainer, **kwargs: object) -> TestClient:
    return TestClient(create_app(container), **kwargs)


def _start_session(client: TestClient, headers: dict[str, str]) -> str:
    response = client.post(
        "/capture/start", json={"title": "Submit expense report"}, headers=headers
    )
    assert response.status_code == 201
    return response.json()["data"]["id"]


def _upload_shot(
    client: TestClient,
    headers: dict[str, str],
    session_id: str,
    sequence_number: int | None = None,
):
    data = {"url": "https://app.example.com/expenses"}
    if sequence_number is not None:
        data["sequenceNumber"] = str(sequence_number)
    return client.post(
        f"/capture/{session_id}/screenshot",
        files={"screenshot": ("shot.png", png_bytes(), "image/png")},
        data=data,
        headers=headers,
    )


def test_health(container: AppContainer) -> None:
    response = _client(container).get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_protected_route_requires_token(container: AppContainer) -> None:
    response = _client(container).get("/guides")

    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "TOKEN_REQUIRED"
    assert body["error"]["errorId"]


def test_invalid_token_is_rejected(container: AppContainer) -> None:
    response = _client(container).get(
        "/auth/me", headers={"Authorization": "Bearer not-a-jwt"}
    )

    assert response.status_code == 401


def test_login_then_me(
    container: AppContainer, user_repository: InMemoryUserRepository
) -> None:
    register_user(user_repository)
    client = _client(container)

    login = client.post(
        "/auth/login", json={"email": "Owner@Example.com", "password": TEST_PASSWORD}
    )
    assert login.status_code == 200
    data = login.json()["data"]
    assert data["tokenType"] == "Bearer"
    assert "passwordHash" not in data["user"]
    assert "password_hash" not in data["user"]

    me = client.get(
        "/auth/me", headers={"Authorization": f"Bearer {data['accessToken']}"}
    )
    assert me.status_code == 200
    assert me.json()["data"]["email"] == "owner@example.com"

    refreshed = client.post(
        "/auth/refresh", json={"refreshToken": data["refreshToken"]}
    )
    assert refreshed.status_code == 200
    assert refreshed.json()["data"]["accessToken"]


def test_login_with_wrong_password(
    container: AppContainer, user_repository: InMemoryUserRepository
) -> None:
    register_user(user_repository)

    response = _client(container).post(
        "/auth/login", json={"email": "owner@example.com", "password": "nope"}
    )

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "INVALID_CREDENTIALS"


def test_request_validation_envelope(
    container: AppContainer, user_repository: InMemoryUserRepository
) -> None:
    user = register_user(user_repository)

    response = _client(container).post(
        "/guides",
        json={"title": "Missing description"},
        headers=auth_headers(container, user),
    )

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["message"] == "Request validation failed"
    assert {"field": "description", "message": "Field required"} in error["details"][
        "fields"
    ]


def test_capture_flow_produces_guide(
    container: AppContainer, user_repository: InMemoryUserRepository
) -> None:
    headers = auth_headers(container, register_user(user_repository))
    client = _client(container)
    session_id = _start_session(client, headers)

    first = _upload_shot(client, headers, session_id)
    second = _upload_shot(client, headers, session_id)
    assert first.status_code == 200
    assert first.json()["data"]["sequence_number"] == 1
    assert second.json()["data"]["sequence_number"] == 2

    interaction = client.post(
        f"/capture/{session_id}/interaction",
        json={"interactionType": "click", "elementText": "Save"},
        headers=headers,
    )
    assert interaction.status_code == 200

    status = client.get(f"/capture/{session_id}/status", headers=headers).json()["data"]
    assert status["screenshotCount"] == 2
    assert status["interactionCount"] == 1

    queued = client.post(f"/capture/{session_id}/process", headers=headers)
    assert queued.status_code == 200
    job_id = queued.json()["data"]["jobId"]

    pending = client.get(f"/capture/{session_id}/result", headers=headers)
    assert pending.json()["data"]["status"] == "pending"

    asyncio.run(container.job_runner.run_job(UUID(job_id)))

    result = client.get(f"/capture/{session_id}/result", headers=headers).json()["data"]
    assert result["status"] == "completed"
    assert result["jobId"] == job_id
    assert result["guide"]["title"] == "Submit expense report"

    detail = client.get(f"/guides/{result['guideId']}", headers=headers).json()["data"]
    assert [step["step_number"] for step in detail["steps"]] == [1, 2]


def test_duplicate_sequence_number_is_conflict(
    container: AppContainer, user_repository: InMemoryUserRepository
) -> None:
    headers = auth_headers(container, register_user(user_repository))
    client = _client(container)
    session_id = _start_session(client, headers)

    first = _upload_shot(client, headers, session_id, sequence_number=1)
    response = _upload_shot(client, headers, session_id, sequence_number=1)

    assert first.status_code == 200

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "DUPLICATE_ENTRY"


def test_oversized_upload_is_rejected(
    container: AppContainer, user_repository: InMemoryUserRepository
) -> None:
    headers = auth_headers(container, register_user(user_repository))
    container.settings = container.settings.model_copy(
        update={"max_upload_bytes": 50}
    )

    client = _client(container)
    session_id = _start_session(client, headers)

    response = _upload_shot(client, headers, session_id)

    assert response.status_code == 413
    assert response.json()["error"]["code"] == "PAYLOAD_TOO_LARGE"


def test_viewer_cannot_start_capture(
    container: AppContainer, user_repository: InMemoryUserRepository
) -> None:
    viewer = register_user(user_repository, email="viewer@example.com", role="viewer")

    response = _client(container).post(
        "/capture/start", json={}, headers=auth_headers(container, viewer)
    )

    assert response.status_code == 403
    assert response.json()["error"]["details"] == {"requiredRole": "user"}


def test_guide_crud_and_version_conflict(
    container: AppContainer, user_repository: InMemoryUserRepository
) -> None:
    headers = auth_headers(container, register_user(user_repository))
    client = _client(container)

    created = client.post(
        "/guides",
        json={"title": "Onboarding", "description": "First day", "tags": ["hr"]},
        headers=headers,
    )
    assert created.status_code == 201
    guide = created.json()["data"]
    assert guide["version"] == 1

    updated = client.put(
        f"/guides/{guide['id']}",
        json={"title": "Onboarding v2", "version": 1},
        headers=headers,
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["version"] == 2

    stale = client.put(
        f"/guides/{guide['id']}",
        json={"title": "Lost update", "version": 1},
        headers=headers,
    )
    assert stale.status_code == 409
    assert stale.json()["error"]["code"] == "VERSION_CONFLICT"
    assert stale.json()["error"]["details"] == {"currentVersion": 2}

    response = client.get("/guides", params={"tags": "hr"}, headers=headers)
    listing = response.json()["data"]

    assert [item["title"] for item in listing["guides"]] == ["Onboarding v2"]
    assert listing["pagination"] == {"page": 1, "limit": 10, "total": 1, "pages": 1}

    deleted = client.delete(f"/guides/{guide['id']}", headers=headers)
    assert deleted.status_code == 200
    assert client.get(f"/guides/{guide['id']}", headers=headers).status_code == 404


def test_share_and_redeem(
    container: AppContainer, user_repository: InMemoryUserRepository
) -> None:
    headers = auth_headers(container, register_user(user_repository))
    client = _client(container)
    guide_id = client.post(
        "/guides",
        json={"title": "Expenses", "description": "How to file"},
        headers=headers,
    ).json()["data"]["id"]

    shared = client.post(
        f"/guides/{guide_id}/share",
        json={"password": "s3cret", "maxViews": 1},
        headers=headers,
    ).json()["data"]
    assert shared["shareUrl"] == f"https://app.example.com/shared/{shared['token']}"

    without_password = client.post(f"/shared/{shared['token']}")
    assert without_password.status_code == 401

    opened = client.post(f"/shared/{shared['token']}", json={"password": "s3cret"})
    assert opened.status_code == 200
    assert opened.json()["data"]["guide"]["title"] == "Expenses"

    exhausted = client.post(f"/shared/{shared['token']}", json={"password": "s3cret"})
    assert exhausted.status_code == 404


def test_unexpected_error_returns_internal_envelope(
    container: AppContainer, user_repository: InMemoryUserRepository, monkeypatch
) -> None:
    headers = auth_headers(container, register_user(user_repository))

    def explode(*args: object, **kwargs: object) -> None:
        raise RuntimeError("boom")

    monkeypatch.setattr(container.guide_service, "list_guides", explode)
    client = _client(container, raise_server_exceptions=False)

    response = client.get("/guides", headers=headers)

    assert response.status_code == 500
    error = response.json()["error"]
    assert error["code"] == "INTERNAL_ERROR"
    assert error["message"] == "boom"
    assert "RuntimeError" in error["stack"]


def test_production_hides_internal_messages(
    container: AppContainer, user_repository: InMemoryUserRepository, monkeypatch
) -> None:
    headers = auth_headers(container, register_user(user_repository))
    container.settings = container.settings.model_copy(
        update={"environment": "production"}
    )

    def explode(*args: object, **kwargs: object) -> None:
        raise RuntimeError("connection string leaked")

    monkeypatch.setattr(container.guide_service, "list_guides", explode)
    client = _client(container, raise_server_exceptions=False)

    error = client.get("/guides", headers=headers).json()["error"]

    assert error["message"] == "An unexpected error occurred"
    assert "stack" not in error


def test_oauth2_authorize_and_callback(container: AppContainer) -> None:
    client = _client(container)

    authorize = client.get("/auth/oauth2/authorize").json()["data"]
    query = parse_qs(urlparse(authorize["authorizationUrl"]).query)
    assert query["state"] == [authorize["state"]]

    callback = client.get(
        "/auth/oauth2/callback", params={"code": "code-1", "state": authorize["state"]}
    )

    assert callback.status_code == 200
    user = callback.json()["data"]["user"]
    assert user["email"] == "oauth.user@example.com"
    assert user["provider"] == "oauth2"


def test_models_and_presigned_upload(
    container: AppContainer, user_repository: InMemoryUserRepository
) -> None:
    user: UserRecord = register_user(user_repository)
    headers = auth_headers(container, user)
    client = _client(container)

    models = client.get("/ai/models", headers=headers).json()["data"]
    assert models["provider"] == container.settings.vision_provider
    assert models["defaultModel"] == container.vision_service.model

    presigned = client.post(
        "/upload/presigned-url",
        json={
            "filename": "shot.png",
            "contentType": "image/png",
            "uploadType": "screenshot",
        },
        headers=headers,
    ).json()["data"]
    assert presigned["key"].startswith(f"screenshot/{user.id}/")
    assert presigned["uploadUrl"].startswith(f"https://signed.test/{presigned['key']}")
    assert presigned["expiresIn"] == 900
