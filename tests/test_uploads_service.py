"""Tests for upload brokering."""

import asyncio

import pytest

from processmaster.containers import AppContainer
from processmaster.errors import (
    ConflictError,
    NotFoundError,
    PayloadTooLargeError,
    PermissionDeniedError,
    ValidationError,
)
from tests.conftest import InMemoryUserRepository, as_caller, png_bytes, register_user


def test_presigned_upload_namespaces_key_by_user(
    container: AppContainer, user_repository: InMemoryUserRepository
) -> None:
    user = as_caller(register_user(user_repository))

    result = container.upload_service.presigned_upload(
        user, "my shot (1).png", "image/png", "screenshot", file_size=1024
    )

    prefix = f"screenshot/{user.id}/"
    assert result.key.startswith(prefix)
    assert result.key.endswith("_my_shot__1_.png")
    assert result.upload_url.startswith(f"https://signed.test/{result.key}?op=put")
    assert result.bucket_url == f"https://cdn.test/{result.key}"
    assert result.expires_in == 900


@pytest.mark.parametrize(
    ("content_type", "upload_type", "size", "error"),
    [
        ("application/x-msdownload", "screenshot", 10, ValidationError),
        ("image/png", "avatar", 10, ValidationError),
        ("image/png", "screenshot", 11 * 1024 * 1024, PayloadTooLargeError),
    ],
)
def test_presigned_upload_validation(
    container: AppContainer,
    user_repository: InMemoryUserRepository,
    content_type,
    upload_type,
    size,
    error,
) -> None:
    user = as_caller(register_user(user_repository))

    with pytest.raises(error):
        container.upload_service.presigned_upload(
            user, "file.bin", content_type, upload_type, file_size=size
        )


def test_confirm_registers_screenshot_in_session(
    container: AppContainer, user_repository: InMemoryUserRepository
) -> None:
    user = as_caller(register_user(user_repository))
    session = container.capture_service.start(user.id, title="Direct upload")
    key = f"screenshot/{user.id}/2024-01-01/abc_shot.png"
    store = container.upload_service.object_store
    asyncio.run(store.put_object(key, png_bytes(), "image/png"))

    confirmed = asyncio.run(
        container.upload_service.confirm_upload(
            user,
            key,
            "screenshot",
            {"captureSessionId": str(session.id), "step": 1},
        )
    )

    assert confirmed.url == f"https://cdn.test/{key}"
    assert confirmed.screenshot is not None
    assert confirmed.screenshot.sequence_number == 1
    assert confirmed.screenshot.storage_key == key
    assert confirmed.screenshot.metadata == {"step": 1}


def test_confirm_rejects_missing_and_oversized_objects(
    container: AppContainer, user_repository: InMemoryUserRepository
) -> None:
    user = as_caller(register_user(user_repository))
    service = container.upload_service
    key = f"export/{user.id}/2024-01-01/big.pdf"

    with pytest.raises(NotFoundError):
        asyncio.run(service.confirm_upload(user, key, "export"))

    asyncio.run(
        service.object_store.put_object(
            key, b"x" * (service.max_upload_bytes + 1), "application/pdf"
        )
    )
    with pytest.raises(PayloadTooLargeError):
        asyncio.run(service.confirm_upload(user, key, "export"))
    assert key not in service.object_store.objects


def test_keys_are_scoped_to_owner_unless_admin(
    container: AppContainer, user_repository: InMemoryUserRepository
) -> None:
    owner = as_caller(register_user(user_repository))
    stranger = as_caller(register_user(user_repository, email="x@example.com"))
    admin = as_caller(
        register_user(user_repository, email="a@example.com", role="admin")
    )

    key = f"export/{owner.id}/2024-01-01/guide.html"

    with pytest.raises(PermissionDeniedError):
        container.upload_service.download_url(stranger, key)
    with pytest.raises(ValidationError):
        container.upload_service.download_url(owner, f"export/{owner.id}/../x")

    url, ttl = container.upload_service.download_url(admin, key, 60)
    assert url == f"https://signed.test/{key}?op=get&expires=60"
    assert ttl == 60


def test_delete_refuses_referenced_screenshots(
    container: AppContainer, user_repository: InMemoryUserRepository
) -> None:
    user = as_caller(register_user(user_repository))
    session = container.capture_service.start(user.id)
    shot = asyncio.run(
        container.upload_service.upload_screenshot(
            user, session.id, png_bytes(), content_type="image/png"
        )
    )
    loose_key = f"export/{user.id}/2024-01-01/old.html"
    store = container.upload_service.object_store
    asyncio.run(store.put_object(loose_key, b"<html/>", "text/html"))

    with pytest.raises(ConflictError):
        asyncio.run(container.upload_service.delete(user, shot.storage_key))
    asyncio.run(container.upload_service.delete(user, loose_key))

    assert loose_key not in store.objects
    assert shot.storage_key in store.objects


def test_upload_screenshot_rejects_non_images(
    container: AppContainer, user_repository: InMemoryUserRepository
) -> None:
    user = as_caller(register_user(user_repository))
    session = container.capture_service.start(user.id)

    with pytest.raises(ValidationError):
        asyncio.run(
            container.upload_service.upload_screenshot(
                user, session.id, b"MZ", content_type="application/octet-stream"
            )
        )
