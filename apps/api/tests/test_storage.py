"""Tiered file storage and task asset uploads."""

import hashlib

import pytest

from app.core.config import settings
from app.db.enums import Role, StorageTier
from app.services import asset_service, storage_service


class FakeS3:
    def __init__(self):
        self.objects = {}

    def put_object(self, Bucket, Key, Body, ContentType):
        self.objects[(Bucket, Key)] = Body

    def generate_presigned_url(self, operation, Params, ExpiresIn):
        return f"https://s3.example/{Params['Key']}?sig=1"


def _broken_tier(*args, **kwargs):
    raise OSError("tier offline")


def test_local_tier_is_default():
    stored = storage_service.store_file("task-1", "notes.txt", b"hello", "text/plain")

    assert stored.tier == StorageTier.LOCAL
    assert stored.url == "/files/task-1/notes.txt"
    assert storage_service.read_local_url(stored.url) == b"hello"


def test_s3_used_when_configured(monkeypatch):
    fake = FakeS3()
    monkeypatch.setattr(settings, "S3_BUCKET", "briefs")
    monkeypatch.setattr(storage_service, "_get_s3_client", lambda: fake)

    stored = storage_service.store_file("task-1", "notes.txt", b"hello", "text/plain")

    assert stored.tier == StorageTier.S3
    assert stored.url.startswith("https://s3.example/tasks/task-1/notes.txt")
    assert fake.objects[("briefs", "tasks/task-1/notes.txt")] == b"hello"


def test_public_base_url_skips_presigning(monkeypatch):
    monkeypatch.setattr(settings, "S3_BUCKET", "briefs")
    monkeypatch.setattr(settings, "S3_PUBLIC_BASE_URL", "https://cdn.example/")
    monkeypatch.setattr(storage_service, "_get_s3_client", lambda: FakeS3())

    stored = storage_service.store_file("task-1", "a.png", b"x", "image/png")
    assert stored.url == "https://cdn.example/tasks/task-1/a.png"


def test_failing_tier_falls_back_to_local(monkeypatch):
    monkeypatch.setattr(settings, "S3_BUCKET", "briefs")
    monkeypatch.setitem(storage_service._STORE_FUNCS, StorageTier.S3, _broken_tier)

    stored = storage_service.store_file("task-1", "notes.txt", b"hello", "text/plain")
    assert stored.tier == StorageTier.LOCAL


def test_all_tiers_failing_raises(monkeypatch):
    monkeypatch.setitem(storage_service._STORE_FUNCS, StorageTier.LOCAL, _broken_tier)

    with pytest.raises(storage_service.StorageError):
        storage_service.store_file("task-1", "notes.txt", b"hello", "text/plain")


def test_configured_tier_order(monkeypatch):
    monkeypatch.setattr(settings, "GOOGLE_DRIVE_CREDENTIALS_FILE", "/secrets/sa.json")
    monkeypatch.setattr(settings, "GOOGLE_DRIVE_FOLDER_ID", "folder")
    monkeypatch.setattr(settings, "S3_BUCKET", "briefs")

    assert storage_service.configured_tiers() == [
        StorageTier.DRIVE, StorageTier.S3, StorageTier.LOCAL,
    ]


def test_local_paths_cannot_escape_root():
    assert storage_service.local_file_path("..", "secret.txt") is None
    assert storage_service.read_local_url("/files/../../etc/passwd") is None


@pytest.mark.parametrize(
    "filename, content_type, size",
    [
        ("run.exe", "application/octet-stream", 10),
        ("page.txt", "text/html", 10),
        ("empty.pdf", "application/pdf", 0),
    ],
)
def test_validate_file_rejects(filename, content_type, size):
    with pytest.raises(ValueError):
        asset_service.validate_file(filename, content_type, size)


def test_validate_file_enforces_size(monkeypatch):
    monkeypatch.setattr(settings, "MAX_UPLOAD_BYTES", 100)
    with pytest.raises(ValueError, match="exceeds"):
        asset_service.validate_file("logo.png", "image/png", 101)


# =============================================================================
# API
# =============================================================================

async def test_upload_and_download_asset(org, client_user, provider, make_task, client_factory):
    task = make_task(client_user, org)
    data = b"\x89PNG fake image bytes"

    response = await client_factory(client_user).post(
        f"/tasks/{task.id}/assets", files={"file": ("logo.png", data, "image/png")}
    )

    assert response.status_code == 201
    asset = response.json()
    assert asset["original_name"] == "logo.png"
    assert asset["storage_tier"] == "local"
    assert asset["metadata"]["sha256"] == hashlib.sha256(data).hexdigest()

    download = await client_factory(provider).get(asset["url"])
    assert download.status_code == 200
    assert download.content == data


async def test_download_hidden_from_other_clients(org, client_user, make_user, make_task, client_factory):
    task = make_task(client_user, org)
    upload = await client_factory(client_user).post(
        f"/tasks/{task.id}/assets", files={"file": ("brief.pdf", b"%PDF-1.4", "application/pdf")}
    )

    stranger = make_user(Role.CLIENT)
    response = await client_factory(stranger).get(upload.json()["url"])
    assert response.status_code == 404


async def test_upload_rejects_disallowed_extension(org, client_user, make_task, client_factory):
    task = make_task(client_user, org)
    response = await client_factory(client_user).post(
        f"/tasks/{task.id}/assets", files={"file": ("run.exe", b"MZ", "application/octet-stream")}
    )
    assert response.status_code == 400


async def test_upload_rejects_oversized_request(monkeypatch, org, client_user, make_task, client_factory):
    monkeypatch.setattr(settings, "MAX_UPLOAD_BYTES", 10)
    task = make_task(client_user, org)
    payload = b"x" * (70 * 1024)

    response = await client_factory(client_user).post(
        f"/tasks/{task.id}/assets", files={"file": ("big.txt", payload, "text/plain")}
    )
    assert response.status_code == 413
