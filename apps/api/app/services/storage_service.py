"""File storage with tiered fallback: Google Drive -> S3 -> local disk.

Each tier is used only when configured. A tier that fails at upload time is
logged and the next one is tried; local disk always works as the last
resort. Every stored file yields a retrievable URL and a storage-tier tag.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import boto3
import httpx
from botocore.exceptions import BotoCoreError, ClientError
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from app.core.config import settings
from app.db.enums import StorageTier

logger = logging.getLogger(__name__)

DRIVE_SCOPES = ["https://www.googleapis.com/auth/drive.file"]
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
S3_PRESIGN_SECONDS = 7 * 24 * 3600  # SigV4 maximum
LOCAL_URL_PREFIX = "/files"


class StorageError(Exception):
    """No storage tier accepted the file."""


@dataclass
class StoredFile:
    url: str
    tier: StorageTier
    key: str
    metadata: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Google Drive
# =============================================================================

def _drive_access_token() -> str:
    credentials = service_account.Credentials.from_service_account_file(
        settings.GOOGLE_DRIVE_CREDENTIALS_FILE, scopes=DRIVE_SCOPES
    )
    credentials.refresh(GoogleAuthRequest())
    return credentials.token


def _store_drive(folder: str, filename: str, data: bytes, mime_type: str) -> StoredFile:
    token = _drive_access_token()
    boundary = f"briefdesk-{uuid.uuid4().hex}"
    file_metadata = {
        "name": f"{folder}-{filename}",
        "parents": [settings.GOOGLE_DRIVE_FOLDER_ID],
    }
    body = b"".join(
        [
            f"--{boundary}\r\nContent-Type: application/json; charset=UTF-8\r\n\r\n".encode(),
            json.dumps(file_metadata).encode(),
            f"\r\n--{boundary}\r\nContent-Type: {mime_type}\r\n\r\n".encode(),
            data,
            f"\r\n--{boundary}--\r\n".encode(),
        ]
    )
    headers = {"Authorization": f"Bearer {token}"}
    with httpx.Client(timeout=60.0) as client:
        response = client.post(
            DRIVE_UPLOAD_URL,
            params={"uploadType": "multipart", "fields": "id,webViewLink,webContentLink"},
            headers={**headers, "Content-Type": f"multipart/related; boundary={boundary}"},
            content=body,
        )
        response.raise_for_status()
        created = response.json()
        # Anyone with the link can read; the link itself is the capability
        client.post(
            f"{DRIVE_FILES_URL}/{created['id']}/permissions",
            headers=headers,
            json={"role": "reader", "type": "anyone"},
        ).raise_for_status()

    return StoredFile(
        url=created.get("webViewLink") or created.get("webContentLink") or "",
        tier=StorageTier.DRIVE,
        key=created["id"],
        metadata={
            "storage_tier": StorageTier.DRIVE.value,
            "drive_file_id": created["id"],
            "drive_folder_id": settings.GOOGLE_DRIVE_FOLDER_ID,
        },
    )


# =============================================================================
# S3
# =============================================================================

def _get_s3_client():
    """Get boto3 S3 client (supports S3-compatible endpoints)."""
    return boto3.client(
        "s3",
        region_name=settings.S3_REGION or None,
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
        endpoint_url=settings.S3_ENDPOINT_URL.rstrip("/") or None,
    )


def _store_s3(folder: str, filename: str, data: bytes, mime_type: str) -> StoredFile:
    s3 = _get_s3_client()
    key = f"tasks/{folder}/{filename}"
    s3.put_object(Bucket=settings.S3_BUCKET, Key=key, Body=data, ContentType=mime_type)
    if settings.S3_PUBLIC_BASE_URL:
        url = f"{settings.S3_PUBLIC_BASE_URL.rstrip('/')}/{key}"
    else:
        url = s3.generate_presigned_url(
            "get_object",
            Params={"Bucket": settings.S3_BUCKET, "Key": key},
            ExpiresIn=S3_PRESIGN_SECONDS,
        )
    return StoredFile(
        url=url,
        tier=StorageTier.S3,
        key=key,
        metadata={
            "storage_tier": StorageTier.S3.value,
            "bucket": settings.S3_BUCKET,
            "key": key,
        },
    )


# =============================================================================
# Local disk
# =============================================================================

def _get_local_storage_path() -> Path:
    path = Path(settings.LOCAL_STORAGE_PATH)
    path.mkdir(parents=True, exist_ok=True)
    return path


def _safe_component(value: str) -> str:
    name = os.path.basename(value or "")
    if not name or name in (".", ".."):
        raise ValueError("Invalid path component")
    return name


def _store_local(folder: str, filename: str, data: bytes, mime_type: str) -> StoredFile:
    folder = _safe_component(folder)
    filename = _safe_component(filename)
    directory = _get_local_storage_path() / folder
    directory.mkdir(parents=True, exist_ok=True)
    (directory / filename).write_bytes(data)
    key = f"{folder}/{filename}"
    return StoredFile(
        url=f"{LOCAL_URL_PREFIX}/{key}",
        tier=StorageTier.LOCAL,
        key=key,
        metadata={"storage_tier": StorageTier.LOCAL.value, "path": key},
    )


def local_file_path(folder: str, filename: str) -> Path | None:
    """Resolve a locally stored file, refusing anything outside the storage root."""
    try:
        path = _get_local_storage_path() / _safe_component(folder) / _safe_component(filename)
    except ValueError:
        return None
    return path if path.is_file() else None


def parse_local_url(url: str) -> tuple[str, str] | None:
    """`(folder, name)` for a `/files/<folder>/<name>` URL, else None."""
    if not url.startswith(f"{LOCAL_URL_PREFIX}/"):
        return None
    parts = url[len(LOCAL_URL_PREFIX) + 1:].split("/")
    if len(parts) != 2 or not all(parts):
        return None
    return parts[0], parts[1]


def read_local_url(url: str) -> bytes | None:
    """Bytes for a `/files/<folder>/<name>` URL produced by the local tier."""
    parsed = parse_local_url(url)
    if parsed is None:
        return None
    path = local_file_path(*parsed)
    return path.read_bytes() if path else None


# =============================================================================
# Tier selection
# =============================================================================

def configured_tiers() -> list[StorageTier]:
    tiers = []
    if settings.drive_enabled:
        tiers.append(StorageTier.DRIVE)
    if settings.s3_enabled:
        tiers.append(StorageTier.S3)
    tiers.append(StorageTier.LOCAL)
    return tiers


_STORE_FUNCS = {
    StorageTier.DRIVE: _store_drive,
    StorageTier.S3: _store_s3,
    StorageTier.LOCAL: _store_local,
}

_TIER_ERRORS = (
    httpx.HTTPError, GoogleAuthError, BotoCoreError, ClientError, OSError, KeyError,
)


def store_file(folder: str, filename: str, data: bytes, mime_type: str) -> StoredFile:
    """
    Store bytes in the first tier that accepts them.

    Raises:
        StorageError: every configured tier failed
    """
    for tier in configured_tiers():
        try:
            return _STORE_FUNCS[tier](folder, filename, data, mime_type)
        except _TIER_ERRORS as e:
            logger.warning(
                "Storage tier %s failed for %s/%s: %s",
                tier.value, folder, filename, type(e).__name__,
            )
    raise StorageError("File could not be stored")
