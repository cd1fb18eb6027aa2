"""
marketplace.services.storage

Blob storage for deliverables.

Only the service role may sign URLs; buyers never get a permanent link.
The backend is chosen by dotted path (SEEDBAY_BLOB_STORE) so tests and other
deployments can swap it without touching the download gate.

Deliverable rows may hold a bare object key ("listing/file.zip") or a full
hosted-storage URL ("https://<ref>.supabase.co/storage/v1/object/public/<bucket>/<key>").
normalize_storage_path() turns either into the object key.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote, urlparse

import requests
from django.utils.module_loading import import_string

from marketplace.conf import StorageConfig, get_storage_config

log = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10


class BlobStoreError(Exception):
    pass


class BlobStore:
    """Interface: issue a short-lived download URL for an object key."""

    def __init__(self, config: Optional[StorageConfig] = None) -> None:
        self.config = config or get_storage_config()

    def issue_temporary_download_url(self, object_path: str, ttl: int) -> str:
        raise NotImplementedError


class SupabaseBlobStore(BlobStore):
    """Supabase Storage REST API: POST /storage/v1/object/sign/<bucket>/<key>."""

    def _headers(self) -> dict:
        key = self.config.service_key
        return {
            "Authorization": f"Bearer {key}",
            "apikey": key,
            "Content-Type": "application/json",
        }

    def issue_temporary_download_url(self, object_path: str, ttl: int) -> str:
        cfg = self.config
        if not cfg.base_url or not cfg.service_key:
            raise BlobStoreError("Storage is not configured (SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY).")

        url = f"{cfg.base_url}/storage/v1/object/sign/{cfg.bucket}/{quote(object_path)}"
        try:
            resp = requests.post(url, json={"expiresIn": int(ttl)}, headers=self._headers(), timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise BlobStoreError(f"Storage request failed: {e}")

        if resp.status_code >= 400:
            raise BlobStoreError(f"Storage refused to sign object (HTTP {resp.status_code}).")

        try:
            data = resp.json()
        except ValueError:
            raise BlobStoreError("Storage returned a non-JSON response.")

        signed = (data or {}).get("signedURL") or (data or {}).get("signedUrl")
        if not signed:
            raise BlobStoreError("Storage response has no signed URL.")
        if signed.startswith("http://") or signed.startswith("https://"):
            return signed
        if not signed.startswith("/"):
            signed = "/" + signed
        return f"{cfg.base_url}/storage/v1{signed}"


def get_blob_store() -> BlobStore:
    cfg = get_storage_config()
    backend_cls = import_string(cfg.backend)
    return backend_cls(cfg)


def normalize_storage_path(url_or_path: str, bucket: str) -> Optional[str]:
    """Object key for a bare key or a /object/{public|sign}/<bucket>/<key> URL; None if unusable."""
    if not url_or_path:
        return None
    if "://" not in url_or_path:
        return url_or_path.lstrip("/") or None

    try:
        parts = [p for p in urlparse(url_or_path).path.split("/") if p]
    except ValueError:
        return None
    if "object" not in parts:
        return None

    after = parts[parts.index("object") + 1:]
    if after[:1] == [bucket]:
        bucket_idx = 0
    elif after[1:2] == [bucket]:
        bucket_idx = 1
    else:
        return None

    path = "/".join(after[bucket_idx + 1:])
    return path or None


def file_name_for(object_path: str) -> str:
    return object_path.rstrip("/").split("/")[-1] or "download"
