#civiceye/services/storage.py
import logging
import os
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

import requests

from civiceye.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredImage:
    filename: str
    original_name: Optional[str]
    content_type: str
    size: int


def make_object_key(filename: str) -> str:
    ext = (filename.rsplit(".", 1)[-1] if "." in filename else "jpg").lower() or "jpg"
    return f"issue-{int(time.time() * 1000)}-{uuid.uuid4().hex}.{ext}"


class MediaStorage:
    """Stores issue photos and releases them again when an issue is deleted.

    Uses Supabase Storage over REST when configured (bucket must be public),
    otherwise a local directory. Issues only keep the returned filename.
    """

    def __init__(self, config: Optional[Settings] = None):
        config = config or default_settings
        self.supabase_url = config.supabase_url
        self.service_role = config.supabase_service_role
        self.bucket = config.supabase_bucket
        self.upload_dir = Path(config.upload_dir)
        self.timeout = 30

    @property
    def remote(self) -> bool:
        return bool(self.supabase_url and self.service_role)

    def _object_url(self, key: str) -> str:
        return f"{self.supabase_url}/storage/v1/object/{self.bucket}/{key}"

    def save(self, data: bytes, content_type: str, original_name: Optional[str]) -> StoredImage:
        key = make_object_key(original_name or "upload.jpg")
        if self.remote:
            r = requests.post(self._object_url(key), headers={
                "Authorization": f"Bearer {self.service_role}",
                "Content-Type": content_type,
                "x-upsert": "true",
            }, data=data, timeout=self.timeout)
            r.raise_for_status()
        else:
            self.upload_dir.mkdir(parents=True, exist_ok=True)
            (self.upload_dir / key).write_bytes(data)
        return StoredImage(filename=key, original_name=original_name, content_type=content_type, size=len(data))

    def release(self, filenames: Iterable[str]) -> None:
        """Best effort: the issue row is already gone, so failures are only logged."""
        for name in filenames:
            try:
                if self.remote:
                    r = requests.delete(self._object_url(name), headers={
                        "Authorization": f"Bearer {self.service_role}",
                    }, timeout=self.timeout)
                    if r.status_code not in (200, 204, 404):
                        r.raise_for_status()
                else:
                    path = self.upload_dir / os.path.basename(name)
                    if path.exists():
                        path.unlink()
            except (requests.RequestException, OSError) as e:
                logger.warning("failed to release media %s: %s", name, e)

    def public_url(self, filename: str) -> str:
        if self.remote:
            return f"{self.supabase_url}/storage/v1/object/public/{self.bucket}/{filename}"
        return f"/uploads/issues/{filename}"
