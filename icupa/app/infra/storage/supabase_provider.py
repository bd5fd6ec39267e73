# icupa/app/infra/storage/supabase_provider.py
"""
Supabase Storage provider. Menu photos live in a public bucket.
"""
from __future__ import annotations

import logging

import httpx
from storage3.utils import StorageException
from supabase import Client

from icupa.app.domain.errors import StorageError, StorageUploadError
from icupa.app.infra.storage.base import DEFAULT_IMAGE_CONTENT_TYPE, StorageProvider

logger = logging.getLogger(__name__)

DEFAULT_BUCKET = "menu_photos"


class SupabaseStorageProvider(StorageProvider):
    """Public Supabase Storage bucket accessed with the service-role client."""

    def __init__(self, client: Client, bucket_name: str = DEFAULT_BUCKET):
        if not bucket_name:
            raise StorageError("Missing storage bucket name")
        self._client = client
        self.bucket_name = bucket_name
        logger.info("SupabaseStorageProvider initialized: bucket=%s", bucket_name)

    def _bucket(self):
        return self._client.storage.from_(self.bucket_name)

    def upload_bytes(
        self,
        object_key: str,
        data: bytes,
        content_type: str = DEFAULT_IMAGE_CONTENT_TYPE,
    ) -> None:
        try:
            self._bucket().upload(
                path=object_key,
                file=data,
                file_options={"content-type": content_type, "upsert": "true"},
            )
        except (StorageException, httpx.HTTPError) as e:
            logger.error("Failed to upload to Supabase Storage: key=%s error=%s", object_key, e)
            raise StorageUploadError(object_key, str(e)) from e

        logger.info("Uploaded object: bucket=%s key=%s size=%d", self.bucket_name, object_key, len(data))

    def get_public_url(self, object_key: str) -> str:
        url = self._bucket().get_public_url(object_key)
        # older storage3 releases append a bare "?" to public urls
        return url.rstrip("?")
