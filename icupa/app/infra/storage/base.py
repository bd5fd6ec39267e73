# icupa/app/infra/storage/base.py
"""
Abstract base class for storage providers.
This interface allows easy swapping between different storage backends (Supabase Storage, R2, ...)
"""
from __future__ import annotations

from abc import ABC, abstractmethod

DEFAULT_IMAGE_CONTENT_TYPE = "image/jpeg"


class StorageProvider(ABC):
    """
    Abstract interface for public object storage.

    Implementations:
    - SupabaseStorageProvider: Supabase Storage bucket (default)
    - R2StorageProvider: Cloudflare R2 (S3-compatible)
    """

    @abstractmethod
    def upload_bytes(
        self,
        object_key: str,
        data: bytes,
        content_type: str = DEFAULT_IMAGE_CONTENT_TYPE,
    ) -> None:
        """
        Upload an object, replacing any existing object at the same key.

        Args:
            object_key: The key/path where the object will be stored
            data: Raw object bytes
            content_type: MIME type of the content (e.g., "image/jpeg")
        """
        pass

    @abstractmethod
    def get_public_url(self, object_key: str) -> str:
        """
        Public URL under which the object is served.

        Args:
            object_key: The key/path of the object

        Returns:
            The public URL
        """
        pass

    def generate_item_image_key(self, vendor_id: str, item_id: str) -> str:
        """
        Deterministic key for a menu item's image.

        Format: bar_{vendor_id}/item_{item_id}.jpg

        Re-uploading for the same item always targets the same key.
        """
        return f"bar_{vendor_id}/item_{item_id}.jpg"
