# icupa/app/services/image_backfill.py
"""
Image backfill: generate, store and attach images for menu items that have none.
"""
from __future__ import annotations

import logging
import math
import time
from typing import Any, Callable, Optional

from icupa.app.domain.errors import MenuItemNotFoundError, RepositoryError
from icupa.app.domain.models import BackfillSummary, MenuItem
from icupa.app.infra.db.base import ImageErrorRepository, MenuItemRepository
from icupa.app.infra.storage.base import DEFAULT_IMAGE_CONTENT_TYPE, StorageProvider
from icupa.services.image_generation import ImageGenerator
from icupa.services.prompt_builder import ImagePromptBuilder

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 20
# ~55 image requests per minute
DEFAULT_RATE_DELAY_SECONDS = 1.1


def resolve_batch_size(value: Any, default: int = DEFAULT_BATCH_SIZE) -> int:
    """Positive numeric values are used as-is (truncated); anything else means the default."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if isinstance(value, float) and not math.isfinite(value):
        return default
    if value <= 0:
        return default
    return max(1, int(value))


class ImageBackfillService:
    """
    Processes one batch of items lacking an image.

    Per item: build prompt → generate (bounded retries) → download →
    upload to a deterministic key (upsert) → save the public URL.
    A failure at any step is written to the image error table and the
    batch moves on to the next item. A fixed delay follows every item.
    """

    def __init__(
        self,
        item_repository: MenuItemRepository,
        error_repository: ImageErrorRepository,
        storage_provider: StorageProvider,
        prompt_builder: ImagePromptBuilder,
        image_generator: ImageGenerator,
        rate_delay_seconds: float = DEFAULT_RATE_DELAY_SECONDS,
        default_batch_size: int = DEFAULT_BATCH_SIZE,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._items = item_repository
        self._errors = error_repository
        self._storage = storage_provider
        self._prompts = prompt_builder
        self._generator = image_generator
        self.rate_delay_seconds = rate_delay_seconds
        self.default_batch_size = default_batch_size
        self._sleep = sleep

    def list_pending(
        self,
        batch_size: Any = None,
        vendor_id: Optional[str] = None,
        exclude_ids: Optional[list[str]] = None,
    ) -> list[MenuItem]:
        limit = resolve_batch_size(batch_size, self.default_batch_size)
        return self._items.list_items_missing_image(limit=limit, vendor_id=vendor_id, exclude_ids=exclude_ids)

    def run(
        self,
        batch_size: Any = None,
        vendor_id: Optional[str] = None,
        exclude_ids: Optional[list[str]] = None,
    ) -> BackfillSummary:
        """
        One pass over a batch. `exclude_ids` lets a caller running several
        passes skip items that already failed earlier in the same run.
        """
        items = self.list_pending(batch_size, vendor_id, exclude_ids)
        summary = BackfillSummary(total_processed=len(items))

        if not items:
            logger.info("No menu items without images (vendor=%s)", vendor_id)
            return summary

        logger.info("Image backfill started: items=%d, vendor=%s", len(items), vendor_id)

        for index, item in enumerate(items, start=1):
            try:
                self.process_item(item)
                summary.generated += 1
                logger.info("Image saved (%d/%d): item=%s", index, len(items), item.id)
            except Exception as err:
                summary.failed += 1
                summary.failed_item_ids.append(item.id)
                self._record_failure(item, err)

            self._sleep(self.rate_delay_seconds)

        logger.info(
            "Image backfill finished: processed=%d, generated=%d, failed=%d",
            summary.total_processed,
            summary.generated,
            summary.failed,
        )
        return summary

    def process_item(self, item: MenuItem) -> str:
        prompt = self._prompts.build(item.name, item.description)
        generated_url = self._generator.generate_url(prompt)
        image_bytes = self._generator.download(generated_url)

        object_key = self._storage.generate_item_image_key(item.vendor_id, item.id)
        self._storage.upload_bytes(object_key, image_bytes, content_type=DEFAULT_IMAGE_CONTENT_TYPE)
        public_url = self._storage.get_public_url(object_key)

        self._items.set_image_url(item.id, public_url)
        return public_url

    def generate_for_item(self, item_id: str) -> str:
        """Single-item variant: same steps, errors propagate to the caller."""
        item = self._items.get_item(item_id)
        if item is None:
            raise MenuItemNotFoundError(item_id)
        return self.process_item(item)

    def _record_failure(self, item: MenuItem, err: Exception) -> None:
        reason = str(err) or type(err).__name__
        logger.warning("Image backfill failed: item=%s, reason=%s", item.id, reason)

        try:
            self._errors.log_error(item.id, reason)
        except RepositoryError as log_err:
            logger.error("Could not record image error for item=%s: %s", item.id, log_err)
