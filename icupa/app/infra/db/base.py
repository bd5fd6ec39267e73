# icupa/app/infra/db/base.py
"""
Abstract repositories for the enrichment pipeline tables.
This interface allows easy swapping between different datastores.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from icupa.app.domain.models import (
    AutomationJob,
    ExtractedItem,
    ImageError,
    MenuItem,
    ScrapeLog,
)


class MenuItemRepository(ABC):
    """
    Access to `menu_items`.

    Implementations:
    - SupabaseMenuItemRepository: PostgREST via supabase-py
    """

    @abstractmethod
    def list_items_missing_image(
        self,
        limit: int,
        vendor_id: Optional[str] = None,
        exclude_ids: Optional[list[str]] = None,
    ) -> list[MenuItem]:
        """
        Items whose image_url IS NULL, at most `limit` of them.

        Args:
            limit: Batch size
            vendor_id: Restrict to one vendor when given
            exclude_ids: Item ids to leave out of the selection

        Returns:
            Items in datastore order
        """
        pass

    @abstractmethod
    def get_item(self, item_id: str) -> Optional[MenuItem]:
        pass

    @abstractmethod
    def existing_item_names(self, vendor_id: str) -> set[str]:
        """
        Normalized names of every item already stored for a vendor.
        Used as the dedupe key when re-running extraction.
        """
        pass

    @abstractmethod
    def insert_item(
        self,
        vendor_id: str,
        source_url: str,
        item: ExtractedItem,
        menu_id: Optional[str] = None,
    ) -> MenuItem:
        """
        Insert one extracted item. No transaction spans several calls.

        Args:
            vendor_id: Owning vendor (bar)
            source_url: Page the item was extracted from
            item: Item exactly as produced by the extraction chain
            menu_id: Menu the item belongs to, for schemas where `menu_items.menu_id` is required

        Returns:
            The stored MenuItem
        """
        pass

    @abstractmethod
    def set_image_url(self, item_id: str, image_url: str) -> None:
        pass


class AutomationJobRepository(ABC):
    """Lifecycle of `automation_jobs` rows: pending → running → completed | failed."""

    @abstractmethod
    def create_job(
        self,
        job_type: str,
        target_url: Optional[str],
        vendor_id: Optional[str],
    ) -> AutomationJob:
        """Create a job already in RUNNING state with started_at set."""
        pass

    @abstractmethod
    def update_progress(self, job_id: str, progress: dict[str, Any]) -> None:
        pass

    @abstractmethod
    def mark_completed(self, job_id: str, progress: dict[str, Any]) -> None:
        pass

    @abstractmethod
    def mark_failed(self, job_id: str, error_message: str) -> None:
        pass

    @abstractmethod
    def get_job(self, job_id: str) -> Optional[AutomationJob]:
        pass


class ScrapeLogRepository(ABC):
    @abstractmethod
    def insert_log(self, log: ScrapeLog) -> None:
        """Append one scrape log row."""
        pass


class ImageErrorRepository(ABC):
    @abstractmethod
    def log_error(self, item_id: str, reason: str) -> ImageError:
        """Record why an item's image could not be produced."""
        pass
