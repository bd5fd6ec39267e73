from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, TypeVar
from uuid import uuid4

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from icupa.app.config import settings
from icupa.app.domain.errors import RepositoryError
from icupa.app.domain.models import (
    AutomationJob,
    ExtractedItem,
    ImageError,
    JobStatus,
    MenuItem,
    ScrapeLog,
    normalize_item_name,
)
from icupa.app.infra.db.base import (
    AutomationJobRepository,
    ImageErrorRepository,
    MenuItemRepository,
    ScrapeLogRepository,
)
from icupa.services.errors import ProviderConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

VENDOR_COLUMN = "bar_id"
MENU_ITEM_COLUMNS = "id, bar_id, name, description, price, category, image_url, source_url"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value: str | datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        return None

    try:
        normalized = value.replace("Z", "+00:00") if value.endswith("Z") else value
        return datetime.fromisoformat(normalized)
    except ValueError:
        return None


def _safe_str(value: object) -> str | None:
    return str(value) if value else None


def _row_to_item(row: dict[str, Any]) -> MenuItem:
    return MenuItem(
        id=str(row["id"]),
        vendor_id=str(row.get(VENDOR_COLUMN) or ""),
        name=str(row.get("name") or ""),
        description=_safe_str(row.get("description")),
        price=row.get("price"),
        category=_safe_str(row.get("category")),
        image_url=_safe_str(row.get("image_url")),
        source_url=_safe_str(row.get("source_url")),
    )


def _row_to_job(row: dict[str, Any]) -> AutomationJob:
    progress = row.get("progress_data")
    return AutomationJob(
        id=str(row["id"]),
        type=str(row.get("job_type") or ""),
        status=JobStatus(str(row.get("status") or JobStatus.PENDING.value)),
        target_url=_safe_str(row.get("target_url")),
        vendor_id=_safe_str(row.get(VENDOR_COLUMN)),
        started_at=_parse_datetime(row.get("started_at")),
        completed_at=_parse_datetime(row.get("completed_at")),
        progress=progress if isinstance(progress, dict) else {},
        error_message=_safe_str(row.get("error_message")),
    )


def create_supabase_client(url: str, key: str) -> Client:
    if not url or not key:
        raise ProviderConfigurationError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY required")
    return create_client(url, key)


def _create_supabase_client() -> Client:
    return create_supabase_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)


class _SupabaseTable:
    TABLE_NAME = ""

    def __init__(self, client: Client | None = None):
        self._client = client or _create_supabase_client()

    def _table(self):
        return self._client.table(self.TABLE_NAME)

    def _execute(self, operation: str, call: Callable[[], T]) -> T:
        try:
            return call()
        except (APIError, httpx.HTTPError) as error:
            logger.error("%s.%s failed: %s", self.TABLE_NAME, operation, error)
            raise RepositoryError(operation, str(error)) from error


class SupabaseMenuItemRepository(_SupabaseTable, MenuItemRepository):
    TABLE_NAME = "menu_items"

    def list_items_missing_image(
        self,
        limit: int,
        vendor_id: str | None = None,
        exclude_ids: list[str] | None = None,
    ) -> list[MenuItem]:
        query = self._table().select(MENU_ITEM_COLUMNS).is_("image_url", "null")

        if vendor_id:
            query = query.eq(VENDOR_COLUMN, vendor_id)
        if exclude_ids:
            query = query.not_.in_("id", exclude_ids)

        result = self._execute("list_items_missing_image", lambda: query.limit(limit).execute())
        return [_row_to_item(row) for row in (result.data or [])]

    def get_item(self, item_id: str) -> MenuItem | None:
        result = self._execute(
            "get_item",
            lambda: self._table().select(MENU_ITEM_COLUMNS).eq("id", item_id).limit(1).execute(),
        )
        rows = result.data or []
        return _row_to_item(rows[0]) if rows else None

    def existing_item_names(self, vendor_id: str) -> set[str]:
        result = self._execute(
            "existing_item_names",
            lambda: self._table().select("name").eq(VENDOR_COLUMN, vendor_id).execute(),
        )
        names = (normalize_item_name(row.get("name")) for row in (result.data or []))
        return {name for name in names if name}

    def insert_item(
        self,
        vendor_id: str,
        source_url: str,
        item: ExtractedItem,
        menu_id: str | None = None,
    ) -> MenuItem:
        row = {
            "id": str(uuid4()),
            VENDOR_COLUMN: vendor_id,
            "source_url": source_url,
            **item.to_dict(),
        }
        if menu_id:
            row["menu_id"] = menu_id

        result = self._execute("insert_item", lambda: self._table().insert(row).execute())
        if not result.data:
            raise RepositoryError("insert_item", "insert returned no row")
        return _row_to_item(result.data[0])

    def set_image_url(self, item_id: str, image_url: str) -> None:
        result = self._execute(
            "set_image_url",
            lambda: self._table().update({"image_url": image_url}).eq("id", item_id).execute(),
        )
        if not result.data:
            raise RepositoryError("set_image_url", f"menu item {item_id} not updated")


class SupabaseAutomationJobRepository(_SupabaseTable, AutomationJobRepository):
    TABLE_NAME = "automation_jobs"

    def create_job(self, job_type: str, target_url: str | None, vendor_id: str | None) -> AutomationJob:
        now = _now_utc()
        row = {
            "id": str(uuid4()),
            "job_type": job_type,
            "status": JobStatus.RUNNING.value,
            "target_url": target_url,
            VENDOR_COLUMN: vendor_id,
            "started_at": now.isoformat(),
            "created_at": now.isoformat(),
            "progress_data": {},
        }

        result = self._execute("create_job", lambda: self._table().insert(row).execute())
        if not result.data:
            raise RepositoryError("create_job", "insert returned no row")

        job = _row_to_job(result.data[0])
        logger.info("Created automation job: id=%s, type=%s, target=%s", job.id, job_type, target_url)
        return job

    def update_progress(self, job_id: str, progress: dict[str, Any]) -> None:
        self._execute(
            "update_progress",
            lambda: self._table().update({"progress_data": progress}).eq("id", job_id).execute(),
        )

    def mark_completed(self, job_id: str, progress: dict[str, Any]) -> None:
        update_data = {
            "status": JobStatus.COMPLETED.value,
            "completed_at": _now_utc().isoformat(),
            "progress_data": progress,
            "error_message": None,
        }
        self._execute("mark_completed", lambda: self._table().update(update_data).eq("id", job_id).execute())
        logger.info("Job completed: id=%s", job_id)

    def mark_failed(self, job_id: str, error_message: str) -> None:
        update_data = {
            "status": JobStatus.FAILED.value,
            "completed_at": _now_utc().isoformat(),
            "error_message": error_message,
        }
        self._execute("mark_failed", lambda: self._table().update(update_data).eq("id", job_id).execute())
        logger.error("Job failed: id=%s, error=%s", job_id, error_message)

    def get_job(self, job_id: str) -> AutomationJob | None:
        result = self._execute(
            "get_job",
            lambda: self._table().select("*").eq("id", job_id).limit(1).execute(),
        )
        rows = result.data or []
        return _row_to_job(rows[0]) if rows else None


class SupabaseScrapeLogRepository(_SupabaseTable, ScrapeLogRepository):
    TABLE_NAME = "menu_scraping_logs"

    def insert_log(self, log: ScrapeLog) -> None:
        row = {
            "automation_job_id": log.job_id,
            VENDOR_COLUMN: log.vendor_id,
            "website_url": log.source_url,
            "menu_links_found": log.links_found,
            "ai_models_used": log.models_used,
            "items_extracted": log.items_extracted,
            "images_generated": log.images_generated,
            "success_rate": log.success_rate,
            "processing_time_ms": log.duration_ms,
        }
        self._execute("insert_log", lambda: self._table().insert(row).execute())


class SupabaseImageErrorRepository(_SupabaseTable, ImageErrorRepository):
    TABLE_NAME = "image_errors"

    def log_error(self, item_id: str, reason: str) -> ImageError:
        error = ImageError(item_id=item_id, reason=reason, timestamp=_now_utc())
        row = {
            "item_id": error.item_id,
            "reason": error.reason,
            "timestamp": error.timestamp.isoformat(),
        }
        self._execute("log_error", lambda: self._table().insert(row).execute())
        return error
