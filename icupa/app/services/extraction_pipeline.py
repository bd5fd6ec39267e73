# icupa/app/services/extraction_pipeline.py
"""
Menu extraction pipeline for one vendor website.

Discover menu links → fetch each page → run the extraction chain →
persist items → optionally backfill images → write the scrape log.
Links are processed sequentially; nothing runs in parallel.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

from icupa.app.domain.errors import RepositoryError
from icupa.app.domain.models import (
    JOB_TYPE_MENU_EXTRACTION,
    ExtractedItem,
    ExtractionSummary,
    ScrapeLog,
    normalize_item_name,
)
from icupa.app.infra.db.base import AutomationJobRepository, MenuItemRepository, ScrapeLogRepository
from icupa.app.services.image_backfill import ImageBackfillService
from icupa.services.extraction_chain import MenuExtractionChain
from icupa.services.fetcher import discover_menu_links, fetch_page_content

logger = logging.getLogger(__name__)


def _append_unique(target: list[str], values: list[str]) -> None:
    for value in values:
        if value not in target:
            target.append(value)


class MenuExtractionPipeline:
    def __init__(
        self,
        item_repository: MenuItemRepository,
        job_repository: AutomationJobRepository,
        scrape_log_repository: ScrapeLogRepository,
        extraction_chain: MenuExtractionChain,
        backfill_service: Optional[ImageBackfillService] = None,
        skip_existing: bool = True,
        link_discoverer: Callable[[str], list[str]] = discover_menu_links,
        content_fetcher: Callable[[str], str] = fetch_page_content,
    ):
        self._items = item_repository
        self._jobs = job_repository
        self._scrape_logs = scrape_log_repository
        self._chain = extraction_chain
        self._backfill = backfill_service
        self.skip_existing = skip_existing
        self._discover = link_discoverer
        self._fetch = content_fetcher

    def run(
        self,
        website_url: str,
        vendor_id: str,
        generate_images: bool = True,
        menu_id: Optional[str] = None,
    ) -> ExtractionSummary:
        started = time.monotonic()
        job = self._jobs.create_job(JOB_TYPE_MENU_EXTRACTION, website_url, vendor_id)
        logger.info("Menu extraction started: job=%s, vendor=%s, url=%s", job.id, vendor_id, website_url)

        try:
            summary = self._execute(job.id, website_url, vendor_id, generate_images, menu_id, started)
        except Exception as err:
            self._fail_job(job.id, err)
            raise

        logger.info(
            "Menu extraction finished: job=%s, links=%d, items=%d, images=%d, dt=%dms",
            job.id,
            len(summary.links_found),
            summary.items_extracted,
            summary.images_generated,
            summary.processing_time_ms,
        )
        return summary

    def _execute(
        self,
        job_id: str,
        website_url: str,
        vendor_id: str,
        generate_images: bool,
        menu_id: Optional[str],
        started: float,
    ) -> ExtractionSummary:
        summary = ExtractionSummary(job_id=job_id)
        summary.links_found = self._discover(website_url)
        known_names = self._items.existing_item_names(vendor_id) if self.skip_existing else set()
        productive_links = 0

        for index, link in enumerate(summary.links_found, start=1):
            content = self._fetch(link)
            chain_result = self._chain.run(content, source_url=link)

            _append_unique(summary.models_used, chain_result.models_used)
            _append_unique(summary.degraded_stages, chain_result.degraded_stages)

            if chain_result.items:
                productive_links += 1
            summary.items_extracted += self._persist_items(
                vendor_id, link, chain_result.items, known_names, menu_id
            )

            self._jobs.update_progress(job_id, self._progress(summary, index))

        if generate_images and self._backfill is not None and summary.items_extracted > 0:
            backfill = self._backfill.run(vendor_id=vendor_id)
            summary.images_generated = backfill.generated

        if summary.links_found:
            summary.success_rate = round(100.0 * productive_links / len(summary.links_found), 1)
        summary.processing_time_ms = int((time.monotonic() - started) * 1000)

        self._scrape_logs.insert_log(
            ScrapeLog(
                job_id=job_id,
                vendor_id=vendor_id,
                source_url=website_url,
                links_found=summary.links_found,
                models_used=summary.models_used,
                items_extracted=summary.items_extracted,
                images_generated=summary.images_generated,
                success_rate=summary.success_rate,
                duration_ms=summary.processing_time_ms,
            )
        )
        self._jobs.mark_completed(job_id, self._progress(summary, len(summary.links_found)))
        return summary

    def _persist_items(
        self,
        vendor_id: str,
        source_url: str,
        items: list[ExtractedItem],
        known_names: set[str],
        menu_id: Optional[str] = None,
    ) -> int:
        stored = 0

        for item in items:
            key = normalize_item_name(item.name)
            if self.skip_existing and key and key in known_names:
                logger.debug("Skipping existing item %r for vendor=%s", item.name, vendor_id)
                continue

            self._items.insert_item(vendor_id, source_url, item, menu_id=menu_id)
            stored += 1
            if key:
                known_names.add(key)

        return stored

    @staticmethod
    def _progress(summary: ExtractionSummary, links_processed: int) -> dict[str, Any]:
        return {
            "links_total": len(summary.links_found),
            "links_processed": links_processed,
            "items_extracted": summary.items_extracted,
            "images_generated": summary.images_generated,
            "degraded_stages": list(summary.degraded_stages),
        }

    def _fail_job(self, job_id: str, err: Exception) -> None:
        try:
            self._jobs.mark_failed(job_id, str(err) or type(err).__name__)
        except RepositoryError as mark_err:
            logger.error("Could not mark job %s as failed: %s", job_id, mark_err)
