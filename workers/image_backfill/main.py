from __future__ import annotations

import argparse
import logging
import signal
import sys
import time
from typing import Callable, Sequence

from icupa.app.domain.errors import WorkerConfigurationError
from icupa.app.domain.models import BackfillSummary
from icupa.app.services.image_backfill import ImageBackfillService
from workers.image_backfill.config import WorkerConfig, get_config

logger = logging.getLogger("image-backfill-worker")


class ImageBackfillWorker:
    def __init__(
        self,
        config: WorkerConfig,
        backfill_service: ImageBackfillService,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.service = backfill_service
        self._sleep = sleep
        self.running = False
        self.batches_run = 0
        self.totals = BackfillSummary()
        self.failed_item_ids: list[str] = []

    def start(self) -> BackfillSummary:
        self._validate_configuration()
        self._setup_signal_handlers()
        logger.info(
            "Starting image backfill worker: batch_size=%d, bar=%s, loop=%s, dry_run=%s",
            self.config.batch_size,
            self.config.bar_id or "*",
            self.config.loop,
            self.config.dry_run,
        )

        if self.config.dry_run:
            self.dry_run()
            return self.totals

        self.running = True
        self._run_main_loop()
        logger.info(
            "Worker shutting down: batches=%d, processed=%d, generated=%d, failed=%d",
            self.batches_run,
            self.totals.total_processed,
            self.totals.generated,
            self.totals.failed,
        )
        return self.totals

    def _validate_configuration(self) -> None:
        errors = self.config.validate()
        if errors:
            raise WorkerConfigurationError(errors)

    def _setup_signal_handlers(self) -> None:
        signal.signal(signal.SIGTERM, self._handle_shutdown_signal)
        signal.signal(signal.SIGINT, self._handle_shutdown_signal)

    def _handle_shutdown_signal(self, signum: int, frame: object) -> None:
        logger.info("Received shutdown signal %d", signum)
        self.running = False

    def _run_main_loop(self) -> None:
        while self.running:
            summary = self.run_once()

            if summary.total_processed == 0:
                logger.info("No items left without images")
                break
            if not self.config.loop or self._reached_max_batches():
                break

            self._sleep(self.config.poll_interval_seconds)

    def run_once(self) -> BackfillSummary:
        # failed items keep image_url NULL; skip them for the rest of this run
        summary = self.service.run(
            batch_size=self.config.batch_size,
            vendor_id=self.config.bar_id or None,
            exclude_ids=list(self.failed_item_ids) or None,
        )
        self.batches_run += 1
        self.failed_item_ids.extend(summary.failed_item_ids)
        self.totals.total_processed += summary.total_processed
        self.totals.generated += summary.generated
        self.totals.failed += summary.failed
        self.totals.failed_item_ids.extend(summary.failed_item_ids)
        return summary

    def _reached_max_batches(self) -> bool:
        if self.config.max_batches <= 0:
            return False
        if self.batches_run >= self.config.max_batches:
            logger.info("Reached max batches per run (%d)", self.config.max_batches)
            return True
        return False

    def dry_run(self) -> list:
        items = self.service.list_pending(self.config.batch_size, self.config.bar_id or None)
        for item in items:
            logger.info("[dry-run] would generate image: item=%s bar=%s name=%r", item.id, item.vendor_id, item.name)
        logger.info("[dry-run] %d item(s) without image", len(items))
        return items


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fill missing menu item images")
    parser.add_argument("--batch-size", type=int, default=None, help="items per batch")
    parser.add_argument("--bar-id", default=None, help="only process this vendor")
    parser.add_argument("--loop", action="store_true", help="keep running batches until none are left")
    parser.add_argument("--max-batches", type=int, default=None, help="stop after N batches (0 = no limit)")
    parser.add_argument("--dry-run", action="store_true", help="list items without generating images")
    return parser.parse_args(argv)


def apply_args(config: WorkerConfig, args: argparse.Namespace) -> WorkerConfig:
    if args.batch_size is not None:
        config.batch_size = args.batch_size
    if args.bar_id:
        config.bar_id = args.bar_id
    if args.loop:
        config.loop = True
    if args.max_batches is not None:
        config.max_batches = args.max_batches
    if args.dry_run:
        config.dry_run = True
    return config


def create_default_service(config: WorkerConfig) -> ImageBackfillService:
    from icupa.app.config import settings
    from icupa.app.deps import build_backfill_service
    from icupa.app.infra.db.supabase_menu_repo import create_supabase_client

    client = create_supabase_client(config.supabase_url, config.supabase_key)
    worker_settings = settings.model_copy(
        update={
            "OPENAI_API_KEY": config.openai_api_key,
            "IMAGE_STORAGE_BACKEND": config.storage_backend,
            "IMAGE_BACKFILL_BATCH_SIZE": config.batch_size,
        }
    )
    return build_backfill_service(client, worker_settings)


def main(argv: Sequence[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    config = apply_args(get_config(), parse_args(argv))
    errors = config.validate()
    if errors:
        logger.error("Invalid configuration: %s", ", ".join(errors))
        return 1

    worker = ImageBackfillWorker(config=config, backfill_service=create_default_service(config))
    totals = worker.start()
    return 1 if totals.failed and not totals.generated else 0


if __name__ == "__main__":
    sys.exit(main())
