# workers/image_backfill/config.py
"""
Configuration for the image backfill worker.
"""
from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import find_dotenv, load_dotenv

# class defaults below read the environment at import time
load_dotenv(find_dotenv(usecwd=True))


@dataclass
class WorkerConfig:
    """Configuration for the image backfill worker."""

    # Batch selection
    batch_size: int = int(os.getenv("IMAGE_BACKFILL_BATCH_SIZE", "20"))
    bar_id: str = os.getenv("BACKFILL_BAR_ID", "")

    # Looping: keep taking batches until one comes back empty
    loop: bool = os.getenv("WORKER_LOOP", "false").lower() == "true"
    max_batches: int = int(os.getenv("WORKER_MAX_BATCHES", "0"))  # 0 = infinite
    poll_interval_seconds: int = int(os.getenv("WORKER_POLL_INTERVAL", "5"))

    # List what would be processed without generating anything
    dry_run: bool = os.getenv("WORKER_DRY_RUN", "false").lower() == "true"

    # Supabase (inherited from env)
    supabase_url: str = os.getenv("SUPABASE_URL", "")
    supabase_key: str = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")

    # Image generation
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")

    # Storage backend: "supabase" or "r2"
    storage_backend: str = os.getenv("IMAGE_STORAGE_BACKEND", "supabase")
    r2_bucket_name: str = os.getenv("R2_BUCKET_NAME", "")
    r2_public_url: str = os.getenv("R2_PUBLIC_URL", "")

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.supabase_url:
            errors.append("SUPABASE_URL is required")
        if not self.supabase_key:
            errors.append("SUPABASE_SERVICE_ROLE_KEY is required")
        if not self.dry_run and not self.openai_api_key:
            errors.append("OPENAI_API_KEY is required")
        if self.batch_size <= 0:
            errors.append("IMAGE_BACKFILL_BATCH_SIZE must be positive")
        if self.storage_backend.lower() == "r2":
            if not self.r2_bucket_name:
                errors.append("R2_BUCKET_NAME is required")
            if not self.r2_public_url:
                errors.append("R2_PUBLIC_URL is required")

        return errors


def get_config() -> WorkerConfig:
    """Get worker configuration from environment."""
    return WorkerConfig()
