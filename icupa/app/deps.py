# icupa/app/deps.py
"""
Dependency factories. The Supabase client is shared; every service is
constructed per request from it.
"""
from __future__ import annotations

from functools import partial

from fastapi import Depends
from supabase import Client

from icupa.app.config import Settings, settings
from icupa.app.infra.db.base import AutomationJobRepository
from icupa.app.infra.db.supabase_menu_repo import (
    SupabaseAutomationJobRepository,
    SupabaseImageErrorRepository,
    SupabaseMenuItemRepository,
    SupabaseScrapeLogRepository,
    create_supabase_client,
)
from icupa.app.infra.storage.base import StorageProvider
from icupa.app.infra.storage.r2_provider import R2StorageProvider
from icupa.app.infra.storage.supabase_provider import SupabaseStorageProvider
from icupa.app.services.extraction_pipeline import MenuExtractionPipeline
from icupa.app.services.image_backfill import ImageBackfillService
from icupa.services.extraction_chain import MenuExtractionChain
from icupa.services.fetcher import discover_menu_links, fetch_page_content
from icupa.services.image_generation import ImageGenerator
from icupa.services.llm_clients import (
    AnthropicChatModel,
    GeminiChatModel,
    OpenAIChatModel,
    OpenAIImageModel,
)
from icupa.services.prompt_builder import ImagePromptBuilder

_client: Client | None = None


def get_supabase() -> Client:
    global _client
    if _client is None:
        _client = create_supabase_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
    return _client


def build_storage_provider(client: Client, config: Settings = settings) -> StorageProvider:
    if config.IMAGE_STORAGE_BACKEND.lower() == "r2":
        return R2StorageProvider()
    return SupabaseStorageProvider(client, bucket_name=config.MENU_PHOTOS_BUCKET)


def build_backfill_service(client: Client, config: Settings = settings) -> ImageBackfillService:
    prompt_model = OpenAIChatModel(config.OPENAI_API_KEY, model_name=config.PROMPT_MODEL, temperature=0.7)
    image_model = OpenAIImageModel(config.OPENAI_API_KEY, model_name=config.IMAGE_MODEL, size=config.IMAGE_SIZE)

    return ImageBackfillService(
        item_repository=SupabaseMenuItemRepository(client),
        error_repository=SupabaseImageErrorRepository(client),
        storage_provider=build_storage_provider(client, config),
        prompt_builder=ImagePromptBuilder(prompt_model),
        image_generator=ImageGenerator(
            image_model,
            max_retries=config.IMAGE_MAX_RETRIES,
            retry_delay_seconds=config.IMAGE_RETRY_DELAY_SECONDS,
        ),
        rate_delay_seconds=config.IMAGE_RATE_DELAY_SECONDS,
        default_batch_size=config.IMAGE_BACKFILL_BATCH_SIZE,
    )


def build_extraction_chain(config: Settings = settings) -> MenuExtractionChain:
    return MenuExtractionChain(
        extractor=OpenAIChatModel(config.OPENAI_API_KEY, model_name=config.EXTRACT_MODEL),
        cleaner=AnthropicChatModel(config.ANTHROPIC_API_KEY, model_name=config.CLEAN_MODEL),
        enhancer=GeminiChatModel(config.GEMINI_API_KEY, model_name=config.ENHANCE_MODEL),
        max_content_chars=config.EXTRACTION_MAX_CONTENT_CHARS,
    )


def get_backfill_service(supa: Client = Depends(get_supabase)) -> ImageBackfillService:
    return build_backfill_service(supa)


def get_extraction_pipeline(
    supa: Client = Depends(get_supabase),
    backfill: ImageBackfillService = Depends(get_backfill_service),
) -> MenuExtractionPipeline:
    timeout = settings.HTTP_TIMEOUT_SECONDS
    return MenuExtractionPipeline(
        item_repository=SupabaseMenuItemRepository(supa),
        job_repository=SupabaseAutomationJobRepository(supa),
        scrape_log_repository=SupabaseScrapeLogRepository(supa),
        extraction_chain=build_extraction_chain(),
        backfill_service=backfill,
        skip_existing=settings.EXTRACTION_SKIP_EXISTING,
        link_discoverer=partial(discover_menu_links, timeout=timeout),
        content_fetcher=partial(fetch_page_content, timeout=timeout),
    )


def get_job_repository(supa: Client = Depends(get_supabase)) -> AutomationJobRepository:
    return SupabaseAutomationJobRepository(supa)
