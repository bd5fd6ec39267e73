# icupa/app/routers/enrichment.py
from __future__ import annotations

import logging
import time
import traceback

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from icupa.app.deps import get_backfill_service, get_extraction_pipeline, get_job_repository
from icupa.app.domain.errors import MenuItemNotFoundError
from icupa.app.infra.db.base import AutomationJobRepository
from icupa.app.schemas.enrichment import (
    ExtractMenuRequest,
    ExtractMenuResponse,
    FillImagesRequest,
    FillImagesResponse,
    GenerateImageRequest,
    GenerateImageResponse,
    JobResponse,
)
from icupa.app.services.extraction_pipeline import MenuExtractionPipeline
from icupa.app.services.image_backfill import ImageBackfillService

log = logging.getLogger("enrichment")
router = APIRouter(tags=["enrichment"])


def error_response(exc: Exception, status_code: int = 500) -> JSONResponse:
    content = {"success": False, "error": str(exc) or type(exc).__name__}
    if status_code >= 500:
        content["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=status_code, content=content)


async def _read_json_object(request: Request) -> dict:
    try:
        payload = await request.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


@router.post("/extract-menu-items", response_model=ExtractMenuResponse)
async def extract_menu_items(
    body: ExtractMenuRequest,
    pipeline: MenuExtractionPipeline = Depends(get_extraction_pipeline),
):
    t0 = time.time()
    log.info("extract.start url=%s bar=%s", body.website_url, body.bar_id)
    try:
        summary = await run_in_threadpool(
            pipeline.run,
            body.website_url,
            body.bar_id,
            body.generate_images,
            body.menu_id,
        )
    except Exception as exc:
        log.exception("extract.fail url=%s dt=%.2fs", body.website_url, time.time() - t0)
        return error_response(exc)

    log.info(
        "extract.ok url=%s job=%s items=%d dt=%.2fs",
        body.website_url,
        summary.job_id,
        summary.items_extracted,
        time.time() - t0,
    )
    return ExtractMenuResponse(
        job_id=summary.job_id,
        items_extracted=summary.items_extracted,
        images_generated=summary.images_generated,
        links_found=summary.links_found,
        models_used=summary.models_used,
        degraded_stages=summary.degraded_stages,
        success_rate=summary.success_rate,
        processing_time_ms=summary.processing_time_ms,
    )


@router.post("/fill-menu-item-images", response_model=FillImagesResponse, response_model_exclude_none=True)
async def fill_menu_item_images(
    request: Request,
    service: ImageBackfillService = Depends(get_backfill_service),
):
    try:
        body = FillImagesRequest.model_validate(await _read_json_object(request))
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors()) from exc

    t0 = time.time()
    log.info("backfill.start batch=%s bar=%s", body.batch_size, body.bar_id)
    try:
        summary = await run_in_threadpool(service.run, body.batch_size, body.bar_id)
    except Exception as exc:
        log.exception("backfill.fail dt=%.2fs", time.time() - t0)
        return error_response(exc)

    elapsed_ms = int((time.time() - t0) * 1000)
    log.info(
        "backfill.ok processed=%d generated=%d failed=%d dt=%dms",
        summary.total_processed,
        summary.generated,
        summary.failed,
        elapsed_ms,
    )
    return FillImagesResponse(
        message="No items to process" if summary.total_processed == 0 else None,
        total_processed=summary.total_processed,
        generated=summary.generated,
        failed=summary.failed,
        processing_time_ms=elapsed_ms,
    )


@router.post("/generate-menu-image", response_model=GenerateImageResponse)
async def generate_menu_image(
    body: GenerateImageRequest,
    service: ImageBackfillService = Depends(get_backfill_service),
):
    try:
        image_url = await run_in_threadpool(service.generate_for_item, body.menu_item_id)
    except MenuItemNotFoundError as exc:
        return error_response(exc, status_code=404)
    except Exception as exc:
        log.exception("generate_image.fail item=%s", body.menu_item_id)
        return error_response(exc)

    log.info("generate_image.ok item=%s", body.menu_item_id)
    return GenerateImageResponse(menu_item_id=body.menu_item_id, image_url=image_url)


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str,
    jobs: AutomationJobRepository = Depends(get_job_repository),
):
    job = await run_in_threadpool(jobs.get_job, job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")

    return JobResponse(
        id=job.id,
        type=job.type,
        status=job.status.value,
        target_url=job.target_url,
        bar_id=job.vendor_id,
        started_at=job.started_at,
        completed_at=job.completed_at,
        progress=job.progress,
        error_message=job.error_message,
    )
