from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ExtractMenuRequest(BaseModel):
    website_url: str = Field(..., min_length=1, description="Vendor website to scan for menus")
    bar_id: str = Field(..., min_length=1, description="Vendor (bar) that owns the extracted items")
    generate_images: bool = Field(default=True, description="Backfill images for the vendor afterwards")
    menu_id: Optional[str] = Field(default=None, description="Menu that new items are attached to")


class ExtractMenuResponse(BaseModel):
    success: bool = True
    job_id: str
    items_extracted: int
    images_generated: int = 0
    links_found: list[str] = Field(default_factory=list)
    models_used: list[str] = Field(default_factory=list)
    degraded_stages: list[str] = Field(default_factory=list)
    success_rate: float = 0.0
    processing_time_ms: int


class FillImagesRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # any JSON value; non-numeric or non-positive values fall back to the default
    batch_size: Any = Field(default=None, alias="batchSize")
    bar_id: Optional[str] = None


class FillImagesResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    total_processed: int
    generated: int
    failed: int
    processing_time_ms: int = 0


class GenerateImageRequest(BaseModel):
    menu_item_id: str = Field(..., min_length=1)


class GenerateImageResponse(BaseModel):
    success: bool = True
    menu_item_id: str
    image_url: str


class JobResponse(BaseModel):
    id: str
    type: str
    status: str
    target_url: Optional[str] = None
    bar_id: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    progress: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
