# icupa/app/domain/models.py
"""
Domain models for the menu enrichment pipeline.
These are pure data structures with no infrastructure dependencies.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class JobStatus(str, Enum):
    """Lifecycle of an automation job."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ItemCategory(str, Enum):
    """Categories the extraction prompts ask for. Not enforced on model output."""
    STARTER = "starter"
    MAIN = "main"
    DRINK = "drink"
    DESSERT = "dessert"
    OTHER = "other"


JOB_TYPE_MENU_EXTRACTION = "menu_extraction"


def normalize_item_name(name: Any) -> str:
    """Dedupe key for an item name: lowercase, single-spaced."""
    if not isinstance(name, str):
        return ""
    return " ".join(name.split()).lower()


@dataclass
class MenuItem:
    """A menu item row as stored in `menu_items`."""
    id: str
    vendor_id: str
    name: str
    description: Optional[str] = None
    price: Any = None
    category: Optional[str] = None
    image_url: Optional[str] = None
    source_url: Optional[str] = None

    @property
    def needs_image(self) -> bool:
        return not self.image_url


@dataclass
class ExtractedItem:
    """
    Loosely typed record produced by the extraction chain.
    Values are kept exactly as the model returned them.
    """
    name: Any = None
    description: Any = None
    price: Any = None
    category: Any = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExtractedItem":
        return cls(
            name=data.get("name"),
            description=data.get("description"),
            price=data.get("price"),
            category=data.get("category"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "category": self.category,
        }


@dataclass
class AutomationJob:
    """One pipeline invocation, tracked in `automation_jobs`."""
    id: str
    type: str
    status: JobStatus
    target_url: Optional[str] = None
    vendor_id: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    progress: dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None

    @property
    def is_finished(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass
class ScrapeLog:
    """Append-only record written once per extraction run."""
    job_id: str
    vendor_id: str
    source_url: str
    links_found: list[str] = field(default_factory=list)
    models_used: list[str] = field(default_factory=list)
    items_extracted: int = 0
    images_generated: int = 0
    success_rate: float = 0.0
    duration_ms: int = 0


@dataclass
class ImageError:
    """Diagnostic row for a menu item whose image could not be produced."""
    item_id: str
    reason: str
    timestamp: datetime


@dataclass
class ChainResult:
    """Output of the multi-model extraction chain for one page."""
    items: list[ExtractedItem]
    models_used: list[str] = field(default_factory=list)
    degraded_stages: list[str] = field(default_factory=list)


@dataclass
class BackfillSummary:
    total_processed: int = 0
    generated: int = 0
    failed: int = 0
    failed_item_ids: list[str] = field(default_factory=list)


@dataclass
class ExtractionSummary:
    job_id: str
    links_found: list[str] = field(default_factory=list)
    items_extracted: int = 0
    images_generated: int = 0
    models_used: list[str] = field(default_factory=list)
    degraded_stages: list[str] = field(default_factory=list)
    success_rate: float = 0.0
    processing_time_ms: int = 0
