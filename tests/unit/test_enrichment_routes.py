from __future__ import annotations

from datetime import datetime, timezone
from functools import partial
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

from icupa.app.deps import get_backfill_service, get_extraction_pipeline, get_job_repository
from icupa.app.domain.errors import MenuItemNotFoundError
from icupa.app.domain.models import (
    AutomationJob,
    BackfillSummary,
    ExtractedItem,
    ExtractionSummary,
    ImageError,
    JobStatus,
    MenuItem,
    ScrapeLog,
)
from icupa.app.infra.db.base import (
    AutomationJobRepository,
    ImageErrorRepository,
    MenuItemRepository,
    ScrapeLogRepository,
)
from icupa.app.infra.storage.base import StorageProvider
from icupa.app.main import app
from icupa.app.services.extraction_pipeline import MenuExtractionPipeline
from icupa.app.services.image_backfill import ImageBackfillService
from icupa.services.errors import ProviderConfigurationError
from icupa.services.extraction_chain import MenuExtractionChain
from icupa.services.fetcher import discover_menu_links, fetch_page_content
from icupa.services.image_generation import ImageGenerator
from icupa.services.prompt_builder import ImagePromptBuilder


@pytest.fixture
def backfill() -> MagicMock:
    return MagicMock()


@pytest.fixture
def pipeline() -> MagicMock:
    return MagicMock()


@pytest.fixture
def jobs() -> MagicMock:
    return MagicMock()


@pytest.fixture
def client(backfill: MagicMock, pipeline: MagicMock, jobs: MagicMock):
    app.dependency_overrides[get_backfill_service] = lambda: backfill
    app.dependency_overrides[get_extraction_pipeline] = lambda: pipeline
    app.dependency_overrides[get_job_repository] = lambda: jobs
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealth:
    def test_health(self, client: TestClient) -> None:
        assert client.get("/health").json() == {"ok": True}


class TestExtractMenuItems:
    def test_returns_summary(self, client: TestClient, pipeline: MagicMock) -> None:
        pipeline.run.return_value = ExtractionSummary(
            job_id="job-1",
            links_found=["https://bar.test/menu"],
            items_extracted=4,
            images_generated=2,
            models_used=["gpt-4o-mini", "claude-3-5-haiku-latest", "gemini-2.5-flash"],
            success_rate=100.0,
            processing_time_ms=1500,
        )

        response = client.post(
            "/extract-menu-items",
            json={"website_url": "https://bar.test", "bar_id": "bar-1"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["job_id"] == "job-1"
        assert body["items_extracted"] == 4
        assert body["images_generated"] == 2
        pipeline.run.assert_called_once_with("https://bar.test", "bar-1", True, None)

    def test_missing_fields_rejected(self, client: TestClient) -> None:
        response = client.post("/extract-menu-items", json={"website_url": "https://bar.test"})
        assert response.status_code == 422

    def test_failure_returns_error_body(self, client: TestClient, pipeline: MagicMock) -> None:
        pipeline.run.side_effect = RuntimeError("database unavailable")

        response = client.post(
            "/extract-menu-items",
            json={"website_url": "https://bar.test", "bar_id": "bar-1"},
        )

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "database unavailable"
        assert "RuntimeError" in body["stack"]


class TestFillMenuItemImages:
    def test_processes_batch(self, client: TestClient, backfill: MagicMock) -> None:
        backfill.run.return_value = BackfillSummary(total_processed=3, generated=2, failed=1)

        response = client.post("/fill-menu-item-images", json={"batchSize": 3})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert (body["total_processed"], body["generated"], body["failed"]) == (3, 2, 1)
        assert "message" not in body
        backfill.run.assert_called_once_with(3, None)

    def test_empty_body_uses_defaults(self, client: TestClient, backfill: MagicMock) -> None:
        backfill.run.return_value = BackfillSummary()

        response = client.post("/fill-menu-item-images")

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "No items to process"
        assert body["total_processed"] == 0
        backfill.run.assert_called_once_with(None, None)

    def test_non_numeric_batch_size_is_passed_through(self, client: TestClient, backfill: MagicMock) -> None:
        backfill.run.return_value = BackfillSummary()

        client.post("/fill-menu-item-images", json={"batchSize": "abc", "bar_id": "bar-1"})

        backfill.run.assert_called_once_with("abc", "bar-1")

    def test_failure_returns_error_body(self, client: TestClient, backfill: MagicMock) -> None:
        backfill.run.side_effect = RuntimeError("listing failed")

        response = client.post("/fill-menu-item-images", json={})

        assert response.status_code == 500
        assert response.json()["success"] is False


class TestGenerateMenuImage:
    def test_generates_single_image(self, client: TestClient, backfill: MagicMock) -> None:
        backfill.generate_for_item.return_value = "https://cdn.test/bar_1/item_9.jpg"

        response = client.post("/generate-menu-image", json={"menu_item_id": "9"})

        assert response.status_code == 200
        assert response.json()["image_url"] == "https://cdn.test/bar_1/item_9.jpg"

    def test_unknown_item(self, client: TestClient, backfill: MagicMock) -> None:
        backfill.generate_for_item.side_effect = MenuItemNotFoundError("9")

        response = client.post("/generate-menu-image", json={"menu_item_id": "9"})

        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Menu item not found: 9"}


class TestGetJob:
    def test_returns_job(self, client: TestClient, jobs: MagicMock) -> None:
        jobs.get_job.return_value = AutomationJob(
            id="job-1",
            type="menu_extraction",
            status=JobStatus.COMPLETED,
            target_url="https://bar.test",
            vendor_id="bar-1",
            started_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
            progress={"links_total": 1},
        )

        response = client.get("/jobs/job-1")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "completed"
        assert body["bar_id"] == "bar-1"
        assert body["progress"] == {"links_total": 1}

    def test_missing_job(self, client: TestClient, jobs: MagicMock) -> None:
        jobs.get_job.return_value = None
        assert client.get("/jobs/nope").status_code == 404


class TestProviderConfiguration:
    def test_missing_provider_key_returns_error_body(self, client: TestClient) -> None:
        def broken_dependency():
            raise ProviderConfigurationError("Missing OpenAI API key.")

        app.dependency_overrides[get_backfill_service] = broken_dependency

        response = client.post("/fill-menu-item-images", json={})

        assert response.status_code == 500
        assert response.json()["error"] == "Missing OpenAI API key."


class MenuItemRepositoryStub(MenuItemRepository):
    def __init__(self, items: list[MenuItem] | None = None) -> None:
        self.items = {item.id: item for item in items or []}
        self.inserted: list[ExtractedItem] = []

    def list_items_missing_image(self, limit: int, vendor_id=None, exclude_ids=None) -> list[MenuItem]:
        pending = [item for item in self.items.values() if item.needs_image]
        return pending[:limit]

    def get_item(self, item_id: str) -> MenuItem | None:
        return self.items.get(item_id)

    def existing_item_names(self, vendor_id: str) -> set[str]:
        return set()

    def insert_item(self, vendor_id: str, source_url: str, item: ExtractedItem, menu_id=None) -> MenuItem:
        self.inserted.append(item)
        return MenuItem(id=f"new-{len(self.inserted)}", vendor_id=vendor_id, name=str(item.name))

    def set_image_url(self, item_id: str, image_url: str) -> None:
        self.items[item_id].image_url = image_url


class ImageErrorRepositoryStub(ImageErrorRepository):
    def __init__(self) -> None:
        self.errors: list[ImageError] = []

    def log_error(self, item_id: str, reason: str) -> ImageError:
        error = ImageError(item_id=item_id, reason=reason, timestamp=datetime.now(timezone.utc))
        self.errors.append(error)
        return error


class JobRepositoryStub(AutomationJobRepository):
    def __init__(self) -> None:
        self.job: AutomationJob | None = None

    def create_job(self, job_type: str, target_url: str | None, vendor_id: str | None) -> AutomationJob:
        self.job = AutomationJob(
            id="job-42",
            type=job_type,
            status=JobStatus.RUNNING,
            target_url=target_url,
            vendor_id=vendor_id,
        )
        return self.job

    def update_progress(self, job_id: str, progress: dict[str, Any]) -> None:
        self.job.progress = progress

    def mark_completed(self, job_id: str, progress: dict[str, Any]) -> None:
        self.job.status = JobStatus.COMPLETED
        self.job.progress = progress

    def mark_failed(self, job_id: str, error_message: str) -> None:
        self.job.status = JobStatus.FAILED
        self.job.error_message = error_message

    def get_job(self, job_id: str) -> AutomationJob | None:
        return self.job if self.job and self.job.id == job_id else None


class ScrapeLogRepositoryStub(ScrapeLogRepository):
    def __init__(self) -> None:
        self.logs: list[ScrapeLog] = []

    def insert_log(self, log: ScrapeLog) -> None:
        self.logs.append(log)


class InMemoryStorage(StorageProvider):
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}

    def upload_bytes(self, object_key: str, data: bytes, content_type: str = "image/jpeg") -> None:
        self.objects[object_key] = data

    def get_public_url(self, object_key: str) -> str:
        return f"https://cdn.test/menu_photos/{object_key}"


class ImageModelStub:
    name = "dall-e-3"

    def __init__(self, failing_names: set[str]) -> None:
        self.failing_names = failing_names
        self.calls = 0

    def generate_image_url(self, prompt: str) -> str:
        self.calls += 1
        if any(name in prompt for name in self.failing_names):
            raise RuntimeError("content policy violation")
        return "https://img.test/generated.png"


class ChatModelStub:
    def __init__(self, name: str) -> None:
        self.name = name
        self.calls = 0

    def complete(self, system_prompt: str, user_prompt) -> str:
        self.calls += 1
        return "[]"


def _image_download_client() -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"\xff\xd8jpeg")))


def _backfill_service(items: MenuItemRepositoryStub, errors: ImageErrorRepositoryStub, image_model) -> ImageBackfillService:
    return ImageBackfillService(
        item_repository=items,
        error_repository=errors,
        storage_provider=InMemoryStorage(),
        prompt_builder=ImagePromptBuilder(),
        image_generator=ImageGenerator(
            image_model,
            max_retries=2,
            retry_delay_seconds=0,
            http_client=_image_download_client(),
            sleep=lambda _: None,
        ),
        rate_delay_seconds=0,
        sleep=lambda _: None,
    )


class TestEndToEnd:
    @pytest.fixture
    def items(self) -> MenuItemRepositoryStub:
        return MenuItemRepositoryStub(
            [
                MenuItem(id="1", vendor_id="bar-1", name="Isombe"),
                MenuItem(id="2", vendor_id="bar-1", name="Raw Oyster"),
                MenuItem(id="3", vendor_id="bar-1", name="Goat Brochette"),
            ]
        )

    @pytest.fixture
    def real_client(self, items: MenuItemRepositoryStub):
        self.errors = ImageErrorRepositoryStub()
        self.image_model = ImageModelStub(failing_names={"Raw Oyster"})
        self.jobs = JobRepositoryStub()
        self.logs = ScrapeLogRepositoryStub()
        self.extractor = ChatModelStub("gpt-4o-mini")
        backfill = _backfill_service(items, self.errors, self.image_model)

        def unreachable(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("name resolution failed", request=request)

        offline = httpx.Client(transport=httpx.MockTransport(unreachable))
        pipeline = MenuExtractionPipeline(
            item_repository=items,
            job_repository=self.jobs,
            scrape_log_repository=self.logs,
            extraction_chain=MenuExtractionChain(
                extractor=self.extractor,
                cleaner=ChatModelStub("claude"),
                enhancer=ChatModelStub("gemini"),
            ),
            backfill_service=backfill,
            link_discoverer=partial(discover_menu_links, client=offline),
            content_fetcher=partial(fetch_page_content, client=offline),
        )

        app.dependency_overrides[get_backfill_service] = lambda: backfill
        app.dependency_overrides[get_extraction_pipeline] = lambda: pipeline
        app.dependency_overrides[get_job_repository] = lambda: self.jobs
        yield TestClient(app)
        app.dependency_overrides.clear()

    def test_fill_images_for_three_items_with_default_batch(
        self, real_client: TestClient, items: MenuItemRepositoryStub
    ) -> None:
        response = real_client.post("/fill-menu-item-images", json={})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["total_processed"] == 3
        assert body["generated"] + body["failed"] == 3
        assert (body["generated"], body["failed"]) == (2, 1)
        assert items.items["1"].image_url == "https://cdn.test/menu_photos/bar_bar-1/item_1.jpg"
        assert items.items["2"].image_url is None
        assert [error.item_id for error in self.errors.errors] == ["2"]
        # one item, one initial attempt plus two retries
        assert self.image_model.calls == 2 + 3

    def test_non_finite_batch_size_uses_default(self, real_client: TestClient) -> None:
        response = real_client.post(
            "/fill-menu-item-images",
            content=b'{"batchSize": 1e999}',
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json()["total_processed"] == 3

    def test_unreachable_site_extracts_nothing(self, real_client: TestClient) -> None:
        response = real_client.post(
            "/extract-menu-items",
            json={"website_url": "https://offline.invalid", "bar_id": "bar-1"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["items_extracted"] == 0
        assert body["images_generated"] == 0
        assert body["links_found"] == ["https://offline.invalid"]
        assert self.extractor.calls == 0
        assert self.jobs.job.status == JobStatus.COMPLETED
        assert len(self.logs.logs) == 1

        job = real_client.get("/jobs/job-42").json()
        assert job["status"] == "completed"
        assert job["progress"]["items_extracted"] == 0
