from __future__ import annotations

import httpx
import pytest

from icupa.app.domain.errors import ImageDownloadError, ImageGenerationError
from icupa.services.image_generation import ImageGenerator


class ImageModelStub:
    name = "dall-e-3"

    def __init__(self, outcomes: list) -> None:
        self.outcomes = list(outcomes)
        self.prompts: list[str] = []

    def generate_image_url(self, prompt: str) -> str:
        self.prompts.append(prompt)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class TestGenerateUrl:
    def test_first_attempt_succeeds(self) -> None:
        sleeps: list[float] = []
        generator = ImageGenerator(ImageModelStub(["https://img.test/1.png"]), sleep=sleeps.append)

        assert generator.generate_url("soup") == "https://img.test/1.png"
        assert sleeps == []

    def test_retries_with_fixed_delay(self) -> None:
        sleeps: list[float] = []
        model = ImageModelStub([RuntimeError("500"), RuntimeError("500"), "https://img.test/3.png"])
        generator = ImageGenerator(model, max_retries=2, retry_delay_seconds=2.0, sleep=sleeps.append)

        assert generator.generate_url("soup") == "https://img.test/3.png"
        assert sleeps == [2.0, 2.0]
        assert len(model.prompts) == 3

    def test_gives_up_after_max_retries(self) -> None:
        sleeps: list[float] = []
        model = ImageModelStub([RuntimeError("content policy")] * 3)
        generator = ImageGenerator(model, max_retries=2, sleep=sleeps.append)

        with pytest.raises(ImageGenerationError) as exc_info:
            generator.generate_url("soup")

        assert exc_info.value.attempts == 3
        assert "content policy" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert len(sleeps) == 2

    def test_zero_retries_means_single_attempt(self) -> None:
        model = ImageModelStub([RuntimeError("boom")])
        generator = ImageGenerator(model, max_retries=0, sleep=lambda _: None)

        with pytest.raises(ImageGenerationError):
            generator.generate_url("soup")
        assert len(model.prompts) == 1


class TestDownload:
    def _generator(self, handler) -> ImageGenerator:
        client = httpx.Client(transport=httpx.MockTransport(handler))
        return ImageGenerator(ImageModelStub([]), http_client=client)

    def test_returns_bytes(self) -> None:
        generator = self._generator(lambda request: httpx.Response(200, content=b"\xff\xd8jpeg"))
        assert generator.download("https://img.test/1.png") == b"\xff\xd8jpeg"

    def test_http_error(self) -> None:
        generator = self._generator(lambda request: httpx.Response(403))

        with pytest.raises(ImageDownloadError) as exc_info:
            generator.download("https://img.test/1.png")
        assert exc_info.value.reason == "HTTP 403"

    def test_empty_body(self) -> None:
        generator = self._generator(lambda request: httpx.Response(200, content=b""))

        with pytest.raises(ImageDownloadError):
            generator.download("https://img.test/1.png")
