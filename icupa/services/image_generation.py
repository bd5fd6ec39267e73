from __future__ import annotations

import logging
import time
from typing import Callable

import httpx

from icupa.app.domain.errors import ImageDownloadError, ImageGenerationError
from icupa.services.llm_clients import ImageModel

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_DELAY_SECONDS = 2.0
DOWNLOAD_TIMEOUT_SECONDS = 60.0


class ImageGenerator:
    """Calls the image model with a fixed-delay retry and downloads the result."""

    def __init__(
        self,
        image_model: ImageModel,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        http_client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.image_model = image_model
        self.max_retries = max(0, max_retries)
        self.retry_delay_seconds = retry_delay_seconds
        self._http_client = http_client
        self._sleep = sleep

    def generate_url(self, prompt: str) -> str:
        total_attempts = self.max_retries + 1

        for attempt in range(1, total_attempts + 1):
            try:
                return self.image_model.generate_image_url(prompt)
            except Exception as err:
                if attempt == total_attempts:
                    raise ImageGenerationError(
                        f"Image generation failed after {attempt} attempt(s): {err}",
                        attempts=attempt,
                    ) from err
                logger.warning(
                    "Retry image generation (%d/%d): %s",
                    attempt,
                    self.max_retries,
                    err,
                )
                self._sleep(self.retry_delay_seconds)

        raise ImageGenerationError("Unreachable", attempts=total_attempts)

    def download(self, url: str) -> bytes:
        try:
            if self._http_client is not None:
                response = self._http_client.get(url)
            else:
                with httpx.Client(timeout=DOWNLOAD_TIMEOUT_SECONDS, follow_redirects=True) as client:
                    response = client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as error:
            raise ImageDownloadError(url, f"HTTP {error.response.status_code}") from error
        except httpx.HTTPError as error:
            raise ImageDownloadError(url, str(error)) from error

        if not response.content:
            raise ImageDownloadError(url, "empty body")
        return response.content
