from __future__ import annotations


class EnrichmentError(Exception):
    pass


class StorageError(EnrichmentError):
    pass


class StorageUploadError(StorageError):
    def __init__(self, object_key: str, reason: str = "Upload failed"):
        super().__init__(f"Failed to upload {object_key}: {reason}")
        self.object_key = object_key
        self.reason = reason


class ImageGenerationError(EnrichmentError):
    def __init__(self, message: str, attempts: int = 1):
        super().__init__(message)
        self.attempts = attempts


class ImageDownloadError(EnrichmentError):
    def __init__(self, url: str, reason: str = "Download failed"):
        super().__init__(f"Failed to download generated image {url}: {reason}")
        self.url = url
        self.reason = reason


class RepositoryError(EnrichmentError):
    def __init__(self, operation: str, reason: str):
        super().__init__(f"Repository error during {operation}: {reason}")
        self.operation = operation
        self.reason = reason


class JobNotFoundError(EnrichmentError):
    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class MenuItemNotFoundError(EnrichmentError):
    def __init__(self, item_id: str):
        super().__init__(f"Menu item not found: {item_id}")
        self.item_id = item_id


class WorkerConfigurationError(EnrichmentError):
    def __init__(self, errors: list[str]):
        super().__init__(f"Worker configuration errors: {', '.join(errors)}")
        self.errors = errors
