class ServiceError(Exception):
    pass


class FetchFailedError(ServiceError):
    pass


class RateLimitedError(ServiceError):
    pass


class ProviderConfigurationError(ServiceError):
    pass


class ProviderResponseError(ServiceError):
    def __init__(self, provider: str, reason: str):
        super().__init__(f"{provider} returned an unusable response: {reason}")
        self.provider = provider
        self.reason = reason


class NetworkTimeoutError(ServiceError):
    def __init__(self, url: str, timeout_seconds: float):
        super().__init__(f"Network timeout after {timeout_seconds}s: {url}")
        self.url = url
        self.timeout_seconds = timeout_seconds
