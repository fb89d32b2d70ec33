"""Exception types raised by the collector."""


class CollectorError(Exception):
    """Base class for collector failures."""


class ConfigError(CollectorError):
    """Required configuration is missing or malformed."""


class TokenError(CollectorError):
    """The OAuth client-credentials exchange failed.

    Never retried: it means the credentials are wrong, not that the
    provider is briefly unavailable.
    """


class ProductAPIError(CollectorError):
    """A product search request returned a non-2xx status."""

    def __init__(self, status: int, body: str = "", url: str = ""):
        self.status = status
        self.body = body
        self.url = url
        super().__init__(f"status={status} url={url} body={body[:500]}")


class AuthenticationError(ProductAPIError):
    """A request was still rejected with 401 after a token refresh."""


class RateLimitError(ProductAPIError):
    """A request kept returning 429 after the maximum number of attempts."""
