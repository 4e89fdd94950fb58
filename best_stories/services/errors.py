"""Error taxonomy for the best stories cache engine.

Every error carries a machine `code` and the HTTP `status_code` the read API
maps it to. Per-item upstream errors are collected by the fetcher and never
raised past it; ID-list errors fail the whole cycle.
"""


class StoriesError(RuntimeError):
    """Base exception with error code and HTTP status code."""

    code = "INTERNAL_ERROR"
    status_code = 500


class UpstreamUnavailable(StoriesError):
    """Transport failure, timeout or non-2xx response from the upstream API."""

    code = "UPSTREAM_UNAVAILABLE"
    status_code = 502


class DecodeError(StoriesError):
    """Upstream response could not be parsed into the expected shape."""

    code = "UPSTREAM_DECODE_ERROR"
    status_code = 502


class CacheNotReady(StoriesError):
    """Query issued before the first successful cache build."""

    code = "CACHE_NOT_READY"
    status_code = 503

    def __init__(self, message: str = "Cache not ready, retry after some time."):
        super().__init__(message)


class BuildFailed(StoriesError):
    """Initial cache build could not fetch the ranked ID list."""

    code = "CACHE_BUILD_FAILED"
    status_code = 503
