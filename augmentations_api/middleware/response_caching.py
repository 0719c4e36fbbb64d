"""
Response caching middleware.

Stores successful GET/HEAD responses that declare themselves cacheable with
"Cache-Control: public, max-age=N" and replays them for N seconds.
"""

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from augmentations_api.container import ServiceProvider

logger = structlog.get_logger(__name__)

CACHEABLE_METHODS = ("GET", "HEAD")

CacheKey = Tuple[str, str, str, str]


@dataclass(frozen=True)
class RoutingOptions:
    """How request paths are compared."""

    case_sensitive_paths: bool = False


@dataclass
class CachedResponse:
    status_code: int
    headers: List[Tuple[str, str]]
    body: bytes
    stored_at: float
    max_age: int

    def age(self, now: float) -> int:
        return int(now - self.stored_at)

    def is_fresh(self, now: float) -> bool:
        return now - self.stored_at < self.max_age


def parse_cache_control(value: Optional[str]) -> Dict[str, Optional[str]]:
    """Split a Cache-Control header into lower-cased directives."""
    directives: Dict[str, Optional[str]] = {}
    for part in (value or "").split(","):
        part = part.strip()
        if not part:
            continue
        name, _, argument = part.partition("=")
        directives[name.strip().lower()] = argument.strip().strip('"') or None
    return directives


class ResponseCache:
    """
    In-memory LRU store of cached responses.

    Only touched from the event loop, so no locking.
    """

    def __init__(self, size_limit: int = 1000, maximum_body_size: int = 64 * 1024 * 1024):
        self.size_limit = size_limit
        self.maximum_body_size = maximum_body_size
        self._entries: "OrderedDict[CacheKey, CachedResponse]" = OrderedDict()

    def get(self, key: CacheKey, now: Optional[float] = None) -> Optional[CachedResponse]:
        now = time.monotonic() if now is None else now
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_fresh(now):
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry

    def set(self, key: CacheKey, entry: CachedResponse) -> bool:
        """Store an entry; returns False when the body is too large."""
        if len(entry.body) > self.maximum_body_size:
            logger.debug("response_too_large_to_cache", size=len(entry.body))
            return False
        self._entries[key] = entry
        self._entries.move_to_end(key)
        while len(self._entries) > self.size_limit:
            self._entries.popitem(last=False)
        return True

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class ResponseCachingMiddleware(BaseHTTPMiddleware):
    """Serves cacheable responses from the ResponseCache."""

    def __init__(self, app, services: ServiceProvider):
        super().__init__(app)
        self.cache: ResponseCache = services.get_required_service(ResponseCache)
        self.routing: RoutingOptions = services.get_required_service(RoutingOptions)

    def cache_key(self, request: Request) -> CacheKey:
        path = request.url.path
        if not self.routing.case_sensitive_paths:
            path = path.casefold()
        return (
            request.method,
            path,
            request.url.query,
            request.headers.get("Authorization", ""),
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method not in CACHEABLE_METHODS:
            return await call_next(request)

        # Entries are keyed by the Authorization header; a header that no
        # longer authenticates (expired token) must reach the endpoint's guard.
        if request.headers.get("Authorization") and getattr(request.state, "user", None) is None:
            return await call_next(request)

        key = self.cache_key(request)
        request_directives = parse_cache_control(request.headers.get("Cache-Control"))

        if "no-cache" not in request_directives and "no-store" not in request_directives:
            now = time.monotonic()
            entry = self.cache.get(key, now)
            if entry is not None:
                logger.debug("response_cache_hit", path=request.url.path)
                response = Response(
                    content=entry.body,
                    status_code=entry.status_code,
                    headers=dict(entry.headers)
                )
                response.headers["Age"] = str(entry.age(now))
                return response

        response = await call_next(request)

        max_age = self._cacheable_max_age(response)
        if max_age is None:
            return response

        body = b"".join([chunk async for chunk in response.body_iterator])
        self.cache.set(key, CachedResponse(
            status_code=response.status_code,
            headers=list(response.headers.items()),
            body=body,
            stored_at=time.monotonic(),
            max_age=max_age,
        ))
        logger.debug("response_cached", path=request.url.path, max_age=max_age)

        return Response(
            content=body,
            status_code=response.status_code,
            headers=dict(response.headers)
        )

    def _cacheable_max_age(self, response: Response) -> Optional[int]:
        if response.status_code != 200 or "set-cookie" in response.headers:
            return None
        directives = parse_cache_control(response.headers.get("Cache-Control"))
        if "public" not in directives or "no-store" in directives:
            return None
        try:
            max_age = int(directives.get("max-age") or 0)
        except ValueError:
            return None
        return max_age if max_age > 0 else None
