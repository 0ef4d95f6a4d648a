"""Time-bounded response cache for the public catalog routes."""
import threading
import time
from typing import Dict, Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


class ResponseCache:
    """Maps a request key to ``(body, stored_at)``, with a TTL per path prefix."""

    def __init__(self, ttls: Dict[str, float], clock=time.monotonic, max_entries: int = 1000):
        self.ttls = ttls
        self.clock = clock
        self.max_entries = max_entries
        self._entries: Dict[str, Tuple[bytes, float]] = {}
        self._lock = threading.Lock()

    def prefix_for(self, path: str) -> Optional[str]:
        for prefix in self.ttls:
            if path == prefix or path.startswith(prefix + "/"):
                return prefix
        return None

    def ttl_for(self, path: str) -> float:
        prefix = self.prefix_for(path)
        return self.ttls[prefix] if prefix else 0

    def get(self, key: str, ttl: float) -> Optional[bytes]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            body, stored_at = entry
            if self.clock() - stored_at >= ttl:
                del self._entries[key]
                return None
            return body

    def set(self, key: str, body: bytes):
        with self._lock:
            now = self.clock()
            self._sweep(now)
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_entries:
                del self._entries[next(iter(self._entries))]
            self._entries[key] = (body, now)

    def _sweep(self, now: float):
        """Drop expired entries. Caller holds the lock."""
        expired = [
            key for key, (_, stored_at) in self._entries.items()
            if now - stored_at >= self.ttl_for(key.split("?", 1)[0])
        ]
        for key in expired:
            del self._entries[key]

    def __len__(self):
        return len(self._entries)

    def invalidate(self, prefix: str):
        with self._lock:
            for key in [k for k in self._entries if k == prefix or k.startswith(prefix + "/") or k.startswith(prefix + "?")]:
                del self._entries[key]

    def clear(self):
        with self._lock:
            self._entries.clear()


class ResponseCacheMiddleware(BaseHTTPMiddleware):
    """Serves cached 200 JSON bodies for GETs; successful writes under a prefix drop its entries."""

    def __init__(self, app, cache: ResponseCache):
        super().__init__(app)
        self.cache = cache

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        prefix = self.cache.prefix_for(path)
        if prefix is None:
            return await call_next(request)

        if request.method != "GET":
            response = await call_next(request)
            if response.status_code < 400:
                self.cache.invalidate(prefix)
            return response

        ttl = self.cache.ttl_for(path)
        if ttl <= 0:
            return await call_next(request)

        key = f"{path}?{request.url.query}" if request.url.query else path
        body = self.cache.get(key, ttl)
        if body is not None:
            return Response(content=body, media_type="application/json", headers={"X-Cache": "HIT"})

        response = await call_next(request)
        if response.status_code != 200:
            return response
        body = b"".join([chunk async for chunk in response.body_iterator])
        self.cache.set(key, body)
        headers = dict(response.headers)
        headers.pop("content-length", None)
        headers["X-Cache"] = "MISS"
        return Response(content=body, status_code=200, headers=headers, media_type=response.media_type)
