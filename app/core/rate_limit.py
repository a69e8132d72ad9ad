"""
Rate limiting middleware using in-memory storage.

For production with multiple workers, consider using Redis backend
to share rate limit state across processes.
"""
import time
import logging
from collections import defaultdict
from typing import Dict, List

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response, JSONResponse

logger = logging.getLogger(__name__)

# POSTs under this prefix start (or restart) a download + AI pipeline
JOB_SUBMISSION_PREFIX = "/youtube/"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Rate limiting middleware with separate limits for general requests
    and YouTube job submission.

    Uses a sliding window algorithm to track request counts per client.
    """

    def __init__(
        self,
        app,
        requests_per_minute: int = 60,
        extraction_per_minute: int = 10
    ):
        """
        Initialize rate limiter.

        Args:
            app: FastAPI application
            requests_per_minute: General rate limit for all requests
            extraction_per_minute: Stricter limit for job submission/retry/import
        """
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.extraction_per_minute = extraction_per_minute
        self._request_counts: Dict[str, List[float]] = defaultdict(list)
        self._extraction_counts: Dict[str, List[float]] = defaultdict(list)

    def _get_client_id(self, request: Request) -> str:
        """
        Get client identifier from auth token or IP address.

        Prefers user-specific identification via auth token hash,
        falls back to IP address for unauthenticated requests.
        """
        auth_header = request.headers.get("authorization", "")
        if auth_header:
            return f"auth:{hash(auth_header)}"

        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return f"ip:{forwarded.split(',')[0].strip()}"

        client_host = request.client.host if request.client else "unknown"
        return f"ip:{client_host}"

    def _is_rate_limited(
        self,
        counts: List[float],
        limit: int,
        window: int = 60
    ) -> bool:
        """Sliding-window check; records the request when it is allowed."""
        now = time.time()
        counts[:] = [t for t in counts if now - t < window]

        if len(counts) >= limit:
            return True

        counts.append(now)
        return False

    def _get_retry_after(self, counts: List[float], window: int = 60) -> int:
        """Calculate seconds until rate limit resets."""
        if not counts:
            return 0
        oldest = min(counts)
        return max(1, int(window - (time.time() - oldest)))

    def _limited_response(self, detail: str, retry_after: int) -> Response:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"detail": detail},
            headers={"Retry-After": str(retry_after)}
        )

    async def dispatch(self, request: Request, call_next) -> Response:
        """Process request with rate limiting."""
        client_id = self._get_client_id(request)
        path = request.url.path

        if path == "/health":
            return await call_next(request)

        if JOB_SUBMISSION_PREFIX in path and request.method == "POST":
            counts = self._extraction_counts[client_id]
            if self._is_rate_limited(counts, self.extraction_per_minute):
                retry_after = self._get_retry_after(counts)
                logger.warning(
                    f"Extraction rate limit exceeded for {client_id}, "
                    f"retry after {retry_after}s"
                )
                return self._limited_response(
                    "Extraction rate limit exceeded. Please wait before trying again.",
                    retry_after
                )

        counts = self._request_counts[client_id]
        if self._is_rate_limited(counts, self.requests_per_minute):
            retry_after = self._get_retry_after(counts)
            logger.warning(
                f"Rate limit exceeded for {client_id}, retry after {retry_after}s"
            )
            return self._limited_response("Rate limit exceeded. Please slow down.", retry_after)

        return await call_next(request)
