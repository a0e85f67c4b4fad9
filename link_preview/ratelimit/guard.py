from __future__ import annotations

import logging
from datetime import timezone
from typing import Optional

from fastapi import HTTPException, Request, Response, status

from .service import RateLimitConfig, RateLimitService

logger = logging.getLogger(__name__)


def client_ip(request: Request) -> str:
    """Client address, trusting proxy headers first."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


class RateLimitGuard:
    """
    FastAPI dependency enforcing a RateLimitService limit on one endpoint.

        guard = RateLimitGuard("scrape-preview", RateLimitConfig(max_requests=30))
        @app.post("/scrape-preview", dependencies=[Depends(guard)])
    """

    def __init__(self, endpoint: str, config: Optional[RateLimitConfig] = None) -> None:
        self.endpoint = endpoint
        self.config = config

    async def __call__(self, request: Request, response: Response) -> None:
        service: Optional[RateLimitService] = getattr(request.app.state, "rate_limiter", None)
        if service is None:
            return
        config = self.config or service.default_config
        ip_address = client_ip(request)

        try:
            result = await service.check_rate_limit(ip_address, self.endpoint, config)
        except Exception:
            logger.exception("Rate limit check failed for %s; allowing request", ip_address)
            return

        if not result.allowed:
            logger.warning("Rate limit exceeded for IP %s on endpoint %s", ip_address, self.endpoint)
            message = (
                f"Rate limit exceeded. Try again in {result.retry_after} seconds."
                if result.retry_after
                else "Rate limit exceeded. Please try again later."
            )
            headers = {"Retry-After": str(result.retry_after)} if result.retry_after else None
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={
                    "message": message,
                    "retryAfter": result.retry_after,
                    "resetTime": result.reset_time.isoformat() if result.reset_time else None,
                },
                headers=headers,
            )

        response.headers["X-RateLimit-Limit"] = str(config.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        response.headers["X-RateLimit-Reset"] = str(int(result.reset_time.replace(tzinfo=timezone.utc).timestamp()))
        logger.debug("Rate limit check for IP %s: remaining=%d", ip_address, result.remaining)
