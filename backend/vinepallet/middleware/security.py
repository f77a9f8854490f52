"""Security headers for API responses.

The storefront and admin UI are served elsewhere; this API only returns
JSON, so the policy is strict by default.
"""

from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from vinepallet.config import settings


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        if settings.environment == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
            response.headers["Content-Security-Policy"] = (
                "default-src 'none'; frame-ancestors 'none'"
            )

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # The geocoder runs server side; the API never needs browser location
        response.headers["Permissions-Policy"] = "geolocation=(), camera=(), payment=()"

        # Cart validation and zone results are per cart, never cacheable
        if request.url.path.startswith(("/api/cart", "/api/checkout")):
            response.headers["Cache-Control"] = "no-store"

        return response
