"""
Client IP resolution for FastAPI requests.

The resolved address keys the per-IP endpoint limiter and is recorded on
issued OTPs, so the proxy headers are only honoured when the app runs
behind a trusted proxy.
"""

from __future__ import annotations

from starlette.requests import Request

PROXY_HEADERS: tuple[str, ...] = (
    "CF-Connecting-IP",
    "True-Client-IP",
    "X-Forwarded-For",
    "X-Real-IP",
    "X-Client-IP",
)


def get_client_ip(request: Request, trust_proxy_headers: bool = True) -> str:
    """Extract the real client IP from a ``Request``.

    Checks, in order: ``CF-Connecting-IP`` (Cloudflare), ``True-Client-IP``,
    the first entry of ``X-Forwarded-For``, ``X-Real-IP`` and
    ``X-Client-IP``, then the direct connection address.

    Returns:
        The resolved client IP string, or ``""`` if none can be found.
    """
    if trust_proxy_headers:
        for header in PROXY_HEADERS:
            ip_value: str | None = request.headers.get(header)
            if ip_value:
                client_ip = ip_value.split(",")[0].strip()
                if client_ip:
                    return client_ip

    return request.client.host if request.client else ""
