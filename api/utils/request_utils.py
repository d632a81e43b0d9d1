from typing import Optional
from fastapi import Request
from urllib.parse import urlsplit


def get_client_ip(request: Request) -> Optional[str]:
    """
    Best-effort client address, proxy aware.
    X-Forwarded-For first hop, then X-Real-IP, then the socket peer.
    """
    xff = request.headers.get("x-forwarded-for")
    if xff:
        first = xff.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    return request.client.host if request.client else None


def get_user_agent(request: Request) -> Optional[str]:
    ua = request.headers.get("user-agent")
    return ua[:500] if ua else None


def is_safe_redirect(target: Optional[str]) -> bool:
    """Only same-site relative paths are accepted as post-login redirects"""
    if not target or not target.startswith("/") or target.startswith("//"):
        return False
    parsed = urlsplit(target)
    return not parsed.scheme and not parsed.netloc and "\\" not in target
