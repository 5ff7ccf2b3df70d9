"""Shared API dependencies."""
import hmac

from fastapi import Header, HTTPException, Request, status

from app.config import get_settings
from app.database import get_db
from app.services.audit import AuditActor, AuditSink, DatabaseAuditSink
from app.services.notifications import DatabaseNotificationSink, NotificationSink

__all__ = [
    "get_db",
    "get_actor",
    "get_client_ip",
    "get_ip_address",
    "get_notifier",
    "get_auditor",
    "require_cron_secret",
]


def get_actor(
    x_actor_id: str | None = Header(default=None),
    x_actor_email: str | None = Header(default=None),
    x_actor_name: str | None = Header(default=None),
    x_actor_role: str | None = Header(default=None),
) -> AuditActor:
    """Identity of the caller, as forwarded by the authenticating gateway."""
    return AuditActor(
        id=x_actor_id,
        email=x_actor_email,
        name=x_actor_name,
        role=x_actor_role or "public",
    )


def get_client_ip(request: Request | None, trust_proxy_headers: bool = False) -> str:
    """Extract the caller's IP address.

    ``X-Forwarded-For`` is only honoured behind a trusted proxy.
    """
    if request is None:
        return "unknown"

    if trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip

    if request.client:
        return request.client.host

    return "unknown"


def get_ip_address(request: Request) -> str:
    return get_client_ip(request, trust_proxy_headers=get_settings().trust_proxy_headers)


def get_notifier() -> NotificationSink:
    return DatabaseNotificationSink()


def get_auditor() -> AuditSink:
    return DatabaseAuditSink()


def require_cron_secret(x_cron_secret: str | None = Header(default=None)) -> None:
    """Reject processor triggers that do not carry the shared cron secret."""
    expected = get_settings().cron_secret
    if not x_cron_secret or not hmac.compare_digest(x_cron_secret, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron secret",
        )
