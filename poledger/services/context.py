from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RequestContext:
    """Tenant and actor of the current call, resolved by the caller."""

    organization_id: int | None = None
    user_id: int | None = None
