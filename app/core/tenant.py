"""
Tenant context.

A brokerage user account is the tenant. The context is resolved once per
request and passed explicitly to every service call.
"""

import re
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, Query

# Tenant IDs are also used as a storage path segment
TENANT_ID_PATTERN = re.compile(r"^[\w-]{1,128}$")


@dataclass(frozen=True)
class TenantContext:
    user_id: str


async def require_tenant(
    user_id: Optional[str] = Header(None, alias="X-User-Id"),
    user_id_query: Optional[str] = Query(None, alias="userId"),
) -> TenantContext:
    """FastAPI dependency: tenant from the X-User-Id header or the userId query parameter."""
    resolved = (user_id or user_id_query or "").strip()
    if not resolved:
        raise HTTPException(
            status_code=400,
            detail="User ID is required. Please provide X-User-Id header or userId query parameter.",
        )
    if not TENANT_ID_PATTERN.match(resolved):
        raise HTTPException(status_code=400, detail="Invalid User ID")
    return TenantContext(user_id=resolved)
