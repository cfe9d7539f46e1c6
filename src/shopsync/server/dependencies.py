"""Request dependencies shared by the route modules."""

from typing import Optional

from fastapi import Depends, Header, Query, Request

from shopsync.core.errors import NotFoundError, PayloadError
from shopsync.db.models import Tenant


def get_service(name: str):
    """Dependency returning a component wired onto app.state at startup."""

    def dependency(request: Request):
        return getattr(request.app.state, name)

    return dependency


async def resolve_tenant_id(
    request: Request,
    tenant_id_query: Optional[str] = Query(None, alias="tenantId"),
    tenant_id_header: Optional[str] = Header(None, alias="X-Tenant-Id"),
) -> str:
    """
    Tenant id from the path, then ?tenantId=, then X-Tenant-Id.

    The first non-empty source wins.

    Raises:
        PayloadError: no source carried a tenant id
    """
    for candidate in (request.path_params.get("tenant_id"), tenant_id_query, tenant_id_header):
        if candidate and candidate.strip():
            return candidate.strip()
    raise PayloadError("Missing tenantId")


async def require_tenant(request: Request, tenant_id: str = Depends(resolve_tenant_id)) -> Tenant:
    """
    Load the tenant a request is scoped to.

    Raises:
        NotFoundError: no tenant with this id
    """
    async with request.app.state.storage.tenants() as tenants:
        tenant = await tenants.get(tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant not found")
    return tenant
