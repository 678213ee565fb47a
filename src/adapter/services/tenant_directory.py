"""HTTP Tenant Directory Implementation

Reads tenants from the tenant service's REST API.
"""

import logging
from typing import Optional

import httpx

from src.app.services.tenant_directory import TenantDirectory, TenantInfo
from src.domain.errors import BillingError

logger = logging.getLogger(__name__)


class HttpTenantDirectory(TenantDirectory):
    """
    Tenant lookups over HTTP

    GET {base_url}/tenants/{tenant_id}: 200 with the tenant, 404 when unknown.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def get_tenant(self, tenant_id: str) -> Optional[TenantInfo]:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.get(f"/tenants/{tenant_id}")
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Tenant lookup failed for {tenant_id}: {e}")
            raise BillingError(f"Tenant service unavailable for {tenant_id}", reason=str(e)) from e

        return TenantInfo(
            tenant_id=str(data.get("id", tenant_id)),
            name=data.get("name") or tenant_id,
            email=data.get("email"),
            phone=data.get("phone"),
            country=data.get("country"),
        )


class StaticTenantDirectory(TenantDirectory):
    """Treats every tenant id as existing; used when no tenant service is configured"""

    async def get_tenant(self, tenant_id: str) -> Optional[TenantInfo]:
        return TenantInfo(tenant_id=tenant_id, name=tenant_id)


def create_tenant_directory(base_url: Optional[str] = None) -> TenantDirectory:
    if base_url:
        return HttpTenantDirectory(base_url)
    return StaticTenantDirectory()
