"""Tenant Directory Service Interface

Tenants are owned by another service; billing only reads them.
"""

from abc import ABC, abstractmethod
from typing import Optional
from pydantic import BaseModel


class TenantInfo(BaseModel):
    tenant_id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    country: Optional[str] = None


class TenantDirectory(ABC):
    @abstractmethod
    async def get_tenant(self, tenant_id: str) -> Optional[TenantInfo]:
        """
        Look up a tenant

        Args:
            tenant_id: Tenant identifier

        Returns:
            TenantInfo if the tenant exists, None otherwise
        """
        pass
