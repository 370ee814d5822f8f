from dataclasses import dataclass
from fastapi import Header


@dataclass(frozen=True)
class OperationContext:
    """Who is acting, and for which tenant. Passed explicitly into every ledger call."""
    tenant_id: int
    user_id: int


def get_operation_context(
    x_tenant_id: int = Header(..., alias="X-Tenant-ID"),
    x_user_id: int = Header(..., alias="X-User-ID")
) -> OperationContext:
    """Build the context from the headers set by the auth gateway"""
    return OperationContext(tenant_id=x_tenant_id, user_id=x_user_id)
