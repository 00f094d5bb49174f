"""Dependency injection for FastAPI endpoints"""

from fastapi import HTTPException, Request
from recon_gateway.infrastructure.clients.ledger import LedgerClient


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_tenant_id(request: Request) -> str:
    """Tenant is resolved upstream; RequestContextMiddleware copies it onto request state"""
    tenant_id = getattr(request.state, "tenant_id", None)
    if not tenant_id:
        raise HTTPException(status_code=400, detail="Tenant context is missing")
    return tenant_id


def get_ledger_client() -> LedgerClient:
    """Provide Ledger webhook client instance"""
    return LedgerClient()
