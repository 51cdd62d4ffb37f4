"""
services/admin/router.py
Admin-only endpoints: company onboarding and moderation, user
moderation, request oversight, platform analytics and audit log.

ALL mutations are logged to AdminAuditLog before returning.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from services.admin.service import AdminService
from services.request.workflow import RequestWorkflow
from shared.middleware.auth import require_admin
from shared.models.models import User, UserRole
from shared.schemas.schemas import (
    AdminAnalyticsResponse,
    CompanyCreateRequest,
    CompanyResponse,
    RequestResponse,
    UserResponse,
    UserRoleUpdateRequest,
)

router = APIRouter(prefix="/admin", tags=["Admin"])


def get_admin_service(
    request: Request,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> AdminService:
    ip_address = request.client.host if request.client else None
    return AdminService(db, current_user, ip_address=ip_address)


# ── Companies ──────────────────────────────────────────────────────────────────

@router.get("/companies", response_model=list[CompanyResponse])
async def list_companies(admin: AdminService = Depends(get_admin_service)):
    """All companies regardless of approval state, by name."""
    return [CompanyResponse.model_validate(c) for c in await admin.get_all_companies()]


@router.post("/companies", response_model=CompanyResponse, status_code=status.HTTP_201_CREATED)
async def create_company(
    data: CompanyCreateRequest,
    admin: AdminService = Depends(get_admin_service),
):
    """
    Onboard a company and its login.
    - Email and license number must be unique
    - The company starts unapproved with no ratings
    """
    company = await admin.create_company(
        name=data.name,
        email=data.email,
        phone=data.phone,
        location=data.location,
        services=data.services,
        license_number=data.license_number,
        password=data.password,
        description=data.description,
    )
    return CompanyResponse.model_validate(company)


@router.post("/companies/{company_id}/approve", response_model=CompanyResponse)
async def approve_company(company_id: UUID, admin: AdminService = Depends(get_admin_service)):
    """Make the company visible to customers and notify its owner."""
    return CompanyResponse.model_validate(await admin.approve_company(company_id))


@router.post("/companies/{company_id}/suspend", response_model=CompanyResponse)
async def suspend_company(company_id: UUID, admin: AdminService = Depends(get_admin_service)):
    return CompanyResponse.model_validate(await admin.suspend_company(company_id))


@router.post("/companies/{company_id}/archive", response_model=CompanyResponse)
async def archive_company(company_id: UUID, admin: AdminService = Depends(get_admin_service)):
    return CompanyResponse.model_validate(await admin.archive_company(company_id))


# ── User Moderation ────────────────────────────────────────────────────────────

@router.get("/users", response_model=list[UserResponse])
async def list_users(
    role: Optional[UserRole] = Query(None),
    admin: AdminService = Depends(get_admin_service),
):
    return [UserResponse.model_validate(u) for u in await admin.get_all_users(role)]


@router.put("/users/{user_id}/role", response_model=UserResponse)
async def update_user_role(
    user_id: UUID,
    data: UserRoleUpdateRequest,
    admin: AdminService = Depends(get_admin_service),
):
    user = await admin.update_user_role(user_id, UserRole(data.role))
    return UserResponse.model_validate(user)


@router.post("/users/{user_id}/disable", response_model=UserResponse)
async def disable_user(user_id: UUID, admin: AdminService = Depends(get_admin_service)):
    """Deactivate a user account. Admins cannot be disabled."""
    return UserResponse.model_validate(await admin.disable_user(user_id))


# ── Request Oversight ──────────────────────────────────────────────────────────

@router.get("/requests", response_model=list[RequestResponse])
async def list_all_requests(
    search: Optional[str] = Query(None, max_length=100, description="Company name, location or property type"),
    status_filter: Optional[str] = Query(None, alias="status"),
    admin: AdminService = Depends(get_admin_service),
):
    requests = await RequestWorkflow(admin.db).get_all_requests(search=search, status=status_filter)
    return [RequestResponse.model_validate(r) for r in requests]


# ── Analytics ─────────────────────────────────────────────────────────────────

@router.get("/analytics", response_model=AdminAnalyticsResponse)
async def get_analytics(admin: AdminService = Depends(get_admin_service)):
    """Platform-wide metrics dashboard."""
    return AdminAnalyticsResponse(**await admin.get_analytics())


# ── Audit Log ─────────────────────────────────────────────────────────────────

@router.get("/audit-logs")
async def get_audit_logs(
    action: Optional[str] = Query(None, description="Filter by action type e.g. APPROVE_COMPANY"),
    entity_type: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    admin: AdminService = Depends(get_admin_service),
):
    """Append-only admin audit log."""
    rows, total = await admin.get_audit_logs(action, entity_type, page, page_size)
    return {
        "items": [
            {
                "id": str(log.id),
                "admin_name": user.full_name,
                "admin_email": user.email,
                "action": log.action,
                "entity_type": log.entity_type,
                "entity_id": log.entity_id,
                "payload": log.payload,
                "ip_address": log.ip_address,
                "created_at": log.created_at.isoformat(),
            }
            for log, user in rows
        ],
        "total": total,
        "page": page,
        "page_size": page_size,
    }
