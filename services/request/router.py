"""
services/request/router.py
Appraisal request endpoints.
Customers submit and track; companies accept, reject and complete;
admins can set any status.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from services.company.service import CompanyService
from services.request.workflow import RequestWorkflow
from shared.middleware.auth import RoleRequired, get_current_user, require_company, require_customer
from shared.models.models import User, UserRole
from shared.schemas.schemas import RequestCreateRequest, RequestResponse, RequestStatusUpdate

router = APIRouter(prefix="/requests", tags=["Requests"])

require_status_editor = RoleRequired(UserRole.COMPANY, UserRole.ADMIN)


@router.post("", response_model=RequestResponse, status_code=status.HTTP_201_CREATED)
async def create_request(
    data: RequestCreateRequest,
    current_user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """Submit an appraisal request to an approved company."""
    request = await RequestWorkflow(db).create_request(
        customer_id=current_user.id,
        company_id=data.company_id,
        type=data.type,
        location=data.location,
        property_type=data.property_type,
        description=data.description,
    )
    return RequestResponse.model_validate(request)


@router.get("", response_model=list[RequestResponse])
async def list_requests(
    search: Optional[str] = Query(None, max_length=100),
    status_filter: Optional[str] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Requests visible to the caller, newest first. Filters apply to admins only."""
    workflow = RequestWorkflow(db)
    if current_user.role == UserRole.CUSTOMER:
        requests = await workflow.get_customer_requests(current_user.id)
    elif current_user.role == UserRole.COMPANY:
        company = await CompanyService(db).get_company_by_user_id(current_user.id)
        requests = await workflow.get_company_requests(company.id)
    else:
        requests = await workflow.get_all_requests(search=search, status=status_filter)
    return [RequestResponse.model_validate(r) for r in requests]


@router.get("/{request_id}", response_model=RequestResponse)
async def get_request(
    request_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    workflow = RequestWorkflow(db)
    request = await workflow.get_request_by_id(request_id)
    await workflow.ensure_visible(request, current_user)
    return RequestResponse.model_validate(request)


@router.post("/{request_id}/accept", response_model=RequestResponse)
async def accept_request(
    request_id: UUID,
    current_user: User = Depends(require_company),
    db: AsyncSession = Depends(get_db),
):
    """Company starts work on the request."""
    request = await RequestWorkflow(db).accept_request(request_id, current_user)
    return RequestResponse.model_validate(request)


@router.post("/{request_id}/reject", response_model=RequestResponse)
async def reject_request(
    request_id: UUID,
    current_user: User = Depends(require_company),
    db: AsyncSession = Depends(get_db),
):
    request = await RequestWorkflow(db).reject_request(request_id, current_user)
    return RequestResponse.model_validate(request)


@router.post("/{request_id}/complete", response_model=RequestResponse)
async def complete_request(
    request_id: UUID,
    current_user: User = Depends(require_company),
    db: AsyncSession = Depends(get_db),
):
    request = await RequestWorkflow(db).complete_request(request_id, current_user)
    return RequestResponse.model_validate(request)


@router.patch("/{request_id}/status", response_model=RequestResponse)
async def update_status(
    request_id: UUID,
    data: RequestStatusUpdate,
    current_user: User = Depends(require_status_editor),
    db: AsyncSession = Depends(get_db),
):
    """Set an explicit status. Companies follow the transition table; admins may override."""
    request = await RequestWorkflow(db).update_request_status(request_id, data.status, current_user)
    return RequestResponse.model_validate(request)
