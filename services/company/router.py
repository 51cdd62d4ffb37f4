"""
services/company/router.py
Public company directory and the company owner's own profile.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from services.company.service import CompanyService
from shared.middleware.auth import require_company
from shared.models.models import RequestType, User
from shared.schemas.schemas import CompanyResponse, CompanySummaryResponse, CompanyUpdateRequest

router = APIRouter(prefix="/companies", tags=["Companies"])


@router.get("", response_model=list[CompanyResponse])
async def list_companies(
    service: Optional[RequestType] = Query(None, description="Only companies offering this appraisal type"),
    db: AsyncSession = Depends(get_db),
):
    """Approved companies, sorted by name."""
    companies = CompanyService(db)
    if service:
        result = await companies.get_companies_by_service(service)
    else:
        result = await companies.get_approved_companies()
    return [CompanyResponse.model_validate(c) for c in result]


@router.get("/me", response_model=CompanyResponse)
async def get_my_company(
    current_user: User = Depends(require_company),
    db: AsyncSession = Depends(get_db),
):
    company = await CompanyService(db).get_company_by_user_id(current_user.id)
    return CompanyResponse.model_validate(company)


@router.get("/me/summary", response_model=CompanySummaryResponse)
async def get_my_summary(
    current_user: User = Depends(require_company),
    db: AsyncSession = Depends(get_db),
):
    """Dashboard counts for the signed-in company."""
    companies = CompanyService(db)
    company = await companies.get_company_by_user_id(current_user.id)
    return CompanySummaryResponse(**await companies.get_company_summary(company.id))


@router.put("/me", response_model=CompanyResponse)
async def update_my_company(
    data: CompanyUpdateRequest,
    current_user: User = Depends(require_company),
    db: AsyncSession = Depends(get_db),
):
    companies = CompanyService(db)
    company = await companies.get_company_by_user_id(current_user.id)
    company = await companies.update_company(company.id, **data.model_dump(exclude_unset=True))
    return CompanyResponse.model_validate(company)


@router.get("/{company_id}", response_model=CompanyResponse)
async def get_company(company_id: UUID, db: AsyncSession = Depends(get_db)):
    company = await CompanyService(db).get_company_by_id(company_id)
    return CompanyResponse.model_validate(company)
