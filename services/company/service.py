"""
services/company/service.py
Company directory: public listing, lookups and the owner's profile.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.exceptions import ConflictError, InvalidArgumentError, NotFoundError, service_boundary
from shared.models.models import AppraisalRequest, Company, RequestStatus, RequestType
from shared.utils.dates import later_than

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "phone", "email", "location", "description")


def listed_companies():
    """Approved companies still open for business."""
    return select(Company).where(
        Company.is_approved == True,  # noqa: E712
        Company.is_suspended == False,  # noqa: E712
        Company.is_archived == False,  # noqa: E712
    )


class CompanyService:
    def __init__(self, db: AsyncSession):
        self.db = db

    @service_boundary("Failed to load companies")
    async def get_approved_companies(self) -> List[Company]:
        result = await self.db.execute(listed_companies().order_by(Company.name))
        return list(result.scalars())

    @service_boundary("Failed to load companies")
    async def get_companies_by_service(self, request_type: RequestType) -> List[Company]:
        # services is a JSON list, filtered here so SQLite and PostgreSQL agree
        return [c for c in await self.get_approved_companies() if c.offers(request_type)]

    @service_boundary("Failed to load company")
    async def get_company_by_id(self, company_id: uuid.UUID) -> Company:
        company = await self.db.get(Company, company_id)
        if not company:
            raise NotFoundError("Company not found")
        return company

    @service_boundary("Failed to load company")
    async def get_company_by_user_id(self, user_id: uuid.UUID) -> Company:
        company = await self.db.scalar(select(Company).where(Company.user_id == user_id))
        if not company:
            raise NotFoundError("No company profile is linked to this account")
        return company

    @service_boundary("Failed to update company")
    async def update_company(self, company_id: uuid.UUID, **changes: Optional[str]) -> Company:
        company = await self.get_company_by_id(company_id)

        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise InvalidArgumentError(f"Cannot update: {', '.join(sorted(unknown))}")

        for field, value in changes.items():
            if value is None:
                continue
            value = value.strip()
            if field != "description" and not value:
                raise InvalidArgumentError(f"{field} cannot be blank")
            if field == "email":
                value = value.lower()
                if value != company.email:
                    taken = await self.db.scalar(
                        select(Company.id).where(Company.email == value, Company.id != company.id)
                    )
                    if taken:
                        raise ConflictError("A company with this email already exists")
            setattr(company, field, value)

        company.updated_at = later_than(company.updated_at)
        await self.db.commit()
        logger.info(f"Company {company.id} profile updated")
        return company

    @service_boundary("Failed to load company summary")
    async def get_company_summary(self, company_id: uuid.UUID) -> dict:
        company = await self.get_company_by_id(company_id)
        row = (
            await self.db.execute(
                select(
                    func.count(AppraisalRequest.id),
                    func.sum(case(
                        (AppraisalRequest.status.in_(
                            [RequestStatus.PENDING, RequestStatus.UNDER_REVIEW]
                        ), 1),
                        else_=0,
                    )),
                    func.sum(case((AppraisalRequest.status == RequestStatus.IN_PROGRESS, 1), else_=0)),
                    func.sum(case((AppraisalRequest.status == RequestStatus.COMPLETED, 1), else_=0)),
                ).where(AppraisalRequest.company_id == company_id)
            )
        ).one()
        total, pending, in_progress, completed = row
        return {
            "total_requests": total or 0,
            "pending": pending or 0,
            "in_progress": in_progress or 0,
            "completed": completed or 0,
            "rating": company.rating,
            "total_ratings": company.total_ratings,
        }
