"""
services/admin/service.py
Bank-side administration: company onboarding and moderation,
user moderation, platform analytics and the audit trail.

Every mutation appends an AdminAuditLog row in the same transaction.
"""

import logging
import uuid
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from services.auth.identity import IdentityProvider
from services.notification.emitter import NotificationDraft, NotificationEmitter
from shared.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
    service_boundary,
)
from shared.models.models import (
    AdminAuditLog,
    AppraisalRequest,
    Company,
    NotificationType,
    RequestStatus,
    RequestType,
    User,
    UserRole,
)
from shared.utils.dates import later_than, utcnow

logger = logging.getLogger(__name__)


class AdminService:
    def __init__(
        self,
        db: AsyncSession,
        admin: User,
        ip_address: Optional[str] = None,
        emitter: Optional[NotificationEmitter] = None,
    ):
        self.db = db
        self.admin = admin
        self.ip_address = ip_address
        self.emitter = emitter or NotificationEmitter()

    def _log(self, action: str, entity_type: str, entity_id, payload: Optional[dict] = None) -> None:
        """Append an immutable record to AdminAuditLog."""
        self.db.add(AdminAuditLog(
            admin_id=self.admin.id,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            payload=payload or {},
            ip_address=self.ip_address,
        ))

    async def _get_company(self, company_id: uuid.UUID) -> Company:
        company = await self.db.get(Company, company_id)
        if not company:
            raise NotFoundError("Company not found")
        return company

    async def _get_user(self, user_id: uuid.UUID) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    # ── Companies ─────────────────────────────────────────────

    @service_boundary("Failed to create company")
    async def create_company(
        self,
        name: str,
        email: str,
        phone: str,
        location: str,
        services: List[RequestType],
        license_number: str,
        password: str,
        description: Optional[str] = None,
    ) -> Company:
        """
        Onboard a company with its login. The company starts unapproved,
        with no ratings.
        """
        email = email.strip().lower()
        if await self.db.scalar(select(Company.id).where(Company.email == email)):
            raise ConflictError("A company with this email already exists")
        if await self.db.scalar(select(Company.id).where(Company.license_number == license_number)):
            raise ConflictError("A company with this license number already exists")

        user = await IdentityProvider(self.db, None).register(
            email=email,
            password=password,
            full_name=name,
            role=UserRole.COMPANY,
            phone=phone,
        )

        now = utcnow()
        company = Company(
            name=name.strip(),
            email=email,
            phone=phone,
            location=location.strip(),
            services=[RequestType(s).value for s in services],
            license_number=license_number,
            description=description,
            user_id=user.id,
            rating=0.0,
            total_ratings=0,
            is_approved=False,
            created_at=now,
            updated_at=now,
        )
        self.db.add(company)
        await self.db.flush()

        self._log("CREATE_COMPANY", "Company", company.id, {"name": company.name, "email": email})
        await self.db.commit()
        logger.info(f"Company {company.id} created by admin {self.admin.id}")
        return company

    @service_boundary("Failed to approve company")
    async def approve_company(self, company_id: uuid.UUID) -> Company:
        company = await self._get_company(company_id)
        company.is_approved = True
        company.updated_at = later_than(company.updated_at)
        self._log("APPROVE_COMPANY", "Company", company.id)
        await self.db.commit()

        if company.user_id:
            await self.emitter.emit([NotificationDraft(
                user_id=company.user_id,
                user_role=UserRole.COMPANY,
                type=NotificationType.ACCOUNT_VERIFIED,
                title="Company Approved",
                body=f"{company.name} has been approved. Customers can now send you appraisal requests.",
                company_id=company.id,
            )])
        return company

    @service_boundary("Failed to suspend company")
    async def suspend_company(self, company_id: uuid.UUID) -> Company:
        """Hide the company from customers. Requests already in flight are untouched."""
        company = await self._get_company(company_id)
        now = later_than(company.updated_at)
        company.is_suspended = True
        company.suspended_at = now
        company.is_approved = False
        company.updated_at = now
        self._log("SUSPEND_COMPANY", "Company", company.id)
        await self.db.commit()
        return company

    @service_boundary("Failed to archive company")
    async def archive_company(self, company_id: uuid.UUID) -> Company:
        company = await self._get_company(company_id)
        now = later_than(company.updated_at)
        company.is_archived = True
        company.archived_at = now
        company.is_approved = False
        company.updated_at = now
        self._log("ARCHIVE_COMPANY", "Company", company.id)
        await self.db.commit()
        return company

    @service_boundary("Failed to load companies")
    async def get_all_companies(self) -> List[Company]:
        result = await self.db.execute(select(Company).order_by(Company.name))
        return list(result.scalars())

    # ── Users ─────────────────────────────────────────────────

    @service_boundary("Failed to load users")
    async def get_all_users(self, role: Optional[UserRole] = None) -> List[User]:
        query = select(User).order_by(User.created_at.desc())
        if role:
            query = query.where(User.role == role)
        result = await self.db.execute(query)
        return list(result.scalars())

    @service_boundary("Failed to update user role")
    async def update_user_role(self, user_id: uuid.UUID, role: UserRole) -> User:
        user = await self._get_user(user_id)
        if user.id == self.admin.id and role != UserRole.ADMIN:
            raise InvalidArgumentError("Admins cannot remove their own admin role")

        previous = user.role
        user.role = role
        user.updated_at = later_than(user.updated_at)
        self._log("UPDATE_USER_ROLE", "User", user.id, {"from": previous.value, "to": role.value})
        await self.db.commit()
        return user

    @service_boundary("Failed to disable user")
    async def disable_user(self, user_id: uuid.UUID) -> User:
        """Block sign-in and API access. Admins cannot be disabled."""
        user = await self._get_user(user_id)
        if user.role == UserRole.ADMIN:
            raise ForbiddenError("Cannot disable admin users")
        if user.is_disabled:
            raise ConflictError("User is already disabled")

        now = later_than(user.updated_at)
        user.is_disabled = True
        user.disabled_at = now
        user.updated_at = now
        self._log("DISABLE_USER", "User", user.id)
        await self.db.commit()
        return user

    # ── Analytics & Audit ─────────────────────────────────────

    @service_boundary("Failed to load analytics")
    async def get_analytics(self) -> dict:
        """Platform-wide counts for the admin dashboard."""

        async def count_requests(*statuses: RequestStatus) -> int:
            query = select(func.count(AppraisalRequest.id))
            if statuses:
                query = query.where(AppraisalRequest.status.in_(statuses))
            return await self.db.scalar(query) or 0

        total_companies = await self.db.scalar(select(func.count(Company.id)))
        approved_companies = await self.db.scalar(
            select(func.count(Company.id)).where(Company.is_approved == True)  # noqa: E712
        )
        total_users = await self.db.scalar(select(func.count(User.id)))
        avg_rating = await self.db.scalar(
            select(func.avg(Company.rating)).where(Company.total_ratings > 0)
        )

        return {
            "total_companies": total_companies or 0,
            "approved_companies": approved_companies or 0,
            "total_users": total_users or 0,
            "total_requests": await count_requests(),
            "pending_requests": await count_requests(RequestStatus.PENDING, RequestStatus.UNDER_REVIEW),
            "in_progress_requests": await count_requests(RequestStatus.IN_PROGRESS),
            "completed_requests": await count_requests(RequestStatus.COMPLETED),
            "avg_company_rating": round(float(avg_rating or 0), 1),
        }

    @service_boundary("Failed to load audit logs")
    async def get_audit_logs(
        self,
        action: Optional[str] = None,
        entity_type: Optional[str] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Tuple[List[Tuple[AdminAuditLog, User]], int]:
        query = (
            select(AdminAuditLog, User)
            .join(User, User.id == AdminAuditLog.admin_id)
            .order_by(AdminAuditLog.created_at.desc())
        )
        if action:
            query = query.where(AdminAuditLog.action == action.upper())
        if entity_type:
            query = query.where(AdminAuditLog.entity_type == entity_type)

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))
        result = await self.db.execute(query.offset((page - 1) * page_size).limit(page_size))
        return list(result.all()), total or 0
