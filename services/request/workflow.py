"""
services/request/workflow.py
Appraisal request lifecycle.

States: PENDING → UNDER_REVIEW | INCOMPLETE_DOCS → IN_PROGRESS → COMPLETED
        any non-terminal state → REJECTED

Companies move their own requests along TRANSITIONS. Admins may set any
status; those moves are logged as overrides. Every change commits first
and notifies after.
"""

import logging
import uuid
from typing import List, Optional, Union

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from services.company.service import CompanyService
from services.notification.emitter import (
    NotificationEmitter,
    build_status_notifications,
    build_submitted_notification,
)
from shared.exceptions import (
    ForbiddenError,
    InvalidArgumentError,
    InvalidTransitionError,
    NotFoundError,
    service_boundary,
)
from shared.models.models import (
    AppraisalRequest,
    Company,
    RequestStatus,
    RequestStatusLog,
    RequestType,
    User,
    UserRole,
)
from shared.utils.dates import later_than, utcnow

logger = logging.getLogger(__name__)

TRANSITIONS = {
    RequestStatus.PENDING: {
        RequestStatus.UNDER_REVIEW,
        RequestStatus.INCOMPLETE_DOCS,
        RequestStatus.IN_PROGRESS,
        RequestStatus.REJECTED,
    },
    RequestStatus.UNDER_REVIEW: {
        RequestStatus.INCOMPLETE_DOCS,
        RequestStatus.IN_PROGRESS,
        RequestStatus.REJECTED,
    },
    RequestStatus.INCOMPLETE_DOCS: {
        RequestStatus.UNDER_REVIEW,
        RequestStatus.IN_PROGRESS,
        RequestStatus.REJECTED,
    },
    RequestStatus.IN_PROGRESS: {RequestStatus.COMPLETED, RequestStatus.REJECTED},
    RequestStatus.COMPLETED: set(),
    RequestStatus.REJECTED: set(),
}


def can_transition(current: RequestStatus, new: RequestStatus) -> bool:
    return new in TRANSITIONS.get(current, set())


def _parse_status(value: Union[str, RequestStatus]) -> RequestStatus:
    try:
        return RequestStatus(value)
    except ValueError:
        raise InvalidArgumentError(f"Invalid status: {value}")


def _parse_type(value: Union[str, RequestType, None]) -> RequestType:
    try:
        return RequestType(value)
    except ValueError:
        raise InvalidArgumentError(f"Invalid request type: {value}")


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


class RequestWorkflow:
    def __init__(self, db: AsyncSession, emitter: Optional[NotificationEmitter] = None):
        self.db = db
        self.emitter = emitter or NotificationEmitter()

    # ── Create ────────────────────────────────────────────────

    @service_boundary("Failed to create request")
    async def create_request(
        self,
        customer_id: uuid.UUID,
        company_id: uuid.UUID,
        type: Union[str, RequestType],
        location: str,
        company_name: Optional[str] = None,
        property_type: Optional[str] = None,
        description: Optional[str] = None,
    ) -> AppraisalRequest:
        if customer_id is None or company_id is None:
            raise InvalidArgumentError("customer_id and company_id are required")
        if _blank(location):
            raise InvalidArgumentError("location is required")
        request_type = _parse_type(type)

        company = await self.db.get(Company, company_id)
        if not company:
            raise NotFoundError("Company not found")
        if not company.is_approved or company.is_suspended or company.is_archived:
            raise InvalidArgumentError("Company is not accepting requests")
        if not company.offers(request_type):
            raise InvalidArgumentError(f"{company.name} does not offer {request_type.value} appraisals")

        now = utcnow()
        request = AppraisalRequest(
            customer_id=customer_id,
            company_id=company.id,
            company_name=company_name.strip() if not _blank(company_name) else company.name,
            type=request_type,
            status=RequestStatus.PENDING,
            property_type=property_type,
            location=location.strip(),
            description=description,
            documents=[],
            created_at=now,
            updated_at=now,
        )
        self.db.add(request)
        await self.db.flush()
        self.db.add(RequestStatusLog(
            request_id=request.id,
            from_status=None,
            to_status=RequestStatus.PENDING.value,
            changed_by_id=customer_id,
            created_at=now,
        ))
        await self.db.commit()
        logger.info(f"Request {request.id} created for company {company.id}")

        await self.emitter.emit(build_submitted_notification(request, company.user_id))
        return request

    # ── Status ────────────────────────────────────────────────

    @service_boundary("Failed to update request status")
    async def update_request_status(
        self,
        request_id: uuid.UUID,
        new_status: Union[str, RequestStatus],
        actor: User,
    ) -> AppraisalRequest:
        """
        Move a request to new_status on behalf of actor.
        Companies must own the request and follow TRANSITIONS; admins may
        set anything, recorded as an override when off the table.
        """
        new_status = _parse_status(new_status)

        request = await self.db.scalar(
            select(AppraisalRequest)
            .where(AppraisalRequest.id == request_id)
            .with_for_update()
        )
        if not request:
            raise NotFoundError("Request not found")

        previous = request.status
        is_override = False
        if actor.role == UserRole.ADMIN:
            is_override = not can_transition(previous, new_status)
        else:
            if actor.role != UserRole.COMPANY:
                raise ForbiddenError("Only companies and admins can change request status")
            company = await CompanyService(self.db).get_company_by_user_id(actor.id)
            if request.company_id != company.id:
                raise ForbiddenError("Not authorized to update this request")
            if not can_transition(previous, new_status):
                raise InvalidTransitionError(
                    f"Cannot move request from '{previous.value}' to '{new_status.value}'"
                )

        request.status = new_status
        request.updated_at = later_than(request.updated_at)
        self.db.add(RequestStatusLog(
            request_id=request.id,
            from_status=previous.value,
            to_status=new_status.value,
            changed_by_id=actor.id,
            is_override=is_override,
            created_at=request.updated_at,
        ))
        await self.db.commit()

        if is_override:
            logger.warning(
                f"Admin {actor.id} overrode request {request.id}: "
                f"{previous.value} → {new_status.value}"
            )
        else:
            logger.info(f"Request {request.id}: {previous.value} → {new_status.value}")

        await self.emitter.emit(build_status_notifications(request, new_status))
        return request

    async def accept_request(self, request_id: uuid.UUID, actor: User) -> AppraisalRequest:
        return await self.update_request_status(request_id, RequestStatus.IN_PROGRESS, actor)

    async def reject_request(self, request_id: uuid.UUID, actor: User) -> AppraisalRequest:
        return await self.update_request_status(request_id, RequestStatus.REJECTED, actor)

    async def complete_request(self, request_id: uuid.UUID, actor: User) -> AppraisalRequest:
        return await self.update_request_status(request_id, RequestStatus.COMPLETED, actor)

    # ── Reads ─────────────────────────────────────────────────

    @service_boundary("Failed to load request")
    async def get_request_by_id(self, request_id: uuid.UUID) -> AppraisalRequest:
        request = await self.db.get(AppraisalRequest, request_id)
        if not request:
            raise NotFoundError("Request not found")
        return request

    @service_boundary("Failed to load requests")
    async def get_customer_requests(self, customer_id: uuid.UUID) -> List[AppraisalRequest]:
        result = await self.db.execute(
            select(AppraisalRequest)
            .where(AppraisalRequest.customer_id == customer_id)
            .order_by(AppraisalRequest.created_at.desc())
        )
        return list(result.scalars())

    @service_boundary("Failed to load requests")
    async def get_company_requests(self, company_id: uuid.UUID) -> List[AppraisalRequest]:
        result = await self.db.execute(
            select(AppraisalRequest)
            .where(AppraisalRequest.company_id == company_id)
            .order_by(AppraisalRequest.created_at.desc())
        )
        return list(result.scalars())

    @service_boundary("Failed to load requests")
    async def get_all_requests(
        self,
        search: Optional[str] = None,
        status: Optional[Union[str, RequestStatus]] = None,
    ) -> List[AppraisalRequest]:
        query = select(AppraisalRequest).order_by(AppraisalRequest.created_at.desc())
        if status:
            query = query.where(AppraisalRequest.status == _parse_status(status))
        if search and search.strip():
            pattern = f"%{search.strip().lower()}%"
            query = query.where(or_(
                AppraisalRequest.company_name.ilike(pattern),
                AppraisalRequest.location.ilike(pattern),
                AppraisalRequest.property_type.ilike(pattern),
            ))
        result = await self.db.execute(query)
        return list(result.scalars())

    async def ensure_visible(self, request: AppraisalRequest, viewer: User) -> None:
        """Customers see their own requests, companies those addressed to them."""
        if viewer.role == UserRole.ADMIN:
            return
        if viewer.role == UserRole.CUSTOMER and request.customer_id == viewer.id:
            return
        if viewer.role == UserRole.COMPANY:
            company = await self.db.scalar(select(Company).where(Company.user_id == viewer.id))
            if company and request.company_id == company.id:
                return
        raise ForbiddenError("Not authorized to view this request")
