"""
tests/test_requests.py
Tests for the appraisal request workflow: creation, status transitions,
admin overrides, notifications and visibility.
"""

import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from services.notification.emitter import NotificationEmitter
from services.request.workflow import RequestWorkflow
from shared.exceptions import (
    ForbiddenError,
    InvalidArgumentError,
    InvalidTransitionError,
    NotFoundError,
)
from shared.models.models import (
    Company,
    Notification,
    NotificationType,
    RequestStatus,
    RequestStatusLog,
    RequestType,
    User,
    UserRole,
)
from shared.utils.dates import as_utc
from tests.conftest import auth_headers, make_request


async def _notifications_for(db: AsyncSession, user_id, request_id=None):
    query = select(Notification).where(Notification.user_id == user_id)
    if request_id:
        query = query.where(Notification.request_id == request_id)
    result = await db.execute(query)
    return list(result.scalars())


# ── Create ────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_create_request_starts_pending(db: AsyncSession, customer: User, company: Company):
    request = await RequestWorkflow(db).create_request(
        customer_id=customer.id,
        company_id=company.id,
        type="property",
        location="Ikoyi, Lagos",
        property_type="Duplex",
    )
    assert request.status == RequestStatus.PENDING
    assert request.created_at == request.updated_at
    assert request.company_name == company.name


@pytest.mark.asyncio
async def test_create_request_keeps_given_company_name(db: AsyncSession, customer: User, company: Company):
    request = await RequestWorkflow(db).create_request(
        customer_id=customer.id,
        company_id=company.id,
        type=RequestType.VEHICLE,
        location="Abuja",
        company_name="Prime Valuers Ltd",
    )
    assert request.company_name == "Prime Valuers Ltd"


@pytest.mark.asyncio
async def test_create_request_notifies_company(db: AsyncSession, customer: User, company: Company, company_user: User):
    request = await RequestWorkflow(db).create_request(
        customer_id=customer.id,
        company_id=company.id,
        type="vehicle",
        location="Abuja",
    )
    notifications = await _notifications_for(db, company_user.id, request.id)
    assert len(notifications) == 1
    assert notifications[0].type == NotificationType.REQUEST_SUBMITTED
    assert notifications[0].user_role == UserRole.COMPANY
    assert notifications[0].title == "New Appraisal Request"
    assert notifications[0].body == "You have received a new car appraisal request."


@pytest.mark.asyncio
async def test_create_request_company_without_owner_skips_notification(db: AsyncSession, customer: User):
    orphan = Company(
        name="Legacy Appraisers",
        email="legacy@appraisers.com",
        phone="+2348000000009",
        location="Ibadan",
        services=["property"],
        license_number="LIC-LEGACY",
        user_id=None,
        is_approved=True,
    )
    db.add(orphan)
    await db.commit()

    request = await RequestWorkflow(db).create_request(
        customer_id=customer.id,
        company_id=orphan.id,
        type="property",
        location="Ibadan",
    )
    assert request.status == RequestStatus.PENDING
    total = await db.scalar(select(func.count(Notification.id)))
    assert total == 0


@pytest.mark.asyncio
async def test_create_request_validation(db: AsyncSession, customer: User, company: Company):
    workflow = RequestWorkflow(db)

    with pytest.raises(InvalidArgumentError):
        await workflow.create_request(customer.id, company.id, "property", "   ")
    with pytest.raises(InvalidArgumentError):
        await workflow.create_request(customer.id, company.id, "boat", "Lagos")
    with pytest.raises(NotFoundError):
        await workflow.create_request(customer.id, uuid.uuid4(), "property", "Lagos")


@pytest.mark.asyncio
async def test_create_request_rejects_unapproved_or_unoffered(db: AsyncSession, customer: User, company: Company):
    workflow = RequestWorkflow(db)

    company.services = ["property"]
    await db.commit()
    with pytest.raises(InvalidArgumentError):
        await workflow.create_request(customer.id, company.id, "vehicle", "Lagos")

    company.is_approved = False
    await db.commit()
    with pytest.raises(InvalidArgumentError):
        await workflow.create_request(customer.id, company.id, "property", "Lagos")


# ── Status transitions ────────────────────────────────────────

@pytest.mark.asyncio
@pytest.mark.parametrize("start, target, expected_type", [
    (RequestStatus.PENDING, RequestStatus.IN_PROGRESS, NotificationType.REQUEST_IN_PROGRESS),
    (RequestStatus.PENDING, RequestStatus.REJECTED, NotificationType.REQUEST_REJECTED),
    (RequestStatus.PENDING, RequestStatus.INCOMPLETE_DOCS, NotificationType.DOCUMENT_REQUIRED),
    (RequestStatus.IN_PROGRESS, RequestStatus.COMPLETED, NotificationType.REQUEST_COMPLETED),
])
async def test_status_change_sends_one_customer_notification(
    db: AsyncSession,
    customer: User,
    company: Company,
    company_user: User,
    start,
    target,
    expected_type,
):
    request = make_request(customer, company, status=start)
    db.add(request)
    await db.commit()

    await RequestWorkflow(db).update_request_status(request.id, target, company_user)

    notifications = await _notifications_for(db, customer.id, request.id)
    assert len(notifications) == 1
    assert notifications[0].type == expected_type
    assert notifications[0].user_role == UserRole.CUSTOMER


@pytest.mark.asyncio
async def test_under_review_sends_no_notification(
    db: AsyncSession, customer: User, company: Company, company_user: User
):
    request = make_request(customer, company)
    db.add(request)
    await db.commit()

    await RequestWorkflow(db).update_request_status(request.id, "under_review", company_user)

    assert await _notifications_for(db, customer.id) == []


@pytest.mark.asyncio
async def test_notification_bodies_use_company_name_and_label(
    db: AsyncSession, customer: User, company: Company, company_user: User
):
    request = make_request(customer, company, type=RequestType.VEHICLE, status=RequestStatus.IN_PROGRESS)
    db.add(request)
    await db.commit()

    await RequestWorkflow(db).complete_request(request.id, company_user)

    [notification] = await _notifications_for(db, customer.id, request.id)
    assert notification.title == "Appraisal Completed"
    assert notification.body == (
        "Your car appraisal from Prime Valuers has been completed. "
        "You can now download the report."
    )


@pytest.mark.asyncio
async def test_completed_request_has_later_updated_at(
    db: AsyncSession, customer: User, company: Company, company_user: User
):
    workflow = RequestWorkflow(db)
    request = await workflow.create_request(customer.id, company.id, "property", "Lekki")
    created = as_utc(request.updated_at)

    await workflow.accept_request(request.id, company_user)
    await workflow.complete_request(request.id, company_user)

    reloaded = await workflow.get_request_by_id(request.id)
    assert reloaded.status == RequestStatus.COMPLETED
    assert as_utc(reloaded.updated_at) > created


@pytest.mark.asyncio
async def test_company_cannot_make_illegal_transition(
    db: AsyncSession, customer: User, company: Company, company_user: User
):
    request = make_request(customer, company, status=RequestStatus.COMPLETED)
    db.add(request)
    await db.commit()

    with pytest.raises(InvalidTransitionError):
        await RequestWorkflow(db).update_request_status(request.id, RequestStatus.PENDING, company_user)


@pytest.mark.asyncio
async def test_admin_override_is_logged(
    db: AsyncSession, customer: User, company: Company, admin_user: User
):
    request = make_request(customer, company, status=RequestStatus.COMPLETED)
    db.add(request)
    await db.commit()

    updated = await RequestWorkflow(db).update_request_status(request.id, "pending", admin_user)
    assert updated.status == RequestStatus.PENDING

    log = await db.scalar(
        select(RequestStatusLog).where(RequestStatusLog.request_id == request.id)
    )
    assert log.is_override is True
    assert log.from_status == "completed"
    assert log.to_status == "pending"
    assert log.changed_by_id == admin_user.id
    # Moving back to pending tells nobody
    assert await _notifications_for(db, customer.id) == []


@pytest.mark.asyncio
async def test_update_status_unknown_request_or_status(db: AsyncSession, admin_user: User):
    workflow = RequestWorkflow(db)
    with pytest.raises(NotFoundError):
        await workflow.update_request_status(uuid.uuid4(), "completed", admin_user)
    with pytest.raises(InvalidArgumentError):
        await workflow.update_request_status(uuid.uuid4(), "archived", admin_user)


@pytest.mark.asyncio
async def test_other_company_cannot_update(db: AsyncSession, customer: User, company: Company):
    rival_user = User(email="rival@valuers.com", full_name="Rival", role=UserRole.COMPANY, password_hash="x")
    db.add(rival_user)
    await db.flush()
    db.add(Company(
        name="Rival Valuers", email="rival@valuers.com", phone="+2348000000002",
        location="Lagos", services=["property"], license_number="LIC-RIVAL",
        user_id=rival_user.id, is_approved=True,
    ))
    request = make_request(customer, company)
    db.add(request)
    await db.commit()

    with pytest.raises(ForbiddenError):
        await RequestWorkflow(db).accept_request(request.id, rival_user)


@pytest.mark.asyncio
async def test_notification_failure_does_not_fail_status_change(
    db: AsyncSession, customer: User, company: Company, company_user: User
):
    def broken_store():
        raise RuntimeError("notification store unavailable")

    request = make_request(customer, company)
    db.add(request)
    await db.commit()

    workflow = RequestWorkflow(db, emitter=NotificationEmitter(session_factory=broken_store, mode="inline"))
    updated = await workflow.accept_request(request.id, company_user)

    assert updated.status == RequestStatus.IN_PROGRESS
    reloaded = await RequestWorkflow(db).get_request_by_id(request.id)
    assert reloaded.status == RequestStatus.IN_PROGRESS


# ── HTTP ──────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_customer_submits_request_over_http(client: AsyncClient, customer: User, company: Company):
    response = await client.post(
        "/requests",
        headers=auth_headers(customer),
        json={
            "company_id": str(company.id),
            "type": "property",
            "location": "Victoria Island",
            "property_type": "Office",
        },
    )
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert data["type"] == "property"
    assert data["created_at"] == data["updated_at"]


@pytest.mark.asyncio
async def test_company_cannot_submit_request(client: AsyncClient, company_user: User, company: Company):
    response = await client.post(
        "/requests",
        headers=auth_headers(company_user),
        json={"company_id": str(company.id), "type": "property", "location": "Lagos"},
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_illegal_transition_over_http_is_409(
    client: AsyncClient, db: AsyncSession, customer: User, company: Company, company_user: User, admin_user: User
):
    request = make_request(customer, company, status=RequestStatus.COMPLETED)
    db.add(request)
    await db.commit()

    response = await client.patch(
        f"/requests/{request.id}/status",
        headers=auth_headers(company_user),
        json={"status": "pending"},
    )
    assert response.status_code == 409
    assert response.json()["code"] == "invalid_transition"

    response = await client.patch(
        f"/requests/{request.id}/status",
        headers=auth_headers(admin_user),
        json={"status": "pending"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "pending"


@pytest.mark.asyncio
async def test_customer_cannot_patch_status(client: AsyncClient, db: AsyncSession, customer: User, company: Company):
    request = make_request(customer, company)
    db.add(request)
    await db.commit()

    response = await client.patch(
        f"/requests/{request.id}/status",
        headers=auth_headers(customer),
        json={"status": "completed"},
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_request_visibility(
    client: AsyncClient, db: AsyncSession, customer: User, company: Company, company_user: User, admin_user: User
):
    stranger = User(email="stranger@example.com", full_name="Stranger", role=UserRole.CUSTOMER, password_hash="x")
    db.add(stranger)
    request = make_request(customer, company)
    db.add(request)
    await db.commit()

    for user, expected in [(customer, 200), (company_user, 200), (admin_user, 200), (stranger, 403)]:
        response = await client.get(f"/requests/{request.id}", headers=auth_headers(user))
        assert response.status_code == expected


@pytest.mark.asyncio
async def test_list_requests_by_role(
    client: AsyncClient, db: AsyncSession, customer: User, company: Company, company_user: User
):
    db.add(make_request(customer, company))
    db.add(make_request(customer, company, type=RequestType.VEHICLE, property_type=None))
    await db.commit()

    mine = await client.get("/requests", headers=auth_headers(customer))
    assert mine.status_code == 200
    assert len(mine.json()) == 2

    addressed = await client.get("/requests", headers=auth_headers(company_user))
    assert addressed.status_code == 200
    assert {r["company_id"] for r in addressed.json()} == {str(company.id)}


@pytest.mark.asyncio
async def test_accept_then_complete_over_http(
    client: AsyncClient, db: AsyncSession, customer: User, company: Company, company_user: User
):
    request = make_request(customer, company)
    db.add(request)
    await db.commit()
    headers = auth_headers(company_user)

    response = await client.post(f"/requests/{request.id}/accept", headers=headers)
    assert response.status_code == 200
    assert response.json()["status"] == "in_progress"

    response = await client.post(f"/requests/{request.id}/complete", headers=headers)
    assert response.status_code == 200
    assert response.json()["status"] == "completed"

    response = await client.post(f"/requests/{request.id}/reject", headers=headers)
    assert response.status_code == 409
