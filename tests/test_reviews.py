"""
tests/test_reviews.py
Tests for rating submission, duplicate protection and the company aggregate.
"""

import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from services.request.workflow import RequestWorkflow
from services.review.aggregator import RatingService, round_rating
from shared.exceptions import ConflictError, ForbiddenError, InvalidArgumentError, NotFoundError
from shared.models.models import Company, Notification, RequestStatus, Review, User
from tests.conftest import auth_headers, make_request


async def _completed_request(db: AsyncSession, customer: User, company: Company):
    request = make_request(customer, company, status=RequestStatus.COMPLETED)
    db.add(request)
    await db.commit()
    return request


@pytest.mark.asyncio
@pytest.mark.parametrize("rating", [1, 2, 3, 4, 5])
async def test_each_rating_accepted_once(db: AsyncSession, customer: User, company: Company, rating: int):
    request = await _completed_request(db, customer, company)
    ratings = RatingService(db)

    review = await ratings.submit_rating(company.id, customer.id, request.id, rating)
    assert review.rating == rating

    with pytest.raises(ConflictError):
        await ratings.submit_rating(company.id, customer.id, request.id, rating)


@pytest.mark.asyncio
@pytest.mark.parametrize("values, expected", [
    ([5], 5.0),
    ([1, 2], 1.5),
    ([5, 4, 4], 4.3),
    ([4, 5, 4, 4], 4.3),
    ([3, 3, 4], 3.3),
])
async def test_company_rating_is_rounded_mean(
    db: AsyncSession, customer: User, company: Company, values, expected
):
    ratings = RatingService(db)
    for value in values:
        request = await _completed_request(db, customer, company)
        await ratings.submit_rating(company.id, customer.id, request.id, value)

    await db.refresh(company)
    assert company.rating == expected
    assert company.total_ratings == len(values)


def test_round_rating_halves_round_up():
    assert round_rating(4.25) == 4.3
    assert round_rating(4.35) == 4.4
    assert round_rating(None) == 0.0


@pytest.mark.asyncio
@pytest.mark.parametrize("bad", [0, 6, -1, 3.5, True])
async def test_rating_out_of_range(db: AsyncSession, customer: User, company: Company, bad):
    request = await _completed_request(db, customer, company)
    with pytest.raises(InvalidArgumentError):
        await RatingService(db).submit_rating(company.id, customer.id, request.id, bad)


@pytest.mark.asyncio
async def test_rating_requires_completed_request(db: AsyncSession, customer: User, company: Company):
    request = make_request(customer, company, status=RequestStatus.IN_PROGRESS)
    db.add(request)
    await db.commit()

    with pytest.raises(InvalidArgumentError):
        await RatingService(db).submit_rating(company.id, customer.id, request.id, 4)


@pytest.mark.asyncio
async def test_rating_unknown_company_or_customer(db: AsyncSession, customer: User, company: Company):
    request = await _completed_request(db, customer, company)
    ratings = RatingService(db)

    with pytest.raises(NotFoundError):
        await ratings.submit_rating(uuid.uuid4(), customer.id, request.id, 4)
    with pytest.raises(NotFoundError):
        await ratings.submit_rating(company.id, uuid.uuid4(), request.id, 4)


@pytest.mark.asyncio
async def test_cannot_rate_someone_elses_request(db: AsyncSession, customer: User, company: Company):
    other = User(email="other@example.com", full_name="Other", password_hash="x")
    db.add(other)
    await db.commit()
    request = await _completed_request(db, customer, company)

    with pytest.raises(ForbiddenError):
        await RatingService(db).submit_rating(company.id, other.id, request.id, 4)


@pytest.mark.asyncio
async def test_review_snapshots_and_text_cleanup(db: AsyncSession, customer: User, company: Company):
    request = await _completed_request(db, customer, company)
    review = await RatingService(db).submit_rating(company.id, customer.id, request.id, 4, "   ")

    assert review.review_text is None
    assert review.company_name == "Prime Valuers"
    assert review.customer_name == "Ada Obi"


@pytest.mark.asyncio
async def test_blank_customer_name_becomes_anonymous(db: AsyncSession, customer: User, company: Company):
    customer.full_name = ""
    await db.commit()
    request = await _completed_request(db, customer, company)

    review = await RatingService(db).submit_rating(company.id, customer.id, request.id, 3, " Fine ")
    assert review.customer_name == "Anonymous"
    assert review.review_text == "Fine"


@pytest.mark.asyncio
async def test_has_rated_request(db: AsyncSession, customer: User, company: Company):
    request = await _completed_request(db, customer, company)
    ratings = RatingService(db)

    assert await ratings.has_rated_request(request.id, customer.id) is False
    await ratings.submit_rating(company.id, customer.id, request.id, 5)
    assert await ratings.has_rated_request(request.id, customer.id) is True


@pytest.mark.asyncio
async def test_has_rated_request_fails_open(monkeypatch, db: AsyncSession, customer: User, company: Company):
    request = await _completed_request(db, customer, company)

    async def unavailable(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection lost"))

    monkeypatch.setattr(db, "scalar", unavailable)
    assert await RatingService(db).has_rated_request(request.id, customer.id) is False


@pytest.mark.asyncio
async def test_update_company_rating_without_reviews(db: AsyncSession, company: Company):
    company.rating = 3.7
    company.total_ratings = 9
    await db.commit()

    assert await RatingService(db).update_company_rating(company.id) == (0.0, 0)


@pytest.mark.asyncio
async def test_rating_sends_no_notification(db: AsyncSession, customer: User, company: Company):
    request = await _completed_request(db, customer, company)
    await RatingService(db).submit_rating(company.id, customer.id, request.id, 5)

    result = await db.execute(select(Notification))
    assert list(result.scalars()) == []


# ── End to end ────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_request_to_rating_scenario(
    client: AsyncClient,
    db: AsyncSession,
    customer: User,
    company: Company,
    company_user: User,
):
    """Property request → accept → complete → rate 5 → company 5.0 over 1 → second rating refused."""
    request = await RequestWorkflow(db).create_request(customer.id, company.id, "property", "Lekki")
    company_headers = auth_headers(company_user)
    customer_headers = auth_headers(customer)

    assert (await client.post(f"/requests/{request.id}/accept", headers=company_headers)).status_code == 200
    assert (await client.post(f"/requests/{request.id}/complete", headers=company_headers)).status_code == 200

    status_before = await client.get(f"/reviews/status/{request.id}", headers=customer_headers)
    assert status_before.json()["has_rated"] is False

    response = await client.post(
        "/reviews",
        headers=customer_headers,
        json={"request_id": str(request.id), "rating": 5, "review_text": "Great service"},
    )
    assert response.status_code == 201
    assert response.json()["review_text"] == "Great service"

    company_view = await client.get(f"/companies/{company.id}")
    assert company_view.json()["rating"] == 5.0
    assert company_view.json()["total_ratings"] == 1

    again = await client.post(
        "/reviews",
        headers=customer_headers,
        json={"request_id": str(request.id), "rating": 4},
    )
    assert again.status_code == 409

    status_after = await client.get(f"/reviews/status/{request.id}", headers=customer_headers)
    assert status_after.json()["has_rated"] is True

    reviews = await client.get(f"/reviews/company/{company.id}")
    assert [r["rating"] for r in reviews.json()] == [5]


@pytest.mark.asyncio
async def test_duplicate_blocked_by_unique_constraint(
    monkeypatch, db: AsyncSession, customer: User, company: Company
):
    """With the pre-check bypassed, the (request, customer) constraint still refuses a second review."""
    request = await _completed_request(db, customer, company)
    db.add(Review(
        company_id=company.id, company_name=company.name,
        customer_id=customer.id, customer_name="Ada Obi",
        request_id=request.id, rating=2,
    ))
    await db.commit()

    async def never_rated(self, request_id, customer_id):
        return False

    monkeypatch.setattr(RatingService, "_already_rated", never_rated)

    with pytest.raises(ConflictError):
        await RatingService(db).submit_rating(company.id, customer.id, request.id, 5)

    result = await db.execute(select(Review.rating).where(Review.request_id == request.id))
    assert result.scalars().all() == [2]
