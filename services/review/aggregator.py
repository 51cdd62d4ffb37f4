"""
services/review/aggregator.py
Customer ratings and the denormalized company rating.

A review and the company aggregate it changes are written in one
transaction. The aggregate is recomputed from the reviews table while
the company row is locked, so concurrent submissions cannot lose updates.
"""

import logging
import uuid
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
    service_boundary,
)
from shared.models.models import AppraisalRequest, Company, RequestStatus, Review, User

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


def round_rating(mean: Optional[float]) -> float:
    """One decimal place, halves rounded up (4.25 → 4.3)."""
    if mean is None:
        return 0.0
    return float(Decimal(str(mean)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


class RatingService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _already_rated(self, request_id: uuid.UUID, customer_id: uuid.UUID) -> bool:
        existing = await self.db.scalar(
            select(Review.id).where(
                Review.request_id == request_id,
                Review.customer_id == customer_id,
            )
        )
        return existing is not None

    async def _recompute(self, company_id: uuid.UUID) -> Tuple[float, int]:
        mean, count = (
            await self.db.execute(
                select(func.avg(Review.rating), func.count(Review.id))
                .where(Review.company_id == company_id)
            )
        ).one()
        rating = round_rating(mean) if count else 0.0
        await self.db.execute(
            update(Company)
            .where(Company.id == company_id)
            .values(rating=rating, total_ratings=count)
        )
        return rating, count

    @service_boundary("Failed to submit rating")
    async def submit_rating(
        self,
        company_id: uuid.UUID,
        customer_id: uuid.UUID,
        request_id: uuid.UUID,
        rating: int,
        review_text: Optional[str] = None,
    ) -> Review:
        """Record one rating per (request, customer) and refresh the company aggregate."""
        if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
            raise InvalidArgumentError(f"Rating must be a whole number between {MIN_RATING} and {MAX_RATING}")

        if await self._already_rated(request_id, customer_id):
            raise ConflictError("You have already rated this request")

        company = await self.db.scalar(
            select(Company).where(Company.id == company_id).with_for_update()
        )
        if not company:
            raise NotFoundError("Company not found")
        customer = await self.db.get(User, customer_id)
        if not customer:
            raise NotFoundError("Customer not found")

        request = await self.db.get(AppraisalRequest, request_id)
        if not request:
            raise NotFoundError("Request not found")
        if request.customer_id != customer_id or request.company_id != company_id:
            raise ForbiddenError("You can only rate your own requests")
        if request.status != RequestStatus.COMPLETED:
            raise InvalidArgumentError("Only completed requests can be rated")

        text = review_text.strip() if review_text else None
        review = Review(
            company_id=company.id,
            company_name=company.name,
            customer_id=customer.id,
            customer_name=(customer.full_name or "").strip() or "Anonymous",
            request_id=request_id,
            rating=rating,
            review_text=text or None,
        )
        self.db.add(review)
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError("You have already rated this request") from e

        new_rating, total = await self._recompute(company.id)
        await self.db.commit()

        logger.info(f"Company {company.id} rated {rating}; now {new_rating} over {total}")
        return review

    @service_boundary("Failed to load reviews")
    async def get_company_reviews(self, company_id: uuid.UUID) -> List[Review]:
        result = await self.db.execute(
            select(Review)
            .where(Review.company_id == company_id)
            .order_by(Review.created_at.desc())
        )
        return list(result.scalars())

    @service_boundary("Failed to update company rating")
    async def update_company_rating(self, company_id: uuid.UUID) -> Tuple[float, int]:
        """Recompute the aggregate on demand. Returns (rating, total_ratings)."""
        company = await self.db.scalar(
            select(Company.id).where(Company.id == company_id).with_for_update()
        )
        if company is None:
            raise NotFoundError("Company not found")
        result = await self._recompute(company_id)
        await self.db.commit()
        return result

    async def has_rated_request(self, request_id: uuid.UUID, customer_id: uuid.UUID) -> bool:
        """False when the lookup itself fails; callers only use this to hide the rate button."""
        try:
            return await self._already_rated(request_id, customer_id)
        except SQLAlchemyError as e:
            logger.warning(f"Rating lookup failed for request {request_id}: {e}")
            return False
