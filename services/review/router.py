"""
services/review/router.py
Rating and review management.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from services.request.workflow import RequestWorkflow
from services.review.aggregator import RatingService
from shared.middleware.auth import require_customer
from shared.models.models import User
from shared.schemas.schemas import RatingStatusResponse, ReviewCreateRequest, ReviewResponse

router = APIRouter(prefix="/reviews", tags=["Reviews"])


@router.post("", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
async def create_review(
    data: ReviewCreateRequest,
    current_user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    Rate the company that handled a completed request.
    - One review per request per customer (also a DB unique constraint)
    - The company's rating is recomputed in the same transaction
    """
    request = await RequestWorkflow(db).get_request_by_id(data.request_id)
    review = await RatingService(db).submit_rating(
        company_id=request.company_id,
        customer_id=current_user.id,
        request_id=data.request_id,
        rating=data.rating,
        review_text=data.review_text,
    )
    return ReviewResponse.model_validate(review)


@router.get("/company/{company_id}", response_model=list[ReviewResponse])
async def get_company_reviews(company_id: UUID, db: AsyncSession = Depends(get_db)):
    """Public: reviews for a company, newest first."""
    reviews = await RatingService(db).get_company_reviews(company_id)
    return [ReviewResponse.model_validate(r) for r in reviews]


@router.get("/status/{request_id}", response_model=RatingStatusResponse)
async def get_rating_status(
    request_id: UUID,
    current_user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    has_rated = await RatingService(db).has_rated_request(request_id, current_user.id)
    return RatingStatusResponse(request_id=request_id, has_rated=has_rated)
