from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from mindjournal.db import get_db
from mindjournal.models import User
from mindjournal.schemas import RatingOut, RatingUpsert
from mindjournal.services import journal
from mindjournal.services.auth_service import get_current_user

router = APIRouter(prefix="/api/ratings", tags=["ratings"])


@router.get("", response_model=List[RatingOut], response_model_exclude_unset=True)
async def list_ratings(
    month: Optional[str] = Query(None, description="YYYY-MM"),
    client_id: Optional[int] = Query(None, alias="clientId"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await journal.list_ratings(db, current_user, client_id, month)


@router.post("", response_model=Optional[RatingOut], response_model_exclude_unset=True)
async def upsert_rating(
    req: RatingUpsert,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Upserts the rating for one day. Clients set clientRating on their own
    row; a connected therapist passes clientId and sets therapistRating.
    """
    rating = await journal.upsert_rating(
        db,
        current_user,
        req.date,
        owner_id=req.client_id,
        client_rating=req.client_rating,
        therapist_rating=req.therapist_rating,
    )
    return rating or None
