from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from models.auth import User
from models.common import get_session
from routes.deps import current_user
from services.activity import friends_feed

router = APIRouter(prefix="/activity")


@router.get("/feed")
async def activity_feed(
    limit: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    return {"events": friends_feed(session, user=user, limit=limit)}
