import tomllib
from fastapi import APIRouter, Depends, Request
from sqlmodel import Session, select

from models.auth import User
from models.challenge import Badge, UserBadge
from models.common import get_session
from routes.deps import get_current_user
from services.friendship import list_friends
from settings import PROJECT_PATH

router = APIRouter()


def get_version() -> str:
    with open(PROJECT_PATH / "pyproject.toml", "rb") as f:
        return tomllib.load(f)["project"]["version"]


@router.get("/")
async def index():
    return {"version": get_version(), "status": "ok"}


@router.get("/user/me")
def get_player_profile(
    user: User | None = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """The logged player with the badges earned by claiming rewards"""
    if not user:
        return {"user": None}

    earned = session.exec(
        select(Badge, UserBadge)
        .join(UserBadge, UserBadge.badge_id == Badge.id)
        .where(UserBadge.user_id == user.id)
        .order_by(UserBadge.claimed_at)
    ).all()
    return {
        "user": {
            **user.public(),
            "email": user.email,
            "join_date": user.join_date.isoformat(),
            "is_admin": user.is_admin,
            "friends_count": len(list_friends(session, user=user)),
            "badges": [
                {
                    "id": badge.id,
                    "name": badge.name,
                    "icon_url": badge.icon_url,
                    "challenge_id": user_badge.challenge_id,
                    "claimed_at": user_badge.claimed_at.isoformat(),
                }
                for badge, user_badge in earned
            ],
        }
    }


@router.post("/logout")
async def logout(request: Request):
    request.session.clear()
    return {"message": "Logged out"}
