from typing import Any, Literal

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel
from sqlmodel import Session

from models.auth import User
from models.challenge import ChallengeStatus, ChallengeType
from models.common import get_session
from routes.deps import current_user, get_current_user
from services import challenges as svc
from services import progress
from services.validation import validate_challenge

router = APIRouter(prefix="/challenges")


class ProgressBody(BaseModel):
    progress: int | float


class IncrementBody(BaseModel):
    goal_id: str
    steps: int = 1


class TeamBody(BaseModel):
    name: str


@router.post("/", status_code=201)
async def create_challenge(
    payload: dict[str, Any] = Body(...),
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    definition = validate_challenge(payload).unwrap()
    challenge = svc.create_challenge_aggregate(
        session, creator=user, definition=definition
    )
    return {"challenge": svc.challenge_details(session, challenge.id, user)}


@router.get("/")
async def list_challenges(
    type: ChallengeType | None = None,
    status: ChallengeStatus | None = None,
    sort: Literal["date", "participants"] = "date",
    session: Session = Depends(get_session),
):
    return {
        "challenges": svc.list_challenges(session, type=type, status=status, sort=sort)
    }


@router.get("/mine")
async def my_challenges(
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    return {"challenges": svc.user_challenges(session, user=user)}


@router.get("/{challenge_id}")
async def get_challenge(
    challenge_id: str,
    session: Session = Depends(get_session),
    user: User | None = Depends(get_current_user),
):
    return {"challenge": svc.challenge_details(session, challenge_id, user)}


@router.patch("/{challenge_id}")
async def update_challenge(
    challenge_id: str,
    payload: dict[str, Any] = Body(...),
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    svc.update_challenge(session, user=user, challenge_id=challenge_id, payload=payload)
    return {"challenge": svc.challenge_details(session, challenge_id, user)}


@router.delete("/{challenge_id}")
async def delete_challenge(
    challenge_id: str,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    svc.delete_challenge(session, user=user, challenge_id=challenge_id)
    return {"message": "Challenge deleted"}


@router.post("/{challenge_id}/join", status_code=201)
async def join_challenge(
    challenge_id: str,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    participant = progress.join_challenge(session, user=user, challenge_id=challenge_id)
    return {"progress": participant.progress, "joined_at": participant.joined_at.isoformat()}


@router.post("/{challenge_id}/leave")
async def leave_challenge(
    challenge_id: str,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    progress.leave_challenge(session, user=user, challenge_id=challenge_id)
    return {"message": "Left the challenge"}


@router.put("/{challenge_id}/progress")
async def update_progress(
    challenge_id: str,
    body: ProgressBody,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    result = progress.update_progress(
        session, user=user, challenge_id=challenge_id, progress=body.progress
    )
    return result.to_dict()


@router.post("/{challenge_id}/progress/increment")
async def increment_progress(
    challenge_id: str,
    body: IncrementBody,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    result = progress.increment_progress(
        session,
        user=user,
        challenge_id=challenge_id,
        goal_id=body.goal_id,
        steps=body.steps,
    )
    return result.to_dict()


@router.post("/{challenge_id}/rewards/{reward_id}/claim", status_code=201)
async def claim_reward(
    challenge_id: str,
    reward_id: str,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    claim = progress.claim_reward(
        session, user=user, challenge_id=challenge_id, reward_id=reward_id
    )
    return {
        "reward_id": claim.reward_id,
        "claimed_at": claim.claimed_at.isoformat(),
    }


@router.get("/{challenge_id}/leaderboard")
async def leaderboard(challenge_id: str, session: Session = Depends(get_session)):
    return {"leaderboard": svc.leaderboard(session, challenge_id)}


@router.get("/{challenge_id}/teams")
async def list_teams(challenge_id: str, session: Session = Depends(get_session)):
    return {"teams": progress.team_progress(session, challenge_id)}


@router.post("/{challenge_id}/teams", status_code=201)
async def create_team(
    challenge_id: str,
    body: TeamBody,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    team = progress.create_team(
        session, user=user, challenge_id=challenge_id, name=body.name
    )
    return {"team": {"id": team.id, "name": team.name}}


@router.post("/{challenge_id}/teams/leave")
async def leave_team(
    challenge_id: str,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    progress.leave_team(session, user=user, challenge_id=challenge_id)
    return {"message": "Left the team"}


@router.post("/{challenge_id}/teams/{team_id}/join")
async def join_team(
    challenge_id: str,
    team_id: str,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    participant = progress.join_team(
        session, user=user, challenge_id=challenge_id, team_id=team_id
    )
    return {"team_id": participant.team_id}
