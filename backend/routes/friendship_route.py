from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from models.auth import User
from models.common import get_session
from models.friendship import Friendship
from routes.deps import current_user, get_current_user
from services import friendship as svc
from services.errors import NotFound

router = APIRouter(prefix="/friendship")


def _get_user_by_identifier(session: Session, ident: str) -> User:
    # Try by username first (non-null only), then by id
    user = session.exec(select(User).where(User.username == ident)).first()
    if not user:
        user = session.get(User, ident)
    if not user:
        raise NotFound("User not found")
    return user


def _friendship_payload(fr: Friendship) -> dict:
    return {"friendship": fr.to_dict()}


@router.get("/status/{identifier}")
async def friendship_status(
    identifier: str,
    session: Session = Depends(get_session),
    user: User | None = Depends(get_current_user),
):
    """Return the relationship status between the current user and the target user.
    Possible statuses: none, self, friends, pending_outgoing, pending_incoming
    """
    target = _get_user_by_identifier(session, identifier)
    if not user:
        return {"status": "none"}
    return {"status": svc.relationship_status(session, viewer=user, target=target)}


@router.get("/pending")
async def pending_requests(
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    return {"pending": svc.pending_requests(session, user=user)}


@router.get("/outgoing")
async def outgoing_requests(
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    return {"outgoing": svc.outgoing_requests(session, user=user)}


@router.get("/list")
async def list_friends(
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    return {"friends": svc.list_friends(session, user=user)}


@router.post("/request/{identifier}", status_code=201)
async def send_friend_request(
    identifier: str,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    recipient = _get_user_by_identifier(session, identifier)
    fr = svc.send_request(session, requester=user, recipient=recipient)
    return _friendship_payload(fr)


@router.delete("/request/{identifier}")
async def cancel_friend_request(
    identifier: str,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    recipient = _get_user_by_identifier(session, identifier)
    svc.cancel_request(session, requester=user, recipient=recipient)
    return {"message": "Request cancelled"}


@router.post("/accept/{identifier}")
async def accept_request(
    identifier: str,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    requester = _get_user_by_identifier(session, identifier)
    fr = svc.accept_request(session, recipient=user, requester=requester)
    return _friendship_payload(fr)


@router.post("/decline/{identifier}")
async def decline_request(
    identifier: str,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    requester = _get_user_by_identifier(session, identifier)
    fr = svc.decline_request(session, recipient=user, requester=requester)
    return _friendship_payload(fr)


@router.delete("/{identifier}")
async def unfriend(
    identifier: str,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    other = _get_user_by_identifier(session, identifier)
    svc.remove_friend(session, user=user, other=other)
    return {"message": "Unfriended"}
