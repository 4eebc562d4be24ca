# routers/users.py
import logging
from typing import List

from fastapi import APIRouter
from sqlmodel import select

from db import SessionDep
from errors import NotFound, ValidationFailed
from models import USER_ACTIVE, USER_BLOCKED, User, utcnow
from schemas import BlockUserRequest, UserRead
from .auth import AdminDep, CurrentUserDep

router = APIRouter(tags=["users"])

logger = logging.getLogger(__name__)


@router.get("/", response_model=List[UserRead])
def list_users(session: SessionDep, admin: AdminDep):
    """
    List all users (admin).
    """
    return session.exec(select(User).order_by(User.id)).all()


@router.get("/{user_id}", response_model=UserRead)
def get_user(user_id: int, session: SessionDep, current: CurrentUserDep):
    """
    Get a single user by ID.
    """
    user = session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


@router.post("/{user_id}/promote", response_model=UserRead)
def promote_user(user_id: int, session: SessionDep, admin: AdminDep):
    """
    Grant the admin capability to another user.
    """
    user = session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")

    if not user.is_admin:
        user.is_admin = True
        session.add(user)
        session.commit()
        session.refresh(user)
        logger.info("User %s promoted to admin by %s", user_id, admin.id)
    return user


@router.post("/{user_id}/block", response_model=UserRead)
def block_user(user_id: int, payload: BlockUserRequest, session: SessionDep, admin: AdminDep):
    """
    Block a user. Blocked users can no longer log in or use their token.
    """
    if user_id == admin.id:
        raise ValidationFailed("You cannot block your own account")
    user = session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")

    user.status = USER_BLOCKED
    user.blocked_reason = payload.reason
    user.blocked_at = utcnow()
    user.blocked_by = admin.id
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("User %s blocked by %s: %s", user_id, admin.id, payload.reason)
    return user


@router.post("/{user_id}/unblock", response_model=UserRead)
def unblock_user(user_id: int, session: SessionDep, admin: AdminDep):
    user = session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")

    user.status = USER_ACTIVE
    user.blocked_reason = None
    user.blocked_at = None
    user.blocked_by = None
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("User %s unblocked by %s", user_id, admin.id)
    return user
