# routers/users.py
from typing import List, Optional

from fastapi import APIRouter
from sqlmodel import select

from db import SessionDep
from errors import UserNotFound
from models import User
from schemas import Role, UserRead

router = APIRouter(tags=["users"])


@router.get("/", response_model=List[UserRead])
def list_users(session: SessionDep, role: Optional[Role] = None):
    """
    List users, optionally only donors or only seekers.
    """
    query = select(User)
    if role == "donor":
        query = query.where(User.is_donor == True)  # noqa: E712
    elif role == "seeker":
        query = query.where(User.is_seeker == True)  # noqa: E712
    return session.exec(query.order_by(User.id)).all()


@router.get("/{user_id}", response_model=UserRead)
def get_user(user_id: int, session: SessionDep):
    """
    Get a single user by ID.
    """
    user = session.get(User, user_id)
    if user is None:
        raise UserNotFound(user_id)
    return user
