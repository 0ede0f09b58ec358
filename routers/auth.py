import logging
import os
import secrets
from typing import Annotated, Optional

from db import SessionDep
from fastapi import APIRouter, Cookie, Depends, HTTPException, Response
from itsdangerous import BadData, URLSafeTimedSerializer
from models import User
from passlib.context import CryptContext
from schemas import Actor, LoginData, UserCreate
from sqlmodel import select

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

SECRET_KEY = os.getenv("SESSION_SECRET") or secrets.token_hex(32)
SESSION_MAX_AGE = int(os.getenv("SESSION_MAX_AGE", str(60 * 60 * 8)))
serializer = URLSafeTimedSerializer(SECRET_KEY)


pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_session_token(user_id: int, role: str) -> str:
    """
    Store user_id + role in the signed token.
    Example data:
        {"user_id": 3, "role": "donor"}
    """
    return serializer.dumps({"user_id": user_id, "role": role})


def verify_session_token(token: str, max_age_seconds: int = SESSION_MAX_AGE) -> Optional[dict]:
    """
    Returns dict {'user_id': ..., 'role': ...} if valid,
    or None if token is invalid/expired.
    """
    try:
        return serializer.loads(token, max_age=max_age_seconds)
    except BadData:
        return None


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key="session",
        value=token,
        httponly=True,
        secure=False,
        samesite="lax",
        max_age=SESSION_MAX_AGE,
    )


def get_current_actor(
    session: SessionDep,
    session_token: Optional[str] = Cookie(default=None, alias="session"),
) -> Actor:
    """
    Reads the 'session' cookie, verifies the token and checks the user
    still exists. Raises 401 if not logged in / invalid.
    """
    if session_token is None:
        raise HTTPException(status_code=401, detail="Not logged in")

    data = verify_session_token(session_token)
    if not data:
        raise HTTPException(
            status_code=401, detail="Invalid or expired session")

    user = session.get(User, data["user_id"])
    if user is None:
        raise HTTPException(
            status_code=401, detail="User not found for this session")

    return Actor(user_id=user.id, role=data["role"])


ActorDep = Annotated[Actor, Depends(get_current_actor)]


@router.post("/register")
def register(user_in: UserCreate, session: SessionDep, response: Response):
    """
    Register a new user with a hashed password and log them in.
    A user registered as both donor and seeker starts as donor.
    """
    if user_in.is_donor:
        role = "donor"
    elif user_in.is_seeker:
        role = "seeker"
    else:
        raise HTTPException(
            status_code=400,
            detail="User must be registered as donor or seeker",
        )

    existing = session.exec(
        select(User).where(User.email == user_in.email)
    ).first()
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")

    user = User(
        email=user_in.email,
        name=user_in.name,
        phone=user_in.phone,
        password_hash=hash_password(user_in.password),
        is_donor=user_in.is_donor,
        is_seeker=user_in.is_seeker,
    )
    session.add(user)
    session.commit()
    session.refresh(user)

    if user.id is None:
        raise HTTPException(
            status_code=500, detail="User was not created successfully"
        )

    logger.info("User %s registered as %s", user.id, role)
    _set_session_cookie(response, create_session_token(user.id, role))
    return {"message": "Registration successful", "id": user.id, "role": role}


@router.post("/login")
def login(payload: LoginData, session: SessionDep, response: Response):
    """
    Log in with email + password + chosen role ("donor" / "seeker"),
    set a signed cookie.
    """
    user = session.exec(
        select(User).where(User.email == payload.email)
    ).first()

    if user is None or not verify_password(payload.password, user.password_hash):
        raise HTTPException(
            status_code=400, detail="Invalid email or password"
        )

    if payload.role == "donor" and not user.is_donor:
        raise HTTPException(
            status_code=400, detail="User is not registered as donor"
        )

    if payload.role == "seeker" and not user.is_seeker:
        raise HTTPException(
            status_code=400, detail="User is not registered as seeker"
        )

    _set_session_cookie(response, create_session_token(user.id, payload.role))
    return {"message": "Login successful", "id": user.id, "role": payload.role}


@router.post("/logout")
def logout(response: Response):
    """
    Clear the session cookie.
    """
    response.delete_cookie("session")
    return {"message": "Logged out"}


@router.get("/me")
def read_me(actor: ActorDep, session: SessionDep):
    """
    Get info about the currently logged-in user + active role.
    """
    user = session.get(User, actor.user_id)
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": actor.role,
        "is_donor": user.is_donor,
        "is_seeker": user.is_seeker,
    }
