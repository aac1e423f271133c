from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Query, status

from app.core.security import hash_password, verify_password
from app.schemas import FirebaseUser, LoginRequest, RegisterRequest, UserOut
from app.services.storage import storage


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["auth"])


def _unique_username(base: str, uid: str) -> str:
    if storage.get_user_by_username(base) is None:
        return base
    return f"{base}-{uid[:6]}"


@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest) -> UserOut:
    if storage.get_user_by_email(body.email) is not None:
        raise HTTPException(status_code=409, detail="Email already in use")
    if storage.get_user_by_username(body.username) is not None:
        raise HTTPException(status_code=409, detail="Username already taken")

    user = storage.create_user(
        username=body.username,
        email=body.email,
        password=hash_password(body.password),
        display_name=body.username,
    )
    logger.info("registered user %s", user.id)
    return UserOut.model_validate(user)


@router.post("/login", response_model=UserOut)
def login(body: LoginRequest) -> UserOut:
    user = storage.get_user_by_email(body.email)
    if user is None or not verify_password(body.password, user.password):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    user = storage.update_last_login(user.id)
    return UserOut.model_validate(user)


@router.post("/firebase-auth", response_model=UserOut)
def firebase_auth(body: FirebaseUser) -> UserOut:
    user = storage.get_user_by_firebase_uid(body.uid)
    if user is not None:
        return UserOut.model_validate(storage.update_last_login(user.id))

    if not body.email:
        raise HTTPException(status_code=400, detail="Failed to authenticate user: no email on account")

    existing = storage.get_user_by_email(body.email)
    if existing is not None:
        # Link the federated identity to the account that owns the email
        storage.update_user(
            existing.id,
            firebase_uid=body.uid,
            display_name=body.display_name or existing.display_name,
            photo_url=body.photo_url or existing.photo_url,
        )
        logger.info("linked firebase uid to user %s", existing.id)
        return UserOut.model_validate(storage.update_last_login(existing.id))

    local_part = body.email.split("@")[0]
    user = storage.create_user(
        username=_unique_username(local_part, body.uid),
        email=body.email,
        password="",
        display_name=body.display_name or local_part,
        photo_url=body.photo_url,
        firebase_uid=body.uid,
    )
    logger.info("created user %s from firebase account", user.id)
    return UserOut.model_validate(user)


@router.get("/profile", response_model=UserOut)
def get_profile(id: str = Query("", description="Numeric user id or firebase uid")) -> UserOut:
    if not id:
        raise HTTPException(status_code=400, detail="User ID is required")
    user = storage.resolve_user(id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return UserOut.model_validate(user)
