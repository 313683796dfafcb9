# Authentication: signup/login issuing HS256 JWTs, and the dependencies that resolve the caller.
from __future__ import annotations

import logging
import os
import time
from typing import Callable, Optional

import jwt
from fastapi import APIRouter, Depends, Header, status
from passlib.context import CryptContext

from .. import models, policies, schemas
from ..errors import AuthenticationError, AuthorizationError, ConflictError
from ..rate_limit import Scope, consume, limit_by_ip
from ..repository import SqlRepository, get_repository

router = APIRouter()
logger = logging.getLogger("vinhousing.auth")

JWT_SECRET: str = os.getenv("VINHOUSING_JWT_SECRET", "dev-secret-change-me")
JWT_ALG: str = "HS256"
JWT_TTL_SECONDS: int = int(os.getenv("JWT_TTL_SECONDS", str(60 * 60 * 24 * 7)))  # 7 days
# bcrypt_sha256 pre-hashes, so passwords longer than bcrypt's 72 bytes still count in full
pwd_context = CryptContext(schemes=["bcrypt_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(user: models.User) -> str:
    issued = int(time.time())
    claims = {"sub": str(user.id), "role": user.role, "iat": issued, "exp": issued + JWT_TTL_SECONDS}
    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALG)


def _user_id_from_token(token: str) -> int:
    try:
        claims = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationError("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthenticationError("Invalid token") from exc
    try:
        return int(claims["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise AuthenticationError("Invalid token payload") from exc


def _ensure_active(user: models.User) -> None:
    if user.status != "active":
        raise AuthorizationError("Account is not active")


def get_current_user(
    repo: SqlRepository = Depends(get_repository),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> models.User:
    """
    Resolve `Authorization: Bearer <jwt>` to an active user.

    The role is always read from the database, so a promotion or suspension applies to
    tokens issued before it.
    """
    if not authorization:
        raise AuthenticationError("Authorization header missing")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError("Invalid Authorization header")

    user = repo.get_user(_user_id_from_token(token))
    if user is None:
        raise AuthenticationError("User not found")
    _ensure_active(user)
    return user


def require_role(*roles: str, detail: str) -> Callable[..., models.User]:
    def _dependency(user: models.User = Depends(get_current_user)) -> models.User:
        if user.role not in roles:
            raise AuthorizationError(detail)
        return user

    return _dependency


require_landlord = require_role(policies.LANDLORD, policies.ADMIN, detail="Landlord role required")
require_tenant = require_role(policies.TENANT, detail="Tenant role required")


def limit_by_actor(scope: Scope) -> Callable[..., None]:
    """Quota dependency for authenticated endpoints, counted per user id."""
    def _dependency(user: models.User = Depends(get_current_user)) -> None:
        consume(scope, f"user:{user.id}")

    return _dependency


def _token_response(user: models.User) -> schemas.TokenResponse:
    return schemas.TokenResponse(access_token=create_access_token(user), user=schemas.UserRead.model_validate(user))


@router.post(
    "/auth/signup",
    response_model=schemas.TokenResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(limit_by_ip("signup"))],
)
def signup(payload: schemas.UserCreate, repo: SqlRepository = Depends(get_repository)) -> schemas.TokenResponse:
    if repo.get_user_by_email(payload.email) is not None:
        raise ConflictError("Email already registered")
    try:
        with repo.transaction():
            user = repo.add_user(
                email=payload.email,
                password_hash=hash_password(payload.password),
                full_name=payload.full_name,
                role=payload.role,
                status="active",
            )
    except ConflictError as exc:
        # Lost a race with a concurrent signup for the same address
        raise ConflictError("Email already registered") from exc

    logger.info("user.signed_up", extra={"user_id": user.id, "role": user.role})
    return _token_response(user)


@router.post("/auth/login", response_model=schemas.TokenResponse, dependencies=[Depends(limit_by_ip("login"))])
def login(payload: schemas.LoginRequest, repo: SqlRepository = Depends(get_repository)) -> schemas.TokenResponse:
    user = repo.get_user_by_email(payload.email)
    if user is None or not verify_password(payload.password, user.password_hash):
        raise AuthenticationError("Invalid credentials")
    _ensure_active(user)
    return _token_response(user)


@router.get("/auth/me", response_model=schemas.UserEnvelope)
def me(user: models.User = Depends(get_current_user)) -> schemas.UserEnvelope:
    return schemas.UserEnvelope(user=schemas.UserRead.model_validate(user))
