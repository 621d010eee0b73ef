"""Caller identity resolution backed by the account service's signed tokens."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import jwt
from fastapi import Depends, HTTPException, Request, WebSocket, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import Settings, get_settings
from app.services.errors import AuthenticationError

Role = Literal["admin", "user"]

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True, slots=True)
class Identity:
    """Verified caller; ``participant_id`` is the user id."""

    participant_id: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def verify_token(token: str, settings: Settings | None = None) -> Identity:
    """Decode a login token and return the identity it carries."""

    settings = settings or get_settings()
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError as exc:
        raise AuthenticationError("Invalid token") from exc

    role = claims.get("role")
    if role not in ("admin", "user"):
        raise AuthenticationError("Token carries no usable role")
    try:
        participant_id = int(claims["id"])
    except (KeyError, TypeError, ValueError) as exc:
        raise AuthenticationError("Token carries no participant id") from exc
    return Identity(participant_id=participant_id, role=role)


def issue_token(identity: Identity, settings: Settings | None = None) -> str:
    """Sign a token with the same claim shape the login service uses."""

    settings = settings or get_settings()
    payload = {"id": identity.participant_id, "role": identity.role}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    settings: Settings = Depends(get_app_settings),
) -> Identity:
    """Resolve the caller from the ``Authorization: Bearer`` header."""

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No token provided",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return verify_token(credentials.credentials, settings)
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


def require_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    """Allow admins only."""

    if not identity.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admins only")
    return identity


def require_user(identity: Identity = Depends(get_current_identity)) -> Identity:
    """Allow customers only; admins have no conversation of their own."""

    if identity.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Customers only")
    return identity


def identity_from_websocket(websocket: WebSocket) -> Identity:
    """Resolve a socket's caller from its ``token`` query parameter."""

    token = websocket.query_params.get("token")
    if not token:
        raise AuthenticationError("No token provided")
    return verify_token(token, websocket.app.state.settings)
