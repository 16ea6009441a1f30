from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from fastapi import HTTPException, Request

from formbase.config import Settings

USER_HEADER = "X-User-Id"


@dataclass(frozen=True)
class Principal:
    id: str


class AuthProvider(Protocol):
    def current_user(self, request: Request) -> Principal: ...


class NoAuthProvider:
    def __init__(self, user_id: str) -> None:
        self._principal = Principal(user_id)

    def current_user(self, request: Request) -> Principal:
        return self._principal


class HeaderAuthProvider:
    """Trusts the user id forwarded by an authenticating proxy."""

    def current_user(self, request: Request) -> Principal:
        user_id = request.headers.get(USER_HEADER, "").strip()
        if not user_id:
            raise HTTPException(status_code=401, detail="Authentication required")
        return Principal(user_id)


def get_auth_provider(settings: Settings) -> AuthProvider:
    if settings.auth_mode == "none":
        return NoAuthProvider(settings.default_user_id)
    return HeaderAuthProvider()


def current_user(request: Request) -> Principal:
    return request.app.state.auth_provider.current_user(request)
