from dataclasses import dataclass
from typing import Optional, Protocol

from fastapi import Depends, Request

from mockingbird.core.errors import Unauthorized


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: str = ""


class IdentityResolver(Protocol):
    def get_current_user(self, request: Request) -> Optional[CurrentUser]: ...


class HeaderIdentityResolver:
    """Reads the caller identity forwarded by the authenticating proxy."""

    def __init__(self, user_header: str, email_header: str):
        self.user_header = user_header
        self.email_header = email_header

    def get_current_user(self, request: Request) -> Optional[CurrentUser]:
        user_id = request.headers.get(self.user_header, "").strip()
        if not user_id:
            return None
        return CurrentUser(
            id=user_id,
            email=request.headers.get(self.email_header, "").strip(),
        )


def get_identity_resolver(request: Request) -> IdentityResolver:
    return request.app.state.identity_resolver


def get_current_user(
    request: Request,
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> Optional[CurrentUser]:
    return resolver.get_current_user(request)


def require_user(
    user: Optional[CurrentUser] = Depends(get_current_user),
) -> CurrentUser:
    if user is None:
        raise Unauthorized()
    return user
