from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from rest_framework.authentication import BaseAuthentication, get_authorization_header
from rest_framework.exceptions import AuthenticationFailed

from .tokens import TokenConfigurationError, decode_access_token


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: str
    claims: dict[str, Any]

    @property
    def is_authenticated(self) -> bool:
        return True

    @property
    def is_anonymous(self) -> bool:
        return False

    @property
    def id(self) -> str:
        return self.user_id

    @property
    def pk(self) -> str:
        return self.user_id

    @property
    def username(self) -> str:
        return self.user_id


class AccessTokenAuthentication(BaseAuthentication):
    keyword = "Bearer"

    def authenticate(self, request):
        token = self._extract_token(request)
        if token is None:
            return None

        try:
            claims = decode_access_token(token)
        except TokenConfigurationError as exc:
            raise AuthenticationFailed(str(exc)) from exc

        request.auth_claims = claims
        return Principal(user_id=claims["sub"], role=claims["role"], claims=claims), claims

    def authenticate_header(self, request) -> str:
        return self.keyword

    def _extract_token(self, request) -> str | None:
        auth = get_authorization_header(request).split()
        if not auth or auth[0].decode("utf-8").lower() != self.keyword.lower():
            return None
        if len(auth) == 1:
            raise AuthenticationFailed("Invalid Authorization header: missing token.")
        if len(auth) > 2:
            raise AuthenticationFailed("Invalid Authorization header: token has spaces.")
        return auth[1].decode("utf-8")
