from __future__ import annotations

from typing import Any

import jwt
from django.conf import settings
from rest_framework.exceptions import AuthenticationFailed

VALID_ROLES = frozenset({"patient", "doctor", "admin"})


class TokenConfigurationError(RuntimeError):
    pass


def _get_required_setting(name: str) -> str:
    value = getattr(settings, name, "")
    if not value:
        raise TokenConfigurationError(f"{name} is not configured.")
    return value


def decode_access_token(token: str) -> dict[str, Any]:
    """Verify a bearer token and return its claims.

    The subject comes from ``sub`` (or ``id`` for older tokens) and the role
    claim must be one of patient, doctor or admin.
    """
    secret = _get_required_setting("AUTH_JWT_SECRET")
    algorithms = list(getattr(settings, "AUTH_JWT_ALGORITHMS", None) or ["HS256"])
    issuer = getattr(settings, "AUTH_JWT_ISSUER", "") or None
    audience = getattr(settings, "AUTH_JWT_AUDIENCE", "") or None

    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=algorithms,
            issuer=issuer,
            audience=audience,
            options={
                "verify_aud": bool(audience),
                "verify_iss": bool(issuer),
            },
        )
    except jwt.InvalidTokenError as exc:
        raise AuthenticationFailed("Invalid access token.") from exc

    subject = str(payload.get("sub") or payload.get("id") or "").strip()
    if not subject:
        raise AuthenticationFailed("Token is missing sub claim.")

    role = str(payload.get("role") or "").strip().lower()
    if role not in VALID_ROLES:
        raise AuthenticationFailed("Token carries an unknown role.")

    payload["sub"] = subject
    payload["role"] = role
    return payload
