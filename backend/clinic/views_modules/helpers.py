from __future__ import annotations

from typing import Any

from rest_framework.exceptions import ValidationError

from ..models import Profile


def _safe_str(value: Any) -> str:
    return str(value).strip() if value else ""


def sync_profile_from_claims(claims: dict[str, Any]) -> Profile | None:
    external_id = _safe_str(claims.get("sub"))
    if not external_id:
        return None

    role = _safe_str(claims.get("role")).lower() or Profile.Role.PATIENT
    defaults: dict[str, Any] = {
        "role": role,
        "email": _safe_str(claims.get("email")),
        "full_name": _safe_str(claims.get("name") or claims.get("full_name")),
        "is_active": True,
    }
    if role == Profile.Role.DOCTOR and claims.get("speciality"):
        defaults["speciality"] = _safe_str(claims.get("speciality"))

    profile, created = Profile.objects.get_or_create(external_id=external_id, defaults=defaults)
    if created:
        return profile

    changed_fields: list[str] = []
    for field_name, field_value in defaults.items():
        # Empty claims never wipe stored contact details.
        if field_value in ("", None) or getattr(profile, field_name) == field_value:
            continue
        setattr(profile, field_name, field_value)
        changed_fields.append(field_name)
    if profile.role != Profile.Role.DOCTOR and profile.fee is not None:
        profile.fee = None
        changed_fields.append("fee")
    if changed_fields:
        profile.save(update_fields=[*changed_fields, "updated_at"])
    return profile


def get_request_claims(request) -> dict[str, Any]:
    claims = getattr(request, "auth_claims", request.auth or {})
    return claims if isinstance(claims, dict) else {}


def get_request_profile(request) -> Profile:
    cached_profile = getattr(request, "_cached_profile", None)
    if cached_profile is not None:
        return cached_profile

    profile = sync_profile_from_claims(get_request_claims(request))
    if profile is None:
        raise ValidationError("Missing identity in token claims.")

    request._cached_profile = profile
    return profile
