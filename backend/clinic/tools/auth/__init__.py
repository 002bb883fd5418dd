from .authentication import AccessTokenAuthentication, Principal
from .permissions import IsAdmin, IsDoctor, IsPatient
from .tokens import TokenConfigurationError, decode_access_token

__all__ = [
    "AccessTokenAuthentication",
    "Principal",
    "IsAdmin",
    "IsDoctor",
    "IsPatient",
    "TokenConfigurationError",
    "decode_access_token",
]
