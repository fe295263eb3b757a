"""Phone validation adapter layer - abstracts over the upstream provider."""

from app.adapters.phone.base import AbstractPhoneValidator, PhoneValidationResult
from app.adapters.phone.numverify_client import NumverifyClient

__all__ = [
    "AbstractPhoneValidator",
    "NumverifyClient",
    "PhoneValidationResult",
]
