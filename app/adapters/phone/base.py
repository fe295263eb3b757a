from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class PhoneValidationResult:
	"""Outcome of a provider lookup.

	Attributes:
		valid: Whether the provider considers the number valid.
		raw: Full provider payload, kept for logging only.
	"""

	valid: bool
	raw: dict[str, Any] = field(default_factory=dict)


class AbstractPhoneValidator(ABC):
	"""Interface for phone number validation providers."""

	@abstractmethod
	async def validate(self, number: str, country_code: str) -> PhoneValidationResult:
		"""Validate ``number`` for the given ISO 3166-1 alpha-2 ``country_code``.

		Raises:
			UpstreamAppError: If the provider rejects the call or cannot be reached.
		"""
		...

	async def close(self) -> None:
		"""Release provider resources (no-op by default)."""
