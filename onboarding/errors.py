"""Exception types for the customer onboarding service.

Only StepValidationError and PreloadError are meant to reach callers. The
others are raised inside the persistence chain and absorbed at the
EntityPersister boundary, where they become FAILED outcomes.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any


class OnboardingError(Exception):
    """Base class for all onboarding errors."""


class StepValidationError(OnboardingError):
    """Step input failed validation. Raised before anything is persisted."""

    def __init__(self, message: str, errors: Sequence[str] | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [message])


class UnsupportedEntityError(OnboardingError):
    """No insert/update operation is registered for an entity kind."""

    def __init__(self, kind: Any, mode: str) -> None:
        super().__init__(f"Unable to find {mode} operation for {kind}")
        self.kind = kind
        self.mode = mode


class PersistenceOperationError(OnboardingError):
    """An insert/update operation could not produce its entity."""


class PreloadError(OnboardingError):
    """The entity an update step works on could not be loaded."""


class ChainRolledBackError(OnboardingError):
    """Raised inside the chain transaction to roll back every node's writes."""

    def __init__(self, failures: Mapping[Any, str]) -> None:
        kinds = ", ".join(str(kind) for kind in failures)
        super().__init__(f"Chain rolled back after failed entities: {kinds}")
        self.failures = dict(failures)
