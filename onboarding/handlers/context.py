"""Request-scoped state shared by every handler of a persistence chain.

A StepContext is created per save/update request, mutated in place by the
handlers in chain order, and dropped once the finalizer has built its
report. Nothing here is thread-safe and nothing is meant to be.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class EntityKind(str, Enum):
    """Logical record types a registration step can persist."""

    CUSTOMER = "customer"
    CUSTOMER_ADDRESS = "customer_address"
    CUSTOMER_PAYMENT_SETTINGS = "customer_payment_settings"
    CUSTOMER_INVOICING_SETTINGS = "customer_invoicing_settings"

    def __str__(self) -> str:
        return self.value


class PersistedEntity(Protocol):
    id: Any


MappedData = dict[str, dict[str, Any]]


@dataclass
class StepInput:
    """Raw form values of one step plus the acting user."""

    data: dict[str, Any] = field(default_factory=dict)
    user: str | None = None

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


@dataclass
class StepContext:
    """Mutable state threaded through the handler chain.

    Attributes:
        step_input: The form data and user the step was called with.
        mapped_data: Table name -> column -> value, produced by the mapper.
        preloaded: Existing entities an update step starts from.
        entity_results: Entities persisted so far, in chain order.
        outcome_log: Generated id per handled kind, ``None`` if no row.
        foreign_keys: Foreign-key role -> id of the entity that fills it.
        failures: Reason per kind whose persistence failed.
        messages: Log messages per level name, in emission order.
    """

    step_input: StepInput
    mapped_data: MappedData = field(default_factory=dict)
    preloaded: dict[EntityKind, Any] = field(default_factory=dict)
    entity_results: dict[EntityKind, Any] = field(default_factory=dict)
    outcome_log: dict[EntityKind, Any] = field(default_factory=dict)
    foreign_keys: dict[str, Any] = field(default_factory=dict)
    failures: dict[EntityKind, str] = field(default_factory=dict)
    messages: dict[str, list[str]] = field(default_factory=dict)

    def table_data(self, table: str) -> dict[str, Any]:
        """Mapped columns for ``table``; empty when the mapper produced none."""
        return dict(self.mapped_data.get(table) or {})

    def step_data(self) -> Mapping[str, Any]:
        """Read-only view of the form data with known foreign keys laid over it."""
        merged = dict(self.step_input.data)
        merged.update(
            (role, value) for role, value in self.foreign_keys.items() if value is not None
        )
        return MappingProxyType(merged)

    def entity(self, kind: EntityKind) -> Any:
        return self.entity_results.get(kind)

    def preloaded_entity(self, kind: EntityKind) -> Any:
        return self.preloaded.get(kind)

    def record_entity(
        self, kind: EntityKind, entity: PersistedEntity, foreign_key_role: str | None
    ) -> Any:
        """Store a persisted entity and back-fill its foreign-key role.

        Returns:
            The entity's id.
        """
        self.entity_results[kind] = entity
        entity_id = entity.id
        if foreign_key_role is not None:
            self.foreign_keys[foreign_key_role] = entity_id
        self.outcome_log[kind] = entity_id
        return entity_id

    def record_failure(self, kind: EntityKind, reason: str) -> None:
        self.failures[kind] = reason

    def record_nothing(self, kind: EntityKind) -> None:
        self.outcome_log[kind] = None

    def discard_results(self) -> None:
        """Forget every persisted entity, e.g. after the chain was rolled back."""
        self.entity_results.clear()
        self.foreign_keys.clear()
        for kind in self.outcome_log:
            self.outcome_log[kind] = None

    def log(self, level: int, message: str, **attributes: Any) -> None:
        """Log ``message`` and keep it in the per-level message log."""
        level_name = logging.getLevelName(level).lower()
        self.messages.setdefault(level_name, []).append(message)
        logger.log(level, message, extra={"step": attributes} if attributes else None)

    def messages_for(self, level: int) -> list[str]:
        return list(self.messages.get(logging.getLevelName(level).lower(), []))
