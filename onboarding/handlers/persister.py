"""Insert/update of a single entity through registered operations.

The EntityPersister is the boundary where persistence failures stop. An
unregistered entity kind, an exception raised by an operation, or an
operation that returns nothing all come back as a PersistOutcome; nothing
raised below this module reaches the handler chain.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from contextlib import AbstractContextManager, nullcontext
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from onboarding.errors import UnsupportedEntityError

from .context import EntityKind, StepContext


# ---------------------------------------------------------------------------
# Operation contracts
# ---------------------------------------------------------------------------


class InsertOperation(Protocol):
    def run(
        self, data: dict[str, Any], user: str | None, step_data: Mapping[str, Any]
    ) -> Any | None: ...


class UpdateOperation(Protocol):
    def run(
        self,
        data: dict[str, Any],
        user: str | None,
        step_data: Mapping[str, Any],
        entity: Any,
    ) -> Any | None: ...


class OperationRegistry:
    """Insert and update operations indexed by entity kind."""

    def __init__(
        self,
        inserts: Mapping[EntityKind, InsertOperation] | None = None,
        updates: Mapping[EntityKind, UpdateOperation] | None = None,
    ) -> None:
        self._inserts = dict(inserts or {})
        self._updates = dict(updates or {})

    def register(
        self,
        kind: EntityKind,
        *,
        insert: InsertOperation | None = None,
        update: UpdateOperation | None = None,
    ) -> None:
        """Add or replace the operations of one entity kind."""
        if insert is not None:
            self._inserts[kind] = insert
        if update is not None:
            self._updates[kind] = update

    def insert(self, kind: EntityKind) -> InsertOperation:
        try:
            return self._inserts[kind]
        except KeyError:
            raise UnsupportedEntityError(kind, "insert") from None

    def update(self, kind: EntityKind) -> UpdateOperation:
        try:
            return self._updates[kind]
        except KeyError:
            raise UnsupportedEntityError(kind, "update") from None

    def require(self, kinds: Iterable[EntityKind], *, updates: bool = False) -> None:
        """Fail fast when a step declares a kind nothing can persist.

        Update steps fall back to inserting, so they need both operations.

        Raises:
            UnsupportedEntityError: For the first kind missing an operation.
        """
        for kind in kinds:
            self.insert(kind)
            if updates:
                self.update(kind)


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


class PersistStatus(str, Enum):
    PERSISTED = "persisted"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class PersistOutcome:
    """Result of one persistence attempt."""

    kind: EntityKind
    status: PersistStatus
    entity: Any = None
    reason: str | None = None

    @classmethod
    def persisted(cls, kind: EntityKind, entity: Any) -> PersistOutcome:
        return cls(kind, PersistStatus.PERSISTED, entity=entity)

    @classmethod
    def skipped(cls, kind: EntityKind, reason: str) -> PersistOutcome:
        return cls(kind, PersistStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, kind: EntityKind, reason: str) -> PersistOutcome:
        return cls(kind, PersistStatus.FAILED, reason=reason)

    @property
    def ok(self) -> bool:
        return self.status is PersistStatus.PERSISTED


def drop_empty_values(data: Mapping[str, Any]) -> dict[str, Any]:
    """Remove ``None``, empty strings and empty collections. Keeps 0 and False."""
    return {
        key: value
        for key, value in data.items()
        if value is not None
        and not (isinstance(value, (str, list, dict, set, tuple)) and not value)
    }


# ---------------------------------------------------------------------------
# Persister
# ---------------------------------------------------------------------------


class EntityPersister:
    """Runs the registered operation for an entity kind and reports the outcome.

    Args:
        registry: Operations per entity kind.
        savepoint: Factory for a context manager wrapping each operation call,
            e.g. ``session.begin_nested``. Writes of a failed call are rolled
            back with it.
    """

    def __init__(
        self,
        registry: OperationRegistry,
        savepoint: Callable[[], AbstractContextManager[Any]] | None = None,
    ) -> None:
        self.registry = registry
        self._savepoint = savepoint or nullcontext

    def insert(
        self,
        kind: EntityKind,
        table: str,
        data: dict[str, Any],
        context: StepContext,
    ) -> PersistOutcome:
        try:
            operation = self.registry.insert(kind)
        except UnsupportedEntityError as exc:
            context.log(logging.ERROR, str(exc), entity_kind=kind.value, table=table)
            return PersistOutcome.failed(kind, str(exc))

        if not data:
            context.log(
                logging.DEBUG,
                f"Inserting {kind} without form data",
                entity_kind=kind.value,
                table=table,
            )

        try:
            with self._savepoint():
                entity = operation.run(
                    data, context.step_input.user, context.step_data()
                )
        except Exception as exc:
            reason = f"Unable to insert {kind}. Cause: [{type(exc).__name__}] {exc}"
            context.log(logging.ERROR, reason, entity_kind=kind.value, table=table)
            return PersistOutcome.failed(kind, reason)

        if entity is None:
            reason = f"Insert of {kind} produced no entity"
            context.log(logging.WARNING, reason, entity_kind=kind.value, table=table)
            return PersistOutcome.skipped(kind, reason)

        context.log(
            logging.INFO,
            f"Entity with ID: [{entity.id}] inserted into table {table}",
            entity_kind=kind.value,
            table=table,
        )
        return PersistOutcome.persisted(kind, entity)

    def update(
        self,
        kind: EntityKind,
        table: str,
        data: dict[str, Any],
        context: StepContext,
        existing: Any,
    ) -> PersistOutcome:
        try:
            operation = self.registry.update(kind)
        except UnsupportedEntityError as exc:
            context.log(logging.ERROR, str(exc), entity_kind=kind.value, table=table)
            return PersistOutcome.failed(kind, str(exc))

        # An all-null payload means the client mapped nothing, not "clear everything".
        filtered = drop_empty_values(data)
        if data and not filtered:
            reason = f"Empty form data given for {kind}. Skipping update."
            context.log(logging.WARNING, reason, entity_kind=kind.value, table=table)
            return PersistOutcome.skipped(kind, reason)

        if not data:
            context.log(
                logging.INFO,
                f"Updating {kind} without form data",
                entity_kind=kind.value,
                table=table,
            )

        try:
            with self._savepoint():
                entity = operation.run(
                    data, context.step_input.user, context.step_data(), existing
                )
        except Exception as exc:
            reason = f"Unable to update {kind}. Cause: [{type(exc).__name__}] {exc}"
            context.log(logging.ERROR, reason, entity_kind=kind.value, table=table)
            return PersistOutcome.failed(kind, reason)

        if entity is None:
            reason = f"Update of {kind} produced no entity"
            context.log(logging.WARNING, reason, entity_kind=kind.value, table=table)
            return PersistOutcome.skipped(kind, reason)

        context.log(
            logging.INFO,
            f"Entity with ID: [{entity.id}] updated in table {table}",
            entity_kind=kind.value,
            table=table,
        )
        return PersistOutcome.persisted(kind, entity)
