"""Entity handlers and the driver loop that runs them in order.

A chain is declared as a tuple of EntityHandler descriptors, parent first:

  Customer -> CustomerAddress -> CustomerPaymentSettings -> CustomerInvoicingSettings

The order is the foreign-key dependency direction. HandlerChain.execute
visits every handler exactly once, writes each persisted entity's id into
the context's foreign-key map before moving on, and keeps going when a
handler fails. In update chains, preloaded entities fill their foreign-key
roles before the first handler runs.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from .context import EntityKind, StepContext
from .persister import EntityPersister, PersistOutcome, PersistStatus


class HandlerMode(str, Enum):
    INSERT = "insert"
    UPDATE = "update"


@dataclass(frozen=True)
class EntityHandler:
    """Persists exactly one entity kind.

    Attributes:
        kind: Entity kind this handler persists.
        table: Table whose mapped data feeds the operation.
        foreign_key_role: Foreign-key role that receives the persisted id,
            read by handlers further down the chain.
        mode: Insert every time, or update the preloaded entity.
    """

    kind: EntityKind
    table: str
    foreign_key_role: str | None = None
    mode: HandlerMode = HandlerMode.INSERT

    def as_update(self) -> EntityHandler:
        return EntityHandler(self.kind, self.table, self.foreign_key_role, HandlerMode.UPDATE)

    def handle(self, context: StepContext, persister: EntityPersister) -> PersistOutcome:
        data = context.table_data(self.table)
        if self.mode is HandlerMode.INSERT:
            return persister.insert(self.kind, self.table, data, context)
        return self._update(data, context, persister)

    def _update(
        self, data: dict, context: StepContext, persister: EntityPersister
    ) -> PersistOutcome:
        existing = context.preloaded_entity(self.kind)
        if existing is not None:
            return persister.update(self.kind, self.table, data, context, existing)

        if not data:
            reason = f"No preloaded entity and no form data for {self.kind}. Skipping."
            context.log(logging.WARNING, reason, entity_kind=self.kind.value, table=self.table)
            return PersistOutcome.skipped(self.kind, reason)

        context.log(
            logging.WARNING,
            f"No preloaded {self.kind} to update, inserting instead",
            entity_kind=self.kind.value,
            table=self.table,
        )
        return persister.insert(self.kind, self.table, data, context)


class HandlerChain:
    """Ordered, request-scoped sequence of entity handlers."""

    def __init__(self, handlers: Iterable[EntityHandler]) -> None:
        self.handlers = tuple(handlers)
        seen: set[EntityKind] = set()
        for handler in self.handlers:
            if handler.kind in seen:
                raise ValueError(f"Entity kind {handler.kind} appears twice in chain")
            seen.add(handler.kind)

    @property
    def kinds(self) -> tuple[EntityKind, ...]:
        return tuple(handler.kind for handler in self.handlers)

    def __len__(self) -> int:
        return len(self.handlers)

    def execute(
        self, context: StepContext, persister: EntityPersister
    ) -> list[PersistOutcome]:
        """Run every handler once, in order, against the shared context.

        Returns:
            One outcome per handler, in chain order.
        """
        self._seed_preloaded_keys(context)
        outcomes: list[PersistOutcome] = []
        for handler in self.handlers:
            outcome = handler.handle(context, persister)
            if outcome.ok:
                context.record_entity(handler.kind, outcome.entity, handler.foreign_key_role)
            else:
                context.record_nothing(handler.kind)
                if outcome.status is PersistStatus.FAILED:
                    context.record_failure(handler.kind, outcome.reason or "")
            outcomes.append(outcome)
        return outcomes

    def _seed_preloaded_keys(self, context: StepContext) -> None:
        # Rows that already exist fill their role even if their update is skipped.
        for handler in self.handlers:
            if handler.mode is not HandlerMode.UPDATE or handler.foreign_key_role is None:
                continue
            existing = context.preloaded_entity(handler.kind)
            if existing is not None:
                context.foreign_keys[handler.foreign_key_role] = existing.id
