"""In-memory collaborators for exercising the persistence chain without a database.

Usage:
    from tests.helpers import FakeStore, make_registry

    store = FakeStore()
    persister = EntityPersister(make_registry(store))
    ...
    assert store.kinds("insert") == [EntityKind.CUSTOMER, ...]
"""

from __future__ import annotations

from collections.abc import Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from onboarding.errors import PreloadError
from onboarding.handlers.context import EntityKind, MappedData, StepInput
from onboarding.handlers.persister import OperationRegistry
from onboarding.services.types import CompletionReport, StepStatusData

ALL_KINDS = tuple(EntityKind)

COMPLETE_FORM: dict[str, Any] = {
    "companyName": "Acme GmbH",
    "firstName": "Ada",
    "lastName": "Lovelace",
    "email": "office@acme.test",
    "vatNumber": "DE123456789",
    "street": "Hauptstrasse",
    "houseNumber": "5",
    "city": "Berlin",
    "postalCode": "10115",
    "country": "DE",
    "paymentMethod": "direct_debit",
    "iban": "DE89370400440532013000",
    "bic": "COBADEFFXXX",
    "paymentTermDays": 30,
    "invoiceEmail": "invoices@acme.test",
    "invoiceDeliveryMethod": "email",
}


@dataclass
class FakeEntity:
    id: int
    kind: EntityKind
    values: dict[str, Any] = field(default_factory=dict)


@dataclass
class OperationCall:
    mode: str
    kind: EntityKind
    data: dict[str, Any]
    step_data: dict[str, Any]
    user: str | None = None


class FakeStore:
    """Hands out sequential ids and remembers every operation call."""

    def __init__(self) -> None:
        self.calls: list[OperationCall] = []
        self._next_id = 100

    def new_entity(self, kind: EntityKind, data: Mapping[str, Any]) -> FakeEntity:
        self._next_id += 1
        return FakeEntity(self._next_id, kind, dict(data))

    def kinds(self, mode: str | None = None) -> list[EntityKind]:
        return [call.kind for call in self.calls if mode in (None, call.mode)]

    def call_for(self, kind: EntityKind) -> OperationCall:
        return next(call for call in self.calls if call.kind is kind)


class RecordingInsert:
    def __init__(
        self, store: FakeStore, kind: EntityKind, error: Exception | None = None, returns_none: bool = False
    ) -> None:
        self.store = store
        self.kind = kind
        self.error = error
        self.returns_none = returns_none

    def run(self, data, user, step_data):
        self.store.calls.append(OperationCall("insert", self.kind, dict(data), dict(step_data), user))
        if self.error is not None:
            raise self.error
        if self.returns_none:
            return None
        return self.store.new_entity(self.kind, data)


class RecordingUpdate:
    def __init__(self, store: FakeStore, kind: EntityKind, error: Exception | None = None) -> None:
        self.store = store
        self.kind = kind
        self.error = error

    def run(self, data, user, step_data, entity):
        self.store.calls.append(OperationCall("update", self.kind, dict(data), dict(step_data), user))
        if self.error is not None:
            raise self.error
        entity.values.update(data)
        return entity


def make_registry(
    store: FakeStore,
    kinds: tuple[EntityKind, ...] = ALL_KINDS,
    failing: Mapping[EntityKind, Exception] | None = None,
) -> OperationRegistry:
    failing = failing or {}
    return OperationRegistry(
        inserts={kind: RecordingInsert(store, kind, failing.get(kind)) for kind in kinds},
        updates={kind: RecordingUpdate(store, kind, failing.get(kind)) for kind in kinds},
    )


class RecordingSavepoint:
    """Stands in for ``Session.begin_nested``; counts commits and rollbacks."""

    def __init__(self) -> None:
        self.entered = 0
        self.rolled_back = 0

    @contextmanager
    def __call__(self):
        self.entered += 1
        try:
            yield self
        except Exception:
            self.rolled_back += 1
            raise


class AcceptingValidator:
    def __init__(self) -> None:
        self.validated: list[StepInput] = []

    def validate(self, step_input: StepInput) -> None:
        self.validated.append(step_input)


class RejectingValidator:
    def __init__(self, error: Exception) -> None:
        self.error = error

    def validate(self, step_input: StepInput) -> None:
        raise self.error


class StaticMapper:
    def __init__(self, mapped: MappedData) -> None:
        self.mapped = mapped
        self.calls = 0

    def map(self, step_input: StepInput) -> MappedData:
        self.calls += 1
        return {table: dict(columns) for table, columns in self.mapped.items()}


class StaticChecker:
    def __init__(self, report: CompletionReport) -> None:
        self.report = report
        self.contexts: list[Mapping[str, Any]] = []

    def check(self, context: Mapping[str, Any]) -> CompletionReport:
        self.contexts.append(context)
        return self.report


class RecordingStatusUpdater:
    def __init__(self) -> None:
        self.prepared: list[Any] = []
        self.updated: list[StepStatusData] = []

    def prepare(self, primary: Any, step_input: StepInput) -> StepStatusData:
        self.prepared.append(primary)
        return StepStatusData(entity_id=primary.id, step="customer_data", user=step_input.user)

    def update(self, status_data: StepStatusData) -> None:
        self.updated.append(status_data)

    def progress(self, primary: Any) -> dict[str, Any]:
        if primary is None:
            return {}
        return {data.step: data.status for data in self.updated if data.entity_id == primary.id}


class StaticPreloader:
    def __init__(self, entities: Mapping[EntityKind, Any] | None = None) -> None:
        self.entities = entities

    def preload(self, step_input: StepInput) -> Mapping[EntityKind, Any]:
        if self.entities is None:
            raise PreloadError(
                f"Unable to preload data for update: customer {step_input.get('customerId')} not found"
            )
        return dict(self.entities)
