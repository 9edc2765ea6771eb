"""Tests for EntityPersister and OperationRegistry."""

from __future__ import annotations

import logging

import pytest

from onboarding.errors import PersistenceOperationError, UnsupportedEntityError
from onboarding.handlers.context import EntityKind, StepContext, StepInput
from onboarding.handlers.persister import (
    EntityPersister,
    OperationRegistry,
    PersistStatus,
    drop_empty_values,
)
from tests.helpers import (
    FakeEntity,
    FakeStore,
    RecordingInsert,
    RecordingSavepoint,
    make_registry,
)

ADDRESS = EntityKind.CUSTOMER_ADDRESS


def make_context() -> StepContext:
    return StepContext(step_input=StepInput(data={"customer_id": 3}, user="registrar"))


def test_drop_empty_values_keeps_zero_and_false() -> None:
    data = {"a": None, "b": "", "c": [], "d": {}, "e": 0, "f": False, "g": "x"}

    assert drop_empty_values(data) == {"e": 0, "f": False, "g": "x"}


class TestInsert:
    def test_passes_data_user_and_step_data(self) -> None:
        store = FakeStore()
        persister = EntityPersister(make_registry(store))

        outcome = persister.insert(ADDRESS, "customer_addresses", {"street": "X"}, make_context())

        assert outcome.ok
        call = store.call_for(ADDRESS)
        assert (call.data, call.user, call.step_data) == (
            {"street": "X"},
            "registrar",
            {"customer_id": 3},
        )

    def test_logs_inserted_id(self) -> None:
        context = make_context()
        outcome = EntityPersister(make_registry(FakeStore())).insert(
            ADDRESS, "customer_addresses", {}, context
        )

        assert context.messages_for(logging.INFO) == [
            f"Entity with ID: [{outcome.entity.id}] inserted into table customer_addresses"
        ]

    def test_operation_error_becomes_failed_outcome(self) -> None:
        store = FakeStore()
        registry = make_registry(store, failing={ADDRESS: PersistenceOperationError("no parent")})
        context = make_context()

        outcome = EntityPersister(registry).insert(ADDRESS, "customer_addresses", {}, context)

        assert outcome.status is PersistStatus.FAILED
        assert outcome.entity is None
        assert "[PersistenceOperationError] no parent" in outcome.reason
        assert context.messages_for(logging.ERROR) == [outcome.reason]

    def test_unsupported_kind_becomes_failed_outcome(self) -> None:
        context = make_context()

        outcome = EntityPersister(OperationRegistry()).insert(
            ADDRESS, "customer_addresses", {}, context
        )

        assert outcome.status is PersistStatus.FAILED
        assert outcome.reason == "Unable to find insert operation for customer_address"
        assert len(context.messages_for(logging.ERROR)) == 1

    def test_operation_returning_nothing_is_skipped_with_warning(self) -> None:
        store = FakeStore()
        registry = make_registry(store)
        registry.register(ADDRESS, insert=RecordingInsert(store, ADDRESS, returns_none=True))
        context = make_context()

        outcome = EntityPersister(registry).insert(ADDRESS, "customer_addresses", {}, context)

        assert outcome.status is PersistStatus.SKIPPED
        assert context.messages_for(logging.WARNING) == [
            "Insert of customer_address produced no entity"
        ]

    def test_each_call_runs_in_its_own_savepoint(self) -> None:
        savepoint = RecordingSavepoint()
        registry = make_registry(FakeStore(), failing={EntityKind.CUSTOMER: RuntimeError("boom")})
        persister = EntityPersister(registry, savepoint=savepoint)

        persister.insert(EntityKind.CUSTOMER, "customers", {}, make_context())
        persister.insert(ADDRESS, "customer_addresses", {}, make_context())

        assert savepoint.entered == 2
        assert savepoint.rolled_back == 1


class TestUpdate:
    def test_passes_explicit_nulls_to_update(self) -> None:
        store = FakeStore()
        entity = FakeEntity(5, ADDRESS, {"street": "Old", "city": "Berlin"})

        outcome = EntityPersister(make_registry(store)).update(
            ADDRESS, "customer_addresses", {"street": "New", "city": None}, make_context(), entity
        )

        assert outcome.ok
        assert store.call_for(ADDRESS).data == {"street": "New", "city": None}
        assert entity.values == {"street": "New", "city": None}

    def test_all_empty_payload_is_skipped_without_calling_operation(self) -> None:
        store = FakeStore()
        context = make_context()
        entity = FakeEntity(5, ADDRESS)

        outcome = EntityPersister(make_registry(store)).update(
            ADDRESS, "customer_addresses", {"street": None, "city": ""}, context, entity
        )

        assert outcome.status is PersistStatus.SKIPPED
        assert store.calls == []
        assert len(context.messages_for(logging.WARNING)) == 1

    def test_empty_payload_still_runs_operation(self) -> None:
        store = FakeStore()
        entity = FakeEntity(5, ADDRESS)

        outcome = EntityPersister(make_registry(store)).update(
            ADDRESS, "customer_addresses", {}, make_context(), entity
        )

        assert outcome.ok
        assert store.kinds("update") == [ADDRESS]

    def test_update_returning_nothing_is_skipped_with_warning(self) -> None:
        registry = make_registry(FakeStore())
        registry.register(
            ADDRESS,
            update=type(
                "NoRow", (), {"run": lambda self, data, user, step_data, entity: None}
            )(),
        )
        context = make_context()

        outcome = EntityPersister(registry).update(
            ADDRESS, "customer_addresses", {"street": "X"}, context, FakeEntity(5, ADDRESS)
        )

        assert outcome.status is PersistStatus.SKIPPED
        assert context.messages_for(logging.WARNING) == [
            "Update of customer_address produced no entity"
        ]

    def test_operation_error_becomes_failed_outcome(self) -> None:
        registry = make_registry(FakeStore(), failing={ADDRESS: ValueError("bad iban")})
        context = make_context()

        outcome = EntityPersister(registry).update(
            ADDRESS, "customer_addresses", {"street": "X"}, context, FakeEntity(5, ADDRESS)
        )

        assert outcome.status is PersistStatus.FAILED
        assert outcome.reason == "Unable to update customer_address. Cause: [ValueError] bad iban"


class TestOperationRegistry:
    def test_require_passes_for_registered_kinds(self) -> None:
        make_registry(FakeStore()).require(EntityKind, updates=True)

    def test_require_fails_fast_on_missing_update(self) -> None:
        store = FakeStore()
        registry = make_registry(store, kinds=(EntityKind.CUSTOMER,))
        registry.register(ADDRESS, insert=make_registry(store).insert(ADDRESS))

        registry.require([EntityKind.CUSTOMER, ADDRESS])
        with pytest.raises(UnsupportedEntityError, match="update operation for customer_address"):
            registry.require([EntityKind.CUSTOMER, ADDRESS], updates=True)
