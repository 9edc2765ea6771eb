"""Customer data step: save a new registration or update an existing one.

Both steps persist the same four entities in the same order. The save step
always inserts; the update step updates what the preload found and inserts
what is missing.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from onboarding.config import CHAIN_COMMIT_POLICY
from onboarding.models import (
    Customer,
    CustomerAddress,
    CustomerInvoicingSettings,
    CustomerPaymentSettings,
)
from onboarding.services.customer_data import (
    CUSTOMER_ADDRESS_ID,
    CUSTOMER_ID,
    CUSTOMER_INVOICING_SETTINGS_ID,
    CUSTOMER_PAYMENT_SETTINGS_ID,
    CustomerCompletionChecker,
    CustomerDataMapper,
    CustomerDataValidator,
    CustomerPreloader,
    CustomerStepStatusUpdater,
    customer_operation_registry,
)
from onboarding.services.types import StepResult

from .chain import EntityHandler
from .context import EntityKind, StepInput
from .finalizer import CommitPolicy, StepFinalizer
from .persister import EntityPersister

CUSTOMER_DATA_HANDLERS: tuple[EntityHandler, ...] = (
    EntityHandler(EntityKind.CUSTOMER, Customer.__tablename__, CUSTOMER_ID),
    EntityHandler(
        EntityKind.CUSTOMER_ADDRESS, CustomerAddress.__tablename__, CUSTOMER_ADDRESS_ID
    ),
    EntityHandler(
        EntityKind.CUSTOMER_PAYMENT_SETTINGS,
        CustomerPaymentSettings.__tablename__,
        CUSTOMER_PAYMENT_SETTINGS_ID,
    ),
    EntityHandler(
        EntityKind.CUSTOMER_INVOICING_SETTINGS,
        CustomerInvoicingSettings.__tablename__,
        CUSTOMER_INVOICING_SETTINGS_ID,
    ),
)

UPDATE_CUSTOMER_DATA_HANDLERS = tuple(handler.as_update() for handler in CUSTOMER_DATA_HANDLERS)


def build_customer_data_finalizer(
    session: Session, commit_policy: CommitPolicy | str | None = None, *, updates: bool = False
) -> StepFinalizer:
    registry = customer_operation_registry(session)
    registry.require((handler.kind for handler in CUSTOMER_DATA_HANDLERS), updates=updates)
    return StepFinalizer(
        validator=CustomerDataValidator(),
        mapper=CustomerDataMapper(),
        completion_checker=CustomerCompletionChecker(),
        status_updater=CustomerStepStatusUpdater(session),
        persister=EntityPersister(registry, savepoint=session.begin_nested),
        primary_kind=EntityKind.CUSTOMER,
        commit_policy=CommitPolicy(commit_policy or CHAIN_COMMIT_POLICY),
        chain_transaction=session.begin_nested,
    )


class SaveCustomerDataStep:
    """Creates a customer registration from the customer data form."""

    def __init__(self, session: Session, commit_policy: CommitPolicy | str | None = None) -> None:
        self.finalizer = build_customer_data_finalizer(session, commit_policy)

    def save(self, step_input: StepInput) -> StepResult:
        return self.finalizer.finalize(step_input, CUSTOMER_DATA_HANDLERS)


class UpdateCustomerDataStep:
    """Updates the registration named by ``customerId`` in the step input."""

    def __init__(self, session: Session, commit_policy: CommitPolicy | str | None = None) -> None:
        self.finalizer = build_customer_data_finalizer(session, commit_policy, updates=True)
        self.preloader = CustomerPreloader(session)

    def save(self, step_input: StepInput) -> StepResult:
        return self.finalizer.finalize_update(
            step_input, UPDATE_CUSTOMER_DATA_HANDLERS, self.preloader
        )
