"""Customer data step collaborators.

Everything the persistence chain treats as an outside service lives here:
validating the form, mapping form fields onto table columns, the
insert/update operations per entity kind, the completion rules, the step
status update and the preload of an existing registration. All of them work
on a sync SQLAlchemy ``Session``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError
from sqlalchemy import inspect
from sqlalchemy.orm import Session

from onboarding.errors import PersistenceOperationError, PreloadError, StepValidationError
from onboarding.handlers.context import EntityKind, MappedData, StepInput
from onboarding.handlers.persister import OperationRegistry
from onboarding.models import (
    Base,
    Customer,
    CustomerAddress,
    CustomerInvoicingSettings,
    CustomerPaymentSettings,
)

from .types import CompletionReport, SaveCustomerDataInput, StepStatusData

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CUSTOMER_DATA_STEP = "customer_data"

# Foreign-key roles filled by the chain, read by dependent operations.
CUSTOMER_ID = "customer_id"
CUSTOMER_ADDRESS_ID = "customer_address_id"
CUSTOMER_PAYMENT_SETTINGS_ID = "customer_payment_settings_id"
CUSTOMER_INVOICING_SETTINGS_ID = "customer_invoicing_settings_id"

ENTITY_MODELS: dict[EntityKind, type[Base]] = {
    EntityKind.CUSTOMER: Customer,
    EntityKind.CUSTOMER_ADDRESS: CustomerAddress,
    EntityKind.CUSTOMER_PAYMENT_SETTINGS: CustomerPaymentSettings,
    EntityKind.CUSTOMER_INVOICING_SETTINGS: CustomerInvoicingSettings,
}

# Form field (camelCase, as posted) -> column, per table.
TABLE_COLUMNS: dict[str, dict[str, str]] = {
    Customer.__tablename__: {
        "companyName": "company_name",
        "firstName": "first_name",
        "lastName": "last_name",
        "email": "email",
        "phone": "phone",
        "vatNumber": "vat_number",
        "dataProvider": "data_provider",
    },
    CustomerAddress.__tablename__: {
        "street": "street",
        "houseNumber": "house_number",
        "city": "city",
        "postalCode": "postal_code",
        "country": "country",
    },
    CustomerPaymentSettings.__tablename__: {
        "paymentMethod": "payment_method",
        "iban": "iban",
        "bic": "bic",
        "accountHolder": "account_holder",
        "paymentTermDays": "payment_term_days",
    },
    CustomerInvoicingSettings.__tablename__: {
        "invoiceEmail": "invoice_email",
        "invoiceDeliveryMethod": "delivery_method",
        "invoiceLanguage": "language",
        "purchaseOrderRequired": "purchase_order_required",
    },
}

REQUIRED_COLUMNS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.CUSTOMER: ("company_name", "email"),
    EntityKind.CUSTOMER_ADDRESS: ("street", "city", "postal_code", "country"),
    EntityKind.CUSTOMER_PAYMENT_SETTINGS: ("payment_method",),
    EntityKind.CUSTOMER_INVOICING_SETTINGS: ("invoice_email",),
}

ENTITY_LABELS = {
    EntityKind.CUSTOMER: "Customer",
    EntityKind.CUSTOMER_ADDRESS: "Customer address",
    EntityKind.CUSTOMER_PAYMENT_SETTINGS: "Payment settings",
    EntityKind.CUSTOMER_INVOICING_SETTINGS: "Invoicing settings",
}

CUSTOMER_RELATIONS = {
    EntityKind.CUSTOMER_ADDRESS: "address",
    EntityKind.CUSTOMER_PAYMENT_SETTINGS: "payment_settings",
    EntityKind.CUSTOMER_INVOICING_SETTINGS: "invoicing_settings",
}


# ---------------------------------------------------------------------------
# Validation and mapping
# ---------------------------------------------------------------------------


def _format_error(error: Mapping[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()))
    message = error.get("msg", "invalid value")
    return f"{location}: {message}" if location else message


class CustomerDataValidator:
    """Validates the customer data form against SaveCustomerDataInput."""

    def validate(self, step_input: StepInput) -> None:
        try:
            SaveCustomerDataInput.model_validate(step_input.data)
        except ValidationError as exc:
            errors = [_format_error(error) for error in exc.errors()]
            raise StepValidationError("Customer data is invalid", errors) from exc


class CustomerDataMapper:
    """Maps posted form fields onto the columns of each customer table.

    Only fields that were actually posted are mapped, so a partial save
    does not overwrite columns with ``None``. Every table gets an entry,
    possibly empty.
    """

    def map(self, step_input: StepInput) -> MappedData:
        parsed = SaveCustomerDataInput.model_validate(step_input.data)
        posted = parsed.model_dump(by_alias=True, exclude_unset=True)
        return {
            table: {
                column: posted[form_field]
                for form_field, column in columns.items()
                if form_field in posted
            }
            for table, columns in TABLE_COLUMNS.items()
        }


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ParentKey:
    """Column filled from a foreign-key role produced earlier in the chain."""

    column: str
    role: str
    required: bool = True


class _RowOperation:
    def __init__(
        self, session: Session, model: type[Base], parent_keys: tuple[ParentKey, ...] = ()
    ) -> None:
        self.session = session
        self.model = model
        self.parent_keys = parent_keys
        self.columns = set(inspect(model).columns.keys())

    def _check_columns(self, data: Mapping[str, Any]) -> None:
        unknown = sorted(set(data) - self.columns)
        if unknown:
            raise PersistenceOperationError(
                f"Unknown columns for {self.model.__tablename__}: {', '.join(unknown)}"
            )

    def _parent_values(self, step_data: Mapping[str, Any]) -> dict[str, Any]:
        values = {}
        for key in self.parent_keys:
            value = step_data.get(key.role)
            if value is None:
                if key.required:
                    raise PersistenceOperationError(
                        f"{self.model.__tablename__} requires {key.role}"
                    )
                continue
            values[key.column] = value
        return values


class InsertRowOperation(_RowOperation):
    """Inserts one row of ``model`` and flushes it to obtain its id."""

    def run(
        self, data: dict[str, Any], user: str | None, step_data: Mapping[str, Any]
    ) -> Any:
        self._check_columns(data)
        values = {**data, **self._parent_values(step_data)}
        if "created_by" in self.columns:
            values.setdefault("created_by", user)
        entity = self.model(**values)
        self.session.add(entity)
        self.session.flush()
        return entity


class UpdateRowOperation(_RowOperation):
    """Overwrites the given columns of an existing row.

    Parent keys are only filled in where the row has none yet, e.g. an
    invoicing row created before the billing address existed.
    """

    def run(
        self,
        data: dict[str, Any],
        user: str | None,
        step_data: Mapping[str, Any],
        entity: Any,
    ) -> Any:
        self._check_columns(data)
        for column, value in data.items():
            setattr(entity, column, value)
        for key in self.parent_keys:
            value = step_data.get(key.role)
            if value is not None and getattr(entity, key.column) is None:
                setattr(entity, key.column, value)
        self.session.flush()
        return entity


PARENT_KEYS: dict[EntityKind, tuple[ParentKey, ...]] = {
    EntityKind.CUSTOMER: (),
    EntityKind.CUSTOMER_ADDRESS: (ParentKey("customer_id", CUSTOMER_ID),),
    EntityKind.CUSTOMER_PAYMENT_SETTINGS: (ParentKey("customer_id", CUSTOMER_ID),),
    EntityKind.CUSTOMER_INVOICING_SETTINGS: (
        ParentKey("customer_id", CUSTOMER_ID),
        ParentKey("billing_address_id", CUSTOMER_ADDRESS_ID, required=False),
    ),
}


def customer_operation_registry(session: Session) -> OperationRegistry:
    """Insert and update operations for every customer entity kind."""
    return OperationRegistry(
        inserts={
            kind: InsertRowOperation(session, model, PARENT_KEYS[kind])
            for kind, model in ENTITY_MODELS.items()
        },
        updates={
            kind: UpdateRowOperation(session, model, PARENT_KEYS[kind])
            for kind, model in ENTITY_MODELS.items()
        },
    )


# ---------------------------------------------------------------------------
# Completion, status and preload
# ---------------------------------------------------------------------------


class CustomerCompletionChecker:
    """Decides whether the customer data step holds everything it needs.

    Reads the entities persisted by the chain first and falls back to the
    customer's relationships for rows the chain did not touch.
    """

    def check(self, context: Mapping[str, Any]) -> CompletionReport:
        customer = context.get("customer")
        if customer is None:
            return CompletionReport(
                completed=False,
                missing_fields={Customer.__tablename__},
                errors=["Customer was not saved"],
            )

        entities = context.get("entities") or {}
        data_provider = context.get("data_provider") or getattr(customer, "data_provider", None)

        missing: set[str] = set()
        errors: list[str] = []
        for kind, model in ENTITY_MODELS.items():
            table = model.__tablename__
            required = list(REQUIRED_COLUMNS[kind])
            if kind is EntityKind.CUSTOMER:
                entity = customer
                # A data provider supplies the VAT number later.
                if not data_provider:
                    required.append("vat_number")
            else:
                entity = entities.get(kind) or getattr(customer, CUSTOMER_RELATIONS[kind], None)

            if entity is None:
                missing.update(f"{table}.{column}" for column in required)
                errors.append(f"{ENTITY_LABELS[kind]} is missing")
                continue

            if kind is EntityKind.CUSTOMER_PAYMENT_SETTINGS and (
                getattr(entity, "payment_method", None) == "direct_debit"
            ):
                required.append("iban")

            absent = [column for column in required if not getattr(entity, column, None)]
            if absent:
                missing.update(f"{table}.{column}" for column in absent)
                errors.append(f"{ENTITY_LABELS[kind]} is incomplete: {', '.join(absent)}")

        return CompletionReport(completed=not errors, missing_fields=missing, errors=errors)


class CustomerStepStatusUpdater:
    """Marks the customer data step as done on the customer row."""

    step = CUSTOMER_DATA_STEP

    def __init__(self, session: Session) -> None:
        self.session = session

    def prepare(self, customer: Customer, step_input: StepInput) -> StepStatusData:
        return StepStatusData(entity_id=customer.id, step=self.step, user=step_input.user)

    def update(self, status_data: StepStatusData) -> None:
        customer = self.session.get(Customer, status_data.entity_id)
        if customer is None:
            raise PersistenceOperationError(
                f"Customer {status_data.entity_id} vanished before its status update"
            )
        steps = dict(customer.registration_steps or {})
        steps[status_data.step] = status_data.status
        # Reassign so the JSON column is flagged as modified.
        customer.registration_steps = steps
        self.session.flush()
        logger.info(
            "Step %s of customer %d set to %s",
            status_data.step,
            customer.id,
            status_data.status,
        )

    def progress(self, customer: Customer | None) -> dict[str, Any]:
        if customer is None:
            return {}
        return dict(customer.registration_steps or {})


class CustomerPreloader:
    """Loads the registration an update step works on."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def preload(self, step_input: StepInput) -> dict[EntityKind, Any]:
        """Fetch the customer named by ``customerId`` and its related rows.

        Raises:
            PreloadError: If there is no such customer.
        """
        customer_id = step_input.get("customerId")
        customer = (
            self.session.get(Customer, customer_id) if customer_id is not None else None
        )
        if customer is None:
            raise PreloadError(f"Unable to preload data for update: customer {customer_id} not found")

        preloaded: dict[EntityKind, Any] = {EntityKind.CUSTOMER: customer}
        for kind, relation in CUSTOMER_RELATIONS.items():
            entity = getattr(customer, relation)
            if entity is not None:
                preloaded[kind] = entity
        return preloaded
