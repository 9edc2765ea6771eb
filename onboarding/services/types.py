"""Shared type definitions for the customer data step.

Input types describe the form data a step accepts. Result types describe
what collaborators hand back to the finalizer and what the finalizer
reports to callers.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# Input types
# ---------------------------------------------------------------------------

PAYMENT_METHODS = {"bank_transfer", "direct_debit", "credit_card", "invoice"}
DELIVERY_METHODS = {"email", "post"}


class SaveCustomerDataInput(BaseModel):
    """Form fields of the customer data step.

    Every field is optional: the step can be saved partially and completed
    later. The cross-field rules below only fire for values that were sent.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    company_name: str | None = Field(default=None, alias="companyName", max_length=255)
    first_name: str | None = Field(default=None, alias="firstName", max_length=100)
    last_name: str | None = Field(default=None, alias="lastName", max_length=100)
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=50)
    vat_number: str | None = Field(default=None, alias="vatNumber", max_length=50)
    data_provider: str | None = Field(default=None, alias="dataProvider")

    street: str | None = Field(default=None, max_length=255)
    house_number: str | None = Field(default=None, alias="houseNumber", max_length=20)
    city: str | None = Field(default=None, max_length=100)
    postal_code: str | None = Field(default=None, alias="postalCode", max_length=20)
    country: str | None = None

    payment_method: str | None = Field(default=None, alias="paymentMethod")
    iban: str | None = Field(default=None, max_length=34)
    bic: str | None = Field(default=None, max_length=11)
    account_holder: str | None = Field(default=None, alias="accountHolder")
    payment_term_days: int | None = Field(
        default=None, alias="paymentTermDays", ge=0, le=120
    )

    invoice_email: str | None = Field(default=None, alias="invoiceEmail")
    invoice_delivery_method: str | None = Field(
        default=None, alias="invoiceDeliveryMethod"
    )
    invoice_language: str | None = Field(default=None, alias="invoiceLanguage")
    purchase_order_required: bool | None = Field(
        default=None, alias="purchaseOrderRequired"
    )

    customer_id: int | None = Field(default=None, alias="customerId")

    @model_validator(mode="after")
    def check_field_rules(self) -> SaveCustomerDataInput:
        """Cross-field rules. All violations are reported at once."""
        problems = []
        for name, value in (("email", self.email), ("invoiceEmail", self.invoice_email)):
            if value and "@" not in value:
                problems.append(f"{name}: invalid email address {value!r}")
        if self.country and (len(self.country) != 2 or not self.country.isalpha()):
            problems.append(f"country: expected a two letter code, got {self.country!r}")
        if self.payment_method and self.payment_method not in PAYMENT_METHODS:
            problems.append(f"paymentMethod: unknown payment method {self.payment_method!r}")
        if self.payment_method == "direct_debit" and not self.iban:
            problems.append("iban: required for direct debit")
        if (
            self.invoice_delivery_method
            and self.invoice_delivery_method not in DELIVERY_METHODS
        ):
            problems.append(
                f"invoiceDeliveryMethod: unknown delivery method "
                f"{self.invoice_delivery_method!r}"
            )
        if problems:
            raise ValueError("; ".join(problems))
        return self


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


class CompletionReport(BaseModel):
    """Whether a step has everything it needs."""

    completed: bool
    missing_fields: set[str] = Field(default_factory=set)
    errors: list[str] = Field(default_factory=list)


class StepStatusData(BaseModel):
    """Status change to apply once a step is complete."""

    entity_id: int
    step: str
    status: str = "completed"
    user: str | None = None


class StepResult(BaseModel):
    """What a save/update step reports back to its caller."""

    entity_id: int | None = None
    steps: Any = Field(default_factory=dict)
    missing_fields: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    outcomes: dict[str, int | None] = Field(default_factory=dict)
    aborted: bool = False

    @classmethod
    def preload_failure(cls, message: str) -> StepResult:
        """Result of an update step whose entity could not be loaded."""
        return cls(entity_id=None, steps={}, missing_fields=[], errors=[message], aborted=True)
