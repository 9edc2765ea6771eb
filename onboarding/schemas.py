"""Pydantic v2 request/response schemas for the onboarding service."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from onboarding.services.types import StepResult


# ---------------------------------------------------------------------------
# Customer data step
# ---------------------------------------------------------------------------


class SaveStepRequest(BaseModel):
    """Request body for saving one registration step."""

    user: str | None = Field(default=None, description="Acting user identifier")
    data: dict[str, Any] = Field(
        default_factory=dict, description="Form field values keyed by field name"
    )


class StepResultResponse(BaseModel):
    """Outcome of saving a registration step."""

    customer_id: int | None = None
    steps: Any = Field(default_factory=dict, description="Registration step progress")
    missing_fields: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    outcomes: dict[str, int | None] = Field(
        default_factory=dict, description="Generated id per entity, null if none"
    )

    @classmethod
    def from_result(cls, result: StepResult) -> StepResultResponse:
        return cls(
            customer_id=result.entity_id,
            steps=result.steps,
            missing_fields=result.missing_fields,
            errors=result.errors,
            outcomes=result.outcomes,
        )


# ---------------------------------------------------------------------------
# Customer
# ---------------------------------------------------------------------------


class CustomerResponse(BaseModel):
    """A registered customer with its step progress."""

    id: int
    company_name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    vat_number: str | None = None
    data_provider: str | None = None
    registration_steps: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime
