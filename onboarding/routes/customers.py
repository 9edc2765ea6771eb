"""Customer registration routes for the customer data step.

POST /customers/steps/customer-data - Save the step, creating a new registration
PUT  /customers/{id}/steps/customer-data - Update the step of an existing registration
GET  /customers/{id} - Get a customer with its step progress
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from onboarding.database import get_db
from onboarding.errors import StepValidationError
from onboarding.handlers.context import StepInput
from onboarding.handlers.steps import SaveCustomerDataStep, UpdateCustomerDataStep
from onboarding.models import Customer
from onboarding.schemas import CustomerResponse, SaveStepRequest, StepResultResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post(
    "/steps/customer-data", response_model=StepResultResponse, status_code=201
)
async def save_customer_data(
    request: SaveStepRequest,
    db: AsyncSession = Depends(get_db),
) -> StepResultResponse:
    """Save the customer data step of a new registration.

    Persists customer, address, payment settings and invoicing settings in
    that order. Entities that fail to save are reported through
    ``missing_fields`` and ``errors``; the rest is kept.
    """
    step_input = StepInput(data=dict(request.data), user=request.user)
    try:
        result = await db.run_sync(
            lambda session: SaveCustomerDataStep(session).save(step_input)
        )
    except StepValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors) from exc

    logger.info(
        "Saved customer data step for customer %s (missing %d fields)",
        result.entity_id,
        len(result.missing_fields),
    )
    return StepResultResponse.from_result(result)


@router.put(
    "/{customer_id}/steps/customer-data",
    response_model=StepResultResponse,
    responses={404: {"model": StepResultResponse}},
)
async def update_customer_data(
    customer_id: int,
    request: SaveStepRequest,
    db: AsyncSession = Depends(get_db),
):
    """Update the customer data step of an existing registration."""
    step_input = StepInput(data={**request.data, "customerId": customer_id}, user=request.user)
    try:
        result = await db.run_sync(
            lambda session: UpdateCustomerDataStep(session).save(step_input)
        )
    except StepValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors) from exc

    response = StepResultResponse.from_result(result)
    if result.aborted:
        return JSONResponse(status_code=404, content=response.model_dump(mode="json"))
    return response


@router.get("/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    customer_id: int,
    db: AsyncSession = Depends(get_db),
) -> CustomerResponse:
    """Get a customer with its registration step progress."""
    customer = await db.get(Customer, customer_id)
    if customer is None:
        raise HTTPException(status_code=404, detail="Customer not found")

    return CustomerResponse(
        id=customer.id,
        company_name=customer.company_name,
        first_name=customer.first_name,
        last_name=customer.last_name,
        email=customer.email,
        phone=customer.phone,
        vat_number=customer.vat_number,
        data_provider=customer.data_provider,
        registration_steps=customer.registration_steps or {},
        created_at=customer.created_at,
        updated_at=customer.updated_at,
    )
