"""Savings router for savings and installment plan operations."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import Actor, DatabaseSession, IdempotencyKey
from ..core.exceptions import ProblemDetailsException
from ..schemas.common import CONFLICT_RESPONSES
from ..schemas.savings import (
    CancelPlanRequest,
    CreatePlanRequest,
    ListPlanPaymentsResponse,
    PlanPayment,
    PlanRequest,
    SavingsPlan,
    SubmitPlanPaymentRequest,
    VerifyPlanPaymentRequest,
    VerifyPlanPaymentResponse,
)
from ..services.idempotency_service import IdempotencyService
from ..services.notification_service import NotificationSender, get_notification_sender
from ..services.savings_service import SavingsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/savings", tags=["savings"])

NOTIFIER_DEPENDENCY = Depends(get_notification_sender)


def _json(model) -> JSONResponse:
    return JSONResponse(status_code=200, content=model.model_dump(mode="json"))


@router.post("/create", response_model=SavingsPlan, status_code=201)
async def create_plan(
    request: CreatePlanRequest,
    db: AsyncSession = DatabaseSession,
    actor: str = Actor
) -> JSONResponse:
    """Open a savings or installment plan."""
    savings_service = SavingsService(db)

    try:
        plan = await savings_service.create_plan(request, actor)
        return JSONResponse(status_code=201, content=SavingsPlan.model_validate(plan).model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in plan creation",
            extra={"customer_id": request.customer_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/get", response_model=SavingsPlan, responses=CONFLICT_RESPONSES)
async def get_plan(
    request: PlanRequest,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Get plan details."""
    savings_service = SavingsService(db)

    try:
        plan = await savings_service.get_plan_or_raise(request.plan_id)
        return _json(SavingsPlan.model_validate(plan))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in plan retrieval",
            extra={"plan_id": str(request.plan_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/payment/submit", response_model=PlanPayment, status_code=201, responses=CONFLICT_RESPONSES)
async def submit_plan_payment(
    request: SubmitPlanPaymentRequest,
    db: AsyncSession = DatabaseSession,
    actor: str = Actor,
    idempotency_key: Optional[str] = IdempotencyKey
) -> JSONResponse:
    """
    Record a pending deposit against a plan.

    This operation is idempotent when an Idempotency-Key header is sent.
    """
    savings_service = SavingsService(db)

    async def operation():
        payment = await savings_service.submit_plan_payment(request, actor)
        return PlanPayment.model_validate(payment).model_dump(mode="json")

    try:
        return await IdempotencyService(db).run(
            method="savings/payment/submit",
            idempotency_key=idempotency_key,
            request_body=request.model_dump(mode="json"),
            operation=operation,
            status_code=201
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in plan payment submission",
            extra={"plan_id": str(request.plan_id), "amount": request.amount, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/payment/verify", response_model=VerifyPlanPaymentResponse, responses=CONFLICT_RESPONSES)
async def verify_plan_payment(
    request: VerifyPlanPaymentRequest,
    db: AsyncSession = DatabaseSession,
    actor: str = Actor,
    notifier: NotificationSender = NOTIFIER_DEPENDENCY
) -> JSONResponse:
    """Approve or reject a pending deposit. Reaching the target completes the plan."""
    savings_service = SavingsService(db, notifier)

    try:
        payment, plan = await savings_service.verify_plan_payment(request, actor)
        return _json(VerifyPlanPaymentResponse(
            payment=PlanPayment.model_validate(payment),
            plan=SavingsPlan.model_validate(plan)
        ))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in plan payment verification",
            extra={"payment_id": str(request.payment_id), "outcome": request.outcome, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/cancel", response_model=SavingsPlan, responses=CONFLICT_RESPONSES)
async def cancel_plan(
    request: CancelPlanRequest,
    db: AsyncSession = DatabaseSession,
    actor: str = Actor
) -> JSONResponse:
    """Cancel an active plan."""
    savings_service = SavingsService(db)

    try:
        plan = await savings_service.cancel_plan(request.plan_id, actor, request.reason)
        return _json(SavingsPlan.model_validate(plan))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in plan cancellation",
            extra={"plan_id": str(request.plan_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/payments", response_model=ListPlanPaymentsResponse, responses=CONFLICT_RESPONSES)
async def list_plan_payments(
    request: PlanRequest,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """List the deposits of a plan, oldest first."""
    savings_service = SavingsService(db)

    try:
        payments = await savings_service.list_plan_payments(request.plan_id)
        return _json(ListPlanPaymentsResponse(items=[PlanPayment.model_validate(payment) for payment in payments]))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in plan payment listing",
            extra={"plan_id": str(request.plan_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
