"""Savings and installment plan ledger service."""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from ..core.concurrency import retry_on_conflict
from ..core.database import with_timeout
from ..core.exceptions import (
    InvalidStateTransitionError,
    NotFoundError,
    PaymentAlreadyResolvedError,
    PersistenceConflictError,
    ValidationError,
)
from ..core.observability import metrics_collector
from ..models.payment import PaymentRecordStatus, PlanPayment, PlanStatus, SavingsPlan
from ..schemas.savings import CreatePlanRequest, SubmitPlanPaymentRequest, VerifyPlanPaymentRequest
from .ledger import apply_payment
from .notification_service import NotificationSender
from .payment_service import generate_payment_code

logger = logging.getLogger(__name__)


class SavingsService:
    """Service for savings and installment plans and their deposits."""

    def __init__(self, db: AsyncSession, notifier: NotificationSender | None = None):
        self.db = db
        self.notifier = notifier or NotificationSender()

    async def create_plan(self, request: CreatePlanRequest, actor: str) -> SavingsPlan:
        """Open an active plan with nothing paid."""
        plan = SavingsPlan(
            customer_id=request.customer_id,
            package_id=request.package_id,
            plan_type=request.plan_type,
            target_amount=request.target_amount,
            paid_amount=0,
            remaining_amount=request.target_amount,
            monthly_amount=request.monthly_amount,
            tenor_months=request.tenor_months,
            status=PlanStatus.ACTIVE,
            notes=request.notes,
        )
        self.db.add(plan)
        await with_timeout(self.db.commit(), "plan.create")

        logger.info(
            "Plan created",
            extra={
                "plan_id": str(plan.id),
                "plan_type": plan.plan_type.value,
                "customer_id": plan.customer_id,
                "target_amount": plan.target_amount,
                "actor": actor
            }
        )
        return plan

    async def get_plan_or_raise(self, plan_id: UUID, lock: bool = False) -> SavingsPlan:
        """Get plan by ID, always reloaded from the database."""
        stmt = (
            select(SavingsPlan)
            .where(SavingsPlan.id == plan_id)
            .execution_options(populate_existing=True)
        )
        if lock:
            stmt = stmt.with_for_update()
        result = await with_timeout(self.db.execute(stmt), "plan.get")
        plan = result.scalar_one_or_none()
        if plan is None:
            raise NotFoundError(resource_type="savings_plan", resource_id=str(plan_id))
        return plan

    async def get_plan_payment_or_raise(self, payment_id: UUID) -> PlanPayment:
        stmt = (
            select(PlanPayment)
            .where(PlanPayment.id == payment_id)
            .execution_options(populate_existing=True)
        )
        result = await with_timeout(self.db.execute(stmt), "plan_payment.get")
        payment = result.scalar_one_or_none()
        if payment is None:
            raise NotFoundError(resource_type="plan_payment", resource_id=str(payment_id))
        return payment

    async def _commit_versioned(self, plan_id: UUID, operation: str) -> None:
        try:
            await with_timeout(self.db.commit(), operation)
        except StaleDataError as e:
            raise PersistenceConflictError("savings_plan", str(plan_id)) from e

    async def submit_plan_payment(self, request: SubmitPlanPaymentRequest, actor: str) -> PlanPayment:
        """
        Record a pending deposit against an active plan.

        Raises:
            NotFoundError: If plan not found
            InvalidStateTransitionError: If the plan is completed or cancelled
            ValidationError: If the amount exceeds the outstanding balance
        """
        plan = await self.get_plan_or_raise(request.plan_id)
        if plan.status != PlanStatus.ACTIVE:
            raise InvalidStateTransitionError(
                entity="savings_plan",
                entity_id=str(plan.id),
                current_state=plan.status.value,
                attempted="submit payment for",
            )
        if request.amount > plan.remaining_amount:
            raise ValidationError(
                detail=f"Payment of {request.amount} exceeds the outstanding balance of {plan.remaining_amount}",
                errors={"amount": request.amount, "remaining_amount": plan.remaining_amount},
            )

        payment = PlanPayment(
            plan_id=plan.id,
            payment_code=generate_payment_code(),
            amount=request.amount,
            status=PaymentRecordStatus.PENDING,
            payment_method=request.payment_method,
            proof_url=request.proof_url,
            notes=request.notes,
        )
        self.db.add(payment)
        await with_timeout(self.db.commit(), "plan_payment.submit")

        logger.info(
            "Plan payment submitted",
            extra={
                "payment_id": str(payment.id),
                "plan_id": str(plan.id),
                "amount": payment.amount,
                "actor": actor
            }
        )
        return payment

    async def verify_plan_payment(
        self,
        request: VerifyPlanPaymentRequest,
        actor: str
    ) -> tuple[PlanPayment, SavingsPlan]:
        """
        Approve or reject a pending deposit and update the plan ledger.

        Reaching the target completes the plan.

        Raises:
            NotFoundError: If the payment is unknown
            PaymentAlreadyResolvedError: If the payment was already verified or rejected
            InvalidStateTransitionError: If approving for a plan that is no longer active
            PersistenceConflictError: If every retry lost the version race
        """
        operation = "plan_payment.verify"

        async def attempt() -> PlanPayment:
            values = {
                "status": request.outcome,
                "verified_at": datetime.utcnow(),
                "verified_by": actor,
                "updated_at": datetime.utcnow(),
            }
            if request.notes is not None:
                values["notes"] = request.notes

            stmt = (
                update(PlanPayment)
                .where(PlanPayment.id == request.payment_id, PlanPayment.status == PaymentRecordStatus.PENDING)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = await with_timeout(self.db.execute(stmt), operation)
            payment = await self.get_plan_payment_or_raise(request.payment_id)
            if result.rowcount == 0:
                raise PaymentAlreadyResolvedError(str(request.payment_id), payment.status.value)

            plan = await self.get_plan_or_raise(payment.plan_id, lock=True)
            if payment.status == PaymentRecordStatus.PAID:
                if plan.status != PlanStatus.ACTIVE:
                    raise InvalidStateTransitionError(
                        entity="savings_plan",
                        entity_id=str(plan.id),
                        current_state=plan.status.value,
                        attempted="apply payment to",
                    )
                totals = apply_payment(plan.target_amount, plan.paid_amount, payment.amount)
                plan.paid_amount = totals.paid_amount
                plan.remaining_amount = totals.remaining_amount
                if totals.fully_paid:
                    plan.status = PlanStatus.COMPLETED

            await self._commit_versioned(plan.id, operation)
            return payment

        try:
            payment = await retry_on_conflict(self.db, attempt, operation)
        except Exception:
            await self.db.rollback()
            raise

        plan = await self.get_plan_or_raise(payment.plan_id)
        metrics_collector.record_payment_verified(
            plan.plan_type.value,
            payment.status.value,
            payment.amount if payment.status == PaymentRecordStatus.PAID else 0,
        )
        logger.info(
            "Plan payment verified",
            extra={
                "payment_id": str(payment.id),
                "plan_id": str(plan.id),
                "outcome": payment.status.value,
                "paid_amount": plan.paid_amount,
                "remaining_amount": plan.remaining_amount,
                "plan_status": plan.status.value,
                "actor": actor
            }
        )

        await self.notifier.plan_payment_status_changed(plan, payment)
        return payment, plan

    async def cancel_plan(self, plan_id: UUID, actor: str, reason: str | None = None) -> SavingsPlan:
        """
        Cancel an active plan. Verified deposits stay on the ledger.

        Raises:
            NotFoundError: If plan not found
            InvalidStateTransitionError: If the plan is not active
        """
        operation = "plan.cancel"

        async def attempt() -> None:
            plan = await self.get_plan_or_raise(plan_id, lock=True)
            if plan.status != PlanStatus.ACTIVE:
                raise InvalidStateTransitionError(
                    entity="savings_plan",
                    entity_id=str(plan_id),
                    current_state=plan.status.value,
                    attempted="cancel",
                )
            plan.status = PlanStatus.CANCELLED
            if reason:
                plan.notes = f"{plan.notes}\ncancelled: {reason}" if plan.notes else f"cancelled: {reason}"
            await self._commit_versioned(plan_id, operation)

        try:
            await retry_on_conflict(self.db, attempt, operation)
        except Exception:
            await self.db.rollback()
            raise

        logger.info("Plan cancelled", extra={"plan_id": str(plan_id), "actor": actor})
        return await self.get_plan_or_raise(plan_id)

    async def list_plan_payments(self, plan_id: UUID) -> list[PlanPayment]:
        """Deposits of a plan, oldest first."""
        await self.get_plan_or_raise(plan_id)
        stmt = (
            select(PlanPayment)
            .where(PlanPayment.plan_id == plan_id)
            .order_by(PlanPayment.created_at)
            .execution_options(populate_existing=True)
        )
        result = await with_timeout(self.db.execute(stmt), "plan_payment.list")
        return list(result.scalars())
