"""Billing API endpoints."""

from typing import Literal

from fastapi import APIRouter, Path, Query, status
from fastapi.responses import JSONResponse

from rigger_billing.api.dependencies import Orchestrator
from rigger_billing.api.responses import respond
from rigger_billing.api.schemas import (
    ErrorResponse,
    InvoiceResponse,
    JobPaymentData,
    JobPaymentStateResponse,
    RecruitmentFeeData,
    RecruitmentFeeRequest,
    RefundData,
    RefundRequest,
    RenewalData,
    SettleRequest,
    SubscriptionBillingData,
    SubscriptionCreate,
    SubscriptionResponse,
    TransactionResponse,
)

router = APIRouter(prefix="/billing", tags=["billing"])

ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
}


# ============================================================================
# Payments
# ============================================================================


@router.post("/jobs/{job_id}/payment", responses=ERRORS)
async def process_job_payment(
    orchestrator: Orchestrator,
    job_id: str = Path(..., min_length=1),
) -> JSONResponse:
    """Pay the assigned worker for a completed job."""
    result = await orchestrator.process_job_completion_payment(job_id)
    return respond(
        result,
        lambda outcome: JobPaymentData(
            transaction=TransactionResponse.model_validate(outcome.transaction),
            job=JobPaymentStateResponse.model_validate(outcome.job),
        ),
        status_code=status.HTTP_201_CREATED,
    )


@router.post("/recruitment-fees", responses=ERRORS)
async def process_recruitment_fee(
    orchestrator: Orchestrator,
    payload: RecruitmentFeeRequest,
) -> JSONResponse:
    """Charge an employer a recruitment fee."""
    result = await orchestrator.process_recruitment_fee(
        payload.employer_id,
        payload.job_id,
        payload.amount,
        payload.payment_method_id,
    )
    return respond(
        result,
        lambda outcome: RecruitmentFeeData(transaction=TransactionResponse.model_validate(outcome.transaction)),
        status_code=status.HTTP_201_CREATED,
    )


# ============================================================================
# Subscriptions
# ============================================================================


@router.post("/subscriptions", responses=ERRORS)
async def create_subscription(
    orchestrator: Orchestrator,
    payload: SubscriptionCreate,
) -> JSONResponse:
    """Start a subscription and issue its first invoice."""
    result = await orchestrator.create_subscription_billing(
        payload.user_id,
        payload.plan_type,
        payload.interval,
        payload.payment_method_id,
    )
    return respond(
        result,
        lambda outcome: SubscriptionBillingData(
            subscription=SubscriptionResponse.model_validate(outcome.subscription),
            invoice=InvoiceResponse.model_validate(outcome.invoice),
        ),
        status_code=status.HTTP_201_CREATED,
    )


@router.post("/subscriptions/{subscription_id}/renewal", responses=ERRORS)
async def renew_subscription(
    orchestrator: Orchestrator,
    subscription_id: str = Path(..., min_length=1),
) -> JSONResponse:
    """Charge a due subscription and advance its period."""
    result = await orchestrator.process_subscription_renewal(subscription_id)
    return respond(
        result,
        lambda outcome: RenewalData(
            subscription=SubscriptionResponse.model_validate(outcome.subscription),
            transaction=TransactionResponse.model_validate(outcome.transaction),
        ),
    )


# ============================================================================
# Transactions
# ============================================================================


@router.post("/transactions/{transaction_id}/settle", responses=ERRORS)
async def settle_transaction(
    orchestrator: Orchestrator,
    payload: SettleRequest,
    transaction_id: str = Path(..., min_length=1),
) -> JSONResponse:
    """Apply the processor's verdict to a transaction."""
    result = await orchestrator.settle_transaction(transaction_id, payload.status)
    return respond(result, TransactionResponse.model_validate)


@router.post("/transactions/{transaction_id}/refund", responses=ERRORS)
async def refund_transaction(
    orchestrator: Orchestrator,
    payload: RefundRequest,
    transaction_id: str = Path(..., min_length=1),
) -> JSONResponse:
    """Reverse a completed transaction."""
    result = await orchestrator.refund_transaction(transaction_id, payload.reason, payload.kind)
    return respond(
        result,
        lambda outcome: RefundData(
            original=TransactionResponse.model_validate(outcome.original),
            reversal=TransactionResponse.model_validate(outcome.reversal),
        ),
        status_code=status.HTTP_201_CREATED,
    )


# ============================================================================
# Reports
# ============================================================================


@router.get("/workers/{worker_id}/earnings", responses=ERRORS)
async def worker_earnings_report(
    orchestrator: Orchestrator,
    worker_id: str = Path(..., min_length=1),
    period: Literal["monthly", "yearly", "summary"] = Query("monthly"),
) -> JSONResponse:
    """Earnings summary and rollups for a worker."""
    return respond(await orchestrator.generate_worker_earnings_report(worker_id, period))


@router.get("/workers/{worker_id}/tax-summary/{year}", responses=ERRORS)
async def worker_tax_summary(
    orchestrator: Orchestrator,
    worker_id: str = Path(..., min_length=1),
    year: int = Path(..., ge=2000, le=2100),
) -> JSONResponse:
    """Year-end earnings grouped by payer, with the 1099 check."""
    return respond(await orchestrator.reports.generate_worker_tax_summary(worker_id, year))


@router.get("/reports/payments", responses=ERRORS)
async def payment_report(
    orchestrator: Orchestrator,
    period: Literal["weekly", "monthly", "yearly"] = Query("monthly"),
) -> JSONResponse:
    """Completed transaction activity across the platform."""
    return respond(await orchestrator.reports.generate_payment_report(period))
