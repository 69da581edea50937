"""Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Envelope
# ============================================================================


class ErrorBody(BaseModel):
    """Failure payload: stable code plus a user-safe message."""

    code: str
    message: str


class ErrorResponse(BaseModel):
    """Standard error response."""

    success: Literal[False] = False
    error: ErrorBody


# ============================================================================
# Billing entities
# ============================================================================


class TransactionResponse(BaseModel):
    """Schema for transaction response."""

    model_config = ConfigDict(from_attributes=True)

    transaction_id: str
    kind: str
    status: str
    amount: Decimal
    currency: str
    fee_platform: Decimal
    fee_processor: Decimal
    fee_total: Decimal
    net_amount: Decimal
    contribution_rate: Decimal
    contribution_amount: Decimal
    contribution_tracked: bool
    payer_id: str
    payer_name: str | None = None
    payee_id: str | None = None
    payee_name: str | None = None
    platform_fee_percentage: Decimal | None = None
    job_id: str | None = None
    subscription_id: str | None = None
    invoice_id: str | None = None
    reverses_transaction_id: str | None = None
    description: str | None = None
    created_at: datetime
    completed_at: datetime | None = None


class JobPaymentStateResponse(BaseModel):
    """Payment fields of a job after billing."""

    model_config = ConfigDict(from_attributes=True)

    job_id: str
    status: str
    payment_status: str
    payment_transaction_id: str | None = None
    payment_amount: Decimal | None = None
    payment_net_amount: Decimal | None = None
    payment_platform_fee: Decimal | None = None
    payment_contribution: Decimal | None = None
    payment_processed_at: datetime | None = None


class SubscriptionResponse(BaseModel):
    """Schema for subscription response."""

    model_config = ConfigDict(from_attributes=True)

    subscription_id: str
    user_id: str
    plan_type: str
    plan_name: str | None = None
    amount: Decimal
    currency: str
    interval: str
    status: str
    current_period_start: datetime
    current_period_end: datetime
    usage_current_period_jobs: int
    usage_current_period_connections: int


class InvoiceLineItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    description: str
    quantity: int
    unit_price: Decimal
    total: Decimal


class InvoiceResponse(BaseModel):
    """Schema for invoice response."""

    model_config = ConfigDict(from_attributes=True)

    invoice_id: str
    invoice_number: str
    user_id: str
    kind: str
    status: str
    subtotal: Decimal
    total: Decimal
    currency: str
    issued_at: datetime
    due_at: datetime
    contribution_amount: Decimal
    transparency_note: str | None = None
    items: list[InvoiceLineItemResponse] = Field(default_factory=list)


class JobPaymentData(BaseModel):
    transaction: TransactionResponse
    job: JobPaymentStateResponse


class RenewalData(BaseModel):
    subscription: SubscriptionResponse
    transaction: TransactionResponse


class RecruitmentFeeData(BaseModel):
    transaction: TransactionResponse


class SubscriptionBillingData(BaseModel):
    subscription: SubscriptionResponse
    invoice: InvoiceResponse


class RefundData(BaseModel):
    original: TransactionResponse
    reversal: TransactionResponse


class DiscrepancyResponse(BaseModel):
    kind: str
    message: str
    expected: Decimal | int | None = None
    actual: Decimal | int | None = None
    reference_id: str | None = None


class ReconciliationResponse(BaseModel):
    """Contribution validation result."""

    period: dict[str, datetime]
    transaction_total: Decimal
    ledger_total: Decimal
    transaction_count: int
    ledger_count: int
    difference: Decimal
    validation_passed: bool
    discrepancies: list[DiscrepancyResponse]
    missing_transaction_ids: list[str]
    orphan_contribution_ids: list[str]
    generated_at: datetime


# ============================================================================
# Requests
# ============================================================================


class RecruitmentFeeRequest(BaseModel):
    """Schema for charging a recruitment fee."""

    employer_id: str
    job_id: str
    amount: Decimal
    payment_method_id: str | None = None


class SubscriptionCreate(BaseModel):
    """Schema for starting a subscription."""

    user_id: str
    plan_type: Literal["basic", "professional", "enterprise", "rigger_premium"]
    interval: Literal["monthly", "quarterly", "yearly"] = "monthly"
    payment_method_id: str | None = None


class SettleRequest(BaseModel):
    status: Literal["processing", "completed", "failed", "cancelled"]


class RefundRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)
    kind: Literal["refund", "chargeback"] = "refund"
