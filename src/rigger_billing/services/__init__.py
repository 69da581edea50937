"""Billing services."""

from rigger_billing.services.billing import BillingOrchestrator
from rigger_billing.services.contribution_ledger import ContributionLedger, ReconciliationReport
from rigger_billing.services.earnings import EarningsAggregator
from rigger_billing.services.reporting import BillingReportService
from rigger_billing.services.results import Failure, Result, Success
from rigger_billing.services.state_machine import TransactionStateMachine, TransactionStatus
from rigger_billing.services.transaction_store import TransactionDraft, TransactionFilters, TransactionStore
from rigger_billing.services.transparency import TransparencyService

__all__ = [
    "BillingOrchestrator",
    "BillingReportService",
    "ContributionLedger",
    "EarningsAggregator",
    "Failure",
    "ReconciliationReport",
    "Result",
    "Success",
    "TransactionDraft",
    "TransactionFilters",
    "TransactionStateMachine",
    "TransactionStatus",
    "TransactionStore",
    "TransparencyService",
]
