"""Transparency API endpoints.

Public reporting on the NGO contribution carried by every payment.
"""

from datetime import datetime

from fastapi import APIRouter, Path, Query, status
from fastapi.responses import JSONResponse

from rigger_billing.api.dependencies import Transparency
from rigger_billing.api.responses import respond
from rigger_billing.api.schemas import ErrorResponse, ReconciliationResponse
from rigger_billing.models import as_utc_naive

router = APIRouter(prefix="/transparency", tags=["transparency"])


@router.get("/reports/{year}", responses={500: {"model": ErrorResponse}})
async def transparency_report(service: Transparency, year: int = Path(..., ge=2000, le=2100)) -> JSONResponse:
    """Full-year contribution report with breakdowns and impact allocation."""
    return respond(await service.generate_report(year))


@router.get("/dashboard/{year}", responses={500: {"model": ErrorResponse}})
async def public_dashboard(service: Transparency, year: int = Path(..., ge=2000, le=2100)) -> JSONResponse:
    """Public-facing summary of the year's contributions."""
    return respond(await service.generate_public_dashboard(year))


@router.post("/reports/{year}/{month}", responses={500: {"model": ErrorResponse}})
async def publish_monthly_report(
    service: Transparency,
    year: int = Path(..., ge=2000, le=2100),
    month: int = Path(..., ge=1, le=12),
) -> JSONResponse:
    """Summarize a month and mark its contribution records published."""
    result = await service.create_monthly_report(year, month)
    return respond(result, status_code=status.HTTP_201_CREATED)


@router.get("/validation", responses={500: {"model": ErrorResponse}})
async def validate_contributions(
    service: Transparency,
    start: datetime = Query(...),
    end: datetime = Query(...),
) -> JSONResponse:
    """Reconcile transaction contributions against the ledger for a range."""
    result = await service.validate_contributions(as_utc_naive(start), as_utc_naive(end))
    return respond(result, lambda report: ReconciliationResponse.model_validate(report.to_dict()))
