"""
Admin router — payment verification review and threshold configuration.

All endpoints require ADMIN role.

Endpoints:
  GET  /admin/verifications                       — Review queue (filter by status)
  POST /admin/verifications/{verification_id}/approve — Approve and settle
  POST /admin/verifications/{verification_id}/reject  — Reject
  PUT  /admin/config/verification-threshold       — Change the threshold

By consolidating all admin routes in one router, we avoid route-ordering
conflicts that arise when multiple routers share a prefix and have
overlapping parameterized paths.
"""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from billpay.database import get_db
from billpay.dependencies import require_admin
from billpay.models.user import User
from billpay.schemas.bill import VerificationConfigResponse
from billpay.schemas.verification import (
    ReviewRequest,
    ThresholdUpdateRequest,
    VerificationResponse,
    VerificationStatusFilter,
)
from billpay.services import threshold_service, verification_service

router = APIRouter()


# ---------------------------------------------------------------------------
# Verification review
# ---------------------------------------------------------------------------

@router.get(
    "/verifications",
    response_model=list[VerificationResponse],
    summary="[Admin] List payment verifications",
)
async def list_verifications(
    status: VerificationStatusFilter | None = Query(None, description="Filter by status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """List verifications, oldest first."""
    return await verification_service.list_verifications(
        db, status_filter=status, limit=limit, offset=offset
    )


@router.post(
    "/verifications/{verification_id}/approve",
    response_model=VerificationResponse,
    summary="[Admin] Approve a payment verification",
)
async def approve_verification(
    verification_id: uuid.UUID,
    request: ReviewRequest | None = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Approve a pending verification and debit the account.

    The response status is FAILED (not an HTTP error) when the account can
    no longer cover the payment; the verification is closed either way.
    """
    return await verification_service.approve_verification(
        db,
        verification_id,
        reviewer_id=admin.id,
        note=request.note if request else None,
    )


@router.post(
    "/verifications/{verification_id}/reject",
    response_model=VerificationResponse,
    summary="[Admin] Reject a payment verification",
)
async def reject_verification(
    verification_id: uuid.UUID,
    request: ReviewRequest | None = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await verification_service.reject_verification(
        db,
        verification_id,
        reviewer_id=admin.id,
        note=request.note if request else None,
    )


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@router.put(
    "/config/verification-threshold",
    response_model=VerificationConfigResponse,
    summary="[Admin] Set the verification threshold",
)
async def set_verification_threshold(
    request: ThresholdUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    threshold = await threshold_service.set_verification_threshold(db, request.threshold)
    return VerificationConfigResponse(threshold=threshold)
