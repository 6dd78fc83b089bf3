"""
FastAPI dependencies for identity, roles and service construction.

Dependencies are reusable functions that FastAPI injects into route handlers.
They form a chain that enforces both authentication and role-based access:

  get_current_user (JWT -> User)
      ├── get_current_member (User -> User)   [MEMBER role]
      └── require_admin (User -> User)        [ADMIN role]

  get_bill_payment_service (session -> BillPaymentService)

Role-based access control:
  - MEMBER: Pays bills from their own accounts to their own payees.
  - ADMIN: Reviews payment verifications and edits the threshold, but
    CANNOT pay bills. A reviewer approving their own payment would defeat
    the point of review.

Every protected endpoint declares one of these as a parameter. FastAPI
automatically calls the dependency, and if it fails (e.g., invalid token
or wrong role), the request is rejected before the route handler runs.
"""

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from billpay.database import get_db
from billpay.models.user import User, UserType
from billpay.security import get_token_subject
from billpay.services.bill_payment_service import BillPaymentService

logger = structlog.get_logger(__name__)


# Tokens come from the identity service; tokenUrl only feeds Swagger UI's
# "Authorize" dialog.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Extract and validate the JWT token, then return the corresponding User.

    Raises:
        HTTPException 401: If the token is invalid or the user doesn't exist
                           or is deactivated.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        user_id = get_token_subject(token)
    except (JWTError, ValueError):
        raise credentials_exception

    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        logger.info("token_rejected", user_id=str(user_id), reason="unknown_or_inactive_user")
        raise credentials_exception

    return user


async def get_current_member(
    user: User = Depends(get_current_user),
) -> User:
    """
    Require a MEMBER user. Admins are blocked from member payment endpoints.

    Raises:
        HTTPException 403: If the user is an admin.
    """
    if user.user_type == UserType.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin accounts cannot access member banking endpoints. "
                   "Use /admin/* endpoints instead.",
        )
    return user


async def require_admin(
    user: User = Depends(get_current_user),
) -> User:
    """
    Require the authenticated user to have the ADMIN role.

    Raises:
        HTTPException 403: If the user is not an admin.
    """
    if user.user_type != UserType.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


async def get_bill_payment_service(
    db: AsyncSession = Depends(get_db),
) -> BillPaymentService:
    """Build a payment service bound to this request's session."""
    return BillPaymentService(db)
