from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.core.auth import get_current_user
from app.core.database import get_db
from app.schemas.auth import TokenData
from app.schemas.billing import UserPlanResponse
from app.services.entitlement_service import get_user_plan

logger = logging.getLogger(__name__)


async def require_active_subscription(
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> UserPlanResponse:
    """
    FastAPI dependency guarding paid endpoints.

    Usage in router:
    @router.get("/my-endpoint")
    async def my_endpoint(plan: UserPlanResponse = Depends(require_active_subscription)):
        ...

    Raises 402 when the user holds no active or trialing subscription whose
    current period is still running.
    """
    plan = await get_user_plan(db, current_user.user_id)
    if plan is None:
        logger.info("User %s has no active subscription", current_user.user_id)
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={
                "error": "Subscription required",
                "message": "An active subscription is required to access this resource",
            }
        )
    return plan
