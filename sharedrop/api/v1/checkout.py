import logging
from datetime import timedelta

from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from sharedrop import payments
from sharedrop.core.errors import UniquenessConflict, ValidationFailed
from sharedrop.crud import log_activity
from sharedrop.deps import get_current_user, get_db
from sharedrop.models import Transaction, User, utcnow
from sharedrop.plans import expected_price, resolve_plan
from sharedrop.schemas import CheckoutCapture

logger = logging.getLogger("sharedrop.checkout")

router = APIRouter()

# paid amount may differ from the list price by rounding on the client
PRICE_TOLERANCE = 0.5


def plan_duration(months: int, annual: bool) -> timedelta:
    if annual or months == 12:
        return timedelta(days=365)
    return timedelta(days=30 * months)


async def order_captured(db: AsyncSession, order_id: str) -> bool:
    res = await db.exec(select(Transaction.id).where(Transaction.order_id == order_id))
    return res.first() is not None


@router.post("/capture")
async def capture_order(
    req: CheckoutCapture,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Verify a PayPal order and apply the purchased plan.
    Renewing the plan that is still active extends from its current expiry,
    anything else starts counting now.
    """
    if await order_captured(db, req.order_id):
        raise UniquenessConflict("Order already captured")

    order = await payments.verify_order(req.order_id)

    status = order.get("status")
    if status not in payments.PAID_STATUSES:
        raise ValidationFailed("Order not completed")

    plan = resolve_plan(req.plan)
    price = expected_price(plan, req.months, req.annual)
    if not price:
        raise ValidationFailed("Invalid plan")

    try:
        paid, currency = payments.order_amount(order)
    except (KeyError, IndexError, TypeError, ValueError):
        raise ValidationFailed("Order has no amount")
    if abs(paid - price) > PRICE_TOLERANCE:
        logger.error("price mismatch on order %s: expected %s, got %s", req.order_id, price, paid)
        raise ValidationFailed("Price mismatch")

    now = utcnow()
    start = now
    if user.plan == plan.value and user.plan_expires_at and user.plan_expires_at > now:
        start = user.plan_expires_at
    user.plan = plan.value
    user.plan_expires_at = start + plan_duration(req.months, req.annual)
    db.add(user)

    duration = "annual" if req.annual or req.months == 12 else "monthly"
    db.add(Transaction(
        user_id=user.id,
        order_id=req.order_id,
        plan=plan.value,
        amount=paid,
        currency=currency,
        status=status,
        duration=duration,
    ))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise UniquenessConflict("Order already captured")
    await db.refresh(user)

    logger.info("user %s bought %s until %s", user.id, plan.value, user.plan_expires_at)
    await log_activity(db, user.id, "plan_change", f"Upgraded to {plan.value} ({duration})")
    return {"success": True, "new_plan": plan.value, "expires_at": user.plan_expires_at}
