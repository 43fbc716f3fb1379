"""Payment gate: payment intents out, processor results in.

Payment writes touch only the payment columns and the order status. They
never set or clear `is_completed`, and never mark an order COMPLETED.
"""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from signup.config import settings
from signup.middleware.exceptions import ConflictError
from signup.models.welcome_order import PaymentStatus, WelcomeOrder, WelcomeOrderStatus
from signup.schemas.signup import PaymentIntentOut
from signup.services import notifier, store
from signup.services.notifier import Notification
from signup.services.payment_processor import PaymentProcessor

logger = logging.getLogger("signup.payments")

FALLBACK_CUSTOMER_NAME = "Valued Customer"
BASIC_INFO_KEY = (1, 0)


async def _customer_name(db: AsyncSession, order: WelcomeOrder) -> str:
    steps = await store.list_steps_for_order(db, order.id)
    basic = next(
        (s for s in steps if (s.step_number, s.sub_step_number) == BASIC_INFO_KEY),
        None,
    )
    data = (basic.step_data if basic else None) or {}
    name = " ".join(
        part for part in (data.get("first_name"), data.get("last_name")) if part
    ).strip()
    return name or FALLBACK_CUSTOMER_NAME


async def update_payment_status(
    db: AsyncSession,
    order_id: str,
    payment_intent_id: str,
    status: PaymentStatus,
) -> tuple[WelcomeOrder, Notification | None]:
    """Apply a processor result to the order.

    Returns the order and, on success, a payment confirmation to send
    once the transaction is committed.
    """
    order = await store.get_order(db, order_id)
    succeeded = status == PaymentStatus.SUCCEEDED

    order.payment_intent_id = payment_intent_id
    order.payment_status = status
    order.paid_at = datetime.utcnow() if succeeded else None
    order.status = WelcomeOrderStatus.IN_PROGRESS if succeeded else WelcomeOrderStatus.PENDING
    await db.flush()

    logger.info(
        "Order %s payment %s -> %s", order.id, payment_intent_id, status.value
    )

    if not succeeded:
        return order, None

    confirmation = notifier.payment_confirmation(
        email=order.email,
        customer_name=await _customer_name(db, order),
        amount=order.final_amount,
        order_number=order.order_number,
    )
    return order, confirmation


async def create_payment_intent(
    db: AsyncSession,
    order_id: str,
    processor: PaymentProcessor,
    amount: float | None = None,
    currency: str | None = None,
) -> PaymentIntentOut:
    order = await store.get_order(db, order_id)
    if order.payment_status == PaymentStatus.SUCCEEDED:
        raise ConflictError("This order has already been paid", error_code="ORDER_ALREADY_PAID")

    intent = await processor.create_payment_intent(
        amount if amount is not None else order.final_amount,
        currency or settings.default_currency,
        {"welcome_order_id": order.id, "order_number": order.order_number},
    )

    order.payment_intent_id = intent.id
    await db.flush()

    return PaymentIntentOut(
        welcome_order_id=order.id,
        payment_intent_id=intent.id,
        client_secret=intent.client_secret,
        amount=intent.amount,
        currency=intent.currency,
        status=intent.status,
    )
