"""Resume resolver: what to tell a returning visitor who types an email.

Two questions, answered differently on purpose:

  check_email_exists      → is there an account, and is any attempt for this
                            identity not *truly* complete? Scans every order
                            and asks the completion evaluator, so a wrongly
                            flagged order is still detected.
  resume_signup_by_email  → which attempt do we reopen? Only orders whose
                            stored flag is false and whose status is
                            PENDING or IN_PROGRESS (expired orders excluded).

Once an account exists the client asks by account id instead:
get_welcome_order_status_by_user_id returns its newest IN_PROGRESS order.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from signup.middleware.exceptions import ResourceNotFoundError
from signup.schemas.signup import EmailCheckResult, ResumeSignup, WelcomeOrderStatusResult
from signup.schemas.steps import redact_step_data
from signup.services import accounts, progress, store
from signup.services.accounts import normalize_email
from signup.services.completion import order_is_truly_complete

logger = logging.getLogger(__name__)

MSG_DEACTIVATED = "This account has been deactivated. Please contact support for assistance."
MSG_ACCOUNT_INCOMPLETE = (
    "An account with this email already exists. "
    "You have an incomplete signup - please log in to resume."
)
MSG_ACCOUNT_EXISTS = "An account with this email already exists. Please log in."
MSG_INCOMPLETE = (
    "You have an incomplete signup. "
    "You will be redirected to continue where you left off."
)
MSG_AVAILABLE = "Email is available"
MSG_ORDER_FOUND = "Welcome order found"
MSG_NO_ORDER = "No welcome order in progress"


def _message(account_exists: bool, has_incomplete: bool) -> str:
    if account_exists:
        return MSG_ACCOUNT_INCOMPLETE if has_incomplete else MSG_ACCOUNT_EXISTS
    return MSG_INCOMPLETE if has_incomplete else MSG_AVAILABLE


async def check_email_exists(db: AsyncSession, email: str | None) -> EmailCheckResult:
    normalized = normalize_email(email)
    if not normalized:
        return EmailCheckResult(
            email="",
            account_exists=False,
            has_incomplete_signup=False,
        )

    account = await accounts.find_by_email(db, normalized)

    if account and not account.is_active:
        return EmailCheckResult(
            email=normalized,
            account_exists=True,
            account_is_active=False,
            has_incomplete_signup=False,
            message=MSG_DEACTIVATED,
        )

    orders = await store.find_orders_by_email_or_user_id(
        db, normalized, account.id if account else None
    )
    steps_by_order = await store.list_steps_for_orders(db, [o.id for o in orders])

    incomplete = next(
        (o for o in orders if not order_is_truly_complete(o, steps_by_order[o.id])),
        None,
    )

    return EmailCheckResult(
        email=normalized,
        account_exists=account is not None,
        account_is_active=True if account else None,
        has_incomplete_signup=incomplete is not None,
        welcome_order_id=incomplete.id if incomplete else None,
        message=_message(account is not None, incomplete is not None),
    )


async def resume_signup_by_email(db: AsyncSession, email: str | None) -> ResumeSignup:
    normalized = normalize_email(email)
    if not normalized:
        raise ResourceNotFoundError("Incomplete signup", "<empty email>")

    account = await accounts.find_by_email(db, normalized)
    orders = await store.find_orders_by_email_or_user_id(
        db,
        normalized,
        account.id if account else None,
        only_incomplete=True,
    )
    if not orders:
        raise ResourceNotFoundError("Incomplete signup", normalized)

    order = orders[0]
    steps = await store.list_steps_for_order(db, order.id)
    cursor = next(
        (
            s for s in steps
            if s.step_number == order.current_step
            and s.sub_step_number == order.current_sub_step
        ),
        None,
    )

    logger.info(
        "Resuming order %s at step %s.%s",
        order.id, order.current_step, order.current_sub_step,
    )
    return ResumeSignup(
        welcome_order_id=order.id,
        email=order.email,
        current_step=order.current_step,
        current_sub_step=order.current_sub_step,
        step_data=redact_step_data(cursor.step_data) if cursor and cursor.step_data else {},
        can_resume=True,
    )


async def get_welcome_order_status_by_user_id(
    db: AsyncSession, user_id: str
) -> WelcomeOrderStatusResult:
    order = await store.find_in_progress_order_for_user(db, user_id)
    if not order:
        return WelcomeOrderStatusResult(message=MSG_NO_ORDER)

    steps = await store.list_steps_for_order(db, order.id)
    return WelcomeOrderStatusResult(
        welcome_order=progress.order_out(order, steps),
        message=MSG_ORDER_FOUND,
    )
