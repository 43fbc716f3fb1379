"""Progress tracker: welcome order creation, step upserts, progress views.

Step writes never finalize anything. They upsert the step row, move the
advisory cursor, and move the order between PENDING and IN_PROGRESS
(an already completed order stays COMPLETED). Only the finalizer sets
`is_completed`.
"""

import logging
from datetime import datetime

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from signup.middleware.exceptions import ConflictError, SignupValidationError
from signup.models.welcome_order import SignupStep, WelcomeOrder, WelcomeOrderStatus
from signup.schemas.signup import (
    SignupProgress,
    SignupStepOut,
    SignupStepUpdate,
    WelcomeOrderCreate,
    WelcomeOrderOut,
)
from signup.schemas.steps import (
    PASSWORD_STEP,
    STEP_SCHEMAS,
    SUB_STEP_NAMES,
    PasswordStepData,
    StoredPasswordStep,
)
from signup.services import accounts, store
from signup.services.completion import order_is_truly_complete
from signup.utils.numbering import generate_order_number

logger = logging.getLogger(__name__)


# ── Helpers ──────────────────────────────────────────────────

def _error_details(exc: ValidationError) -> dict:
    return {
        "errors": [
            {
                "field": " -> ".join(str(loc) for loc in err["loc"]),
                "message": err["msg"],
                "type": err["type"],
            }
            for err in exc.errors()
        ]
    }


def validate_step_payload(
    step_number: int,
    sub_step_number: int,
    step_data: dict | None,
    is_completed: bool,
) -> dict | None:
    """Validate a raw payload against the typed schema for its step key.

    Returns the JSON-ready dict to persist. The password step is
    converted to its stored form here, so plaintext never reaches the
    store.
    """
    key = (step_number, sub_step_number)
    if key not in STEP_SCHEMAS:
        raise SignupValidationError(
            f"Unknown signup step {step_number}.{sub_step_number}",
            details={"step_number": step_number, "sub_step_number": sub_step_number},
        )
    if step_data is None:
        return None

    if key == PASSWORD_STEP:
        try:
            submitted = PasswordStepData.model_validate(step_data)
        except ValidationError as exc:
            raise SignupValidationError("Invalid password step data", _error_details(exc))
        stored = StoredPasswordStep(password_hash=accounts.hash_password(submitted.password))
        return stored.model_dump()

    draft, complete = STEP_SCHEMAS[key]
    schema = complete if is_completed else draft
    try:
        payload = schema.model_validate(step_data)
    except ValidationError as exc:
        raise SignupValidationError(
            f"Invalid data for step {step_number}.{sub_step_number}",
            _error_details(exc),
        )
    return payload.model_dump(mode="json", exclude_none=True)


def step_out(step: SignupStep) -> SignupStepOut:
    return SignupStepOut.model_validate(step)


def order_out(order: WelcomeOrder, steps: list[SignupStep]) -> WelcomeOrderOut:
    out = WelcomeOrderOut.model_validate(order)
    out.steps = [step_out(s) for s in steps]
    return out


# ── Orders ───────────────────────────────────────────────────

async def create_welcome_order(db: AsyncSession, body: WelcomeOrderCreate) -> WelcomeOrder:
    if body.user_id:
        await accounts.get_account(db, body.user_id)

    order = await store.create_order(
        db,
        order_number=generate_order_number(),
        email=accounts.normalize_email(body.email),
        total_amount=body.total_amount,
        discount_amount=body.discount_amount,
        final_amount=body.final_amount,
        user_id=body.user_id,
    )
    logger.info("Created welcome order %s (%s)", order.order_number, order.id)
    return order


async def get_welcome_order(db: AsyncSession, order_id: str) -> WelcomeOrderOut:
    order = await store.get_order(db, order_id)
    steps = await store.list_steps_for_order(db, order_id)
    return order_out(order, steps)


async def attach_account(db: AsyncSession, order_id: str, user_id: str) -> WelcomeOrder:
    """Link an existing account to the order. A link, once set, is permanent."""
    order = await store.get_order(db, order_id)
    await accounts.get_account(db, user_id)

    if order.user_id and order.user_id != user_id:
        raise ConflictError(
            "This welcome order is already linked to a different account",
            error_code="ACCOUNT_ALREADY_LINKED",
        )

    order.user_id = user_id
    await db.flush()
    return order


# ── Steps ────────────────────────────────────────────────────

async def update_signup_step(
    db: AsyncSession, order_id: str, body: SignupStepUpdate
) -> SignupStep:
    order = await store.get_order(db, order_id)

    step_data = validate_step_payload(
        body.step_number, body.sub_step_number, body.step_data, body.is_completed
    )

    now = datetime.utcnow()
    fields = {
        "step_name": body.step_name,
        "sub_step_name": body.sub_step_name
        or SUB_STEP_NAMES.get((body.step_number, body.sub_step_number)),
        "is_completed": body.is_completed,
        "completed_at": now if body.is_completed else None,
        "is_valid": body.is_valid,
        "validation_errors": body.validation_errors,
    }
    # A label/flag-only update keeps whatever payload is already stored
    if step_data is not None:
        fields["step_data"] = step_data

    step = await store.upsert_step(
        db, order.id, body.step_number, body.sub_step_number, fields
    )

    order.current_step = body.step_number
    order.current_sub_step = body.sub_step_number
    order.status = (
        WelcomeOrderStatus.COMPLETED if order.is_completed else WelcomeOrderStatus.IN_PROGRESS
    )
    order.updated_at = now
    await db.flush()

    logger.debug(
        "Order %s step %s.%s saved (completed=%s)",
        order.id, body.step_number, body.sub_step_number, body.is_completed,
    )
    return step


async def get_signup_progress(db: AsyncSession, order_id: str) -> SignupProgress:
    order = await store.get_order(db, order_id)
    steps = await store.list_steps_for_order(db, order_id)

    return SignupProgress(
        welcome_order_id=order.id,
        order_number=order.order_number,
        email=order.email,
        current_step=order.current_step,
        current_sub_step=order.current_sub_step,
        status=order.status,
        is_completed=order.is_completed,
        is_truly_complete=order_is_truly_complete(order, steps),
        payment_status=order.payment_status,
        payment_intent_id=order.payment_intent_id,
        user_id=order.user_id,
        steps=[step_out(s) for s in steps],
    )
