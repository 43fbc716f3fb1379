"""Signup finalizer: turn a welcome order into a durable account.

Merge precedence, lowest to highest:

  1. fields supplied directly with the finalize request
  2. each step's typed payload, ascending (step_number, sub_step_number)
  3. the step-4 personal details, re-applied last

Empty strings and None never override a value already merged. The order
is claimed with a conditional UPDATE so a second finalize (sequential or
concurrent) gets a ConflictError and leaves the account untouched.
"""

import logging
from datetime import datetime
from typing import Any

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from signup.middleware.exceptions import ConflictError, SignupValidationError
from signup.models.account import Account
from signup.models.welcome_order import SignupStep, WelcomeOrder, WelcomeOrderStatus
from signup.schemas.signup import CompleteSignupRequest
from signup.schemas.steps import DETAILS_STEP, STEP_SCHEMAS
from signup.services import accounts, notifier, store
from signup.services.completion import is_truly_complete
from signup.services.notifier import Notification

logger = logging.getLogger(__name__)

# Personal details are collected on the bmi screen of the details step
PERSONAL_DETAILS_KEY = (DETAILS_STEP, 0)
PERSONAL_DETAIL_FIELDS = (
    "date_of_birth",
    "complete_address",
    "city",
    "zipcode",
    "primary_phone",
    "alternative_phone",
)


def _present(value: Any) -> bool:
    return value is not None and value != ""


def _typed_payload(step: SignupStep) -> dict[str, Any]:
    """Re-parse a stored payload through its draft schema (dates come back as dates).

    Only declared fields are returned; free-form extras on the medical step
    never reach the account.
    """
    key = (step.step_number, step.sub_step_number)
    if not step.step_data or key not in STEP_SCHEMAS:
        return {}
    draft, _ = STEP_SCHEMAS[key]
    try:
        payload = draft.model_validate(step.step_data)
    except ValidationError:
        raise SignupValidationError(
            f"Stored data for step {key[0]}.{key[1]} is no longer valid; "
            "please resubmit that step"
        )
    return payload.model_dump(include=set(draft.model_fields))


def merge_signup_fields(
    steps: list[SignupStep], supplied: dict[str, Any]
) -> dict[str, Any]:
    merged = {k: v for k, v in supplied.items() if _present(v)}

    ordered = sorted(steps, key=lambda s: (s.step_number, s.sub_step_number))
    payloads = [(s, _typed_payload(s)) for s in ordered]

    for _, payload in payloads:
        for name, value in payload.items():
            if _present(value):
                merged[name] = value

    # The details step owns the personal fields once it has them
    for step, payload in payloads:
        if (step.step_number, step.sub_step_number) != PERSONAL_DETAILS_KEY:
            continue
        for name in PERSONAL_DETAIL_FIELDS:
            if _present(payload.get(name)):
                merged[name] = payload[name]

    return merged


async def complete_signup(
    db: AsyncSession,
    order_id: str,
    supplied: CompleteSignupRequest,
) -> tuple[Account, WelcomeOrder, list[Notification]]:
    order = await store.get_order(db, order_id)
    if order.is_completed:
        raise ConflictError(
            "This signup has already been completed", error_code="SIGNUP_ALREADY_COMPLETED"
        )

    steps = await store.list_steps_for_order(db, order.id)
    fields = merge_signup_fields(steps, supplied.model_dump(exclude_none=True))
    if not _present(fields.get("email")):
        fields["email"] = order.email

    # Step 2 stores only a hash; a password supplied here is the fallback
    hashed_password = fields.get("password_hash")
    if not hashed_password and fields.get("password"):
        hashed_password = accounts.hash_password(fields["password"])

    now = datetime.utcnow()
    if not await store.claim_completion(db, order.id, now):
        raise ConflictError(
            "This signup has already been completed", error_code="SIGNUP_ALREADY_COMPLETED"
        )

    if order.user_id:
        account = await accounts.get_account(db, order.user_id)
        await accounts.update_account(db, account, fields, hashed_password)
    else:
        account = await accounts.create_account(db, fields, hashed_password)

    account.has_completed_intake_form = True
    account.intake_form_completed_at = now
    token = accounts.issue_verification_token(account)

    await store.backfill_step_user_id(db, order.id, account.id)
    order.user_id = account.id
    order.is_completed = True
    order.status = WelcomeOrderStatus.COMPLETED
    order.completed_at = now
    await db.flush()

    if not is_truly_complete(steps, order.payment_status, has_account=True):
        logger.warning(
            "Order %s finalized before every gating step was completed", order.id
        )
    logger.info("Finalized order %s into account %s", order.id, account.id)

    first_name = account.first_name
    notices = [
        notifier.welcome(account.email, first_name),
        notifier.email_verification(account.email, first_name, token),
    ]
    return account, order, notices
