"""Patient signup: welcome orders, step-by-step progress, resume, finalize.

Endpoints (prefix /api/signup):
  GET  /check-email?email=                    → account / incomplete-signup probe
  GET  /resume?email=                         → reopen the newest open order
  GET  /welcome-orders/status?user_id=        → an account's in-progress order
  POST /welcome-order                         → start an attempt
  GET  /welcome-order/{id}                    → order + steps
  PUT  /welcome-order/{id}                    → link an existing account
  PUT  /welcome-order/{id}/step               → generic step upsert
  PUT  /welcome-order/{id}/step/<name>        → per-step convenience wrappers
  GET  /welcome-order/{id}/progress           → progress + completeness verdict
  POST /welcome-order/{id}/payment-intent     → request a processor intent
  PUT  /welcome-order/{id}/payment            → processor result callback
  POST /welcome-order/{id}/complete           → finalize into an account
  POST /accounts                              → early account (password step)

Design:
  - Step writes are upserts keyed by (order, step, sub-step); retries are safe.
  - Only /complete sets is_completed; progress reports the computed verdict.
  - Emails go out as background tasks, after the request transaction.
"""

from fastapi import APIRouter, BackgroundTasks, Body, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from signup.database import get_db
from signup.middleware.rate_limit import limit_email_probes
from signup.schemas.signup import (
    AccountCreate,
    AccountOut,
    AttachAccountRequest,
    CompleteSignupOut,
    CompleteSignupRequest,
    EmailCheckResult,
    PaymentIntentOut,
    PaymentIntentRequest,
    PaymentStatusUpdate,
    ResumeSignup,
    SignupProgress,
    SignupStepOut,
    SignupStepUpdate,
    WelcomeOrderCreate,
    WelcomeOrderOut,
    WelcomeOrderStatusResult,
)
from signup.schemas.steps import STEP_NAMES
from signup.services import accounts, finalize, notifier, payments, progress, resume, store
from signup.services.notifier import Notification
from signup.services.payment_processor import PaymentProcessor, get_payment_processor

router = APIRouter()


# ── Helpers ──────────────────────────────────────────────────

def _send_later(background_tasks: BackgroundTasks, notices: list[Notification]) -> None:
    for notice in notices:
        background_tasks.add_task(notifier.dispatch, notice)


async def _save_step(
    db: AsyncSession,
    order_id: str,
    step_number: int,
    sub_step_number: int,
    data: dict,
    is_completed: bool,
    sub_step_name: str | None = None,
) -> SignupStepOut:
    step = await progress.update_signup_step(
        db,
        order_id,
        SignupStepUpdate(
            step_number=step_number,
            step_name=STEP_NAMES[step_number],
            sub_step_number=sub_step_number,
            sub_step_name=sub_step_name,
            step_data=data,
            is_completed=is_completed,
            is_valid=is_completed,
        ),
    )
    return progress.step_out(step)


# ── Email probes ─────────────────────────────────────────────

@router.get(
    "/check-email",
    response_model=EmailCheckResult,
    dependencies=[Depends(limit_email_probes)],
)
async def check_email(email: str = "", db: AsyncSession = Depends(get_db)):
    result = await resume.check_email_exists(db, email)
    if result.account_is_active is False:
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content=result.model_dump(),
        )
    return result


@router.get(
    "/resume",
    response_model=ResumeSignup,
    dependencies=[Depends(limit_email_probes)],
)
async def resume_signup(email: str = "", db: AsyncSession = Depends(get_db)):
    return await resume.resume_signup_by_email(db, email)


@router.get("/welcome-orders/status", response_model=WelcomeOrderStatusResult)
async def get_welcome_order_status(user_id: str, db: AsyncSession = Depends(get_db)):
    return await resume.get_welcome_order_status_by_user_id(db, user_id)


# ── Welcome order ────────────────────────────────────────────

@router.post("/welcome-order", response_model=WelcomeOrderOut, status_code=status.HTTP_201_CREATED)
async def create_welcome_order(body: WelcomeOrderCreate, db: AsyncSession = Depends(get_db)):
    order = await progress.create_welcome_order(db, body)
    return progress.order_out(order, [])


@router.get("/welcome-order/{order_id}", response_model=WelcomeOrderOut)
async def get_welcome_order(order_id: str, db: AsyncSession = Depends(get_db)):
    return await progress.get_welcome_order(db, order_id)


@router.put("/welcome-order/{order_id}", response_model=WelcomeOrderOut)
async def attach_account(
    order_id: str,
    body: AttachAccountRequest,
    db: AsyncSession = Depends(get_db),
):
    order = await progress.attach_account(db, order_id, body.user_id)
    return progress.order_out(order, await store.list_steps_for_order(db, order.id))


# ── Steps ────────────────────────────────────────────────────

@router.put("/welcome-order/{order_id}/step", response_model=SignupStepOut)
async def update_step(
    order_id: str,
    body: SignupStepUpdate,
    db: AsyncSession = Depends(get_db),
):
    step = await progress.update_signup_step(db, order_id, body)
    return progress.step_out(step)


@router.put("/welcome-order/{order_id}/step/gender", response_model=SignupStepOut)
async def save_gender(order_id: str, data: dict = Body(...), db: AsyncSession = Depends(get_db)):
    return await _save_step(db, order_id, 0, 0, data, is_completed=True)


@router.put("/welcome-order/{order_id}/step/basic-info", response_model=SignupStepOut)
async def save_basic_info(order_id: str, data: dict = Body(...), db: AsyncSession = Depends(get_db)):
    # Name + email is a draft until the state sub-step is submitted
    return await _save_step(db, order_id, 1, 0, data, is_completed=False, sub_step_name="basic")


@router.put("/welcome-order/{order_id}/step/basic-info/state", response_model=SignupStepOut)
async def save_state(order_id: str, data: dict = Body(...), db: AsyncSession = Depends(get_db)):
    return await _save_step(db, order_id, 1, 1, data, is_completed=True, sub_step_name="state")


@router.put("/welcome-order/{order_id}/step/password", response_model=SignupStepOut)
async def save_password(order_id: str, data: dict = Body(...), db: AsyncSession = Depends(get_db)):
    return await _save_step(db, order_id, 2, 0, data, is_completed=True)


@router.put("/welcome-order/{order_id}/step/checkout", response_model=SignupStepOut)
async def save_checkout(order_id: str, data: dict = Body(...), db: AsyncSession = Depends(get_db)):
    return await _save_step(db, order_id, 3, 0, data, is_completed=True)


@router.put("/welcome-order/{order_id}/step/details/bmi", response_model=SignupStepOut)
async def save_bmi(order_id: str, data: dict = Body(...), db: AsyncSession = Depends(get_db)):
    return await _save_step(db, order_id, 4, 0, data, is_completed=True, sub_step_name="bmi")


@router.put("/welcome-order/{order_id}/step/details/medical", response_model=SignupStepOut)
async def save_medical(order_id: str, data: dict = Body(...), db: AsyncSession = Depends(get_db)):
    return await _save_step(db, order_id, 4, 1, data, is_completed=True, sub_step_name="medical")


@router.put("/welcome-order/{order_id}/step/details/consent", response_model=SignupStepOut)
async def save_consent(order_id: str, data: dict = Body(...), db: AsyncSession = Depends(get_db)):
    return await _save_step(db, order_id, 4, 2, data, is_completed=True, sub_step_name="consent")


@router.get("/welcome-order/{order_id}/progress", response_model=SignupProgress)
async def get_progress(order_id: str, db: AsyncSession = Depends(get_db)):
    return await progress.get_signup_progress(db, order_id)


# ── Payment ──────────────────────────────────────────────────

@router.post(
    "/welcome-order/{order_id}/payment-intent",
    response_model=PaymentIntentOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_payment_intent(
    order_id: str,
    body: PaymentIntentRequest | None = None,
    db: AsyncSession = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
):
    body = body or PaymentIntentRequest()
    return await payments.create_payment_intent(
        db, order_id, processor, amount=body.amount, currency=body.currency
    )


@router.put("/welcome-order/{order_id}/payment", response_model=WelcomeOrderOut)
async def update_payment(
    order_id: str,
    body: PaymentStatusUpdate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    order, confirmation = await payments.update_payment_status(
        db, order_id, body.payment_intent_id, body.status
    )
    if confirmation:
        _send_later(background_tasks, [confirmation])
    return progress.order_out(order, await store.list_steps_for_order(db, order.id))


# ── Finalize ─────────────────────────────────────────────────

@router.post(
    "/welcome-order/{order_id}/complete",
    response_model=CompleteSignupOut,
    status_code=status.HTTP_201_CREATED,
)
async def complete_signup(
    order_id: str,
    background_tasks: BackgroundTasks,
    body: CompleteSignupRequest | None = None,
    db: AsyncSession = Depends(get_db),
):
    account, order, notices = await finalize.complete_signup(
        db, order_id, body or CompleteSignupRequest()
    )
    _send_later(background_tasks, notices)
    steps = await store.list_steps_for_order(db, order.id)
    return CompleteSignupOut(
        account=AccountOut.model_validate(account),
        welcome_order=progress.order_out(order, steps),
    )


# ── Accounts ─────────────────────────────────────────────────

@router.post("/accounts", response_model=AccountOut, status_code=status.HTTP_201_CREATED)
async def create_account(body: AccountCreate, db: AsyncSession = Depends(get_db)):
    return await accounts.create_early_account(db, body)
