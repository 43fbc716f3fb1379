"""The one place that decides whether a signup is really finished.

The stored `WelcomeOrder.is_completed` flag can drift (older clients set
it early, partial writes, manual fixes), so every caller that needs a
verdict (resume detection, progress view, CLI) asks this module instead.
Pure functions only: no I/O, no session.
"""

from collections.abc import Iterable

from signup.models.welcome_order import PaymentStatus, SignupStep, WelcomeOrder
from signup.schemas.steps import DETAILS_STEP

GENDER_STEP = 0
BASIC_INFO_STEP = 1
DETAILS_SUB_STEPS = (0, 1, 2)


def _completed_keys(steps: Iterable[SignupStep]) -> set[tuple[int, int]]:
    return {
        (s.step_number, s.sub_step_number)
        for s in steps
        if s.is_completed
    }


def is_truly_complete(
    steps: Iterable[SignupStep],
    payment_status: PaymentStatus | None,
    has_account: bool,
) -> bool:
    """True when every gating condition of the flow holds.

    - gender step completed
    - at least one basic-info sub-step completed
    - payment succeeded
    - an account is linked
    - all three details sub-steps (bmi, medical, consent) completed
    """
    done = _completed_keys(steps)
    completed_step_numbers = {step for step, _ in done}

    if GENDER_STEP not in completed_step_numbers:
        return False
    if BASIC_INFO_STEP not in completed_step_numbers:
        return False
    if payment_status != PaymentStatus.SUCCEEDED:
        return False
    if not has_account:
        return False
    return all((DETAILS_STEP, sub) in done for sub in DETAILS_SUB_STEPS)


def order_is_truly_complete(order: WelcomeOrder, steps: Iterable[SignupStep]) -> bool:
    return is_truly_complete(
        steps,
        payment_status=order.payment_status,
        has_account=order.user_id is not None,
    )
