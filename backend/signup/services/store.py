"""Persistence for welcome orders and signup steps.

No business rules live here: callers decide what to write, this module
decides how. The one guarantee it owns is the step natural key:
`upsert_step` is a single INSERT ... ON CONFLICT DO UPDATE statement, so
retried or concurrent submissions for the same
(welcome_order_id, step_number, sub_step_number) yield exactly one row
and the last committed write wins.
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from signup.middleware.exceptions import ResourceNotFoundError
from signup.models.welcome_order import SignupStep, WelcomeOrder, WelcomeOrderStatus

STEP_KEY = ("welcome_order_id", "step_number", "sub_step_number")

# Columns an upsert may overwrite on conflict
STEP_MUTABLE_FIELDS = frozenset({
    "step_name",
    "sub_step_name",
    "step_data",
    "is_completed",
    "completed_at",
    "is_valid",
    "validation_errors",
})

OPEN_STATUSES = (WelcomeOrderStatus.PENDING, WelcomeOrderStatus.IN_PROGRESS)


def _dialect_insert(db: AsyncSession):
    """Pick the dialect-specific INSERT that supports ON CONFLICT."""
    name = db.get_bind().dialect.name
    if name == "postgresql":
        return postgresql.insert
    if name == "sqlite":
        return sqlite.insert
    raise RuntimeError(f"Step upsert is not supported on dialect {name!r}")


# ── Orders ──────────────────────────────────────────────────

async def create_order(
    db: AsyncSession,
    *,
    order_number: str,
    email: str,
    total_amount: float,
    discount_amount: float,
    final_amount: float,
    user_id: str | None = None,
) -> WelcomeOrder:
    order = WelcomeOrder(
        order_number=order_number,
        email=email,
        total_amount=total_amount,
        discount_amount=discount_amount,
        final_amount=final_amount,
        user_id=user_id,
        status=WelcomeOrderStatus.PENDING,
        current_step=0,
        current_sub_step=0,
        is_completed=False,
    )
    db.add(order)
    await db.flush()
    await db.refresh(order)
    return order


async def get_order(db: AsyncSession, order_id: str) -> WelcomeOrder:
    """Return the order or raise ResourceNotFoundError."""
    result = await db.execute(select(WelcomeOrder).where(WelcomeOrder.id == order_id))
    order = result.scalar_one_or_none()
    if not order:
        raise ResourceNotFoundError("Welcome order", order_id)
    return order


async def find_orders_by_email_or_user_id(
    db: AsyncSession,
    email: str,
    user_id: str | None = None,
    *,
    only_incomplete: bool = False,
) -> list[WelcomeOrder]:
    """Orders started with `email` or linked to `user_id`, newest first.

    only_incomplete restricts to orders whose recorded flag is still false and
    whose status is PENDING or IN_PROGRESS.
    """
    identity = [WelcomeOrder.email == email]
    if user_id:
        identity.append(WelcomeOrder.user_id == user_id)

    stmt = select(WelcomeOrder).where(or_(*identity))
    if only_incomplete:
        stmt = stmt.where(
            WelcomeOrder.is_completed == False,  # noqa: E712
            WelcomeOrder.status.in_(OPEN_STATUSES),
        )
    stmt = stmt.order_by(WelcomeOrder.created_at.desc(), WelcomeOrder.id.desc())

    result = await db.execute(stmt)
    return list(result.scalars().all())


async def find_in_progress_order_for_user(
    db: AsyncSession, user_id: str
) -> WelcomeOrder | None:
    """Newest IN_PROGRESS order linked to an account."""
    result = await db.execute(
        select(WelcomeOrder)
        .where(
            WelcomeOrder.user_id == user_id,
            WelcomeOrder.status == WelcomeOrderStatus.IN_PROGRESS,
        )
        .order_by(WelcomeOrder.created_at.desc(), WelcomeOrder.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def claim_completion(db: AsyncSession, order_id: str, completed_at: datetime) -> bool:
    """Flip is_completed false → true. Returns False if another call got there first."""
    result = await db.execute(
        update(WelcomeOrder)
        .where(
            WelcomeOrder.id == order_id,
            WelcomeOrder.is_completed == False,  # noqa: E712
        )
        .values(
            is_completed=True,
            status=WelcomeOrderStatus.COMPLETED,
            completed_at=completed_at,
            updated_at=completed_at,
        )
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount == 1


async def list_stale_orders(db: AsyncSession, older_than: datetime) -> list[WelcomeOrder]:
    """Open, unfinished orders last updated before `older_than`, oldest first."""
    result = await db.execute(
        select(WelcomeOrder)
        .where(
            WelcomeOrder.is_completed == False,  # noqa: E712
            WelcomeOrder.status.in_(OPEN_STATUSES),
            WelcomeOrder.updated_at < older_than,
        )
        .order_by(WelcomeOrder.updated_at.asc())
    )
    return list(result.scalars().all())


# ── Steps ───────────────────────────────────────────────────

async def upsert_step(
    db: AsyncSession,
    order_id: str,
    step_number: int,
    sub_step_number: int,
    fields: dict[str, Any],
) -> SignupStep:
    """Insert or overwrite the step row for its natural key."""
    unknown = set(fields) - STEP_MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"Not upsertable step fields: {', '.join(sorted(unknown))}")

    now = datetime.utcnow()
    insert = _dialect_insert(db)
    stmt = insert(SignupStep).values(
        id=str(uuid.uuid4()),
        welcome_order_id=order_id,
        step_number=step_number,
        sub_step_number=sub_step_number,
        created_at=now,
        updated_at=now,
        **fields,
    )
    overwrite = {name: stmt.excluded[name] for name in fields}
    overwrite["updated_at"] = stmt.excluded.updated_at
    stmt = stmt.on_conflict_do_update(index_elements=list(STEP_KEY), set_=overwrite)

    result = await db.scalars(
        stmt.returning(SignupStep),
        execution_options={"populate_existing": True},
    )
    return result.one()


async def list_steps_for_order(db: AsyncSession, order_id: str) -> list[SignupStep]:
    result = await db.execute(
        select(SignupStep)
        .where(SignupStep.welcome_order_id == order_id)
        .order_by(SignupStep.step_number.asc(), SignupStep.sub_step_number.asc())
    )
    return list(result.scalars().all())


async def list_steps_for_orders(
    db: AsyncSession, order_ids: list[str]
) -> dict[str, list[SignupStep]]:
    """Steps for several orders in one query, grouped by order id."""
    grouped: dict[str, list[SignupStep]] = {oid: [] for oid in order_ids}
    if not order_ids:
        return grouped

    result = await db.execute(
        select(SignupStep)
        .where(SignupStep.welcome_order_id.in_(order_ids))
        .order_by(SignupStep.step_number.asc(), SignupStep.sub_step_number.asc())
    )
    for step in result.scalars().all():
        grouped[step.welcome_order_id].append(step)
    return grouped


async def backfill_step_user_id(db: AsyncSession, order_id: str, user_id: str) -> None:
    await db.execute(
        update(SignupStep)
        .where(SignupStep.welcome_order_id == order_id)
        .values(user_id=user_id)
        .execution_options(synchronize_session="fetch")
    )
