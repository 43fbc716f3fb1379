"""Welcome orders and the per-step progress rows that hang off them.

One WelcomeOrder per onboarding attempt. One SignupStep per
(welcome_order_id, step_number, sub_step_number); steps without
sub-steps use sub_step_number 0 so every step has exactly one key.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from signup.database import Base


class WelcomeOrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class WelcomeOrder(Base):
    __tablename__ = "welcome_orders"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    # Display/support reference only; not a key
    order_number: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    user_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("accounts.id", ondelete="CASCADE"), index=True
    )

    # Advisory cursor: last step the client touched
    current_step: Mapped[int] = mapped_column(Integer, default=0)
    current_sub_step: Mapped[int] = mapped_column(Integer, default=0)

    status: Mapped[WelcomeOrderStatus] = mapped_column(
        SAEnum(WelcomeOrderStatus), default=WelcomeOrderStatus.PENDING
    )
    # Recorded flag; see services.completion for the authoritative verdict
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)

    total_amount: Mapped[float] = mapped_column(Float, nullable=False)
    discount_amount: Mapped[float] = mapped_column(Float, default=0.0)
    final_amount: Mapped[float] = mapped_column(Float, nullable=False)

    payment_intent_id: Mapped[str | None] = mapped_column(String(255))
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(PaymentStatus), default=PaymentStatus.PENDING
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class SignupStep(Base):
    __tablename__ = "signup_steps"
    __table_args__ = (
        UniqueConstraint(
            "welcome_order_id", "step_number", "sub_step_number",
            name="uq_signup_steps_order_step_sub_step",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    welcome_order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("welcome_orders.id", ondelete="CASCADE"), nullable=False
    )
    # Back-filled at finalize, for reporting joins only
    user_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("accounts.id", ondelete="CASCADE")
    )

    step_number: Mapped[int] = mapped_column(Integer, nullable=False)
    step_name: Mapped[str] = mapped_column(String(100), nullable=False)
    sub_step_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sub_step_name: Mapped[str | None] = mapped_column(String(100))

    step_data: Mapped[dict | None] = mapped_column(JSON, default=None)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)
    is_valid: Mapped[bool] = mapped_column(Boolean, default=False)
    validation_errors: Mapped[dict | list | None] = mapped_column(JSON, default=None)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
