"""Aggregate model imports for Alembic auto-detection."""

from signup.models.account import Account  # noqa: F401
from signup.models.welcome_order import (  # noqa: F401
    PaymentStatus,
    SignupStep,
    WelcomeOrder,
    WelcomeOrderStatus,
)
