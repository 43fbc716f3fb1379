"""Payment processor client.

Only payment-intent creation lives here. Confirmation happens between the
client and the processor; the result comes back through
`PUT /welcome-order/{id}/payment`.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

import stripe

from signup.config import settings
from signup.middleware.exceptions import ExternalDependencyError

logger = logging.getLogger("signup.payments")


@dataclass
class PaymentIntent:
    id: str
    client_secret: str | None
    amount: float
    currency: str
    status: str


class PaymentProcessor(Protocol):
    async def create_payment_intent(
        self, amount: float, currency: str, metadata: dict[str, str]
    ) -> PaymentIntent: ...


class StripePaymentProcessor:
    """Creates payment intents with the Stripe SDK."""

    def __init__(self, secret_key: str | None = None):
        self.secret_key = secret_key if secret_key is not None else settings.stripe_secret_key

    async def create_payment_intent(
        self, amount: float, currency: str, metadata: dict[str, str]
    ) -> PaymentIntent:
        if not self.secret_key:
            raise ExternalDependencyError("Payment processor", "not configured")

        try:
            intent = await stripe.PaymentIntent.create_async(
                api_key=self.secret_key,
                # Smallest currency unit
                amount=int(round(amount * 100)),
                currency=currency.lower(),
                automatic_payment_methods={"enabled": True},
                metadata=metadata,
            )
        except stripe.APIConnectionError as e:
            logger.error("Payment intent request failed: %s", e)
            raise ExternalDependencyError("Payment processor", "unreachable")
        except stripe.StripeError as e:
            logger.error("Payment intent request rejected: %s %s", e.http_status, e.user_message)
            raise ExternalDependencyError(
                "Payment processor", f"request rejected ({e.http_status})"
            )

        return PaymentIntent(
            id=intent.id,
            client_secret=intent.client_secret,
            amount=intent.amount / 100,
            currency=intent.currency,
            status=intent.status,
        )


def get_payment_processor() -> PaymentProcessor:
    """FastAPI dependency; tests override it with a fake."""
    return StripePaymentProcessor()
