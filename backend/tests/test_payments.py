"""Payment gate tests."""

import pytest
import stripe

from factories import save_step
from signup.middleware.exceptions import ConflictError, ExternalDependencyError
from signup.models.welcome_order import PaymentStatus, WelcomeOrderStatus
from signup.services import notifier, payments, store
from signup.services.payment_processor import StripePaymentProcessor


@pytest.mark.asyncio
class TestUpdatePaymentStatus:

    async def test_succeeded_then_refunded(self, db_session, welcome_order):
        """SUCCEEDED → IN_PROGRESS with paid_at; REFUNDED → PENDING, paid_at cleared."""
        welcome_order.is_completed = True
        await db_session.flush()

        order, _ = await payments.update_payment_status(
            db_session, welcome_order.id, "pi_123", PaymentStatus.SUCCEEDED
        )
        assert order.status == WelcomeOrderStatus.IN_PROGRESS
        assert order.paid_at is not None
        assert order.payment_intent_id == "pi_123"

        order, notice = await payments.update_payment_status(
            db_session, welcome_order.id, "pi_123", PaymentStatus.REFUNDED
        )
        assert order.status == WelcomeOrderStatus.PENDING
        assert order.paid_at is None
        assert order.payment_status == PaymentStatus.REFUNDED
        assert order.is_completed is True
        assert notice is None

    async def test_payment_never_completes_order(self, db_session, welcome_order):
        order, _ = await payments.update_payment_status(
            db_session, welcome_order.id, "pi_9", PaymentStatus.SUCCEEDED
        )
        assert order.is_completed is False
        assert order.status != WelcomeOrderStatus.COMPLETED

    async def test_confirmation_uses_basic_info_name(self, db_session, welcome_order):
        await save_step(
            db_session, welcome_order.id, 1, 0,
            {"first_name": "Jane", "last_name": "Doe"}, completed=False,
        )
        _, notice = await payments.update_payment_status(
            db_session, welcome_order.id, "pi_1", PaymentStatus.SUCCEEDED
        )
        assert notice.kind == notifier.PAYMENT_CONFIRMATION
        assert notice.to == "jane.doe@example.com"
        assert notice.context == {
            "customer_name": "Jane Doe",
            "amount": 179.0,
            "order_number": welcome_order.order_number,
        }

    async def test_confirmation_falls_back_to_generic_name(self, db_session, welcome_order):
        _, notice = await payments.update_payment_status(
            db_session, welcome_order.id, "pi_1", PaymentStatus.SUCCEEDED
        )
        assert notice.context["customer_name"] == "Valued Customer"


@pytest.mark.asyncio
class TestCreatePaymentIntent:

    async def test_defaults_to_final_amount(self, db_session, welcome_order, fake_processor):
        intent = await payments.create_payment_intent(
            db_session, welcome_order.id, fake_processor
        )
        assert intent.amount == 179.0
        assert intent.currency == "usd"
        assert intent.payment_intent_id == "pi_test_1"
        assert fake_processor.calls[0][2]["welcome_order_id"] == welcome_order.id

        order = await store.get_order(db_session, welcome_order.id)
        assert order.payment_intent_id == "pi_test_1"
        assert order.payment_status == PaymentStatus.PENDING

    async def test_already_paid(self, db_session, welcome_order, fake_processor):
        welcome_order.payment_status = PaymentStatus.SUCCEEDED
        await db_session.flush()

        with pytest.raises(ConflictError):
            await payments.create_payment_intent(db_session, welcome_order.id, fake_processor)
        assert fake_processor.calls == []

    async def test_processor_failure_leaves_order_alone(
        self, db_session, welcome_order, fake_processor
    ):
        fake_processor.error = ExternalDependencyError("Payment processor", "unreachable")

        with pytest.raises(ExternalDependencyError):
            await payments.create_payment_intent(db_session, welcome_order.id, fake_processor)

        order = await store.get_order(db_session, welcome_order.id)
        assert order.payment_intent_id is None


@pytest.mark.unit
@pytest.mark.asyncio
class TestStripePaymentProcessor:

    async def test_not_configured(self):
        processor = StripePaymentProcessor(secret_key="")
        with pytest.raises(ExternalDependencyError):
            await processor.create_payment_intent(10.0, "usd", {})

    async def test_amount_in_minor_units(self, monkeypatch):
        seen = {}

        async def create_async(**params):
            seen.update(params)
            return stripe.PaymentIntent.construct_from(
                {
                    "id": "pi_abc",
                    "object": "payment_intent",
                    "client_secret": "pi_abc_secret",
                    "amount": 17900,
                    "currency": "usd",
                    "status": "requires_payment_method",
                },
                "sk_test",
            )

        monkeypatch.setattr(stripe.PaymentIntent, "create_async", create_async)

        processor = StripePaymentProcessor(secret_key="sk_test")
        intent = await processor.create_payment_intent(179.0, "USD", {"order_number": "WO-1"})

        assert seen["api_key"] == "sk_test"
        assert seen["amount"] == 17900
        assert seen["currency"] == "usd"
        assert seen["metadata"] == {"order_number": "WO-1"}
        assert intent.id == "pi_abc"
        assert intent.client_secret == "pi_abc_secret"
        assert intent.amount == 179.0

    async def test_rejected_request(self, monkeypatch):
        async def create_async(**params):
            raise stripe.CardError("Your card was declined.", None, "card_declined", http_status=402)

        monkeypatch.setattr(stripe.PaymentIntent, "create_async", create_async)

        processor = StripePaymentProcessor(secret_key="sk_test")
        with pytest.raises(ExternalDependencyError) as exc:
            await processor.create_payment_intent(10.0, "usd", {})
        assert "402" in exc.value.message

    async def test_unreachable(self, monkeypatch):
        async def create_async(**params):
            raise stripe.APIConnectionError("Network error")

        monkeypatch.setattr(stripe.PaymentIntent, "create_async", create_async)

        processor = StripePaymentProcessor(secret_key="sk_test")
        with pytest.raises(ExternalDependencyError) as exc:
            await processor.create_payment_intent(10.0, "usd", {})
        assert exc.value.message.endswith("unreachable")
