"""Signup finalizer tests: merge precedence, account materialization, terminality."""

from datetime import date, datetime

import pytest

from factories import BMI_DETAILS, CONSENT, fill_all_steps, save_step
from signup.middleware.exceptions import (
    ConflictError,
    ResourceNotFoundError,
    SignupValidationError,
)
from signup.models.welcome_order import PaymentStatus, SignupStep, WelcomeOrderStatus
from signup.schemas.signup import CompleteSignupRequest
from signup.services import accounts, finalize, notifier, progress, store


def _step(step_number, sub_step_number, data):
    return SignupStep(
        step_number=step_number,
        sub_step_number=sub_step_number,
        step_name=f"Step {step_number}",
        step_data=data,
        is_completed=True,
    )


@pytest.mark.unit
class TestMergeSignupFields:

    def test_step_payload_beats_supplied(self):
        steps = [_step(4, 0, {"city": "Sacramento"})]
        merged = finalize.merge_signup_fields(steps, {"city": "Fresno", "zipcode": "95814"})
        assert merged["city"] == "Sacramento"
        assert merged["zipcode"] == "95814"

    def test_steps_merge_in_ascending_order(self):
        steps = [
            _step(4, 0, {"city": "Sacramento"}),
            _step(1, 0, {"first_name": "Jane", "last_name": "Doe"}),
        ]
        merged = finalize.merge_signup_fields(steps, {"first_name": "Supplied"})
        assert merged["first_name"] == "Jane"
        assert merged["last_name"] == "Doe"
        assert merged["city"] == "Sacramento"

    def test_medical_extras_never_reach_the_merge(self):
        """Free-form medical answers cannot shadow typed fields from other steps."""
        steps = [
            _step(1, 0, {"first_name": "Jane", "last_name": "Doe", "email": "jane@example.com"}),
            _step(4, 0, {"date_of_birth": "1990-05-17"}),
            _step(4, 1, {
                "allergies": "none",
                "email": "not-an-email",
                "first_name": "Overwritten",
                "date_of_birth": "2001-01-01",
                "consent_for_treatment": "yes",
            }),
        ]
        merged = finalize.merge_signup_fields(steps, {})
        assert merged["email"] == "jane@example.com"
        assert merged["first_name"] == "Jane"
        assert merged["date_of_birth"] == date(1990, 5, 17)
        assert merged["allergies"] == "none"
        assert "consent_for_treatment" not in merged

    def test_empty_values_never_override(self):
        steps = [
            _step(1, 0, {"first_name": "Jane", "last_name": ""}),
            _step(4, 0, {"city": ""}),
        ]
        merged = finalize.merge_signup_fields(
            steps, {"last_name": "Supplied", "city": "Fresno"}
        )
        assert merged["last_name"] == "Supplied"
        assert merged["city"] == "Fresno"

    def test_details_personal_fields_are_authoritative(self):
        """A later medical answer cannot overwrite the bmi-screen personal details."""
        steps = [
            _step(4, 0, {"city": "Sacramento", "date_of_birth": "1990-05-17"}),
            _step(4, 1, {"city": "Elsewhere"}),
        ]
        merged = finalize.merge_signup_fields(steps, {})
        assert merged["city"] == "Sacramento"
        assert merged["date_of_birth"] == date(1990, 5, 17)

    def test_password_step_contributes_hash(self):
        steps = [_step(2, 0, {"password_hash": "$2b$04$hash"})]
        merged = finalize.merge_signup_fields(steps, {})
        assert merged["password_hash"] == "$2b$04$hash"

    def test_consent_false_is_kept(self):
        steps = [_step(4, 2, CONSENT)]
        merged = finalize.merge_signup_fields(steps, {})
        assert merged["release_of_medical_records_consent"] is False


@pytest.mark.asyncio
class TestCompleteSignup:

    async def _paid_and_filled(self, db_session, order):
        await fill_all_steps(db_session, order.id)
        order.payment_status = PaymentStatus.SUCCEEDED
        await db_session.flush()

    async def test_creates_account(self, db_session, welcome_order):
        await self._paid_and_filled(db_session, welcome_order)

        account, order, notices = await finalize.complete_signup(
            db_session, welcome_order.id, CompleteSignupRequest()
        )

        assert account.email == "jane.doe@example.com"
        assert (account.first_name, account.last_name) == ("Jane", "Doe")
        assert account.gender == "female"
        assert account.state == "CA"
        assert account.date_of_birth == date(1990, 5, 17)
        assert account.city == "Sacramento"
        assert account.consent_for_treatment is True
        assert account.release_of_medical_records_consent is False
        assert accounts.verify_password("correct-horse", account.hashed_password)
        assert account.has_completed_intake_form is True
        assert account.intake_form_completed_at is not None
        assert account.is_email_verified is False
        assert account.email_verification_token
        assert account.email_verification_token_expires_at > datetime.utcnow()

        assert order.is_completed is True
        assert order.status == WelcomeOrderStatus.COMPLETED
        assert order.completed_at is not None
        assert order.user_id == account.id

        steps = await store.list_steps_for_order(db_session, order.id)
        assert all(s.user_id == account.id for s in steps)

        assert [n.kind for n in notices] == [notifier.WELCOME, notifier.EMAIL_VERIFICATION]
        assert account.email_verification_token in notices[1].context["verification_link"]

    async def test_second_call_conflicts(self, db_session, welcome_order):
        await self._paid_and_filled(db_session, welcome_order)
        account, _, _ = await finalize.complete_signup(
            db_session, welcome_order.id, CompleteSignupRequest()
        )
        token = account.email_verification_token
        password_hash = account.hashed_password

        with pytest.raises(ConflictError):
            await finalize.complete_signup(
                db_session,
                welcome_order.id,
                CompleteSignupRequest(first_name="Changed", password="another-pass"),
            )

        assert account.first_name == "Jane"
        assert account.email_verification_token == token
        assert account.hashed_password == password_hash

    async def test_conditional_claim_only_once(self, db_session, welcome_order):
        now = datetime.utcnow()
        assert await store.claim_completion(db_session, welcome_order.id, now) is True
        assert await store.claim_completion(db_session, welcome_order.id, now) is False

    async def test_supplied_fields_fill_gaps(self, db_session, welcome_order):
        await save_step(db_session, welcome_order.id, 0, 0, {"gender": "male"})

        account, _, _ = await finalize.complete_signup(
            db_session,
            welcome_order.id,
            CompleteSignupRequest(
                first_name="Sam", last_name="Supplied", password="supplied-pass", zipcode="95814"
            ),
        )
        assert account.email == "jane.doe@example.com"
        assert account.first_name == "Sam"
        assert account.zipcode == "95814"
        assert account.gender == "male"
        assert accounts.verify_password("supplied-pass", account.hashed_password)

    async def test_missing_password_material(self, db_session, welcome_order):
        await save_step(
            db_session, welcome_order.id, 1, 0,
            {"first_name": "Jane", "last_name": "Doe"}, completed=False,
        )
        with pytest.raises(SignupValidationError) as exc:
            await finalize.complete_signup(db_session, welcome_order.id, CompleteSignupRequest())
        assert "password" in exc.value.details["missing_fields"]

    async def test_duplicate_email(self, db_session, welcome_order, test_account):
        await save_step(
            db_session, welcome_order.id, 1, 0,
            {"first_name": "Jane", "last_name": "Doe", "email": test_account.email},
            completed=False,
        )
        with pytest.raises(ConflictError):
            await finalize.complete_signup(
                db_session, welcome_order.id, CompleteSignupRequest(password="whatever-pass")
            )

    async def test_updates_linked_account(self, db_session, welcome_order, test_account):
        await progress.attach_account(db_session, welcome_order.id, test_account.id)
        await self._paid_and_filled(db_session, welcome_order)

        account, order, _ = await finalize.complete_signup(
            db_session, welcome_order.id, CompleteSignupRequest()
        )

        assert account.id == test_account.id
        assert order.user_id == test_account.id
        assert account.first_name == "Jane"
        assert account.email == "jane.doe@example.com"
        assert accounts.verify_password("correct-horse", account.hashed_password)

    async def test_medical_extras_do_not_touch_account(self, db_session, welcome_order):
        await self._paid_and_filled(db_session, welcome_order)
        bmi_without_birth_date = {k: v for k, v in BMI_DETAILS.items() if k != "date_of_birth"}
        await save_step(db_session, welcome_order.id, 4, 0, bmi_without_birth_date)
        await save_step(
            db_session, welcome_order.id, 4, 1,
            {
                "allergies": "none",
                "email": "not-an-email",
                "first_name": "Overwritten",
                "date_of_birth": "1990-01-01",
            },
        )

        account, _, _ = await finalize.complete_signup(
            db_session, welcome_order.id, CompleteSignupRequest()
        )

        assert account.email == "jane.doe@example.com"
        assert account.first_name == "Jane"
        assert account.date_of_birth is None

    async def test_missing_order(self, db_session):
        with pytest.raises(ResourceNotFoundError):
            await finalize.complete_signup(db_session, "missing", CompleteSignupRequest())
