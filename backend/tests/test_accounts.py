"""Account directory tests."""

from datetime import datetime

import pytest

from signup.middleware.exceptions import ConflictError, SignupValidationError
from signup.models.account import Account
from signup.schemas.signup import AccountCreate
from signup.services import accounts


@pytest.mark.asyncio
class TestAccounts:

    async def test_lookup_is_case_insensitive(self, db_session, test_account):
        found = await accounts.find_by_email(db_session, "  EXISTING@Example.com ")
        assert found.id == test_account.id

    async def test_early_account(self, db_session):
        account = await accounts.create_early_account(
            db_session,
            AccountCreate(
                email="New.Person@Example.com",
                password="long-enough",
                first_name="New",
                last_name="Person",
            ),
        )
        assert account.email == "new.person@example.com"
        assert account.is_active is True
        assert account.has_completed_intake_form is False
        assert accounts.verify_password("long-enough", account.hashed_password)

    async def test_missing_fields_listed(self, db_session):
        with pytest.raises(SignupValidationError) as exc:
            await accounts.create_account(db_session, {"email": "x@example.com"}, None)
        assert exc.value.details["missing_fields"] == ["first_name", "last_name", "password"]

    async def test_update_skips_empty_values(self, db_session, test_account):
        await accounts.update_account(
            db_session, test_account, {"first_name": "", "city": "Reno", "state": None}
        )
        assert test_account.first_name == "Eve"
        assert test_account.city == "Reno"

    async def test_update_to_taken_email(self, db_session, test_account):
        other = await accounts.create_account(
            db_session,
            {"email": "other@example.com", "first_name": "O", "last_name": "T"},
            accounts.hash_password("whatever-pass"),
        )
        with pytest.raises(ConflictError):
            await accounts.update_account(db_session, other, {"email": test_account.email})


@pytest.mark.unit
class TestVerificationToken:

    def test_fresh_token_unverifies(self):
        account = Account(
            email="stub@example.com", first_name="S", last_name="T", is_email_verified=True
        )
        token = accounts.issue_verification_token(account)
        assert len(token) == 64
        assert account.email_verification_token == token
        assert account.is_email_verified is False
        assert account.email_verification_token_expires_at > datetime.utcnow()
