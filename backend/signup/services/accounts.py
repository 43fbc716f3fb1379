"""Account directory: lookups, creation, profile updates, verification tokens.

Accounts are created either early, from the password step, or by the
signup finalizer. Emails are always stored normalized.
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Any

import bcrypt
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from signup.config import settings
from signup.middleware.exceptions import (
    ConflictError,
    ResourceNotFoundError,
    SignupValidationError,
)
from signup.models.account import Account
from signup.schemas.signup import AccountCreate

logger = logging.getLogger(__name__)

DUPLICATE_EMAIL_MESSAGE = (
    "An account with this email address already exists. "
    "Please use a different email or try logging in instead."
)

# Profile columns the finalizer may write
PROFILE_FIELDS = (
    "email",
    "first_name",
    "last_name",
    "gender",
    "state",
    "date_of_birth",
    "complete_address",
    "city",
    "zipcode",
    "primary_phone",
    "alternative_phone",
    "emergency_contact_name",
    "emergency_contact_relationship",
    "emergency_contact_phone",
    "referring_source",
    "preferred_method_of_communication",
    "disability_accessibility_needs",
    "consent_for_treatment",
    "hipaa_privacy_notice_acknowledgment",
    "release_of_medical_records_consent",
)

REQUIRED_FOR_CREATE = ("email", "first_name", "last_name")


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


# ── Passwords ───────────────────────────────────────────────

def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


# ── Lookups ─────────────────────────────────────────────────

async def find_by_email(db: AsyncSession, email: str) -> Account | None:
    result = await db.execute(
        select(Account).where(func.lower(Account.email) == normalize_email(email))
    )
    return result.scalar_one_or_none()


async def get_account(db: AsyncSession, account_id: str) -> Account:
    result = await db.execute(select(Account).where(Account.id == account_id))
    account = result.scalar_one_or_none()
    if not account:
        raise ResourceNotFoundError("Account", account_id)
    return account


# ── Writes ──────────────────────────────────────────────────

async def create_account(
    db: AsyncSession,
    fields: dict[str, Any],
    hashed_password: str | None,
) -> Account:
    """Insert a new account from merged profile fields.

    Raises SignupValidationError when identity or password material is
    missing and ConflictError when the email is already registered.
    """
    profile = {k: v for k, v in fields.items() if k in PROFILE_FIELDS}
    profile["email"] = normalize_email(profile.get("email"))

    missing = [name for name in REQUIRED_FOR_CREATE if not profile.get(name)]
    if not hashed_password:
        missing.append("password")
    if missing:
        raise SignupValidationError(
            "Cannot create an account: required fields are missing",
            details={"missing_fields": missing},
        )

    if await find_by_email(db, profile["email"]):
        raise ConflictError(DUPLICATE_EMAIL_MESSAGE, error_code="EMAIL_ALREADY_REGISTERED")

    account = Account(hashed_password=hashed_password, **profile)
    db.add(account)
    await db.flush()
    await db.refresh(account)

    logger.info("Created account %s for %s", account.id, account.email)
    return account


async def update_account(
    db: AsyncSession,
    account: Account,
    fields: dict[str, Any],
    hashed_password: str | None = None,
) -> Account:
    """Apply non-empty profile fields to an existing account."""
    for name in PROFILE_FIELDS:
        value = fields.get(name)
        if value is None or value == "":
            continue
        if name == "email":
            value = normalize_email(value)
            if value != account.email:
                other = await find_by_email(db, value)
                if other and other.id != account.id:
                    raise ConflictError(
                        DUPLICATE_EMAIL_MESSAGE, error_code="EMAIL_ALREADY_REGISTERED"
                    )
        setattr(account, name, value)

    if hashed_password:
        account.hashed_password = hashed_password

    await db.flush()
    return account


async def create_early_account(db: AsyncSession, body: AccountCreate) -> Account:
    """Account creation from the password step, before finalize."""
    return await create_account(
        db,
        body.model_dump(exclude={"password"}),
        hash_password(body.password),
    )


def issue_verification_token(account: Account) -> str:
    """Generate a fresh email verification token and mark the account unverified."""
    token = secrets.token_hex(32)
    account.email_verification_token = token
    account.email_verification_token_expires_at = datetime.utcnow() + timedelta(
        minutes=settings.email_verification_ttl_minutes
    )
    account.is_email_verified = False
    return token
