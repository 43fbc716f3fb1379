"""Pydantic schemas for welcome orders, step updates, resume and finalize."""

from datetime import date, datetime

from pydantic import BaseModel, EmailStr, field_validator

from signup.models.welcome_order import PaymentStatus, WelcomeOrderStatus
from signup.schemas.steps import redact_step_data


# ── Welcome order ───────────────────────────────────────────

class WelcomeOrderCreate(BaseModel):
    email: EmailStr
    total_amount: float
    discount_amount: float = 0.0
    final_amount: float
    user_id: str | None = None

    @field_validator("total_amount", "discount_amount", "final_amount")
    @classmethod
    def not_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Amounts cannot be negative")
        return v


class AttachAccountRequest(BaseModel):
    user_id: str


class SignupStepOut(BaseModel):
    id: str
    welcome_order_id: str
    user_id: str | None = None
    step_number: int
    step_name: str
    sub_step_number: int
    sub_step_name: str | None = None
    step_data: dict | None = None
    is_completed: bool
    is_valid: bool
    validation_errors: dict | list | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("step_data")
    @classmethod
    def hide_secrets(cls, v: dict | None) -> dict | None:
        return redact_step_data(v)


class WelcomeOrderOut(BaseModel):
    id: str
    order_number: str
    email: str
    user_id: str | None = None
    current_step: int
    current_sub_step: int
    status: WelcomeOrderStatus
    is_completed: bool
    completed_at: datetime | None = None
    total_amount: float
    discount_amount: float
    final_amount: float
    payment_intent_id: str | None = None
    payment_status: PaymentStatus
    paid_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    steps: list[SignupStepOut] = []

    model_config = {"from_attributes": True}


# ── Steps ───────────────────────────────────────────────────

class SignupStepUpdate(BaseModel):
    """Generic step upsert. The convenience endpoints build one of these."""
    step_number: int
    step_name: str
    sub_step_number: int = 0
    sub_step_name: str | None = None
    step_data: dict | None = None
    is_completed: bool = False
    is_valid: bool = False
    validation_errors: dict | list | None = None

    @field_validator("step_number", "sub_step_number")
    @classmethod
    def not_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Step numbers cannot be negative")
        return v


# ── Progress / resume ───────────────────────────────────────

class SignupProgress(BaseModel):
    welcome_order_id: str
    order_number: str
    email: str
    current_step: int
    current_sub_step: int
    status: WelcomeOrderStatus
    is_completed: bool
    is_truly_complete: bool
    payment_status: PaymentStatus
    payment_intent_id: str | None = None
    user_id: str | None = None
    steps: list[SignupStepOut]


class ResumeSignup(BaseModel):
    welcome_order_id: str
    email: str
    current_step: int
    current_sub_step: int
    step_data: dict
    can_resume: bool


class EmailCheckResult(BaseModel):
    email: str
    account_exists: bool
    account_is_active: bool | None = None
    has_incomplete_signup: bool
    welcome_order_id: str | None = None
    message: str = ""


class WelcomeOrderStatusResult(BaseModel):
    """In-progress order for an account, if any."""
    welcome_order: WelcomeOrderOut | None = None
    message: str


# ── Payment ─────────────────────────────────────────────────

class PaymentStatusUpdate(BaseModel):
    payment_intent_id: str
    status: PaymentStatus


class PaymentIntentRequest(BaseModel):
    amount: float | None = None
    currency: str | None = None

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("Amount must be positive")
        return v


class PaymentIntentOut(BaseModel):
    welcome_order_id: str
    payment_intent_id: str
    client_secret: str | None = None
    amount: float
    currency: str
    status: str


# ── Accounts / finalize ─────────────────────────────────────

class AccountCreate(BaseModel):
    """Early account creation from the password step."""
    email: EmailStr
    password: str
    first_name: str
    last_name: str
    gender: str | None = None
    state: str | None = None


class CompleteSignupRequest(BaseModel):
    """Fields supplied directly at finalize. Step payloads take precedence."""
    email: EmailStr | None = None
    password: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    gender: str | None = None
    state: str | None = None
    date_of_birth: date | None = None
    complete_address: str | None = None
    city: str | None = None
    zipcode: str | None = None
    primary_phone: str | None = None
    alternative_phone: str | None = None
    emergency_contact_name: str | None = None
    emergency_contact_relationship: str | None = None
    emergency_contact_phone: str | None = None
    referring_source: str | None = None
    preferred_method_of_communication: str | None = None
    disability_accessibility_needs: str | None = None


class AccountOut(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    gender: str | None = None
    state: str | None = None
    date_of_birth: date | None = None
    complete_address: str | None = None
    city: str | None = None
    zipcode: str | None = None
    primary_phone: str | None = None
    alternative_phone: str | None = None
    consent_for_treatment: bool | None = None
    hipaa_privacy_notice_acknowledgment: bool | None = None
    release_of_medical_records_consent: bool | None = None
    is_active: bool
    is_email_verified: bool
    has_completed_intake_form: bool
    intake_form_completed_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class CompleteSignupOut(BaseModel):
    account: AccountOut
    welcome_order: WelcomeOrderOut
