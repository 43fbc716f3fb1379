"""Pydantic schemas for the typed payload of every signup step.

The flow has a fixed topology:

    0  Gender
    1  Basic Info   (0: basic, 1: state)
    2  Password
    3  Checkout
    4  Details      (0: bmi, 1: medical, 2: consent)

Each (step_number, sub_step_number) pair maps to one payload schema.
Payload schemas use Optional fields so partial saves work; the
`...Complete` variants are used for validation when a step is
submitted with is_completed=true.
"""

from datetime import date

from pydantic import BaseModel, EmailStr, field_validator, model_validator

from signup.models.welcome_order import PaymentStatus

STEP_NAMES: dict[int, str] = {
    0: "Gender",
    1: "Basic Info",
    2: "Password",
    3: "Checkout",
    4: "Details",
}

SUB_STEP_NAMES: dict[tuple[int, int], str] = {
    (1, 0): "basic",
    (1, 1): "state",
    (4, 0): "bmi",
    (4, 1): "medical",
    (4, 2): "consent",
}

MIN_PASSWORD_LENGTH = 8


# ── Step 0: Gender ──────────────────────────────────────────

class GenderStepData(BaseModel):
    gender: str | None = None


class GenderStepComplete(GenderStepData):
    gender: str


# ── Step 1: Basic info ──────────────────────────────────────

class BasicInfoStepData(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    email: EmailStr | None = None


class BasicInfoStepComplete(BasicInfoStepData):
    first_name: str
    last_name: str
    email: EmailStr


class StateStepData(BaseModel):
    state: str | None = None


class StateStepComplete(StateStepData):
    state: str


# ── Step 2: Password ────────────────────────────────────────

class PasswordStepData(BaseModel):
    """What the client submits. Never persisted as-is."""
    password: str
    confirm_password: str

    @field_validator("password")
    @classmethod
    def long_enough(cls, v: str) -> str:
        if len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        return v

    @model_validator(mode="after")
    def _passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class StoredPasswordStep(BaseModel):
    """What is persisted for step 2: the bcrypt hash only."""
    password_hash: str | None = None


# ── Step 3: Checkout ────────────────────────────────────────

class CheckoutStepData(BaseModel):
    payment_intent_id: str | None = None
    payment_status: PaymentStatus | None = None


# ── Step 4: Details ─────────────────────────────────────────

class BmiStepData(BaseModel):
    # Measurements
    height: str | None = None
    weight: str | None = None
    waist: str | None = None
    bmi: str | None = None

    # Personal details collected on the same screen
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

    @field_validator("date_of_birth")
    @classmethod
    def plausible_birth_date(cls, v: date | None) -> date | None:
        if v is None:
            return v
        today = date.today()
        if v > today or v.year < today.year - 150:
            raise ValueError("Invalid date. Please enter a valid birth date.")
        return v


class BmiStepComplete(BmiStepData):
    height: str
    weight: str
    bmi: str


class MedicalStepData(BaseModel):
    """Medical intake answers. Free-form: unknown questions are kept."""
    chief_complaint: str | None = None
    past_medical_history: str | None = None
    past_surgical_history: str | None = None
    allergies: str | None = None
    medications: str | None = None
    tobacco_use: str | None = None
    alcohol_use: str | None = None
    family_history: str | None = None

    model_config = {"extra": "allow"}


class MedicalStepComplete(MedicalStepData):
    @model_validator(mode="after")
    def _at_least_one_answer(self):
        if not self.model_dump(exclude_none=True):
            raise ValueError("At least one medical intake answer is required")
        return self


class ConsentStepData(BaseModel):
    consent_for_treatment: bool | None = None
    hipaa_privacy_notice_acknowledgment: bool | None = None
    release_of_medical_records_consent: bool | None = None


class ConsentStepComplete(ConsentStepData):
    consent_for_treatment: bool
    hipaa_privacy_notice_acknowledgment: bool
    release_of_medical_records_consent: bool

    @model_validator(mode="after")
    def _treatment_consent_given(self):
        if not self.consent_for_treatment:
            raise ValueError("Consent for treatment is required to continue")
        return self


# ── Step key → schema ───────────────────────────────────────

# (draft schema, completion schema) per step key.
# The password step is special-cased by the progress tracker: input is
# PasswordStepData, storage is StoredPasswordStep.
STEP_SCHEMAS: dict[tuple[int, int], tuple[type[BaseModel], type[BaseModel]]] = {
    (0, 0): (GenderStepData, GenderStepComplete),
    (1, 0): (BasicInfoStepData, BasicInfoStepComplete),
    (1, 1): (StateStepData, StateStepComplete),
    (2, 0): (StoredPasswordStep, StoredPasswordStep),
    (3, 0): (CheckoutStepData, CheckoutStepData),
    (4, 0): (BmiStepData, BmiStepComplete),
    (4, 1): (MedicalStepData, MedicalStepComplete),
    (4, 2): (ConsentStepData, ConsentStepComplete),
}

PASSWORD_STEP = (2, 0)
DETAILS_STEP = 4

# Stored keys that never leave the service
SECRET_STEP_KEYS = frozenset({"password_hash"})


def redact_step_data(data: dict | None) -> dict | None:
    if not data:
        return data
    return {k: v for k, v in data.items() if k not in SECRET_STEP_KEYS}
