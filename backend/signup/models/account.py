import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from signup.database import Base


class Account(Base):
    """A materialized patient account.

    Rows are created either early (password step) or by the signup
    finalizer. Email is stored normalized (trimmed, lower-case).
    """

    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    gender: Mapped[str | None] = mapped_column(String(30))
    state: Mapped[str | None] = mapped_column(String(50))
    date_of_birth: Mapped[date | None] = mapped_column(Date)

    complete_address: Mapped[str | None] = mapped_column(Text)
    city: Mapped[str | None] = mapped_column(String(100))
    zipcode: Mapped[str | None] = mapped_column(String(20))
    primary_phone: Mapped[str | None] = mapped_column(String(30))
    alternative_phone: Mapped[str | None] = mapped_column(String(30))

    emergency_contact_name: Mapped[str | None] = mapped_column(String(200))
    emergency_contact_relationship: Mapped[str | None] = mapped_column(String(100))
    emergency_contact_phone: Mapped[str | None] = mapped_column(String(30))
    referring_source: Mapped[str | None] = mapped_column(String(200))
    preferred_method_of_communication: Mapped[str | None] = mapped_column(String(50))
    disability_accessibility_needs: Mapped[str | None] = mapped_column(Text)

    consent_for_treatment: Mapped[bool | None] = mapped_column(Boolean)
    hipaa_privacy_notice_acknowledgment: Mapped[bool | None] = mapped_column(Boolean)
    release_of_medical_records_consent: Mapped[bool | None] = mapped_column(Boolean)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_email_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    email_verification_token: Mapped[str | None] = mapped_column(String(128), index=True)
    email_verification_token_expires_at: Mapped[datetime | None] = mapped_column(DateTime)

    has_completed_intake_form: Mapped[bool] = mapped_column(Boolean, default=False)
    intake_form_completed_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
