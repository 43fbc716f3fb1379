"""Create accounts, welcome_orders and signup_steps.

Revision ID: 0001
Revises:
Create Date: 2026-10-17

One welcome order per onboarding attempt, one signup step row per
(order, step, sub-step). The unique constraint on that triple is what
the step upsert's ON CONFLICT clause targets.
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

import sqlalchemy as sa
from alembic import op

WELCOME_ORDER_STATUSES = ("PENDING", "IN_PROGRESS", "COMPLETED", "CANCELLED", "EXPIRED")
PAYMENT_STATUSES = ("PENDING", "SUCCEEDED", "FAILED", "CANCELLED", "REFUNDED")


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("gender", sa.String(30)),
        sa.Column("state", sa.String(50)),
        sa.Column("date_of_birth", sa.Date()),
        sa.Column("complete_address", sa.Text()),
        sa.Column("city", sa.String(100)),
        sa.Column("zipcode", sa.String(20)),
        sa.Column("primary_phone", sa.String(30)),
        sa.Column("alternative_phone", sa.String(30)),
        sa.Column("emergency_contact_name", sa.String(200)),
        sa.Column("emergency_contact_relationship", sa.String(100)),
        sa.Column("emergency_contact_phone", sa.String(30)),
        sa.Column("referring_source", sa.String(200)),
        sa.Column("preferred_method_of_communication", sa.String(50)),
        sa.Column("disability_accessibility_needs", sa.Text()),
        sa.Column("consent_for_treatment", sa.Boolean()),
        sa.Column("hipaa_privacy_notice_acknowledgment", sa.Boolean()),
        sa.Column("release_of_medical_records_consent", sa.Boolean()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("is_email_verified", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("email_verification_token", sa.String(128)),
        sa.Column("email_verification_token_expires_at", sa.DateTime()),
        sa.Column(
            "has_completed_intake_form", sa.Boolean(), server_default=sa.false(), nullable=False
        ),
        sa.Column("intake_form_completed_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_accounts_email", "accounts", ["email"], unique=True)
    op.create_index(
        "ix_accounts_email_verification_token", "accounts", ["email_verification_token"]
    )

    op.create_table(
        "welcome_orders",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("order_number", sa.String(40), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column(
            "user_id", sa.String(36), sa.ForeignKey("accounts.id", ondelete="CASCADE")
        ),
        sa.Column("current_step", sa.Integer(), server_default="0", nullable=False),
        sa.Column("current_sub_step", sa.Integer(), server_default="0", nullable=False),
        sa.Column(
            "status",
            sa.Enum(*WELCOME_ORDER_STATUSES, name="welcomeorderstatus"),
            server_default="PENDING",
            nullable=False,
        ),
        sa.Column("is_completed", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("completed_at", sa.DateTime()),
        sa.Column("total_amount", sa.Float(), nullable=False),
        sa.Column("discount_amount", sa.Float(), server_default="0", nullable=False),
        sa.Column("final_amount", sa.Float(), nullable=False),
        sa.Column("payment_intent_id", sa.String(255)),
        sa.Column(
            "payment_status",
            sa.Enum(*PAYMENT_STATUSES, name="paymentstatus"),
            server_default="PENDING",
            nullable=False,
        ),
        sa.Column("paid_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_welcome_orders_order_number", "welcome_orders", ["order_number"])
    op.create_index("ix_welcome_orders_email", "welcome_orders", ["email"])
    op.create_index("ix_welcome_orders_user_id", "welcome_orders", ["user_id"])
    # Reaper scan
    op.create_index(
        "ix_welcome_orders_open_updated_at",
        "welcome_orders",
        ["is_completed", "status", "updated_at"],
    )

    op.create_table(
        "signup_steps",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "welcome_order_id",
            sa.String(36),
            sa.ForeignKey("welcome_orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id", sa.String(36), sa.ForeignKey("accounts.id", ondelete="CASCADE")
        ),
        sa.Column("step_number", sa.Integer(), nullable=False),
        sa.Column("step_name", sa.String(100), nullable=False),
        sa.Column("sub_step_number", sa.Integer(), server_default="0", nullable=False),
        sa.Column("sub_step_name", sa.String(100)),
        sa.Column("step_data", sa.JSON()),
        sa.Column("is_completed", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("completed_at", sa.DateTime()),
        sa.Column("is_valid", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("validation_errors", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "welcome_order_id", "step_number", "sub_step_number",
            name="uq_signup_steps_order_step_sub_step",
        ),
    )


def downgrade() -> None:
    op.drop_table("signup_steps")
    op.drop_index("ix_welcome_orders_open_updated_at", table_name="welcome_orders")
    op.drop_index("ix_welcome_orders_user_id", table_name="welcome_orders")
    op.drop_index("ix_welcome_orders_email", table_name="welcome_orders")
    op.drop_index("ix_welcome_orders_order_number", table_name="welcome_orders")
    op.drop_table("welcome_orders")
    op.drop_index("ix_accounts_email_verification_token", table_name="accounts")
    op.drop_index("ix_accounts_email", table_name="accounts")
    op.drop_table("accounts")
    sa.Enum(name="paymentstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="welcomeorderstatus").drop(op.get_bind(), checkfirst=True)
