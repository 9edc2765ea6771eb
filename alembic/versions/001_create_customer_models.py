"""Create customer registration tables.

Revision ID: 001
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            onupdate=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("company_name", sa.String(255), nullable=True),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("vat_number", sa.String(50), nullable=True),
        sa.Column("data_provider", sa.String(100), nullable=True),
        sa.Column("registration_steps", JSONB, nullable=False, server_default="{}"),
        sa.Column("created_by", sa.String(255), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_customers_email", "customers", ["email"])

    op.create_table(
        "customer_addresses",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "customer_id",
            sa.Integer(),
            sa.ForeignKey("customers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("street", sa.String(255), nullable=True),
        sa.Column("house_number", sa.String(20), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("postal_code", sa.String(20), nullable=True),
        sa.Column("country", sa.String(2), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_customer_addresses_customer_id", "customer_addresses", ["customer_id"]
    )

    op.create_table(
        "customer_payment_settings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "customer_id",
            sa.Integer(),
            sa.ForeignKey("customers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("payment_method", sa.String(50), nullable=True),
        sa.Column("iban", sa.String(34), nullable=True),
        sa.Column("bic", sa.String(11), nullable=True),
        sa.Column("account_holder", sa.String(255), nullable=True),
        sa.Column("payment_term_days", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_customer_payment_settings_customer_id",
        "customer_payment_settings",
        ["customer_id"],
    )

    op.create_table(
        "customer_invoicing_settings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "customer_id",
            sa.Integer(),
            sa.ForeignKey("customers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "billing_address_id",
            sa.Integer(),
            sa.ForeignKey("customer_addresses.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("invoice_email", sa.String(255), nullable=True),
        sa.Column("delivery_method", sa.String(20), nullable=True),
        sa.Column("language", sa.String(5), nullable=True),
        sa.Column("purchase_order_required", sa.Boolean(), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_customer_invoicing_settings_customer_id",
        "customer_invoicing_settings",
        ["customer_id"],
    )


def downgrade() -> None:
    op.drop_table("customer_invoicing_settings")
    op.drop_table("customer_payment_settings")
    op.drop_table("customer_addresses")
    op.drop_table("customers")
