"""SQLAlchemy 2.0 domain models for customer registration.

A customer registration is spread over four tables. The customer row is
the parent; address, payment settings and invoicing settings each point
back at it through ``customer_id``. Invoicing settings may also reference
the customer's address as the billing address.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all domain models."""

    pass


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class Customer(TimestampMixin, Base):
    """Customer being registered through the multi-step form."""

    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    vat_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    data_provider: Mapped[str | None] = mapped_column(String(100), nullable=True)
    registration_steps: Mapped[dict] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    address: Mapped[CustomerAddress | None] = relationship(
        back_populates="customer", uselist=False
    )
    payment_settings: Mapped[CustomerPaymentSettings | None] = relationship(
        back_populates="customer", uselist=False
    )
    invoicing_settings: Mapped[CustomerInvoicingSettings | None] = relationship(
        back_populates="customer", uselist=False
    )


class CustomerAddress(TimestampMixin, Base):
    """Postal address of a customer."""

    __tablename__ = "customer_addresses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int] = mapped_column(
        ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    street: Mapped[str | None] = mapped_column(String(255), nullable=True)
    house_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    postal_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    country: Mapped[str | None] = mapped_column(String(2), nullable=True)

    customer: Mapped[Customer] = relationship(back_populates="address")


class CustomerPaymentSettings(TimestampMixin, Base):
    """How the customer pays."""

    __tablename__ = "customer_payment_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int] = mapped_column(
        ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    iban: Mapped[str | None] = mapped_column(String(34), nullable=True)
    bic: Mapped[str | None] = mapped_column(String(11), nullable=True)
    account_holder: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_term_days: Mapped[int | None] = mapped_column(Integer, nullable=True)

    customer: Mapped[Customer] = relationship(back_populates="payment_settings")


class CustomerInvoicingSettings(TimestampMixin, Base):
    """Where and how invoices are delivered."""

    __tablename__ = "customer_invoicing_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int] = mapped_column(
        ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    billing_address_id: Mapped[int | None] = mapped_column(
        ForeignKey("customer_addresses.id", ondelete="SET NULL"), nullable=True
    )
    invoice_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    delivery_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    language: Mapped[str | None] = mapped_column(String(5), nullable=True)
    purchase_order_required: Mapped[bool | None] = mapped_column(
        Boolean, nullable=True
    )

    customer: Mapped[Customer] = relationship(back_populates="invoicing_settings")
    billing_address: Mapped[CustomerAddress | None] = relationship()
