from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..platform.database import Base


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    billing_account_id = Column(Integer, ForeignKey("billing_accounts.id"), index=True, nullable=False)
    stripe_invoice_id = Column(String, unique=True, index=True, nullable=False)
    invoice_number = Column(String, nullable=True)
    status = Column(String, nullable=False)
    amount_due_cents = Column(Integer, nullable=True)
    amount_paid_cents = Column(Integer, nullable=True)
    currency = Column(String, default="usd")
    billing_period_start = Column(DateTime(timezone=True), nullable=True)
    billing_period_end = Column(DateTime(timezone=True), nullable=True)
    pdf_url = Column(String, nullable=True)
    hosted_invoice_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    billing_account = relationship("BillingAccount", back_populates="invoices")
