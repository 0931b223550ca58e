from sqlalchemy import (
    Column, Integer, String, Float, DateTime, ForeignKey, Boolean, Text, JSON,
    Enum as SQLEnum, Index, CheckConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
from database import Base


class InvoiceStatus(str, enum.Enum):
    PENDING = "pending"
    UNPAID = "unpaid"
    PAID = "paid"
    OVERDUE = "overdue"


class RecurrenceInterval(str, enum.Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class PlanName(str, enum.Enum):
    FREE = "free"
    STARTER = "starter"
    PRO = "pro"


class SubscriptionStatus(str, enum.Enum):
    """Statuses written by this service. The gateway may report others (created, halted...)."""
    ACTIVE = "active"
    CANCELED = "canceled"


class User(Base):
    """Tenant root - owns companies, clients, invoices and subscriptions"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(100), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    full_name = Column(String(100), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    companies = relationship("Company", back_populates="user")
    clients = relationship("Client", back_populates="user")
    invoices = relationship("Invoice", back_populates="user")
    subscriptions = relationship("Subscription", back_populates="user")

    def __repr__(self):
        return f"<User {self.email}>"


class Company(Base):
    """Billing entity that issues invoices"""
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(150), nullable=False)
    address = Column(Text, nullable=True)
    tax_info = Column(String(50), nullable=True)  # GST / VAT number
    logo_url = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="companies")
    invoices = relationship("Invoice", back_populates="company")

    def __repr__(self):
        return f"<Company {self.name} (User: {self.user_id})>"


class Client(Base):
    """Reusable billing counterparty"""
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(150), nullable=False)
    email = Column(String(100), nullable=True)
    phone = Column(String(20), nullable=True)
    address = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="clients")
    invoices = relationship("Invoice", back_populates="client")

    __table_args__ = (
        Index('idx_clients_user_name', 'user_id', 'name'),
    )

    def __repr__(self):
        return f"<Client {self.name} (User: {self.user_id})>"


class Invoice(Base):
    """
    Invoice issued by a company to a client.

    A recurring invoice doubles as its own template: the scheduler copies it into
    new rows (recurring_source_id points back) and stamps last_generated_at.
    """
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete='CASCADE'), nullable=False, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete='CASCADE'), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete='SET NULL'), nullable=True, index=True)

    # Denormalized at creation time
    client_name = Column(String(150), nullable=False)
    client_email = Column(String(100), nullable=True)

    items = Column(JSON, nullable=False, default=list)  # [{"description", "qty", "price"}]
    tax = Column(Float, nullable=False, default=0.0)  # Percent
    total = Column(Float, nullable=False)
    due_date = Column(DateTime, nullable=False)
    status = Column(SQLEnum(InvoiceStatus), default=InvoiceStatus.PENDING, nullable=False)

    is_recurring = Column(Boolean, default=False, nullable=False)
    recurrence_interval = Column(SQLEnum(RecurrenceInterval), nullable=True)
    last_generated_at = Column(DateTime, nullable=True)
    recurring_source_id = Column(Integer, ForeignKey("invoices.id", ondelete='SET NULL'), nullable=True, index=True)

    payment_details = Column(Text, nullable=True)
    pdf_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="invoices")
    company = relationship("Company", back_populates="invoices")
    client = relationship("Client", back_populates="invoices")

    __table_args__ = (
        CheckConstraint(
            'NOT is_recurring OR recurrence_interval IS NOT NULL',
            name='ck_invoices_recurring_interval'
        ),
        Index('idx_invoices_user_created', 'user_id', 'created_at'),
        Index('idx_invoices_user_status', 'user_id', 'status'),
        Index('idx_invoices_recurring', 'is_recurring'),
    )

    def __repr__(self):
        return f"<Invoice {self.id} User:{self.user_id} Total:{self.total} Status:{self.status}>"


class Subscription(Base):
    """Gateway subscription record - status only changes through verified webhooks"""
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete='CASCADE'), nullable=False, index=True)
    external_subscription_id = Column(String(100), nullable=False, index=True)
    plan_name = Column(String(20), nullable=False, default=PlanName.FREE.value)
    status = Column(String(20), nullable=False)  # active, canceled, or whatever the gateway reported
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="subscriptions")

    __table_args__ = (
        Index('idx_subscriptions_user_status', 'user_id', 'status'),
    )

    def __repr__(self):
        return f"<Subscription {self.external_subscription_id} {self.plan_name} ({self.status})>"
