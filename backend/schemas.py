from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from typing import Optional, List
from datetime import datetime
from models import InvoiceStatus, RecurrenceInterval


# Invoice Schemas
class InvoiceItem(BaseModel):
    description: str = Field(..., min_length=1, max_length=500)
    qty: float = Field(..., gt=0)
    price: float = Field(..., ge=0)


class InvoiceCreate(BaseModel):
    """
    Schema for creating an invoice.

    Either client_id (a saved client) or client_name/client_email must be given.
    total is optional; the stored total is always recomputed from items and tax.
    """
    company_id: int
    client_id: Optional[int] = None
    client_name: Optional[str] = Field(None, max_length=150)
    client_email: Optional[EmailStr] = None
    items: List[InvoiceItem] = []
    tax: float = Field(0.0, ge=0, le=100)
    total: Optional[float] = Field(None, ge=0)
    due_date: datetime
    is_recurring: bool = False
    recurrence_interval: Optional[RecurrenceInterval] = None
    payment_details: Optional[str] = None

    @model_validator(mode="after")
    def check_client_and_recurrence(self):
        if self.client_id is None and not self.client_name:
            raise ValueError("client_name is required when client_id is not provided")
        if self.is_recurring and self.recurrence_interval is None:
            raise ValueError("recurrence_interval is required for recurring invoices")
        return self


class InvoiceUpdate(BaseModel):
    """Schema for updating an invoice - does not re-render the PDF"""
    company_id: Optional[int] = None
    client_id: Optional[int] = None
    client_name: Optional[str] = Field(None, max_length=150)
    client_email: Optional[EmailStr] = None
    items: Optional[List[InvoiceItem]] = None
    tax: Optional[float] = Field(None, ge=0, le=100)
    due_date: Optional[datetime] = None
    status: Optional[InvoiceStatus] = None
    is_recurring: Optional[bool] = None
    recurrence_interval: Optional[RecurrenceInterval] = None
    payment_details: Optional[str] = None


class InvoiceResponse(BaseModel):
    id: int
    user_id: int
    company_id: int
    client_id: Optional[int] = None
    client_name: str
    client_email: Optional[str] = None
    items: List[InvoiceItem]
    tax: float
    total: float
    due_date: datetime
    status: InvoiceStatus
    is_recurring: bool
    recurrence_interval: Optional[RecurrenceInterval] = None
    last_generated_at: Optional[datetime] = None
    recurring_source_id: Optional[int] = None
    payment_details: Optional[str] = None
    pdf_url: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InvoiceCreateResponse(BaseModel):
    """Created invoice plus a warning when the PDF could not be generated"""
    invoice: InvoiceResponse
    warning: Optional[str] = None


class InvoicePdfResponse(BaseModel):
    pdf_url: str


class InvoiceSendRequest(BaseModel):
    subject: Optional[str] = Field(None, max_length=200)
    message: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


# Subscription Schemas
class SubscriptionCreateRequest(BaseModel):
    plan_id: str = Field(..., min_length=1)


class SubscriptionResponse(BaseModel):
    id: int
    external_subscription_id: str
    plan_name: str
    status: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SubscriptionStatusResponse(BaseModel):
    plan: str
    plan_name: Optional[str] = None
    status: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    invoices_limit: Optional[int] = None  # None = unlimited
    invoices_used: int
    message: str


class WebhookAck(BaseModel):
    status: str = "success"


# Analytics Schemas
class AnalyticsOverview(BaseModel):
    total_invoices: int
    total_revenue: float
    total_clients: int


class DashboardStats(BaseModel):
    total_revenue: float
    total_invoices: int
    open_invoices: int
    total_clients: int


class InvoiceStatusSummary(BaseModel):
    paid: int
    pending: int
    unpaid: int
    overdue: int


class TopClient(BaseModel):
    client_name: str
    client_email: Optional[str] = None
    revenue: float


class MonthlyRevenue(BaseModel):
    month: str  # YYYY-MM
    revenue: float
