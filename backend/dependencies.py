"""
Shared FastAPI dependencies for integration clients.
Override these in tests with app.dependency_overrides.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from email_service import EmailService
from invoice_service import InvoiceService
from pdf_service import InvoicePDFGenerator
from razorpay_service import RazorpayService
from subscription_webhooks import SubscriptionReconciler


def get_pdf_generator() -> InvoicePDFGenerator:
    return InvoicePDFGenerator()


def get_email_service() -> EmailService:
    return EmailService()


def get_razorpay_service() -> RazorpayService:
    return RazorpayService()


def get_reconciler() -> SubscriptionReconciler:
    return SubscriptionReconciler()


def get_invoice_service(
    db: AsyncSession = Depends(get_db),
    pdf_generator: InvoicePDFGenerator = Depends(get_pdf_generator),
    email_service: EmailService = Depends(get_email_service)
) -> InvoiceService:
    return InvoiceService(db, pdf_generator=pdf_generator, email_service=email_service)
